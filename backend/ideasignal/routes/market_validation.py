"""Market validation routes — run the pipeline and read stored versions.

Endpoints:
  POST /market-validation                                         — Run and store a new version
  GET  /market-validation/{idea_id}/{idea_version_number}          — Latest stored version
  GET  /market-validation/{idea_id}/{idea_version_number}/versions — Every stored version
"""

from __future__ import annotations

import asyncio
import logging
import time

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..agents.market_validation.graph import run_market_validation
from ..agents.market_validation.nodes.evidence import get_default_collector
from ..database import get_db
from ..models.validation_record import MarketValidationRecord
from ..schemas.api_schema import (
    MarketValidationRequest,
    MarketValidationResponse,
    MarketValidationVersionsResponse,
)
from ..schemas.research_schema import IdeaContext
from ..services.result_store import (
    StoredMarketValidation,
    append_market_validation,
    latest_market_validation,
    list_market_validation_versions,
    next_version,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/market-validation",
    tags=["Market Validation"],
)


# ── Helpers ──────────────────────────────────────────────────────────────

def _to_response(
    idea_id: str,
    idea_version_number: int,
    stored: StoredMarketValidation,
    processing_errors: list[str] | None = None,
) -> MarketValidationResponse:
    return MarketValidationResponse(
        idea_id=idea_id,
        idea_version_number=idea_version_number,
        version=stored.version,
        result=stored.result,
        hypotheses=stored.hypotheses,
        provenance=stored.provenance,
        processing_errors=processing_errors or [],
        created_at=stored.created_at,
    )


# ── Routes ───────────────────────────────────────────────────────────────

@router.post(
    "",
    response_model=MarketValidationResponse,
    response_model_by_alias=False,
    status_code=status.HTTP_201_CREATED,
    summary="Run Market Validation",
    response_description="Stored validation report with hypotheses and provider provenance",
)
async def create_market_validation(
    request: MarketValidationRequest,
    db: Session = Depends(get_db),
) -> MarketValidationResponse:
    """Run the evidence pipeline for one idea version and store the result.

    Re-running never overwrites: each call creates the next version.
    Generation rate limits surface as HTTP 429.
    """
    start = time.perf_counter()
    logger.info("[TIMING] market_validation_endpoint: START idea=%s", request.idea_id)

    idea = IdeaContext(
        title=request.title,
        description=request.description,
        tags=tuple(request.tags),
        language=request.language,
    )
    planned_version = next_version(db, MarketValidationRecord, request.idea_id, request.idea_version_number)

    try:
        run = await run_market_validation(
            idea,
            collector=get_default_collector(),
            version=planned_version,
            include_hypotheses=request.include_hypotheses,
        )
    except asyncio.TimeoutError:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Market validation timed out",
        )

    stored = append_market_validation(
        db,
        request.idea_id,
        request.idea_version_number,
        run.result,
        hypotheses=run.hypotheses,
        provenance=run.provenance,
        language=request.language,
    )

    logger.info(
        "[TIMING] market_validation_endpoint: END — version=%d duration=%.0fms",
        stored.version, (time.perf_counter() - start) * 1000,
    )
    return _to_response(request.idea_id, request.idea_version_number, stored, run.processing_errors)


@router.get(
    "/{idea_id}/{idea_version_number}",
    response_model=MarketValidationResponse,
    response_model_by_alias=False,
    summary="Latest Market Validation",
)
def get_latest_market_validation(
    idea_id: str,
    idea_version_number: int,
    db: Session = Depends(get_db),
) -> MarketValidationResponse:
    stored = latest_market_validation(db, idea_id, idea_version_number)
    if stored is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No market validation for idea {idea_id} v{idea_version_number}",
        )
    return _to_response(idea_id, idea_version_number, stored)


@router.get(
    "/{idea_id}/{idea_version_number}/versions",
    response_model=MarketValidationVersionsResponse,
    response_model_by_alias=False,
    summary="All Market Validation Versions",
)
def get_market_validation_versions(
    idea_id: str,
    idea_version_number: int,
    db: Session = Depends(get_db),
) -> MarketValidationVersionsResponse:
    versions = list_market_validation_versions(db, idea_id, idea_version_number)
    if not versions:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No market validation for idea {idea_id} v{idea_version_number}",
        )
    return MarketValidationVersionsResponse(
        idea_id=idea_id,
        idea_version_number=idea_version_number,
        versions=[_to_response(idea_id, idea_version_number, v) for v in versions],
    )
