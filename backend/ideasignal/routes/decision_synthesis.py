"""Decision synthesis routes.

Endpoints:
  POST /idea-signals-synthesis                                — Synthesize and store a new version
  GET  /idea-signals-synthesis/{idea_id}/{idea_version_number} — Latest stored version
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..constants import NO_EXTERNAL_EVIDENCE, NO_INTERNAL_EVIDENCE
from ..database import get_db
from ..schemas.api_schema import DecisionSynthesisRequest, DecisionSynthesisResponse
from ..services.decision_synthesizer import synthesize_decision
from ..services.result_store import (
    StoredDecisionSynthesis,
    append_decision_synthesis,
    latest_decision_synthesis,
    latest_market_validation,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/idea-signals-synthesis",
    tags=["Decision Synthesis"],
)


def _to_response(idea_id: str, idea_version_number: int, stored: StoredDecisionSynthesis) -> DecisionSynthesisResponse:
    return DecisionSynthesisResponse(
        idea_id=idea_id,
        idea_version_number=idea_version_number,
        version=stored.version,
        synthesis=stored.result,
        market_validation_version=stored.market_validation_version,
        created_at=stored.created_at,
    )


@router.post(
    "",
    response_model=DecisionSynthesisResponse,
    response_model_by_alias=False,
    status_code=status.HTTP_201_CREATED,
    summary="Run Decision Synthesis",
)
async def create_decision_synthesis(
    request: DecisionSynthesisRequest,
    db: Session = Depends(get_db),
) -> DecisionSynthesisResponse:
    """Combine internal engagement and external research into a decision document."""
    market_validation = request.market_validation
    market_validation_version = market_validation.version if market_validation else None

    if market_validation is None and request.use_stored_market_validation:
        stored_mv = latest_market_validation(db, request.idea_id, request.idea_version_number)
        if stored_mv is not None:
            market_validation = stored_mv.result
            market_validation_version = stored_mv.version
            logger.info("[DecisionSynthesis] Using stored market validation v%d", stored_mv.version)

    synthesis = await synthesize_decision(
        request.idea,
        request.decision_evidence or NO_INTERNAL_EVIDENCE,
        market_validation or NO_EXTERNAL_EVIDENCE,
        language=request.language,
    )

    stored = append_decision_synthesis(
        db,
        request.idea_id,
        request.idea_version_number,
        synthesis,
        market_validation_version=market_validation_version,
        language=request.language,
    )
    return _to_response(request.idea_id, request.idea_version_number, stored)


@router.get(
    "/{idea_id}/{idea_version_number}",
    response_model=DecisionSynthesisResponse,
    response_model_by_alias=False,
    summary="Latest Decision Synthesis",
)
def get_latest_decision_synthesis(
    idea_id: str,
    idea_version_number: int,
    db: Session = Depends(get_db),
) -> DecisionSynthesisResponse:
    stored = latest_decision_synthesis(db, idea_id, idea_version_number)
    if stored is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No decision synthesis for idea {idea_id} v{idea_version_number}",
        )
    return _to_response(idea_id, idea_version_number, stored)
