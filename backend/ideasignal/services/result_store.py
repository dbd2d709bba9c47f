"""Versioned, append-only storage for validation and decision synthesis runs.

Records are keyed by ``(idea_id, idea_version_number, version)``.  Every
append takes ``max(version) + 1`` for its key; a concurrent writer that
claims the same version trips the unique constraint and the append retries
with a fresh number.  Stored rows are never updated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Type

from pydantic import TypeAdapter
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.validation_record import DecisionSynthesisRecord, MarketValidationRecord
from ..schemas.hypothesis_schema import HypothesisEvidence
from ..schemas.research_schema import ProviderStatus
from ..schemas.synthesis_schema import DecisionSynthesisResult
from ..schemas.validation_schema import MarketValidationResult

logger = logging.getLogger(__name__)

MAX_APPEND_ATTEMPTS = 5

_hypotheses_adapter = TypeAdapter(List[HypothesisEvidence])
_provenance_adapter = TypeAdapter(List[ProviderStatus])


@dataclass
class StoredMarketValidation:
    version: int
    result: MarketValidationResult
    hypotheses: List[HypothesisEvidence] = field(default_factory=list)
    provenance: List[ProviderStatus] = field(default_factory=list)
    language: str = "en"
    created_at: Optional[datetime] = None


@dataclass
class StoredDecisionSynthesis:
    version: int
    result: DecisionSynthesisResult
    market_validation_version: Optional[int] = None
    language: str = "en"
    created_at: Optional[datetime] = None


# ===================================================================== #
#  Internal helpers                                                       #
# ===================================================================== #

def next_version(db: Session, model: Type, idea_id: str, idea_version_number: int) -> int:
    current = (
        db.query(func.max(model.version))
        .filter(model.idea_id == idea_id, model.idea_version_number == idea_version_number)
        .scalar()
    )
    return (current or 0) + 1


def _append(db: Session, model: Type, idea_id: str, idea_version_number: int, build) -> object:
    """Insert ``build(version)`` under the next free version for the key."""
    for attempt in range(MAX_APPEND_ATTEMPTS):
        version = next_version(db, model, idea_id, idea_version_number)
        record = build(version)
        db.add(record)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            if attempt == MAX_APPEND_ATTEMPTS - 1:
                logger.error(
                    "[Store] %s %s/%s gave up after %d attempts", model.__tablename__,
                    idea_id, idea_version_number, MAX_APPEND_ATTEMPTS,
                )
                raise
            logger.warning(
                "[Store] %s version %d for %s/%s taken — retrying (%d/%d)",
                model.__tablename__, version, idea_id, idea_version_number,
                attempt + 1, MAX_APPEND_ATTEMPTS,
            )
            continue
        db.refresh(record)
        logger.info("[Store] %s %s/%s → version %d", model.__tablename__, idea_id, idea_version_number, version)
        return record

    raise AssertionError("unreachable: MAX_APPEND_ATTEMPTS >= 1")


def _to_stored_validation(record: MarketValidationRecord) -> StoredMarketValidation:
    return StoredMarketValidation(
        version=record.version,
        result=MarketValidationResult.model_validate_json(record.payload_json),
        hypotheses=_hypotheses_adapter.validate_json(record.hypotheses_json) if record.hypotheses_json else [],
        provenance=_provenance_adapter.validate_json(record.provenance_json) if record.provenance_json else [],
        language=record.language,
        created_at=record.created_at,
    )


def _to_stored_synthesis(record: DecisionSynthesisRecord) -> StoredDecisionSynthesis:
    return StoredDecisionSynthesis(
        version=record.version,
        result=DecisionSynthesisResult.model_validate_json(record.payload_json),
        market_validation_version=record.market_validation_version,
        language=record.language,
        created_at=record.created_at,
    )


# ===================================================================== #
#  Market validation                                                      #
# ===================================================================== #

def append_market_validation(
    db: Session,
    idea_id: str,
    idea_version_number: int,
    result: MarketValidationResult,
    hypotheses: Optional[List[HypothesisEvidence]] = None,
    provenance: Optional[List[ProviderStatus]] = None,
    language: str = "en",
) -> StoredMarketValidation:
    """Store *result* as a new version; the stored copy carries that version."""
    hypotheses = hypotheses or []
    provenance = provenance or []

    def build(version: int) -> MarketValidationRecord:
        stamped = result.model_copy(update={"version": version})
        return MarketValidationRecord(
            idea_id=idea_id,
            idea_version_number=idea_version_number,
            version=version,
            language=language,
            payload_json=stamped.model_dump_json(),
            hypotheses_json=_hypotheses_adapter.dump_json(hypotheses).decode(),
            provenance_json=_provenance_adapter.dump_json(provenance).decode(),
        )

    record = _append(db, MarketValidationRecord, idea_id, idea_version_number, build)
    return _to_stored_validation(record)


def latest_market_validation(
    db: Session, idea_id: str, idea_version_number: int
) -> Optional[StoredMarketValidation]:
    record = (
        db.query(MarketValidationRecord)
        .filter(
            MarketValidationRecord.idea_id == idea_id,
            MarketValidationRecord.idea_version_number == idea_version_number,
        )
        .order_by(MarketValidationRecord.version.desc())
        .first()
    )
    return _to_stored_validation(record) if record else None


def list_market_validation_versions(
    db: Session, idea_id: str, idea_version_number: int
) -> List[StoredMarketValidation]:
    records = (
        db.query(MarketValidationRecord)
        .filter(
            MarketValidationRecord.idea_id == idea_id,
            MarketValidationRecord.idea_version_number == idea_version_number,
        )
        .order_by(MarketValidationRecord.version.asc())
        .all()
    )
    return [_to_stored_validation(r) for r in records]


# ===================================================================== #
#  Decision synthesis                                                     #
# ===================================================================== #

def append_decision_synthesis(
    db: Session,
    idea_id: str,
    idea_version_number: int,
    result: DecisionSynthesisResult,
    market_validation_version: Optional[int] = None,
    language: str = "en",
) -> StoredDecisionSynthesis:
    def build(version: int) -> DecisionSynthesisRecord:
        return DecisionSynthesisRecord(
            idea_id=idea_id,
            idea_version_number=idea_version_number,
            version=version,
            language=language,
            payload_json=result.model_dump_json(),
            market_validation_version=market_validation_version,
        )

    record = _append(db, DecisionSynthesisRecord, idea_id, idea_version_number, build)
    return _to_stored_synthesis(record)


def latest_decision_synthesis(
    db: Session, idea_id: str, idea_version_number: int
) -> Optional[StoredDecisionSynthesis]:
    record = (
        db.query(DecisionSynthesisRecord)
        .filter(
            DecisionSynthesisRecord.idea_id == idea_id,
            DecisionSynthesisRecord.idea_version_number == idea_version_number,
        )
        .order_by(DecisionSynthesisRecord.version.desc())
        .first()
    )
    return _to_stored_synthesis(record) if record else None
