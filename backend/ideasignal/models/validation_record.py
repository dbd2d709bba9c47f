import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.types import CHAR, TypeDecorator

from ..database import Base


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses CHAR(36) to store UUIDs as strings, compatible with all backends
    including SQLite.
    """

    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            return uuid.UUID(value)
        return value


class MarketValidationRecord(Base):
    """One stored pipeline run.  Append-only: rows are never updated."""

    __tablename__ = "market_validation_records"
    __table_args__ = (
        UniqueConstraint("idea_id", "idea_version_number", "version", name="uq_market_validation_version"),
    )

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    idea_id = Column(String(64), nullable=False, index=True)
    idea_version_number = Column(Integer, nullable=False)
    version = Column(Integer, nullable=False)

    language = Column(String(8), nullable=False, default="en")
    payload_json = Column(Text, nullable=False)        # MarketValidationResult
    hypotheses_json = Column(Text, nullable=True)      # list[HypothesisEvidence]
    provenance_json = Column(Text, nullable=True)      # list[ProviderStatus]

    created_at = Column(DateTime, default=datetime.utcnow)


class DecisionSynthesisRecord(Base):
    """One stored decision synthesis.  Append-only: rows are never updated."""

    __tablename__ = "decision_synthesis_records"
    __table_args__ = (
        UniqueConstraint("idea_id", "idea_version_number", "version", name="uq_decision_synthesis_version"),
    )

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    idea_id = Column(String(64), nullable=False, index=True)
    idea_version_number = Column(Integer, nullable=False)
    version = Column(Integer, nullable=False)

    language = Column(String(8), nullable=False, default="en")
    payload_json = Column(Text, nullable=False)        # DecisionSynthesisResult
    market_validation_version = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
