"""Market validation report models.

Generator output is decoded against these models entry by entry.  Both
snake_case and camelCase keys are accepted so a backend that drifts back to
camelCase still validates.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .research_schema import EvidenceType, TrendPoint


class HypothesisLayer(str, Enum):
    """Five fixed stages of user behaviour, scored on every run."""

    EXISTENCE = "existence"
    AWARENESS = "awareness"
    CONSIDERATION = "consideration"
    INTENT = "intent"
    PAY_INTENTION = "pay_intention"


class MarketSignalType(str, Enum):
    """Nine fixed market-health dimensions, scored on every run."""

    DEMAND_INTENSITY = "demand_intensity"
    PROBLEM_SALIENCE = "problem_salience"
    EXISTING_SPEND = "existing_spend"
    COMPETITIVE_LANDSCAPE = "competitive_landscape"
    SWITCHING_FRICTION = "switching_friction"
    DISTRIBUTION = "distribution"
    GEOGRAPHIC_FIT = "geographic_fit"
    TIMING = "timing"
    ECONOMIC_PLAUSIBILITY = "economic_plausibility"


class ConfidenceLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class _ReportModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CitedSource(_ReportModel):
    title: str = ""
    url: str = ""
    evidence_type: EvidenceType = EvidenceType.DIRECTIONAL
    snippet: Optional[str] = None


class CustomerSegment(_ReportModel):
    primary_user: str
    buyer: Optional[str] = None
    context_of_use: str
    environment: str = Field(..., description="consumer | SMB | enterprise | regulated")


class MarketContext(_ReportModel):
    type: Literal["B2C", "B2B", "B2B2C"] = "B2C"
    scope: Literal["horizontal", "vertical"] = "vertical"
    category_type: Literal["new_category", "existing_category"] = "existing_category"


class MarketSnapshot(_ReportModel):
    customer_segment: CustomerSegment
    market_context: MarketContext
    geography: str
    timing_context: str


class BehavioralHypothesis(_ReportModel):
    layer: HypothesisLayer
    title: str
    description: str
    evidence_summary: str = ""
    confidence: ConfidenceLevel = ConfidenceLevel.LOW
    supporting_sources: list[CitedSource] = Field(default_factory=list)
    contradicting_signals: list[str] = Field(default_factory=list)


class MarketSignal(_ReportModel):
    type: MarketSignalType
    title: str
    summary: str
    classification: Optional[str] = None
    evidence_snippets: list[str] = Field(default_factory=list)
    sources: list[CitedSource] = Field(default_factory=list)
    strength: ConfidenceLevel = ConfidenceLevel.LOW


class ConflictItem(_ReportModel):
    type: Literal["contradiction", "missing_signal", "risk_flag"]
    description: str
    related_signals: list[str] = Field(default_factory=list)


class ConflictsAndGaps(_ReportModel):
    contradictions: list[ConflictItem] = Field(default_factory=list)
    missing_signals: list[ConflictItem] = Field(default_factory=list)
    risk_flags: list[ConflictItem] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.contradictions or self.missing_signals or self.risk_flags)


class SynthesisAndNextSteps(_ReportModel):
    strong_points: list[str] = Field(default_factory=list)
    weak_points: list[str] = Field(default_factory=list)
    key_unknowns: list[str] = Field(default_factory=list)
    suggested_next_steps: list[str] = Field(default_factory=list)
    pivot_guidance: list[str] = Field(default_factory=list)


class SearchResultItem(_ReportModel):
    position: int
    title: str
    link: str
    snippet: str = ""


class SearchData(_ReportModel):
    """Raw search data kept on the report for transparency."""

    google_results: list[SearchResultItem] = Field(default_factory=list)
    bing_results: list[SearchResultItem] = Field(default_factory=list)
    google_trends: list[TrendPoint] = Field(default_factory=list)


class MarketValidationResult(_ReportModel):
    """Aggregate root of one validation run.

    After completion ``behavioral_hypotheses`` holds exactly 5 entries and
    ``market_signals`` exactly 9, both in enum order.
    """

    market_snapshot: MarketSnapshot
    behavioral_hypotheses: list[BehavioralHypothesis] = Field(..., min_length=5, max_length=5)
    market_signals: list[MarketSignal] = Field(..., min_length=9, max_length=9)
    conflicts_and_gaps: ConflictsAndGaps
    synthesis_and_next_steps: SynthesisAndNextSteps
    search_data: SearchData = Field(default_factory=SearchData)
    timestamp: datetime
    version: int = Field(default=1, ge=1)
