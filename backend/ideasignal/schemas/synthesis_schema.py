from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _EvidenceModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class VoteTypeBreakdown(_EvidenceModel):
    use: int = Field(default=0, ge=0)
    dislike: int = Field(default=0, ge=0)
    pay: int = Field(default=0, ge=0)


class VoteChangeEntry(_EvidenceModel):
    date: str
    use: int = 0
    dislike: int = 0
    pay: int = 0
    total: int = 0


class EngagementSegment(_EvidenceModel):
    """Engagement for one viewer segment (e.g. first-time vs returning)."""

    name: str
    signals: int = 0
    avg_dwell_ms: Optional[float] = None
    vote_type_pct: dict[str, float] = Field(default_factory=dict)


class DecisionEvidence(_EvidenceModel):
    """Internal engagement evidence for one idea version.

    Every metric is optional: ``None`` means "not measured", which the
    synthesizer must treat differently from zero.
    """

    total_votes: int = Field(default=0, ge=0)
    vote_type_breakdown: VoteTypeBreakdown = Field(default_factory=VoteTypeBreakdown)
    detail_views: Optional[int] = None
    avg_dwell_time_ms: Optional[float] = None
    median_dwell_time_ms: Optional[float] = None
    scroll_depth_pct: Optional[float] = None
    return_rate: Optional[float] = None
    time_to_first_signal_sec: Optional[float] = None
    time_to_first_comment_sec: Optional[float] = None
    vote_latency_avg_sec: Optional[float] = None
    pct_votes_after_comment: Optional[float] = None
    early_exit_rate_pct: Optional[float] = None
    high_dwell_no_vote_pct: Optional[float] = None
    vote_change_over_time: list[VoteChangeEntry] = Field(default_factory=list)
    dwell_distribution: dict[str, Any] = Field(default_factory=dict)
    segments: list[EngagementSegment] = Field(default_factory=list)


class DecisionIdea(BaseModel):
    """Idea identity text handed to the decision synthesizer."""

    title: str = Field(..., min_length=1)
    decision_making: str = Field(default="", description="The decision question the founder faces")
    content: list[dict[str, Any]] = Field(default_factory=list, description="Idea content blocks")


class DecisionSynthesisResult(BaseModel):
    """Six-section decision document.  Every value is plain markdown text."""

    decision_framing: str
    signal_summary: str
    what_signals_say: str
    key_risks_and_assumptions: str
    recommendation: str
    founder_safe_summary: str
