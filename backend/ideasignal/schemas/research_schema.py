from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


Language = Literal["en", "es"]


class EvidenceType(str, Enum):
    """Evidence reliability labels, strongest first.

    behavioral   — observed action (usage, spending, adoption)
    quantitative — sourced number or metric
    stated       — explicit opinion or claim
    directional  — weak or inferred signal
    """

    BEHAVIORAL = "behavioral"
    QUANTITATIVE = "quantitative"
    STATED = "stated"
    DIRECTIONAL = "directional"


class IdeaContext(BaseModel):
    """Immutable research query for one idea.

    Supplied by the idea CRUD layer.  The pipeline is a pure function of this
    plus fetched evidence.
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., min_length=1, description="Idea title")
    description: str = Field(default="", description="Free-text idea description")
    tags: tuple[str, ...] = Field(default=(), description="Idea tags, most relevant first")
    language: Language = Field(default="en", description="Output language for every generation call")


# Evidence collection calls it a research query.
ResearchQuery = IdeaContext


class EvidenceChunk(BaseModel):
    """One normalized, provenance-tagged unit of external research text."""

    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    cleaned_text: str
    source_provider: str = Field(..., description="Provider name, e.g. 'reddit'")
    evidence_type: EvidenceType
    source_type: str = Field(..., description="web | trend | forum | social | profile | video")


class TrendPoint(BaseModel):
    """A single search-interest timeseries point (0-100 relative scale).

    ``None`` means the source gave no usable number for that date.
    """

    query: str
    date: str
    value: Optional[int] = None
    extracted_value: Optional[float] = None

    @property
    def display_value(self) -> str:
        return str(self.value) if self.value is not None else "n/a"


class ProviderStatus(BaseModel):
    """Provenance for one provider in one run."""

    provider: str
    status: Literal["ok", "empty", "absent", "failed"]
    record_count: int = Field(default=0, ge=0)
    queries: list[str] = Field(default_factory=list)


class EvidenceBundle(BaseModel):
    """Everything evidence collection hands to the generation steps."""

    chunks: list[EvidenceChunk] = Field(default_factory=list)
    trends: list[TrendPoint] = Field(default_factory=list)
    provenance: list[ProviderStatus] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.chunks and not self.trends
