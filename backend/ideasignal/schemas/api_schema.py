from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .hypothesis_schema import HypothesisEvidence
from .research_schema import Language, ProviderStatus
from .synthesis_schema import DecisionEvidence, DecisionIdea, DecisionSynthesisResult
from .validation_schema import MarketValidationResult


class MarketValidationRequest(BaseModel):
    """Request body for POST /market-validation."""

    idea_id: str = Field(..., min_length=1, max_length=64, description="Idea identifier from the CRUD layer")
    idea_version_number: int = Field(..., ge=1, description="Version of the idea content being validated")
    title: str = Field(..., min_length=1, max_length=300, description="Idea title")
    description: str = Field(default="", max_length=5000, description="Idea description")
    tags: List[str] = Field(default_factory=list, max_length=20, description="Idea tags, most relevant first")
    language: Language = Field(default="en", description="Report language")
    include_hypotheses: bool = Field(default=True, description="Also run the hypothesis batch generator")

    model_config = {
        "json_schema_extra": {
            "example": {
                "idea_id": "idea-42",
                "idea_version_number": 1,
                "title": "AI Meal Planner",
                "description": "Weekly meal plans generated from what is already in your fridge.",
                "tags": ["food", "ai"],
                "language": "en",
            }
        }
    }


class MarketValidationResponse(BaseModel):
    idea_id: str
    idea_version_number: int
    version: int
    result: MarketValidationResult
    hypotheses: List[HypothesisEvidence] = Field(default_factory=list)
    provenance: List[ProviderStatus] = Field(default_factory=list)
    processing_errors: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class MarketValidationVersionsResponse(BaseModel):
    idea_id: str
    idea_version_number: int
    versions: List[MarketValidationResponse]


class DecisionSynthesisRequest(BaseModel):
    """Request body for POST /idea-signals-synthesis.

    Omitted evidence means "none".  When ``market_validation`` is omitted and
    ``use_stored_market_validation`` is set, the latest stored report is used.
    """

    idea_id: str = Field(..., min_length=1, max_length=64)
    idea_version_number: int = Field(..., ge=1)
    idea: DecisionIdea
    decision_evidence: Optional[DecisionEvidence] = None
    market_validation: Optional[MarketValidationResult] = None
    use_stored_market_validation: bool = True
    language: Language = "en"


class DecisionSynthesisResponse(BaseModel):
    idea_id: str
    idea_version_number: int
    version: int
    synthesis: DecisionSynthesisResult
    market_validation_version: Optional[int] = None
    created_at: Optional[datetime] = None
