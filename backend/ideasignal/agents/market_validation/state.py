import operator
from typing import Annotated, Optional, TypedDict

from ...schemas.hypothesis_schema import HypothesisEvidence
from ...schemas.research_schema import EvidenceBundle, IdeaContext
from ...schemas.validation_schema import MarketValidationResult


class MarketValidationState(TypedDict, total=False):
    # Input
    idea: IdeaContext
    version: int
    include_hypotheses: bool

    # Populated by collect_evidence
    evidence: Optional[EvidenceBundle]

    # Populated by the parallel generation nodes
    hypotheses: list[HypothesisEvidence]
    result: Optional[MarketValidationResult]

    # Metadata; parallel nodes append, never overwrite
    processing_errors: Annotated[list[str], operator.add]
