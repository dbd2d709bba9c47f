from pydantic import BaseModel, Field

from .validation_schema import HypothesisLayer


class HypothesisEvidence(BaseModel):
    """Batch-generated evidence paragraphs for one hypothesis layer.

    Produced by the Hypothesis Batch Generator.  Every run yields exactly one
    per ``HypothesisLayer``; on generator failure both segments are empty.
    """

    layer: HypothesisLayer
    title: str = Field(..., description="Static layer title, e.g. 'Willingness to Pay'")
    quantitative_segment: str = Field(
        default="",
        description="2-4 sentence paragraph citing numbers from search/profile evidence",
    )
    qualitative_segment: str = Field(
        default="",
        description="2-4 sentence paragraph on behaviour seen in community evidence",
    )
    sources: list[str] = Field(
        default_factory=list,
        description="URLs of the evidence chunks cited by the generator",
    )
