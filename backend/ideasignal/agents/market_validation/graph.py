from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from langgraph.graph import END, START, StateGraph

from ...schemas.hypothesis_schema import HypothesisEvidence
from ...schemas.research_schema import EvidenceBundle, IdeaContext, ProviderStatus
from ...schemas.validation_schema import MarketValidationResult
from ...services.schema_completer import complete_validation_result
from .http_client import Timeouts
from .nodes import (
    EvidenceCollector,
    collect_evidence,
    generate_hypotheses,
    synthesize_report,
)
from .state import MarketValidationState
from .timing import log_timing


def _route_generation(state: MarketValidationState) -> List[str]:
    """Both generation nodes share one superstep; hypotheses are optional."""
    targets = ["synthesize_report"]
    if state.get("include_hypotheses", True):
        targets.append("generate_hypotheses")
    return targets


def create_validation_graph(collector: Optional[EvidenceCollector] = None) -> StateGraph:
    """
    Create the market validation pipeline graph.

    Structure:
    START -> collect_evidence
          -> [synthesize_report, generate_hypotheses] (parallel)
          -> END

    Generation rate limits raised inside a node abort the run.
    """
    log_timing("graph", "Creating market validation graph")

    async def collect_evidence_node(state: MarketValidationState) -> Dict[str, Any]:
        return await collect_evidence(state, collector=collector)

    graph = StateGraph(MarketValidationState)

    graph.add_node("collect_evidence", collect_evidence_node)
    graph.add_node("generate_hypotheses", generate_hypotheses)
    graph.add_node("synthesize_report", synthesize_report)

    graph.add_edge(START, "collect_evidence")
    graph.add_conditional_edges(
        "collect_evidence",
        _route_generation,
        ["synthesize_report", "generate_hypotheses"],
    )
    graph.add_edge("generate_hypotheses", END)
    graph.add_edge("synthesize_report", END)

    return graph


@dataclass
class MarketValidationRun:
    """Everything one pipeline run produced."""

    result: MarketValidationResult
    hypotheses: List[HypothesisEvidence] = field(default_factory=list)
    provenance: List[ProviderStatus] = field(default_factory=list)
    processing_errors: List[str] = field(default_factory=list)


async def run_market_validation(
    idea: IdeaContext,
    collector: Optional[EvidenceCollector] = None,
    version: int = 1,
    include_hypotheses: bool = True,
    timeout: Optional[float] = Timeouts.PIPELINE_MAX,
) -> MarketValidationRun:
    """Run the full pipeline for one idea.

    Raises
    ------
    RateLimitExceededError
        The generation backend rate-limited a call.
    GenerationConfigError
        OPENAI_API_KEY is missing and generation was needed.
    asyncio.TimeoutError
        The run exceeded *timeout* seconds.
    """
    app = create_validation_graph(collector).compile()
    initial: MarketValidationState = {
        "idea": idea,
        "version": version,
        "include_hypotheses": include_hypotheses,
        "processing_errors": [],
    }

    log_timing("graph", f"Running market validation for {idea.title!r}")
    final = await asyncio.wait_for(app.ainvoke(initial), timeout=timeout)

    bundle: EvidenceBundle = final.get("evidence") or EvidenceBundle()
    result = final.get("result") or complete_validation_result({}, bundle.chunks, bundle.trends, version)

    return MarketValidationRun(
        result=result,
        hypotheses=list(final.get("hypotheses") or []),
        provenance=list(bundle.provenance),
        processing_errors=list(final.get("processing_errors") or []),
    )
