"""
Hypothesis Batch Generator Node

Scores all five behavioural hypothesis layers in ONE generation call.
Never split this into per-layer calls: one request per run.

Failure policy:
- Generation rate limit → RateLimitExceededError propagates
- Empty / unparsable response → five layers with empty paragraphs
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from ....constants import (
    COMMUNITY_SOURCE_TYPES,
    HYPOTHESIS_COMMUNITY_CHUNKS,
    HYPOTHESIS_LAYER_TITLES,
    HYPOTHESIS_MAX_TOKENS,
    HYPOTHESIS_PROFILE_CHUNKS,
    HYPOTHESIS_SEARCH_CHUNKS,
)
from ....schemas.hypothesis_schema import HypothesisEvidence
from ....schemas.research_schema import EvidenceChunk, IdeaContext
from ....schemas.validation_schema import HypothesisLayer
from ....services.normalizer import format_chunks_for_prompt
from ....services.openai_client import call_openai_chat_async, language_instruction
from ..state import MarketValidationState
from ..timing import StepTimer

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are a market validation researcher.

You receive an idea and a numbered list of evidence items. For EACH of the
five behavioural hypothesis layers below, write:
- "quantitative": one paragraph (2-4 sentences) citing numbers, statistics,
  follower/view counts or trends from the evidence
- "qualitative": one paragraph (2-4 sentences) describing behaviour and
  sentiment seen in community posts and videos
- "source_indices": the [N] numbers of the evidence items you relied on

Layers:
- existence: does the problem exist for real people?
- awareness: do they know they have it?
- consideration: are they looking at solutions?
- intent: do they show intent to adopt one?
- pay_intention: is there evidence they would pay?

RULES:
- Use ONLY the supplied evidence. Never invent numbers, quotes or sources.
- If the evidence says nothing about a layer, say so plainly in one sentence.
- No scores, no verdicts, no recommendations.
- Output MUST be valid JSON ONLY, with exactly this shape:
{"hypotheses": [{"layer": "existence", "quantitative": "", "qualitative": "", "source_indices": [1, 2]}]}
"""


def select_hypothesis_chunks(chunks: List[EvidenceChunk]) -> List[EvidenceChunk]:
    """Search, community and profile evidence, each capped, in that order."""
    search = [c for c in chunks if c.source_type == "web"][:HYPOTHESIS_SEARCH_CHUNKS]
    community = [c for c in chunks if c.source_type in COMMUNITY_SOURCE_TYPES][:HYPOTHESIS_COMMUNITY_CHUNKS]
    profiles = [c for c in chunks if c.source_type == "profile"][:HYPOTHESIS_PROFILE_CHUNKS]
    return search + community + profiles


def empty_hypotheses() -> List[HypothesisEvidence]:
    return [
        HypothesisEvidence(layer=layer, title=HYPOTHESIS_LAYER_TITLES[layer])
        for layer in HypothesisLayer
    ]


def _build_user_prompt(idea: IdeaContext, selected: List[EvidenceChunk]) -> str:
    return (
        f"IDEA:\nTITLE: {idea.title}\n"
        f"DESCRIPTION: {idea.description or '(none)'}\n"
        f"TAGS: {', '.join(idea.tags) or '(none)'}\n\n"
        f"EVIDENCE:\n{format_chunks_for_prompt(selected) or '(no evidence found)'}\n\n"
        f"{language_instruction(idea.language)}"
    )


def _source_urls(indices: Any, selected: List[EvidenceChunk]) -> List[str]:
    if not isinstance(indices, list):
        return []
    urls: List[str] = []
    for idx in indices:
        try:
            i = int(idx)
        except (TypeError, ValueError):
            continue
        if 1 <= i <= len(selected) and selected[i - 1].url not in urls:
            urls.append(selected[i - 1].url)
    return urls


def parse_hypotheses(parsed: Any, selected: List[EvidenceChunk]) -> List[HypothesisEvidence]:
    """Map generator output onto exactly one record per layer."""
    entries = parsed.get("hypotheses") if isinstance(parsed, dict) else None
    if not isinstance(entries, list):
        return empty_hypotheses()

    by_layer: Dict[HypothesisLayer, HypothesisEvidence] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        try:
            layer = HypothesisLayer(str(entry.get("layer", "")).strip().lower())
        except ValueError:
            continue
        if layer in by_layer:
            continue

        quantitative = entry.get("quantitative") or entry.get("quantitative_segment") or entry.get("quantitativeSegment")
        qualitative = entry.get("qualitative") or entry.get("qualitative_segment") or entry.get("qualitativeSegment")
        indices = entry.get("source_indices", entry.get("sourceIndices"))

        by_layer[layer] = HypothesisEvidence(
            layer=layer,
            title=HYPOTHESIS_LAYER_TITLES[layer],
            quantitative_segment=quantitative.strip() if isinstance(quantitative, str) else "",
            qualitative_segment=qualitative.strip() if isinstance(qualitative, str) else "",
            sources=_source_urls(indices, selected),
        )

    return [
        by_layer.get(layer) or HypothesisEvidence(layer=layer, title=HYPOTHESIS_LAYER_TITLES[layer])
        for layer in HypothesisLayer
    ]


async def generate_hypothesis_evidence(
    idea: IdeaContext,
    chunks: List[EvidenceChunk],
) -> List[HypothesisEvidence]:
    """One batched generation call → five ``HypothesisEvidence`` records."""
    timer = StepTimer("hypotheses")
    selected = select_hypothesis_chunks(chunks)

    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": _build_user_prompt(idea, selected)},
    ]

    async with timer.async_step("openai_batch"):
        parsed = await call_openai_chat_async(
            messages=messages,
            max_completion_tokens=HYPOTHESIS_MAX_TOKENS,
        )
    timer.summary()

    if parsed is None:
        logger.warning("[Hypotheses] No usable response — returning empty layers")
        return empty_hypotheses()

    hypotheses = parse_hypotheses(parsed, selected)
    logger.info(
        "[Hypotheses] %d/%d layers cite evidence",
        sum(1 for h in hypotheses if h.sources), len(hypotheses),
    )
    return hypotheses


async def generate_hypotheses(state: MarketValidationState) -> Dict[str, Any]:
    """Graph node: populate ``hypotheses``."""
    bundle = state.get("evidence")
    if bundle is None or bundle.is_empty:
        return {
            "hypotheses": empty_hypotheses(),
            "processing_errors": ["Hypotheses: no evidence, generation skipped"],
        }

    hypotheses = await generate_hypothesis_evidence(state["idea"], bundle.chunks)
    return {"hypotheses": hypotheses}
