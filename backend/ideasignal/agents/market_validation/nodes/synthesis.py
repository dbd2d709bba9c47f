"""
Synthesis Engine Node

Turns the full evidence list (plus trend timeseries) into the structured
market validation report with ONE generation call, then hands the raw
output to the completer so the shape is always valid.

Citation accuracy belongs to the generation backend; shape belongs here.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from ....constants import HYPOTHESIS_LAYER_TITLES, MARKET_SIGNAL_TITLES, SYNTHESIS_MAX_TOKENS
from ....schemas.research_schema import EvidenceBundle, IdeaContext, TrendPoint
from ....schemas.validation_schema import MarketValidationResult
from ....services.normalizer import format_chunks_for_prompt
from ....services.openai_client import call_openai_chat_async, language_instruction
from ....services.schema_completer import complete_validation_result
from ..state import MarketValidationState
from ..timing import StepTimer

logger = logging.getLogger(__name__)


def _layer_lines() -> str:
    return "\n".join(f"  - {layer.value}: {title}" for layer, title in HYPOTHESIS_LAYER_TITLES.items())


def _signal_lines() -> str:
    return "\n".join(f"  - {kind.value}: {title}" for kind, title in MARKET_SIGNAL_TITLES.items())


SYSTEM_PROMPT = f"""You are a Market Validation Analyst. You synthesize the numbered
evidence you are given into a structured validation report.

EVIDENCE RELIABILITY (strongest first):
  behavioral > quantitative > stated > directional
Weight conclusions accordingly. A stated opinion never outweighs observed behaviour.

HARD RULES:
- Use ONLY the supplied evidence. No unsupported claims, no invented numbers or URLs.
- Cite evidence with its index, e.g. [3], in every summary and description that relies on it.
- Every hypothesis carries a confidence label and every signal a strength label: low | medium | high.
  Little or weak evidence means "low".
- No scores, no go/no-go verdicts.
- Output MUST be valid JSON ONLY. No markdown, no prose outside JSON.

behavioral_hypotheses MUST contain all 5 layers:
{_layer_lines()}

market_signals MUST contain all 9 types:
{_signal_lines()}

Return JSON with EXACTLY this structure:
{{
  "market_snapshot": {{
    "customer_segment": {{"primary_user": "", "buyer": "", "context_of_use": "", "environment": "consumer|SMB|enterprise|regulated"}},
    "market_context": {{"type": "B2C|B2B|B2B2C", "scope": "horizontal|vertical", "category_type": "new_category|existing_category"}},
    "geography": "",
    "timing_context": ""
  }},
  "behavioral_hypotheses": [
    {{"layer": "", "title": "", "description": "", "evidence_summary": "", "confidence": "low|medium|high",
      "supporting_sources": [{{"title": "", "url": "", "evidence_type": "behavioral|quantitative|stated|directional", "snippet": ""}}],
      "contradicting_signals": []}}
  ],
  "market_signals": [
    {{"type": "", "title": "", "summary": "", "classification": "", "evidence_snippets": [],
      "sources": [{{"title": "", "url": "", "evidence_type": "", "snippet": ""}}], "strength": "low|medium|high"}}
  ],
  "conflicts_and_gaps": {{
    "contradictions": [{{"type": "contradiction", "description": "", "related_signals": []}}],
    "missing_signals": [{{"type": "missing_signal", "description": "", "related_signals": []}}],
    "risk_flags": [{{"type": "risk_flag", "description": "", "related_signals": []}}]
  }},
  "synthesis_and_next_steps": {{
    "strong_points": [], "weak_points": [], "key_unknowns": [], "suggested_next_steps": [], "pivot_guidance": []
  }}
}}
"""


def format_trends(trends: List[TrendPoint]) -> str:
    if not trends:
        return ""
    by_query: Dict[str, List[str]] = {}
    for p in trends:
        by_query.setdefault(p.query, []).append(f"{p.date}: {p.display_value}")
    return "\n".join(f"- {q}: " + "; ".join(points) for q, points in by_query.items())


def build_synthesis_messages(idea: IdeaContext, bundle: EvidenceBundle) -> List[Dict[str, str]]:
    trends = format_trends(bundle.trends)
    user = (
        f"IDEA:\nTITLE: {idea.title}\n"
        f"DESCRIPTION: {idea.description or '(none)'}\n"
        f"TAGS: {', '.join(idea.tags) or '(none)'}\n\n"
        f"EVIDENCE ({len(bundle.chunks)} items):\n"
        f"{format_chunks_for_prompt(bundle.chunks) or '(no evidence found)'}\n"
    )
    if trends:
        user += f"\nSEARCH INTEREST (Google Trends, 0-100, last 12 months):\n{trends}\n"
    user += f"\n{language_instruction(idea.language)}"

    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]


async def synthesize_market_validation(
    idea: IdeaContext,
    bundle: EvidenceBundle,
    version: int = 1,
) -> MarketValidationResult:
    """One generation call, then strict completion.  Never returns a partial shape."""
    timer = StepTimer("synthesis")

    async with timer.async_step("openai_synthesis"):
        parsed = await call_openai_chat_async(
            messages=build_synthesis_messages(idea, bundle),
            max_completion_tokens=SYNTHESIS_MAX_TOKENS,
        )

    if parsed is None:
        logger.warning("[Synthesis] No usable response — completing from defaults")

    result = complete_validation_result(parsed or {}, bundle.chunks, bundle.trends, version=version)
    timer.summary()
    return result


async def synthesize_report(state: MarketValidationState) -> Dict[str, Any]:
    """Graph node: populate ``result``."""
    bundle = state.get("evidence") or EvidenceBundle()
    version = state.get("version", 1)

    if bundle.is_empty:
        return {
            "result": complete_validation_result({}, [], [], version=version),
            "processing_errors": ["Synthesis: no evidence, generation skipped"],
        }

    result = await synthesize_market_validation(state["idea"], bundle, version=version)
    return {"result": result}
