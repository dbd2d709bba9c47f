"""Schema Validator/Completer.

Turns whatever the synthesis step returned into a complete
``MarketValidationResult``.

Rules
-----
- NO LLM calls
- NO randomness (apart from the timestamp)
- Never raises: worst case is an all-default result
- Each generator entry is decoded strictly; entries that fail are dropped
  and replaced by defaults, never coerced
- Exactly one hypothesis per layer and one signal per type, in enum order
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..constants import HYPOTHESIS_LAYER_TITLES, MARKET_SIGNAL_TITLES
from ..schemas.research_schema import EvidenceChunk, TrendPoint
from ..schemas.validation_schema import (
    BehavioralHypothesis,
    ConfidenceLevel,
    ConflictItem,
    ConflictsAndGaps,
    CustomerSegment,
    HypothesisLayer,
    MarketContext,
    MarketSignal,
    MarketSignalType,
    MarketSnapshot,
    MarketValidationResult,
    SearchData,
    SearchResultItem,
    SynthesisAndNextSteps,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

NOT_DETERMINED = "Not determined"
LIMITED_EVIDENCE = "Limited research evidence available"
HYPOTHESIS_PLACEHOLDER = "Insufficient data to validate this hypothesis"
SIGNAL_PLACEHOLDER = "Insufficient data to analyze this signal"


# ===================================================================== #
#  Strict decoding                                                        #
# ===================================================================== #

def _pick(parsed: Dict[str, Any], snake: str, camel: str) -> Any:
    value = parsed.get(snake)
    return value if value is not None else parsed.get(camel)


def _decode(model: Type[M], value: Any, context: str) -> Optional[M]:
    if not isinstance(value, dict):
        if value is not None:
            logger.warning("[Completer] %s: expected object, got %s", context, type(value).__name__)
        return None
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        logger.warning("[Completer] %s: dropped invalid entry (%d errors)", context, exc.error_count())
        return None


def _decode_list(model: Type[M], value: Any, context: str) -> List[M]:
    if not isinstance(value, list):
        return []
    decoded = (_decode(model, item, f"{context}[{i}]") for i, item in enumerate(value))
    return [d for d in decoded if d is not None]


# ===================================================================== #
#  Defaults                                                               #
# ===================================================================== #

def default_hypothesis(layer: HypothesisLayer) -> BehavioralHypothesis:
    return BehavioralHypothesis(
        layer=layer,
        title=HYPOTHESIS_LAYER_TITLES[layer],
        description=HYPOTHESIS_PLACEHOLDER,
        evidence_summary="",
        confidence=ConfidenceLevel.LOW,
    )


def default_signal(signal_type: MarketSignalType) -> MarketSignal:
    return MarketSignal(
        type=signal_type,
        title=MARKET_SIGNAL_TITLES[signal_type],
        summary=SIGNAL_PLACEHOLDER,
        strength=ConfidenceLevel.LOW,
    )


def default_snapshot() -> MarketSnapshot:
    return MarketSnapshot(
        customer_segment=CustomerSegment(
            primary_user=NOT_DETERMINED,
            buyer=None,
            context_of_use=NOT_DETERMINED,
            environment=NOT_DETERMINED,
        ),
        market_context=MarketContext(),
        geography=NOT_DETERMINED,
        timing_context=NOT_DETERMINED,
    )


def limited_evidence_item() -> ConflictItem:
    return ConflictItem(type="missing_signal", description=LIMITED_EVIDENCE)


def default_synthesis() -> SynthesisAndNextSteps:
    return SynthesisAndNextSteps(
        strong_points=[],
        weak_points=["Insufficient data for comprehensive validation"],
        key_unknowns=["Requires direct customer research"],
        suggested_next_steps=["Conduct customer interviews", "Perform deeper market research"],
        pivot_guidance=[],
    )


# ===================================================================== #
#  Section completion                                                     #
# ===================================================================== #

def _complete_hypotheses(raw: Any) -> List[BehavioralHypothesis]:
    by_layer: Dict[HypothesisLayer, BehavioralHypothesis] = {}
    for h in _decode_list(BehavioralHypothesis, raw, "behavioral_hypotheses"):
        by_layer.setdefault(h.layer, h)

    missing = [layer.value for layer in HypothesisLayer if layer not in by_layer]
    if missing:
        logger.info("[Completer] Defaulting hypothesis layers: %s", missing)
    return [by_layer.get(layer) or default_hypothesis(layer) for layer in HypothesisLayer]


def _complete_signals(raw: Any) -> List[MarketSignal]:
    by_type: Dict[MarketSignalType, MarketSignal] = {}
    for s in _decode_list(MarketSignal, raw, "market_signals"):
        by_type.setdefault(s.type, s)

    missing = [t.value for t in MarketSignalType if t not in by_type]
    if missing:
        logger.info("[Completer] Defaulting market signals: %s", missing)
    return [by_type.get(t) or default_signal(t) for t in MarketSignalType]


def _complete_conflicts(raw: Any, has_evidence: bool) -> ConflictsAndGaps:
    conflicts = _decode(ConflictsAndGaps, raw, "conflicts_and_gaps")
    if conflicts is None or conflicts.is_empty:
        conflicts = ConflictsAndGaps(missing_signals=[limited_evidence_item()])
    elif not has_evidence and not any(
        m.description == LIMITED_EVIDENCE for m in conflicts.missing_signals
    ):
        conflicts.missing_signals.append(limited_evidence_item())
    return conflicts


def build_search_data(chunks: Iterable[EvidenceChunk], trends: Iterable[TrendPoint]) -> SearchData:
    """Raw google/bing results and trend points, kept for transparency."""
    google: List[SearchResultItem] = []
    bing: List[SearchResultItem] = []
    for chunk in chunks:
        bucket = google if chunk.source_provider == "google" else bing if chunk.source_provider == "bing" else None
        if bucket is None:
            continue
        bucket.append(
            SearchResultItem(
                position=len(bucket) + 1,
                title=chunk.title,
                link=chunk.url,
                snippet=chunk.cleaned_text,
            )
        )
    return SearchData(google_results=google, bing_results=bing, google_trends=list(trends))


# ===================================================================== #
#  Public API                                                             #
# ===================================================================== #

def complete_validation_result(
    parsed: Any,
    chunks: List[EvidenceChunk],
    trends: List[TrendPoint],
    version: int = 1,
) -> MarketValidationResult:
    """Decode *parsed* section by section and back-fill every gap."""
    if not isinstance(parsed, dict):
        logger.warning("[Completer] Generator output is not an object — using all defaults")
        parsed = {}

    snapshot = _decode(
        MarketSnapshot, _pick(parsed, "market_snapshot", "marketSnapshot"), "market_snapshot"
    ) or default_snapshot()

    hypotheses = _complete_hypotheses(_pick(parsed, "behavioral_hypotheses", "behavioralHypotheses"))
    signals = _complete_signals(_pick(parsed, "market_signals", "marketSignals"))

    conflicts = _complete_conflicts(
        _pick(parsed, "conflicts_and_gaps", "conflictsAndGaps"),
        has_evidence=bool(chunks),
    )

    synthesis = _decode(
        SynthesisAndNextSteps,
        _pick(parsed, "synthesis_and_next_steps", "synthesisAndNextSteps"),
        "synthesis_and_next_steps",
    ) or default_synthesis()

    return MarketValidationResult(
        market_snapshot=snapshot,
        behavioral_hypotheses=hypotheses,
        market_signals=signals,
        conflicts_and_gaps=conflicts,
        synthesis_and_next_steps=synthesis,
        search_data=build_search_data(chunks, trends),
        timestamp=datetime.now(timezone.utc),
        version=max(1, int(version)),
    )
