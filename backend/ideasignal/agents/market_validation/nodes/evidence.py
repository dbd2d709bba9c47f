"""
Evidence Collection Node

Fans every planned provider query out concurrently, waits for all of them
to settle, then normalizes, merges and caps the evidence.

- One task per (provider, query); all run under one asyncio.gather
- Unconfigured providers are never called and reported as "absent"
- Backoff sleeps inside one provider call never delay the others
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ....constants import MAX_EVIDENCE_CHUNKS
from ....schemas.research_schema import (
    EvidenceBundle,
    EvidenceChunk,
    IdeaContext,
    ProviderStatus,
    TrendPoint,
)
from ....services.normalizer import merge_evidence, normalize, to_trend_points
from ....services.providers import EvidenceProvider, RedditProvider, build_default_providers, resolve_subreddits
from ....services.query_builder import build_query_plan
from ..state import MarketValidationState
from ..timing import StepTimer

logger = logging.getLogger(__name__)


class EvidenceCollector:
    """Stateless apart from its providers; build once, share by reference."""

    def __init__(
        self,
        providers: Optional[Mapping[str, EvidenceProvider]] = None,
        cap: int = MAX_EVIDENCE_CHUNKS,
    ):
        self.providers: Dict[str, EvidenceProvider] = dict(
            providers if providers is not None else build_default_providers()
        )
        self.cap = cap

    def _provider_for(self, name: str, idea: IdeaContext) -> Optional[EvidenceProvider]:
        provider = self.providers.get(name)
        if isinstance(provider, RedditProvider) and idea.tags:
            return provider.with_subreddits(resolve_subreddits(idea.tags))
        return provider

    async def collect(self, idea: IdeaContext) -> EvidenceBundle:
        timer = StepTimer("evidence")
        plan = build_query_plan(idea)

        provenance: Dict[str, ProviderStatus] = {}
        calls: List[Tuple[str, str]] = []
        coros = []

        for name, queries in plan.items():
            provider = self._provider_for(name, idea)
            query_strings = [q for q, _ in queries]
            if provider is None or not provider.is_configured():
                logger.warning("[Evidence] %s not configured — skipped", name)
                provenance[name] = ProviderStatus(provider=name, status="absent", queries=query_strings)
                continue
            for query, limit in queries:
                calls.append((name, query))
                coros.append(provider.search(query, limit))

        async with timer.async_step("provider_fanout"):
            results = await asyncio.gather(*coros, return_exceptions=True)

        raw_by_provider: Dict[str, List[Dict[str, Any]]] = {}
        failures: Dict[str, int] = {}
        for (name, query), outcome in zip(calls, results):
            raw_by_provider.setdefault(name, [])
            if isinstance(outcome, BaseException):
                logger.error("[Evidence] %s failed for %r: %s", name, query, outcome)
                failures[name] = failures.get(name, 0) + 1
                continue
            raw_by_provider[name].extend(outcome)

        groups: List[List[EvidenceChunk]] = []
        trends: List[TrendPoint] = []
        for name, queries in plan.items():
            if name in provenance:
                continue
            provider = self.providers[name]
            records = raw_by_provider.get(name, [])
            if provider.source_type == "trend":
                trends.extend(to_trend_points(records))
            groups.append(normalize(records, provider))

            if records:
                status = "ok"
            elif failures.get(name) == len(queries):
                status = "failed"
            else:
                status = "empty"
            provenance[name] = ProviderStatus(
                provider=name,
                status=status,
                record_count=len(records),
                queries=[q for q, _ in queries],
            )

        chunks = merge_evidence(groups, cap=self.cap)
        timer.summary()
        logger.info("[Evidence] %d chunks, %d trend points for %r", len(chunks), len(trends), idea.title)

        return EvidenceBundle(
            chunks=chunks,
            trends=trends,
            provenance=[provenance[name] for name in plan if name in provenance],
        )


_default_collector: Optional[EvidenceCollector] = None


def get_default_collector() -> EvidenceCollector:
    """Process-wide collector built from environment configuration."""
    global _default_collector
    if _default_collector is None:
        _default_collector = EvidenceCollector()
    return _default_collector


async def collect_evidence(
    state: MarketValidationState,
    collector: Optional[EvidenceCollector] = None,
) -> Dict[str, Any]:
    """Graph node: populate ``evidence`` for the idea in state."""
    collector = collector or get_default_collector()
    bundle = await collector.collect(state["idea"])

    errors = [
        f"Evidence: {p.provider} {p.status}"
        for p in bundle.provenance
        if p.status in ("absent", "failed")
    ]
    return {"evidence": bundle, "processing_errors": errors}
