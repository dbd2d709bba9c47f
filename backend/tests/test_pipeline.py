"""End-to-end pipeline tests: evidence fan-out → parallel generation → report.

Providers are stubs or unconfigured; the generation backend is mocked.
"""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
from unittest.mock import patch

import pytest

from ideasignal.agents.market_validation.graph import run_market_validation
from ideasignal.agents.market_validation.nodes.evidence import EvidenceCollector, collect_evidence
from ideasignal.errors import RateLimitExceededError
from ideasignal.schemas.research_schema import EvidenceType, IdeaContext
from ideasignal.schemas.validation_schema import ConfidenceLevel, MarketSignalType
from ideasignal.services.providers import (
    BingSearchProvider,
    EvidenceProvider,
    FacebookProfileProvider,
    GoogleSearchProvider,
    GoogleTrendsProvider,
    RedditProvider,
    TwitterProvider,
    YouTubeSearchProvider,
)
from ideasignal.services.schema_completer import HYPOTHESIS_PLACEHOLDER, LIMITED_EVIDENCE

HYPOTHESES_LLM = "ideasignal.agents.market_validation.nodes.hypotheses.call_openai_chat_async"
SYNTHESIS_LLM = "ideasignal.agents.market_validation.nodes.synthesis.call_openai_chat_async"

IDEA = IdeaContext(title="AI Meal Planner", description="Plans from fridge leftovers", tags=("food", "ai"))


class StubWebProvider(EvidenceProvider):
    """Configured provider that returns canned organic results."""

    source_type = "web"
    default_evidence_type = EvidenceType.DIRECTIONAL

    def __init__(self, name="google", records_per_query=2):
        super().__init__(base_delay=0)
        self.name = name
        self.records_per_query = records_per_query
        self.queries = []

    def is_configured(self):
        return True

    async def _fetch(self, query, limit):
        self.queries.append(query)
        n = len(self.queries)
        return [
            {"title": f"{query} #{i}", "link": f"https://{self.name}.example.com/{n}/{i}", "snippet": f"About {query}"}
            for i in range(self.records_per_query)
        ]


class ExplodingProvider(StubWebProvider):
    """search() lets non-provider errors escape; the collector must isolate them."""

    async def _fetch(self, query, limit):
        raise RuntimeError("provider bug")


def _unconfigured_providers():
    providers = [
        GoogleSearchProvider(api_key=""),
        BingSearchProvider(api_key=""),
        GoogleTrendsProvider(api_key=""),
        RedditProvider(client_id="", client_secret=""),
        TwitterProvider(bearer_token=""),
        FacebookProfileProvider(api_key=""),
        YouTubeSearchProvider(api_key=""),
    ]
    return {p.name: p for p in providers}


# ---------------------------------------------------------------------------
# Evidence collection
# ---------------------------------------------------------------------------

class TestEvidenceCollector:

    def test_unconfigured_providers_are_absent(self):
        collector = EvidenceCollector(_unconfigured_providers())
        bundle = asyncio.run(collector.collect(IDEA))

        assert bundle.is_empty
        assert len(bundle.provenance) == 7
        assert {p.status for p in bundle.provenance} == {"absent"}

    def test_one_failing_provider_does_not_sink_the_others(self):
        good = StubWebProvider("google")
        collector = EvidenceCollector({"google": good, "bing": ExplodingProvider("bing")})
        bundle = asyncio.run(collector.collect(IDEA))

        status = {p.provider: p.status for p in bundle.provenance}
        assert status["google"] == "ok"
        assert status["bing"] == "failed"
        assert status["reddit"] == "absent"
        assert bundle.chunks
        assert all(c.source_provider == "google" for c in bundle.chunks)

    def test_every_planned_query_is_issued(self):
        good = StubWebProvider("google", records_per_query=1)
        collector = EvidenceCollector({"google": good})
        asyncio.run(collector.collect(IDEA))

        assert sorted(good.queries) == sorted(
            [
                "AI Meal Planner market size statistics",
                "AI Meal Planner food ai",
                "AI Meal Planner alternatives competitors pricing",
                "plans fridge problem",
            ]
        )

    def test_collector_caps_evidence(self):
        collector = EvidenceCollector({"google": StubWebProvider("google", records_per_query=10)}, cap=5)
        bundle = asyncio.run(collector.collect(IDEA))
        assert len(bundle.chunks) == 5
        assert bundle.provenance[0].record_count == 40

    def test_node_reports_absent_and_failed_providers(self):
        collector = EvidenceCollector({"google": StubWebProvider("google"), "bing": ExplodingProvider("bing")})
        update = asyncio.run(collect_evidence({"idea": IDEA}, collector=collector))

        assert "Evidence: bing failed" in update["processing_errors"]
        assert "Evidence: youtube absent" in update["processing_errors"]
        assert "Evidence: google_trends absent" in update["processing_errors"]
        assert not any(e.startswith("Evidence: google ") for e in update["processing_errors"])


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------

class TestRunMarketValidation:

    def test_no_configured_providers_gives_limited_evidence_report(self):
        collector = EvidenceCollector(_unconfigured_providers())

        with patch(SYNTHESIS_LLM) as synth_llm, patch(HYPOTHESES_LLM) as hyp_llm:
            run = asyncio.run(run_market_validation(IDEA, collector=collector))

        synth_llm.assert_not_awaited()
        hyp_llm.assert_not_awaited()

        result = run.result
        assert len(result.behavioral_hypotheses) == 5
        assert len(result.market_signals) == 9
        assert all(h.description == HYPOTHESIS_PLACEHOLDER for h in result.behavioral_hypotheses)
        assert all(h.confidence == ConfidenceLevel.LOW for h in result.behavioral_hypotheses)
        assert any(m.description == LIMITED_EVIDENCE for m in result.conflicts_and_gaps.missing_signals)

        assert len(run.hypotheses) == 5
        assert all(h.quantitative_segment == "" for h in run.hypotheses)
        assert {p.status for p in run.provenance} == {"absent"}
        assert "Synthesis: no evidence, generation skipped" in run.processing_errors
        assert "Hypotheses: no evidence, generation skipped" in run.processing_errors
        assert "Evidence: reddit absent" in run.processing_errors

    def test_generation_runs_on_collected_evidence(self):
        collector = EvidenceCollector({"google": StubWebProvider("google", records_per_query=1)})

        with patch(SYNTHESIS_LLM) as synth_llm, patch(HYPOTHESES_LLM) as hyp_llm:
            synth_llm.return_value = {
                "market_signals": [
                    {"type": "demand_intensity", "title": "Demand", "summary": "Searches are steady [1]", "strength": "medium"}
                ]
            }
            hyp_llm.return_value = {
                "hypotheses": [{"layer": "existence", "quantitative": "Q [1]", "qualitative": "L", "source_indices": [1]}]
            }
            run = asyncio.run(run_market_validation(IDEA, collector=collector, version=3))

        assert synth_llm.await_count == 1
        assert hyp_llm.await_count == 1

        demand = next(s for s in run.result.market_signals if s.type == MarketSignalType.DEMAND_INTENSITY)
        assert demand.summary == "Searches are steady [1]"
        assert run.result.version == 3
        assert len(run.result.search_data.google_results) == 4
        assert run.hypotheses[0].sources and run.hypotheses[0].sources[0].startswith("https://google.example.com/")
        assert {p.provider: p.status for p in run.provenance}["google"] == "ok"
        assert not any(e.startswith("Synthesis") for e in run.processing_errors)

    def test_hypotheses_can_be_skipped(self):
        collector = EvidenceCollector({"google": StubWebProvider("google")})

        with patch(SYNTHESIS_LLM) as synth_llm, patch(HYPOTHESES_LLM) as hyp_llm:
            synth_llm.return_value = {}
            run = asyncio.run(run_market_validation(IDEA, collector=collector, include_hypotheses=False))

        hyp_llm.assert_not_awaited()
        assert run.hypotheses == []
        assert len(run.result.market_signals) == 9

    def test_generation_rate_limit_aborts_the_run(self):
        collector = EvidenceCollector({"google": StubWebProvider("google")})

        with patch(SYNTHESIS_LLM) as synth_llm, patch(HYPOTHESES_LLM) as hyp_llm:
            synth_llm.side_effect = RateLimitExceededError(retry_after_seconds=7)
            hyp_llm.return_value = None
            with pytest.raises(RateLimitExceededError) as exc_info:
                asyncio.run(run_market_validation(IDEA, collector=collector))

        assert exc_info.value.retry_after_seconds == 7

    def test_run_is_bounded_by_timeout(self):
        class SlowProvider(StubWebProvider):
            async def _fetch(self, query, limit):
                await asyncio.sleep(5)
                return []

        collector = EvidenceCollector({"google": SlowProvider("google")})
        with pytest.raises(asyncio.TimeoutError):
            asyncio.run(run_market_validation(IDEA, collector=collector, timeout=0.05))
