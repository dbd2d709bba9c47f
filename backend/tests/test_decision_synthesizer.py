"""Decision synthesizer tests — placeholders, flattening, section mapping."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import json
from unittest.mock import patch

import pytest

from ideasignal.constants import NO_EXTERNAL_EVIDENCE, NO_INTERNAL_EVIDENCE
from ideasignal.errors import RateLimitExceededError
from ideasignal.schemas.synthesis_schema import DecisionEvidence, DecisionIdea
from ideasignal.services.decision_synthesizer import (
    SECTIONS,
    build_input_bundle,
    flatten_to_text,
    insufficient_evidence_result,
    missing_labels,
    parse_decision_synthesis,
    placeholder,
    synthesize_decision,
)
from ideasignal.services.schema_completer import complete_validation_result

DECISION_LLM = "ideasignal.services.decision_synthesizer.call_openai_chat_async"

IDEA = DecisionIdea(title="AI Meal Planner", decision_making="Should we build an MVP?")


def _evidence():
    return DecisionEvidence(
        total_votes=14,
        vote_type_breakdown={"use": 9, "dislike": 3, "pay": 2},
        detail_views=80,
        avg_dwell_time_ms=41000,
    )


class TestPlaceholders:

    @pytest.mark.parametrize("language", ["en", "es"])
    def test_every_placeholder_follows_section_grammar(self, language):
        result = insufficient_evidence_result(language, "Should we build an MVP?")
        for section in SECTIONS:
            text = getattr(result, section)
            assert text.strip()
            assert missing_labels(section, text) == [], section

    def test_recommendation_placeholder_waits(self):
        assert placeholder("recommendation").startswith("**Path:** Wait and clarify")

    def test_decision_is_echoed_in_framing(self):
        text = placeholder("decision_framing", "en", "Should we build an MVP?")
        assert text.startswith("**Decision:** Should we build an MVP?")

    def test_spanish_placeholders_differ(self):
        assert placeholder("founder_safe_summary", "es") != placeholder("founder_safe_summary", "en")


class TestNoEvidence:

    def test_no_evidence_skips_generation(self):
        with patch(DECISION_LLM) as mock_llm:
            result = asyncio.run(synthesize_decision(IDEA))

        mock_llm.assert_not_awaited()
        assert result == insufficient_evidence_result("en", "Should we build an MVP?")

    def test_sentinels_count_as_no_evidence(self):
        with patch(DECISION_LLM) as mock_llm:
            result = asyncio.run(
                synthesize_decision(IDEA, NO_INTERNAL_EVIDENCE, NO_EXTERNAL_EVIDENCE, language="es")
            )

        mock_llm.assert_not_awaited()
        assert "Insuficiente" in result.signal_summary


class TestFlatten:

    def test_scalars(self):
        assert flatten_to_text(None) == ""
        assert flatten_to_text("text") == "text"
        assert flatten_to_text(3) == "3"
        assert flatten_to_text(True) == "true"

    def test_objects_prefer_text_like_keys(self):
        assert flatten_to_text({"label": "ignored", "text": "kept"}) == "kept"
        assert flatten_to_text({"content": {"summary": "nested"}}) == "nested"

    def test_arrays_and_plain_objects_join_with_blank_lines(self):
        value = ["first", {"content": "second"}, None, 3, {"a": "x", "b": "y"}]
        assert flatten_to_text(value) == "first\n\nsecond\n\n3\n\nx\n\ny"


class TestParseDecisionSynthesis:

    def test_camel_case_and_nested_values_become_strings(self):
        parsed = {
            "decisionFraming": "**Decision:** Build?\n**What makes this costly to reverse:**\n- Hiring\n**Current confidence:** Low",
            "signal_summary": ["Internal: Weak", "External: Mixed"],
            "recommendation": {"text": "**Path:** Narrow scope\n**Why:** x\n**Success in 7-14 days:** y\n**Failure / stop conditions:** z\n**If mixed:** w"},
        }
        result = parse_decision_synthesis(parsed, "en", "Build?")

        assert result.decision_framing.startswith("**Decision:** Build?")
        assert result.signal_summary == "Internal: Weak\n\nExternal: Mixed"
        assert result.recommendation.startswith("**Path:** Narrow scope")
        # Missing sections fall back to placeholders
        assert result.what_signals_say == placeholder("what_signals_say")
        assert result.key_risks_and_assumptions == placeholder("key_risks_and_assumptions")

    def test_none_gives_all_placeholders(self):
        assert parse_decision_synthesis(None, "en", "Build?") == insufficient_evidence_result("en", "Build?")

    def test_grammar_violations_are_kept_not_raised(self):
        result = parse_decision_synthesis({"what_signals_say": "- only one bullet"}, "en")
        assert result.what_signals_say == "- only one bullet"


class TestMissingLabels:

    def test_unknown_path_is_reported(self):
        text = "**Path:** Build everything\n**Why:** a\n**Success in 7-14 days:** b\n**Failure / stop conditions:** c\n**If mixed:** d"
        assert missing_labels("recommendation", text) == ["unknown recommendation path"]

    def test_bullet_count_bounds(self):
        four = "\n".join(f"- signal {i}" for i in range(4))
        six = "\n".join(f"- signal {i}" for i in range(6))
        assert missing_labels("what_signals_say", four) == ["expected 5-8 bullets, found 4"]
        assert missing_labels("what_signals_say", six) == []

    def test_missing_risk_label(self):
        text = "\n\n".join("**Risk:** r\n**Why it matters:** w\n**How to reduce:** h" for _ in range(3))
        assert missing_labels("key_risks_and_assumptions", text) == ["**Evidence for/against:**"]

    def test_trailing_path_label_is_a_grammar_problem(self):
        problems = missing_labels("recommendation", "**Why:** unclear\n**Path:**")
        assert "unknown recommendation path" in problems

    def test_trailing_path_label_does_not_abort_parsing(self):
        result = parse_decision_synthesis({"recommendation": "**Why:** unclear\n**Path:**"})
        assert result.recommendation == "**Why:** unclear\n**Path:**"


class TestWithEvidence:

    def test_single_call_with_bundle(self):
        with patch(DECISION_LLM) as mock_llm:
            mock_llm.return_value = {section: f"{section} text" for section in SECTIONS}
            result = asyncio.run(synthesize_decision(IDEA, _evidence(), None))

        assert mock_llm.await_count == 1
        assert mock_llm.call_args.kwargs["temperature"] == 0.4
        user = mock_llm.call_args.kwargs["messages"][1]["content"]
        assert '"total_votes": 14' in user
        assert f'"market_validation": "{NO_EXTERNAL_EVIDENCE}"' in user
        assert result.founder_safe_summary == "founder_safe_summary text"

    def test_external_only_evidence_triggers_call(self):
        report = complete_validation_result({}, [], [])
        with patch(DECISION_LLM) as mock_llm:
            mock_llm.return_value = None
            result = asyncio.run(synthesize_decision(IDEA, None, report))

        assert mock_llm.await_count == 1
        assert result == insufficient_evidence_result("en", "Should we build an MVP?")

    def test_rate_limit_propagates(self):
        with patch(DECISION_LLM) as mock_llm:
            mock_llm.side_effect = RateLimitExceededError(retry_after_seconds=20)
            with pytest.raises(RateLimitExceededError):
                asyncio.run(synthesize_decision(IDEA, _evidence(), None))


def test_input_bundle_uses_sentinels_and_report_sections():
    report = complete_validation_result({}, [], [])
    bundle = json.loads(build_input_bundle(IDEA, None, report))

    assert bundle["decision_evidence"] == NO_INTERNAL_EVIDENCE
    assert set(bundle["market_validation"]) == {
        "market_snapshot",
        "behavioral_hypotheses",
        "market_signals",
        "conflicts_and_gaps",
        "synthesis_and_next_steps",
    }
    assert bundle["idea"]["decision_making"] == "Should we build an MVP?"
