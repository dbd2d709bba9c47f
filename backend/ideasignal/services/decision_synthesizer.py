"""Decision Synthesizer.

Combines internal engagement evidence with the market validation report
into the six-section decision document.

Rules
-----
- ONE LLM call per invocation, skipped when there is no evidence at all
- Every section is a plain markdown string; nested or array values from
  the backend are flattened depth-first, never returned as structures
- Missing or empty sections get language-specific "insufficient evidence"
  placeholders that follow the same micro-grammar
- Grammar violations are logged, never raised
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Union

from ..constants import NO_EXTERNAL_EVIDENCE, NO_INTERNAL_EVIDENCE
from ..schemas.research_schema import Language
from ..schemas.synthesis_schema import DecisionEvidence, DecisionIdea, DecisionSynthesisResult
from ..schemas.validation_schema import MarketValidationResult
from .openai_client import call_openai_chat_async, language_instruction

logger = logging.getLogger(__name__)

InternalEvidence = Union[DecisionEvidence, str, None]
ExternalEvidence = Union[MarketValidationResult, str, None]

SECTIONS: tuple[str, ...] = (
    "decision_framing",
    "signal_summary",
    "what_signals_say",
    "key_risks_and_assumptions",
    "recommendation",
    "founder_safe_summary",
)

RECOMMENDATION_PATHS: tuple[str, ...] = (
    "Wait and clarify",
    "Run targeted validation test",
    "Narrow scope",
    "Pivot",
    "Commit to MVP",
)

RISK_LABELS: tuple[str, ...] = (
    "**Risk:**",
    "**Why it matters:**",
    "**Evidence for/against:**",
    "**How to reduce:**",
)

_REQUIRED_LABELS: Dict[str, tuple[str, ...]] = {
    "decision_framing": (
        "**Decision:**",
        "**What makes this costly to reverse:**",
        "**Current confidence:**",
    ),
    "key_risks_and_assumptions": RISK_LABELS,
    "recommendation": (
        "**Path:**",
        "**Why:**",
        "**Success in 7-14 days:**",
        "**Failure / stop conditions:**",
        "**If mixed:**",
    ),
}

_PREFERRED_TEXT_KEYS = ("text", "content", "summary", "message", "value")

_BULLET_RE = re.compile(r"^- \S", re.MULTILINE)


SYSTEM_PROMPT = f"""You are an evidence synthesizer for decision clarity. You do not validate ideas.
You help founders decide what to do next before irreversible work.

Context
The idea is for a product that does not exist yet. Do not expect external evidence
of the product itself. Reduce uncertainty and surface signals so the founder can
decide before committing to build.

Non-negotiables
- No hype. No emojis. No exclamation marks.
- Do not claim certainty. Do not invent facts.
- Treat internal community signals as noisy and biased. Treat external signals as incomplete.
- Do not recommend building. Recommend a decision path: wait, test, narrow, pivot, or commit.
- If evidence is weak or absent, say so explicitly.

Input
A JSON bundle with:
1. idea: {{title, decision_making, content}}
2. decision_evidence: internal signals (total_votes, vote_type_breakdown use/dislike/pay,
   detail_views, dwell and scroll statistics, time_to_first_signal_sec, vote latency,
   vote_change_over_time, segments) or the string "{NO_INTERNAL_EVIDENCE}"
3. market_validation: external report (market_snapshot, behavioral_hypotheses,
   market_signals, conflicts_and_gaps, synthesis_and_next_steps) or the string
   "{NO_EXTERNAL_EVIDENCE}"

Output schema (strict)
- A single JSON object. Every key has a STRING value. No arrays or nested objects.
- Markdown inside strings: **bold** labels, "- " list items, one item per line.

1) decision_framing: "**Decision:** " plus the decision. Then "**What makes this costly to reverse:**"
   followed by 1-3 "- " bullets. Then "**Current confidence:**" Low/Medium/High with a brief reason.
2) signal_summary: internal signal strength (Weak/Mixed/Strong/Insufficient and why), external
   signal strength and why, signal alignment (Aligned/Conflicted/Insufficient). Newlines between parts.
3) what_signals_say: exactly 5-8 "- " bullets, each naming the signal type it comes from.
4) key_risks_and_assumptions: 3-5 risks separated by a blank line, each exactly:
{chr(10).join(RISK_LABELS)}
   At least 2 risks must concern demand, willingness to pay, distribution, or target clarity.
5) recommendation: "**Path:**" exactly one of: {" | ".join(RECOMMENDATION_PATHS)}.
   Then "**Why:**", "**Success in 7-14 days:**", "**Failure / stop conditions:**", "**If mixed:**",
   one sentence each, each label on its own line.
6) founder_safe_summary: 2-4 sentences. Normalize uncertainty, state the single most
   important next step, remind that no decision is locked.

Reasoning rules
- External tests with a clear audience outweigh internal votes.
- High dwell with deep scroll outweighs shallow views.
- "pay" votes need more scrutiny than "use" votes.
- Small samples and short windows lower confidence. If n is small, say "insufficient".
- Name what is missing: "We cannot conclude X because Y is missing."

Output only valid JSON with keys: {", ".join(SECTIONS)}.
"""


# ===================================================================== #
#  Placeholders                                                           #
# ===================================================================== #

_PLACEHOLDERS: Dict[str, Dict[str, str]] = {
    "en": {
        "decision_framing": (
            "**Decision:** {decision}\n"
            "**What makes this costly to reverse:**\n"
            "- Evidence is insufficient to identify what would be costly to reverse.\n"
            "**Current confidence:** Low. There is not enough evidence to assess this decision."
        ),
        "signal_summary": (
            "Internal signal strength: Insufficient. No usable internal engagement evidence is available.\n"
            "External signal strength: Insufficient. No usable external research evidence is available.\n"
            "Signal alignment: Insufficient."
        ),
        "what_signals_say": (
            "- Internal votes are insufficient to draw conclusions.\n"
            "- Comments are insufficient to identify recurring concerns.\n"
            "- Dwell and scroll data are insufficient to judge engagement depth.\n"
            "- External research is insufficient to confirm demand.\n"
            "- Evidence on willingness to pay is insufficient."
        ),
        "risk": (
            "**Risk:** {risk}\n"
            "**Why it matters:** Acting without evidence may commit effort to an unvalidated assumption.\n"
            "**Evidence for/against:** Evidence is insufficient either way.\n"
            "**How to reduce:** {reduce}"
        ),
        "risks": (
            ("Demand for the idea is unconfirmed.", "Run a small test with a clearly defined audience."),
            ("Willingness to pay is unknown.", "Ask target users to commit to a price or a pre-order."),
            ("The reachable target audience is unclear.", "Identify one channel where target users gather and test it."),
        ),
        "recommendation": (
            "**Path:** Wait and clarify\n"
            "**Why:** Evidence is insufficient to choose a more committed path.\n"
            "**Success in 7-14 days:** Enough internal and external signals exist to assess demand.\n"
            "**Failure / stop conditions:** No meaningful engagement appears after deliberate outreach.\n"
            "**If mixed:** Narrow the target audience and gather more evidence before deciding."
        ),
        "founder_safe_summary": (
            "Evidence is insufficient to support a confident decision right now, which is normal at this stage. "
            "The most important next step is to gather direct signals from the intended users. "
            "No decision is locked."
        ),
    },
    "es": {
        "decision_framing": (
            "**Decision:** {decision}\n"
            "**What makes this costly to reverse:**\n"
            "- La evidencia es insuficiente para identificar qué sería costoso revertir.\n"
            "**Current confidence:** Baja. No hay evidencia suficiente para evaluar esta decisión."
        ),
        "signal_summary": (
            "Fuerza de la señal interna: Insuficiente. No hay evidencia interna de interacción utilizable.\n"
            "Fuerza de la señal externa: Insuficiente. No hay evidencia externa de investigación utilizable.\n"
            "Alineación de señales: Insuficiente."
        ),
        "what_signals_say": (
            "- Los votos internos son insuficientes para sacar conclusiones.\n"
            "- Los comentarios son insuficientes para identificar preocupaciones recurrentes.\n"
            "- Los datos de permanencia y desplazamiento son insuficientes para juzgar el interés.\n"
            "- La investigación externa es insuficiente para confirmar la demanda.\n"
            "- La evidencia sobre la disposición a pagar es insuficiente."
        ),
        "risk": (
            "**Risk:** {risk}\n"
            "**Why it matters:** Actuar sin evidencia puede comprometer esfuerzo en un supuesto no validado.\n"
            "**Evidence for/against:** La evidencia es insuficiente en ambos sentidos.\n"
            "**How to reduce:** {reduce}"
        ),
        "risks": (
            ("La demanda de la idea no está confirmada.", "Realiza una prueba pequeña con una audiencia bien definida."),
            ("Se desconoce la disposición a pagar.", "Pide a usuarios objetivo que se comprometan con un precio o una preventa."),
            ("La audiencia objetivo alcanzable no está clara.", "Identifica un canal donde se reúnan los usuarios objetivo y pruébalo."),
        ),
        "recommendation": (
            "**Path:** Wait and clarify\n"
            "**Why:** La evidencia es insuficiente para elegir un camino más comprometido.\n"
            "**Success in 7-14 days:** Existen suficientes señales internas y externas para evaluar la demanda.\n"
            "**Failure / stop conditions:** No aparece interacción significativa tras un alcance deliberado.\n"
            "**If mixed:** Acota la audiencia objetivo y reúne más evidencia antes de decidir."
        ),
        "founder_safe_summary": (
            "La evidencia es insuficiente para respaldar una decisión confiable ahora, lo cual es normal en esta etapa. "
            "El siguiente paso más importante es obtener señales directas de los usuarios previstos. "
            "Ninguna decisión está cerrada."
        ),
    },
}


def placeholder(section: str, language: Language = "en", decision: str = "") -> str:
    """Insufficient-evidence text for *section* that still follows its grammar."""
    texts = _PLACEHOLDERS.get(language, _PLACEHOLDERS["en"])
    if section == "key_risks_and_assumptions":
        return "\n\n".join(texts["risk"].format(risk=r, reduce=h) for r, h in texts["risks"])
    if section == "decision_framing":
        return texts[section].format(decision=decision or "-")
    return texts[section]


def insufficient_evidence_result(language: Language = "en", decision: str = "") -> DecisionSynthesisResult:
    return DecisionSynthesisResult(
        **{section: placeholder(section, language, decision) for section in SECTIONS}
    )


# ===================================================================== #
#  Parsing                                                                #
# ===================================================================== #

def flatten_to_text(value: Any) -> str:
    """Depth-first text rendering of any JSON value.

    Objects prefer a text-like key; arrays and remaining values are joined
    with blank lines.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return "\n\n".join(p for p in (flatten_to_text(v) for v in value) if p)
    if isinstance(value, dict):
        for key in _PREFERRED_TEXT_KEYS:
            if value.get(key) is not None:
                return flatten_to_text(value[key])
        return "\n\n".join(p for p in (flatten_to_text(v) for v in value.values()) if p)
    return str(value)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def missing_labels(section: str, text: str) -> List[str]:
    """Grammar problems in one section; empty when it conforms."""
    problems = [label for label in _REQUIRED_LABELS.get(section, ()) if label not in text]

    if section == "what_signals_say":
        bullets = len(_BULLET_RE.findall(text))
        if not 5 <= bullets <= 8:
            problems.append(f"expected 5-8 bullets, found {bullets}")
    elif section == "key_risks_and_assumptions":
        risks = text.count("**Risk:**")
        if not 3 <= risks <= 5:
            problems.append(f"expected 3-5 risk blocks, found {risks}")
    elif section == "recommendation" and "**Path:**" in text:
        lines = text.split("**Path:**", 1)[1].splitlines()
        path_line = lines[0] if lines else ""
        if not any(p.lower() in path_line.lower() for p in RECOMMENDATION_PATHS):
            problems.append("unknown recommendation path")
    return problems


def parse_decision_synthesis(
    parsed: Optional[Dict[str, Any]],
    language: Language = "en",
    decision: str = "",
) -> DecisionSynthesisResult:
    """Map backend output onto the six sections, filling any gaps."""
    parsed = parsed if isinstance(parsed, dict) else {}
    sections: Dict[str, str] = {}

    for section in SECTIONS:
        raw = parsed.get(section)
        if raw is None:
            raw = parsed.get(_camel(section))
        text = flatten_to_text(raw).strip()

        if not text:
            logger.warning("[DecisionSynthesis] %s missing — using placeholder", section)
            text = placeholder(section, language, decision)
        else:
            problems = missing_labels(section, text)
            if problems:
                logger.warning("[DecisionSynthesis] %s grammar: %s", section, problems)
        sections[section] = text

    return DecisionSynthesisResult(**sections)


# ===================================================================== #
#  Public API                                                             #
# ===================================================================== #

def _has_evidence(value: Any) -> bool:
    return value is not None and not isinstance(value, str)


def build_input_bundle(
    idea: DecisionIdea,
    decision_evidence: InternalEvidence,
    market_validation: ExternalEvidence,
) -> str:
    internal: Any = (
        decision_evidence.model_dump(mode="json", exclude_none=True)
        if isinstance(decision_evidence, DecisionEvidence)
        else NO_INTERNAL_EVIDENCE
    )
    external: Any = (
        market_validation.model_dump(
            mode="json",
            include={
                "market_snapshot",
                "behavioral_hypotheses",
                "market_signals",
                "conflicts_and_gaps",
                "synthesis_and_next_steps",
            },
        )
        if isinstance(market_validation, MarketValidationResult)
        else NO_EXTERNAL_EVIDENCE
    )
    return json.dumps(
        {
            "idea": idea.model_dump(mode="json"),
            "decision_evidence": internal,
            "market_validation": external,
        },
        indent=2,
        ensure_ascii=False,
    )


async def synthesize_decision(
    idea: DecisionIdea,
    decision_evidence: InternalEvidence = None,
    market_validation: ExternalEvidence = None,
    language: Language = "en",
) -> DecisionSynthesisResult:
    """Produce the six-section decision document for one idea version.

    ``None`` or a sentinel string means that side has no evidence.
    Raises ``RateLimitExceededError`` / ``GenerationConfigError`` from the
    generation client; every other failure degrades to placeholders.
    """
    decision = idea.decision_making or idea.title

    if not _has_evidence(decision_evidence) and not _has_evidence(market_validation):
        logger.info("[DecisionSynthesis] No internal or external evidence — returning placeholders")
        return insufficient_evidence_result(language, decision)

    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                f"{language_instruction(language)}\n\nJSON bundle:\n"
                f"{build_input_bundle(idea, decision_evidence, market_validation)}"
            ),
        },
    ]

    parsed = await call_openai_chat_async(messages=messages, temperature=0.4)
    if parsed is None:
        logger.warning("[DecisionSynthesis] No usable response — returning placeholders")

    return parse_decision_synthesis(parsed, language, decision)
