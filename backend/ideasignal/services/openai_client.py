"""Centralized OpenAI chat client.

Every generation step MUST go through ``call_openai_chat_async()``.
This ensures:
  - Model, temperature, timeout, and token limits are read from env.
  - JSON response format is enforced via response_format.
  - HTTP 429 raises ``RateLimitExceededError`` (never retried here).
  - Any other failure gets 1 retry, then returns None.
  - Consistent logging across all generation steps.
"""

from __future__ import annotations

import json
import logging
import math
import os
import re
import time
from typing import Any, Dict, List, Optional

import httpx

from ..agents.market_validation.http_client import get_client
from ..errors import GenerationConfigError, RateLimitExceededError
from ..schemas.research_schema import Language

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants, read from environment with safe defaults
# ---------------------------------------------------------------------------
_OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"

_DEFAULT_RETRY_AFTER_SECONDS = 3


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def get_openai_key() -> str:
    """Read OPENAI_API_KEY from the environment. Raises GenerationConfigError if missing."""
    key = os.getenv("OPENAI_API_KEY", "").strip()
    if not key:
        logger.error("[OPENAI] API key missing (OPENAI_API_KEY)")
        raise GenerationConfigError("OPENAI_API_KEY environment variable not set")
    return key


def get_openai_model() -> str:
    """Read OPENAI_MODEL from the environment (default: gpt-4o-mini)."""
    return os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip()


def _get_temperature() -> float:
    return _env_float("OPENAI_TEMPERATURE", 0.3)


def _get_timeout() -> float:
    return _env_float("OPENAI_REQUEST_TIMEOUT", 40.0)


def _get_default_max_tokens() -> int:
    return _env_int("OPENAI_MAX_COMPLETION_TOKENS", 4000)


def language_instruction(language: Language) -> str:
    """Explicit output-language instruction appended to every prompt."""
    if language == "es":
        return (
            "IMPORTANT: Respond in Spanish. All titles, descriptions, and "
            "content must be in Spanish. Keep JSON keys in English."
        )
    return (
        "IMPORTANT: Respond in English. All titles, descriptions, and "
        "content must be in English."
    )


# ---------------------------------------------------------------------------
# JSON sanitizer: extracts valid JSON from LLM output
# ---------------------------------------------------------------------------
def sanitize_json(raw: str) -> str:
    """Extract a JSON object from raw LLM output.

    Handles:
      - Markdown fences (```json ... ```)
      - Leading/trailing whitespace and BOM
      - Prose before/after JSON
      - Trailing commas before } or ]

    Raises ValueError if no JSON object is found.
    """
    text = raw.strip().lstrip("\ufeff")

    if text.startswith("```"):
        parts = text.split("```")
        text = parts[1] if len(parts) >= 3 else text[3:]

    text = text.strip()
    if text.lower().startswith("json"):
        text = text[4:].strip()

    brace_idx = text.find("{")
    if brace_idx == -1:
        raise ValueError("LLM did not return a JSON object — no '{' found")
    text = text[brace_idx:]

    rbrace_idx = text.rfind("}")
    if rbrace_idx == -1:
        raise ValueError("LLM did not return a JSON object — no '}' found")
    text = text[: rbrace_idx + 1]

    return re.sub(r",\s*([}\]])", r"\1", text)


def parse_json_object(raw: str) -> Optional[Dict[str, Any]]:
    """Sanitize and decode *raw*; None when it is not a JSON object."""
    try:
        parsed = json.loads(sanitize_json(raw))
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_retry_after(response: httpx.Response) -> int:
    """Seconds to wait before retrying a rate-limited request."""
    header = response.headers.get("retry-after")
    if header:
        try:
            return max(1, math.ceil(float(header)))
        except ValueError:
            pass

    reset_tokens = response.headers.get("x-ratelimit-reset-tokens", "")
    match = re.search(r"([\d.]+)s", reset_tokens)
    if match:
        return max(1, math.ceil(float(match.group(1))))

    try:
        message = ((response.json() or {}).get("error") or {}).get("message", "")
    except ValueError:
        message = ""
    match = re.search(r"try again in\s+([\d.]+)s", message or "", re.IGNORECASE)
    if match:
        return max(1, math.ceil(float(match.group(1))))

    return _DEFAULT_RETRY_AFTER_SECONDS


def build_payload(
    *,
    model: str,
    messages: List[Dict[str, str]],
    max_completion_tokens: int,
    temperature: float,
    json_mode: bool = True,
) -> Dict[str, Any]:
    """Build an OpenAI chat completions payload.

    Uses:
      - model, messages, max_tokens, temperature
      - response_format: json_object (ensures valid JSON output)
    """
    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_completion_tokens,
        "temperature": temperature,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}

    logger.info("[OPENAI] Model: %s, tokens requested: %d", model, max_completion_tokens)
    return payload


async def call_openai_chat_async(
    *,
    messages: List[Dict[str, str]],
    max_completion_tokens: int = 0,
    temperature: Optional[float] = None,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Optional[Dict[str, Any]]:
    """Call OpenAI chat completions and return the parsed JSON dict, or None.

    Parameters
    ----------
    messages : list[dict]
        The messages array (system + user).
    max_completion_tokens : int
        Token limit for the response. 0 = use env default.
    temperature : float, optional
        Override sampling temperature (default: from env).
    api_key : str, optional
        Override API key (default: from env).
    model : str, optional
        Override model name (default: from env).
    http_client : httpx.AsyncClient, optional
        Client to send through (default: the shared pooled client).

    Raises
    ------
    GenerationConfigError
        OPENAI_API_KEY is not set.
    RateLimitExceededError
        The backend answered HTTP 429.
    """
    if api_key is None:
        api_key = get_openai_key()
    if model is None:
        model = get_openai_model()
    if max_completion_tokens <= 0:
        max_completion_tokens = _get_default_max_tokens()
    if temperature is None:
        temperature = _get_temperature()

    client = http_client or get_client()
    timeout = _get_timeout()
    max_retries = 1  # 1 retry only (2 attempts total)

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    payload = build_payload(
        model=model,
        messages=messages,
        max_completion_tokens=max_completion_tokens,
        temperature=temperature,
    )

    for attempt in range(max_retries + 1):
        t0 = time.time()
        try:
            logger.info("[OPENAI] Calling %s (attempt %d/%d)", model, attempt + 1, max_retries + 1)
            response = await client.post(_OPENAI_API_URL, headers=headers, json=payload, timeout=timeout)
            logger.info("[OPENAI] HTTP %d (%.1fs)", response.status_code, time.time() - t0)

            if response.status_code == 429:
                retry_after = parse_retry_after(response)
                logger.warning("[OPENAI] Rate limited — retry after %ss", retry_after)
                raise RateLimitExceededError(retry_after_seconds=retry_after, details=response.text[:400])

            if response.status_code != 200:
                logger.warning("[OPENAI] Error response: %s", response.text[:400])
                continue

            data = response.json()
            usage = data.get("usage")
            if usage:
                logger.info(
                    "[OPENAI] Tokens used: prompt=%s, completion=%s, total=%s",
                    usage.get("prompt_tokens", "?"),
                    usage.get("completion_tokens", "?"),
                    usage.get("total_tokens", "?"),
                )

            raw_content = (data["choices"][0]["message"]["content"] or "").strip()
            if not raw_content:
                logger.warning("[OPENAI] Empty response (attempt %d)", attempt + 1)
                continue

            parsed = parse_json_object(raw_content)
            if parsed is None:
                logger.warning("[OPENAI] JSON parse failed — raw (first 300 chars): %s", raw_content[:300])
                continue

            logger.info("[OPENAI] Success")
            return parsed

        except httpx.TimeoutException:
            logger.warning("[OPENAI] Timeout (%.1fs)", time.time() - t0)
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as exc:
            logger.error("[OPENAI] Unexpected error: %s", exc)

    return None
