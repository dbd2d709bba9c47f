"""
Async HTTP Client Configuration

Provides a shared httpx.AsyncClient with connection pooling and
timeout presets for each external service.
"""

from __future__ import annotations

from typing import Optional

import httpx


# Timeout configurations (in seconds)
class Timeouts:
    """Timeout presets for external services."""
    SERPAPI = 10.0      # Google / Bing / Trends / YouTube via SerpAPI
    REDDIT = 8.0        # Reddit search + token exchange
    TWITTER = 8.0       # Twitter/X recent search
    OPENAI = 40.0       # Chat completions (long synthesis prompts)

    # Caller-level guard around a whole pipeline run
    PIPELINE_MAX = 180.0


# Retry configuration
class RetryConfig:
    """Provider retry settings."""
    MAX_RETRIES = 3
    BASE_DELAY = 1.0  # seconds, doubled per attempt

    # Retryable status codes
    RETRYABLE_CODES = {429, 500, 502, 503, 504}


# Shared client instance (lazily initialized)
_client: Optional[httpx.AsyncClient] = None


def get_client() -> httpx.AsyncClient:
    """Get the shared async HTTP client."""
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, connect=5.0),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=50),
            follow_redirects=True,
        )
    return _client


async def close_client():
    """Close the shared client (call on app shutdown)."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


def get_timeout(service: str) -> httpx.Timeout:
    """Get timeout configuration for a service."""
    timeouts = {
        "serpapi": Timeouts.SERPAPI,
        "reddit": Timeouts.REDDIT,
        "twitter": Timeouts.TWITTER,
        "openai": Timeouts.OPENAI,
    }
    seconds = timeouts.get(service.lower(), 10.0)
    return httpx.Timeout(seconds, connect=5.0)


def is_retryable_error(status_code: int) -> bool:
    """Check if an HTTP error is retryable."""
    return status_code in RetryConfig.RETRYABLE_CODES
