"""Typed failures shared by providers, the generation client and routes.

Only ``RateLimitExceededError`` and ``GenerationConfigError`` are allowed to
cross the pipeline boundary.  Provider errors are absorbed inside
``EvidenceProvider.search`` and turned into empty results.
"""

from __future__ import annotations

from typing import Optional


class ProviderError(Exception):
    """Retryable transport or status failure inside an evidence provider."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class ProviderRateLimitError(ProviderError):
    """Upstream answered HTTP 429."""

    def __init__(self, provider: str):
        super().__init__(provider, "rate limit exceeded", status_code=429)


class ProviderAuthError(Exception):
    """Token exchange was rejected; the provider is unusable for this call.

    Not a ``ProviderError``: refused credentials are never retried.
    """

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class RateLimitExceededError(Exception):
    """The generation backend rate-limited us.  Callers map this to HTTP 429."""

    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, retry_after_seconds: Optional[int] = None, details: str = ""):
        super().__init__(self.code)
        self.retry_after_seconds = retry_after_seconds
        self.details = details


class GenerationConfigError(EnvironmentError):
    """The generation backend secret is missing.  Fatal, never retried."""
