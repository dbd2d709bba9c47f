"""Evidence provider contract and shared helpers.

Rules
-----
- ``search`` never raises: missing credentials, non-success statuses,
  malformed bodies and exhausted rate-limit retries all return ``[]``
- Rate limits (429), timeouts and 5xx are retried with exponential backoff
- Other 4xx statuses give up immediately
- Records are provider-specific dicts; the normalizer maps them to chunks
"""

from __future__ import annotations

import logging
import math
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

import httpx

from ...agents.market_validation.http_client import (
    RetryConfig,
    get_client,
    is_retryable_error,
)
from ...errors import ProviderAuthError, ProviderError, ProviderRateLimitError
from ...schemas.research_schema import EvidenceType
from ..retry import retry_with_backoff

logger = logging.getLogger(__name__)

RawRecord = Dict[str, Any]

_COUNT_MULTIPLIERS = {
    "K": 1_000,
    "THOUSAND": 1_000,
    "M": 1_000_000,
    "MILLION": 1_000_000,
    "B": 1_000_000_000,
    "BILLION": 1_000_000_000,
}
_COUNT_PATTERN = re.compile(r"^([0-9]+(?:\.[0-9]+)?)\s*(THOUSAND|MILLION|BILLION|[KMB])?(?![A-Z])")


def parse_count(value: Union[str, int, float, None]) -> Optional[int]:
    """Parse platform counts ("29K" → 29000, "1.2M" → 1200000, "3 million" → 3000000).

    Returns ``None`` for unknown input so callers can tell "unknown" apart
    from a confirmed zero.  Trailing words ("1.2M views") are ignored.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None

    text = str(value).strip().upper().replace(",", "")
    if not text:
        return None

    match = _COUNT_PATTERN.match(text)
    if not match:
        return None

    number = float(match.group(1))
    suffix = match.group(2)
    if suffix:
        number *= _COUNT_MULTIPLIERS[suffix]
    return int(round(number))


def as_text(value: Any) -> str:
    """String form of a scalar upstream field; empty for missing or nested values."""
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value)


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


class EvidenceProvider(ABC):
    """One connector per external evidence source.

    Subclasses implement ``_fetch`` and raise ``ProviderError`` for anything
    worth retrying.  ``search`` wraps ``_fetch`` with the retry policy and
    the degrade-to-empty contract.
    """

    name: str = "provider"
    source_type: str = "web"
    default_evidence_type: EvidenceType = EvidenceType.DIRECTIONAL

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = RetryConfig.MAX_RETRIES,
        base_delay: float = RetryConfig.BASE_DELAY,
    ):
        self._client = client
        self.max_retries = max_retries
        self.base_delay = base_delay

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client if self._client is not None else get_client()

    @abstractmethod
    def is_configured(self) -> bool:
        """True when every credential this provider needs is present."""

    @abstractmethod
    async def _fetch(self, query: str, limit: int) -> List[RawRecord]:
        """Perform one upstream call.  Raise ``ProviderError`` to retry."""

    async def search(self, query: str, limit: int = 10) -> List[RawRecord]:
        """Return up to *limit* raw records for *query*, or ``[]``."""
        if not self.is_configured():
            logger.warning("[%s] Not configured — skipping query=%r", self.name, query)
            return []

        try:
            return await retry_with_backoff(
                lambda: self._fetch(query, limit),
                max_retries=self.max_retries,
                base_delay=self.base_delay,
                retry_on=(ProviderError, httpx.TransportError),
            )
        except ProviderAuthError as exc:
            logger.warning("[%s] Authentication failed — skipping query=%r: %s", self.name, query, exc)
            return []
        except ProviderRateLimitError:
            logger.warning("[%s] Rate limit exceeded — returning no results for query=%r", self.name, query)
            return []
        except (ProviderError, httpx.HTTPError) as exc:
            logger.warning("[%s] Giving up on query=%r: %s", self.name, query, exc)
            return []
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("[%s] Malformed response for query=%r: %r", self.name, query, exc)
            return []

    def check_status(self, response: httpx.Response) -> bool:
        """Classify an upstream status.

        Returns True on success, False for a non-retryable failure, and
        raises a retryable ``ProviderError`` for 429/5xx.
        """
        status = response.status_code
        if status == 200:
            return True
        if status == 429:
            raise ProviderRateLimitError(self.name)
        if is_retryable_error(status):
            raise ProviderError(self.name, f"HTTP {status}", status_code=status)
        logger.warning("[%s] Non-retryable HTTP %d: %s", self.name, status, response.text[:200])
        return False

    def parse_json(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(self.name, f"invalid JSON body: {exc}") from exc
        return data if isinstance(data, dict) else {}
