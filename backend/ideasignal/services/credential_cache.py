"""Process-wide OAuth token cache for token-authenticated providers.

Refresh-on-read: ``get_token`` returns the cached token while it stays valid
for longer than the safety buffer; otherwise exactly one caller performs the
token exchange under a lock and overwrites the cache before the others read
it.  Last writer wins.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

# Reuse a cached token only if it is valid for more than this many seconds.
SAFETY_BUFFER_SECONDS = 60.0

# A token exchange returns (access_token, expires_in_seconds).
TokenExchange = Callable[[], Awaitable[Tuple[str, float]]]


@dataclass(frozen=True)
class CachedCredential:
    token: str
    expires_at: float  # epoch seconds

    def is_valid(self, now: float, buffer: float = SAFETY_BUFFER_SECONDS) -> bool:
        return self.expires_at > now + buffer


class CredentialCache:
    """Owns one provider's bearer token."""

    def __init__(
        self,
        safety_buffer: float = SAFETY_BUFFER_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._safety_buffer = safety_buffer
        self._clock = clock
        self._credential: Optional[CachedCredential] = None
        self._lock = asyncio.Lock()

    @property
    def credential(self) -> Optional[CachedCredential]:
        return self._credential

    def store(self, token: str, expires_at: float) -> CachedCredential:
        credential = CachedCredential(token=token, expires_at=expires_at)
        self._credential = credential
        return credential

    def clear(self) -> None:
        self._credential = None

    def _valid_token(self) -> Optional[str]:
        credential = self._credential
        if credential is not None and credential.is_valid(self._clock(), self._safety_buffer):
            return credential.token
        return None

    async def get_token(self, exchange: TokenExchange) -> str:
        """Return a valid token, refreshing through *exchange* when needed.

        Errors raised by *exchange* propagate; the stale entry is left in
        place so a later call retries the exchange.
        """
        token = self._valid_token()
        if token is not None:
            return token

        async with self._lock:
            # Another task may have refreshed while we waited.
            token = self._valid_token()
            if token is not None:
                return token

            access_token, expires_in = await exchange()
            self.store(access_token, self._clock() + float(expires_in))
            return access_token
