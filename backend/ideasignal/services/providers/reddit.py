"""Reddit provider — application-only OAuth search across startup subreddits.

The bearer token comes from a client-credentials exchange and is held in a
``CredentialCache`` owned by the provider instance, so concurrent searches
share one token and refresh it at most once.

Required env vars:
    REDDIT_CLIENT_ID
    REDDIT_CLIENT_SECRET
    REDDIT_USER_AGENT   (optional)
"""

from __future__ import annotations

import logging
import os
from typing import Iterable, List, Optional, Sequence, Tuple

import httpx

from ...agents.market_validation.http_client import get_timeout, is_retryable_error
from ...constants import DEFAULT_SUBREDDITS, INDUSTRY_SUBREDDIT_MAP
from ...errors import ProviderAuthError, ProviderError, ProviderRateLimitError
from ...schemas.research_schema import EvidenceType
from ..credential_cache import CredentialCache
from .base import EvidenceProvider, RawRecord, as_text, parse_count

logger = logging.getLogger(__name__)

REDDIT_AUTH_URL = "https://www.reddit.com/api/v1/access_token"
REDDIT_API_BASE = "https://oauth.reddit.com"
DEFAULT_USER_AGENT = "IdeaSignal/1.0 (market validation)"

_SELFTEXT_CHARS = 500
DEFAULT_TOKEN_TTL_SECONDS = 3600.0


def _expires_in(value) -> float:
    """Token lifetime in seconds; the default when the field is missing or junk."""
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return DEFAULT_TOKEN_TTL_SECONDS
    return seconds if seconds > 0 else DEFAULT_TOKEN_TTL_SECONDS


def resolve_subreddits(tags: Iterable[str]) -> List[str]:
    """Default startup subreddits plus any mapped from the idea's tags.

    Deduplicated case-insensitively, first occurrence wins.
    """
    subs: list[str] = list(DEFAULT_SUBREDDITS)
    for tag in tags:
        subs.extend(INDUSTRY_SUBREDDIT_MAP.get(tag.lower().strip(), []))

    seen: set[str] = set()
    unique: list[str] = []
    for s in subs:
        key = s.lower()
        if key not in seen:
            seen.add(key)
            unique.append(s)
    return unique


class RedditProvider(EvidenceProvider):
    name = "reddit"
    source_type = "forum"
    default_evidence_type = EvidenceType.STATED

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        user_agent: Optional[str] = None,
        subreddits: Optional[Sequence[str]] = None,
        credential_cache: Optional[CredentialCache] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.client_id = client_id if client_id is not None else os.getenv("REDDIT_CLIENT_ID", "")
        self.client_secret = (
            client_secret if client_secret is not None else os.getenv("REDDIT_CLIENT_SECRET", "")
        )
        self.user_agent = user_agent or os.getenv("REDDIT_USER_AGENT", DEFAULT_USER_AGENT)
        self.subreddits = list(subreddits) if subreddits else list(DEFAULT_SUBREDDITS)
        self.credentials = credential_cache or CredentialCache()

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def with_subreddits(self, subreddits: Sequence[str]) -> "RedditProvider":
        """Copy of this provider searching *subreddits*, sharing its token cache."""
        return RedditProvider(
            client_id=self.client_id,
            client_secret=self.client_secret,
            user_agent=self.user_agent,
            subreddits=subreddits,
            credential_cache=self.credentials,
            client=self._client,
            max_retries=self.max_retries,
            base_delay=self.base_delay,
        )

    async def _exchange_token(self) -> Tuple[str, float]:
        response = await self.client.post(
            REDDIT_AUTH_URL,
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
            headers={"User-Agent": self.user_agent},
            timeout=get_timeout("reddit"),
        )
        if response.status_code == 429:
            raise ProviderRateLimitError(self.name)
        if is_retryable_error(response.status_code):
            raise ProviderError(self.name, f"token exchange HTTP {response.status_code}", response.status_code)
        if response.status_code != 200:
            raise ProviderAuthError(self.name, f"token exchange HTTP {response.status_code}")

        payload = self.parse_json(response)
        token = payload.get("access_token")
        if not token:
            raise ProviderAuthError(self.name, "token exchange returned no access_token")
        logger.info("[Reddit] Fresh access token (expires_in=%s)", payload.get("expires_in"))
        return token, _expires_in(payload.get("expires_in"))

    async def _fetch(self, query: str, limit: int) -> List[RawRecord]:
        token = await self.credentials.get_token(self._exchange_token)

        response = await self.client.get(
            f"{REDDIT_API_BASE}/r/{'+'.join(self.subreddits)}/search",
            params={
                "q": query,
                "sort": "relevance",
                "t": "year",
                "limit": min(limit, 100),
                "restrict_sr": "true",
            },
            headers={"Authorization": f"Bearer {token}", "User-Agent": self.user_agent},
            timeout=get_timeout("reddit"),
        )
        if response.status_code == 401:
            # Token revoked early; drop it so the retry exchanges a new one
            self.credentials.clear()
            raise ProviderError(self.name, "bearer token rejected", status_code=401)
        if not self.check_status(response):
            return []

        listing = self.parse_json(response).get("data")
        children = listing.get("children") if isinstance(listing, dict) else None
        records: List[RawRecord] = []
        for post in children if isinstance(children, list) else []:
            if not isinstance(post, dict) or post.get("kind") != "t3":
                continue
            data = post.get("data")
            if not isinstance(data, dict):
                continue
            records.append(
                {
                    "id": as_text(data.get("id")),
                    "title": as_text(data.get("title")),
                    "selftext": as_text(data.get("selftext"))[:_SELFTEXT_CHARS],
                    "author": as_text(data.get("author")),
                    "subreddit": as_text(data.get("subreddit")),
                    "post_url": f"https://reddit.com{as_text(data.get('permalink'))}",
                    "score": parse_count(data.get("score")),
                    "num_comments": parse_count(data.get("num_comments")),
                    "created_utc": data.get("created_utc"),
                }
            )

        logger.info("[Reddit] %d posts for %r in %d subreddits", len(records), query, len(self.subreddits))
        return records
