"""Twitter/X provider — v2 recent search with an app bearer token."""

from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional

from ...agents.market_validation.http_client import get_timeout
from ...schemas.research_schema import EvidenceType
from .base import EvidenceProvider, RawRecord, as_dict, as_list, as_text, parse_count

logger = logging.getLogger(__name__)

TWITTER_SEARCH_URL = "https://api.twitter.com/2/tweets/search/recent"

# Recent search rejects max_results outside this range
_MIN_RESULTS = 10
_MAX_RESULTS = 100


class TwitterProvider(EvidenceProvider):
    name = "twitter"
    source_type = "social"
    default_evidence_type = EvidenceType.STATED

    def __init__(self, bearer_token: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.bearer_token = (
            bearer_token if bearer_token is not None else os.getenv("TWITTER_BEARER_TOKEN", "")
        )

    def is_configured(self) -> bool:
        return bool(self.bearer_token)

    async def _fetch(self, query: str, limit: int) -> List[RawRecord]:
        response = await self.client.get(
            TWITTER_SEARCH_URL,
            params={
                "query": f"{query} -is:retweet lang:en",
                "max_results": max(_MIN_RESULTS, min(limit, _MAX_RESULTS)),
                "tweet.fields": "created_at,public_metrics,author_id",
                "user.fields": "username,name",
                "expansions": "author_id",
            },
            headers={"Authorization": f"Bearer {self.bearer_token}"},
            timeout=get_timeout("twitter"),
        )
        if not self.check_status(response):
            return []

        data = self.parse_json(response)
        users: Dict[str, dict] = {
            as_text(u.get("id")): u
            for u in as_list(as_dict(data.get("includes")).get("users"))
            if isinstance(u, dict)
        }

        records: List[RawRecord] = []
        for tweet in [t for t in as_list(data.get("data")) if isinstance(t, dict)][:limit]:
            user = users.get(as_text(tweet.get("author_id")), {})
            username = as_text(user.get("username")) or "unknown"
            metrics = as_dict(tweet.get("public_metrics"))
            tweet_id = as_text(tweet.get("id"))
            records.append(
                {
                    "id": tweet_id,
                    "text": as_text(tweet.get("text")),
                    "author_username": username,
                    "author_name": as_text(user.get("name")) or username,
                    "tweet_url": f"https://twitter.com/{username}/status/{tweet_id}",
                    "created_at": tweet.get("created_at"),
                    "like_count": parse_count(metrics.get("like_count")),
                    "retweet_count": parse_count(metrics.get("retweet_count")),
                }
            )

        logger.info("[Twitter] %d tweets for %r", len(records), query)
        return records
