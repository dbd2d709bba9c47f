"""SerpAPI-backed providers: Google, Bing, Google Trends, Facebook, YouTube.

All five share one key (``SERPAPI_KEY``) and one endpoint; they differ only
in the engine parameters and the part of the response they read.
"""

from __future__ import annotations

import logging
import math
import os
import re
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from ...agents.market_validation.http_client import get_timeout
from ...schemas.research_schema import EvidenceType
from .base import EvidenceProvider, RawRecord, as_dict, as_list, as_text, parse_count

logger = logging.getLogger(__name__)

SERPAPI_BASE_URL = "https://serpapi.com/search.json"

TRENDS_DATE_RANGE = "today 12-m"
TRENDS_POINTS_KEPT = 5

_FB_LIKES_RE = re.compile(r"([0-9][0-9,.]*\s*[KMB]?)\s+likes", re.IGNORECASE)
_FB_FOLLOWERS_RE = re.compile(r"([0-9][0-9,.]*\s*[KMB]?)\s+followers", re.IGNORECASE)
_FB_SKIP_SECTIONS = {"watch", "events", "groups", "hashtag", "login", "sharer"}


class SerpApiProvider(EvidenceProvider):
    """Base for every provider that goes through SerpAPI."""

    engine: str = "google"

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key if api_key is not None else os.getenv("SERPAPI_KEY", "")

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def build_params(self, query: str, limit: int) -> Dict[str, Any]:
        return {"engine": self.engine, "q": query, "num": limit}

    def extract(self, data: Dict[str, Any], query: str, limit: int) -> List[RawRecord]:
        raise NotImplementedError

    async def _fetch(self, query: str, limit: int) -> List[RawRecord]:
        params = self.build_params(query, limit)
        params["api_key"] = self.api_key

        response = await self.client.get(
            SERPAPI_BASE_URL,
            params=params,
            timeout=get_timeout("serpapi"),
        )
        if not self.check_status(response):
            return []

        data = self.parse_json(response)
        if data.get("error"):
            # SerpAPI reports "no results" as an error string with HTTP 200
            logger.info("[SerpAPI] %s: %s", self.name, data["error"])
            return []

        records = self.extract(data, query, limit)
        logger.info("[SerpAPI] %s → %d records for %r", self.name, len(records), query)
        return records


def _organic(data: Dict[str, Any], limit: int) -> List[RawRecord]:
    records: List[RawRecord] = []
    for item in as_list(data.get("organic_results"))[:limit]:
        if not isinstance(item, dict):
            continue
        records.append(
            {
                "position": parse_count(item.get("position")) or len(records) + 1,
                "title": as_text(item.get("title")),
                "link": as_text(item.get("link")),
                "snippet": as_text(item.get("snippet")),
            }
        )
    return records


class GoogleSearchProvider(SerpApiProvider):
    name = "google"
    source_type = "web"
    default_evidence_type = EvidenceType.DIRECTIONAL
    engine = "google"

    def extract(self, data, query, limit):
        return _organic(data, limit)


class BingSearchProvider(SerpApiProvider):
    name = "bing"
    source_type = "web"
    default_evidence_type = EvidenceType.DIRECTIONAL
    engine = "bing"

    def build_params(self, query, limit):
        return {"engine": self.engine, "q": query, "count": limit}

    def extract(self, data, query, limit):
        return _organic(data, limit)


def _trend_value(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    count = parse_count(value)
    return float(count) if count is not None else None


class GoogleTrendsProvider(SerpApiProvider):
    """Interest-over-time for the last 12 months; keeps the latest points.

    Values SerpAPI cannot express as a number ("<1") stay ``None``.
    """

    name = "google_trends"
    source_type = "trend"
    default_evidence_type = EvidenceType.QUANTITATIVE
    engine = "google_trends"

    def build_params(self, query, limit):
        return {
            "engine": self.engine,
            "q": query,
            "data_type": "TIMESERIES",
            "date": TRENDS_DATE_RANGE,
        }

    def extract(self, data, query, limit):
        timeline = as_list(as_dict(data.get("interest_over_time")).get("timeline_data"))
        records: List[RawRecord] = []
        for point in [p for p in timeline if isinstance(p, dict)][-TRENDS_POINTS_KEPT:]:
            values = as_list(point.get("values"))
            first = as_dict(values[0]) if values else {}
            extracted = _trend_value(first.get("extracted_value"))
            if extracted is None:
                extracted = _trend_value(first.get("value"))
            records.append(
                {
                    "query": as_text(first.get("query")) or query,
                    "date": as_text(point.get("date")),
                    "value": parse_count(first.get("value")),
                    "extracted_value": extracted,
                }
            )
        return records


def extract_facebook_profile_id(url: str) -> Optional[str]:
    """Profile id from a facebook.com URL, or None for non-profile pages."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if "facebook.com" not in (parsed.hostname or ""):
        return None

    if parsed.path.rstrip("/") == "/profile.php":
        ids = parse_qs(parsed.query).get("id")
        return ids[0] if ids else None

    parts = [p for p in parsed.path.split("/") if p]
    if not parts or parts[0].lower() in _FB_SKIP_SECTIONS:
        return None
    return parts[-1]


class FacebookProfileProvider(SerpApiProvider):
    """Facebook pages found through a ``site:facebook.com`` Google search.

    Page likes and followers are parsed out of the result snippet; unknown
    counts stay ``None``.
    """

    name = "facebook"
    source_type = "profile"
    default_evidence_type = EvidenceType.QUANTITATIVE
    engine = "google"

    def build_params(self, query, limit):
        return {"engine": self.engine, "q": f"site:facebook.com {query}", "num": limit}

    def extract(self, data, query, limit):
        records: List[RawRecord] = []
        for item in as_list(data.get("organic_results"))[:limit]:
            if not isinstance(item, dict):
                continue
            link = as_text(item.get("link"))
            profile_id = extract_facebook_profile_id(link)
            if not profile_id:
                continue

            snippet = as_text(item.get("snippet"))
            likes = _FB_LIKES_RE.search(snippet)
            followers = _FB_FOLLOWERS_RE.search(snippet)
            name = (as_text(item.get("title")) or profile_id).replace(" | Facebook", "").replace(" - Facebook", "")

            records.append(
                {
                    "id": profile_id,
                    "name": name,
                    "profile_url": link,
                    "about": snippet,
                    "likes": parse_count(likes.group(1)) if likes else None,
                    "followers": parse_count(followers.group(1)) if followers else None,
                }
            )
        return records


class YouTubeSearchProvider(SerpApiProvider):
    name = "youtube"
    source_type = "video"
    default_evidence_type = EvidenceType.BEHAVIORAL
    engine = "youtube"

    def build_params(self, query, limit):
        return {"engine": self.engine, "search_query": query}

    def extract(self, data, query, limit):
        records: List[RawRecord] = []
        for video in as_list(data.get("video_results"))[:limit]:
            if not isinstance(video, dict):
                continue
            channel = as_dict(video.get("channel"))
            records.append(
                {
                    "title": as_text(video.get("title")),
                    "link": as_text(video.get("link")),
                    "channel_name": as_text(channel.get("name")),
                    "description": as_text(video.get("description")),
                    "published_date": as_text(video.get("published_date")) or None,
                    "views": parse_count(video.get("views")),
                }
            )
        return records
