"""Evidence Normalizer.

Maps provider-specific raw records onto the uniform ``EvidenceChunk`` shape.

Rules
-----
- NO LLM calls
- NO external API calls
- Free text is cleaned (HTML, entities, bare URLs) and truncated
- ``evidence_type`` is the provider default unless the caller overrides it
- The merged list keeps provider order and is truncated, never ranked
"""

from __future__ import annotations

import html
import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote_plus

from ..constants import MAX_CHUNK_TEXT_CHARS, MAX_EVIDENCE_CHUNKS
from ..schemas.research_schema import EvidenceChunk, EvidenceType, TrendPoint
from .providers.base import EvidenceProvider, RawRecord

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")
_URL_RE = re.compile(r"https?://\S+")
_WS_RE = re.compile(r"\s+")


def clean_text(text: Any, limit: int = MAX_CHUNK_TEXT_CHARS) -> str:
    """Strip markup and URL noise, collapse whitespace, truncate to *limit*."""
    if not text:
        return ""
    cleaned = html.unescape(_TAG_RE.sub(" ", str(text)))
    cleaned = _URL_RE.sub("", cleaned)
    cleaned = _WS_RE.sub(" ", cleaned).strip()
    if len(cleaned) > limit:
        cleaned = cleaned[: limit - 1].rstrip() + "…"
    return cleaned


def _fmt_count(label: str, value: Optional[int]) -> str:
    return f"{label}: {value:,}" if value is not None else ""


def _join(*parts: str) -> str:
    return " · ".join(p for p in parts if p)


# ===================================================================== #
#  Per-provider field mapping → (title, url, text)                        #
# ===================================================================== #

def _map_web(r: RawRecord) -> Tuple[str, str, str]:
    return r.get("title", ""), r.get("link", ""), r.get("snippet", "")


def _map_reddit(r: RawRecord) -> Tuple[str, str, str]:
    meta = _join(
        f"r/{r['subreddit']}" if r.get("subreddit") else "",
        f"{r['score']} upvotes" if r.get("score") is not None else "",
        f"{r['num_comments']} comments" if r.get("num_comments") is not None else "",
    )
    body = r.get("selftext") or r.get("title", "")
    return r.get("title", ""), r.get("post_url", ""), f"{body} ({meta})" if meta else body


def _map_twitter(r: RawRecord) -> Tuple[str, str, str]:
    meta = _join(_fmt_count("Likes", r.get("like_count")), _fmt_count("Retweets", r.get("retweet_count")))
    text = r.get("text", "")
    return f"@{r.get('author_username', 'unknown')}", r.get("tweet_url", ""), f"{text} ({meta})" if meta else text


def _map_facebook(r: RawRecord) -> Tuple[str, str, str]:
    counts = _join(_fmt_count("Likes", r.get("likes")), _fmt_count("Followers", r.get("followers")))
    return r.get("name", ""), r.get("profile_url", ""), _join(counts, r.get("about", ""))


def _map_youtube(r: RawRecord) -> Tuple[str, str, str]:
    meta = _join(
        f"Channel: {r['channel_name']}" if r.get("channel_name") else "",
        _fmt_count("Views", r.get("views")),
        f"Published: {r['published_date']}" if r.get("published_date") else "",
    )
    return r.get("title", ""), r.get("link", ""), _join(meta, r.get("description", ""))


_FIELD_MAPPERS: Dict[str, Callable[[RawRecord], Tuple[str, str, str]]] = {
    "google": _map_web,
    "bing": _map_web,
    "reddit": _map_reddit,
    "twitter": _map_twitter,
    "facebook": _map_facebook,
    "youtube": _map_youtube,
}


# ===================================================================== #
#  Trends                                                                 #
# ===================================================================== #

def to_trend_points(records: Iterable[RawRecord]) -> List[TrendPoint]:
    points: List[TrendPoint] = []
    for r in records:
        try:
            points.append(TrendPoint.model_validate(r))
        except ValueError:
            logger.debug("Dropping malformed trend record: %r", r)
    return points


def trends_explore_url(query: str) -> str:
    return f"https://trends.google.com/trends/explore?date=today%2012-m&q={quote_plus(query)}"


def _normalize_trends(
    records: List[RawRecord],
    provider: EvidenceProvider,
    evidence_type: EvidenceType,
) -> List[EvidenceChunk]:
    by_query: Dict[str, List[TrendPoint]] = {}
    for point in to_trend_points(records):
        by_query.setdefault(point.query, []).append(point)

    chunks: List[EvidenceChunk] = []
    for query, points in by_query.items():
        series = "; ".join(f"{p.date}: {p.display_value}" for p in points)
        chunks.append(
            EvidenceChunk(
                title=f"Google Trends: {query}",
                url=trends_explore_url(query),
                cleaned_text=clean_text(f"Search interest (0-100) over the last 12 months. {series}"),
                source_provider=provider.name,
                evidence_type=evidence_type,
                source_type=provider.source_type,
            )
        )
    return chunks


# ===================================================================== #
#  Public API                                                             #
# ===================================================================== #

def normalize(
    raw_records: List[RawRecord],
    provider: EvidenceProvider,
    evidence_type: Optional[EvidenceType] = None,
) -> List[EvidenceChunk]:
    """Convert one provider's raw records into evidence chunks.

    Records without a URL or without any text are dropped.
    """
    etype = evidence_type or provider.default_evidence_type

    if provider.source_type == "trend":
        return _normalize_trends(raw_records, provider, etype)

    mapper = _FIELD_MAPPERS.get(provider.name, _map_web)
    chunks: List[EvidenceChunk] = []
    for record in raw_records:
        title, url, text = mapper(record)
        title = clean_text(title, limit=200)
        cleaned = clean_text(text) or title
        if not url or not cleaned:
            continue
        chunks.append(
            EvidenceChunk(
                title=title or url,
                url=url,
                cleaned_text=cleaned,
                source_provider=provider.name,
                evidence_type=etype,
                source_type=provider.source_type,
            )
        )
    return chunks


def merge_evidence(
    groups: Iterable[List[EvidenceChunk]],
    cap: int = MAX_EVIDENCE_CHUNKS,
) -> List[EvidenceChunk]:
    """Concatenate provider groups in order, drop repeated URLs, truncate."""
    seen: set[str] = set()
    merged: List[EvidenceChunk] = []
    for group in groups:
        for chunk in group:
            if chunk.url in seen:
                continue
            seen.add(chunk.url)
            merged.append(chunk)

    if len(merged) > cap:
        logger.info("Evidence capped at %d chunks (dropped %d)", cap, len(merged) - cap)
        merged = merged[:cap]
    return merged


def format_chunks_for_prompt(chunks: List[EvidenceChunk], start: int = 1) -> str:
    """Render chunks with stable 1-based ``[N]`` indices for citation."""
    lines = []
    for i, chunk in enumerate(chunks, start=start):
        lines.append(
            f"[{i}] ({chunk.source_provider}, {chunk.evidence_type.value}) {chunk.title}\n"
            f"URL: {chunk.url}\n"
            f"{chunk.cleaned_text}"
        )
    return "\n\n".join(lines)
