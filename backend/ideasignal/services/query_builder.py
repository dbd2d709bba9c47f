"""Deterministic Query Builder.

Converts an ``IdeaContext`` into the per-provider query plan consumed by
evidence collection.

Rules
-----
- NO LLM calls
- NO randomness
- NO external API calls
- Pure transformation: same input → same output
"""

from __future__ import annotations

import re
from typing import Dict, List, Tuple

from ..schemas.research_schema import IdeaContext

# (query string, result limit)
QueryPlan = Dict[str, List[Tuple[str, int]]]

_STOP_WORDS: frozenset[str] = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "as", "is", "was", "are", "be", "been",
        "this", "that", "it", "its", "we", "our", "they", "their", "using",
        "based", "which", "who", "how", "what", "where", "when", "will",
        "can", "do", "does", "has", "have", "had", "not", "no", "so",
        "app", "platform", "tool", "service",
    }
)


# ===================================================================== #
#  Internal helpers                                                       #
# ===================================================================== #

def _tokenise(text: str) -> List[str]:
    tokens = re.split(r"[\s\-_,;:\.!?'\"()\[\]{}]+", text.lower())
    return [t for t in tokens if t.isalpha() and len(t) > 2 and t not in _STOP_WORDS]


def _dedupe(items: List[str]) -> List[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        key = " ".join(item.lower().split())
        if key and key not in seen:
            seen.add(key)
            out.append(" ".join(item.split()))
    return out


def search_terms(idea: IdeaContext, count: int = 3) -> List[str]:
    """Title first, then the leading tags."""
    return _dedupe([idea.title, *idea.tags])[:count]


# ===================================================================== #
#  Public API                                                             #
# ===================================================================== #

def build_query_plan(idea: IdeaContext) -> QueryPlan:
    """Build the provider → [(query, limit)] plan for one idea.

    Providers missing from the plan are not called.
    """
    title = " ".join(idea.title.split())
    tags = list(idea.tags)
    terms = " ".join(search_terms(idea))
    desc_tokens = _tokenise(idea.description)

    web: list[str] = [
        f"{title} market size statistics",
        f"{title} {' '.join(tags[:2])}".strip(),
        f"{title} alternatives competitors pricing",
    ]
    if len(desc_tokens) >= 2:
        web.append(f"{desc_tokens[0]} {desc_tokens[1]} problem")

    trends: list[str] = [title]
    for tag in tags[:2]:
        trends.append(tag)

    community = [terms, f"{title} community"]

    return {
        "google": [(q, 10) for q in _dedupe(web)],
        "bing": [(q, 10) for q in _dedupe(web[:2])],
        "google_trends": [(q, 5) for q in _dedupe(trends)[:3]],
        "reddit": [(q, 25) for q in _dedupe(community)],
        "twitter": [(" OR ".join(f'"{t}"' if " " in t else t for t in search_terms(idea)), 20)],
        "facebook": [(terms, 10)],
        "youtube": [(terms, 15)],
    }
