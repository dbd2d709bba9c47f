# Evidence providers package
from .base import EvidenceProvider, parse_count
from .reddit import RedditProvider, resolve_subreddits
from .serpapi import (
    BingSearchProvider,
    FacebookProfileProvider,
    GoogleSearchProvider,
    GoogleTrendsProvider,
    YouTubeSearchProvider,
)
from .twitter import TwitterProvider


def build_default_providers(**kwargs) -> dict[str, EvidenceProvider]:
    """One instance of every provider, keyed by name, configured from env."""
    providers: list[EvidenceProvider] = [
        GoogleSearchProvider(**kwargs),
        BingSearchProvider(**kwargs),
        GoogleTrendsProvider(**kwargs),
        RedditProvider(**kwargs),
        TwitterProvider(**kwargs),
        FacebookProfileProvider(**kwargs),
        YouTubeSearchProvider(**kwargs),
    ]
    return {p.name: p for p in providers}


__all__ = [
    "EvidenceProvider",
    "parse_count",
    "GoogleSearchProvider",
    "BingSearchProvider",
    "GoogleTrendsProvider",
    "RedditProvider",
    "resolve_subreddits",
    "TwitterProvider",
    "FacebookProfileProvider",
    "YouTubeSearchProvider",
    "build_default_providers",
]
