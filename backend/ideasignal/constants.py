"""Centralized constants shared across the validation pipeline.

Static titles for the fixed hypothesis layers and market signal types, the
evidence caps applied before any generation call, and the subreddit
taxonomy used by the Reddit provider.
"""

from __future__ import annotations

from .schemas.validation_schema import HypothesisLayer, MarketSignalType

# ── Hypothesis layers ───────────────────────────────────────────────────
# Ordered; the report always lists layers in this order.

HYPOTHESIS_LAYER_TITLES: dict[HypothesisLayer, str] = {
    HypothesisLayer.EXISTENCE: "Problem Existence",
    HypothesisLayer.AWARENESS: "Problem Awareness",
    HypothesisLayer.CONSIDERATION: "Solution Consideration",
    HypothesisLayer.INTENT: "Adoption Intent",
    HypothesisLayer.PAY_INTENTION: "Willingness to Pay",
}

# ── Market signals ──────────────────────────────────────────────────────

MARKET_SIGNAL_TITLES: dict[MarketSignalType, str] = {
    MarketSignalType.DEMAND_INTENSITY: "Demand Intensity & Momentum",
    MarketSignalType.PROBLEM_SALIENCE: "Problem Salience & Urgency",
    MarketSignalType.EXISTING_SPEND: "Existing Spend & Budget Signals",
    MarketSignalType.COMPETITIVE_LANDSCAPE: "Competitive Landscape & Saturation",
    MarketSignalType.SWITCHING_FRICTION: "Switching & Adoption Friction",
    MarketSignalType.DISTRIBUTION: "Distribution & Reachability",
    MarketSignalType.GEOGRAPHIC_FIT: "Geographic & Cultural Fit",
    MarketSignalType.TIMING: "Timing & Market Readiness",
    MarketSignalType.ECONOMIC_PLAUSIBILITY: "Economic Plausibility",
}

# ── Evidence caps ───────────────────────────────────────────────────────

MAX_EVIDENCE_CHUNKS = 120
MAX_CHUNK_TEXT_CHARS = 1000

HYPOTHESIS_SEARCH_CHUNKS = 10
HYPOTHESIS_COMMUNITY_CHUNKS = 8
HYPOTHESIS_PROFILE_CHUNKS = 5

HYPOTHESIS_MAX_TOKENS = 2500
SYNTHESIS_MAX_TOKENS = 6500

# Source types counted as "community" evidence by the hypothesis generator.
COMMUNITY_SOURCE_TYPES: frozenset[str] = frozenset({"forum", "social", "video"})

# ── Reddit taxonomy ─────────────────────────────────────────────────────
# Default subreddits are always searched; tag matches are appended.

DEFAULT_SUBREDDITS: list[str] = [
    "startups",
    "SideProject",
    "Entrepreneur",
    "smallbusiness",
    "indiehackers",
    "SaaS",
]

INDUSTRY_SUBREDDIT_MAP: dict[str, list[str]] = {
    "saas": ["SaaS", "startups"],
    "ai": ["ArtificialIntelligence", "MachineLearning"],
    "fintech": ["fintech", "personalfinance"],
    "ecommerce": ["ecommerce", "shopify"],
    "healthtech": ["healthIT", "digitalhealth"],
    "edtech": ["edtech", "education"],
    "food": ["food", "MealPrepSunday", "EatCheapAndHealthy"],
    "fitness": ["Fitness", "loseit"],
    "marketplace": ["marketplaces", "smallbusiness"],
    "crypto": ["CryptoCurrency", "defi"],
    "cybersecurity": ["cybersecurity", "netsec"],
    "hr": ["humanresources", "recruiting"],
    "logistics": ["logistics", "supplychain"],
    "proptech": ["realestateinvesting", "proptech"],
    "legaltech": ["legaltech", "law"],
    "gaming": ["gamedev", "gaming"],
    "travel": ["travel", "solotravel"],
}

# ── Sentinels ───────────────────────────────────────────────────────────

NO_INTERNAL_EVIDENCE = "NO_INTERNAL_EVIDENCE"
NO_EXTERNAL_EVIDENCE = "NO_EXTERNAL_EVIDENCE"
