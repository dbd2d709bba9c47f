"""Query plan and evidence normalization tests.  Pure functions, no I/O."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from ideasignal.schemas.research_schema import EvidenceChunk, EvidenceType, IdeaContext
from ideasignal.services.normalizer import (
    clean_text,
    format_chunks_for_prompt,
    merge_evidence,
    normalize,
    to_trend_points,
)
from ideasignal.services.providers import (
    FacebookProfileProvider,
    GoogleSearchProvider,
    GoogleTrendsProvider,
    RedditProvider,
    TwitterProvider,
)
from ideasignal.services.query_builder import build_query_plan, search_terms


IDEA = IdeaContext(
    title="AI Meal Planner",
    description="Plan weekly meals from fridge leftovers",
    tags=("food", "ai"),
)


def _chunk(url, provider="google", source_type="web"):
    return EvidenceChunk(
        title=f"Title for {url}",
        url=url,
        cleaned_text="text",
        source_provider=provider,
        evidence_type=EvidenceType.DIRECTIONAL,
        source_type=source_type,
    )


# ---------------------------------------------------------------------------
# Query builder
# ---------------------------------------------------------------------------

class TestQueryPlan:

    def test_plan_covers_every_provider(self):
        plan = build_query_plan(IDEA)
        assert set(plan) == {"google", "bing", "google_trends", "reddit", "twitter", "facebook", "youtube"}

    def test_plan_is_deterministic(self):
        assert build_query_plan(IDEA) == build_query_plan(IDEA)

    def test_web_queries(self):
        google = [q for q, _ in build_query_plan(IDEA)["google"]]
        assert google[0] == "AI Meal Planner market size statistics"
        assert google[1] == "AI Meal Planner food ai"
        assert google[2] == "AI Meal Planner alternatives competitors pricing"
        assert google[3] == "plan weekly problem"
        assert len(build_query_plan(IDEA)["bing"]) == 2

    def test_trends_use_title_and_leading_tags(self):
        trends = build_query_plan(IDEA)["google_trends"]
        assert [q for q, _ in trends] == ["AI Meal Planner", "food", "ai"]
        assert all(limit == 5 for _, limit in trends)

    def test_twitter_quotes_multi_word_terms(self):
        (query, limit), = build_query_plan(IDEA)["twitter"]
        assert query == '"AI Meal Planner" OR food OR ai'
        assert limit == 20

    def test_search_terms_dedupe_case_insensitively(self):
        idea = IdeaContext(title="Food", tags=("food", "FOOD", "delivery"))
        assert search_terms(idea) == ["Food", "delivery"]

    def test_short_description_adds_no_problem_query(self):
        idea = IdeaContext(title="Meal Planner", description="an app")
        google = [q for q, _ in build_query_plan(idea)["google"]]
        assert not any(q.endswith("problem") for q in google)


# ---------------------------------------------------------------------------
# Text cleaning
# ---------------------------------------------------------------------------

class TestCleanText:

    def test_strips_markup_entities_and_urls(self):
        assert clean_text("<p>Hello&amp; world https://x.com/a</p>") == "Hello& world"

    def test_collapses_whitespace(self):
        assert clean_text("a \n\n  b\tc") == "a b c"

    def test_truncates_with_ellipsis(self):
        cleaned = clean_text("a" * 2000)
        assert len(cleaned) == 1000
        assert cleaned.endswith("…")

    def test_empty_input(self):
        assert clean_text(None) == ""
        assert clean_text("") == ""


# ---------------------------------------------------------------------------
# normalize
# ---------------------------------------------------------------------------

class TestNormalize:

    def test_web_records_become_chunks_with_provider_defaults(self):
        records = [
            {"title": "Meal kits grow 12%", "link": "https://example.com/a", "snippet": "The market grew <b>12%</b> last year"},
            {"title": "No link", "link": "", "snippet": "dropped"},
        ]
        chunks = normalize(records, GoogleSearchProvider(api_key="k"))

        assert len(chunks) == 1
        chunk = chunks[0]
        assert chunk.url == "https://example.com/a"
        assert chunk.cleaned_text == "The market grew 12% last year"
        assert chunk.source_provider == "google"
        assert chunk.source_type == "web"
        assert chunk.evidence_type == EvidenceType.DIRECTIONAL

    def test_evidence_type_override(self):
        records = [{"title": "t", "link": "https://example.com/a", "snippet": "s"}]
        chunks = normalize(records, GoogleSearchProvider(api_key="k"), EvidenceType.QUANTITATIVE)
        assert chunks[0].evidence_type == EvidenceType.QUANTITATIVE

    def test_reddit_text_carries_engagement(self):
        records = [
            {
                "title": "Anyone using a meal planner?",
                "selftext": "I waste so much food every week.",
                "subreddit": "MealPrepSunday",
                "post_url": "https://reddit.com/r/MealPrepSunday/comments/p1/",
                "score": 120,
                "num_comments": 45,
            }
        ]
        chunk = normalize(records, RedditProvider(client_id="i", client_secret="s"))[0]
        assert chunk.cleaned_text.startswith("I waste so much food every week.")
        assert "r/MealPrepSunday" in chunk.cleaned_text
        assert "120 upvotes" in chunk.cleaned_text
        assert chunk.evidence_type == EvidenceType.STATED
        assert chunk.source_type == "forum"

    def test_twitter_title_is_handle(self):
        records = [
            {
                "text": "Would pay for this",
                "author_username": "hungrydev",
                "tweet_url": "https://twitter.com/hungrydev/status/1",
                "like_count": 1200,
                "retweet_count": None,
            }
        ]
        chunk = normalize(records, TwitterProvider(bearer_token="b"))[0]
        assert chunk.title == "@hungrydev"
        assert "Likes: 1,200" in chunk.cleaned_text
        assert "Retweets" not in chunk.cleaned_text

    def test_facebook_counts_in_text(self):
        records = [
            {
                "id": "mealprepco",
                "name": "Meal Prep Co",
                "profile_url": "https://www.facebook.com/mealprepco",
                "about": "Weekly plans",
                "likes": 29000,
                "followers": None,
            }
        ]
        chunk = normalize(records, FacebookProfileProvider(api_key="k"))[0]
        assert chunk.cleaned_text == "Likes: 29,000 · Weekly plans"
        assert chunk.evidence_type == EvidenceType.QUANTITATIVE

    def test_trend_records_become_one_chunk_per_query(self):
        records = [
            {"query": "meal planner", "date": "Week 1", "value": 40, "extracted_value": 40},
            {"query": "meal planner", "date": "Week 2", "value": 55, "extracted_value": 55},
            {"query": "food", "date": "Week 1", "value": 80, "extracted_value": 80},
        ]
        chunks = normalize(records, GoogleTrendsProvider(api_key="k"))

        assert [c.title for c in chunks] == ["Google Trends: meal planner", "Google Trends: food"]
        assert "Week 1: 40; Week 2: 55" in chunks[0].cleaned_text
        assert chunks[0].url.startswith("https://trends.google.com/trends/explore")
        assert chunks[0].source_type == "trend"

    def test_unknown_trend_value_is_not_rendered_as_zero(self):
        records = [
            {"query": "meal planner", "date": "Week 1", "value": None, "extracted_value": None},
            {"query": "meal planner", "date": "Week 2", "value": 0, "extracted_value": 0},
        ]
        chunk = normalize(records, GoogleTrendsProvider(api_key="k"))[0]
        assert "Week 1: n/a; Week 2: 0" in chunk.cleaned_text

    def test_reddit_unknown_engagement_is_omitted(self):
        records = [{"title": "t", "selftext": "body", "post_url": "https://reddit.com/r/x/1", "score": None}]
        chunk = normalize(records, RedditProvider(client_id="i", client_secret="s"))[0]
        assert chunk.cleaned_text == "body"

    def test_malformed_trend_records_are_dropped(self):
        points = to_trend_points([{"query": "ok", "date": "d", "value": 1}, {"value": "not-a-point"}])
        assert len(points) == 1


# ---------------------------------------------------------------------------
# merge / cap / prompt formatting
# ---------------------------------------------------------------------------

class TestMergeEvidence:

    def test_caps_total_chunks(self):
        groups = [[_chunk(f"https://example.com/{g}/{i}") for i in range(50)] for g in range(3)]
        merged = merge_evidence(groups)
        assert len(merged) == 120
        # Provider order kept; the overflow comes off the last group
        assert merged[0].url == "https://example.com/0/0"
        assert merged[-1].url == "https://example.com/2/19"

    def test_repeated_urls_keep_first(self):
        groups = [
            [_chunk("https://example.com/shared", provider="google")],
            [_chunk("https://example.com/shared", provider="bing"), _chunk("https://example.com/b", provider="bing")],
        ]
        merged = merge_evidence(groups)
        assert [c.url for c in merged] == ["https://example.com/shared", "https://example.com/b"]
        assert merged[0].source_provider == "google"

    def test_custom_cap(self):
        merged = merge_evidence([[_chunk(f"https://example.com/{i}") for i in range(10)]], cap=4)
        assert len(merged) == 4


def test_prompt_formatting_uses_stable_indices():
    text = format_chunks_for_prompt([_chunk("https://example.com/a"), _chunk("https://example.com/b")])
    assert text.startswith("[1] (google, directional) Title for https://example.com/a")
    assert "\n\n[2] (google, directional)" in text
    assert "URL: https://example.com/b" in text
