"""
test_scoring.py — Tests for the market scoring engine.

Coverage:
  - Component scores: volume, liquidity, price movement, probability
  - Keyword extraction (stop-words, bare years, punctuation)
  - Recency buckets and source quality tiers
  - Recency-weighted news score (cap, rescale, no keywords)
  - Weighted total score (zero weights, category bias)
  - Candidate filter (thresholds, focus-category rule)
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from datetime import datetime, timedelta, timezone

import pytest

from models import (
    AgentProfile,
    Market,
    NewsArticle,
    NewsRelevance,
    RiskLevel,
    ScoreComponents,
    ScoredMarket,
    ScoringWeights,
)
from scoring import (
    compute_news_relevance,
    compute_recency_weighted_news_score,
    compute_weighted_total_score,
    extract_keywords,
    filter_candidate_markets,
    recency_weight,
    score_liquidity,
    score_market_for_agent,
    score_price_movement,
    score_probability,
    score_volume,
    source_quality,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def ago(**kwargs) -> str:
    return (NOW - timedelta(**kwargs)).isoformat()


def make_agent(**overrides) -> AgentProfile:
    fields = dict(
        id="TEST_AGENT",
        display_name="Test Agent",
        risk=RiskLevel.MEDIUM,
        max_trades=2,
        min_volume=10_000,
        min_liquidity=5_000,
        provider="openai",
    )
    fields.update(overrides)
    return AgentProfile(**fields)


def make_scored(category: str = "Crypto", **components) -> ScoredMarket:
    c = dict(volume_score=30.0, liquidity_score=20.0, price_movement_score=15.0,
             news_score=25.0, prob_score=10.0)
    c.update(components)
    market = Market(id="m1", question="Will Bitcoin reach $100k?", category=category)
    return ScoredMarket(market=market, score=0.0, components=ScoreComponents(**c))


# ─── Component Scores ─────────────────────────────────────────────────────────

class TestComponentScores:

    def test_probability_peaks_at_half(self):
        assert score_probability(0.5) == 10

    def test_probability_zero_at_extremes(self):
        assert score_probability(0.0) == 0
        assert score_probability(1.0) == 0

    def test_probability_quarter(self):
        assert score_probability(0.25) == pytest.approx(5.0)

    def test_volume_saturates_at_30(self):
        assert score_volume(0) == 0
        assert score_volume(50_000) == pytest.approx(15.0)
        assert score_volume(100_000) == pytest.approx(30.0)
        assert score_volume(5_000_000) == pytest.approx(30.0)

    def test_liquidity_saturates_at_20(self):
        assert score_liquidity(25_000) == pytest.approx(10.0)
        assert score_liquidity(50_000) == pytest.approx(20.0)
        assert score_liquidity(10_000_000) == pytest.approx(20.0)

    def test_volume_and_liquidity_non_decreasing(self):
        values = [0, 1, 10, 1_000, 25_000, 49_999, 50_000, 99_999, 100_000, 1e9]
        vols = [score_volume(v) for v in values]
        liqs = [score_liquidity(v) for v in values]
        assert vols == sorted(vols)
        assert liqs == sorted(liqs)

    def test_price_movement_uses_magnitude(self):
        assert score_price_movement(0.05) == pytest.approx(7.5)
        assert score_price_movement(-0.05) == pytest.approx(7.5)
        assert score_price_movement(0.5) == pytest.approx(15.0)

    def test_components_feed_weighted_mean(self):
        market = Market(id="m", question="q", volume_usd=100_000, liquidity_usd=50_000,
                        current_probability=0.5, price_change_24h=0.2)
        scored = score_market_for_agent(market, [], make_agent(), NOW)
        assert scored.components.volume_score == pytest.approx(30.0)
        assert scored.components.news_score == 0.0
        assert scored.score == pytest.approx((30 + 20 + 15 + 0 + 10) / 5)


# ─── Keywords / Recency / Source ──────────────────────────────────────────────

class TestNewsHelpers:

    def test_extract_keywords_drops_stop_words_and_years(self):
        assert extract_keywords("Will the Fed cut rates in 2025?") == ["rates"]

    def test_extract_keywords_splits_punctuation(self):
        words = extract_keywords("Trump-Biden debate: ratings (final)")
        assert "trump" in words
        assert "biden" in words
        assert "debate" in words
        assert "final" in words

    def test_recency_buckets(self):
        assert recency_weight(ago(minutes=30), NOW) == 1.0
        assert recency_weight(ago(hours=2), NOW) == 0.7
        assert recency_weight(ago(hours=12), NOW) == 0.4
        assert recency_weight(ago(days=2), NOW) == 0.25
        assert recency_weight(ago(days=5), NOW) == 0.1

    def test_recency_unparseable_is_stale(self):
        assert recency_weight("not a date", NOW) == 0.1
        assert recency_weight("", NOW) == 0.1

    def test_recency_accepts_zulu_suffix(self):
        ts = (NOW - timedelta(minutes=5)).strftime("%Y-%m-%dT%H:%M:%SZ")
        assert recency_weight(ts, NOW) == 1.0

    def test_source_quality_tiers(self):
        assert source_quality(NewsArticle(title="t", source="Reuters")) == "TOP_TIER"
        assert source_quality(NewsArticle(title="t", source="The Wall Street Journal")) == "TOP_TIER"
        assert source_quality(NewsArticle(title="t", source="BBC News")) == "MAJOR"
        assert source_quality(NewsArticle(title="t", source="Some Blog")) == "LONG_TAIL"
        assert source_quality(NewsArticle(title="t", source="")) == "LONG_TAIL"


# ─── News Score ───────────────────────────────────────────────────────────────

class TestNewsScore:

    def test_single_fresh_top_tier_article(self):
        market = Market(id="m", question="Will Bitcoin reach $100k?")
        articles = [NewsArticle(title="Bitcoin rallies again", source="Reuters",
                                published_at=ago(minutes=10))]
        score = compute_recency_weighted_news_score(market, articles, NOW)
        assert score == pytest.approx(25 / 6)

    def test_score_caps_at_25(self):
        market = Market(id="m", question="Will Bitcoin reach $100k?")
        articles = [NewsArticle(title=f"Bitcoin story {i}", source="Reuters",
                                published_at=ago(minutes=1)) for i in range(20)]
        assert compute_recency_weighted_news_score(market, articles, NOW) == pytest.approx(25.0)

    def test_unrelated_articles_score_zero(self):
        market = Market(id="m", question="Will Bitcoin reach $100k?")
        articles = [NewsArticle(title="Football results", source="BBC", published_at=ago(minutes=1))]
        assert compute_recency_weighted_news_score(market, articles, NOW) == 0.0

    def test_no_keywords_scores_zero(self):
        market = Market(id="m", question="Yes?")
        articles = [NewsArticle(title="Yes yes yes", source="Reuters", published_at=ago(minutes=1))]
        assert compute_recency_weighted_news_score(market, articles, NOW) == 0.0

    def test_description_and_content_are_matched(self):
        market = Market(id="m", question="Will Ethereum flip Bitcoin?")
        articles = [NewsArticle(title="Markets today", source="Blog", published_at=ago(minutes=1),
                                description="ethereum upgrade lands")]
        score = compute_recency_weighted_news_score(market, articles, NOW)
        assert score == pytest.approx(0.5 / 6 * 25)

    def test_news_relevance_counts_matches(self):
        market = Market(id="m", question="Will Bitcoin reach $100k?")
        articles = [
            NewsArticle(title="Bitcoin up"),
            NewsArticle(title="Weather"),
            NewsArticle(title="bitcoin down"),
        ]
        relevance = compute_news_relevance(market, articles)
        assert relevance.count == 2
        assert relevance.matched_titles == ["Bitcoin up", "bitcoin down"]


# ─── Weighted Total ───────────────────────────────────────────────────────────

class TestWeightedTotal:

    def test_uniform_weights_give_mean(self):
        agent = make_agent()
        assert compute_weighted_total_score(make_scored(), agent) == pytest.approx(100 / 5)

    def test_zero_weight_sum_is_zero(self):
        agent = make_agent(weights=ScoringWeights(0, 0, 0, 0, 0))
        assert compute_weighted_total_score(make_scored(), agent) == 0.0

    def test_category_bias_applied(self):
        agent = make_agent()
        score = compute_weighted_total_score(make_scored("Crypto"), agent, {"Crypto": 1.5})
        assert score == pytest.approx(30.0)

    def test_category_bias_ignored_for_other(self):
        agent = make_agent()
        score = compute_weighted_total_score(make_scored("Other"), agent, {"Other": 2.0})
        assert score == pytest.approx(20.0)

    def test_score_market_for_agent_sets_weighted_score(self):
        agent = make_agent(weights=ScoringWeights(1, 0, 0, 0, 0))
        market = Market(id="m", question="q", volume_usd=50_000)
        scored = score_market_for_agent(market, [], agent, NOW)
        assert scored.score == pytest.approx(15.0)
        assert scored.components.volume_score == pytest.approx(15.0)


# ─── Candidate Filter ─────────────────────────────────────────────────────────

class TestCandidateFilter:

    def _markets(self, n_focus: int, n_other: int) -> list:
        focus = [Market(id=f"f{i}", question="q", category="Crypto",
                        volume_usd=20_000, liquidity_usd=10_000) for i in range(n_focus)]
        other = [Market(id=f"o{i}", question="q", category="Sports",
                        volume_usd=20_000, liquidity_usd=10_000) for i in range(n_other)]
        return focus + other

    def test_thresholds_exclude_thin_markets(self):
        agent = make_agent()
        markets = [
            Market(id="ok", question="q", volume_usd=20_000, liquidity_usd=10_000),
            Market(id="low_vol", question="q", volume_usd=5_000, liquidity_usd=10_000),
            Market(id="low_liq", question="q", volume_usd=20_000, liquidity_usd=1_000),
        ]
        assert [m.id for m in filter_candidate_markets(agent, markets)] == ["ok"]

    def test_focus_subset_used_when_large_enough(self):
        agent = make_agent(focus_categories=("Crypto",))
        result = filter_candidate_markets(agent, self._markets(n_focus=4, n_other=3))
        assert {m.category for m in result} == {"Crypto"}

    def test_focus_subset_ignored_when_too_small(self):
        agent = make_agent(focus_categories=("Crypto",))
        result = filter_candidate_markets(agent, self._markets(n_focus=3, n_other=3))
        assert len(result) == 6
