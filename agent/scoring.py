"""
scoring.py — Market scoring engine.

Pure functions that turn a market snapshot into a 0–100 tradeability score:

    volume          0–30   min(volume / 100k, 1) * 30
    liquidity       0–20   min(liquidity / 50k, 1) * 20
    price movement  0–15   min(|Δ24h| * 10, 1) * 15
    news            0–25   recency- and source-weighted article intensity
    probability     0–10   highest at 50% (most undecided)

Agents combine the components with their own weights (weighted mean) and an
optional per-category bias multiplier.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Iterable, Optional

from models import (
    AgentProfile,
    Market,
    NewsArticle,
    NewsRelevance,
    ScoreComponents,
    ScoredMarket,
)


# ─── Constants ────────────────────────────────────────────────────────────────

VOLUME_SATURATION_USD = 100_000
LIQUIDITY_SATURATION_USD = 50_000

MAX_VOLUME_SCORE = 30.0
MAX_LIQUIDITY_SCORE = 20.0
MAX_PRICE_MOVEMENT_SCORE = 15.0
MAX_NEWS_SCORE = 25.0
MAX_PROB_SCORE = 10.0

RAW_NEWS_CAP = 6.0

KEYWORD_STOP_WORDS = frozenset(
    {"will", "the", "this", "that", "and", "2024", "2025", "2026", "2027", "2028"}
)
_KEYWORD_SPLIT = re.compile(r"[\s\-_.,;:!?()]+")

SOURCE_QUALITY_WEIGHT: dict[str, float] = {
    "TOP_TIER": 1.0,
    "MAJOR": 0.8,
    "LONG_TAIL": 0.5,
}

TOP_TIER_SOURCES = (
    "reuters",
    "bloomberg",
    "financial times",
    "wall street journal",
    "the economist",
)
MAJOR_SOURCES = ("cnn", "bbc", "cnbc", "forbes", "techcrunch")

# (max age in minutes, weight), checked in order
RECENCY_BUCKETS: tuple[tuple[float, float], ...] = (
    (60, 1.0),
    (360, 0.7),
    (1440, 0.4),
    (4320, 0.25),
)
STALE_RECENCY_WEIGHT = 0.1


# ─── Component Scores ─────────────────────────────────────────────────────────

def score_volume(volume_usd: float) -> float:
    return min(volume_usd / VOLUME_SATURATION_USD, 1.0) * MAX_VOLUME_SCORE


def score_liquidity(liquidity_usd: float) -> float:
    return min(liquidity_usd / LIQUIDITY_SATURATION_USD, 1.0) * MAX_LIQUIDITY_SCORE


def score_price_movement(price_change_24h: float) -> float:
    return min(abs(price_change_24h) * 10, 1.0) * MAX_PRICE_MOVEMENT_SCORE


def score_probability(probability: float) -> float:
    """Markets nearest 50% score highest."""
    return max(0.0, (1 - abs(probability - 0.5) * 2) * MAX_PROB_SCORE)


# ─── News Intensity ───────────────────────────────────────────────────────────

def extract_keywords(question: str) -> list[str]:
    """Question tokens of length ≥ 4 with stop-words and bare years removed."""
    words = _KEYWORD_SPLIT.split(question.lower())
    return [w for w in words if len(w) >= 4 and w not in KEYWORD_STOP_WORDS]


def parse_timestamp(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def recency_weight(published_at: str, now: Optional[datetime] = None) -> float:
    """Weight an article by age. Unparseable timestamps count as stale."""
    now = now or datetime.now(timezone.utc)
    published = parse_timestamp(published_at)
    if published is None:
        return STALE_RECENCY_WEIGHT
    age_minutes = (now - published).total_seconds() / 60.0
    for max_age, weight in RECENCY_BUCKETS:
        if age_minutes <= max_age:
            return weight
    return STALE_RECENCY_WEIGHT


def source_quality(article: NewsArticle) -> str:
    source = (article.source or "").lower()
    if any(name in source for name in TOP_TIER_SOURCES):
        return "TOP_TIER"
    if any(name in source for name in MAJOR_SOURCES):
        return "MAJOR"
    return "LONG_TAIL"


def _matches(keywords: list[str], article: NewsArticle) -> bool:
    text = article.text_blob
    return any(word in text for word in keywords)


def compute_recency_weighted_news_score(
    market: Market,
    articles: Iterable[NewsArticle],
    now: Optional[datetime] = None,
) -> float:
    """Sum recency × source quality over matching articles, cap, rescale to 0–25."""
    now = now or datetime.now(timezone.utc)
    keywords = extract_keywords(market.question)
    if not keywords:
        return 0.0

    raw = 0.0
    for article in articles:
        if _matches(keywords, article):
            raw += recency_weight(article.published_at, now) * SOURCE_QUALITY_WEIGHT[
                source_quality(article)
            ]

    raw = min(raw, RAW_NEWS_CAP)
    return (raw / RAW_NEWS_CAP) * MAX_NEWS_SCORE


def compute_news_relevance(market: Market, articles: Iterable[NewsArticle]) -> NewsRelevance:
    """Count of keyword-matching articles (no recency). Used for reasoning text."""
    keywords = extract_keywords(market.question)
    matched = [a.title for a in articles if keywords and _matches(keywords, a)]
    return NewsRelevance(count=len(matched), matched_titles=matched[:5])


# ─── Composite Scores ─────────────────────────────────────────────────────────

def compute_weighted_total_score(
    scored: ScoredMarket,
    agent: AgentProfile,
    category_bias: Optional[dict[str, float]] = None,
) -> float:
    c = scored.components
    w = agent.weights
    weight_sum = w.total
    if weight_sum <= 0:
        return 0.0

    weighted = (
        c.volume_score * w.volume_weight
        + c.liquidity_score * w.liquidity_weight
        + c.price_movement_score * w.price_movement_weight
        + c.news_score * w.news_weight
        + c.prob_score * w.prob_weight
    )
    final = weighted / weight_sum

    if category_bias:
        category = scored.category
        if category and category != "Other":
            final *= category_bias.get(category, 1.0)
    return final


def score_market_for_agent(
    market: Market,
    articles: list[NewsArticle],
    agent: AgentProfile,
    now: Optional[datetime] = None,
    category_bias: Optional[dict[str, float]] = None,
) -> ScoredMarket:
    """Agent-weighted score with recency-aware news intensity."""
    now = now or datetime.now(timezone.utc)
    components = ScoreComponents(
        volume_score=score_volume(market.volume_usd),
        liquidity_score=score_liquidity(market.liquidity_usd),
        price_movement_score=score_price_movement(market.price_change_24h),
        news_score=compute_recency_weighted_news_score(market, articles, now),
        prob_score=score_probability(market.current_probability),
    )
    scored = ScoredMarket(market=market, score=0.0, components=components)
    scored.score = compute_weighted_total_score(scored, agent, category_bias)
    return scored


# ─── Candidate Filter ─────────────────────────────────────────────────────────

def filter_candidate_markets(agent: AgentProfile, markets: list[Market]) -> list[Market]:
    """
    Keep markets meeting the agent's volume and liquidity floors.

    Focus categories narrow the set only when at least 2 × max_trades markets
    match them; otherwise the agent keeps the full filtered set.
    """
    candidates = [
        m for m in markets
        if m.volume_usd >= agent.min_volume and m.liquidity_usd >= agent.min_liquidity
    ]
    if agent.focus_categories:
        focus = [m for m in candidates if m.category in agent.focus_categories]
        if len(focus) >= agent.max_trades * 2:
            candidates = focus
    return candidates
