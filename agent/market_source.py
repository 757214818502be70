"""
market_source.py — Market and news collaborators with stale-on-failure caching.

    CachedMarketSource  — Polymarket Gamma listings, 60 s TTL
    CachedNewsFeed      — merged news providers, 5 min TTL, URL/title dedup

Both wrap an async fetcher in a MarketListCache. A failed upstream fetch
serves the last good list (stale) when one exists; on a cold start with a
failing upstream they return [] so callers can treat it as "try again later".
Neither ever raises to its caller.

Usage:
    markets = CachedMarketSource(GammaMarketFetcher())
    news = CachedNewsFeed([newsapi_top_headlines(api_key)])
    all_markets, articles = await asyncio.gather(
        markets.fetch_all_markets(), news.fetch_latest_news()
    )
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx
from loguru import logger

from caches import Clock, DEFAULT_MARKET_TTL, DEFAULT_NEWS_TTL, MarketListCache
from errors import MarketDataError
from models import Market, NewsArticle

MarketFetcher = Callable[[], Awaitable[list[Market]]]
NewsProvider = Callable[[], Awaitable[list[NewsArticle]]]

GAMMA_MARKETS_URL = "https://gamma-api.polymarket.com/markets"
GAMMA_MAX_PAGES = 5
NEWSAPI_TOP_HEADLINES_URL = "https://newsapi.org/v2/top-headlines"
FETCH_TIMEOUT = 15.0

CATEGORY_MAP: dict[str, str] = {
    "crypto": "Crypto",
    "cryptocurrency": "Crypto",
    "technology": "Tech",
    "tech": "Tech",
    "finance": "Finance",
    "financial": "Finance",
    "politics": "Politics",
    "political": "Politics",
    "elections": "Elections",
    "election": "Elections",
    "sports": "Sports",
    "entertainment": "Entertainment",
    "world": "World",
    "geopolitics": "Geopolitics",
    "geopolitical": "Geopolitics",
}


# ─── Polymarket Mapping ───────────────────────────────────────────────────────

def map_category(raw: Any) -> str:
    """Normalise an upstream category or tag to the engine's category names."""
    if not raw or not isinstance(raw, str):
        return "Other"
    return CATEGORY_MAP.get(raw.strip().lower(), "Other")


def _to_float(value: Any, default: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return default if result != result else result   # NaN


def _probability(row: dict) -> float:
    prices = row.get("outcomePrices")
    if isinstance(prices, str):
        try:
            prices = json.loads(prices)
        except ValueError:
            prices = None
    if isinstance(prices, list) and prices:
        return min(1.0, max(0.0, _to_float(prices[0], 0.5)))
    for key in ("probability", "lastTradePrice", "currentPrice"):
        if row.get(key) is not None:
            return min(1.0, max(0.0, _to_float(row[key], 0.5)))
    return 0.5


def map_gamma_market(row: dict) -> Market:
    """
    Map one Gamma API row to a Market.

    Rows without any id keep an empty id; the generator drops those before
    scoring.
    """
    market_id = row.get("conditionId") or row.get("condition_id") or row.get("id") or row.get("slug") or ""
    category_raw = row.get("category")
    if not category_raw:
        tags = row.get("tags") or []
        if tags:
            first = tags[0]
            category_raw = first.get("label") if isinstance(first, dict) else str(first)
    return Market(
        id=str(market_id),
        question=row.get("question") or row.get("title") or "",
        category=map_category(category_raw),
        volume_usd=_to_float(row.get("volume") or row.get("volumeNum") or row.get("volume24hr"), 0.0),
        liquidity_usd=_to_float(row.get("liquidity") or row.get("liquidityNum"), 0.0),
        current_probability=_probability(row),
        price_change_24h=_to_float(row.get("oneDayPriceChange") or row.get("priceChange24h"), 0.0),
    )


class GammaMarketFetcher:
    """Pages through active Polymarket markets on the Gamma REST API."""

    def __init__(
        self,
        url: str = GAMMA_MARKETS_URL,
        page_limit: int = 500,
        max_pages: int = GAMMA_MAX_PAGES,
        timeout: float = FETCH_TIMEOUT,
    ) -> None:
        self.url = url
        self.page_limit = page_limit
        self.max_pages = max_pages
        self.timeout = timeout

    async def __call__(self) -> list[Market]:
        rows: list[dict] = []
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                for page in range(self.max_pages):
                    params = {
                        "active": "true",
                        "closed": "false",
                        "limit": self.page_limit,
                        "offset": page * self.page_limit,
                    }
                    resp = await client.get(self.url, params=params)
                    resp.raise_for_status()
                    data = resp.json()
                    batch = data if isinstance(data, list) else (data.get("markets") or data.get("data") or [])
                    rows.extend(batch)
                    if len(batch) < self.page_limit:
                        break
        except httpx.HTTPError as e:
            raise MarketDataError(f"Gamma API request failed: {e}") from e

        markets = [map_gamma_market(r) for r in rows if isinstance(r, dict)]
        return [m for m in markets if m.question]


# ─── Market Source ────────────────────────────────────────────────────────────

class CachedMarketSource:
    """Market collaborator with a shared 60 s cache."""

    def __init__(
        self,
        fetcher: Optional[MarketFetcher] = None,
        ttl: float = DEFAULT_MARKET_TTL,
        clock: Clock = time.time,
    ) -> None:
        self._fetcher = fetcher or GammaMarketFetcher()
        self.cache: MarketListCache[Market] = MarketListCache(ttl=ttl, clock=clock)

    async def fetch_all_markets(self) -> list[Market]:
        cached = self.cache.get()
        if cached is not None:
            logger.debug(f"[Markets] Cache hit: {len(cached)} markets (age {self.cache.age():.0f}s)")
            return cached

        try:
            markets = await self._fetcher()
        except Exception as exc:
            stale = self.cache.get_stale()
            if stale is not None:
                logger.warning(f"[Markets] Fetch failed, serving {len(stale)} stale markets: {exc}")
                return stale
            logger.error(f"[Markets] Fetch failed with no cached markets: {exc}")
            return []

        self.cache.set(markets)
        logger.info(f"[Markets] Fetched {len(markets)} markets")
        return markets

    def clear(self) -> None:
        self.cache.clear()


# ─── News Feed ────────────────────────────────────────────────────────────────

_WHITESPACE = re.compile(r"\s+")


def _normalise_title(title: str) -> str:
    return _WHITESPACE.sub(" ", (title or "").strip().lower())


def dedupe_articles(articles: Sequence[NewsArticle]) -> list[NewsArticle]:
    """Drop repeats by URL, then by normalised title. First occurrence wins."""
    seen_urls: set[str] = set()
    seen_titles: set[str] = set()
    unique = []
    for article in articles:
        url = (article.url or "").strip()
        title = _normalise_title(article.title)
        if url and url in seen_urls:
            continue
        if title and title in seen_titles:
            continue
        if url:
            seen_urls.add(url)
        if title:
            seen_titles.add(title)
        unique.append(article)
    return unique


def newsapi_top_headlines(
    api_key: str,
    page_size: int = 100,
    timeout: float = FETCH_TIMEOUT,
) -> NewsProvider:
    """NewsAPI top-headlines provider."""

    async def fetch() -> list[NewsArticle]:
        params = {"language": "en", "pageSize": page_size, "apiKey": api_key}
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.get(NEWSAPI_TOP_HEADLINES_URL, params=params)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as e:
            raise MarketDataError(f"NewsAPI request failed: {e}") from e

        articles = []
        for row in data.get("articles") or []:
            if not row.get("title"):
                continue
            source = row.get("source") or {}
            articles.append(NewsArticle(
                title=row["title"],
                source=source.get("name", "") if isinstance(source, dict) else str(source),
                published_at=row.get("publishedAt") or "",
                description=row.get("description"),
                content=row.get("content"),
                url=row.get("url"),
            ))
        return articles

    fetch.__name__ = "newsapi_top_headlines"
    return fetch


class CachedNewsFeed:
    """News collaborator merging several providers behind a 5 min cache."""

    def __init__(
        self,
        providers: Optional[Sequence[NewsProvider]] = None,
        ttl: float = DEFAULT_NEWS_TTL,
        clock: Clock = time.time,
    ) -> None:
        self._providers = list(providers or [])
        self.cache: MarketListCache[NewsArticle] = MarketListCache(ttl=ttl, clock=clock)

    async def fetch_latest_news(self) -> list[NewsArticle]:
        cached = self.cache.get()
        if cached is not None:
            logger.debug(f"[News] Cache hit: {len(cached)} articles")
            return cached

        if not self._providers:
            return []

        results = await asyncio.gather(*(p() for p in self._providers), return_exceptions=True)
        merged: list[NewsArticle] = []
        failures = 0
        for provider, result in zip(self._providers, results):
            if isinstance(result, BaseException):
                failures += 1
                name = getattr(provider, "__name__", type(provider).__name__)
                logger.warning(f"[News] Provider {name} failed: {result}")
                continue
            merged.extend(result)

        if failures == len(self._providers):
            stale = self.cache.get_stale()
            if stale is not None:
                logger.warning(f"[News] All providers failed, serving {len(stale)} stale articles")
                return stale
            logger.error("[News] All providers failed with no cached articles")
            return []

        articles = dedupe_articles(merged)
        self.cache.set(articles)
        logger.info(f"[News] Fetched {len(articles)} articles from {len(self._providers) - failures} providers")
        return articles

    def clear(self) -> None:
        self.cache.clear()
