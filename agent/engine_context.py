"""
engine_context.py — Process-wide state for the trade-decision engine.

One EngineContext is built at process start and handed to the generator. It
owns every cache and every piece of keyed per-agent state, so tests can
build an isolated context (or call reset()) instead of touching globals.

    ctx = EngineContext.build(EngineSettings.from_env())
    generator = TradeGenerator(ctx)
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

from loguru import logger

from ai_providers import ProviderAdapter
from caches import Clock, DecisionCache, TradeCache
from decision_engine import DecisionEngine
from market_source import (
    CachedMarketSource,
    CachedNewsFeed,
    GammaMarketFetcher,
    MarketFetcher,
    NewsProvider,
    newsapi_top_headlines,
)
from models import ResearchDecision
from portfolio import AgentPortfolio, create_initial_portfolio, record_realized_pnl
from settings import EngineSettings
from trade_store import TradeStore
from web_research import WebResearcher


@dataclass
class EngineContext:
    settings: EngineSettings
    market_source: CachedMarketSource
    news_feed: CachedNewsFeed
    trade_cache: TradeCache
    decision_engine: DecisionEngine
    store: TradeStore
    web_researcher: WebResearcher
    clock: Clock = time.time
    research: dict[str, list[ResearchDecision]] = field(default_factory=dict)
    portfolios: dict[str, AgentPortfolio] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        settings: Optional[EngineSettings] = None,
        market_fetcher: Optional[MarketFetcher] = None,
        news_providers: Optional[Sequence[NewsProvider]] = None,
        adapters: Optional[dict[str, ProviderAdapter]] = None,
        store: Optional[TradeStore] = None,
        web_researcher: Optional[WebResearcher] = None,
        clock: Clock = time.time,
    ) -> "EngineContext":
        """Wire every collaborator from settings; any piece can be injected."""
        settings = settings or EngineSettings.from_env()
        for problem in settings.validate():
            logger.warning(f"Configuration problem: {problem}")

        if market_fetcher is None:
            market_fetcher = GammaMarketFetcher(
                url=settings.polymarket_gamma_url,
                page_limit=settings.polymarket_page_limit,
            )
        if news_providers is None:
            news_providers = (
                [newsapi_top_headlines(settings.news_api_key)] if settings.news_api_key else []
            )

        return cls(
            settings=settings,
            market_source=CachedMarketSource(
                market_fetcher, ttl=settings.market_cache_ttl_seconds, clock=clock
            ),
            news_feed=CachedNewsFeed(
                news_providers, ttl=settings.news_cache_ttl_seconds, clock=clock
            ),
            trade_cache=TradeCache(ttl=settings.trade_cache_ttl_seconds, clock=clock),
            decision_engine=DecisionEngine(
                settings,
                DecisionCache(ttl=settings.decision_cache_ttl_seconds, clock=clock),
                adapters=adapters,
            ),
            store=store or TradeStore(settings.trade_db_path),
            web_researcher=web_researcher or WebResearcher(settings.web_search_api_key),
            clock=clock,
        )

    def portfolio_for(self, agent_id: str) -> AgentPortfolio:
        """In-memory portfolio, loaded from the store or created on first use."""
        portfolio = self.portfolios.get(agent_id)
        if portfolio is None:
            portfolio = self.store.load_portfolio(agent_id) or create_initial_portfolio(agent_id)
            self.portfolios[agent_id] = portfolio
        return portfolio

    def settle_trade(
        self,
        trade_id: str,
        pnl_usd: float,
        closed_at: Optional[str] = None,
    ) -> bool:
        """
        Close an open trade with its realised PnL.

        The store record, the agent's portfolio (position removed, PnL
        credited, snapshot saved) and the agent's cached trades are updated
        together. Returns False when no open trade matched.
        """
        trade = self.store.get_trade(trade_id)
        if trade is None or not trade.is_open:
            return False
        if not self.store.settle_trade(trade_id, pnl_usd, closed_at):
            return False

        portfolio = self.portfolio_for(trade.agent_id)
        portfolio.open_positions.pop(trade.market_id, None)
        record_realized_pnl(portfolio, pnl_usd)
        self.store.save_portfolio(portfolio)
        self.trade_cache.invalidate(trade.agent_id)
        logger.info(
            f"[Agent:{trade.agent_id}] Settled {trade.side} {trade.market_id}, "
            f"PnL ${pnl_usd:+.2f} (equity ${portfolio.current_capital_usd:,.2f})"
        )
        return True

    def reset(self) -> None:
        """Drop all cached and keyed state, including persisted records."""
        self.market_source.clear()
        self.news_feed.clear()
        self.trade_cache.clear()
        self.decision_engine.decision_cache.clear()
        self.research.clear()
        self.portfolios.clear()
        self.store.clear()
