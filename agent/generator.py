"""
generator.py — Per-agent trade and research generation.

One generation cycle for an agent:

    1. fetch markets + news concurrently
    2. trade cache hit (same market-id set, within TTL) → return cached trades
    3. drop markets without an id, filter by agent thresholds, score, rotate
    4. for each selected candidate, sequentially:
         score <  min score                      → skip
         confidence ≥ min confidence             → TRADE (sized, position opened)
         otherwise                               → RESEARCH (NEUTRAL below 0.5)
       stop once max_trades trades exist
    5. revalue the portfolio, cache trades, store research

Usage:
    generator = TradeGenerator(EngineContext.build())
    trades = await generator.generate_agent_trades("GPT_5")
    notes = generator.get_agent_research("GPT_5")
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from agent_profiles import get_agent_profile
from engine_context import EngineContext
from models import (
    AgentProfile,
    AgentTrade,
    Decision,
    NewsArticle,
    ResearchDecision,
    ScoredMarket,
    TradeStatus,
)
from portfolio import AgentPortfolio, calculate_position_size, open_position, update_portfolio_metrics
from rotation import select_candidates
from scoring import compute_news_relevance, filter_candidate_markets, score_market_for_agent

NEUTRAL_CONFIDENCE = 0.5


def _iso(ts_ms: float) -> str:
    return datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc).isoformat()


def build_research_summary(agent: AgentProfile, question: str, side: str, confidence: float, factors: int) -> str:
    side_text = "analyzed" if side == "NEUTRAL" else f"leaning {side}"
    return (
        f'{agent.display_name} {side_text} on "{question}" with {round(confidence * 100)}% '
        f"confidence. Research indicates {factors} key factors to consider."
    )


class TradeGenerator:
    """Drives scoring, selection and decisions for one agent at a time."""

    def __init__(self, context: EngineContext) -> None:
        self.ctx = context

    # ── Public Surface ────────────────────────────────────────────────────────

    def get_agent_research(self, agent_id: str) -> list[ResearchDecision]:
        return list(self.ctx.research.get(agent_id, []))

    def get_cached_trades_quick(self, agent_id: str) -> Optional[list[AgentTrade]]:
        """Cached trades checked against the TTL only."""
        return self.ctx.trade_cache.get_quick(agent_id)

    async def generate_agent_trades(self, agent_id: str) -> list[AgentTrade]:
        agent = get_agent_profile(agent_id)
        prefix = f"[Agent:{agent.id}]"

        markets, news = await asyncio.gather(
            self.ctx.market_source.fetch_all_markets(),
            self.ctx.news_feed.fetch_latest_news(),
        )
        if not markets:
            logger.warning(f"{prefix} No markets available, try again later")
            return []

        market_ids = sorted(m.id for m in markets)
        cached = self.ctx.trade_cache.get(agent.id, market_ids)
        if cached is not None:
            logger.debug(f"{prefix} Returning {len(cached)} cached trades")
            return cached

        valid = [m for m in markets if m.has_valid_id]
        if len(valid) < len(markets):
            logger.warning(f"{prefix} Dropped {len(markets) - len(valid)} markets without an id")

        now_ms = self.ctx.clock() * 1000
        now = datetime.fromtimestamp(now_ms / 1000.0, tz=timezone.utc)

        candidates = filter_candidate_markets(agent, valid)
        scored = [score_market_for_agent(m, news, agent, now) for m in candidates]
        selected = select_candidates(scored, agent, now_ms, self.ctx.settings.rotation_bucket_ms)
        logger.info(
            f"{prefix} {len(valid)} markets, {len(candidates)} candidates, "
            f"{len(selected)} selected for decisions"
        )

        portfolio = self.ctx.portfolio_for(agent.id)
        trades: list[AgentTrade] = []
        research: list[ResearchDecision] = []

        for index, sm in enumerate(selected):
            if len(trades) >= agent.max_trades:
                break
            try:
                result = await self._process_candidate(agent, sm, news, index, now_ms, portfolio)
            except Exception as exc:
                logger.error(f"{prefix} Failed to process market {sm.id}: {exc}")
                continue
            if isinstance(result, AgentTrade):
                trades.append(result)
            elif isinstance(result, ResearchDecision):
                research.append(result)

        update_portfolio_metrics(portfolio, {m.id: m for m in valid})
        self.ctx.store.save_portfolio(portfolio)

        self.ctx.trade_cache.set(agent.id, trades, market_ids)
        self.ctx.research[agent.id] = research
        logger.info(
            f"{prefix} Generated {len(trades)} trades and {len(research)} research notes "
            f"(equity ${portfolio.current_capital_usd:,.2f})"
        )
        return trades

    # ── Per-Candidate ─────────────────────────────────────────────────────────

    async def _process_candidate(
        self,
        agent: AgentProfile,
        sm: ScoredMarket,
        news: list[NewsArticle],
        index: int,
        now_ms: float,
        portfolio: AgentPortfolio,
    ):
        settings = self.ctx.settings
        if sm.score < settings.trade_min_score:
            logger.debug(f"[Agent:{agent.id}] Skipping {sm.id}, score {sm.score:.1f} too low")
            return None

        relevance = compute_news_relevance(sm.market, news)
        web_results = []
        if self.ctx.web_researcher.enabled:
            web_results = await self.ctx.web_researcher.research_market(sm.question, sm.category)

        decision = await self.ctx.decision_engine.decide(
            agent, sm, news, index, web_results=web_results, news_relevance=relevance
        )

        if decision.confidence >= settings.trade_min_confidence:
            return self._open_trade(agent, sm, decision, now_ms, portfolio)
        return self._research_note(agent, sm, decision, index, now_ms)

    def _open_trade(
        self,
        agent: AgentProfile,
        sm: ScoredMarket,
        decision: Decision,
        now_ms: float,
        portfolio: AgentPortfolio,
    ) -> Optional[AgentTrade]:
        store = self.ctx.store
        if sm.id in portfolio.open_positions:
            existing = store.get_trades(agent_id=agent.id, status=TradeStatus.OPEN.value, market_id=sm.id)
            if existing:
                return existing[-1]

        size = calculate_position_size(agent.risk, decision.confidence, portfolio.current_capital_usd)
        trade = AgentTrade(
            id=f"{agent.id}:{sm.id}:{int(now_ms)}",
            agent_id=agent.id,
            market_id=sm.id,
            side=decision.side,
            confidence=decision.confidence,
            size_usd=size,
            opened_at=_iso(now_ms),
            category=sm.category,
            status=TradeStatus.OPEN.value,
            market_question=sm.question,
            reasoning=list(decision.reasoning),
            score=sm.score,
            source=decision.source,
        )

        position = open_position(portfolio, trade, sm.market.current_probability)
        if position is None:
            logger.info(f"[Agent:{agent.id}] No capacity for {sm.id}, trade not opened")
            return None
        trade.size_usd = position.size_usd
        store.record_trade(trade)
        logger.info(
            f"[Agent:{agent.id}] TRADE {trade.side} {sm.id} ${trade.size_usd:.2f} "
            f"(conf {trade.confidence:.2f}, score {sm.score:.1f}, {trade.source})"
        )
        return trade

    def _research_note(
        self,
        agent: AgentProfile,
        sm: ScoredMarket,
        decision: Decision,
        index: int,
        now_ms: float,
    ) -> ResearchDecision:
        side = "NEUTRAL" if decision.confidence < NEUTRAL_CONFIDENCE else decision.side
        note = ResearchDecision(
            id=f"{agent.id}:{sm.id}:research",
            agent_id=agent.id,
            market_id=sm.id,
            market_question=sm.question,
            side=side,
            confidence=decision.confidence,
            score=sm.score,
            reasoning=list(decision.reasoning),
            timestamp=_iso(now_ms - index * 1000),
            summary=build_research_summary(
                agent, sm.question, side, decision.confidence, len(decision.reasoning)
            ),
        )
        logger.debug(
            f"[Agent:{agent.id}] RESEARCH {sm.id} (score {sm.score:.1f}, side {side})"
        )
        return note
