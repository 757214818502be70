#!/usr/bin/env python3
"""
main.py — Agent Trade-Decision Engine Entry Point

Runs generation cycles for the autonomous agents:
1. Fetches prediction markets and news (cached, stale-on-failure)
2. Scores and rotates candidate markets per agent
3. Asks each agent's AI provider for decisions (deterministic fallback)
4. Sizes trades against each agent's simulated portfolio
5. Prints the leaderboard, consensus markets and conflicts

Usage:
    python main.py [--agent GPT_5 ...] [--once] [--interval 60]

Environment:
    Provider keys (OPENAI_API_KEY, ANTHROPIC_API_KEY, GROK_API_KEY,
    GOOGLE_AI_API_KEY, DEEPSEEK_API_KEY, QWEN_API_KEY) are optional.
    See settings.py for the full list.
"""

import argparse
import asyncio
import os
import sys
from datetime import datetime, timezone

from loguru import logger

from agent_profiles import ALL_AGENT_IDS
from engine_context import EngineContext
from generator import TradeGenerator
from leaderboard import build_leaderboard, find_conflicts, find_consensus_markets
from settings import EngineSettings


def setup_logging(log_level: str = "INFO") -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
        level=log_level,
        colorize=True,
    )
    logger.add(
        "logs/engine.log",
        rotation="10 MB",
        retention="7 days",
        level="DEBUG",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
    )


class EngineRunner:
    """Runs generation cycles for a set of agents and reports standings."""

    def __init__(self, context: EngineContext, agent_ids: list[str]) -> None:
        self.ctx = context
        self.generator = TradeGenerator(context)
        self.agent_ids = agent_ids
        self.cycle = 0

    async def generation_cycle(self) -> None:
        self.cycle += 1
        now = datetime.now(timezone.utc).isoformat()
        logger.info(f"--- Cycle {self.cycle} | {now} ---")

        results = await asyncio.gather(
            *(self.generator.generate_agent_trades(a) for a in self.agent_ids),
            return_exceptions=True,
        )
        for agent_id, result in zip(self.agent_ids, results):
            if isinstance(result, Exception):
                logger.error(f"[Agent:{agent_id}] Generation failed: {result}")
                continue
            research = self.generator.get_agent_research(agent_id)
            logger.info(f"[Agent:{agent_id}] {len(result)} trades, {len(research)} research notes")

        self.report()

    def report(self) -> None:
        trades_by_agent = self.ctx.store.get_trades_by_agent()
        standings = build_leaderboard(self.ctx.portfolios, trades_by_agent)
        for rank, m in enumerate(standings, start=1):
            logger.info(
                f"#{rank} {m.agent_id:<12} equity=${m.current_capital_usd:,.2f} "
                f"pnl={m.pnl_pct * 100:+.2f}% open={m.open_positions} "
                f"win_rate={m.win_rate:.0%} dd={m.max_drawdown_pct:.1%}"
            )
        for c in find_consensus_markets(trades_by_agent)[:5]:
            logger.info(
                f"Consensus {c.consensus_side} ({c.consensus_strength:.0%}) "
                f"on '{c.market_question[:60]}' by {', '.join(c.agents)}"
            )
        for c in find_conflicts(trades_by_agent)[:5]:
            logger.info(
                f"Conflict on '{c.market_question[:60]}': "
                f"YES={','.join(c.yes_agents)} NO={','.join(c.no_agents)}"
            )

    async def run(self, once: bool = False, interval: float = 60.0) -> None:
        if once:
            await self.generation_cycle()
            return
        while True:
            try:
                await self.generation_cycle()
            except Exception as e:
                logger.error(f"Cycle error: {e}")
            logger.info(f"Sleeping {interval:.0f}s until next cycle...")
            await asyncio.sleep(interval)


async def main() -> None:
    parser = argparse.ArgumentParser(description="Agent Trade-Decision Engine")
    parser.add_argument("--agent", action="append", dest="agents", metavar="AGENT_ID",
                        help=f"Agent to run (repeatable). Default: all of {', '.join(ALL_AGENT_IDS)}")
    parser.add_argument("--once", action="store_true",
                        help="Run one cycle then exit")
    parser.add_argument("--interval", type=float, default=60.0,
                        help="Seconds between cycles (default: 60)")
    args = parser.parse_args()

    settings = EngineSettings.from_env()

    os.makedirs("logs", exist_ok=True)
    if settings.trade_db_path != ":memory:":
        os.makedirs(os.path.dirname(settings.trade_db_path) or ".", exist_ok=True)
    setup_logging(settings.log_level)

    agent_ids = args.agents or list(ALL_AGENT_IDS)
    unknown = [a for a in agent_ids if a not in ALL_AGENT_IDS]
    if unknown:
        logger.error(f"Startup failed: unknown agent id(s) {unknown}")
        sys.exit(1)

    configured = [p for p, key in settings.provider_keys.items() if key]
    logger.info(f"AI providers configured: {', '.join(configured) or 'none (deterministic only)'}")

    runner = EngineRunner(EngineContext.build(settings), agent_ids)
    try:
        await runner.run(once=args.once, interval=args.interval)
    except KeyboardInterrupt:
        logger.info("Engine shutting down...")
    finally:
        runner.ctx.store.close()


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
