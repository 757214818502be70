"""
test_main.py — Tests for the engine runner (cycles and reporting).
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest
from unittest.mock import AsyncMock

from loguru import logger

from engine_context import EngineContext
from main import EngineRunner
from models import Market
from settings import EngineSettings
from trade_store import TradeStore


def make_runner(agent_ids, markets=None) -> EngineRunner:
    if markets is None:
        markets = [
            Market(id=f"m{i}", question=f"Will event {i} happen?", category="Finance",
                   volume_usd=150_000, liquidity_usd=50_000, current_probability=0.5)
            for i in range(40)
        ]
    ctx = EngineContext.build(
        settings=EngineSettings(),
        market_fetcher=AsyncMock(return_value=markets),
        news_providers=[],
        store=TradeStore(":memory:"),
        clock=lambda: 1_700_000_000.0,
    )
    return EngineRunner(ctx, agent_ids)


class TestEngineRunner:

    @pytest.mark.asyncio
    async def test_single_cycle_runs_every_agent(self):
        runner = make_runner(["GPT_5", "QWEN_2_5", "DEEPSEEK_V3"])
        await runner.run(once=True)
        assert runner.cycle == 1
        assert set(runner.ctx.portfolios) == {"GPT_5", "QWEN_2_5", "DEEPSEEK_V3"}
        for agent_id in runner.agent_ids:
            assert runner.generator.get_cached_trades_quick(agent_id) is not None

    @pytest.mark.asyncio
    async def test_failing_agent_does_not_stop_others(self):
        runner = make_runner(["GPT_5", "NOT_AN_AGENT"])
        lines = []
        sink_id = logger.add(lambda m: lines.append(str(m)), level="ERROR", format="{message}")
        try:
            await runner.generation_cycle()
        finally:
            logger.remove(sink_id)
        assert "GPT_5" in runner.ctx.portfolios
        assert any("NOT_AN_AGENT" in line for line in lines)

    @pytest.mark.asyncio
    async def test_report_with_no_trades(self):
        runner = make_runner(["GPT_5"], markets=[])
        await runner.generation_cycle()
        runner.report()
        assert runner.ctx.store.count() == 0
