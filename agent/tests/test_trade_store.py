"""
test_trade_store.py — Tests for the SQLite trade and portfolio store.

Coverage:
  - record_trade / get_trade round trip (reasoning JSON, optional fields)
  - Validation: empty ids, negative size
  - Duplicate ids raise StoreError
  - settle_trade only closes open trades
  - get_trades filters, ordering, limit; get_trades_by_agent grouping
  - Portfolio snapshot upsert and reload
  - Persistent file-based DB (tmp_path), context manager
"""

from __future__ import annotations

import os
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest

from errors import StoreError, StoreValidationError
from models import AgentTrade
from portfolio import create_initial_portfolio, open_position, record_realized_pnl
from trade_store import TradeStore


# ─── Helpers ──────────────────────────────────────────────────────────────────


def make_trade(
    trade_id: str = "GPT_5:m1:1000",
    agent_id: str = "GPT_5",
    market_id: str = "m1",
    side: str = "YES",
    size_usd: float = 70.0,
    opened_at: str = "2025-06-01T12:00:00+00:00",
    **kwargs,
) -> AgentTrade:
    return AgentTrade(
        id=trade_id, agent_id=agent_id, market_id=market_id, side=side,
        confidence=0.7, size_usd=size_usd, opened_at=opened_at, **kwargs,
    )


@pytest.fixture
def store():
    s = TradeStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def populated_store(store):
    store.record_trade(make_trade("a1", "GPT_5", "m1", opened_at="2025-06-01T10:00:00+00:00"))
    store.record_trade(make_trade("a2", "GPT_5", "m2", side="NO", opened_at="2025-06-01T11:00:00+00:00"))
    store.record_trade(make_trade("b1", "GROK_4", "m1", opened_at="2025-06-01T09:00:00+00:00"))
    store.record_trade(make_trade("c1", "QWEN_2_5", "m3", opened_at="2025-06-01T12:00:00+00:00"))
    return store


# ─── Recording ────────────────────────────────────────────────────────────────


class TestRecordTrade:

    def test_round_trip(self, store):
        trade = make_trade(
            market_question="Will BTC close above $100k?", category="Crypto",
            reasoning=["Momentum", "ETF inflows"], score=42.5, source="openai",
        )
        store.record_trade(trade)
        loaded = store.get_trade(trade.id)
        assert loaded is not None
        assert loaded.to_dict() == trade.to_dict()

    def test_missing_trade(self, store):
        assert store.get_trade("nope") is None

    def test_empty_market_id_rejected(self, store):
        with pytest.raises(StoreValidationError):
            store.record_trade(make_trade(market_id=""))
        assert store.count() == 0

    def test_whitespace_agent_id_rejected(self, store):
        with pytest.raises(StoreValidationError):
            store.record_trade(make_trade(agent_id="   "))

    def test_negative_size_rejected(self, store):
        with pytest.raises(StoreValidationError):
            store.record_trade(make_trade(size_usd=-1.0))

    def test_duplicate_id_raises_store_error(self, store):
        store.record_trade(make_trade())
        with pytest.raises(StoreError):
            store.record_trade(make_trade())
        assert store.count() == 1

    def test_validation_error_is_store_error(self):
        assert issubclass(StoreValidationError, StoreError)


# ─── Settlement ───────────────────────────────────────────────────────────────


class TestSettleTrade:

    def test_settle_open_trade(self, store):
        store.record_trade(make_trade())
        assert store.settle_trade("GPT_5:m1:1000", 12.5, closed_at="2025-06-02T12:00:00+00:00") is True
        trade = store.get_trade("GPT_5:m1:1000")
        assert trade.status == "CLOSED"
        assert trade.pnl_usd == 12.5
        assert trade.closed_at == "2025-06-02T12:00:00+00:00"
        assert store.has_open_trade("GPT_5", "m1") is False

    def test_settle_twice_is_noop(self, store):
        store.record_trade(make_trade())
        store.settle_trade("GPT_5:m1:1000", 5.0)
        assert store.settle_trade("GPT_5:m1:1000", 99.0) is False
        assert store.get_trade("GPT_5:m1:1000").pnl_usd == 5.0

    def test_settle_unknown(self, store):
        assert store.settle_trade("missing", 1.0) is False


# ─── Queries ──────────────────────────────────────────────────────────────────


class TestQueries:

    def test_count(self, populated_store):
        assert populated_store.count() == 4

    def test_oldest_first(self, populated_store):
        assert [t.id for t in populated_store.get_trades()] == ["b1", "a1", "a2", "c1"]

    def test_filter_by_agent(self, populated_store):
        assert [t.id for t in populated_store.get_trades(agent_id="GPT_5")] == ["a1", "a2"]

    def test_filter_by_market_and_status(self, populated_store):
        populated_store.settle_trade("b1", -3.0)
        open_m1 = populated_store.get_trades(market_id="m1", status="OPEN")
        assert [t.id for t in open_m1] == ["a1"]

    def test_limit(self, populated_store):
        assert len(populated_store.get_trades(limit=2)) == 2

    def test_has_open_trade(self, populated_store):
        assert populated_store.has_open_trade("GPT_5", "m2") is True
        assert populated_store.has_open_trade("GPT_5", "m3") is False

    def test_grouped_by_agent(self, populated_store):
        grouped = populated_store.get_trades_by_agent()
        assert set(grouped) == {"GPT_5", "GROK_4", "QWEN_2_5"}
        assert len(grouped["GPT_5"]) == 2

    def test_clear(self, populated_store):
        populated_store.save_portfolio(create_initial_portfolio("GPT_5"))
        assert populated_store.clear() == 4
        assert populated_store.count() == 0
        assert populated_store.load_portfolios() == {}


# ─── Portfolios ───────────────────────────────────────────────────────────────


class TestPortfolioSnapshots:

    def test_save_and_load(self, store):
        portfolio = create_initial_portfolio("GPT_5")
        open_position(portfolio, make_trade(), entry_probability=0.42)
        store.save_portfolio(portfolio)

        loaded = store.load_portfolio("GPT_5")
        assert loaded is not None
        assert loaded.open_positions["m1"].entry_probability == 0.42
        assert loaded.open_positions["m1"].size_usd == 70.0

    def test_upsert_replaces_snapshot(self, store):
        portfolio = create_initial_portfolio("GPT_5")
        store.save_portfolio(portfolio)
        record_realized_pnl(portfolio, 25.0)
        store.save_portfolio(portfolio)
        loaded = store.load_portfolios()
        assert list(loaded) == ["GPT_5"]
        assert loaded["GPT_5"].realized_pnl_usd == 25.0

    def test_load_missing(self, store):
        assert store.load_portfolio("GROK_4") is None


# ─── Persistence ──────────────────────────────────────────────────────────────


class TestPersistence:

    def test_file_backed_store_survives_reopen(self, tmp_path):
        path = str(tmp_path / "engine.db")
        with TradeStore(path) as s:
            s.record_trade(make_trade())
            s.save_portfolio(create_initial_portfolio("GPT_5"))
        with TradeStore(path) as s:
            assert s.count() == 1
            assert s.load_portfolio("GPT_5") is not None
