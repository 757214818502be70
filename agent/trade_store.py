"""
trade_store.py — SQLite persistence for agent trades and portfolio snapshots.

The leaderboard reads from here; the generator appends to it whenever it
opens a new position. Settlement (closing a trade with a realised PnL) goes
through EngineContext.settle_trade(), which also updates the portfolio.

Schema:
    CREATE TABLE agent_trades (
        id               TEXT PRIMARY KEY,
        agent_id         TEXT NOT NULL,
        market_id        TEXT NOT NULL,
        market_question  TEXT NOT NULL DEFAULT '',
        side             TEXT NOT NULL,          -- YES | NO
        confidence       REAL NOT NULL,
        size_usd         REAL NOT NULL,
        status           TEXT NOT NULL,          -- OPEN | CLOSED
        pnl_usd          REAL,
        opened_at        TEXT NOT NULL,
        closed_at        TEXT,
        category         TEXT NOT NULL,
        reasoning        TEXT NOT NULL,          -- JSON array
        score            REAL NOT NULL,
        source           TEXT NOT NULL
    );
    CREATE TABLE agent_portfolios (
        agent_id    TEXT PRIMARY KEY,
        snapshot    TEXT NOT NULL,               -- AgentPortfolio.to_dict() JSON
        updated_at  TEXT NOT NULL
    );

Usage:
    store = TradeStore()                         # in-memory
    store = TradeStore("/data/engine.db")        # persistent
    store.record_trade(trade)
    store.settle_trade(trade.id, pnl_usd=12.5)
    by_agent = store.get_trades_by_agent()
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any, Optional

from errors import StoreError, StoreValidationError
from models import AgentTrade, TradeSide, TradeStatus
from portfolio import AgentPortfolio


# ─── Schema ───────────────────────────────────────────────────────────────────

_CREATE_TRADES = """
CREATE TABLE IF NOT EXISTS agent_trades (
    id               TEXT PRIMARY KEY,
    agent_id         TEXT NOT NULL,
    market_id        TEXT NOT NULL,
    market_question  TEXT NOT NULL DEFAULT '',
    side             TEXT NOT NULL,
    confidence       REAL NOT NULL,
    size_usd         REAL NOT NULL,
    status           TEXT NOT NULL DEFAULT 'OPEN',
    pnl_usd          REAL,
    opened_at        TEXT NOT NULL,
    closed_at        TEXT,
    category         TEXT NOT NULL DEFAULT 'Other',
    reasoning        TEXT NOT NULL DEFAULT '[]',
    score            REAL NOT NULL DEFAULT 0,
    source           TEXT NOT NULL DEFAULT 'deterministic'
)
"""

_CREATE_PORTFOLIOS = """
CREATE TABLE IF NOT EXISTS agent_portfolios (
    agent_id    TEXT PRIMARY KEY,
    snapshot    TEXT NOT NULL,
    updated_at  TEXT NOT NULL
)
"""

_CREATE_IDX_AGENT = "CREATE INDEX IF NOT EXISTS idx_trades_agent ON agent_trades(agent_id)"
_CREATE_IDX_MARKET = "CREATE INDEX IF NOT EXISTS idx_trades_market ON agent_trades(market_id)"

VALID_SIDES = frozenset(s.value for s in TradeSide)
VALID_STATUSES = frozenset(s.value for s in TradeStatus)


def _trade_from_row(row: sqlite3.Row) -> AgentTrade:
    return AgentTrade(
        id=row["id"],
        agent_id=row["agent_id"],
        market_id=row["market_id"],
        market_question=row["market_question"],
        side=row["side"],
        confidence=row["confidence"],
        size_usd=row["size_usd"],
        status=row["status"],
        pnl_usd=row["pnl_usd"],
        opened_at=row["opened_at"],
        closed_at=row["closed_at"],
        category=row["category"],
        reasoning=json.loads(row["reasoning"] or "[]"),
        score=row["score"],
        source=row["source"],
    )


# ─── TradeStore ───────────────────────────────────────────────────────────────


class TradeStore:
    """
    SQLite-backed store of agent trades and portfolio snapshots.

    Parameters
    ----------
    db_path : str
        Path to the SQLite database file, or ":memory:" (default).
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self.db_path = db_path
        self._conn: sqlite3.Connection = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    # ── Lifecycle ──────────────────────────────────────────────────────────

    def _init_schema(self) -> None:
        with self._conn:
            self._conn.execute(_CREATE_TRADES)
            self._conn.execute(_CREATE_PORTFOLIOS)
            self._conn.execute(_CREATE_IDX_AGENT)
            self._conn.execute(_CREATE_IDX_MARKET)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "TradeStore":
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ── Validation ─────────────────────────────────────────────────────────

    @staticmethod
    def _validate(trade: AgentTrade) -> None:
        if not trade.id or not trade.id.strip():
            raise StoreValidationError("trade id must not be empty")
        if not trade.agent_id or not trade.agent_id.strip():
            raise StoreValidationError("agent_id must not be empty")
        if not trade.market_id or not trade.market_id.strip():
            raise StoreValidationError("market_id must not be empty")
        if trade.side not in VALID_SIDES:
            raise StoreValidationError(
                f"side must be one of {sorted(VALID_SIDES)}, got {trade.side!r}"
            )
        if trade.status not in VALID_STATUSES:
            raise StoreValidationError(
                f"status must be one of {sorted(VALID_STATUSES)}, got {trade.status!r}"
            )
        if trade.size_usd < 0:
            raise StoreValidationError(f"size_usd cannot be negative, got {trade.size_usd}")

    # ── Trades ─────────────────────────────────────────────────────────────

    def record_trade(self, trade: AgentTrade) -> AgentTrade:
        """
        Persist a new trade.

        Raises
        ------
        StoreValidationError : if any field is invalid.
        StoreError           : on duplicate id or database failure.
        """
        self._validate(trade)
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO agent_trades
                        (id, agent_id, market_id, market_question, side, confidence,
                         size_usd, status, pnl_usd, opened_at, closed_at, category,
                         reasoning, score, source)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        trade.id, trade.agent_id, trade.market_id, trade.market_question,
                        trade.side, trade.confidence, trade.size_usd, trade.status,
                        trade.pnl_usd, trade.opened_at, trade.closed_at, trade.category,
                        json.dumps(list(trade.reasoning)), trade.score, trade.source,
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise StoreError(f"DB integrity error: {e}") from e
        except sqlite3.OperationalError as e:
            raise StoreError(f"DB operational error: {e}") from e
        return trade

    def settle_trade(
        self,
        trade_id: str,
        pnl_usd: float,
        closed_at: Optional[str] = None,
    ) -> bool:
        """Close an open trade with its realised PnL. Returns False if no open trade matched."""
        closed_at = closed_at or datetime.now(timezone.utc).isoformat()
        with self._conn:
            cur = self._conn.execute(
                """
                UPDATE agent_trades
                   SET status = 'CLOSED', pnl_usd = ?, closed_at = ?
                 WHERE id = ? AND status = 'OPEN'
                """,
                (pnl_usd, closed_at, trade_id),
            )
        return cur.rowcount > 0

    def get_trade(self, trade_id: str) -> Optional[AgentTrade]:
        row = self._conn.execute(
            "SELECT * FROM agent_trades WHERE id = ?", (trade_id,)
        ).fetchone()
        return _trade_from_row(row) if row else None

    def has_open_trade(self, agent_id: str, market_id: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM agent_trades WHERE agent_id = ? AND market_id = ? AND status = 'OPEN' LIMIT 1",
            (agent_id, market_id),
        ).fetchone()
        return row is not None

    def get_trades(
        self,
        agent_id: Optional[str] = None,
        status: Optional[str] = None,
        market_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[AgentTrade]:
        """Query trades with optional ANDed filters, oldest first."""
        clauses: list[str] = []
        params: list[Any] = []
        if agent_id is not None:
            clauses.append("agent_id = ?")
            params.append(agent_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if market_id is not None:
            clauses.append("market_id = ?")
            params.append(market_id)

        where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
        limit_clause = f"LIMIT {int(limit)}" if limit is not None else ""
        sql = f"SELECT * FROM agent_trades {where} ORDER BY opened_at ASC, rowid ASC {limit_clause}"
        return [_trade_from_row(r) for r in self._conn.execute(sql, params).fetchall()]

    def get_trades_by_agent(self) -> dict[str, list[AgentTrade]]:
        grouped: dict[str, list[AgentTrade]] = {}
        for trade in self.get_trades():
            grouped.setdefault(trade.agent_id, []).append(trade)
        return grouped

    def count(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM agent_trades").fetchone()[0]

    # ── Portfolios ─────────────────────────────────────────────────────────

    def save_portfolio(self, portfolio: AgentPortfolio) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO agent_portfolios (agent_id, snapshot, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(agent_id) DO UPDATE SET
                    snapshot = excluded.snapshot,
                    updated_at = excluded.updated_at
                """,
                (portfolio.agent_id, json.dumps(portfolio.to_dict()), portfolio.last_updated),
            )

    def load_portfolio(self, agent_id: str) -> Optional[AgentPortfolio]:
        row = self._conn.execute(
            "SELECT snapshot FROM agent_portfolios WHERE agent_id = ?", (agent_id,)
        ).fetchone()
        return AgentPortfolio.from_dict(json.loads(row["snapshot"])) if row else None

    def load_portfolios(self) -> dict[str, AgentPortfolio]:
        rows = self._conn.execute("SELECT snapshot FROM agent_portfolios").fetchall()
        portfolios = [AgentPortfolio.from_dict(json.loads(r["snapshot"])) for r in rows]
        return {p.agent_id: p for p in portfolios}

    # ── Utilities ──────────────────────────────────────────────────────────

    def clear(self) -> int:
        """Delete all trades and portfolio snapshots. Returns number of trade rows deleted."""
        with self._conn:
            cur = self._conn.execute("DELETE FROM agent_trades")
            self._conn.execute("DELETE FROM agent_portfolios")
        return cur.rowcount
