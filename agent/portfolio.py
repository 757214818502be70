"""
portfolio.py — Simulated per-agent portfolio ledger.

Every agent starts with $3,000. Trades are sized from a per-risk-level budget
scaled by confidence, and no single market may hold more than 20% of current
capital. Positions are marked to market each generation cycle:

    YES position PnL = (p_now − p_entry) × size
    NO  position PnL = (p_entry − p_now) × size

    equity       = starting + realized + Σ unrealized
    max_equity   = running high-water mark
    max_drawdown = max(previous, (max_equity − equity) / max_equity)

Usage:
    portfolio = create_initial_portfolio("GPT_5")
    size = calculate_position_size(RiskLevel.MEDIUM, 0.7, portfolio.current_capital_usd)
    open_position(portfolio, trade, entry_probability=0.42)
    update_portfolio_metrics(portfolio, {m.id: m for m in markets})
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Optional, Union

from loguru import logger

from models import AgentTrade, Market, RiskLevel


# ─── Constants ────────────────────────────────────────────────────────────────

STARTING_CAPITAL_USD = 3000.0

RISK_BUDGET: dict[RiskLevel, float] = {
    RiskLevel.LOW: 50.0,
    RiskLevel.MEDIUM: 100.0,
    RiskLevel.HIGH: 150.0,
}

MAX_SINGLE_MARKET_EXPOSURE = 0.20
MIN_CONFIDENCE_MULTIPLIER = 0.5
MAX_CONFIDENCE_MULTIPLIER = 1.5


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ─── Data Classes ─────────────────────────────────────────────────────────────

@dataclass
class AgentPosition:
    """One open simulated position."""
    market_id: str
    side: str                    # "YES" | "NO"
    size_usd: float
    entry_probability: float
    current_probability: float
    opened_at: str
    unrealized_pnl: float = 0.0

    def mark(self, probability: float) -> float:
        """Revalue at a new probability and return the signed unrealized PnL."""
        if self.side == "YES":
            pnl = (probability - self.entry_probability) * self.size_usd
        else:
            pnl = (self.entry_probability - probability) * self.size_usd
        self.current_probability = probability
        self.unrealized_pnl = pnl
        return pnl

    def to_dict(self) -> dict:
        return {
            "market_id": self.market_id,
            "side": self.side,
            "size_usd": round(self.size_usd, 2),
            "entry_probability": self.entry_probability,
            "current_probability": self.current_probability,
            "opened_at": self.opened_at,
            "unrealized_pnl": round(self.unrealized_pnl, 6),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentPosition":
        return cls(
            market_id=data["market_id"],
            side=data["side"],
            size_usd=float(data["size_usd"]),
            entry_probability=float(data["entry_probability"]),
            current_probability=float(data["current_probability"]),
            opened_at=data["opened_at"],
            unrealized_pnl=float(data.get("unrealized_pnl", 0.0)),
        )


@dataclass
class AgentPortfolio:
    """Simulated capital and open positions for one agent."""
    agent_id: str
    starting_capital_usd: float = STARTING_CAPITAL_USD
    current_capital_usd: float = STARTING_CAPITAL_USD
    realized_pnl_usd: float = 0.0
    unrealized_pnl_usd: float = 0.0
    max_equity_usd: float = STARTING_CAPITAL_USD
    max_drawdown_pct: float = 0.0
    open_positions: dict[str, AgentPosition] = field(default_factory=dict)
    last_updated: str = field(default_factory=_now_iso)

    @property
    def total_exposure_usd(self) -> float:
        return sum(p.size_usd for p in self.open_positions.values())

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "starting_capital_usd": self.starting_capital_usd,
            "current_capital_usd": round(self.current_capital_usd, 6),
            "realized_pnl_usd": round(self.realized_pnl_usd, 6),
            "unrealized_pnl_usd": round(self.unrealized_pnl_usd, 6),
            "max_equity_usd": round(self.max_equity_usd, 6),
            "max_drawdown_pct": round(self.max_drawdown_pct, 6),
            "open_positions": {k: p.to_dict() for k, p in self.open_positions.items()},
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentPortfolio":
        return cls(
            agent_id=data["agent_id"],
            starting_capital_usd=float(data["starting_capital_usd"]),
            current_capital_usd=float(data["current_capital_usd"]),
            realized_pnl_usd=float(data["realized_pnl_usd"]),
            unrealized_pnl_usd=float(data["unrealized_pnl_usd"]),
            max_equity_usd=float(data["max_equity_usd"]),
            max_drawdown_pct=float(data["max_drawdown_pct"]),
            open_positions={
                k: AgentPosition.from_dict(v)
                for k, v in (data.get("open_positions") or {}).items()
            },
            last_updated=data.get("last_updated") or _now_iso(),
        )


# ─── Construction & Sizing ────────────────────────────────────────────────────

def create_initial_portfolio(agent_id: str) -> AgentPortfolio:
    return AgentPortfolio(agent_id=agent_id)


def calculate_position_size(
    risk: Union[RiskLevel, str],
    confidence: float,
    current_capital: float,
) -> float:
    """
    Risk budget × confidence multiplier, capped at 20% of current capital.

    The confidence multiplier is clamped to [0.5, 1.5]; the result is never
    negative.
    """
    budget = RISK_BUDGET[RiskLevel(risk)]
    multiplier = max(MIN_CONFIDENCE_MULTIPLIER, min(MAX_CONFIDENCE_MULTIPLIER, confidence))
    cap = max(0.0, current_capital * MAX_SINGLE_MARKET_EXPOSURE)
    return max(0.0, min(budget * multiplier, cap))


# ─── Position Lifecycle ───────────────────────────────────────────────────────

def _refresh_equity(portfolio: AgentPortfolio) -> None:
    portfolio.unrealized_pnl_usd = sum(p.unrealized_pnl for p in portfolio.open_positions.values())
    portfolio.current_capital_usd = (
        portfolio.starting_capital_usd
        + portfolio.realized_pnl_usd
        + portfolio.unrealized_pnl_usd
    )
    if portfolio.current_capital_usd > portfolio.max_equity_usd:
        portfolio.max_equity_usd = portfolio.current_capital_usd
    if portfolio.max_equity_usd > 0:
        drawdown = (portfolio.max_equity_usd - portfolio.current_capital_usd) / portfolio.max_equity_usd
        portfolio.max_drawdown_pct = max(portfolio.max_drawdown_pct, drawdown)
    portfolio.last_updated = _now_iso()


def open_position(
    portfolio: AgentPortfolio,
    trade: AgentTrade,
    entry_probability: float,
) -> Optional[AgentPosition]:
    """
    Add a trade to the portfolio's open positions.

    Adding to an existing same-side position is allowed up to the 20% per-market
    exposure cap. Returns the position, or None when nothing could be added.
    """
    cap = portfolio.current_capital_usd * MAX_SINGLE_MARKET_EXPOSURE
    existing = portfolio.open_positions.get(trade.market_id)

    if existing is not None and existing.side != trade.side:
        logger.warning(
            f"[Portfolio:{portfolio.agent_id}] Opposite-side position already open on "
            f"{trade.market_id}, ignoring {trade.side}"
        )
        return None

    held = existing.size_usd if existing else 0.0
    size = min(trade.size_usd, cap - held)
    if size <= 0:
        logger.debug(f"[Portfolio:{portfolio.agent_id}] Exposure cap reached on {trade.market_id}")
        return None

    if existing is not None:
        # Size-weighted average entry
        total = held + size
        existing.entry_probability = (
            existing.entry_probability * held + entry_probability * size
        ) / total
        existing.size_usd = total
        existing.mark(existing.current_probability)
        _refresh_equity(portfolio)
        return existing

    position = AgentPosition(
        market_id=trade.market_id,
        side=trade.side,
        size_usd=size,
        entry_probability=entry_probability,
        current_probability=entry_probability,
        opened_at=trade.opened_at,
    )
    portfolio.open_positions[trade.market_id] = position
    portfolio.last_updated = _now_iso()
    return position


def close_position(
    portfolio: AgentPortfolio,
    market_id: str,
    exit_probability: float,
) -> Optional[float]:
    """Realise a position at exit_probability. Returns the realised PnL, or None if absent."""
    position = portfolio.open_positions.pop(market_id, None)
    if position is None:
        return None
    pnl = position.mark(exit_probability)
    portfolio.realized_pnl_usd += pnl
    _refresh_equity(portfolio)
    logger.info(
        f"[Portfolio:{portfolio.agent_id}] Closed {position.side} {market_id} "
        f"at {exit_probability:.3f}, PnL ${pnl:+.2f}"
    )
    return pnl


def record_realized_pnl(portfolio: AgentPortfolio, amount: float) -> None:
    """Apply a realised PnL adjustment from external settlement."""
    portfolio.realized_pnl_usd += amount
    _refresh_equity(portfolio)


def update_portfolio_metrics(
    portfolio: AgentPortfolio,
    markets_by_id: Mapping[str, Market],
) -> None:
    """Mark every open position to market and update equity and drawdown."""
    for market_id, position in portfolio.open_positions.items():
        market = markets_by_id.get(market_id)
        if market is None:
            # keep last known valuation
            continue
        position.mark(market.current_probability)
    _refresh_equity(portfolio)
