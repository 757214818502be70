"""
leaderboard.py — Cross-agent performance metrics, consensus and conflicts.

Everything here is derived on demand from persisted trades and portfolio
snapshots; nothing is cached.

    calculate_agent_metrics  — one agent's stats over a time window
    build_leaderboard        — metrics for every agent, ranked
    find_consensus_markets   — markets where ≥2 agents hold open trades
    find_conflicts           — markets with agents on both sides
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Mapping, Optional

from models import AgentTrade
from portfolio import AgentPortfolio, create_initial_portfolio
from scoring import parse_timestamp

TIME_WINDOWS: dict[str, Optional[timedelta]] = {
    "all-time": None,
    "30d": timedelta(days=30),
    "7d": timedelta(days=7),
    "24h": timedelta(hours=24),
}


# ─── Data Classes ─────────────────────────────────────────────────────────────

@dataclass
class AgentMetrics:
    agent_id: str
    current_capital_usd: float
    pnl_pct: float
    total_pnl_usd: float
    win_rate: float
    trades_count: int
    trades_count_24h: int
    avg_holding_time_minutes: float
    best_category: Optional[str]
    worst_category: Optional[str]
    category_pnl: dict[str, float] = field(default_factory=dict)
    open_positions: int = 0
    max_drawdown_pct: float = 0.0

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "current_capital_usd": round(self.current_capital_usd, 2),
            "pnl_pct": round(self.pnl_pct, 6),
            "total_pnl_usd": round(self.total_pnl_usd, 2),
            "win_rate": round(self.win_rate, 4),
            "trades_count": self.trades_count,
            "trades_count_24h": self.trades_count_24h,
            "avg_holding_time_minutes": round(self.avg_holding_time_minutes, 2),
            "best_category": self.best_category,
            "worst_category": self.worst_category,
            "category_pnl": {k: round(v, 2) for k, v in self.category_pnl.items()},
            "open_positions": self.open_positions,
            "max_drawdown_pct": round(self.max_drawdown_pct, 6),
        }


@dataclass
class ConsensusMetrics:
    market_id: str
    market_question: str
    yes_count: int
    no_count: int
    agents: list[str]
    consensus_side: str              # "YES" | "NO" | "NONE"
    consensus_strength: float        # max(yes, no) / total

    def to_dict(self) -> dict:
        return {
            "market_id": self.market_id,
            "market_question": self.market_question,
            "yes_count": self.yes_count,
            "no_count": self.no_count,
            "agents": list(self.agents),
            "consensus_side": self.consensus_side,
            "consensus_strength": round(self.consensus_strength, 4),
        }


@dataclass
class ConflictMetrics:
    market_id: str
    yes_agents: list[str]
    no_agents: list[str]
    market_question: str = ""

    @property
    def agent_count(self) -> int:
        return len(self.yes_agents) + len(self.no_agents)

    def to_dict(self) -> dict:
        return {
            "market_id": self.market_id,
            "market_question": self.market_question,
            "yes_agents": list(self.yes_agents),
            "no_agents": list(self.no_agents),
        }


# ─── Per-Agent Metrics ────────────────────────────────────────────────────────

def filter_trades_by_window(
    trades: Iterable[AgentTrade],
    window: str,
    now: datetime,
) -> list[AgentTrade]:
    if window not in TIME_WINDOWS:
        raise ValueError(f"Unknown time window: {window}")
    span = TIME_WINDOWS[window]
    if span is None:
        return list(trades)
    cutoff = now - span
    result = []
    for trade in trades:
        opened = parse_timestamp(trade.opened_at)
        if opened is not None and opened >= cutoff:
            result.append(trade)
    return result


def calculate_agent_metrics(
    agent_id: str,
    portfolio: AgentPortfolio,
    trades: Iterable[AgentTrade],
    window: str = "all-time",
    now: Optional[datetime] = None,
) -> AgentMetrics:
    now = now or datetime.now(timezone.utc)
    windowed = filter_trades_by_window(trades, window, now)
    closed = [t for t in windowed if not t.is_open and t.pnl_usd is not None]

    wins = sum(1 for t in closed if t.pnl_usd > 0)
    losses = len(closed) - wins
    win_rate = wins / (wins + losses) if (wins + losses) > 0 else 0.0

    total_pnl = sum(t.pnl_usd for t in closed)

    start = portfolio.starting_capital_usd
    pnl_pct = (portfolio.current_capital_usd - start) / start if start > 0 else 0.0

    holding_minutes = []
    for t in closed:
        opened = parse_timestamp(t.opened_at)
        closed_at = parse_timestamp(t.closed_at or "")
        if opened and closed_at:
            holding_minutes.append((closed_at - opened).total_seconds() / 60.0)
    avg_holding = sum(holding_minutes) / len(holding_minutes) if holding_minutes else 0.0

    day_ago = now - timedelta(hours=24)
    trades_24h = 0
    for t in windowed:
        opened = parse_timestamp(t.opened_at)
        if opened is not None and opened > day_ago:
            trades_24h += 1

    category_pnl: dict[str, float] = {}
    for t in closed:
        category = t.category or "Other"
        category_pnl[category] = category_pnl.get(category, 0.0) + t.pnl_usd

    # strict comparison keeps the first-seen category on ties
    best_category: Optional[str] = None
    worst_category: Optional[str] = None
    best_pnl = float("-inf")
    worst_pnl = float("inf")
    for category, pnl in category_pnl.items():
        if pnl > best_pnl:
            best_pnl, best_category = pnl, category
        if pnl < worst_pnl:
            worst_pnl, worst_category = pnl, category

    return AgentMetrics(
        agent_id=agent_id,
        current_capital_usd=portfolio.current_capital_usd,
        pnl_pct=pnl_pct,
        total_pnl_usd=total_pnl,
        win_rate=win_rate,
        trades_count=len(windowed),
        trades_count_24h=trades_24h,
        avg_holding_time_minutes=avg_holding,
        best_category=best_category,
        worst_category=worst_category,
        category_pnl=category_pnl,
        open_positions=len(portfolio.open_positions),
        max_drawdown_pct=portfolio.max_drawdown_pct,
    )


def build_leaderboard(
    portfolios: Mapping[str, AgentPortfolio],
    trades_by_agent: Mapping[str, list[AgentTrade]],
    window: str = "all-time",
    now: Optional[datetime] = None,
) -> list[AgentMetrics]:
    """Metrics for every known agent, best pnl_pct first (ties by total PnL)."""
    agent_ids = list(dict.fromkeys([*portfolios.keys(), *trades_by_agent.keys()]))
    metrics = [
        calculate_agent_metrics(
            agent_id,
            portfolios.get(agent_id) or create_initial_portfolio(agent_id),
            trades_by_agent.get(agent_id, []),
            window,
            now,
        )
        for agent_id in agent_ids
    ]
    metrics.sort(key=lambda m: (m.pnl_pct, m.total_pnl_usd), reverse=True)
    return metrics


# ─── Cross-Agent Views ────────────────────────────────────────────────────────

def _group_open_trades(
    trades_by_agent: Mapping[str, list[AgentTrade]],
) -> dict[str, dict]:
    markets: dict[str, dict] = {}
    for agent_id, trades in trades_by_agent.items():
        for trade in trades:
            if not trade.is_open:
                continue
            entry = markets.setdefault(
                trade.market_id, {"yes": [], "no": [], "question": ""}
            )
            if trade.side == "YES":
                entry["yes"].append(agent_id)
            else:
                entry["no"].append(agent_id)
            if not entry["question"] and trade.market_question:
                entry["question"] = trade.market_question
    return markets


def find_consensus_markets(
    trades_by_agent: Mapping[str, list[AgentTrade]],
) -> list[ConsensusMetrics]:
    consensus = []
    for market_id, data in _group_open_trades(trades_by_agent).items():
        yes_count, no_count = len(data["yes"]), len(data["no"])
        total = yes_count + no_count
        if total < 2:
            continue
        if yes_count > no_count:
            side = "YES"
        elif no_count > yes_count:
            side = "NO"
        else:
            side = "NONE"
        consensus.append(ConsensusMetrics(
            market_id=market_id,
            market_question=data["question"] or market_id,
            yes_count=yes_count,
            no_count=no_count,
            agents=data["yes"] + data["no"],
            consensus_side=side,
            consensus_strength=max(yes_count, no_count) / total,
        ))
    consensus.sort(key=lambda c: c.consensus_strength, reverse=True)
    return consensus


def find_conflicts(
    trades_by_agent: Mapping[str, list[AgentTrade]],
) -> list[ConflictMetrics]:
    conflicts = [
        ConflictMetrics(
            market_id=market_id,
            yes_agents=data["yes"],
            no_agents=data["no"],
            market_question=data["question"] or market_id,
        )
        for market_id, data in _group_open_trades(trades_by_agent).items()
        if data["yes"] and data["no"]
    ]
    conflicts.sort(key=lambda c: c.agent_count, reverse=True)
    return conflicts
