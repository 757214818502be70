"""
caches.py — TTL caches used by the generation pipeline.

All caches are plain keyed dicts with lazily-checked TTLs: entries are
validated when read and dropped if stale. Nothing sweeps proactively.

    MarketListCache — the raw market (or news) list, shared by every agent.
                      Keeps the last value after expiry so callers can serve
                      stale data when the upstream fetch fails.
    TradeCache      — generated trades per agent, also invalidated when the
                      set of known market ids changes.
    DecisionCache   — successful AI decisions per (agent_id, market_id).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Generic, Optional, Sequence, TypeVar

from loguru import logger

from models import AgentTrade, Decision

T = TypeVar("T")

Clock = Callable[[], float]

DEFAULT_MARKET_TTL = 60.0
DEFAULT_NEWS_TTL = 300.0
DEFAULT_TRADE_TTL = 30.0
DEFAULT_DECISION_TTL = 300.0


# ─── Shared List Cache ────────────────────────────────────────────────────────


class MarketListCache(Generic[T]):
    """Single-slot TTL cache for a fetched list."""

    def __init__(self, ttl: float = DEFAULT_MARKET_TTL, clock: Clock = time.time) -> None:
        self._ttl = ttl
        self._clock = clock
        self._items: Optional[list[T]] = None
        self._cached_at: float = 0.0

    def get(self) -> Optional[list[T]]:
        """Return the list if it is younger than the TTL, else None."""
        if self._items is None:
            return None
        if self.age() >= self._ttl:
            return None
        return self._items

    def get_stale(self) -> Optional[list[T]]:
        """Return the last stored list regardless of age."""
        return self._items

    def set(self, items: list[T]) -> None:
        self._items = list(items)
        self._cached_at = self._clock()

    def age(self) -> float:
        return self._clock() - self._cached_at

    def clear(self) -> None:
        self._items = None
        self._cached_at = 0.0

    @property
    def has_value(self) -> bool:
        return self._items is not None


# ─── Per-Agent Trade Cache ────────────────────────────────────────────────────


@dataclass
class TradeCacheEntry:
    trades: list[AgentTrade]
    generated_at: float
    market_ids: list[str] = field(default_factory=list)   # sorted


class TradeCache:
    """Generated trades per agent, keyed on the sorted market-id set."""

    def __init__(self, ttl: float = DEFAULT_TRADE_TTL, clock: Clock = time.time) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, TradeCacheEntry] = {}

    def get(self, agent_id: str, current_market_ids: Sequence[str]) -> Optional[list[AgentTrade]]:
        """
        Return cached trades, or None on miss, expiry, or a changed market set.

        current_market_ids must be sorted, like the ids passed to set().
        """
        entry = self._entries.get(agent_id)
        if entry is None:
            return None

        if self._clock() - entry.generated_at >= self._ttl:
            del self._entries[agent_id]
            return None

        if list(current_market_ids) != entry.market_ids:
            del self._entries[agent_id]
            return None

        return list(entry.trades)

    def get_quick(self, agent_id: str) -> Optional[list[AgentTrade]]:
        """TTL-only lookup, without market-id validation."""
        entry = self._entries.get(agent_id)
        if entry is None:
            return None
        if self._clock() - entry.generated_at >= self._ttl:
            del self._entries[agent_id]
            return None
        return list(entry.trades)

    def set(self, agent_id: str, trades: list[AgentTrade], market_ids: Sequence[str]) -> None:
        self._entries[agent_id] = TradeCacheEntry(
            trades=list(trades),
            generated_at=self._clock(),
            market_ids=list(market_ids),
        )
        logger.debug(
            f"[Cache:{agent_id}] Cached {len(trades)} trades for {len(market_ids)} markets"
        )

    def invalidate(self, agent_id: str) -> None:
        self._entries.pop(agent_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# ─── AI Decision Cache ────────────────────────────────────────────────────────


class DecisionCache:
    """Successful AI decisions per (agent_id, market_id)."""

    def __init__(self, ttl: float = DEFAULT_DECISION_TTL, clock: Clock = time.time) -> None:
        self._ttl = ttl
        self._clock = clock
        self._store: dict[tuple[str, str], tuple[Decision, float]] = {}

    def get(self, agent_id: str, market_id: str) -> Optional[Decision]:
        key = (agent_id, market_id)
        hit = self._store.get(key)
        if hit is None:
            return None
        decision, stored_at = hit
        if self._clock() - stored_at >= self._ttl:
            del self._store[key]
            return None
        return decision

    def set(self, agent_id: str, market_id: str, decision: Decision) -> None:
        self._store[(agent_id, market_id)] = (decision, self._clock())

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
