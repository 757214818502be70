"""
rotation.py — Candidate selection with deterministic, time-bucketed rotation.

The top-scoring markets are shuffled with a Fisher–Yates pass whose swap
indices come from a string hash of "{bucket + agentSeed}:{i}:{marketId}".
The bucket changes every 5 seconds, so repeated calls inside one window see
the same order while successive windows explore different markets.

The hash reproduces the classic `h = ((h << 5) - h) + code` string hash with
32-bit shift semantics over UTF-16 code units. Changing it changes which
markets every agent looks at, so it is kept exact.
"""

from __future__ import annotations

import time
from typing import Optional, Sequence, TypeVar

from models import AgentProfile, ScoredMarket

T = TypeVar("T")

ROTATION_BUCKET_MS = 5000
SELECTION_MULTIPLIER = 5     # pool size = 5 × max_trades
CANDIDATE_MULTIPLIER = 3     # forwarded = 3 × max_trades


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value >= 0x80000000 else value


def _utf16_units(text: str) -> list[int]:
    data = text.encode("utf-16-le")
    return [int.from_bytes(data[i:i + 2], "little") for i in range(0, len(data), 2)]


def js_string_hash(text: str) -> int:
    acc = 0
    for code in _utf16_units(text):
        shifted = _to_int32(_to_int32(acc) << 5)
        acc = shifted - acc + code
    return acc


def agent_seed(agent_id: str) -> int:
    """Sum of the first and last UTF-16 code units of the agent id."""
    units = _utf16_units(agent_id)
    if not units:
        return 0
    return units[0] + units[-1]


def time_bucket(now_ms: Optional[float] = None, bucket_ms: int = ROTATION_BUCKET_MS) -> int:
    if now_ms is None:
        now_ms = time.time() * 1000
    return int(now_ms // bucket_ms)


def rotate(
    items: Sequence[T],
    agent_id: str,
    now_ms: Optional[float] = None,
    bucket_ms: int = ROTATION_BUCKET_MS,
    key=lambda item: item.id,
) -> list[T]:
    """Deterministic Fisher–Yates shuffle seeded by time bucket and agent."""
    rotation_seed = time_bucket(now_ms, bucket_ms) + agent_seed(agent_id)
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        h = js_string_hash(f"{rotation_seed}:{i}:{key(shuffled[i])}")
        j = abs(h) % (i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def select_candidates(
    scored: Sequence[ScoredMarket],
    agent: AgentProfile,
    now_ms: Optional[float] = None,
    bucket_ms: int = ROTATION_BUCKET_MS,
) -> list[ScoredMarket]:
    """
    Pick the markets an agent will request decisions for.

    Takes the top 5 × max_trades by score, rotates them, and forwards the
    first 3 × max_trades.
    """
    ranked = sorted(scored, key=lambda s: s.score, reverse=True)
    pool = ranked[: min(agent.max_trades * SELECTION_MULTIPLIER, len(ranked))]
    shuffled = rotate(pool, agent.id, now_ms, bucket_ms)
    return shuffled[: min(agent.max_trades * CANDIDATE_MULTIPLIER, len(shuffled))]
