"""
models.py — Core data model for the agent trade-decision engine.

Markets and news articles come from external collaborators and are treated
as immutable snapshots. Everything else (scores, decisions, trades, research
notes) is produced by the engine itself.

Classes:
    Market            — one prediction-market listing
    NewsArticle       — one news item used for scoring and prompts
    ScoringWeights    — per-agent component weights
    AgentProfile      — static agent configuration
    ScoreComponents   — per-factor tradeability scores
    ScoredMarket      — Market + weighted score
    NewsRelevance     — legacy keyword/article overlap
    WebResult         — one web-research snippet
    Decision          — directional decision (side, confidence, reasoning)
    AgentTrade        — actionable trade record
    ResearchDecision  — passive research note
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


# ─── Enums ────────────────────────────────────────────────────────────────────


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class TradeSide(str, Enum):
    YES = "YES"
    NO = "NO"


class TradeStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


RESEARCH_SIDES = frozenset({"YES", "NO", "NEUTRAL"})


# ─── Collaborator Inputs ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Market:
    """A prediction-market snapshot from the market collaborator."""
    id: str
    question: str
    category: str = "Other"
    volume_usd: float = 0.0
    liquidity_usd: float = 0.0
    current_probability: float = 0.5   # 0.0–1.0
    price_change_24h: float = 0.0      # decimal, -1.0 to +1.0

    @property
    def has_valid_id(self) -> bool:
        return bool(self.id and self.id.strip())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "question": self.question,
            "category": self.category,
            "volume_usd": self.volume_usd,
            "liquidity_usd": self.liquidity_usd,
            "current_probability": self.current_probability,
            "price_change_24h": self.price_change_24h,
        }


@dataclass(frozen=True)
class NewsArticle:
    """A news item from the news collaborator."""
    title: str
    source: str = ""
    published_at: str = ""             # ISO-8601
    description: Optional[str] = None
    content: Optional[str] = None
    url: Optional[str] = None

    @property
    def text_blob(self) -> str:
        """Lowercased title + description + content, used for keyword matching."""
        return " ".join(
            [self.title or "", self.description or "", self.content or ""]
        ).lower()


@dataclass(frozen=True)
class WebResult:
    """One web-research snippet."""
    title: str
    snippet: str
    source: str = "Web"
    url: Optional[str] = None


# ─── Agent Configuration ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class ScoringWeights:
    volume_weight: float = 1.0
    liquidity_weight: float = 1.0
    price_movement_weight: float = 1.0
    news_weight: float = 1.0
    prob_weight: float = 1.0

    @property
    def total(self) -> float:
        return (
            self.volume_weight
            + self.liquidity_weight
            + self.price_movement_weight
            + self.news_weight
            + self.prob_weight
        )


@dataclass(frozen=True)
class AgentProfile:
    """Static configuration for one autonomous agent. Never mutated."""
    id: str
    display_name: str
    risk: RiskLevel
    max_trades: int
    min_volume: float
    min_liquidity: float
    provider: str
    focus_categories: tuple[str, ...] = ()
    weights: ScoringWeights = field(default_factory=ScoringWeights)

    def __post_init__(self):
        if not self.id:
            raise ValueError("agent id must not be empty")
        if self.max_trades < 1:
            raise ValueError("max_trades must be at least 1")
        if self.min_volume < 0 or self.min_liquidity < 0:
            raise ValueError("min_volume and min_liquidity cannot be negative")


# ─── Scoring Output ───────────────────────────────────────────────────────────


@dataclass
class ScoreComponents:
    volume_score: float
    liquidity_score: float
    price_movement_score: float
    news_score: float
    prob_score: float

    def to_dict(self) -> dict:
        return {
            "volume_score": round(self.volume_score, 4),
            "liquidity_score": round(self.liquidity_score, 4),
            "price_movement_score": round(self.price_movement_score, 4),
            "news_score": round(self.news_score, 4),
            "prob_score": round(self.prob_score, 4),
        }


@dataclass
class ScoredMarket:
    """A market plus its per-agent tradeability score. Recomputed every cycle."""
    market: Market
    score: float
    components: ScoreComponents

    @property
    def id(self) -> str:
        return self.market.id

    @property
    def question(self) -> str:
        return self.market.question

    @property
    def category(self) -> str:
        return self.market.category

    def to_dict(self) -> dict:
        d = self.market.to_dict()
        d["score"] = round(self.score, 4)
        d["components"] = self.components.to_dict()
        return d


@dataclass
class NewsRelevance:
    count: int
    matched_titles: list[str] = field(default_factory=list)


# ─── Decisions ────────────────────────────────────────────────────────────────


@dataclass
class Decision:
    """Directional decision for one market."""
    side: str                        # "YES" | "NO"
    confidence: float                # 0.0–1.0
    reasoning: list[str]
    source: str = "deterministic"    # provider name or "deterministic"

    def to_dict(self) -> dict:
        return {
            "side": self.side,
            "confidence": round(self.confidence, 4),
            "reasoning": list(self.reasoning),
            "source": self.source,
        }


@dataclass
class AgentTrade:
    """Actionable trade. Mutated only by external settlement (status, pnl, closed_at)."""
    id: str
    agent_id: str
    market_id: str
    side: str
    confidence: float
    size_usd: float
    opened_at: str                   # ISO-8601
    category: str = "Other"
    status: str = TradeStatus.OPEN.value
    pnl_usd: Optional[float] = None
    closed_at: Optional[str] = None
    market_question: str = ""
    reasoning: list[str] = field(default_factory=list)
    score: float = 0.0
    source: str = "deterministic"

    def __post_init__(self):
        if self.side not in (TradeSide.YES.value, TradeSide.NO.value):
            raise ValueError(f"Invalid trade side: {self.side}")
        if self.status not in (TradeStatus.OPEN.value, TradeStatus.CLOSED.value):
            raise ValueError(f"Invalid trade status: {self.status}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("confidence must be in [0, 1]")

    @property
    def is_open(self) -> bool:
        return self.status == TradeStatus.OPEN.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "market_id": self.market_id,
            "market_question": self.market_question,
            "side": self.side,
            "confidence": round(self.confidence, 4),
            "size_usd": round(self.size_usd, 2),
            "status": self.status,
            "pnl_usd": self.pnl_usd,
            "opened_at": self.opened_at,
            "closed_at": self.closed_at,
            "category": self.category,
            "reasoning": list(self.reasoning),
            "score": round(self.score, 4),
            "source": self.source,
        }


@dataclass
class ResearchDecision:
    """Passive research note for a candidate that did not clear the trade gate."""
    id: str
    agent_id: str
    market_id: str
    side: str                        # "YES" | "NO" | "NEUTRAL"
    confidence: float
    reasoning: list[str]
    timestamp: str
    market_question: str = ""
    score: float = 0.0
    summary: str = ""

    def __post_init__(self):
        if self.side not in RESEARCH_SIDES:
            raise ValueError(f"Invalid research side: {self.side}")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "market_id": self.market_id,
            "market_question": self.market_question,
            "side": self.side,
            "confidence": round(self.confidence, 4),
            "score": round(self.score, 4),
            "reasoning": list(self.reasoning),
            "timestamp": self.timestamp,
            "summary": self.summary,
        }
