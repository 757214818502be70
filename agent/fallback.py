"""
fallback.py — Deterministic decision generator.

Used whenever an agent's AI provider is not configured or fails. Every value
is derived from a seed hashed from (agent_id, market_id, index), so the same
inputs always produce the same decision.

Side:        sign of (p - 0.5) plus a seed-derived perturbation of ±0.15,
             so near-50% markets can go either way while lopsided ones follow
             the crowd.
Confidence:  0.45 + 0.4 × score/100, ±0.10 seed jitter, ±0.05 risk tilt,
             clamped to [0, 1]. "Abstain" markets (id code sum divisible by 5)
             are capped at 0.45.
"""

from __future__ import annotations

from typing import Optional

from models import AgentProfile, Decision, NewsRelevance, RiskLevel, ScoredMarket, WebResult
from rotation import js_string_hash

PERTURBATION_RANGE = 0.15
BASE_CONFIDENCE = 0.45
SCORE_CONFIDENCE_SPAN = 0.40
ABSTAIN_CONFIDENCE = 0.45

RISK_CONFIDENCE_TILT: dict[RiskLevel, float] = {
    RiskLevel.LOW: -0.05,
    RiskLevel.MEDIUM: 0.0,
    RiskLevel.HIGH: 0.05,
}


def deterministic_seed(agent_id: str, market_id: str, index: int) -> int:
    return abs(js_string_hash(f"{agent_id}:{market_id}:{index}"))


def is_abstain_market(market_id: str) -> bool:
    return sum(ord(ch) for ch in market_id) % 5 == 0


def deterministic_side(scored: ScoredMarket, seed: int) -> str:
    lean = scored.market.current_probability - 0.5
    perturbation = ((seed % 1000) / 999.0 - 0.5) * 2 * PERTURBATION_RANGE
    return "YES" if lean + perturbation >= 0 else "NO"


def deterministic_confidence(scored: ScoredMarket, agent: AgentProfile, seed: int) -> float:
    base = BASE_CONFIDENCE + SCORE_CONFIDENCE_SPAN * min(max(scored.score, 0.0), 100.0) / 100.0
    jitter = ((seed // 1000) % 21 - 10) / 100.0
    confidence = base + jitter + RISK_CONFIDENCE_TILT.get(agent.risk, 0.0)
    if is_abstain_market(scored.id):
        confidence = min(confidence, ABSTAIN_CONFIDENCE)
    return max(0.0, min(1.0, round(confidence, 4)))


def deterministic_reasoning(
    scored: ScoredMarket,
    news_relevance: NewsRelevance,
    agent: AgentProfile,
    web_results: Optional[list[WebResult]] = None,
) -> list[str]:
    """Reasoning lines built from score components and news coverage."""
    m = scored.market
    c = scored.components
    lines: list[str] = []

    if web_results:
        first = (web_results[0].snippet or "relevant information")[:80]
        plural = "s" if len(web_results) > 1 else ""
        lines.append(f"Web research found {len(web_results)} source{plural} - {first}...")

    lines.append(
        f"Market trades at {m.current_probability * 100:.1f}% with "
        f"${m.volume_usd / 1000:.1f}k volume and ${m.liquidity_usd / 1000:.1f}k liquidity "
        f"(volume score {c.volume_score:.1f}/30, liquidity score {c.liquidity_score:.1f}/20)."
    )

    if news_relevance.count > 0:
        headline = news_relevance.matched_titles[0] if news_relevance.matched_titles else ""
        lines.append(
            f"{news_relevance.count} related news article"
            f"{'s' if news_relevance.count != 1 else ''} in the current cycle"
            + (f', including "{headline}".' if headline else ".")
        )
    else:
        lines.append("No directly related news in the current cycle; decision leans on market structure.")

    change = m.price_change_24h * 100
    if abs(change) >= 1.0:
        direction = "up" if change > 0 else "down"
        lines.append(
            f"Price moved {direction} {abs(change):.1f}% over 24h "
            f"(movement score {c.price_movement_score:.1f}/15)."
        )
    else:
        lines.append(
            f"{agent.display_name} weighting puts this market at {scored.score:.1f} overall "
            f"with {c.prob_score:.1f}/10 for probability balance."
        )

    return lines[:4]


def generate_fallback_decision(
    agent: AgentProfile,
    scored: ScoredMarket,
    news_relevance: NewsRelevance,
    index: int,
    web_results: Optional[list[WebResult]] = None,
) -> Decision:
    seed = deterministic_seed(agent.id, scored.id, index)
    return Decision(
        side=deterministic_side(scored, seed),
        confidence=deterministic_confidence(scored, agent, seed),
        reasoning=deterministic_reasoning(scored, news_relevance, agent, web_results),
        source="deterministic",
    )
