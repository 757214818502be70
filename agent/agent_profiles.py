"""
agent_profiles.py — Static registry of the competing agents.

Each agent is bound to one AI provider and carries its own candidate filters
and scoring weights. Profiles are loaded once at import and never mutated.
"""

from __future__ import annotations

from errors import UnknownAgentError
from models import AgentProfile, RiskLevel, ScoringWeights


AGENT_PROFILES: dict[str, AgentProfile] = {
    "GPT_5": AgentProfile(
        id="GPT_5",
        display_name="GPT-5",
        risk=RiskLevel.MEDIUM,
        max_trades=5,
        min_volume=50_000,
        min_liquidity=10_000,
        provider="openai",
        focus_categories=("Tech", "Finance", "Politics"),
        weights=ScoringWeights(1.0, 1.0, 1.0, 1.2, 0.8),
    ),
    "CLAUDE_4_5": AgentProfile(
        id="CLAUDE_4_5",
        display_name="Claude 4.5",
        risk=RiskLevel.LOW,
        max_trades=4,
        min_volume=75_000,
        min_liquidity=20_000,
        provider="anthropic",
        focus_categories=("Politics", "World", "Geopolitics"),
        weights=ScoringWeights(1.0, 1.3, 0.7, 1.0, 1.0),
    ),
    "GROK_4": AgentProfile(
        id="GROK_4",
        display_name="GROK 4",
        risk=RiskLevel.HIGH,
        max_trades=6,
        min_volume=20_000,
        min_liquidity=5_000,
        provider="grok",
        focus_categories=("Crypto", "Tech"),
        weights=ScoringWeights(0.8, 0.6, 1.5, 1.3, 0.8),
    ),
    "GEMINI_2_5": AgentProfile(
        id="GEMINI_2_5",
        display_name="Gemini 2.5",
        risk=RiskLevel.MEDIUM,
        max_trades=5,
        min_volume=30_000,
        min_liquidity=8_000,
        provider="gemini",
        focus_categories=("Sports", "Entertainment"),
        weights=ScoringWeights(1.0, 0.9, 1.1, 1.0, 1.0),
    ),
    "DEEPSEEK_V3": AgentProfile(
        id="DEEPSEEK_V3",
        display_name="DeepSeek V3",
        risk=RiskLevel.MEDIUM,
        max_trades=5,
        min_volume=40_000,
        min_liquidity=10_000,
        provider="deepseek",
        focus_categories=("Finance", "Crypto"),
        weights=ScoringWeights(1.1, 1.1, 0.9, 0.9, 1.2),
    ),
    "QWEN_2_5": AgentProfile(
        id="QWEN_2_5",
        display_name="Qwen 2.5",
        risk=RiskLevel.LOW,
        max_trades=4,
        min_volume=50_000,
        min_liquidity=15_000,
        provider="qwen",
        focus_categories=("Finance", "Geopolitics"),
        weights=ScoringWeights(1.2, 1.2, 0.8, 0.8, 1.0),
    ),
}

ALL_AGENT_IDS: tuple[str, ...] = tuple(AGENT_PROFILES)


def is_valid_agent_id(agent_id: str) -> bool:
    return agent_id in AGENT_PROFILES


def get_agent_profile(agent_id: str) -> AgentProfile:
    """Return the profile for agent_id or raise UnknownAgentError."""
    try:
        return AGENT_PROFILES[agent_id]
    except KeyError:
        raise UnknownAgentError(f"Unknown agent ID: {agent_id}") from None
