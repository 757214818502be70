"""
settings.py — Environment-driven configuration for the trade-decision engine.

Values are read from the process environment (after loading a .env file if
present). Provider credentials are optional: a missing key routes that
agent to the deterministic fallback instead of failing.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


# Provider name → environment variable holding its credential
PROVIDER_KEY_ENV: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "grok": "GROK_API_KEY",
    "gemini": "GOOGLE_AI_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "qwen": "QWEN_API_KEY",
}

# Provider name → (environment variable, default model)
PROVIDER_MODEL_ENV: dict[str, tuple[str, str]] = {
    "openai": ("OPENAI_MODEL", "gpt-4o"),
    "anthropic": ("ANTHROPIC_MODEL", "claude-3-opus-20240229"),
    "grok": ("GROK_MODEL", "grok-3"),
    "gemini": ("GEMINI_MODEL", "gemini-2.0-flash-exp"),
    "deepseek": ("DEEPSEEK_MODEL", "deepseek-chat"),
    "qwen": ("QWEN_MODEL", "qwen-turbo"),
}


def _float_env(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass
class EngineSettings:
    """Runtime configuration. Build with from_env() in production code."""
    provider_keys: dict[str, str] = field(default_factory=dict)
    provider_models: dict[str, str] = field(default_factory=dict)

    ai_timeout_seconds: float = 30.0
    market_cache_ttl_seconds: float = 60.0
    news_cache_ttl_seconds: float = 300.0
    trade_cache_ttl_seconds: float = 30.0
    decision_cache_ttl_seconds: float = 300.0
    rotation_bucket_ms: int = 5000

    trade_min_score: float = 5.0
    trade_min_confidence: float = 0.5

    trade_db_path: str = ":memory:"
    log_level: str = "INFO"

    polymarket_gamma_url: str = "https://gamma-api.polymarket.com/markets"
    polymarket_page_limit: int = 500
    news_api_key: Optional[str] = None
    web_search_api_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "EngineSettings":
        keys = {
            provider: os.getenv(env, "")
            for provider, env in PROVIDER_KEY_ENV.items()
        }
        models = {
            provider: os.getenv(env, default)
            for provider, (env, default) in PROVIDER_MODEL_ENV.items()
        }
        return cls(
            provider_keys={p: k for p, k in keys.items() if k},
            provider_models=models,
            ai_timeout_seconds=_float_env("AI_TIMEOUT_SECONDS", 30.0),
            market_cache_ttl_seconds=_float_env("MARKET_CACHE_TTL_SECONDS", 60.0),
            news_cache_ttl_seconds=_float_env("NEWS_CACHE_TTL_SECONDS", 300.0),
            trade_cache_ttl_seconds=_float_env("TRADE_CACHE_TTL_SECONDS", 30.0),
            decision_cache_ttl_seconds=_float_env("DECISION_CACHE_TTL_SECONDS", 300.0),
            rotation_bucket_ms=_int_env("ROTATION_BUCKET_MS", 5000),
            trade_min_score=_float_env("TRADE_MIN_SCORE", 5.0),
            trade_min_confidence=_float_env("TRADE_MIN_CONFIDENCE", 0.5),
            trade_db_path=os.getenv("TRADE_DB_PATH", ":memory:"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            polymarket_gamma_url=os.getenv(
                "POLYMARKET_GAMMA_URL", "https://gamma-api.polymarket.com/markets"
            ),
            polymarket_page_limit=_int_env("POLYMARKET_PAGE_LIMIT", 500),
            news_api_key=os.getenv("NEWS_API_KEY") or None,
            web_search_api_key=os.getenv("WEB_SEARCH_API_KEY") or None,
        )

    def api_key_for(self, provider: str) -> str:
        return self.provider_keys.get(provider, "")

    def model_for(self, provider: str) -> str:
        if provider in self.provider_models:
            return self.provider_models[provider]
        return PROVIDER_MODEL_ENV.get(provider, ("", ""))[1]

    def validate(self) -> list[str]:
        """Return a list of configuration problems (empty when valid)."""
        errors: list[str] = []
        for name in (
            "ai_timeout_seconds",
            "market_cache_ttl_seconds",
            "news_cache_ttl_seconds",
            "trade_cache_ttl_seconds",
            "decision_cache_ttl_seconds",
        ):
            if getattr(self, name) < 0:
                errors.append(f"{name} cannot be negative")
        if self.rotation_bucket_ms <= 0:
            errors.append("rotation_bucket_ms must be positive")
        if not 0.0 <= self.trade_min_confidence <= 1.0:
            errors.append("trade_min_confidence must be between 0.0 and 1.0")
        if self.trade_min_score < 0:
            errors.append("trade_min_score cannot be negative")
        return errors
