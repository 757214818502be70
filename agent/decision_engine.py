"""
decision_engine.py — Routes each agent to its AI provider, with fallback.

    engine = DecisionEngine(settings, DecisionCache())
    decision = await engine.decide(agent, scored, news_pool, index)

Flow per candidate:
    1. decision cache hit             → cached AI decision
    2. provider not configured        → CONFIG_ERROR   (debug)     → fallback
    3. adapter.complete(prompt)
         timeout / non-2xx / empty    → PROVIDER_ERROR (warning)   → fallback
         Qwen not-eligible 403        → QUIET_INELIGIBLE (debug)   → fallback
    4. parse_ai_response(reply)
         refusal / no JSON            → PARSE_ERROR (warning + excerpt) → fallback
    5. OK                             → cache + return

decide() never raises for provider problems.
"""

from __future__ import annotations

from typing import Optional

from loguru import logger

from ai_providers import (
    ProviderAdapter,
    build_adapter,
    build_trade_prompt,
    parse_ai_response,
    select_relevant_news,
)
from caches import DecisionCache
from errors import ConfigurationError, DecisionOutcome, OutcomeKind
from fallback import generate_fallback_decision
from models import AgentProfile, Decision, NewsArticle, NewsRelevance, ScoredMarket, WebResult
from scoring import compute_news_relevance
from settings import EngineSettings


def web_results_as_articles(web_results: Optional[list[WebResult]], published_at: str = "") -> list[NewsArticle]:
    """Wrap web snippets as articles so they can match the prompt's news filter."""
    return [
        NewsArticle(
            title=r.title,
            source=r.source,
            published_at=published_at,
            description=r.snippet,
            content=r.snippet,
            url=r.url,
        )
        for r in (web_results or [])
    ]


class DecisionEngine:
    """Produces one Decision per (agent, candidate market)."""

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        decision_cache: Optional[DecisionCache] = None,
        adapters: Optional[dict[str, ProviderAdapter]] = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.decision_cache = decision_cache or DecisionCache(
            ttl=self.settings.decision_cache_ttl_seconds
        )
        # provider name → adapter; built lazily unless injected
        self._adapters: dict[str, ProviderAdapter] = dict(adapters or {})

    def adapter_for(self, agent: AgentProfile) -> ProviderAdapter:
        adapter = self._adapters.get(agent.provider)
        if adapter is None:
            adapter = build_adapter(agent.provider, self.settings, agent_name=agent.display_name)
            self._adapters[agent.provider] = adapter
        return adapter

    def is_ai_configured(self, agent: AgentProfile) -> bool:
        try:
            return self.adapter_for(agent).is_configured
        except ConfigurationError:
            return False

    # ── Provider Request ──────────────────────────────────────────────────────

    async def request_decision(
        self,
        agent: AgentProfile,
        scored: ScoredMarket,
        news_pool: list[NewsArticle],
        web_results: Optional[list[WebResult]] = None,
    ) -> DecisionOutcome:
        """Ask the agent's provider for a decision. Returns a tagged outcome, never raises."""
        cached = self.decision_cache.get(agent.id, scored.id)
        if cached is not None:
            logger.debug(f"[AI:{agent.id}] Decision cache hit for {scored.id}")
            return DecisionOutcome.success(cached.source, cached)

        try:
            adapter = self.adapter_for(agent)
        except ConfigurationError as exc:
            return DecisionOutcome.from_exception(agent.provider, exc)

        if not adapter.is_configured:
            return DecisionOutcome(
                kind=OutcomeKind.CONFIG_ERROR,
                provider=adapter.name,
                error=f"{adapter.name} API key not configured",
            )

        context = list(news_pool) + web_results_as_articles(web_results)
        relevant = select_relevant_news(scored.market, context)
        prompt = build_trade_prompt(agent.display_name, scored.market, relevant, web_results)

        try:
            reply = await adapter.complete(prompt)
            decision = parse_ai_response(reply.text, source=adapter.name)
        except Exception as exc:
            return DecisionOutcome.from_exception(adapter.name, exc)

        self.decision_cache.set(agent.id, scored.id, decision)
        return DecisionOutcome.success(adapter.name, decision)

    def log_outcome(self, agent: AgentProfile, scored: ScoredMarket, outcome: DecisionOutcome) -> None:
        prefix = f"[AI:{agent.id}]"
        if outcome.is_quiet:
            logger.debug(f"{prefix} {outcome.kind.value} for {scored.id}, using fallback: {outcome.error}")
        elif outcome.kind is OutcomeKind.PARSE_ERROR:
            logger.warning(f"{prefix} Could not parse {outcome.provider} reply: {outcome.error}")
            if outcome.raw_excerpt:
                logger.warning(f"{prefix} Raw response (first 500 chars): {outcome.raw_excerpt}")
        elif outcome.kind is OutcomeKind.PROVIDER_ERROR:
            logger.warning(f"{prefix} {outcome.provider} request failed, using fallback: {outcome.error}")

    # ── Public Contract ───────────────────────────────────────────────────────

    async def decide(
        self,
        agent: AgentProfile,
        scored: ScoredMarket,
        news_pool: list[NewsArticle],
        index: int,
        web_results: Optional[list[WebResult]] = None,
        news_relevance: Optional[NewsRelevance] = None,
    ) -> Decision:
        """AI decision when available, otherwise the deterministic fallback."""
        outcome = await self.request_decision(agent, scored, news_pool, web_results)
        if outcome.ok and outcome.decision is not None:
            return outcome.decision

        self.log_outcome(agent, scored, outcome)
        relevance = news_relevance or compute_news_relevance(scored.market, news_pool)
        return generate_fallback_decision(agent, scored, relevance, index, web_results)
