"""
ai_providers.py — AI provider adapters, shared prompt template, shared parser.

Every provider implements the same capability: take a prompt, return the raw
reply text. Each adapter owns only its request envelope and the path to the
text inside the provider's response body; the reply is then parsed by one
shared function regardless of where it came from.

Providers:
    openai     — OpenAI chat completions          (OPENAI_API_KEY)
    anthropic  — Anthropic messages via SDK       (ANTHROPIC_API_KEY)
    grok       — xAI chat completions             (GROK_API_KEY)
    gemini     — Google generateContent           (GOOGLE_AI_API_KEY)
    deepseek   — DeepSeek chat completions        (DEEPSEEK_API_KEY)
    qwen       — Alibaba DashScope generation     (QWEN_API_KEY)

Usage:
    adapter = build_adapter("openai", settings)
    reply = await adapter.complete(prompt)
    decision = parse_ai_response(reply.text, source=reply.provider)
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, TYPE_CHECKING

import anthropic
import httpx
from loguru import logger

from errors import ConfigurationError, ParseError, ProviderError, QuietIneligibilityError
from models import Decision, Market, NewsArticle, WebResult

if TYPE_CHECKING:
    from settings import EngineSettings


# ─── Constants ────────────────────────────────────────────────────────────────

DEFAULT_TIMEOUT = 30.0
MAX_PROMPT_NEWS = 5
MAX_PROMPT_WEB_RESULTS = 3
WEB_SNIPPET_CHARS = 200
REFUSAL_SCAN_CHARS = 200
RAW_EXCERPT_CHARS = 500
DEFAULT_REASONING = "AI analysis based on market data"

REFUSAL_INDICATORS = (
    "i cannot",
    "i am unable to",
    "i do not feel comfortable",
    "i cannot provide",
    "i refuse to",
    "i decline to",
    "i apologize, but i cannot",
    "i'm sorry, but i cannot",
    "outside of my capabilities",
    "i cannot assist",
)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")
_BARE_JSON = re.compile(r"\{[\s\S]*\}")

QWEN_ACCESS_DENIED_CODE = "AccessDenied.Unpurchased"


# ─── Prompt ───────────────────────────────────────────────────────────────────

def sentiment_label(probability: float) -> str:
    if probability > 0.6:
        return "bullish (leaning YES)"
    if probability < 0.4:
        return "bearish (leaning NO)"
    return "neutral (near 50/50)"


def select_relevant_news(market: Market, articles: list[NewsArticle]) -> list[NewsArticle]:
    """Articles whose title/description mention a question word longer than 4 chars."""
    keywords = [w for w in market.question.lower().split() if len(w) > 4]
    if not keywords:
        return []
    relevant = []
    for article in articles:
        text = f"{article.title} {article.description or ''}".lower()
        if any(k in text for k in keywords):
            relevant.append(article)
        if len(relevant) >= MAX_PROMPT_NEWS:
            break
    return relevant


def _format_date(published_at: str) -> str:
    try:
        return datetime.fromisoformat(published_at.replace("Z", "+00:00")).strftime("%Y-%m-%d")
    except (AttributeError, ValueError):
        return "unknown date"


def build_trade_prompt(
    agent_name: str,
    market: Market,
    relevant_news: list[NewsArticle],
    web_results: Optional[list[WebResult]] = None,
) -> str:
    """Shared prompt template used by every provider."""
    if relevant_news:
        news_lines = "\n".join(
            f'{i}. "{n.title}" - {n.source or "Unknown"} ({_format_date(n.published_at)})'
            for i, n in enumerate(relevant_news[:MAX_PROMPT_NEWS], start=1)
        )
        news_summary = f"\n\nRelevant News Articles:\n{news_lines}"
    else:
        news_summary = "\n\nNo recent relevant news articles found."

    web_summary = ""
    if web_results:
        web_lines = "\n\n".join(
            f"{i}. {r.title or 'Source'} ({r.source or 'Web'}): {(r.snippet or '')[:WEB_SNIPPET_CHARS]}"
            for i, r in enumerate(web_results[:MAX_PROMPT_WEB_RESULTS], start=1)
        )
        web_summary = f"\n\nWeb Research Findings:\n{web_lines}"

    p = market.current_probability
    change = market.price_change_24h * 100
    sign = "+" if change > 0 else ""
    lean = "YES" if p > 0.5 else "NO"

    return f"""You are {agent_name}, an expert prediction market trader. Analyze this market and make a trading decision.

MARKET DETAILS:
Question: "{market.question}"
Category: {market.category}
Current Probability: {p * 100:.1f}% ({sentiment_label(p)})
Trading Volume: ${market.volume_usd / 1000:.1f}k
Liquidity: ${market.liquidity_usd / 1000:.1f}k
24h Price Change: {sign}{change:.1f}%{news_summary}{web_summary}

YOUR TASK:
1. Analyze WHY this market is worth trading (or not)
2. Explain SPECIFIC factors that support your decision
3. Reference actual data points (probability, volume, news, web research)
4. Be specific about what convinced you to trade {lean}

Your reasoning must be specific to this market. Avoid generic phrases like "high volume indicates interest".

Respond in JSON format:
{{
  "side": "YES" or "NO",
  "confidence": 0.0 to 1.0,
  "reasoning": [
    "Specific reason 1 referencing actual data",
    "Specific reason 2 with concrete details from news/web research",
    "Specific reason 3 explaining what makes this market unique"
  ]
}}"""


# ─── Parser ───────────────────────────────────────────────────────────────────

def _coerce_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.5
    if math.isnan(confidence) or math.isinf(confidence):
        return 0.5
    return max(0.0, min(1.0, confidence))


def _coerce_reasoning(value: Any) -> list[str]:
    if isinstance(value, list):
        reasons = [str(r) for r in value]
        return reasons or [DEFAULT_REASONING]
    if value:
        return [str(value)]
    return [DEFAULT_REASONING]


def parse_ai_response(text: str, source: str = "ai") -> Decision:
    """
    Turn a provider reply into a Decision.

    Refusals (checked in the first 200 chars) and replies without a JSON
    object raise ParseError carrying a truncated excerpt of the raw reply.
    """
    raw = (text or "").strip()
    excerpt = raw[:RAW_EXCERPT_CHARS]

    head = raw[:REFUSAL_SCAN_CHARS].lower()
    if any(indicator in head for indicator in REFUSAL_INDICATORS):
        raise ParseError("AI refused to provide analysis", raw_excerpt=excerpt)

    fenced = _FENCED_JSON.search(raw)
    if fenced:
        json_str = fenced.group(1)
    else:
        bare = _BARE_JSON.search(raw)
        if not bare:
            raise ParseError("No JSON found in response", raw_excerpt=excerpt)
        json_str = bare.group(0)

    try:
        parsed = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in response: {e}", raw_excerpt=excerpt) from e
    if not isinstance(parsed, dict):
        raise ParseError("Response JSON is not an object", raw_excerpt=excerpt)

    side_raw = parsed.get("side")
    side = "YES" if isinstance(side_raw, str) and side_raw.strip().lower() == "yes" else "NO"

    return Decision(
        side=side,
        confidence=_coerce_confidence(parsed.get("confidence")),
        reasoning=_coerce_reasoning(parsed.get("reasoning")),
        source=source,
    )


# ─── Adapter Base ─────────────────────────────────────────────────────────────

@dataclass
class RawReply:
    provider: str
    text: str
    status_code: int = 200


class ProviderAdapter:
    """Capability interface: complete(prompt) -> RawReply."""

    name: str = ""
    label: str = ""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        agent_name: str = "",
    ) -> None:
        self.api_key = api_key or ""
        self.model = model
        self.timeout = timeout
        self.agent_name = agent_name or self.label

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _require_key(self) -> None:
        if not self.api_key:
            raise ConfigurationError(f"{self.name} API key not configured")

    async def complete(self, prompt: str) -> RawReply:
        raise NotImplementedError

    # ── HTTP helpers ──────────────────────────────────────────────────────────

    async def _post_json(self, url: str, headers: dict, payload: dict) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as http:
                resp = await http.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.label} request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.label} transport error: {e}") from e

        if resp.status_code >= 400:
            self._raise_for_status(resp)
        return resp

    @staticmethod
    def _error_body(resp: httpx.Response) -> dict:
        try:
            body = resp.json()
        except ValueError:
            return {"message": "Unknown error"}
        return body if isinstance(body, dict) else {"message": str(body)}

    def _raise_for_status(self, resp: httpx.Response) -> None:
        body = self._error_body(resp)
        raise ProviderError(
            f"{self.label} API error: {resp.status_code} - {json.dumps(body)[:300]}",
            status_code=resp.status_code,
        )

    def _reply(self, content: Any) -> RawReply:
        if not content or not isinstance(content, str):
            raise ProviderError(f"No response from {self.label}")
        return RawReply(provider=self.name, text=content)


# ─── OpenAI-compatible Chat Completions ───────────────────────────────────────

class ChatCompletionsAdapter(ProviderAdapter):
    """Shared envelope for OpenAI-style /chat/completions APIs."""

    url: str = ""
    persona: str = ""
    temperature: float = 0.7

    def _system_prompt(self) -> str:
        return (
            f"You are {self.agent_name}, {self.persona} "
            "Always respond with valid JSON."
        )

    async def complete(self, prompt: str) -> RawReply:
        self._require_key()
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self._system_prompt()},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        resp = await self._post_json(self.url, headers, payload)
        data = resp.json()
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        return self._reply(content)


class OpenAIAdapter(ChatCompletionsAdapter):
    name = "openai"
    label = "OpenAI"
    url = "https://api.openai.com/v1/chat/completions"
    persona = "an expert prediction market trader. Analyze markets and make trading decisions."


class GrokAdapter(ChatCompletionsAdapter):
    name = "grok"
    label = "xAI GROK"
    url = "https://api.x.ai/v1/chat/completions"
    persona = "an aggressive prediction market trader. Make bold, high-conviction trades."
    temperature = 0.8


class DeepSeekAdapter(ChatCompletionsAdapter):
    name = "deepseek"
    label = "DeepSeek"
    url = "https://api.deepseek.com/v1/chat/completions"
    persona = "a strategic prediction market trader. Analyze markets deeply and make well-reasoned trades."


# ─── Anthropic ────────────────────────────────────────────────────────────────

class AnthropicAdapter(ProviderAdapter):
    name = "anthropic"
    label = "Anthropic"
    MAX_TOKENS = 1000
    SYSTEM_PROMPT = (
        "You are an analytical assistant helping analyze prediction market data. "
        "You evaluate market information and provide structured analysis in JSON format. "
        "This is for data analysis purposes, not financial advice."
    )

    async def complete(self, prompt: str) -> RawReply:
        self._require_key()
        try:
            async with anthropic.AsyncAnthropic(api_key=self.api_key, timeout=self.timeout) as client:
                message = await client.messages.create(
                    model=self.model,
                    max_tokens=self.MAX_TOKENS,
                    system=self.SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=0.7,
                )
        except anthropic.APITimeoutError as e:
            raise ProviderError(f"Anthropic request timed out after {self.timeout}s") from e
        except anthropic.APIStatusError as e:
            raise ProviderError(
                f"Anthropic API error: {e.status_code} - {e.message}",
                status_code=e.status_code,
            ) from e
        except anthropic.APIError as e:
            raise ProviderError(f"Anthropic transport error: {e}") from e

        try:
            content = message.content[0].text
        except (AttributeError, IndexError, TypeError):
            content = None
        return self._reply(content)


# ─── Google Gemini ────────────────────────────────────────────────────────────

class GeminiAdapter(ProviderAdapter):
    name = "gemini"
    label = "Google AI"
    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    async def complete(self, prompt: str) -> RawReply:
        self._require_key()
        url = f"{self.BASE_URL}/{self.model}:generateContent?key={self.api_key}"
        payload = {
            "contents": [{
                "parts": [{
                    "text": (
                        f"You are {self.agent_name}, an expert prediction market trader "
                        f"specializing in sports and entertainment. {prompt}"
                    ),
                }],
            }],
            "generationConfig": {
                "temperature": 0.7,
                "responseMimeType": "application/json",
            },
        }
        resp = await self._post_json(url, {"Content-Type": "application/json"}, payload)
        data = resp.json()
        try:
            content = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            content = None
        return self._reply(content)


# ─── Qwen (DashScope) ─────────────────────────────────────────────────────────

class QwenAdapter(ProviderAdapter):
    name = "qwen"
    label = "Qwen"
    URL = "https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation"

    def _raise_for_status(self, resp: httpx.Response) -> None:
        body = self._error_body(resp)
        if resp.status_code == 403 and body.get("code") == QWEN_ACCESS_DENIED_CODE:
            raise QuietIneligibilityError(
                "Qwen API access denied - account not eligible", status_code=403
            )
        super()._raise_for_status(resp)

    async def complete(self, prompt: str) -> RawReply:
        self._require_key()
        payload = {
            "model": self.model,
            "input": {
                "messages": [
                    {
                        "role": "system",
                        "content": (
                            f"You are {self.agent_name}, an expert prediction market trader "
                            "specializing in finance and geopolitics. Always respond with valid JSON."
                        ),
                    },
                    {"role": "user", "content": prompt},
                ],
            },
            "parameters": {"temperature": 0.7, "result_format": "message"},
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        resp = await self._post_json(self.URL, headers, payload)
        data = resp.json()
        try:
            content = data["output"]["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        return self._reply(content)


# ─── Registry ─────────────────────────────────────────────────────────────────

PROVIDER_ADAPTERS: dict[str, type[ProviderAdapter]] = {
    "openai": OpenAIAdapter,
    "anthropic": AnthropicAdapter,
    "grok": GrokAdapter,
    "gemini": GeminiAdapter,
    "deepseek": DeepSeekAdapter,
    "qwen": QwenAdapter,
}


def build_adapter(
    provider: str,
    settings: "EngineSettings",
    agent_name: str = "",
) -> ProviderAdapter:
    """Instantiate the adapter for a provider using keys/models from settings."""
    try:
        adapter_cls = PROVIDER_ADAPTERS[provider]
    except KeyError:
        raise ConfigurationError(f"Unknown AI provider: {provider}") from None
    adapter = adapter_cls(
        api_key=settings.api_key_for(provider),
        model=settings.model_for(provider),
        timeout=settings.ai_timeout_seconds,
        agent_name=agent_name,
    )
    if adapter.is_configured:
        logger.debug(f"{adapter.label}: adapter ready (model={adapter.model})")
    return adapter
