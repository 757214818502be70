"""
web_research.py — Optional web-search snippets for decision prompts.

When WEB_SEARCH_API_KEY is set, each candidate market gets a short Tavily
search whose top results are added to the AI prompt and to the fallback
reasoning. Without a key, or on any failure, research is simply empty.
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlparse

import httpx
from loguru import logger

from models import WebResult

TAVILY_SEARCH_URL = "https://api.tavily.com/search"
DEFAULT_MAX_RESULTS = 3
DEFAULT_TIMEOUT = 10.0
MAX_QUERY_CHARS = 120

_LEADING_AUXILIARY = re.compile(r"^(will|does|is|are|can|did|has|have)\s+", re.IGNORECASE)


def build_market_search_query(question: str, category: str = "") -> str:
    """Concise search query from a market question, e.g. 'Fed cut rates in March news'."""
    query = _LEADING_AUXILIARY.sub("", question.strip()).rstrip("?").strip()
    if category and category != "Other" and category.lower() not in query.lower():
        query = f"{query} {category}"
    return f"{query[:MAX_QUERY_CHARS].rstrip()} news"


def _source_from_url(url: Optional[str]) -> str:
    if not url:
        return "Web"
    host = urlparse(url).netloc
    return host[4:] if host.startswith("www.") else (host or "Web")


class WebResearcher:
    """Tavily-backed search. Disabled (returns []) when no key is configured."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        max_results: int = DEFAULT_MAX_RESULTS,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_key = api_key or ""
        self.max_results = max_results
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def search(self, query: str) -> list[WebResult]:
        if not self.enabled or not query:
            return []

        payload = {
            "api_key": self.api_key,
            "query": query,
            "max_results": self.max_results,
            "search_depth": "basic",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(TAVILY_SEARCH_URL, json=payload)
                resp.raise_for_status()
                data = resp.json()
        except Exception as exc:
            logger.warning(f"Web search failed for '{query}': {exc}")
            return []

        results = []
        for row in (data.get("results") or [])[: self.max_results]:
            url = row.get("url")
            results.append(WebResult(
                title=row.get("title") or "Source",
                snippet=row.get("content") or "",
                source=_source_from_url(url),
                url=url,
            ))
        return results

    async def research_market(self, question: str, category: str = "") -> list[WebResult]:
        return await self.search(build_market_search_query(question, category))
