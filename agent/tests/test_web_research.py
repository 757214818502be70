"""
test_web_research.py — Tests for the optional Tavily web research.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from web_research import WebResearcher, build_market_search_query


def patched_post(post_mock):
    client = MagicMock()
    client.post = post_mock
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=client)
    cm.__aexit__ = AsyncMock(return_value=False)
    return patch("httpx.AsyncClient", return_value=cm)


class TestSearchQuery:

    def test_strips_auxiliary_and_question_mark(self):
        assert build_market_search_query("Will BTC hit 100k?", "Other") == "BTC hit 100k news"

    def test_appends_category(self):
        assert (
            build_market_search_query("Will the Fed cut rates in March?", "Finance")
            == "the Fed cut rates in March Finance news"
        )

    def test_category_already_present(self):
        assert build_market_search_query("Is crypto regulation coming?", "Crypto") == "crypto regulation coming news"


class TestWebResearcher:

    @pytest.mark.asyncio
    async def test_disabled_without_key(self):
        researcher = WebResearcher(api_key=None)
        assert researcher.enabled is False
        assert await researcher.search("anything") == []

    @pytest.mark.asyncio
    async def test_maps_results(self):
        resp = MagicMock()
        resp.raise_for_status = MagicMock()
        resp.json.return_value = {"results": [
            {"title": "Fed preview", "content": "Futures price a cut", "url": "https://www.reuters.com/markets/fed"},
            {"title": None, "content": "second", "url": None},
            {"title": "Dropped", "content": "over limit", "url": "https://x.com"},
        ]}
        post = AsyncMock(return_value=resp)
        researcher = WebResearcher(api_key="tv-key", max_results=2)
        with patched_post(post):
            results = await researcher.research_market("Will the Fed cut rates?", "Finance")

        assert len(results) == 2
        assert results[0].source == "reuters.com"
        assert results[0].snippet == "Futures price a cut"
        assert results[1].title == "Source"
        assert results[1].source == "Web"
        payload = post.call_args.kwargs["json"]
        assert payload["api_key"] == "tv-key"
        assert payload["query"] == "the Fed cut rates Finance news"
        assert payload["max_results"] == 2

    @pytest.mark.asyncio
    async def test_failure_returns_empty(self):
        post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with patched_post(post):
            assert await WebResearcher(api_key="tv-key").search("fed") == []
