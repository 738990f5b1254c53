"""Tests for batch DOI enrichment and translation."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from litlink.enrichment.doi_enricher import DoiEnricher
from litlink.enrichment.translator import Translator
from litlink.errors import CircuitBreakerOpenError, RetryableTransportError
from litlink.sources.crossref_source import CrossrefSource


def _crossref(outcomes):
    """Crossref stand-in whose fetch_work answers from ``outcomes`` by DOI."""

    async def fetch_work(doi):
        outcome = outcomes[doi]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    crossref = MagicMock()
    crossref.fetch_work = AsyncMock(side_effect=fetch_work)
    crossref.extract_enriched_data = CrossrefSource.extract_enriched_data
    return crossref


class TestDoiEnricher:
    @pytest.mark.asyncio
    async def test_sorts_outcomes_without_aborting(self):
        crossref = _crossref({
            "10.1/ok": {"publisher": "Elsevier", "volume": "3"},
            "10.1/missing": None,
            "10.1/broken": RetryableTransportError("crossref", "https://api.crossref.org", 4),
            "10.1/open": CircuitBreakerOpenError("crossref"),
        })
        enricher = DoiEnricher(crossref, concurrency=2)

        report = await enricher.enrich_many(["10.1/ok", "10.1/missing", "10.1/broken", "10.1/open"])

        assert list(report.enriched) == ["10.1/ok"]
        assert report.enriched["10.1/ok"].publisher == "Elsevier"
        assert report.not_found == ["10.1/missing"]
        assert report.failed == 1
        assert report.skipped_breaker_open == 1
        assert report.total == 4

    @pytest.mark.asyncio
    async def test_deduplicates_and_reports_progress(self):
        crossref = _crossref({"10.1/a": {"publisher": "A"}, "10.1/b": {"publisher": "B"}})
        progress = []

        report = await DoiEnricher(crossref).enrich_many(
            ["10.1/a", " 10.1/a ", "", "10.1/b"],
            progress_callback=lambda done, total, msg: progress.append((done, total)),
        )

        assert crossref.fetch_work.await_count == 2
        assert len(report.enriched) == 2
        assert progress[-1] == (2, 2)

    @pytest.mark.asyncio
    async def test_empty_input(self):
        crossref = _crossref({})
        report = await DoiEnricher(crossref).enrich_many([])
        assert report.total == 0
        crossref.fetch_work.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_undecodable_response_counts_as_failure(self, make_client):
        def handler(request):
            if "bad" in str(request.url):
                raise httpx.DecodingError("bad gzip", request=request)
            return httpx.Response(200, json={"message": {"publisher": "Elsevier"}})

        enricher = DoiEnricher(CrossrefSource(make_client(handler)))
        report = await enricher.enrich_many(["10.1/ok", "10.1/bad"])

        assert list(report.enriched) == ["10.1/ok"]
        assert report.failed == 1


class TestTranslator:
    @pytest.mark.asyncio
    async def test_translate_text_posts_chat_completion(self, make_client):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": "  Перевод  "}}]})

        client = make_client(handler)
        translator = Translator(client, api_key="sk-test", model="test/model")

        text = await translator.translate_text("Translation", max_tokens=100)

        assert text == "Перевод"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == "test/model"
        assert seen["body"]["max_tokens"] == 100
        assert seen["body"]["messages"][0]["role"] == "system"
        assert "Russian" in seen["body"]["messages"][0]["content"]
        assert seen["body"]["messages"][1] == {"role": "user", "content": "Translation"}
        assert "openrouter" in client.stats()["rate_limiters"]

    @pytest.mark.asyncio
    async def test_missing_key(self, make_client):
        translator = Translator(make_client(lambda request: httpx.Response(200)))
        with pytest.raises(ValueError, match="API key"):
            await translator.translate_text("hello")

    @pytest.mark.asyncio
    async def test_empty_completion(self, make_client):
        handler = lambda request: httpx.Response(200, json={"choices": []})
        translator = Translator(make_client(handler), api_key="sk-test")
        with pytest.raises(ValueError, match="Empty"):
            await translator.translate_text("hello")

    @pytest.mark.asyncio
    async def test_translate_article_skips_missing_abstract(self, make_client):
        handler = lambda request: httpx.Response(200, json={"choices": [{"message": {"content": "T"}}]})
        translator = Translator(make_client(handler), api_key="sk-test")

        result = await translator.translate_article("Title")

        assert result.title == "T"
        assert result.abstract is None

    @pytest.mark.asyncio
    async def test_translate_many_counts_failures(self, make_client):
        def handler(request):
            user_text = json.loads(request.content)["messages"][1]["content"]
            if user_text == "bad":
                return httpx.Response(400, json={"error": "rejected"})
            return httpx.Response(200, json={"choices": [{"message": {"content": user_text.upper()}}]})

        translator = Translator(make_client(handler), api_key="sk-test")
        results, failed = await translator.translate_many([("good", "abstract"), ("bad", None)])

        assert failed == 1
        assert results[0].title == "GOOD"
        assert results[0].abstract == "ABSTRACT"
        assert results[1] is None
