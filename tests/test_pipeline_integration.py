"""
End-to-end tests for SourcingPipeline with fake chat and provider backends.
No network calls are made.
"""

import json

import pytest

from sourcing_pipeline.acquisition import AcquisitionManager
from sourcing_pipeline.cache import ClassificationCache, SearchCache
from sourcing_pipeline.classifier import ManufacturerClassifier
from sourcing_pipeline.config import SearchSettings
from sourcing_pipeline.errors import SearchFailedError, SearchNotFoundError
from sourcing_pipeline.llm_client import ChatResponse
from sourcing_pipeline.models import (
    ManufacturerType,
    ProviderRole,
    SearchFilters,
    SearchRequest,
    SellerProfile,
    SortField,
    SortOrder,
)
from sourcing_pipeline.pipeline import SourcingPipeline, build_pipeline, build_providers
from sourcing_pipeline.providers.replay import ReplayProvider
from sourcing_pipeline.providers.synthetic import SyntheticProvider
from sourcing_pipeline.query_parser import QueryParser


class RecordingChatClient:
    """
    Answers parser prompts with a fixed parse and classifier prompts with a
    factory/trading verdict based on the company name.
    """

    def __init__(self, parse_reply=None, fail=False):
        self.parse_reply = parse_reply or {"product": "LED", "location": ["Ningbo"], "type": "manufacturer"}
        self.fail = fail
        self.calls = []

    async def chat(self, messages, *, temperature=0.7, max_tokens=2000):
        self.calls.append(messages)
        if self.fail:
            raise RuntimeError("LLM backend unavailable")
        system, user = messages[0]["content"], messages[1]["content"]
        if "parsing" in system:
            return ChatResponse(content=json.dumps(self.parse_reply))
        if "Trading" in user.split("- Company:")[1].splitlines()[0]:
            verdict = {"type": "trading", "confidence": 0.6, "explanation": "Wide range"}
        else:
            verdict = {"type": "factory", "confidence": 0.9, "explanation": "Owns plant"}
        return ChatResponse(content=json.dumps(verdict))


class ExplodingClassifier:
    """Classifier fake that fails for one seller index."""

    def __init__(self, inner, bad_index):
        self.inner = inner
        self.marker = f"_{bad_index}_"

    async def classify(self, seller_id, seller):
        if self.marker in seller_id:
            raise ValueError("corrupt seller")
        return await self.inner.classify(seller_id, seller)


def _pipeline(providers=None, chat=None, result_limit=2):
    chat = chat or RecordingChatClient()
    return SourcingPipeline(
        parser=QueryParser(chat),
        acquisition=AcquisitionManager(providers if providers is not None else [SyntheticProvider()]),
        classifier=ManufacturerClassifier(chat, ClassificationCache()),
        search_cache=SearchCache(default_ttl=60),
        result_limit=result_limit,
    )


@pytest.mark.asyncio
async def test_search_end_to_end_with_synthetic_provider():
    events = []
    pipeline = _pipeline()

    response = await pipeline.search(SearchRequest(query="LED factories in Ningbo"), on_progress=events.append)

    assert response.parsed_query.product == "LED"
    assert response.total_results == 3
    assert len(response.results) == 2
    first, second = response.results
    assert first.confidence >= second.confidence
    assert all(r.type == ManufacturerType.FACTORY for r in response.results)
    assert all(r.address == "Ningbo" for r in response.results)

    obs = response.observability
    assert obs.provider_used == ProviderRole.SYNTHETIC
    assert obs.search_method == "synthetic"
    assert obs.processing_steps.raw_results_count == 3
    assert obs.processing_steps.normalized_count == 3
    assert obs.processing_steps.after_deduplication_count == 3
    assert obs.processing_steps.final_count == 2
    assert not obs.parser_fallback
    assert obs.classifier_fallbacks == 0

    assert [e.type for e in events] == [
        "parsed",
        "progress",
        "result",
        "result",
        "result",
        "progress",
        "progress",
        "complete",
    ]
    assert [e.step for e in events if e.type == "progress"] == ["searching", "deduplicating", "filtering"]
    assert events[-1].search_id == response.search_id


@pytest.mark.asyncio
async def test_seller_ids_are_unique_per_search():
    pipeline = _pipeline(result_limit=10)
    first = await pipeline.search(SearchRequest(query="LED"))
    second = await pipeline.search(SearchRequest(query="LED"))

    ids = [r.id for r in first.results] + [r.id for r in second.results]
    assert len(ids) == len(set(ids)) == 6
    assert all(r.id.startswith("synthetic_") for r in first.results)


@pytest.mark.asyncio
async def test_factory_filter_and_request_limit():
    pipeline = _pipeline()
    request = SearchRequest(
        query="LED",
        filters=SearchFilters(manufacturer_type="factory", min_confidence=0.5),
        limit=10,
    )

    response = await pipeline.search(request)

    assert response.total_results == 2
    assert {r.name for r in response.results} == {"LED Manufacturing Co.", "Ningbo LED Factory"}
    assert response.observability.filters_applied == {"minConfidence": 0.5, "manufacturerType": "factory"}


@pytest.mark.asyncio
async def test_filter_location_is_passed_to_providers():
    pipeline = _pipeline()
    response = await pipeline.search(
        SearchRequest(query="LED", filters=SearchFilters(location=["Shenzhen"]), limit=10)
    )
    assert response.total_results == 3
    assert "Shenzhen LED Factory" in {r.name for r in response.results}


@pytest.mark.asyncio
async def test_llm_outage_degrades_but_still_returns_results():
    pipeline = _pipeline(chat=RecordingChatClient(fail=True))

    response = await pipeline.search(SearchRequest(query="LED", limit=10))

    assert response.parsed_query.product == "LED"
    assert response.observability.parser_fallback
    assert response.observability.classifier_fallbacks == 3
    assert response.total_results == 3


@pytest.mark.asyncio
async def test_failing_record_is_dropped_and_counted():
    chat = RecordingChatClient()
    pipeline = _pipeline(chat=chat)
    pipeline.classifier = ExplodingClassifier(ManufacturerClassifier(chat, ClassificationCache()), 1)
    events = []

    response = await pipeline.search(SearchRequest(query="LED", limit=10), on_progress=events.append)

    steps = response.observability.processing_steps
    assert steps.raw_results_count == 3
    assert steps.dropped_count == 1
    assert steps.normalized_count == 2
    assert len([e for e in events if e.type == "result"]) == 2


@pytest.mark.asyncio
async def test_replayed_records_flow_through(tmp_path):
    capture = tmp_path / "apify.json"
    capture.write_text(
        json.dumps(
            [
                {"supplierName": "Acme Co., Ltd.", "title": "LED Strip", "location": "Shenzhen, Guangdong"},
                {"supplierName": "ACME CO LTD", "title": "LED Panel", "location": "Shenzhen, Guangdong"},
            ]
        ),
        encoding="utf-8",
    )
    pipeline = _pipeline(providers=[ReplayProvider(capture), SyntheticProvider()])
    events = []

    response = await pipeline.search(SearchRequest(query="LED", limit=10), on_progress=events.append)

    assert response.observability.provider_used == ProviderRole.PRIMARY
    assert response.observability.processing_steps.after_deduplication_count == 1
    (row,) = response.results
    assert row.products == ["LED Strip", "LED Panel"]
    # Both listings were streamed before they were merged
    streamed = [e.result for e in events if e.type == "result"]
    assert len(streamed) == 2
    assert row.id == streamed[0].id


@pytest.mark.asyncio
async def test_empty_provider_chain_fails_with_error_event():
    events = []
    pipeline = _pipeline(providers=[])

    with pytest.raises(SearchFailedError):
        await pipeline.search(SearchRequest(query="LED"), on_progress=events.append)

    assert [e.type for e in events] == ["parsed", "error"]
    assert "No providers configured" in events[-1].message


@pytest.mark.asyncio
async def test_get_cached_resorts_and_clamps_limit():
    pipeline = _pipeline()
    response = await pipeline.search(SearchRequest(query="LED", limit=10))

    page = pipeline.get_cached(response.search_id, sort_by=SortField.NAME, order=SortOrder.ASC, limit=50)
    assert [m.name for m in page.manufacturers] == [
        "Global LED Trading Co.",
        "LED Manufacturing Co.",
        "Ningbo LED Factory",
    ]
    assert page.total == 3

    single = pipeline.get_cached(response.search_id, limit=0)
    assert len(single.manufacturers) == 1
    assert single.total == 3

    zhejiang = pipeline.get_cached(response.search_id, location="Zhejiang")
    assert zhejiang.total == 3
    assert pipeline.get_cached(response.search_id, location="Guangdong").total == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("sort_by", ["rating", "price", "distance"])
async def test_get_cached_ranks_unsupported_sort_fields_by_confidence(sort_by):
    pipeline = _pipeline()
    response = await pipeline.search(SearchRequest(query="LED", limit=10))

    page = pipeline.get_cached(response.search_id, sort_by=sort_by, limit=20)
    by_confidence = pipeline.get_cached(response.search_id, sort_by=SortField.CONFIDENCE, limit=20)

    assert page.sort_by == SortField(sort_by)
    assert [m.id for m in page.manufacturers] == [m.id for m in by_confidence.manufacturers]
    assert page.total == 3


@pytest.mark.asyncio
async def test_get_cached_unknown_id_raises():
    pipeline = _pipeline()
    with pytest.raises(SearchNotFoundError):
        pipeline.get_cached("does-not-exist")


@pytest.mark.asyncio
async def test_classify_seller_uses_shared_cache():
    chat = RecordingChatClient()
    pipeline = _pipeline(chat=chat)

    seller = SellerProfile(company_name="Acme Trading", products=["a"])
    first = await pipeline.classify_seller("x1", seller)
    second = await pipeline.classify_seller("x1", seller)

    assert first is second
    assert len(chat.calls) == 1


def test_build_providers_respects_credentials_and_synthetic_only():
    assert [p.name for p in build_providers(SearchSettings(use_synthetic_only=True))] == ["synthetic"]

    bare = SearchSettings(apify_api_token=None, firecrawl_api_key=None, use_synthetic_only=False)
    assert [p.name for p in build_providers(bare, replay_path="capture.json")] == ["replay", "synthetic"]

    full = SearchSettings(apify_api_token="tok", firecrawl_api_key="fc", use_synthetic_only=False)
    assert [p.name for p in build_providers(full)] == ["apify", "firecrawl", "synthetic"]


@pytest.mark.asyncio
async def test_built_pipeline_without_llm_key_still_searches():
    settings = SearchSettings(openai_api_key=None, use_synthetic_only=True, cache_sweep_interval_seconds=60)
    pipeline = build_pipeline(settings)
    pipeline.start()
    try:
        response = await pipeline.search(SearchRequest(query="valves", limit=5))
    finally:
        await pipeline.aclose()

    assert response.observability.parser_fallback
    assert response.total_results == 3
    assert pipeline.get_cached(response.search_id).total == 3
