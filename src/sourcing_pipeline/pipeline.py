"""
Manufacturer Sourcing Pipeline

Composition root for a search: turns a free-text buyer query into a ranked,
deduplicated, confidence-scored list of manufacturers and caches the response
under a search id for follow-up reads.

Steps:
1. Parse the query (degrades to the raw query on failure)
2. Acquire raw records from the provider chain (first non-empty wins)
3. Normalize, classify and score each record, one at a time
4. Deduplicate rows describing the same company
5. Filter, sort and truncate
6. Cache the response and report completion
"""

import logging
import time
from typing import List, Optional, Sequence, Tuple
from uuid import uuid4

from .acquisition import AcquisitionManager
from .cache import CacheSweeper, ClassificationCache, SearchCache
from .classifier import ManufacturerClassifier
from .config import SearchSettings
from .dedupe import dedupe
from .errors import RecordProcessingError, SearchFailedError, SearchNotFoundError
from .filtering import FilterCriteria, apply_filters
from .llm_client import ChatClient
from .models import (
    CachedManufacturersPage,
    CanonicalManufacturerRecord,
    ClassificationResult,
    ManufacturerResult,
    Observability,
    ProcessingSteps,
    SearchRequest,
    SearchResponse,
    SellerProfile,
    SortField,
    SortOrder,
)
from .normalizer import normalize_record, to_manufacturer_result
from .polling import JobPoller
from .progress import (
    CompleteEvent,
    ErrorEvent,
    ParsedEvent,
    ProgressEmitter,
    ProgressEvent,
    ProgressSink,
    ResultEvent,
)
from .providers.apify import ApifyProvider
from .providers.base import ProviderAdapter, RawProviderRecord
from .providers.firecrawl import FirecrawlProvider
from .providers.replay import ReplayProvider
from .providers.synthetic import SyntheticProvider
from .query_parser import QueryParser
from .scoring import score_record

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 5
MAX_PAGE_LIMIT = 20


class SourcingPipeline:
    """Runs searches and serves cached results; holds no global state."""

    def __init__(
        self,
        parser: QueryParser,
        acquisition: AcquisitionManager,
        classifier: ManufacturerClassifier,
        search_cache: Optional[SearchCache] = None,
        result_limit: int = 2,
        cache_ttl_seconds: Optional[float] = None,
        sweeper: Optional[CacheSweeper] = None,
    ):
        self.parser = parser
        self.acquisition = acquisition
        self.classifier = classifier
        self.search_cache = search_cache if search_cache is not None else SearchCache()
        self.result_limit = result_limit
        self.cache_ttl_seconds = cache_ttl_seconds
        self.sweeper = sweeper

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background cache sweep (needs a running event loop)."""
        if self.sweeper is not None:
            self.sweeper.start()

    async def aclose(self) -> None:
        if self.sweeper is not None:
            await self.sweeper.stop()

    # ------------------------------------------------------------------
    # search
    # ------------------------------------------------------------------

    async def search(
        self,
        request: SearchRequest,
        on_progress: Optional[ProgressSink] = None,
    ) -> SearchResponse:
        """
        Run one search end to end.

        A ``result`` event is emitted per scored record before dedupe and
        filtering; the returned response is the authoritative row list.

        Raises:
            SearchFailedError: For any failure that is not absorbed by a
                fallback (e.g. an empty provider chain). An ``error`` event is
                emitted first.
        """
        search_id = str(uuid4())
        emitter = ProgressEmitter(on_progress)
        job_start = time.time()
        logger.info("Starting search %s: %r", search_id, request.query)

        try:
            return await self._run_search(search_id, request, emitter, job_start)
        except Exception as e:
            logger.exception("Search %s failed", search_id)
            failure = SearchFailedError(e)
            await emitter.emit(ErrorEvent(message=str(failure)))
            raise failure from e

    async def _run_search(
        self,
        search_id: str,
        request: SearchRequest,
        emitter: ProgressEmitter,
        job_start: float,
    ) -> SearchResponse:
        criteria = FilterCriteria.from_filters(request.filters)

        # ========== STEP 1: PARSE QUERY ==========
        t0 = time.time()
        logger.info("STEP 1/6: Parsing query")
        parsed, parser_fallback = await self.parser.parse_with_status(request.query, request.image_url)
        await emitter.emit(ParsedEvent(parsed_query=parsed))
        logger.info(
            "✓ Parsed query in %.2fs (product=%r, locations=%s, fallback=%s)",
            time.time() - t0,
            parsed.product,
            parsed.locations,
            parser_fallback,
        )

        # ========== STEP 2: ACQUIRE RAW RECORDS ==========
        t1 = time.time()
        search_query = parsed.product or request.query
        location_hint = (list(criteria.locations) or parsed.locations or [None])[0]
        logger.info("STEP 2/6: Acquiring records for %r (location=%r)", search_query, location_hint)
        acquired = await self.acquisition.acquire(search_query, location_hint)
        await emitter.emit(ProgressEvent(step="searching", provider_used=acquired.provider_used))
        logger.info(
            "✓ Acquired %d raw records from %s provider %r in %.2fs",
            acquired.raw_count,
            acquired.provider_used.value,
            acquired.provider_name,
            time.time() - t1,
        )

        # ========== STEP 3: NORMALIZE, CLASSIFY, SCORE ==========
        t2 = time.time()
        logger.info("STEP 3/6: Processing %d records", len(acquired.records))
        results: List[ManufacturerResult] = []
        dropped = 0
        classifier_fallbacks = 0
        for idx, raw in enumerate(acquired.records):
            seller_id = f"{acquired.provider_name}_{idx}_{search_id[:8]}"
            try:
                result, classification = await self._process_record(raw, seller_id)
            except RecordProcessingError as e:
                logger.warning("Dropping record idx=%d: %s", idx, e)
                dropped += 1
                continue
            if classification.used_fallback:
                classifier_fallbacks += 1
            results.append(result)
            await emitter.emit(ResultEvent(result=result))
        logger.info(
            "✓ Processed records in %.2fs (kept=%d, dropped=%d, classifier_fallbacks=%d)",
            time.time() - t2,
            len(results),
            dropped,
            classifier_fallbacks,
        )

        # ========== STEP 4: DEDUPLICATE ==========
        logger.info("STEP 4/6: Deduplicating %d rows", len(results))
        unique = dedupe(results)
        await emitter.emit(
            ProgressEvent(step="deduplicating", before_count=len(results), after_count=len(unique))
        )
        logger.info("✓ Deduplication removed %d rows, kept %d", len(results) - len(unique), len(unique))

        # ========== STEP 5: FILTER AND SORT ==========
        logger.info("STEP 5/6: Filtering and sorting")
        filtered = apply_filters(unique, criteria)
        limit = request.limit or self.result_limit
        final = filtered[:limit]
        filters_applied = criteria.describe()
        await emitter.emit(
            ProgressEvent(
                step="filtering",
                before_count=len(unique),
                after_count=len(filtered),
                filters_applied=filters_applied,
            )
        )
        logger.info("✓ %d rows match filters %s, returning %d", len(filtered), filters_applied, len(final))

        # ========== STEP 6: CACHE AND COMPLETE ==========
        logger.info("STEP 6/6: Caching response")
        observability = Observability(
            search_method=acquired.provider_name,
            provider_used=acquired.provider_used,
            provider_attempts=acquired.attempts,
            filters_applied=filters_applied,
            processing_steps=ProcessingSteps(
                raw_results_count=acquired.raw_count,
                normalized_count=len(results),
                dropped_count=dropped,
                after_deduplication_count=len(unique),
                after_filtering_count=len(filtered),
                final_count=len(final),
            ),
            parser_fallback=parser_fallback,
            classifier_fallbacks=classifier_fallbacks,
        )
        response = SearchResponse(
            search_id=search_id,
            query=request.query,
            parsed_query=parsed,
            results=final,
            total_results=len(filtered),
            search_time_seconds=round(time.time() - job_start, 3),
            observability=observability,
        )
        self.search_cache.put(search_id, response, ttl=self.cache_ttl_seconds)
        await emitter.emit(
            CompleteEvent(
                search_id=search_id,
                total_results=response.total_results,
                observability=observability,
            )
        )
        logger.info("✓ Search %s complete in %.2fs", search_id, response.search_time_seconds)
        return response

    async def _process_record(
        self, raw: RawProviderRecord, seller_id: str
    ) -> Tuple[ManufacturerResult, ClassificationResult]:
        try:
            record: CanonicalManufacturerRecord = normalize_record(raw, seller_id)
            classification = await self.classifier.classify(seller_id, SellerProfile.from_record(record))
            confidence = score_record(record, classification.confidence)
            return to_manufacturer_result(record, classification, confidence), classification
        except Exception as e:
            raise RecordProcessingError(seller_id, str(e)) from e

    # ------------------------------------------------------------------
    # follow-up reads
    # ------------------------------------------------------------------

    def get_cached(
        self,
        search_id: str,
        sort_by: SortField = SortField.CONFIDENCE,
        order: SortOrder = SortOrder.DESC,
        limit: int = DEFAULT_PAGE_LIMIT,
        min_confidence: Optional[float] = None,
        location: Optional[str] = None,
    ) -> CachedManufacturersPage:
        """
        Re-filter and re-sort the rows of a cached search.

        Raises:
            SearchNotFoundError: If the search id is unknown or expired
        """
        response = self.search_cache.get(search_id)
        if response is None:
            raise SearchNotFoundError(search_id)

        limit = min(max(1, limit), MAX_PAGE_LIMIT)
        criteria = FilterCriteria(
            min_confidence=min_confidence,
            locations=(location,) if location else (),
        )
        matching = apply_filters(response.results, criteria, sort_by=sort_by, order=order)
        return CachedManufacturersPage(
            manufacturers=matching[:limit],
            sort_by=SortField(sort_by),
            order=SortOrder(order),
            total=len(matching),
        )

    async def classify_seller(self, seller_id: str, seller: SellerProfile) -> ClassificationResult:
        """Classify a single seller outside of a search."""
        return await self.classifier.classify(seller_id, seller)


def build_providers(
    settings: SearchSettings,
    replay_path: Optional[str] = None,
) -> List[ProviderAdapter]:
    """Provider chain in priority order; providers without credentials are left out."""
    providers: List[ProviderAdapter] = []
    if settings.use_synthetic_only:
        logger.info("USE_SYNTHETIC_ONLY is set; remote providers disabled")
        return [SyntheticProvider()]

    if replay_path:
        providers.append(ReplayProvider(replay_path))
    if settings.apify_api_token:
        poller = JobPoller(
            interval_seconds=settings.poll_interval_seconds,
            max_wait_seconds=settings.poll_max_wait_seconds,
        )
        providers.append(
            ApifyProvider(settings.apify_api_token, settings.apify_actor_ids, poller=poller)
        )
    else:
        logger.info("APIFY_API_TOKEN not set; structured-scrape provider disabled")
    if settings.firecrawl_api_key:
        providers.append(FirecrawlProvider(settings.firecrawl_api_key))
    else:
        logger.info("FIRECRAWL_API_KEY not set; web-scrape provider disabled")
    providers.append(SyntheticProvider())
    return providers


def build_pipeline(
    settings: Optional[SearchSettings] = None,
    replay_path: Optional[str] = None,
    providers: Optional[Sequence[ProviderAdapter]] = None,
) -> SourcingPipeline:
    """Wire a pipeline from configuration."""
    settings = settings or SearchSettings()
    chat_client = ChatClient(
        api_key=settings.openai_api_key,
        model=settings.llm_model,
        base_url=settings.openai_base_url,
    )
    if providers is None:
        providers = build_providers(settings, replay_path)
    logger.debug("Provider chain: %s", [p.name for p in providers])

    search_cache = SearchCache(default_ttl=settings.cache_ttl_seconds)
    return SourcingPipeline(
        parser=QueryParser(chat_client),
        acquisition=AcquisitionManager(
            providers,
            timeout_seconds=settings.provider_timeout_seconds,
            max_items=settings.provider_max_items,
        ),
        classifier=ManufacturerClassifier(chat_client, ClassificationCache()),
        search_cache=search_cache,
        result_limit=settings.result_limit,
        sweeper=CacheSweeper(search_cache, settings.cache_sweep_interval_seconds),
    )
