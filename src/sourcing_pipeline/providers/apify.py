"""Structured-scrape provider backed by Apify actors.

Starts a Made-in-China scraper actor run through the Apify REST API, then
polls the run and its default dataset with ``JobPoller`` until rows appear or
the run stops. Actors are tried in order; an actor that is missing or needs
renting (404/402/403) hands over to the next one.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from ..config import APIFY_ACTOR_IDS
from ..errors import (
    ProviderError,
    ProviderNotFoundError,
    ProviderPaymentRequiredError,
    ProviderTimeoutError,
)
from ..polling import JobPoller, JobSnapshot, JobState
from .base import RawProviderRecord, translate_http_error

logger = logging.getLogger(__name__)

APIFY_API_URL = "https://api.apify.com/v2"

RUN_STATUS_TO_STATE = {
    "READY": JobState.PENDING,
    "RUNNING": JobState.RUNNING,
    "SUCCEEDED": JobState.SUCCEEDED,
    "FAILED": JobState.FAILED,
    "ABORTING": JobState.FAILED,
    "ABORTED": JobState.FAILED,
    "TIMING-OUT": JobState.TIMED_OUT,
    "TIMED-OUT": JobState.TIMED_OUT,
}


def build_actor_input(query: str, location: Optional[str], max_items: int) -> Dict[str, Any]:
    """Actor input; different actors read different parameter names."""
    actor_input: Dict[str, Any] = {
        "keyword": query,
        "searchQuery": query,
        "query": query,
        "maxItems": max_items,
        "maxResults": max_items,
    }
    if location:
        actor_input["location"] = location
        actor_input["city"] = location
    return actor_input


class ApifyProvider:
    name = "apify"
    is_synthetic = False

    def __init__(
        self,
        api_token: str,
        actor_ids: Sequence[str] = APIFY_ACTOR_IDS,
        poller: Optional[JobPoller] = None,
        client: Optional[httpx.AsyncClient] = None,
        request_timeout: float = 60.0,
        api_url: str = APIFY_API_URL,
    ):
        if not api_token:
            raise ValueError("Apify API token is required")
        if not actor_ids:
            raise ValueError("At least one Apify actor id is required")
        self.api_token = api_token
        self.actor_ids = list(actor_ids)
        self.poller = poller or JobPoller()
        self.request_timeout = request_timeout
        self.api_url = api_url.rstrip("/")
        self._client = client

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.request_timeout) as client:
            yield client

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_token}"}

    async def _request(self, client: httpx.AsyncClient, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await client.request(
                method, f"{self.api_url}{path}", headers=self._headers, **kwargs
            )
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as e:
            raise translate_http_error(self.name, e) from e

    async def fetch(
        self,
        query: str,
        *,
        location: Optional[str] = None,
        max_items: int = 2,
    ) -> List[RawProviderRecord]:
        async with self._http() as client:
            for actor_id in self.actor_ids:
                try:
                    return await self._run_actor(client, actor_id, query, location, max_items)
                except (ProviderNotFoundError, ProviderPaymentRequiredError) as e:
                    logger.warning("[Apify] Actor %s unavailable (%s); trying next actor", actor_id, e)
                    continue

        raise ProviderNotFoundError(
            self.name,
            f"All Apify actors failed: {', '.join(self.actor_ids)}",
        )

    async def _run_actor(
        self,
        client: httpx.AsyncClient,
        actor_id: str,
        query: str,
        location: Optional[str],
        max_items: int,
    ) -> List[RawProviderRecord]:
        actor_input = build_actor_input(query, location, max_items)
        logger.info("[Apify] Starting actor %s for query=%r location=%r", actor_id, query, location)
        logger.debug("[Apify] Actor input: %s", actor_input)

        # REST paths use "user~actor" in place of "user/actor".
        run = await self._request(
            client, "POST", f"/acts/{actor_id.replace('/', '~')}/runs", json=actor_input
        )
        run_data = run.get("data") or {}
        run_id = run_data.get("id")
        dataset_id = run_data.get("defaultDatasetId")
        if not run_id or not dataset_id:
            raise ProviderError(self.name, f"Actor {actor_id} returned no run id / dataset id")

        async def check() -> JobSnapshot:
            run_info = await self._request(client, "GET", f"/actor-runs/{run_id}")
            status = str((run_info.get("data") or {}).get("status") or "READY").upper()
            items = await self._request(
                client,
                "GET",
                f"/datasets/{dataset_id}/items",
                params={"clean": "true", "format": "json", "limit": max_items},
            )
            if not isinstance(items, list):
                items = []
            return JobSnapshot(
                state=RUN_STATUS_TO_STATE.get(status, JobState.RUNNING),
                items=[item for item in items if isinstance(item, dict)],
            )

        outcome = await self.poller.run(check)
        logger.info(
            "[Apify] Actor %s finished polling: state=%s items=%d polls=%d (%.1fs)",
            actor_id,
            outcome.state.value,
            len(outcome.items),
            outcome.polls,
            outcome.elapsed_seconds,
        )

        if outcome.items:
            logger.debug("[Apify] Sample item keys: %s", sorted(outcome.items[0].keys()))
            return outcome.items[:max_items]
        if outcome.state == JobState.TIMED_OUT:
            raise ProviderTimeoutError(self.name, f"Actor {actor_id} produced no items before the wait budget ran out")
        if outcome.state == JobState.FAILED:
            raise ProviderError(self.name, f"Actor {actor_id} run {run_id} failed")
        return []
