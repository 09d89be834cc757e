"""Generic web-scrape provider backed by the Firecrawl scrape API.

Scrapes a 1688.com offer search page, pulls supplier/offer links out of it,
then scrapes each supplier page with a fixed delay between requests. The raw
records are page scrapes (url, markdown, html, metadata); the normalizer does
the label extraction.
"""

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from ..errors import ProviderError, ProviderPaymentRequiredError, ProviderQuotaError
from .base import RawProviderRecord, translate_http_error

logger = logging.getLogger(__name__)

FIRECRAWL_API_URL = "https://api.firecrawl.dev/v1"
SEARCH_PAGE_URL = "https://s.1688.com/selloffer/offer_search.htm"

SUPPLIER_URL_RE = re.compile(r"https?://(?:detail|company)\.1688\.com/[^\s\"'<>)\]]+")

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
    "Referer": "https://www.1688.com/",
}

# 1688.com region codes for the province filter.
PROVINCE_CODES = {
    "ningbo": "330200",
    "shenzhen": "440300",
    "guangzhou": "440100",
    "shanghai": "310000",
    "beijing": "110000",
    "zhejiang": "330000",
    "guangdong": "440000",
}


def build_search_url(query: str, location: Optional[str] = None) -> str:
    params = {"keywords": query}
    if location:
        code = PROVINCE_CODES.get(location.strip().lower())
        if code:
            params["province"] = code
    return f"{SEARCH_PAGE_URL}?{urlencode(params)}"


def extract_supplier_urls(page: str) -> List[str]:
    """Unique supplier/offer URLs in first-seen order."""
    seen = set()
    urls: List[str] = []
    for url in SUPPLIER_URL_RE.findall(page or ""):
        if url not in seen:
            seen.add(url)
            urls.append(url)
    return urls


class FirecrawlProvider:
    name = "firecrawl"
    is_synthetic = False

    def __init__(
        self,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        rate_limit_delay: float = 1.0,
        request_timeout: float = 60.0,
        api_url: str = FIRECRAWL_API_URL,
    ):
        if not api_key:
            raise ValueError("Firecrawl API key is required")
        self.api_key = api_key
        self.rate_limit_delay = rate_limit_delay
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

    async def scrape_url(self, client: httpx.AsyncClient, url: str) -> RawProviderRecord:
        """Scrape one page and return it as a raw record."""
        payload: Dict[str, Any] = {
            "url": url,
            "formats": ["markdown", "html"],
            "onlyMainContent": True,
        }
        if "1688.com" in url:
            payload["headers"] = BROWSER_HEADERS

        try:
            resp = await client.post(
                f"{self.api_url}/scrape",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            raise translate_http_error(self.name, e) from e

        if not body.get("success", True) or "error" in body:
            raise ProviderError(self.name, f"Failed to scrape {url}: {body.get('error', 'unknown error')}")

        data = body.get("data") or {}
        markdown = data.get("markdown") or ""
        html = data.get("html") or ""
        metadata = data.get("metadata") or {}
        return {
            "url": metadata.get("sourceURL") or url,
            "content": markdown or html,
            "markdown": markdown,
            "html": html,
            "metadata": metadata,
        }

    async def fetch(
        self,
        query: str,
        *,
        location: Optional[str] = None,
        max_items: int = 2,
    ) -> List[RawProviderRecord]:
        search_url = build_search_url(query, location)
        logger.info("[Firecrawl] Scraping search page %s", search_url)

        async with self._http() as client:
            search_page = await self.scrape_url(client, search_url)
            supplier_urls = extract_supplier_urls(
                search_page.get("html") or search_page.get("content") or ""
            )
            logger.info("[Firecrawl] Found %d supplier links", len(supplier_urls))

            results: List[RawProviderRecord] = []
            for supplier_url in supplier_urls[:max_items]:
                await asyncio.sleep(self.rate_limit_delay)
                try:
                    results.append(await self.scrape_url(client, supplier_url))
                except (ProviderPaymentRequiredError, ProviderQuotaError):
                    raise
                except ProviderError as e:
                    logger.warning("[Firecrawl] Failed to scrape supplier %s: %s", supplier_url, e)

        logger.info("[Firecrawl] Scraped %d supplier pages", len(results))
        return results
