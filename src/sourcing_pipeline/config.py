"""Configuration Module

Reads pipeline settings from environment variables once at import time and
exposes them as module-level constants plus a frozen ``SearchSettings``
container that is handed to ``build_pipeline()``.

Environment variables:
  OPENAI_API_KEY: API key for the chat-completion backend (defaults to None)
  OPENAI_BASE_URL: Optional OpenAI-compatible endpoint (e.g. Groq)
  LLM_MODEL: Chat model used by the parser and classifier
  APIFY_API_TOKEN: Token for the structured-scrape provider
  APIFY_ACTOR_IDS: Comma separated actor ids, tried in order
  FIRECRAWL_API_KEY: Key for the generic web-scrape provider
  USE_SYNTHETIC_ONLY: Set to '1' to skip remote providers entirely
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


def _split_csv(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL: Optional[str] = os.getenv("OPENAI_BASE_URL")
LLM_MODEL = _get_env("LLM_MODEL", "gpt-4o-mini")

APIFY_API_TOKEN: Optional[str] = os.getenv("APIFY_API_TOKEN") or os.getenv("APIFY_API_KEY")
APIFY_ACTOR_IDS = _split_csv(
    _get_env(
        "APIFY_ACTOR_IDS",
        "agenscrape/made-in-china-com-product-scraper,parseforge/made-in-china-scraper",
    )
)
FIRECRAWL_API_KEY: Optional[str] = os.getenv("FIRECRAWL_API_KEY")

USE_SYNTHETIC_ONLY = os.getenv("USE_SYNTHETIC_ONLY", "0") == "1"

# Apify actor runs can take a while to spin up; the overall budget covers
# the run start plus the polling window.
PROVIDER_TIMEOUT_SECONDS = float(_get_env("PROVIDER_TIMEOUT_SECONDS", "180"))
POLL_INTERVAL_SECONDS = float(_get_env("POLL_INTERVAL_SECONDS", "2"))
POLL_MAX_WAIT_SECONDS = float(_get_env("POLL_MAX_WAIT_SECONDS", "120"))
PROVIDER_MAX_ITEMS = int(_get_env("PROVIDER_MAX_ITEMS", "2"))

SEARCH_RESULT_LIMIT = int(_get_env("SEARCH_RESULT_LIMIT", "2"))
SEARCH_CACHE_TTL_SECONDS = float(_get_env("SEARCH_CACHE_TTL_SECONDS", "3600"))
CACHE_SWEEP_INTERVAL_SECONDS = float(_get_env("CACHE_SWEEP_INTERVAL_SECONDS", "600"))


@dataclass(frozen=True)
class SearchSettings:
    """Settings container with environment variable defaults."""

    openai_api_key: Optional[str] = OPENAI_API_KEY
    openai_base_url: Optional[str] = OPENAI_BASE_URL
    llm_model: str = LLM_MODEL
    apify_api_token: Optional[str] = APIFY_API_TOKEN
    apify_actor_ids: Tuple[str, ...] = field(default=APIFY_ACTOR_IDS)
    firecrawl_api_key: Optional[str] = FIRECRAWL_API_KEY
    use_synthetic_only: bool = USE_SYNTHETIC_ONLY
    provider_timeout_seconds: float = PROVIDER_TIMEOUT_SECONDS
    poll_interval_seconds: float = POLL_INTERVAL_SECONDS
    poll_max_wait_seconds: float = POLL_MAX_WAIT_SECONDS
    provider_max_items: int = PROVIDER_MAX_ITEMS
    result_limit: int = SEARCH_RESULT_LIMIT
    cache_ttl_seconds: float = SEARCH_CACHE_TTL_SECONDS
    cache_sweep_interval_seconds: float = CACHE_SWEEP_INTERVAL_SECONDS
