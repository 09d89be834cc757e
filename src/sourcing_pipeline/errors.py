"""Exception taxonomy for the sourcing pipeline.

Recoverable errors (provider, LLM parse, per-record) are absorbed inside the
pipeline with logging and a fallback value. Only search-level failures and
cache misses reach callers.
"""

from typing import Optional


class SourcingError(Exception):
    """Base exception for all sourcing pipeline errors."""


class ConfigurationError(SourcingError):
    """The pipeline is wired incorrectly (e.g. no provider chain)."""


class ProviderError(SourcingError):
    """A data provider failed in a way that should trigger fallback."""

    reason = "provider_error"

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


class ProviderNotFoundError(ProviderError):
    """Resource (actor, page, dataset) does not exist."""

    reason = "not_found"


class ProviderPaymentRequiredError(ProviderError):
    """Provider requires payment/rental for the requested resource."""

    reason = "payment_required"


class ProviderQuotaError(ProviderError):
    """Rate limit or credit quota exhausted."""

    reason = "quota_exceeded"


class ProviderTimeoutError(ProviderError):
    """Provider did not answer within its time budget."""

    reason = "timeout"


class LLMResponseError(SourcingError):
    """The language model answered with something we could not parse."""


class RecordProcessingError(SourcingError):
    """A single record could not be normalized or classified."""

    def __init__(self, seller_id: str, message: str):
        self.seller_id = seller_id
        super().__init__(f"{seller_id}: {message}")


class SearchFailedError(SourcingError):
    """A whole search failed; surfaced to the caller."""

    def __init__(self, cause: object):
        self.cause = cause
        super().__init__(f"Search failed: {cause}")


class SearchNotFoundError(SourcingError):
    """The requested search id is unknown or has expired."""

    def __init__(self, search_id: str):
        self.search_id = search_id
        super().__init__(f"Search ID {search_id} not found or expired")
