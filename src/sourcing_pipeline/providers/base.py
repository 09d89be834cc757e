"""
Abstractions for manufacturer data providers.
"""

from typing import Any, Dict, List, Optional, Protocol

import httpx

from ..errors import (
    ProviderError,
    ProviderNotFoundError,
    ProviderPaymentRequiredError,
    ProviderQuotaError,
    ProviderTimeoutError,
)

RawProviderRecord = Dict[str, Any]


class ProviderAdapter(Protocol):
    """
    Uniform interface over heterogeneous manufacturer data sources.

    ``fetch`` returns provider-specific raw records (no shared schema) or
    raises a ``ProviderError`` for recoverable failures.
    """

    name: str
    is_synthetic: bool

    async def fetch(
        self,
        query: str,
        *,
        location: Optional[str] = None,
        max_items: int = 2,
    ) -> List[RawProviderRecord]: ...


def error_from_status(provider: str, status_code: int, message: str) -> ProviderError:
    """Map an HTTP status code onto the provider error taxonomy."""
    if status_code == 404:
        return ProviderNotFoundError(provider, message, status_code)
    if status_code in (402, 403):
        return ProviderPaymentRequiredError(provider, message, status_code)
    if status_code == 429:
        return ProviderQuotaError(provider, message, status_code)
    if status_code in (408, 504):
        return ProviderTimeoutError(provider, message, status_code)
    return ProviderError(provider, message, status_code)


def translate_http_error(provider: str, exc: httpx.HTTPError) -> ProviderError:
    if isinstance(exc, httpx.TimeoutException):
        return ProviderTimeoutError(provider, f"request timed out: {exc}")
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        return error_from_status(
            provider,
            response.status_code,
            f"HTTP {response.status_code} from {response.request.url}",
        )
    return ProviderError(provider, f"transport error: {exc}")
