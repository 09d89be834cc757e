"""Acquisition Manager Module

Runs the ordered provider chain for one search. Providers are tried strictly
one after another; the first one that returns records wins and later ones are
never called. Empty answers, provider errors, timeouts and unexpected
exceptions all hand over to the next provider.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .config import PROVIDER_MAX_ITEMS, PROVIDER_TIMEOUT_SECONDS
from .errors import ConfigurationError, ProviderError
from .models import ProviderAttempt, ProviderRole
from .providers.base import ProviderAdapter, RawProviderRecord

logger = logging.getLogger(__name__)


@dataclass
class AcquisitionResult:
    records: List[RawProviderRecord]
    provider_used: ProviderRole
    provider_name: str
    raw_count: int
    attempts: List[ProviderAttempt] = field(default_factory=list)


def assign_roles(providers: Sequence[ProviderAdapter]) -> List[Tuple[ProviderAdapter, ProviderRole]]:
    """First real provider is primary, later real ones secondary."""
    chain: List[Tuple[ProviderAdapter, ProviderRole]] = []
    seen_real = False
    for provider in providers:
        if provider.is_synthetic:
            role = ProviderRole.SYNTHETIC
        elif not seen_real:
            role = ProviderRole.PRIMARY
            seen_real = True
        else:
            role = ProviderRole.SECONDARY
        chain.append((provider, role))
    return chain


class AcquisitionManager:
    def __init__(
        self,
        providers: Sequence[ProviderAdapter],
        timeout_seconds: Optional[float] = PROVIDER_TIMEOUT_SECONDS,
        max_items: int = PROVIDER_MAX_ITEMS,
    ):
        self.providers = list(providers)
        self.timeout_seconds = timeout_seconds
        self.max_items = max_items

    async def acquire(self, query: str, location: Optional[str] = None) -> AcquisitionResult:
        """
        Fetch raw records for ``query`` from the first provider that has any.

        Raises:
            ConfigurationError: If the provider chain is empty
        """
        if not self.providers:
            raise ConfigurationError("No providers configured")

        attempts: List[ProviderAttempt] = []
        provider, role = None, None
        for provider, role in assign_roles(self.providers):
            logger.info(
                "Trying %s provider %r for query=%r location=%r",
                role.value,
                provider.name,
                query,
                location,
            )
            try:
                records = await asyncio.wait_for(
                    provider.fetch(query, location=location, max_items=self.max_items),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Provider %r timed out after %ss; trying next provider",
                    provider.name,
                    self.timeout_seconds,
                )
                attempts.append(
                    ProviderAttempt(
                        provider=provider.name,
                        role=role,
                        outcome="timeout",
                        error=f"timed out after {self.timeout_seconds}s",
                    )
                )
                continue
            except ProviderError as e:
                outcome = "timeout" if e.reason == "timeout" else "error"
                logger.warning("Provider %r failed (%s): %s; trying next provider", provider.name, e.reason, e)
                attempts.append(
                    ProviderAttempt(provider=provider.name, role=role, outcome=outcome, error=str(e))
                )
                continue
            except Exception as e:
                logger.exception("Unexpected error from provider %r; trying next provider", provider.name)
                attempts.append(
                    ProviderAttempt(provider=provider.name, role=role, outcome="error", error=str(e))
                )
                continue

            records = [r for r in (records or []) if isinstance(r, dict)]
            if not records:
                logger.info("Provider %r returned no records; trying next provider", provider.name)
                attempts.append(ProviderAttempt(provider=provider.name, role=role, outcome="empty"))
                continue

            logger.info("✓ Provider %r returned %d records", provider.name, len(records))
            attempts.append(
                ProviderAttempt(
                    provider=provider.name,
                    role=role,
                    outcome="records",
                    record_count=len(records),
                )
            )
            return AcquisitionResult(
                records=records,
                provider_used=role,
                provider_name=provider.name,
                raw_count=len(records),
                attempts=attempts,
            )

        logger.warning("Every provider came back empty for query=%r", query)
        return AcquisitionResult(
            records=[],
            provider_used=role,
            provider_name=provider.name,
            raw_count=0,
            attempts=attempts,
        )
