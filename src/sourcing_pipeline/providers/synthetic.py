"""Synthetic fallback provider.

Deterministically fabricates placeholder supplier pages from the query terms
so the downstream stages stay exercised when every real provider is down or
unconfigured (offline / degraded operation). Records are shaped like
generic-scrape pages and carry a ``synthetic`` marker.
"""

import logging
from typing import List, Optional

from .base import RawProviderRecord

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = "China"


def _product_variants(query: str) -> List[str]:
    base = query.strip() or "General"
    return [
        f"{base} products",
        f"{base} components",
        f"{base} assemblies",
        f"{base} accessories",
        f"custom {base}",
    ]


def generate_synthetic_records(query: str, location: Optional[str] = None) -> List[RawProviderRecord]:
    """Three placeholder suppliers: two factories and one trading company."""
    subject = query.strip() or "General"
    location_str = location.strip() if location and location.strip() else DEFAULT_LOCATION
    products = _product_variants(subject)

    pages = [
        (
            "https://detail.1688.com/offer/synthetic-1.html",
            f"{subject} Manufacturing Co.",
            [
                f"Company: {subject} Manufacturing Co.",
                f"Description: Professional {subject} manufacturer with 10 years experience",
                f"Products: {', '.join(products[:3])}",
                f"Location: {location_str}",
                "Phone: +86 574 8000 0001",
                "Email: contact@example.com",
                "Factory: 5000 sqm factory with modern production equipment",
                "Equipment: SMT lines, injection molding machines",
                "Certifications: CE, RoHS, ISO 9001",
            ],
        ),
        (
            "https://detail.1688.com/offer/synthetic-2.html",
            f"{location_str} {subject} Factory",
            [
                f"Company: {location_str} {subject} Factory",
                f"Description: Leading {subject} supplier",
                f"Products: {', '.join(products[1:4])}",
                f"Location: {location_str}",
                "Phone: +86 755 8000 0002",
                "Email: sales@example.com",
                "Factory: 3000 sqm production facility",
                "Certifications: CE, FCC",
            ],
        ),
        (
            "https://company.1688.com/synthetic-3.html",
            f"Global {subject} Trading Co.",
            [
                f"Company: Global {subject} Trading Co.",
                f"Description: Trading company specializing in {subject}",
                f"Products: {', '.join(products)}",
                f"Location: {location_str}",
                "Phone: +86 21 8000 0003",
                "Email: info@example.com",
                "Certifications: CE",
            ],
        ),
    ]

    records: List[RawProviderRecord] = []
    for url, title, lines in pages:
        content = "\n".join(lines)
        records.append(
            {
                "url": url,
                "content": content,
                "markdown": content,
                "html": "",
                "metadata": {"title": title},
                "synthetic": True,
            }
        )
    return records


class SyntheticProvider:
    name = "synthetic"
    is_synthetic = True

    async def fetch(
        self,
        query: str,
        *,
        location: Optional[str] = None,
        max_items: int = 2,
    ) -> List[RawProviderRecord]:
        records = generate_synthetic_records(query, location)
        logger.warning("Using %d synthetic records for query=%r", len(records), query)
        return records
