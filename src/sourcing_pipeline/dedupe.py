"""Deduplication of output rows that describe the same company."""

import logging
import re
from typing import Dict, List, Optional, Sequence

from .models import ManufacturerResult

logger = logging.getLogger(__name__)

LEGAL_SUFFIXES = (
    "co",
    "co.",
    "company",
    "ltd",
    "ltd.",
    "limited",
    "inc",
    "inc.",
    "corp",
    "corp.",
    "corporation",
    "llc",
    "co., ltd",
    "co.,ltd",
    "co. ltd",
)

_TRAILING_PUNCT_RE = re.compile(r"[\s.,;:!\-()]+$")
_SUFFIX_RE = re.compile(
    r"(?:^|[\s,])(?:" + "|".join(re.escape(s) for s in sorted(LEGAL_SUFFIXES, key=len, reverse=True)) + r")$"
)
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_company_name(name: str) -> str:
    """
    Lower-case, collapse whitespace, then strip trailing punctuation and
    legal-entity suffixes until neither is left.

    "Acme Electronics Co., Ltd." -> "acme electronics"
    """
    normalized = _WHITESPACE_RE.sub(" ", (name or "").lower()).strip()
    while True:
        stripped = _TRAILING_PUNCT_RE.sub("", normalized)
        stripped = _SUFFIX_RE.sub("", stripped).rstrip()
        if stripped == normalized or not stripped:
            return stripped or normalized
        normalized = stripped


def dedupe_key(result: ManufacturerResult) -> str:
    key = normalize_company_name(result.name)
    company_url = result.links.company_url if result.links else None
    if company_url:
        return f"{key}|{company_url.strip()}"
    return key


def _merge_products(existing: Sequence[str], incoming: Sequence[str]) -> List[str]:
    merged = list(existing)
    for product in incoming:
        if product not in merged:
            merged.append(product)
    return merged


def dedupe(results: Sequence[ManufacturerResult]) -> List[ManufacturerResult]:
    """
    Collapse rows with the same identity key.

    The higher-confidence row represents the group (the earlier row on ties),
    carrying the union of the group's products with the stored
    representative's products first. Groups keep the position of their first
    occurrence.
    """
    slots: Dict[str, ManufacturerResult] = {}
    for result in results:
        key = dedupe_key(result)
        existing: Optional[ManufacturerResult] = slots.get(key)
        if existing is None:
            slots[key] = result
            continue

        products = _merge_products(existing.products, result.products)
        winner = result if result.confidence > existing.confidence else existing
        slots[key] = winner.model_copy(update={"products": products})
        logger.debug("Merged duplicate %r into %r", result.id, winner.id)

    return list(slots.values())
