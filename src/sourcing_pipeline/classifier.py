"""Manufacturer Classifier Module

Labels a seller as a factory or a trading company with one chat completion
call per seller, memoized by seller id. When the model call fails or its
reply cannot be parsed, a product-count heuristic answers instead so that a
single bad reply never drops a record.
"""

import logging
from typing import Any, Dict, Optional

from .cache import ClassificationCache
from .llm_client import ChatBackend, parse_json_object
from .models import (
    ClassificationFactors,
    ClassificationResult,
    ManufacturerLabel,
    ProductRange,
    SellerProfile,
)

logger = logging.getLogger(__name__)

# Product counts at or below this are treated as a narrow (factory-like) range.
NARROW_PRODUCT_RANGE_MAX = 3

FALLBACK_CONFIDENCE = 0.5
FALLBACK_EXPLANATION = "Fallback classification due to LLM error"
DEFAULT_EXPLANATION = "Classification based on seller data analysis"

SYSTEM_PROMPT = (
    "You are an expert at analyzing Chinese B2B manufacturers. Classify sellers "
    "as factories or trading companies based on their business characteristics."
)

CLASSIFY_PROMPT = """Analyze this 1688.com seller and classify as Factory or Trading Company.

Seller Data:
- Company: {company}
- Description: {description}
- Products: {products}
- Factory Info: {factory_info}
- Certifications: {certifications}

Consider these factors:
1. Factory information presence (address, equipment, production capacity) - indicates factory
2. Product range (narrow = factory, wide = trading) - narrow product focus suggests factory
3. Certifications and quality standards - more certifications often indicate factory
4. Company age and establishment history - older companies more likely to be factories
5. Business license and registration type - manufacturing license indicates factory
6. Customer reviews mentioning factory visits - direct evidence of factory

Return a JSON object with this exact structure:
{{
  "type": "factory" | "trading",
  "confidence": 0.0-1.0,
  "factors": {{
    "hasFactoryInfo": true/false,
    "hasProductionEquipment": true/false,
    "productRange": "narrow" | "wide" | "mixed",
    "certifications": ["array of certifications"],
    "companyAge": number or null
  }},
  "explanation": "brief explanation of the classification"
}}

Only return the JSON, no other text."""


def build_prompt(seller: SellerProfile) -> str:
    return CLASSIFY_PROMPT.format(
        company=seller.company_name,
        description=seller.description or "Not provided",
        products=", ".join(seller.products),
        factory_info=seller.factory_info or "Not provided",
        certifications=", ".join(seller.certifications) or "Not provided",
    )


def clamp_confidence(value: Any) -> float:
    """Coerce to a float in [0, 1]; missing or non-numeric values become 0.5."""
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return FALLBACK_CONFIDENCE
    if confidence != confidence:  # NaN
        return FALLBACK_CONFIDENCE
    return max(0.0, min(1.0, confidence))


def _factors_from_payload(payload: Any) -> ClassificationFactors:
    if not isinstance(payload, dict):
        return ClassificationFactors()

    try:
        product_range = ProductRange(str(payload.get("productRange") or "mixed").lower())
    except ValueError:
        product_range = ProductRange.MIXED

    certifications = payload.get("certifications") or []
    if isinstance(certifications, str):
        certifications = [certifications]
    if not isinstance(certifications, list):
        certifications = []

    company_age = payload.get("companyAge")
    try:
        company_age = int(company_age) if company_age else None
    except (TypeError, ValueError):
        company_age = None

    return ClassificationFactors(
        has_factory_info=bool(payload.get("hasFactoryInfo", False)),
        has_production_equipment=bool(payload.get("hasProductionEquipment", False)),
        product_range=product_range,
        certifications=[str(c) for c in certifications if c],
        company_age=company_age,
    )


def classification_from_payload(seller_id: str, payload: Dict[str, Any]) -> ClassificationResult:
    """Validate a model reply; unknown labels fall back to trading."""
    label = (
        ManufacturerLabel.FACTORY
        if str(payload.get("type") or "").strip().lower() == ManufacturerLabel.FACTORY.value
        else ManufacturerLabel.TRADING
    )
    explanation = payload.get("explanation")
    return ClassificationResult(
        seller_id=seller_id,
        label=label,
        confidence=clamp_confidence(payload.get("confidence")),
        factors=_factors_from_payload(payload.get("factors")),
        explanation=str(explanation) if explanation else DEFAULT_EXPLANATION,
    )


def heuristic_classification(
    seller_id: str,
    seller: SellerProfile,
    narrow_range_max: int = NARROW_PRODUCT_RANGE_MAX,
) -> ClassificationResult:
    """Factory iff factory info is present and the product range is narrow."""
    has_factory_info = bool(seller.factory_info and seller.factory_info.strip())
    is_narrow = len(seller.products) <= narrow_range_max
    label = ManufacturerLabel.FACTORY if has_factory_info and is_narrow else ManufacturerLabel.TRADING
    return ClassificationResult(
        seller_id=seller_id,
        label=label,
        confidence=FALLBACK_CONFIDENCE,
        factors=ClassificationFactors(
            has_factory_info=has_factory_info,
            has_production_equipment=False,
            product_range=ProductRange.NARROW if is_narrow else ProductRange.WIDE,
            certifications=list(seller.certifications),
        ),
        explanation=FALLBACK_EXPLANATION,
        used_fallback=True,
    )


class ManufacturerClassifier:
    """
    Factory vs trading-company classifier.

    The memo is checked before any model call and written before returning,
    for model answers and heuristic fallbacks alike, so a seller id is
    classified at most once per cache.
    """

    def __init__(
        self,
        chat_client: Optional[ChatBackend],
        cache: Optional[ClassificationCache] = None,
        narrow_range_max: int = NARROW_PRODUCT_RANGE_MAX,
        temperature: float = 0.3,
        max_tokens: int = 500,
    ):
        self.chat_client = chat_client
        self.cache = cache if cache is not None else ClassificationCache()
        self.narrow_range_max = narrow_range_max
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def classify(self, seller_id: str, seller: SellerProfile) -> ClassificationResult:
        cached = self.cache.get(seller_id)
        if cached is not None:
            logger.debug("Classification cache hit for %s", seller_id)
            return cached

        try:
            result = await self._classify_with_model(seller_id, seller)
        except Exception as e:
            logger.warning("Classification failed for %s, using heuristic: %s", seller_id, e)
            result = heuristic_classification(seller_id, seller, self.narrow_range_max)

        self.cache.put(seller_id, result)
        logger.debug(
            "Classified %s (%s) as %s @ %.2f",
            seller_id,
            seller.company_name,
            result.label.value,
            result.confidence,
        )
        return result

    async def _classify_with_model(self, seller_id: str, seller: SellerProfile) -> ClassificationResult:
        if self.chat_client is None:
            raise RuntimeError("no chat client configured")
        response = await self.chat_client.chat(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(seller)},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        return classification_from_payload(seller_id, parse_json_object(response.content))
