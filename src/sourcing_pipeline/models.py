"""Data Models Module

Defines Pydantic models for representing manufacturer data at different
stages of the pipeline: the parsed query, the canonical record every provider
is normalized into, the classifier verdict, the output row, and the cached
search response.

Attributes are snake_case; every model also accepts and emits the camelCase
wire names (``model_dump(by_alias=True)``).
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


UNKNOWN_COMPANY = "Unknown Company"
DEFAULT_PRODUCTS = ("General Products",)


class QueryType(str, Enum):
    MANUFACTURER = "manufacturer"
    PRODUCT = "product"


class ManufacturerLabel(str, Enum):
    FACTORY = "factory"
    TRADING = "trading"


class ManufacturerType(str, Enum):
    """Display label used in output rows."""

    FACTORY = "Factory"
    TRADING = "Trading Company"


class ManufacturerTypeFilter(str, Enum):
    FACTORY = "factory"
    TRADING = "trading"
    BOTH = "both"


class ProductRange(str, Enum):
    NARROW = "narrow"
    WIDE = "wide"
    MIXED = "mixed"


class ProviderRole(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    SYNTHETIC = "synthetic"


class SortField(str, Enum):
    CONFIDENCE = "confidence"
    NAME = "name"
    # Accepted for clients that send them; ranked by confidence.
    DISTANCE = "distance"
    PRICE = "price"
    RATING = "rating"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


class ParsedQuery(FrozenCamelModel):
    """Structured intent extracted from the buyer's free-text query."""

    product: str
    locations: List[str] = Field(default_factory=list)
    query_type: QueryType = QueryType.MANUFACTURER
    specifications: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def degraded(cls, query: str) -> "ParsedQuery":
        """Fallback used whenever the language model cannot parse the query."""
        return cls(product=query)


# ---------------------------------------------------------------------------
# Canonical record
# ---------------------------------------------------------------------------


class ContactInfo(CamelModel):
    phone: Optional[str] = None
    email: Optional[str] = None
    wechat: Optional[str] = None


class LocationInfo(CamelModel):
    city: Optional[str] = None
    province: Optional[str] = None
    address: Optional[str] = None


class FactoryInfo(CamelModel):
    has_factory: bool = True
    factory_details: Optional[str] = None
    production_equipment: List[str] = Field(default_factory=list)


class PricingInfo(CamelModel):
    currency: str
    price_range: str


class ExternalLinks(CamelModel):
    product_url: Optional[str] = None
    company_url: Optional[str] = None


class CanonicalManufacturerRecord(CamelModel):
    """Normalized manufacturer shape all providers are mapped into.

    ``company_name`` is never empty and ``products`` is never empty after
    normalization; see ``normalizer.normalize_record``.
    """

    seller_id: str
    company_name: str = UNKNOWN_COMPANY
    description: Optional[str] = None
    products: List[str] = Field(default_factory=lambda: list(DEFAULT_PRODUCTS))
    contact: ContactInfo = Field(default_factory=ContactInfo)
    location: LocationInfo = Field(default_factory=LocationInfo)
    factory_info: Optional[FactoryInfo] = None
    certifications: List[str] = Field(default_factory=list)
    pricing: Optional[PricingInfo] = None
    moq: Optional[str] = None
    external_links: ExternalLinks = Field(default_factory=ExternalLinks)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class SellerProfile(CamelModel):
    """Classifier input: the parts of a record that hint at factory vs trader."""

    company_name: str
    description: Optional[str] = None
    products: List[str] = Field(default_factory=list)
    factory_info: Optional[str] = None
    certifications: List[str] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: CanonicalManufacturerRecord) -> "SellerProfile":
        factory_text = None
        if record.factory_info is not None:
            factory_text = (
                record.factory_info.factory_details
                or record.location.address
                or ", ".join(record.factory_info.production_equipment)
                or None
            )
        return cls(
            company_name=record.company_name,
            description=record.description,
            products=list(record.products),
            factory_info=factory_text,
            certifications=list(record.certifications),
        )


class ClassificationFactors(FrozenCamelModel):
    has_factory_info: bool = False
    has_production_equipment: bool = False
    product_range: ProductRange = ProductRange.MIXED
    certifications: List[str] = Field(default_factory=list)
    company_age: Optional[int] = None


class ClassificationResult(FrozenCamelModel):
    seller_id: str
    label: ManufacturerLabel
    confidence: float = Field(ge=0.0, le=1.0)
    factors: ClassificationFactors = Field(default_factory=ClassificationFactors)
    explanation: str
    used_fallback: bool = False


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class ResultLinks(FrozenCamelModel):
    product_url: Optional[str] = None
    company_url: Optional[str] = None


class ManufacturerResult(FrozenCamelModel):
    """One output row, derived from a canonical record plus its classification."""

    id: str
    name: str
    type: ManufacturerType
    confidence: int = Field(ge=0, le=100)
    address: str = ""
    contact: str = ""
    email: str = ""
    phone: str = ""
    products: List[str] = Field(default_factory=list)
    links: Optional[ResultLinks] = None


class SearchFilters(CamelModel):
    location: Optional[List[str]] = None
    min_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    manufacturer_type: Optional[ManufacturerTypeFilter] = None


class SearchRequest(CamelModel):
    query: str = Field(min_length=1)
    filters: Optional[SearchFilters] = None
    image_url: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)


class ProviderAttempt(FrozenCamelModel):
    provider: str
    role: ProviderRole
    outcome: str  # "records", "empty", "error", "timeout"
    record_count: int = 0
    error: Optional[str] = None


class ProcessingSteps(FrozenCamelModel):
    raw_results_count: int = 0
    normalized_count: int = 0
    dropped_count: int = 0
    after_deduplication_count: int = 0
    after_filtering_count: int = 0
    final_count: int = 0


class Observability(FrozenCamelModel):
    search_method: Optional[str] = None
    provider_used: Optional[ProviderRole] = None
    provider_attempts: List[ProviderAttempt] = Field(default_factory=list)
    filters_applied: Dict[str, Any] = Field(default_factory=dict)
    processing_steps: ProcessingSteps = Field(default_factory=ProcessingSteps)
    parser_fallback: bool = False
    classifier_fallbacks: int = 0


class SearchResponse(FrozenCamelModel):
    search_id: str
    query: str
    parsed_query: ParsedQuery
    results: List[ManufacturerResult] = Field(default_factory=list)
    total_results: int = 0
    search_time_seconds: float = 0.0
    observability: Observability = Field(default_factory=Observability)


class CachedManufacturersPage(FrozenCamelModel):
    manufacturers: List[ManufacturerResult] = Field(default_factory=list)
    sort_by: SortField = SortField.CONFIDENCE
    order: SortOrder = SortOrder.DESC
    total: int = 0
