"""Record Normalization Module

Maps provider-specific raw records onto ``CanonicalManufacturerRecord`` and
canonical records onto output rows.

Key responsibilities:
  - Resolve each canonical attribute from an ordered list of candidate
    source paths (first present, non-empty value wins; no merging)
  - Flatten scrape-shaped records (page text plus url) into attribute values
    by label extraction over the page text
  - Fill in location from the company name via the gazetteer and collapse
    duplicated location tokens
  - Format price ranges and collect certifications
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from . import gazetteer
from .models import (
    DEFAULT_PRODUCTS,
    UNKNOWN_COMPANY,
    CanonicalManufacturerRecord,
    ClassificationResult,
    ContactInfo,
    ExternalLinks,
    FactoryInfo,
    LocationInfo,
    ManufacturerLabel,
    ManufacturerResult,
    ManufacturerType,
    PricingInfo,
    ResultLinks,
)

logger = logging.getLogger(__name__)

FieldPath = Union[str, Tuple[str, ...]]

DEFAULT_CURRENCY = "USD"
DEFAULT_ADDRESS = "China"

COMMON_CERTIFICATIONS = ("CE", "RoHS", "ISO 9001", "ISO 14001", "FCC", "UL")

LIST_SPLIT_RE = re.compile(r"[,，;；、]")
EQUIPMENT_SPLIT_RE = re.compile(r"[,，]")
TEL_LINK_RE = re.compile(r"tel:([+\d-]+)", re.IGNORECASE)
MAILTO_LINK_RE = re.compile(r"mailto:([\w.-]+@[\w.-]+\.\w+)", re.IGNORECASE)

# ============================================================================
# Field mappings for structured (JSON) provider records
# ============================================================================

COMPANY_NAME_PATHS: Tuple[FieldPath, ...] = (
    "supplierName",
    "company_name",
    "companyName",
    "supplier_name",
    "supplier",
    "company",
    "manufacturer",
    "vendor",
    "name",
)

DESCRIPTION_PATHS: Tuple[FieldPath, ...] = (
    ("companyInfo", "Company Profile - Description"),
    "product_description",
    "description",
    "company_description",
    "companyDescription",
    "productDescription",
    "details",
)

LOCATION_PATHS: Tuple[FieldPath, ...] = (
    ("companyInfo", "Company Profile - Address"),
    ("companyInfo", "General Information - Address"),
    "supplierLocation",
    ("companyInfo", "Company Profile - Location"),
    "location",
    "company_location",
    "companyLocation",
    "address",
    "city",
    "province",
)

PRODUCT_NAME_PATHS: Tuple[FieldPath, ...] = ("title", "product_name", "productName")

FIELD_MAPPINGS: Tuple[Tuple[str, Tuple[FieldPath, ...]], ...] = (
    ("company_name", COMPANY_NAME_PATHS),
    ("description", DESCRIPTION_PATHS),
    ("location", LOCATION_PATHS),
    ("moq", ("moq", "min_order", "minOrderQuantity", "minOrder")),
    ("phone", ("phone", "contact_phone", "contactPhone", "tel")),
    ("email", ("email", "contact_email", "contactEmail", "mail")),
    ("wechat", ("wechat", "weChat", "weixin")),
    (
        "product_url",
        (
            "productUrl",
            "product_url",
            "url",
            "link",
            "productLink",
            "supplierUrl",
            "company_url",
            "companyUrl",
        ),
    ),
    ("company_url", ("supplierUrl", "company_url", "companyUrl")),
    ("factory_details", ("factoryInfo", "factory_info", "factoryDetails", "factory")),
    ("production_equipment", ("productionEquipment", "production_equipment", "equipment")),
    ("certifications", ("certifications", "certificates", "certification")),
    ("currency", ("currency",)),
)

# ============================================================================
# Label extraction for scrape-shaped records
# ============================================================================


def _label_patterns(zh: Sequence[str], en: Sequence[str], value: str = r"([^\n]+)") -> List[re.Pattern]:
    """Chinese labels match anywhere; English labels only at a line start."""
    patterns = [re.compile(rf"{label}[：:][ \t]*{value}", re.IGNORECASE) for label in zh]
    patterns.extend(
        re.compile(rf"(?:^|\n)[ \t>*#-]*{label}[ \t*]*[：:][ \t*]*{value}", re.IGNORECASE)
        for label in en
    )
    return patterns


SCRAPE_LABELS: Dict[str, List[re.Pattern]] = {
    "company_name": _label_patterns(["公司名称", "公司"], ["Company Name", "Company"]),
    "description": _label_patterns(["公司简介"], ["Company Profile", "Description"]),
    "products": _label_patterns(["主要产品", "产品", "主营产品"], ["Main Products", "Products"]),
    "phone": _label_patterns(["电话"], ["Phone", "Tel"], value=r"([+\d][+\d \t-]*\d)"),
    "email": _label_patterns(["邮箱"], ["Email", "E-mail"], value=r"([\w.-]+@[\w.-]+\.\w+)"),
    "wechat": _label_patterns(["微信"], ["WeChat"], value=r"([\w-]+)"),
    "city": _label_patterns(["所在城市", "城市"], ["City"]),
    "province": _label_patterns(["所在省份", "省份"], ["Province"]),
    "address": _label_patterns(["地址", "详细地址"], ["Address", "Location"]),
    "factory_details": _label_patterns(["工厂信息", "生产设备"], ["Factory"]),
    "production_equipment": _label_patterns(["生产设备"], ["Equipment", "Production Equipment"]),
    "certifications": _label_patterns(["认证", "证书"], ["Certifications", "Certificates"]),
}


# ============================================================================
# Helper Functions
# ============================================================================


def normalize_optional_str(value: Any) -> Optional[str]:
    """Normalize to string or None. Empty strings become None."""
    if value is None or isinstance(value, (dict, list, tuple)):
        return None
    s = str(value).strip()
    return s if s else None


def normalize_str_list(value: Any, splitter: Optional[re.Pattern] = None) -> List[str]:
    """Always returns a list of unique, non-empty strings in first-seen order."""
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        items = [normalize_optional_str(v) for v in value]
    elif splitter is not None and isinstance(value, str):
        items = [normalize_optional_str(v) for v in splitter.split(value)]
    else:
        items = [normalize_optional_str(value)]
    return _unique(i for i in items if i is not None)


def _unique(items: Iterable[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return bool(value)
    return True


def resolve_path(raw: Dict[str, Any], path: FieldPath) -> Any:
    """Follow a key or a tuple of nested keys; None when any hop is missing."""
    if isinstance(path, str):
        return raw.get(path)
    current: Any = raw
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def first_present(raw: Dict[str, Any], paths: Iterable[FieldPath]) -> Any:
    """Value of the first candidate path that is present and non-empty."""
    for path in paths:
        value = resolve_path(raw, path)
        if _is_present(value):
            return value
    return None


def _format_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def format_price_range(raw: Dict[str, Any], currency: str) -> Optional[str]:
    """Preformatted price string, else min/max range, else single numeric price."""
    price = raw.get("price")
    if isinstance(price, str) and price.strip():
        return price.strip()

    min_price = raw.get("min_price")
    max_price = raw.get("max_price")
    if _is_present(min_price) and _is_present(max_price):
        low, high = _format_number(min_price), _format_number(max_price)
        if low == high:
            return f"{currency} {low}"
        return f"{currency} {low} - {high}"

    if isinstance(price, (int, float)) and not isinstance(price, bool):
        return f"{currency} {_format_number(price)}"
    return None


def _extract_products(raw: Dict[str, Any]) -> List[str]:
    products = raw.get("products")
    if isinstance(products, (list, tuple)):
        return normalize_str_list(products)
    if isinstance(products, str) and products.strip():
        return [products.strip()]

    product_name = normalize_optional_str(first_present(raw, PRODUCT_NAME_PATHS))
    if product_name:
        found = [product_name]
        category = normalize_optional_str(raw.get("category"))
        if category:
            found.append(category)
        return _unique(found)

    name = normalize_optional_str(raw.get("name"))
    return [name] if name else []


def certifications_in_text(text: str) -> List[str]:
    """Common certifications mentioned anywhere in ``text``."""
    return [
        cert
        for cert in COMMON_CERTIFICATIONS
        if re.search(rf"(?<![A-Za-z0-9]){re.escape(cert)}(?![A-Za-z0-9])", text)
    ]


# ============================================================================
# Scrape-shaped records
# ============================================================================


def is_scrape_record(raw: Dict[str, Any]) -> bool:
    return any(
        isinstance(raw.get(key), str) and raw.get(key).strip()
        for key in ("markdown", "content", "html")
    )


def _extract_label(text: str, attribute: str) -> Optional[str]:
    for pattern in SCRAPE_LABELS[attribute]:
        match = pattern.search(text)
        if match:
            value = normalize_optional_str(match.group(1))
            if value:
                return value
    return None


def flatten_scrape_record(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Turn a page scrape ``{url, markdown, html, content, metadata}`` into a
    flat dict keyed by the same names structured records use, so both kinds
    go through one set of field mappings.
    """
    text = raw.get("markdown") or raw.get("html") or raw.get("content") or ""
    html = raw.get("html") or ""
    metadata = raw.get("metadata") if isinstance(raw.get("metadata"), dict) else {}

    flat: Dict[str, Any] = {}

    flat["companyName"] = normalize_optional_str(metadata.get("title")) or _extract_label(text, "company_name")
    flat["description"] = normalize_optional_str(metadata.get("description")) or _extract_label(
        text, "description"
    )

    products_line = _extract_label(text, "products")
    flat["products"] = normalize_str_list(products_line, LIST_SPLIT_RE)

    phone = _extract_label(text, "phone")
    if not phone:
        match = TEL_LINK_RE.search(html)
        phone = match.group(1) if match else None
    flat["phone"] = phone

    email = _extract_label(text, "email")
    if not email:
        match = MAILTO_LINK_RE.search(html)
        email = match.group(1) if match else None
    flat["email"] = email
    flat["wechat"] = _extract_label(text, "wechat")

    flat["address"] = _extract_label(text, "address")
    flat["city"] = _extract_label(text, "city")
    flat["province"] = _extract_label(text, "province")

    flat["factoryInfo"] = _extract_label(text, "factory_details")
    flat["productionEquipment"] = normalize_str_list(
        _extract_label(text, "production_equipment"), EQUIPMENT_SPLIT_RE
    )

    certifications = normalize_str_list(_extract_label(text, "certifications"), LIST_SPLIT_RE)
    flat["certifications"] = _unique(certifications + certifications_in_text(text))

    flat["url"] = normalize_optional_str(raw.get("url")) or normalize_optional_str(metadata.get("sourceURL"))
    return {k: v for k, v in flat.items() if _is_present(v)}


# ============================================================================
# Canonical record
# ============================================================================


def _resolve_location(
    source: Dict[str, Any], location_text: Optional[str], company_name: str
) -> LocationInfo:
    if not location_text and company_name != UNKNOWN_COMPANY:
        location_text = gazetteer.find_location_in_name(company_name)
        if location_text:
            logger.debug("Location %r taken from company name %r", location_text, company_name)

    if location_text:
        location_text = gazetteer.dedupe_location_tokens(location_text)

    city, province = gazetteer.split_location(location_text or "")

    explicit_city = normalize_optional_str(source.get("city"))
    explicit_province = normalize_optional_str(source.get("province"))
    if explicit_city:
        city = gazetteer.canonical_name(explicit_city) or explicit_city
    if explicit_province:
        province = gazetteer.canonical_name(explicit_province) or explicit_province
    if city and not province:
        province = gazetteer.province_for_city(city)

    return LocationInfo(city=city, province=province, address=location_text)


def normalize_record(raw: Dict[str, Any], seller_id: str) -> CanonicalManufacturerRecord:
    """Convert one raw provider record into the canonical manufacturer shape.

    Args:
        raw: Provider-specific record (structured JSON or page scrape)
        seller_id: Identifier assigned by the pipeline for this record

    Returns:
        CanonicalManufacturerRecord with a non-empty company name and at
        least one product
    """
    source = flatten_scrape_record(raw) if is_scrape_record(raw) else raw

    values = {attribute: first_present(source, paths) for attribute, paths in FIELD_MAPPINGS}

    company_name = normalize_optional_str(values["company_name"]) or UNKNOWN_COMPANY

    products = _extract_products(source) or list(DEFAULT_PRODUCTS)

    location = _resolve_location(source, normalize_optional_str(values["location"]), company_name)

    factory_details = normalize_optional_str(values["factory_details"])
    equipment = normalize_str_list(values["production_equipment"], EQUIPMENT_SPLIT_RE)
    factory_info = None
    if factory_details or equipment:
        factory_info = FactoryInfo(
            has_factory=True,
            factory_details=factory_details,
            production_equipment=equipment,
        )

    currency = normalize_optional_str(values["currency"]) or DEFAULT_CURRENCY
    price_range = format_price_range(source, currency)
    pricing = PricingInfo(currency=currency, price_range=price_range) if price_range else None

    moq = values["moq"]
    return CanonicalManufacturerRecord(
        seller_id=seller_id,
        company_name=company_name,
        description=normalize_optional_str(values["description"]),
        products=products,
        contact=ContactInfo(
            phone=normalize_optional_str(values["phone"]),
            email=normalize_optional_str(values["email"]),
            wechat=normalize_optional_str(values["wechat"]),
        ),
        location=location,
        factory_info=factory_info,
        certifications=normalize_str_list(values["certifications"], LIST_SPLIT_RE),
        pricing=pricing,
        moq=normalize_optional_str(moq),
        external_links=ExternalLinks(
            product_url=normalize_optional_str(values["product_url"]),
            company_url=normalize_optional_str(values["company_url"]),
        ),
    )


# ============================================================================
# Output row
# ============================================================================


def format_address(location: LocationInfo) -> str:
    if location.address:
        return location.address
    parts = [p for p in (location.city, location.province) if p]
    return ", ".join(parts) or DEFAULT_ADDRESS


def to_manufacturer_result(
    record: CanonicalManufacturerRecord,
    classification: ClassificationResult,
    confidence: int,
) -> ManufacturerResult:
    """Build the output row; ``confidence`` is the scorer's 0-100 value."""
    manufacturer_type = (
        ManufacturerType.FACTORY
        if classification.label == ManufacturerLabel.FACTORY
        else ManufacturerType.TRADING
    )
    links = None
    if record.external_links.product_url or record.external_links.company_url:
        links = ResultLinks(
            product_url=record.external_links.product_url,
            company_url=record.external_links.company_url,
        )
    return ManufacturerResult(
        id=record.seller_id,
        name=record.company_name,
        type=manufacturer_type,
        confidence=confidence,
        address=format_address(record.location),
        contact=record.company_name,
        email=record.contact.email or "",
        phone=record.contact.phone or "",
        products=list(record.products) or list(DEFAULT_PRODUCTS),
        links=links,
    )
