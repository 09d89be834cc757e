"""Query Parser Module

Turns a buyer's free-text query into a structured ``ParsedQuery`` with one
chat completion call. Parsing is best-effort: any failure degrades to the raw
query as the product, so a search never fails because of the parser.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from .llm_client import ChatBackend, parse_json_object
from .models import ParsedQuery, QueryType

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert at parsing trade and manufacturing queries. "
    "Extract structured information from natural language."
)

PARSE_PROMPT = """Parse this user query about finding manufacturers and extract structured information.

User Query: "{query}"
{image_hint}
Extract:
1. Product type or category (e.g., "LED", "Semiconductors", "PCB")
2. Location preferences (cities or provinces in China)
3. Query type (manufacturer search or product search)
4. Any specifications or requirements

Return a JSON object with this structure:
{{
  "product": "extracted product name or category",
  "location": ["array of location names if mentioned"],
  "type": "manufacturer" or "product",
  "specifications": {{
    "key": "value pairs of any specifications mentioned"
  }}
}}

Only return the JSON, no other text."""


def _as_str_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def _as_str_dict(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {
        str(k): str(v)
        for k, v in value.items()
        if v is not None and str(v).strip()
    }


def parsed_query_from_payload(payload: Dict[str, Any], query: str) -> ParsedQuery:
    """Build a ParsedQuery from the model's JSON, filling gaps from the raw query."""
    product = payload.get("product")
    product = str(product).strip() if product else ""

    raw_type = str(payload.get("type") or "").strip().lower()
    query_type = QueryType.PRODUCT if raw_type == QueryType.PRODUCT.value else QueryType.MANUFACTURER

    return ParsedQuery(
        product=product or query,
        locations=_as_str_list(payload.get("location") or payload.get("locations")),
        query_type=query_type,
        specifications=_as_str_dict(payload.get("specifications")),
    )


class QueryParser:
    """LLM-backed query parser with a degraded fallback."""

    def __init__(self, chat_client: ChatBackend, temperature: float = 0.3, max_tokens: int = 500):
        self.chat_client = chat_client
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def parse(self, query: str, image_url: Optional[str] = None) -> ParsedQuery:
        parsed, _ = await self.parse_with_status(query, image_url)
        return parsed

    async def parse_with_status(
        self, query: str, image_url: Optional[str] = None
    ) -> Tuple[ParsedQuery, bool]:
        """Parse ``query``; the flag is True when the degraded fallback was used."""
        image_hint = f"Reference image: {image_url}\n" if image_url else ""
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": PARSE_PROMPT.format(query=query, image_hint=image_hint)},
        ]
        try:
            response = await self.chat_client.chat(
                messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            payload = parse_json_object(response.content)
            parsed = parsed_query_from_payload(payload, query)
        except Exception as e:
            logger.warning("Query parsing failed, using raw query as product: %s", e)
            return ParsedQuery.degraded(query), True

        logger.debug("Parsed query %r -> %s", query, parsed.model_dump(by_alias=True))
        return parsed, False
