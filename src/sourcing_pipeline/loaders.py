"""Raw Record Loader Module

Loads raw provider records captured to a JSON file, for replaying a provider
response through the pipeline without network access.
Supports flexible container structures (flat array, 'items' key, 'results'
key, 'data' key).
"""

import json
from pathlib import Path
from typing import Any, Dict, List


def load_raw_records(path: str | Path) -> List[Dict[str, Any]]:
    """Load raw provider records from a JSON file.

    Supports flexible input formats:
      - Direct list of records: [{...}, {...}, ...]
      - Wrapped in 'items' key: {"items": [...]} (Apify dataset export)
      - Wrapped in 'results' or 'data' key

    Args:
        path: File path to JSON file containing raw records

    Returns:
        List of raw record dictionaries (non-object entries are dropped)

    Raises:
        FileNotFoundError: If file does not exist
        json.JSONDecodeError: If file is not valid JSON
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        # fall back if wrapped
        data = data.get("items") or data.get("results") or data.get("data") or []
    if not isinstance(data, list):
        return []
    return [record for record in data if isinstance(record, dict)]
