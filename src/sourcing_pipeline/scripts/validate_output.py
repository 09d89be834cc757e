"""Output Validation Script

Validates that a saved search response JSON conforms to the output schema:
  - Required top-level fields present (searchId, query, parsedQuery, results)
  - Each result row has an id, name, known type and confidence in 0..100
  - Result ids are unique
  - totalResults is consistent with the number of rows returned

Usage:
    python -m sourcing_pipeline.scripts.validate_output \\
        --path output/search_response.json

Exits with code 0 on success, 1 on validation failure, 2 on argument error.
"""

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Tuple

VALID_TYPES = {"Factory", "Trading Company"}
REQUIRED_RESPONSE_FIELDS = ("searchId", "query", "parsedQuery", "results", "totalResults")


def load_response(path: Path) -> Dict[str, Any]:
    """Load one search response object from a JSON file."""
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Top-level JSON is not an object (got {type(data).__name__}).")
    return data


def validate_result(row: Any, idx: int) -> Tuple[List[str], List[str]]:
    """Validate a single result row.

    Returns:
        (errors, warnings)
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not isinstance(row, dict):
        errors.append(f"[idx={idx}] result should be an object, got {type(row).__name__}")
        return errors, warnings

    # --- id / name ---
    for key in ("id", "name"):
        value = row.get(key)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"[idx={idx}] missing or empty '{key}'")

    # --- type ---
    if row.get("type") not in VALID_TYPES:
        errors.append(f"[idx={idx}] 'type' should be one of {sorted(VALID_TYPES)}, got {row.get('type')!r}")

    # --- confidence ---
    confidence = row.get("confidence")
    if not isinstance(confidence, int) or isinstance(confidence, bool):
        errors.append(f"[idx={idx}] 'confidence' should be an int, got {confidence!r}")
    elif not 0 <= confidence <= 100:
        errors.append(f"[idx={idx}] 'confidence' {confidence} outside 0..100")

    # --- products ---
    products = row.get("products")
    if not isinstance(products, list):
        errors.append(f"[idx={idx}] 'products' should be a list")
    elif not products:
        warnings.append(f"[idx={idx}] 'products' is empty")

    # Contact fields may legitimately be empty strings.
    for key in ("address", "email", "phone"):
        if key not in row:
            warnings.append(f"[idx={idx}] missing expected field '{key}'")

    return errors, warnings


def validate_response(response: Dict[str, Any]) -> Tuple[List[str], List[str]]:
    errors: List[str] = []
    warnings: List[str] = []

    for key in REQUIRED_RESPONSE_FIELDS:
        if key not in response:
            errors.append(f"response missing required field '{key}'")

    results = response.get("results")
    if not isinstance(results, list):
        errors.append("'results' should be a list")
        return errors, warnings

    seen_ids = set()
    for idx, row in enumerate(results):
        row_errors, row_warnings = validate_result(row, idx)
        errors.extend(row_errors)
        warnings.extend(row_warnings)
        row_id = row.get("id") if isinstance(row, dict) else None
        if row_id in seen_ids:
            errors.append(f"[idx={idx}] duplicate id {row_id!r}")
        seen_ids.add(row_id)

    total = response.get("totalResults")
    if isinstance(total, int) and total < len(results):
        errors.append(f"totalResults {total} is smaller than the {len(results)} rows returned")

    steps = (response.get("observability") or {}).get("processingSteps")
    if isinstance(steps, dict) and steps.get("finalCount") not in (None, len(results)):
        warnings.append(
            f"processingSteps.finalCount {steps.get('finalCount')} != {len(results)} rows returned"
        )

    return errors, warnings


def main(argv: List[str] | None = None) -> None:
    """Validate a saved search response file.

    Raises:
        SystemExit: With code 0 on success, 1 on validation failure
    """
    parser = argparse.ArgumentParser(description="Validate a saved search response JSON.")
    parser.add_argument(
        "--path",
        type=str,
        required=True,
        help="Path to the search response JSON (as written by run_search --output).",
    )
    args = parser.parse_args(argv)

    try:
        response = load_response(Path(args.path))
    except Exception as e:
        print(f"FAILED TO LOAD FILE: {e}")
        raise SystemExit(1)

    errors, warnings = validate_response(response)

    if errors:
        print("VALIDATION FAILED:\n")
        for err in errors:
            print(err)
        print(f"\nTotal errors: {len(errors)}")
        if warnings:
            print(f"Total warnings: {len(warnings)}")
        raise SystemExit(1)

    print("VALIDATION PASSED")
    print(f"Total results: {len(response.get('results') or [])}")
    if warnings:
        print("\nWarnings (non-fatal):")
        for w in warnings:
            print(w)
        print(f"\nTotal warnings: {len(warnings)}")

    raise SystemExit(0)


if __name__ == "__main__":
    main()
