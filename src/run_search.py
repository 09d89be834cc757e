"""Search CLI Entry Point

Provides the command-line interface for running one manufacturer search.
Handles argument parsing, logging configuration, and printing or saving the
ranked results.

Usage:
    python -m run_search "LED strip factories in Ningbo" --type factory
    python -m run_search "PCB assembly" --replay data/apify_items.json --output out.json
"""

import argparse
import asyncio
import json
import logging
import time
from pathlib import Path
from typing import List, Optional

from sourcing_pipeline.config import SearchSettings
from sourcing_pipeline.errors import SearchFailedError
from sourcing_pipeline.models import ManufacturerTypeFilter, SearchFilters, SearchRequest, SearchResponse
from sourcing_pipeline.pipeline import build_pipeline
from sourcing_pipeline.progress import SearchEvent, event_to_dict

LOG_DIR = Path("logs")


def configure_logging() -> None:
    """Configure logging with both console and file output.

    Sets up:
      - Root logger at DEBUG level
      - Console handler at INFO level for user-facing messages
      - File handler at DEBUG level for detailed troubleshooting
      - Reduced verbosity for httpx and openai loggers
    """
    LOG_DIR.mkdir(exist_ok=True)
    log_file = LOG_DIR / "search.log"

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    # Clear existing handlers to avoid duplicates if run multiple times
    logger.handlers.clear()
    logger.addHandler(console_handler)
    logger.addHandler(file_handler)


def build_request(args: argparse.Namespace) -> SearchRequest:
    filters = None
    if args.location or args.min_confidence is not None or args.type:
        filters = SearchFilters(
            location=args.location or None,
            min_confidence=args.min_confidence,
            manufacturer_type=ManufacturerTypeFilter(args.type) if args.type else None,
        )
    return SearchRequest(
        query=args.query,
        filters=filters,
        image_url=args.image_url,
        limit=args.limit,
    )


def print_event(event: SearchEvent) -> None:
    print(json.dumps(event_to_dict(event), ensure_ascii=False), flush=True)


async def run(args: argparse.Namespace) -> SearchResponse:
    pipeline = build_pipeline(
        SearchSettings(),
        replay_path=str(args.replay) if args.replay else None,
    )
    return await pipeline.search(
        build_request(args),
        on_progress=print_event if args.stream else None,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entrypoint for a manufacturer search.

    Returns a Unix-style exit code (0 on success, non-zero on failure).
    """
    configure_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Manufacturer sourcing search")
    parser.add_argument("query", help="Free-text sourcing query.")
    parser.add_argument(
        "--location",
        action="append",
        default=None,
        help="Only keep manufacturers in this city/province (repeatable).",
    )
    parser.add_argument(
        "--min-confidence",
        type=float,
        default=None,
        help="Minimum confidence as a fraction in [0, 1].",
    )
    parser.add_argument(
        "--type",
        choices=[t.value for t in ManufacturerTypeFilter],
        default=None,
        help="Manufacturer type filter.",
    )
    parser.add_argument("--limit", type=int, default=None, help="Maximum results to return.")
    parser.add_argument("--image-url", default=None, help="Optional reference image URL.")
    parser.add_argument(
        "--replay",
        type=Path,
        default=None,
        help="JSON file of raw provider records to use as the primary provider.",
    )
    parser.add_argument("--output", type=Path, default=None, help="Write the response JSON here.")
    parser.add_argument(
        "--stream",
        action="store_true",
        help="Print progress events as JSON lines while the search runs.",
    )
    args = parser.parse_args(argv)

    logger.info("=== Starting manufacturer search ===")
    logger.info("Query: %s", args.query)
    logger.info("Replay file: %s", args.replay if args.replay else "None (live providers)")

    try:
        start_time = time.time()
        response = asyncio.run(run(args))
        elapsed_time = time.time() - start_time
    except SearchFailedError as e:
        logger.error("%s", e)
        return 1
    except Exception as e:
        logger.exception("Search failed with an unhandled exception: %s", e)
        return 1

    payload = response.model_dump(mode="json", by_alias=True)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        with args.output.open("w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)

    obs = response.observability
    logger.info("=" * 70)
    logger.info("Search completed in %.2fs", elapsed_time)
    logger.info("")
    logger.info("Summary:")
    logger.info("  Search ID:  %s", response.search_id)
    logger.info("  Provider:   %s (%s)", obs.search_method, obs.provider_used.value if obs.provider_used else "-")
    logger.info("  Results:    %d shown / %d matching", len(response.results), response.total_results)
    logger.info("")
    for row in response.results:
        logger.info("  %3d  %-16s %s (%s)", row.confidence, row.type.value, row.name, row.address)
    if args.output:
        logger.info("")
        logger.info("Output file: %s", args.output)
    logger.info("=" * 70)

    if not args.output and not args.stream:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
