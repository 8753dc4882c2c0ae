"""CLI job that searches for medical facilities near a place and prints them nearest-first."""

import argparse
import json
import logging
import sys
from typing import List, Optional

from facility_finder.core.config import ConfigError, get_settings
from facility_finder.core.orchestrator import SearchOrchestrator
from facility_finder.etl.rank import approx_distance_km
from facility_finder.models import Failed, SearchOutcome, Success
from facility_finder.vendors.overpass import category_filter

logger = logging.getLogger(__name__)


def format_outcome(outcome: SearchOutcome, limit: Optional[int] = None) -> List[str]:
    if not isinstance(outcome, Success):
        return [outcome.message]

    lines = [outcome.message]
    if outcome.display_name:
        lines.append(f"Near: {outcome.display_name}")
    facilities = outcome.facilities[:limit] if limit is not None else outcome.facilities
    for position, facility in enumerate(facilities, start=1):
        kind = facility.tags.get("amenity") or facility.tags.get("healthcare") or facility.kind
        name = facility.name or "Unnamed facility"
        distance = approx_distance_km(facility, outcome.origin)
        lines.append(f"{position:>3}. {name} ({kind}) ~{distance:.1f} km [{facility.lat:.5f}, {facility.lon:.5f}]")
    return lines


def run_search_job(*, place: str, categories: Optional[List[str]], limit: Optional[int], as_json: bool) -> int:
    settings = get_settings()
    orchestrator = SearchOrchestrator(categories=categories or settings.categories, settings=settings)

    logger.info("Searching facilities near place=%s", place)
    outcome = orchestrator.search(place)
    if as_json:
        print(json.dumps(outcome.to_dict(), ensure_ascii=False, indent=2))
    else:
        for line in format_outcome(outcome, limit=limit):
            print(line)

    logger.info("Completed search: status=%s attempts=%d", outcome.status, len(outcome.attempts))
    return 1 if isinstance(outcome, Failed) else 0


def _category(value: str) -> str:
    try:
        category_filter(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    return value.strip()


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError("limit must be positive")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find hospitals and clinics near a place")
    parser.add_argument("place", help="Place name, e.g. 'Springfield, Illinois'")
    parser.add_argument(
        "--category",
        dest="categories",
        action="append",
        type=_category,
        help="Category to search (repeatable); 'hospital' or a 'key=value' tag filter",
    )
    parser.add_argument("--limit", dest="limit", type=_positive_int, help="Maximum number of facilities to print")
    parser.add_argument("--json", dest="as_json", action="store_true", help="Print the outcome as JSON")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        code = run_search_job(place=args.place, categories=args.categories, limit=args.limit, as_json=args.as_json)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc
    sys.exit(code)


if __name__ == "__main__":
    main()
