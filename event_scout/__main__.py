"""Command-line entry point: ``python -m event_scout <command>``."""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from .config import MAX_EVENTS_PER_RUN, TARGET_METRO


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="event-scout", description="Event ingestion pipeline")
    sub = parser.add_subparsers(dest="command", required=True)

    discover = sub.add_parser("discover", help="search the web for new event sources")
    discover.add_argument("--metro", default=TARGET_METRO, help="target metropolitan area")

    extract = sub.add_parser("extract", help="extract events from active sources into the catalog")
    extract.add_argument("--max-events", type=int, default=MAX_EVENTS_PER_RUN)

    cleanup = sub.add_parser("cleanup-duplicates", help="merge same-day duplicate events")
    cleanup.add_argument("--live", action="store_true", help="delete duplicates (default: dry run)")

    sub.add_parser("find-image-duplicates", help="list events that share a cover image (read-only)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "discover":
        from .workflows.discovery_pipeline import run as run_discovery

        run_discovery(metro=args.metro)
    elif args.command == "extract":
        from .workflows.extraction_pipeline import run as run_extraction

        run_extraction(max_events=args.max_events)
    elif args.command == "find-image-duplicates":
        from .workflows.cleanup_pipeline import find_image_duplicates

        find_image_duplicates()
    else:
        from .workflows.cleanup_pipeline import run as run_cleanup

        run_cleanup(live=args.live)
    return 0


if __name__ == "__main__":
    sys.exit(main())
