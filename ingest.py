#!/usr/bin/env python3
"""
Competitor Deal Ingestion

Fetches broker special-offer pages, matches the deals to our vehicle
catalogue and stores them as snapshots for market comparison.

Usage:
    python ingest.py                          # All enabled sources
    python ingest.py --source vipgateway      # One source
    python ingest.py robots                   # Check robots.txt for all sources
    python ingest.py status                   # Latest snapshot per source
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from rate_explorer.core import VehicleMatcher, load_vehicles
from rate_explorer.core.loader import DEFAULT_DATA_DIR, data_path
from rate_explorer.competitors import CompetitorStore, list_sources, run_ingestion
from rate_explorer.competitors.robots import verify_all_sources

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def print_status(store: CompetitorStore):
    print("\n" + "="*50)
    print("COMPETITOR SNAPSHOTS")
    print("="*50 + "\n")
    sources = sorted({s.source for s in store.snapshots})
    if not sources:
        print("No snapshots stored yet.")
        return
    for source in sources:
        snapshot = store.latest_snapshot(source)
        print(f"{source}: {snapshot.row_count} deals at {snapshot.fetched_at:%Y-%m-%d %H:%M}")
        if snapshot.row_count:
            print(
                f"  avg £{snapshot.avg_price / 100:.2f} | "
                f"min £{snapshot.min_price / 100:.2f} | max £{snapshot.max_price / 100:.2f}"
            )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Competitor deal ingestion")
    parser.add_argument(
        'command',
        nargs='?',
        choices=['run', 'robots', 'status'],
        default='run',
        help='Command: run (ingest), robots (compliance check), status (stored snapshots)'
    )
    parser.add_argument('--source', action='append', choices=list_sources(), help='Source to ingest (repeatable)')
    parser.add_argument('--data-dir', default=DEFAULT_DATA_DIR, help='Directory with JSON exports')
    parser.add_argument('--workers', type=int, default=3, help='Parallel sources')
    parser.add_argument('--json', action='store_true', help='Print results as JSON')

    args = parser.parse_args(argv)

    if args.command == 'robots':
        for source_id, info in verify_all_sources().items():
            status = "ALLOWED" if info["can_fetch"] else "BLOCKED"
            print(f"{source_id}: {status}")
        return 0

    store = CompetitorStore(data_path("competitors", args.data_dir))

    if args.command == 'status':
        print_status(store)
        return 0

    matcher = VehicleMatcher(load_vehicles(args.data_dir))
    report = run_ingestion(store, matcher, source_ids=args.source, max_workers=args.workers)

    if args.json:
        print(json.dumps([r.to_response() for r in report.results], indent=2))
    else:
        print(f"\nIngested {report.total_rows} deals")
        for result in report.results:
            if result.ok:
                print(f"  {result.source}: {result.row_count} stored, {result.rejected_count} rejected")
            else:
                print(f"  {result.source}: FAILED - {result.error}")

    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
