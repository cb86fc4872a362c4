"""
Competitor ingestion runner.

Runs each source on its own worker thread. A failing source is logged with
its name and error text and reported in its SourceResult; the other sources
keep running.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Any

from tqdm import tqdm

from ..core.matching import VehicleMatcher
from .base import BaseSource
from .registry import enabled_sources, get_source
from .store import CompetitorStore

logger = logging.getLogger(__name__)


@dataclass
class SourceResult:
    """Outcome of ingesting one source."""
    source: str
    row_count: int = 0
    rejected_count: int = 0
    snapshot_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_response(self) -> Dict[str, Any]:
        return {
            'source': self.source,
            'rowCount': self.row_count,
            'rejectedCount': self.rejected_count,
            'snapshotId': self.snapshot_id,
            'error': self.error,
        }


@dataclass
class IngestionReport:
    """Results of one ingestion run across sources."""
    results: List[SourceResult] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return sum(r.row_count for r in self.results)

    @property
    def failed(self) -> List[SourceResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failed


def ingest_source(
    source: BaseSource,
    store: CompetitorStore,
    matcher: Optional[VehicleMatcher] = None,
) -> SourceResult:
    """
    Fetch one source and store its listings as a new snapshot.

    Any failure is caught, logged and returned in the result.
    """
    result = SourceResult(source=source.source_id)
    try:
        with source:
            html = source.fetch_html(source.listing_url)
            parsed = source.parse_listings(html)
        listings = source.normalize(parsed)
        result.rejected_count = len(parsed) - len(listings)

        snapshot = store.record_snapshot(source.source_id, listings, matcher)
        result.row_count = snapshot.row_count
        result.snapshot_id = snapshot.id
    except Exception as e:
        logger.error(f"Error ingesting {source.name or source.source_id}: {e}")
        result.error = str(e)
    return result


def run_ingestion(
    store: CompetitorStore,
    matcher: Optional[VehicleMatcher] = None,
    source_ids: Optional[List[str]] = None,
    source_factory: Callable[[str], Optional[BaseSource]] = get_source,
    max_workers: int = 3,
    show_progress: bool = True,
) -> IngestionReport:
    """
    Ingest several sources in parallel.

    Args:
        store: Store receiving the snapshots
        matcher: Catalogue matcher for the deals
        source_ids: Sources to run (all enabled sources if None)
        source_factory: Builds a source from its id
        max_workers: Number of parallel workers
        show_progress: Show a tqdm progress bar

    Returns:
        IngestionReport with one SourceResult per requested source
    """
    source_ids = source_ids or enabled_sources()
    report = IngestionReport()

    sources = []
    for source_id in source_ids:
        source = source_factory(source_id)
        if source is None:
            report.results.append(SourceResult(source=source_id, error="Unknown source"))
        else:
            sources.append(source)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(ingest_source, source, store, matcher): source
            for source in sources
        }

        with tqdm(total=len(futures), desc="Sources", unit="source", disable=not show_progress) as pbar:
            for future in as_completed(futures):
                report.results.append(future.result())
                pbar.update(1)

    report.results.sort(key=lambda r: r.source)
    logger.info(
        f"Ingestion finished: {report.total_rows} rows from {len(report.results)} sources, "
        f"{len(report.failed)} failed"
    )
    return report
