"""
Competitor ingestion for the rate explorer.

Sources fetch broker offer pages and parse them into listings; the store
persists them as snapshots matched to our vehicles; the ingestion runner
isolates failures per source.
"""

from .listing import CompetitorListing, ParsedListing, normalize_listing
from .base import BaseSource, SourceError
from .registry import (
    SourceRegistry,
    register_source,
    get_source,
    list_sources,
    enabled_sources,
)

# Importing the module registers the built-in sources
from .sources import (
    AppliedLeasingSource,
    SelectCarLeasingSource,
    VipGatewaySource,
)

from .store import CompetitorStore, DealSnapshot, StoredDeal
from .ingestion import IngestionReport, SourceResult, ingest_source, run_ingestion

__all__ = [
    "CompetitorListing",
    "ParsedListing",
    "normalize_listing",
    "BaseSource",
    "SourceError",
    "SourceRegistry",
    "register_source",
    "get_source",
    "list_sources",
    "enabled_sources",
    "AppliedLeasingSource",
    "SelectCarLeasingSource",
    "VipGatewaySource",
    "CompetitorStore",
    "DealSnapshot",
    "StoredDeal",
    "IngestionReport",
    "SourceResult",
    "ingest_source",
    "run_ingestion",
]
