"""
Competitor deal store.

Persists ingestion snapshots and their deals as JSON. Each snapshot records
how many rows were actually stored and the average/min/max monthly price
over those rows; a row that cannot be matched or built is logged and left
out of the aggregates. Deals carry the vehicle they were matched to (if any) and the
price movement against the same deal in the source's previous snapshot.
"""

import json
import logging
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from ..core.matching import MatchStatus, VehicleMatcher
from ..core.loader import save_json
from ..core.matrix import round_half_up
from ..core.schema import CompetitorPrice
from .listing import CompetitorListing

logger = logging.getLogger(__name__)


class DealSnapshot(BaseModel):
    """One ingestion run of one source."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    source: str
    fetched_at: datetime = Field(default_factory=datetime.utcnow)
    row_count: int = 0
    avg_price: Optional[int] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None


class StoredDeal(CompetitorListing):
    """A persisted competitor deal."""
    snapshot_id: str
    match_status: MatchStatus = MatchStatus.UNMATCHED
    matched_vehicle_id: Optional[str] = None
    matched_cap_code: Optional[str] = None
    previous_price: Optional[int] = None
    price_change: Optional[int] = None
    price_change_percent: Optional[float] = None


def price_movement(current: int, previous: Optional[int]) -> Dict[str, Optional[float]]:
    """Change against the previous price (percent to one decimal place)."""
    if not previous:
        return {'previous_price': None, 'price_change': None, 'price_change_percent': None}
    change = current - previous
    return {
        'previous_price': previous,
        'price_change': change,
        'price_change_percent': round_half_up(change / previous * 1000) / 10,
    }


class CompetitorStore:
    """
    JSON-backed store of competitor snapshots and deals.

    Usage:
        store = CompetitorStore("output/competitor_deals.json")
        snapshot = store.record_snapshot("vipgateway", listings, matcher)
        prices = store.competitor_prices_for(vehicle.id)
    """

    def __init__(self, filepath: Optional[Union[str, Path]] = None):
        """
        Initialize competitor store.

        Args:
            filepath: JSON file for persistence (None keeps data in memory)
        """
        self.filepath = Path(filepath) if filepath else None
        self._lock = threading.Lock()
        self.snapshots: List[DealSnapshot] = []
        self.deals: List[StoredDeal] = []
        if self.filepath and self.filepath.exists():
            self._load()

    def _load(self):
        """Load snapshots and deals from disk."""
        with open(self.filepath) as f:
            data = json.load(f)
        self.snapshots = [DealSnapshot.model_validate(s) for s in data.get('snapshots', [])]
        self.deals = [StoredDeal.model_validate(d) for d in data.get('deals', [])]
        logger.info(f"Loaded {len(self.deals)} competitor deals from {self.filepath}")

    def _save(self, snapshots: List[DealSnapshot], deals: List[StoredDeal]):
        """Save snapshots and deals to disk. Raises before anything is published."""
        if self.filepath is None:
            return
        save_json(self.filepath, {
            'updated_at': datetime.utcnow().isoformat(),
            'snapshots': [s.model_dump(mode='json') for s in snapshots],
            'deals': [d.model_dump(mode='json') for d in deals],
        })

    # === Snapshots ===

    def latest_snapshot(self, source: str) -> Optional[DealSnapshot]:
        snapshots = [s for s in self.snapshots if s.source == source]
        return max(snapshots, key=lambda s: s.fetched_at) if snapshots else None

    def deals_for_snapshot(self, snapshot_id: str) -> List[StoredDeal]:
        return [d for d in self.deals if d.snapshot_id == snapshot_id]

    def latest_deals(self, source: Optional[str] = None) -> List[StoredDeal]:
        """Deals from the most recent snapshot of each source."""
        sources = [source] if source else sorted({s.source for s in self.snapshots})
        deals = []
        for source_id in sources:
            snapshot = self.latest_snapshot(source_id)
            if snapshot is not None:
                deals.extend(self.deals_for_snapshot(snapshot.id))
        return deals

    def _build_deal(
        self,
        snapshot: DealSnapshot,
        listing: CompetitorListing,
        matcher: Optional[VehicleMatcher],
        previous_price: Optional[int],
    ) -> StoredDeal:
        """Match one listing and turn it into a deal row of ``snapshot``."""
        match = None
        if matcher is not None:
            match = matcher.match(
                manufacturer=listing.manufacturer,
                model=listing.model,
                variant=listing.variant,
            )
        fields = listing.model_dump()
        fields['fetched_at'] = snapshot.fetched_at
        return StoredDeal(
            **fields,
            snapshot_id=snapshot.id,
            match_status=match.status if match else MatchStatus.UNMATCHED,
            matched_vehicle_id=match.vehicle_id if match else None,
            matched_cap_code=match.cap_code if match else None,
            **price_movement(listing.monthly_price, previous_price),
        )

    def record_snapshot(
        self,
        source: str,
        listings: List[CompetitorListing],
        matcher: Optional[VehicleMatcher] = None,
        fetched_at: Optional[datetime] = None,
    ) -> DealSnapshot:
        """
        Store one ingestion run.

        Args:
            source: Source id
            listings: Validated listings from the source
            matcher: Catalogue matcher (deals stay unmatched if None)
            fetched_at: Snapshot time (now if None)

        Returns:
            The stored DealSnapshot with aggregates over persisted rows
        """
        with self._lock:
            previous = self.latest_snapshot(source)
            previous_prices = {
                d.external_id: d.monthly_price
                for d in (self.deals_for_snapshot(previous.id) if previous else [])
            }

            snapshot = DealSnapshot(source=source, fetched_at=fetched_at or datetime.utcnow())
            rows: List[StoredDeal] = []

            for listing in listings:
                try:
                    deal = self._build_deal(
                        snapshot, listing, matcher, previous_prices.get(listing.external_id)
                    )
                except ValueError as e:
                    # pydantic ValidationError is a ValueError
                    logger.error(f"{source}: failed to store deal {listing.external_id}: {e}")
                    continue
                rows.append(deal)

            prices = [d.monthly_price for d in rows]
            snapshot.row_count = len(rows)
            if prices:
                snapshot.avg_price = round_half_up(sum(prices) / len(prices))
                snapshot.min_price = min(prices)
                snapshot.max_price = max(prices)

            snapshots = self.snapshots + [snapshot]
            deals = self.deals + rows
            self._save(snapshots, deals)
            self.snapshots = snapshots
            self.deals = deals

        matched = sum(1 for d in rows if d.matched_vehicle_id)
        logger.info(
            f"{source}: stored {snapshot.row_count}/{len(listings)} deals "
            f"({matched} matched to vehicles)"
        )
        return snapshot

    # === Market inputs ===

    @staticmethod
    def _to_competitor_price(deal: StoredDeal) -> CompetitorPrice:
        return CompetitorPrice(
            source_name=deal.source,
            monthly_price=deal.monthly_price,
            term=deal.term,
            mileage=deal.mileage,
            lease_type=deal.lease_type,
            snapshot_date=deal.fetched_at,
        )

    def competitor_prices_for(self, vehicle_id: str) -> List[CompetitorPrice]:
        """All stored prices matched to a vehicle."""
        return [
            self._to_competitor_price(d) for d in self.deals
            if d.matched_vehicle_id == vehicle_id
        ]

    def competitor_prices_by_vehicle(self) -> Dict[str, List[CompetitorPrice]]:
        """Stored prices grouped by matched vehicle id. Unmatched deals are left out."""
        grouped: Dict[str, List[CompetitorPrice]] = {}
        for deal in self.deals:
            if deal.matched_vehicle_id:
                grouped.setdefault(deal.matched_vehicle_id, []).append(self._to_competitor_price(deal))
        return grouped

    def __len__(self) -> int:
        return len(self.deals)
