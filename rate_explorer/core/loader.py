"""
Data loader utilities for the rate store exports.

This module loads JSON exports of the ratebook and the vehicle catalogue and
converts them to the unified schema.
"""

import json
import logging
import os
from collections import defaultdict
from typing import Dict, List, Any, Optional, Tuple

from pydantic import ValidationError

from .schema import QuoteCell, Vehicle, quote_from_ratebook_row

logger = logging.getLogger(__name__)


# Default data file paths (relative to project root)
DEFAULT_DATA_DIR = "output"
DATA_FILES = {
    "ratebook": "ratebook.json",
    "vehicles": "vehicles.json",
    "overrides": "overrides.json",
    "competitors": "competitor_deals.json",
}

# (vehicle id, annual mileage)
QuoteScope = Tuple[str, int]


def load_json_cache(filepath: str) -> List[Dict[str, Any]]:
    """Load a JSON export and return its list of records."""
    if not os.path.exists(filepath):
        return []
    with open(filepath, 'r') as f:
        return json.load(f)


def save_json(filepath, data: Any):
    """Write JSON next to ``filepath`` then swap it into place."""
    filepath = str(filepath)
    os.makedirs(os.path.dirname(filepath) or '.', exist_ok=True)
    tmp_path = f"{filepath}.tmp"
    try:
        with open(tmp_path, 'w') as f:
            json.dump(data, f, indent=2, default=str)
        os.replace(tmp_path, filepath)
    except OSError:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def data_path(name: str, data_dir: str = DEFAULT_DATA_DIR) -> str:
    """Path of a named data file."""
    return os.path.join(data_dir, DATA_FILES[name])


def load_vehicles(data_dir: str = DEFAULT_DATA_DIR) -> List[Vehicle]:
    """Load the vehicle catalogue. Malformed records are logged and skipped."""
    vehicles = []
    for record in load_json_cache(data_path("vehicles", data_dir)):
        try:
            vehicles.append(Vehicle.model_validate(vehicle_fields(record)))
        except ValidationError as e:
            logger.warning(f"Skipping malformed vehicle {record.get('id')}: {e}")
    logger.info(f"Loaded {len(vehicles)} vehicles")
    return vehicles


def vehicle_fields(record: Dict[str, Any]) -> Dict[str, Any]:
    """Map a camelCase catalogue record onto Vehicle fields."""
    return {
        'id': record.get('id') or record.get('capCode'),
        'cap_code': record.get('capCode', record.get('cap_code')),
        'manufacturer': record.get('manufacturer'),
        'model': record.get('model'),
        'variant': record.get('variant'),
        'list_price': record.get('basicListPrice', record.get('list_price')),
        'p11d': record.get('p11d'),
        'fuel_type': record.get('fuelType', record.get('fuel_type')),
        'ev_range_miles': record.get('evRangeMiles', record.get('ev_range_miles')),
        'fuel_eco_mpg': record.get('fuelEcoMpg', record.get('fuel_eco_mpg')),
        'co2_gkm': record.get('co2Gkm', record.get('co2_gkm')),
    }


def group_ratebook_rows(rows: List[Dict[str, Any]]) -> Dict[QuoteScope, List[QuoteCell]]:
    """
    Group raw ratebook rows by (vehicle id, annual mileage).

    Rows without a vehicle or a valid rental are logged and skipped.
    """
    grouped: Dict[QuoteScope, List[QuoteCell]] = defaultdict(list)
    skipped = 0
    for row in rows:
        vehicle_id = row.get('vehicleId') or row.get('capCode')
        if not vehicle_id:
            skipped += 1
            continue
        try:
            quote = quote_from_ratebook_row(row)
            mileage = int(row.get('annualMileage', row.get('mileage', 0)))
        except (KeyError, TypeError, ValueError) as e:
            # pydantic ValidationError is a ValueError
            logger.debug(f"Skipping ratebook row for {vehicle_id}: {e}")
            skipped += 1
            continue
        grouped[(vehicle_id, mileage)].append(quote)

    if skipped:
        logger.warning(f"Skipped {skipped} unusable ratebook rows")
    return dict(grouped)


def load_ratebook(data_dir: str = DEFAULT_DATA_DIR) -> Dict[QuoteScope, List[QuoteCell]]:
    """Load the ratebook export grouped by vehicle and mileage."""
    grouped = group_ratebook_rows(load_json_cache(data_path("ratebook", data_dir)))
    logger.info(f"Loaded quotes for {len(grouped)} vehicle/mileage combinations")
    return grouped


def quotes_for_vehicle(
    ratebook: Dict[QuoteScope, List[QuoteCell]],
    vehicle_id: str,
    mileage: Optional[int] = None,
) -> Dict[int, List[QuoteCell]]:
    """All quotes of one vehicle, keyed by mileage (optionally one mileage)."""
    return {
        m: quotes for (vid, m), quotes in ratebook.items()
        if vid == vehicle_id and (mileage is None or m == mileage)
    }


def get_quote_stats(quotes: List[QuoteCell]) -> Dict[str, Any]:
    """
    Calculate statistics for a list of quotes.

    Returns:
        Dictionary with count, providers, terms and price range
    """
    if not quotes:
        return {
            'count': 0,
            'providers': [],
            'terms': [],
            'min_price': None,
            'max_price': None,
        }

    prices = [q.monthly_rental for q in quotes]
    return {
        'count': len(quotes),
        'providers': sorted(set(q.provider for q in quotes)),
        'terms': sorted(set(q.term for q in quotes)),
        'min_price': min(prices),
        'max_price': max(prices),
        'avg_price': sum(prices) / len(prices),
    }
