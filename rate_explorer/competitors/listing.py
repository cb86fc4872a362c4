"""
Competitor listing schema and HTML text helpers.

Source parsers produce ParsedListing records straight from the page (prices
in pounds, any field possibly missing). normalize_listing turns them into
CompetitorListing records (prices in pence) and rejects anything without a
manufacturer, a model or a monthly price.
"""

import re
from datetime import datetime
from typing import Dict, List, Optional, Any
from urllib.parse import urljoin, urlparse

from pydantic import BaseModel, Field

from ..core.matrix import round_half_up
from ..core.schema import LeaseType


class ParsedListing(BaseModel):
    """A deal as scraped from a competitor page, before validation."""
    source: str
    lease_type: Optional[LeaseType] = None
    vat_included: Optional[bool] = None
    monthly_price: Optional[float] = Field(default=None, description="Pounds")
    initial_payment: Optional[float] = Field(default=None, description="Pounds")
    term: Optional[int] = None
    mileage: Optional[int] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    variant: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None


class CompetitorListing(BaseModel):
    """A validated competitor deal ready for persistence."""
    source: str = Field(..., min_length=1)
    external_id: str = Field(..., min_length=1)
    manufacturer: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    variant: Optional[str] = None
    monthly_price: int = Field(..., gt=0, description="Monthly price in pence")
    initial_payment: Optional[int] = Field(default=None, description="Initial payment in pence")
    term: Optional[int] = None
    mileage: Optional[int] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    lease_type: Optional[LeaseType] = None
    vat_included: Optional[bool] = None
    fetched_at: datetime = Field(default_factory=datetime.utcnow)

    def to_response(self) -> Dict[str, Any]:
        return {
            'source': self.source,
            'manufacturer': self.manufacturer,
            'model': self.model,
            'variant': self.variant,
            'monthlyPrice': self.monthly_price,
            'term': self.term,
            'mileage': self.mileage,
            'url': self.url,
            'imageUrl': self.image_url,
            'leaseType': self.lease_type.value if self.lease_type else None,
            'vatIncluded': self.vat_included,
        }


# === Text helpers ===

def normalize_whitespace(value: Optional[str]) -> str:
    return re.sub(r'\s+', ' ', value or '').strip()


def money_to_number(text: Optional[str]) -> Optional[float]:
    """Parse a money string such as '£1,299.99 inc VAT' into pounds."""
    if not text:
        return None
    match = re.search(r'\d[\d,]*(?:\.\d+)?', text)
    if not match:
        return None
    return float(match.group(0).replace(',', ''))


def parse_leading_int(text: Optional[str]) -> Optional[int]:
    """Parse the leading integer of a string ('36 months' -> 36)."""
    match = re.match(r'\s*(\d+)', (text or '').replace(',', ''))
    if not match:
        return None
    return int(match.group(1)) or None


def parse_term_mileage(text: str) -> Dict[str, Optional[int]]:
    """Extract term and annual mileage from text like '36 months, 8,000 miles'."""
    term_match = re.search(r'(\d+)\s*months?', text, re.IGNORECASE)
    mileage_match = re.search(r'([0-9,]+)\s*miles', text, re.IGNORECASE)
    return {
        'term': int(term_match.group(1)) if term_match else None,
        'mileage': int(mileage_match.group(1).replace(',', '')) if mileage_match else None,
    }


def parse_vat_included(text: str) -> Optional[bool]:
    """True for 'inc VAT', False for '+VAT'/'exc VAT', None when not stated."""
    if re.search(r'inc\.?\s*vat', text, re.IGNORECASE):
        return True
    if re.search(r'(\+|\bexc\.?)\s*vat', text, re.IGNORECASE):
        return False
    return None


def parse_lease_type(label: str) -> LeaseType:
    return LeaseType.BUSINESS if re.search(r'business', label, re.IGNORECASE) else LeaseType.PERSONAL


def slug_to_title(slug: Optional[str]) -> Optional[str]:
    """'land-rover' -> 'Land Rover'."""
    if not slug:
        return None
    return ' '.join(part[:1].upper() + part[1:] for part in slug.split('-') if part)


def build_absolute_url(href: Optional[str], base: str) -> Optional[str]:
    if not href:
        return None
    return urljoin(base, href)


def path_parts(href: Optional[str], base: str) -> List[str]:
    absolute = build_absolute_url(href, base)
    if not absolute:
        return []
    return [part for part in urlparse(absolute).path.split('/') if part]


def manufacturer_model_from_path(href: Optional[str], base: str) -> Dict[str, Optional[str]]:
    """Read manufacturer and model from URLs like /car-leasing/bmw/i4/..."""
    parts = path_parts(href, base)
    if len(parts) >= 3:
        return {'manufacturer': slug_to_title(parts[1]), 'model': slug_to_title(parts[2])}
    return {'manufacturer': None, 'model': None}


# === Normalization ===

def build_external_id(listing: ParsedListing) -> str:
    """Stable per-source id from the URL path (or names) plus lease options."""
    if listing.url:
        base = urlparse(listing.url).path
    else:
        base = f"{listing.manufacturer}-{listing.model}-{listing.variant or ''}"
    base = re.sub(r'[^a-z0-9]+', '-', base.lower()).strip('-')
    suffix = '-'.join(
        str(part) for part in (
            listing.lease_type.value if listing.lease_type else None,
            listing.term,
            listing.mileage,
        ) if part
    )
    return f"{base}-{suffix}" if suffix else base


def normalize_listing(listing: ParsedListing) -> Optional[CompetitorListing]:
    """
    Validate a parsed listing and convert prices to pence.

    Returns:
        CompetitorListing, or None when the manufacturer, model or monthly
        price is missing
    """
    manufacturer = normalize_whitespace(listing.manufacturer)
    model = normalize_whitespace(listing.model)
    if not manufacturer or not model or not listing.monthly_price:
        return None

    return CompetitorListing(
        source=listing.source,
        external_id=build_external_id(listing),
        manufacturer=manufacturer,
        model=model,
        variant=normalize_whitespace(listing.variant) or None,
        monthly_price=round_half_up(listing.monthly_price * 100),
        initial_payment=(
            round_half_up(listing.initial_payment * 100) if listing.initial_payment else None
        ),
        term=listing.term,
        mileage=listing.mileage,
        url=listing.url,
        image_url=listing.image_url,
        lease_type=listing.lease_type,
        vat_included=listing.vat_included,
    )
