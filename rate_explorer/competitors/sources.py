"""
Competitor listing sources.

Each source parses the special-offers page of one UK leasing broker into
ParsedListing records. Prices are read in pounds as displayed; a deal card
with several price columns (personal and business) yields one listing per
column.
"""

import logging
import re
from typing import List, Optional

from bs4 import BeautifulSoup

from ..core.schema import LeaseType
from .base import BaseSource
from .listing import (
    ParsedListing,
    normalize_whitespace,
    money_to_number,
    parse_leading_int,
    parse_term_mileage,
    parse_vat_included,
    parse_lease_type,
    build_absolute_url,
    manufacturer_model_from_path,
)
from .registry import register_source

logger = logging.getLogger(__name__)


def _text(element) -> str:
    """Whitespace-normalized text of a bs4 element (empty if None)."""
    if element is None:
        return ''
    return normalize_whitespace(element.get_text(' '))


def _attr(element, name: str) -> Optional[str]:
    if element is None:
        return None
    value = element.get(name)
    return value.strip() if value else None


@register_source('appliedleasing')
class AppliedLeasingSource(BaseSource):
    """Applied Leasing deal list (dual personal/business price columns)."""

    SOURCE_ID = "appliedleasing"
    NAME = "Applied Leasing"
    BASE_URL = "https://www.appliedleasing.co.uk"
    LISTING_URL = "https://www.appliedleasing.co.uk/car-leasing"

    def parse_listings(self, html: str) -> List[ParsedListing]:
        soup = BeautifulSoup(html, 'lxml')
        listings = []

        for card in soup.select('.dlitem'):
            href = _attr(card.select_one('a.deallink, a.layer'), 'href')
            names = manufacturer_model_from_path(href, self.base_url)
            variant = _text(card.select_one('.title-2 .t2'))
            term = parse_leading_int(_text(card.select_one('.conlen')))
            mileage = parse_leading_int(_text(card.select_one('.mpa')))
            image_url = build_absolute_url(_attr(card.select_one('img.vehimg'), 'src'), self.base_url)

            for column in card.select('.price-dual-1 > div'):
                listings.append(ParsedListing(
                    source=self.source_id,
                    lease_type=parse_lease_type(_text(column.select_one('.title'))),
                    vat_included=parse_vat_included(_text(column.select_one('.vspm'))),
                    monthly_price=money_to_number(_text(column.select_one('.price'))),
                    initial_payment=money_to_number(_text(column.select_one('.initpay'))),
                    term=term,
                    mileage=mileage,
                    manufacturer=names['manufacturer'],
                    model=names['model'],
                    variant=variant or None,
                    url=build_absolute_url(href, self.base_url),
                    image_url=image_url,
                ))

        logger.debug(f"{self.source_id}: {len(listings)} price columns parsed")
        return listings


@register_source('selectcarleasing')
class SelectCarLeasingSource(BaseSource):
    """Select Car Leasing special offers (personal contract hire only)."""

    SOURCE_ID = "selectcarleasing"
    NAME = "Select Car Leasing"
    BASE_URL = "https://www.selectcarleasing.co.uk"
    LISTING_URL = "https://www.selectcarleasing.co.uk/special-offers"

    INITIAL_PAYMENT_PATTERN = re.compile(r'Initial payment:\s*£[0-9,.]+', re.IGNORECASE)

    def parse_listings(self, html: str) -> List[ParsedListing]:
        soup = BeautifulSoup(html, 'lxml')
        listings = []

        for card in soup.select('article.drv-car-card'):
            variant = (
                _attr(card, 'data-ga-car-card-item-variant')
                or _text(card.select_one('.drv-car-card__subtitle'))
                or None
            )
            href = _attr(card.select_one('a.drv-car-card__link'), 'href')

            offer = card.select_one('.drv-card-car__offer')
            splits = offer.select('.drv-card-car__split') if offer is not None else []
            left_text = _text(splits[0]) if splits else ''
            right_text = _text(splits[1]) if len(splits) > 1 else ''
            price_text = _text(offer.select_one('.drv-card-car__text-price')) if offer is not None else ''
            initial_match = self.INITIAL_PAYMENT_PATTERN.search(left_text)
            term_mileage = parse_term_mileage(left_text)

            listings.append(ParsedListing(
                source=self.source_id,
                lease_type=LeaseType.PERSONAL,
                vat_included=parse_vat_included(right_text),
                monthly_price=money_to_number(price_text),
                initial_payment=money_to_number(initial_match.group(0)) if initial_match else None,
                term=term_mileage['term'],
                mileage=term_mileage['mileage'],
                manufacturer=_attr(card, 'data-ga-car-card-item-brand'),
                model=_attr(card, 'data-ga-car-card-item-name'),
                variant=variant,
                url=build_absolute_url(href, self.base_url),
            ))

        return listings


@register_source('vipgateway')
class VipGatewaySource(BaseSource):
    """VIP Gateway offer cards (one block per lease type)."""

    SOURCE_ID = "vipgateway"
    NAME = "VIP Gateway"
    BASE_URL = "https://vipgateway.co.uk"
    LISTING_URL = "https://vipgateway.co.uk/special-car-leasing-offers"

    def parse_listings(self, html: str) -> List[ParsedListing]:
        soup = BeautifulSoup(html, 'lxml')
        listings = []

        for card in soup.select('a[data-cms-card]'):
            href = _attr(card, 'href')
            names = manufacturer_model_from_path(href, self.base_url)
            variant = _text(card.select_one('span.text-center.text-gray-700'))
            image_url = build_absolute_url(_attr(card.select_one('img'), 'src'), self.base_url)

            for block in card.select('div.border-t.py-2'):
                small_print = block.select('p.text-xs')
                price_text = _text(block.select_one('p.text-2xl'))
                term_mileage = parse_term_mileage(_text(small_print[0]) if small_print else '')

                listings.append(ParsedListing(
                    source=self.source_id,
                    lease_type=parse_lease_type(_text(block.select_one('p.font-medium'))),
                    vat_included=parse_vat_included(price_text),
                    monthly_price=money_to_number(price_text),
                    initial_payment=money_to_number(_text(small_print[-1])) if small_print else None,
                    term=term_mileage['term'],
                    mileage=term_mileage['mileage'],
                    manufacturer=names['manufacturer'],
                    model=names['model'],
                    variant=variant or None,
                    url=build_absolute_url(href, self.base_url),
                    image_url=image_url,
                ))

        return listings
