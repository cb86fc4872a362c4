"""
Abstract base class for competitor listing sources.

This module defines the interface that every competitor source implements:
fetch one listing page over HTTP and parse it into ParsedListing records.
The base class provides the HTTP session, rate limiting, robots.txt checks
and normalization, so a source only has to describe its page structure.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import List, Optional

import requests

from ..core.config import RateLimitConfig, SourceConfig
from .listing import CompetitorListing, ParsedListing, normalize_listing
from .robots import can_fetch, crawl_delay

logger = logging.getLogger(__name__)


class SourceError(Exception):
    """Raised when a source cannot be fetched or parsed."""


class BaseSource(ABC):
    """
    Abstract base class for competitor listing sources.

    Class Attributes:
        SOURCE_ID: Unique source identifier
        NAME: Human-readable name
        BASE_URL: Site root, used to resolve relative links
        LISTING_URL: Page listing the deals
        USER_AGENT: User agent sent with requests

    Example:
        class MySource(BaseSource):
            SOURCE_ID = "mysource"
            BASE_URL = "https://example.co.uk"
            LISTING_URL = "https://example.co.uk/offers"

            def parse_listings(self, html: str) -> List[ParsedListing]:
                # Implementation...
    """

    # Override these in subclasses
    SOURCE_ID: str = None
    NAME: str = ""
    BASE_URL: str = ""
    LISTING_URL: str = ""
    USER_AGENT: str = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36"

    def __init__(
        self,
        config: Optional[SourceConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the source.

        Args:
            config: Source configuration; class attributes are used if None
            session: HTTP session to use (a new one is created if None)
        """
        self.config = config
        self._session = session
        self._owns_session = session is None
        self._last_request: Optional[float] = None
        self._robots_delay = 0.0

    @property
    def source_id(self) -> str:
        return self.config.id if self.config else self.SOURCE_ID

    @property
    def name(self) -> str:
        return self.config.name if self.config else self.NAME

    @property
    def base_url(self) -> str:
        return self.config.base_url if self.config else self.BASE_URL

    @property
    def listing_url(self) -> str:
        return self.config.listing_url if self.config else self.LISTING_URL

    @property
    def rate_limit(self) -> RateLimitConfig:
        return self.config.rate_limit if self.config else RateLimitConfig()

    @property
    def check_robots(self) -> bool:
        return self.config.check_robots if self.config else True

    @property
    def session(self) -> requests.Session:
        """Lazy initialization of the HTTP session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({
                'User-Agent': self.USER_AGENT,
                'Accept': 'text/html',
            })
        return self._session

    def close(self):
        """Clean up resources."""
        if self._session is not None and self._owns_session:
            self._session.close()
            self._session = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False

    # === Abstract methods - must be implemented by subclasses ===

    @abstractmethod
    def parse_listings(self, html: str) -> List[ParsedListing]:
        """
        Parse a listing page.

        Args:
            html: Page HTML

        Returns:
            One ParsedListing per deal found. Fields that could not be read
            are left as None; validation happens later.
        """
        pass

    # === HTTP ===

    def _wait_for_rate_limit(self):
        """Sleep so that requests are at least the configured (or robots.txt) delay apart."""
        delay = max(self.rate_limit.delay_between_requests, self._robots_delay)
        if self._last_request is not None and delay > 0:
            elapsed = time.monotonic() - self._last_request
            if elapsed < delay:
                time.sleep(delay - elapsed)
        self._last_request = time.monotonic()

    def fetch_html(self, url: str) -> str:
        """
        Fetch a page, retrying transient failures.

        Raises:
            SourceError: If robots.txt disallows the URL or every attempt fails
        """
        if self.check_robots:
            if not can_fetch(url):
                raise SourceError(f"robots.txt disallows {url}")
            self._robots_delay = crawl_delay(url) or 0.0

        attempts = self.rate_limit.max_retries + 1
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            self._wait_for_rate_limit()
            try:
                response = self.session.get(
                    url,
                    timeout=self.rate_limit.timeout,
                    headers={'Referer': self.listing_url},
                )
                response.raise_for_status()
                return response.text
            except requests.RequestException as e:
                last_error = e
                logger.warning(f"{self.source_id}: attempt {attempt}/{attempts} failed for {url}: {e}")

        raise SourceError(f"{self.name or self.source_id} fetch failed: {last_error}")

    # === Main method ===

    def normalize(self, parsed: List[ParsedListing]) -> List[CompetitorListing]:
        """
        Validate parsed listings.

        Listings without a manufacturer, model or monthly price are dropped.
        """
        listings = []
        for item in parsed:
            listing = normalize_listing(item)
            if listing is not None:
                listings.append(listing)

        rejected = len(parsed) - len(listings)
        logger.info(
            f"{self.source_id}: parsed {len(parsed)} listings, "
            f"{len(listings)} valid, {rejected} rejected"
        )
        return listings

    def fetch_listings(self) -> List[CompetitorListing]:
        """
        Fetch, parse and validate the source's listings.

        Returns:
            Validated CompetitorListing records
        """
        logger.info(f"Fetching {self.source_id} listings from {self.listing_url}")
        html = self.fetch_html(self.listing_url)
        return self.normalize(self.parse_listings(html))
