"""Robots.txt compliance checking for competitor sources.

Sources consult these helpers before fetching a listing page: a disallowed
page is never requested, and a robots.txt crawl delay longer than the
source's own delay is honoured.
"""

import logging
from functools import lru_cache
from typing import Optional
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import requests

logger = logging.getLogger(__name__)

# Agent name matched against robots.txt rules
DEFAULT_USER_AGENT = "RateExplorer/1.0"
ROBOTS_TIMEOUT = 10


def robots_url_for(url: str) -> str:
    """robots.txt location for the host of ``url``."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}/robots.txt"


@lru_cache(maxsize=32)
def get_robots_parser(base_url: str) -> RobotFileParser | None:
    """Fetch and parse robots.txt for a host.

    Args:
        base_url: Any URL on the host (e.g., https://vipgateway.co.uk)

    Returns:
        RobotFileParser, or None when the host has no usable robots.txt
    """
    robots_url = robots_url_for(base_url)
    try:
        response = requests.get(robots_url, timeout=ROBOTS_TIMEOUT)
    except requests.RequestException as e:
        logger.warning(f"Failed to fetch robots.txt from {robots_url}: {e}")
        return None

    if response.status_code == 404:
        logger.debug(f"No robots.txt at {robots_url}")
        return None
    if response.status_code != 200:
        logger.warning(f"Unexpected status {response.status_code} from {robots_url}")
        return None

    parser = RobotFileParser(robots_url)
    parser.parse(response.text.splitlines())
    return parser


def _parser_for(url: str) -> RobotFileParser | None:
    parsed = urlparse(url)
    return get_robots_parser(f"{parsed.scheme}://{parsed.netloc}")


def can_fetch(url: str, user_agent: str = DEFAULT_USER_AGENT) -> bool:
    """Check whether robots.txt allows fetching ``url``.

    A host without a readable robots.txt allows everything.
    """
    parser = _parser_for(url)
    if parser is None:
        return True
    return parser.can_fetch(user_agent, url)


def crawl_delay(url: str, user_agent: str = DEFAULT_USER_AGENT) -> Optional[float]:
    """Crawl delay in seconds requested by the host of ``url``, if any."""
    parser = _parser_for(url)
    if parser is None:
        return None
    delay = parser.crawl_delay(user_agent)
    return float(delay) if delay is not None else None


def check_source_compliance(listing_url: str) -> dict:
    """Check robots.txt compliance for one listing page.

    Args:
        listing_url: Full URL of the competitor listing page

    Returns:
        Dictionary with compliance information
    """
    robots_url = robots_url_for(listing_url)

    result = {
        "listing_url": listing_url,
        "robots_url": robots_url,
        "robots_exists": False,
        "can_fetch": True,
        "crawl_delay": None,
    }

    try:
        response = requests.get(robots_url, timeout=ROBOTS_TIMEOUT)
        if response.status_code == 200:
            result["robots_exists"] = True

            parser = RobotFileParser(robots_url)
            parser.parse(response.text.splitlines())
            result["crawl_delay"] = parser.crawl_delay(DEFAULT_USER_AGENT)
            result["can_fetch"] = parser.can_fetch(DEFAULT_USER_AGENT, listing_url)

        elif response.status_code != 404:
            result["error"] = f"HTTP {response.status_code}"

    except requests.RequestException as e:
        result["error"] = str(e)

    return result


def verify_all_sources() -> dict:
    """Check robots.txt compliance for all configured competitor sources.

    Returns:
        Dictionary mapping source ids to compliance results
    """
    from ..core.config import get_pricing_config

    results = {}
    for source_id, source in get_pricing_config().sources.items():
        results[source_id] = check_source_compliance(source.listing_url)
        logger.info(f"{source_id}: can_fetch={results[source_id]['can_fetch']}")

    return results


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    print("\n=== Robots.txt Compliance Check ===\n")
    results = verify_all_sources()

    for source_id, info in results.items():
        status = "ALLOWED" if info["can_fetch"] else "BLOCKED"
        print(f"{source_id}: {status}")
        if info.get("crawl_delay"):
            print(f"  Crawl delay: {info['crawl_delay']}s")
        print()
