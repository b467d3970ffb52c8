#!/usr/bin/env python3
"""Live smoke check for the metadata acquisition layer.

Checks:
1. Browser backend health
2. URL scraping (cold, then cached)
3. DOI lookup via Crossref
4. ISBN lookup via Open Library

Needs a reachable CHROME_WS_ENDPOINT and network access to the registries.
"""

import asyncio
import sys
import time
from typing import List

from dotenv import load_dotenv

load_dotenv()

from citefetch.utils.logging import get_logger, setup_logging

setup_logging(verbose="-v" in sys.argv)
logger = get_logger("smoke_scrape")

TEST_URLS: List[str] = [
    "https://www.bbc.com/news",
    "https://en.wikipedia.org/wiki/Digital_object_identifier",
]
TEST_DOIS: List[str] = ["10.1038/nature14539", "10.1145/3503250"]
TEST_ISBNS: List[str] = ["9780262510875", "0-306-40615-2"]


async def check_urls(service) -> int:
    """Scrape each URL twice; the second call should be a cache hit."""
    from citefetch.core.exceptions import CiteFetchError
    from citefetch.core.models import ScrapeOptions

    passed = 0
    for url in TEST_URLS:
        logger.info("-" * 60)
        logger.info("Scraping %s", url)
        try:
            start_time = time.time()
            result = await service.scrape(url, ScrapeOptions(include_provenance=True))
            cold = time.time() - start_time

            start_time = time.time()
            await service.scrape(url)
            warm = time.time() - start_time
        except CiteFetchError as e:
            logger.error("FAILED: [%s] %s (%s)", e.code, e.message, e.details)
            continue

        logger.info("Title: %s (from %s)", result.title, result.extraction_source.value)
        logger.info("Authors: %s", ", ".join(a.full_name for a in result.authors) or "-")
        logger.info("Cold %.2fs, cached %.3fs", cold, warm)
        passed += 1
    return passed


async def check_identifiers(service) -> int:
    from citefetch.core.exceptions import CiteFetchError

    passed = 0
    lookups = [(service.scrape_by_doi, doi) for doi in TEST_DOIS]
    lookups += [(service.scrape_by_isbn, isbn) for isbn in TEST_ISBNS]
    for lookup, identifier in lookups:
        try:
            result = await lookup(identifier)
        except CiteFetchError as e:
            logger.error("FAILED %s: [%s] %s", identifier, e.code, e.message)
            continue
        logger.info("%s -> %s (%s)", identifier, result.title, result.published_date or "n.d.")
        passed += 1
    return passed


async def run() -> int:
    from citefetch.pipeline import create_scraper_service

    async with create_scraper_service() as service:
        logger.info("=" * 60)
        healthy = await service.check_health()
        logger.info("Browser backend: %s", "UP" if healthy else "DOWN")

        url_passed = await check_urls(service) if healthy else 0
        id_passed = await check_identifiers(service)

        logger.info("=" * 60)
        logger.info("URLs: %d/%d", url_passed, len(TEST_URLS))
        logger.info("Identifiers: %d/%d", id_passed, len(TEST_DOIS) + len(TEST_ISBNS))
        logger.info("Cache: %s", service.get_cache_stats())
        logger.info("Breaker: %s", service.get_circuit_breaker_stats().state.value)
        logger.info("=" * 60)

    return 0 if healthy and url_passed == len(TEST_URLS) else 1


def main():
    return asyncio.run(run())


if __name__ == "__main__":
    sys.exit(main())
