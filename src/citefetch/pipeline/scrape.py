"""Metadata acquisition pipeline.

Composes URL validation, admission control, caching, the circuit breaker,
the browser pool and metadata extraction for web pages, and the registry
clients for DOIs and ISBNs.
"""

import asyncio
import logging

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from citefetch.config.settings import Settings, load_settings
from citefetch.core.exceptions import (
    CiteFetchError,
    FetchFailedError,
    PageLoadTimeoutError,
    PageNotFoundError,
)
from citefetch.core.models import (
    CacheStats,
    CircuitBreakerStats,
    MetadataResult,
    PoolStats,
    RateLimiterStats,
    ScrapeOptions,
)
from citefetch.core.protocols import Resolver
from citefetch.extraction.extractor import MetadataExtractor
from citefetch.infrastructure.browser.browser_pool import BrowserPool, BrowserSession, Connector
from citefetch.infrastructure.cache.redis_store import RedisCacheStore
from citefetch.infrastructure.cache.tiered import TieredCache, create_cache_key
from citefetch.infrastructure.resilience.circuit_breaker import CircuitBreaker
from citefetch.infrastructure.resilience.rate_limiter import RateLimiter
from citefetch.infrastructure.security.url_guard import UrlGuard
from citefetch.sources.base import BaseRegistryClient
from citefetch.sources.crossref import CrossrefClient
from citefetch.sources.identifiers import validate_doi, validate_isbn
from citefetch.sources.openlibrary import OpenLibraryClient

logger = logging.getLogger(__name__)

CACHE_PREFIX = "scraper"

SCRAPE_ENDPOINT = "/scrape"
DOI_ENDPOINT = "/doi"
ISBN_ENDPOINT = "/isbn"


def _navigation_error(exc: Exception, url: str) -> CiteFetchError:
    if isinstance(exc, PlaywrightTimeoutError):
        return PageLoadTimeoutError("Page load timed out", details=url)
    if isinstance(exc, PlaywrightError):
        return FetchFailedError(f"Failed to load {url}", details=str(exc))
    return FetchFailedError(f"Failed to scrape {url}", details=str(exc) or type(exc).__name__)


class ScraperService:
    """Fetch citation metadata for URLs, DOIs and ISBNs.

    All collaborators are injected; use ``create_scraper_service`` to build
    one from Settings.
    """

    def __init__(
        self,
        guard: UrlGuard,
        cache: TieredCache,
        limiter: RateLimiter,
        breaker: CircuitBreaker,
        pool: BrowserPool,
        extractor: MetadataExtractor,
        crossref: BaseRegistryClient,
        openlibrary: BaseRegistryClient,
        result_ttl_ms: int = 3_600_000,
        navigation_timeout_ms: int = 30_000,
    ):
        self.guard = guard
        self.cache = cache
        self.limiter = limiter
        self.breaker = breaker
        self.pool = pool
        self.extractor = extractor
        self.crossref = crossref
        self.openlibrary = openlibrary
        self.result_ttl_ms = result_ttl_ms
        self.navigation_timeout_ms = navigation_timeout_ms

    # Web pages

    async def scrape(
        self,
        url: str,
        options: ScrapeOptions | None = None,
        client_key: str | None = None,
    ) -> MetadataResult:
        """Scrape metadata for a web page.

        Args:
            url: Caller-supplied URL (untrusted).
            options: Per-call timeout, provenance and selector options.
            client_key: Client identity for rate limiting; None skips admission.

        Raises:
            CiteFetchError: Any failure, already classified.
        """
        options = options or ScrapeOptions()
        if client_key is not None:
            self.limiter.admit(client_key, SCRAPE_ENDPOINT)

        normalized = await self.guard.validate(url)
        key = create_cache_key(["scrape", normalized], CACHE_PREFIX)

        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", normalized)
            return self._present(cached, options.include_provenance)

        timeout_ms = options.timeout_ms or self.navigation_timeout_ms
        try:
            html = await self.breaker.call(self._fetch_html, normalized, options, timeout_ms)
        except CiteFetchError as e:
            logger.info("Scrape failed for %s: [%s] %s", normalized, e.code, e.message)
            raise

        result = await asyncio.to_thread(self.extractor.extract, html, normalized)
        await self.cache.set(key, result, self.result_ttl_ms)
        logger.info("Scraped %s (title from %s)", normalized, result.extraction_source.value)
        return self._present(result, options.include_provenance)

    async def _fetch_html(self, url: str, options: ScrapeOptions, timeout_ms: int) -> str:
        try:
            return await asyncio.wait_for(self._load_page(url, options, timeout_ms), timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise PageLoadTimeoutError("Page load timed out", details=url) from None

    async def _load_page(self, url: str, options: ScrapeOptions, timeout_ms: int) -> str:
        session: BrowserSession = await self.pool.acquire()
        try:
            page = session.page
            try:
                response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
            except CiteFetchError:
                raise
            except Exception as e:
                raise _navigation_error(e, url) from e

            if response is None:
                raise PageLoadTimeoutError("No response received from page", details=url)
            status = response.status
            if status == 404:
                raise PageNotFoundError("Page not found", details=url)
            if status >= 400:
                raise PageLoadTimeoutError(f"HTTP error: {status}", details=url)

            try:
                if options.wait_for_selector:
                    await page.wait_for_selector(options.wait_for_selector, timeout=timeout_ms)
                return await page.content()
            except CiteFetchError:
                raise
            except Exception as e:
                raise _navigation_error(e, url) from e
        finally:
            await self.pool.release(session)

    @staticmethod
    def _present(result: MetadataResult, include_provenance: bool) -> MetadataResult:
        return result if include_provenance else result.without_provenance()

    # Registries

    async def scrape_by_doi(
        self,
        doi: str,
        use_cache: bool = True,
        client_key: str | None = None,
        include_provenance: bool = False,
    ) -> MetadataResult:
        """Look up a DOI in Crossref.

        Raises:
            InvalidIdentifierError: Malformed DOI.
            RegistryNotFoundError: Unknown DOI.
        """
        if client_key is not None:
            self.limiter.admit(client_key, DOI_ENDPOINT)
        valid = validate_doi(doi)
        key = create_cache_key(["doi", valid.lower()], CACHE_PREFIX)
        result = await self._registry_lookup(self.crossref, valid, key, use_cache)
        return self._present(result, include_provenance)

    async def scrape_by_isbn(
        self,
        isbn: str,
        use_cache: bool = True,
        client_key: str | None = None,
        include_provenance: bool = False,
    ) -> MetadataResult:
        """Look up an ISBN in Open Library.

        Raises:
            InvalidIdentifierError: Malformed ISBN.
            InvalidChecksumError: Bad check digit.
            RegistryNotFoundError: Unknown ISBN.
        """
        if client_key is not None:
            self.limiter.admit(client_key, ISBN_ENDPOINT)
        valid = validate_isbn(isbn)
        key = create_cache_key(["isbn", valid], CACHE_PREFIX)
        result = await self._registry_lookup(self.openlibrary, valid, key, use_cache)
        return self._present(result, include_provenance)

    async def _registry_lookup(
        self,
        client: BaseRegistryClient,
        identifier: str,
        key: str,
        use_cache: bool,
    ) -> MetadataResult:
        if use_cache:
            cached = await self.cache.get(key)
            if cached is not None:
                logger.debug("%s cache hit for %s", client.name, identifier)
                return cached

        try:
            result = await asyncio.to_thread(client.fetch, identifier)
        except CiteFetchError as e:
            logger.info("%s lookup failed for %s: [%s] %s", client.name, identifier, e.code, e.message)
            raise

        if use_cache:
            await self.cache.set(key, result, self.result_ttl_ms)
        return result

    # Health and stats

    async def check_health(self) -> bool:
        """Whether the browser backend is reachable (connects if needed)."""
        try:
            await self.pool.connect()
        except CiteFetchError as e:
            logger.warning("Browser health check failed: %s", e.message)
            return False
        return self.pool.stats().is_connected

    def get_cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def get_circuit_breaker_stats(self) -> CircuitBreakerStats:
        return self.breaker.stats()

    def get_rate_limiter_stats(self) -> RateLimiterStats:
        return self.limiter.stats()

    def get_pool_stats(self) -> PoolStats:
        return self.pool.stats()

    async def close(self) -> None:
        """Release the browser connection, cache connections and HTTP sessions."""
        await self.pool.close()
        await self.cache.close()
        self.crossref.close()
        self.openlibrary.close()
        logger.info("Scraper service closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def _encode_result(result: MetadataResult) -> str:
    return result.model_dump_json()


def create_scraper_service(
    settings: Settings | None = None,
    resolver: Resolver | None = None,
    connector: Connector | None = None,
) -> ScraperService:
    """Wire a ScraperService from settings.

    Args:
        settings: Loaded settings; read from the environment when None.
        resolver: Optional DNS resolver override for the URL guard.
        connector: Optional browser connector override for the pool.
    """
    if settings is None:
        settings = load_settings()

    l2 = None
    if settings.cache.l2_enabled:
        l2 = RedisCacheStore.from_url(settings.cache.l2_url, prefix=settings.cache.l2_key_prefix)

    browser = settings.browser
    registry = settings.registry
    breaker_config = settings.circuit_breaker
    limits = settings.rate_limit

    return ScraperService(
        guard=UrlGuard(resolver=resolver),
        cache=TieredCache(
            l1_max_items=settings.cache.l1_max_items,
            l1_ttl_ms=settings.cache.l1_ttl_ms,
            l2=l2,
            l2_ttl_ms=settings.cache.l2_ttl_ms,
            encode=_encode_result,
            decode=MetadataResult.model_validate_json,
        ),
        limiter=RateLimiter(
            window_ms=limits.window_ms,
            default_limit=limits.default_limit,
            endpoint_limits=limits.endpoint_limits,
            max_buckets=limits.max_buckets,
        ),
        breaker=CircuitBreaker(
            "browser",
            failure_threshold=breaker_config.failure_threshold,
            cooldown_ms=breaker_config.cooldown_ms,
        ),
        pool=BrowserPool(
            ws_endpoint=browser.ws_endpoint,
            token=browser.token,
            navigation_timeout_ms=browser.navigation_timeout_ms,
            max_sessions=browser.max_concurrent_sessions,
            user_agent=browser.user_agent,
            viewport=(browser.viewport_width, browser.viewport_height),
            blocked_resource_types=browser.blocked_resource_types,
            connector=connector,
        ),
        extractor=MetadataExtractor(),
        crossref=CrossrefClient(
            base_url=registry.crossref_url,
            timeout_s=registry.timeout_s,
            mailto=registry.mailto,
            user_agent=registry.user_agent,
        ),
        openlibrary=OpenLibraryClient(
            base_url=registry.openlibrary_url,
            timeout_s=registry.timeout_s,
            user_agent=registry.user_agent,
        ),
        result_ttl_ms=settings.cache.result_ttl_ms,
        navigation_timeout_ms=browser.navigation_timeout_ms,
    )


__all__ = [
    "ScraperService",
    "create_scraper_service",
]
