"""Browser session pool on a remote headless Chrome.

Features:
- One shared CDP connection, opened lazily and single-flight
- Hard cap on leased sessions (rejects instead of queueing)
- Per-session context with fixed user agent and viewport
- Image, media and font requests aborted
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from citefetch.core.exceptions import BrowserConnectionError, CiteFetchError, PoolExhaustedError
from citefetch.core.models import PoolStats

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; CiteFetch/1.0; +https://citegenerator.org)"
DEFAULT_VIEWPORT = (1280, 800)
DEFAULT_BLOCKED_RESOURCE_TYPES = ("image", "media", "font")

# endpoint -> connected browser handle
Connector = Callable[[str], Awaitable[Any]]


@dataclass
class BrowserSession:
    """A leased page and the browser context that owns it."""

    page: Any
    context: Any
    generation: int
    released: bool = False


def build_endpoint(ws_endpoint: str, token: str | None) -> str:
    """Append the browserless ``token`` query parameter when one is set."""
    if not token:
        return ws_endpoint
    sep = "&" if "?" in ws_endpoint else "?"
    return f"{ws_endpoint}{sep}{urlencode({'token': token})}"


class BrowserPool:
    """Bounded pool of browser sessions over one shared connection.

    Args:
        ws_endpoint: WebSocket endpoint of the browser backend.
        token: Optional backend token, sent as a query parameter.
        navigation_timeout_ms: Default timeout applied to each page.
        max_sessions: Maximum concurrently leased sessions.
        user_agent: User agent for every session.
        viewport: (width, height) for every session.
        blocked_resource_types: Resource types aborted by request routing.
        connector: Opens the backend connection; defaults to Playwright CDP.
    """

    def __init__(
        self,
        ws_endpoint: str,
        token: str | None = None,
        navigation_timeout_ms: int = 30_000,
        max_sessions: int = 5,
        user_agent: str = DEFAULT_USER_AGENT,
        viewport: tuple[int, int] = DEFAULT_VIEWPORT,
        blocked_resource_types: Iterable[str] = DEFAULT_BLOCKED_RESOURCE_TYPES,
        connector: Connector | None = None,
    ):
        if max_sessions <= 0:
            raise ValueError("max_sessions must be positive")
        self.ws_endpoint = ws_endpoint
        self.token = token
        self.navigation_timeout_ms = navigation_timeout_ms
        self.max_sessions = max_sessions
        self.user_agent = user_agent
        self.viewport = viewport
        self.blocked_resource_types = frozenset(blocked_resource_types)
        self._connector = connector or self._connect_playwright

        self._playwright = None
        self._browser = None
        self._connecting: asyncio.Task | None = None
        self._active = 0
        # Bumped on every reset so sessions from a dead connection don't free new slots
        self._generation = 0

    async def _connect_playwright(self, endpoint: str):
        from playwright.async_api import async_playwright

        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return await self._playwright.chromium.connect_over_cdp(
            endpoint, timeout=self.navigation_timeout_ms
        )

    def _check_connection(self) -> bool:
        """Detect a dropped connection and reset pool state."""
        if self._browser is not None and not self._browser.is_connected():
            logger.warning("Browser connection lost, resetting pool (%d sessions dropped)", self._active)
            self._browser = None
            self._active = 0
            self._generation += 1
        return self._browser is not None

    async def _open(self):
        logger.info("Connecting to browser backend at %s", self.ws_endpoint)
        try:
            browser = await self._connector(build_endpoint(self.ws_endpoint, self.token))
        except CiteFetchError:
            raise
        except Exception as e:
            logger.warning("Browser connection failed: %s", e)
            raise BrowserConnectionError("Failed to connect to browser service", details=str(e)) from e
        self._browser = browser
        logger.info("Connected to browser backend")
        return browser

    async def connect(self):
        """Return the shared browser, connecting if needed.

        Concurrent callers share one in-flight connection attempt.

        Raises:
            BrowserConnectionError: Backend unreachable.
        """
        if self._check_connection():
            return self._browser

        if self._connecting is None:
            self._connecting = asyncio.ensure_future(self._open())
            self._connecting.add_done_callback(self._connect_done)
        return await asyncio.shield(self._connecting)

    def _connect_done(self, task: asyncio.Future) -> None:
        # Runs even when every waiter was cancelled
        if self._connecting is task:
            self._connecting = None
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Browser connection attempt failed: %s", task.exception())

    async def acquire(self) -> BrowserSession:
        """Lease a new session.

        Raises:
            PoolExhaustedError: All sessions are leased.
            BrowserConnectionError: Backend unreachable or session setup failed.
        """
        self._check_connection()
        if self._active >= self.max_sessions:
            raise PoolExhaustedError(
                "Too many concurrent scraping requests. Please try again later.",
                details=f"{self._active}/{self.max_sessions} sessions in use",
                retry_after=1.0,
            )
        # Reserve before any await so concurrent acquires cannot overshoot
        self._active += 1
        generation = self._generation

        context = None
        try:
            browser = await self.connect()
            context = await browser.new_context(
                user_agent=self.user_agent,
                viewport={"width": self.viewport[0], "height": self.viewport[1]},
            )
            page = await context.new_page()
            page.set_default_timeout(self.navigation_timeout_ms)
            if self.blocked_resource_types:
                await page.route("**/*", self._route)
        except BaseException as e:
            self._free_slot(generation)
            if context is not None:
                try:
                    await context.close()
                except Exception as close_error:
                    logger.debug("Error closing context after failed acquire: %s", close_error)
            if isinstance(e, Exception) and not isinstance(e, CiteFetchError):
                raise BrowserConnectionError("Failed to create browser session", details=str(e)) from e
            raise

        logger.debug("Session acquired (%d/%d)", self._active, self.max_sessions)
        return BrowserSession(page=page, context=context, generation=generation)

    async def _route(self, route) -> None:
        if route.request.resource_type in self.blocked_resource_types:
            await route.abort()
        else:
            await route.continue_()

    def _free_slot(self, generation: int) -> None:
        if generation == self._generation and self._active > 0:
            self._active -= 1

    async def release(self, session: BrowserSession) -> None:
        """Close a session and free its slot. Safe to call more than once."""
        if session.released:
            return
        session.released = True
        try:
            await session.page.close()
            await session.context.close()
        except Exception as e:
            logger.warning("Error closing browser session: %s", e)
        finally:
            self._free_slot(session.generation)
            logger.debug("Session released (%d/%d)", self._active, self.max_sessions)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[BrowserSession]:
        """Lease a session for the duration of an ``async with`` block."""
        leased = await self.acquire()
        try:
            yield leased
        finally:
            await self.release(leased)

    def stats(self) -> PoolStats:
        connected = self._check_connection()
        return PoolStats(
            active_sessions=self._active,
            max_sessions=self.max_sessions,
            is_connected=connected,
        )

    async def close(self) -> None:
        """Drop the backend connection and reset the pool."""
        if self._connecting is not None and not self._connecting.done():
            self._connecting.cancel()
        self._connecting = None
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug("Error closing browser: %s", e)
            self._browser = None
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug("Error stopping playwright: %s", e)
            self._playwright = None
        self._active = 0
        self._generation += 1
        logger.info("Browser pool closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


__all__ = [
    "BrowserPool",
    "BrowserSession",
    "Connector",
    "build_endpoint",
    "DEFAULT_USER_AGENT",
]
