"""Remote browser session management."""

from .browser_pool import BrowserPool, BrowserSession, build_endpoint

__all__ = ["BrowserPool", "BrowserSession", "build_endpoint"]
