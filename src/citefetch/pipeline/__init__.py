"""Acquisition pipelines."""

from .scrape import ScraperService, create_scraper_service

__all__ = ["ScraperService", "create_scraper_service"]
