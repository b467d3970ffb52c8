"""Shared utilities."""

from .logging import setup_logging, get_logger
from .datetime import utc_now, utc_now_iso, normalize_date, format_date_parts, extract_year
from .text import clean_text, clean_html
from .url import sanitize_url, sanitize_url_detailed

__all__ = [
    "setup_logging",
    "get_logger",
    "utc_now",
    "utc_now_iso",
    "normalize_date",
    "format_date_parts",
    "extract_year",
    "clean_text",
    "clean_html",
    "sanitize_url",
    "sanitize_url_detailed",
]
