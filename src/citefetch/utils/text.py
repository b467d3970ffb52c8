"""Text processing utilities for citefetch."""

import html
import re

_WS_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[^>]+>")


def clean_text(value: str | None) -> str | None:
    """Collapse whitespace; empty strings become None."""
    if not value:
        return None
    text = _WS_RE.sub(" ", value).strip()
    return text or None


def clean_html(value: str | None, max_len: int | None = None) -> str | None:
    """Strip HTML/JATS tags from a string and optionally truncate it."""
    if not value:
        return None
    text = html.unescape(value)
    text = _TAG_RE.sub(" ", text)
    text = _WS_RE.sub(" ", text).strip()
    if max_len is not None:
        text = text[:max_len]
    return text or None


__all__ = [
    "clean_text",
    "clean_html",
]
