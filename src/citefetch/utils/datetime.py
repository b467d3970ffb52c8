"""DateTime utilities for citefetch."""

import re
from datetime import datetime, timezone

_YEAR_RE = re.compile(r"\b(1[0-9]{3}|20[0-9]{2})\b")


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string with millisecond precision."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ensure_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is timezone-aware."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def normalize_date(value: str | None) -> str | None:
    """Normalize a loosely formatted date to ISO 8601.

    Returns None when the value cannot be parsed.
    """
    if not value:
        return None
    value = value.strip()
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        for fmt in ("%Y-%m-%d", "%B %d, %Y", "%b %d, %Y", "%d %B %Y", "%Y/%m/%d"):
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue
        else:
            return None
    return ensure_aware(parsed).astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def format_date_parts(parts: list[int] | None) -> str | None:
    """Format a Crossref ``date-parts`` entry as YYYY[-MM[-DD]]."""
    if not parts or not parts[0]:
        return None
    year, *rest = parts
    out = [f"{year:04d}"]
    for value in rest[:2]:
        if not value:
            break
        out.append(f"{value:02d}")
    return "-".join(out)


def extract_year(value: str | None) -> str | None:
    """Pull a four digit year out of free text such as ``"March 2004"``."""
    if not value:
        return None
    match = _YEAR_RE.search(value)
    return match.group(1) if match else None


__all__ = [
    "utc_now",
    "utc_now_iso",
    "ensure_aware",
    "normalize_date",
    "format_date_parts",
    "extract_year",
]
