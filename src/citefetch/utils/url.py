"""URL sanitization for citations.

Removes what should never end up in a citation or a cache key: embedded
credentials, fragments and tracking parameters.
"""

import logging
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

TRACKING_PARAM_PREFIXES = ("utm_",)

TRACKING_PARAMS = frozenset(
    {
        "gclid",
        "fbclid",
        "msclkid",
        "twclid",
        "dclid",
        "gbraid",
        "wbraid",
        "igshid",
        "mc_cid",
        "mc_eid",
        "_ga",
        "_gl",
    }
)


@dataclass
class SanitizedUrl:
    """Result of sanitizing a URL, with a record of what was removed."""

    original: str
    sanitized: str
    auth_removed: bool = False
    fragment_removed: bool = False
    tracking_params_removed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.original != self.sanitized


def is_tracking_param(name: str) -> bool:
    """Check whether a query parameter name is a known tracker."""
    lowered = name.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PARAM_PREFIXES)


def sanitize_url_detailed(url: str) -> SanitizedUrl:
    """Strip credentials, fragment and tracking parameters from ``url``.

    Raises:
        ValueError: If the URL cannot be parsed.
    """
    parts = urlsplit(url)
    result = SanitizedUrl(original=url, sanitized=url)

    netloc = parts.netloc
    if "@" in netloc:
        netloc = netloc.rsplit("@", 1)[1]
        result.auth_removed = True
        logger.debug("Removed credentials from URL")

    if parts.fragment or url.endswith("#"):
        result.fragment_removed = True

    query = parts.query
    if query:
        pairs = parse_qsl(query, keep_blank_values=True)
        kept = []
        for key, value in pairs:
            if is_tracking_param(key):
                result.tracking_params_removed.append(key)
            else:
                kept.append((key, value))
        if result.tracking_params_removed:
            query = urlencode(kept)
            logger.debug("Removed tracking params: %s", ", ".join(result.tracking_params_removed))

    path = parts.path or "/"
    result.sanitized = urlunsplit((parts.scheme.lower(), netloc.lower(), path, query, ""))
    return result


def sanitize_url(url: str) -> str:
    """Sanitize ``url``, returning it unchanged if it cannot be parsed."""
    try:
        return sanitize_url_detailed(url).sanitized
    except ValueError:
        return url


__all__ = [
    "SanitizedUrl",
    "TRACKING_PARAMS",
    "is_tracking_param",
    "sanitize_url_detailed",
    "sanitize_url",
]
