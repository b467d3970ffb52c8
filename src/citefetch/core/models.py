"""Core domain models for citefetch."""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class WebPageType(str, Enum):
    """Kind of document a MetadataResult describes."""

    ARTICLE = "article"
    WEBSITE = "website"
    BLOG = "blog"
    NEWS = "news"
    ACADEMIC = "academic"
    UNKNOWN = "unknown"


class ExtractionSource(str, Enum):
    """Which source supplied the title of a MetadataResult."""

    JSON_LD = "json-ld"
    META_TAGS = "meta-tags"
    OG_TAGS = "og-tags"
    TWITTER_TAGS = "twitter-tags"
    HEURISTIC = "heuristic"
    DOCUMENT = "document"
    REGISTRY = "registry"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Author(_CamelModel):
    """A person credited on a work.

    ``full_name`` is authoritative; ``first_name``/``last_name`` are present
    only when the name could be decomposed.
    """

    full_name: str
    first_name: str | None = None
    last_name: str | None = None

    @classmethod
    def from_name(cls, name: str) -> "Author":
        """Split a free-text name on its last whitespace run."""
        name = name.strip()
        parts = name.split()
        if len(parts) < 2:
            return cls(full_name=name)
        return cls(full_name=name, first_name=" ".join(parts[:-1]), last_name=parts[-1])


class MetadataResult(_CamelModel):
    """Bibliographic metadata for one web page, DOI or ISBN."""

    url: str
    title: str
    access_date: str
    authors: tuple[Author, ...] = ()
    published_date: str | None = None
    modified_date: str | None = None
    publisher: str | None = None
    site_name: str | None = None
    description: str | None = None
    language: str | None = None
    type: WebPageType = WebPageType.WEBSITE
    extraction_source: ExtractionSource | None = None

    @field_validator("title")
    @classmethod
    def _title_not_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be empty")
        return value

    def without_provenance(self) -> "MetadataResult":
        """Return a copy with ``extraction_source`` stripped."""
        if self.extraction_source is None:
            return self
        return self.model_copy(update={"extraction_source": None})

    def to_dict(self) -> dict[str, object]:
        """Serialize with camelCase keys, omitting absent fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ScrapeOptions(BaseModel):
    """Per-call options for a URL scrape."""

    timeout_ms: int | None = Field(default=None, gt=0)
    include_provenance: bool = False
    wait_for_selector: str | None = None


class CacheStats(BaseModel):
    """Cumulative cache counters; ``size`` is the current L1 entry count."""

    hits: int = 0
    misses: int = 0
    size: int = 0
    hit_rate: float = 0.0
    l1_hits: int = 0
    l2_hits: int = 0


class CircuitState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class CircuitBreakerStats(BaseModel):
    """Read-only snapshot of a circuit breaker."""

    name: str
    state: CircuitState
    consecutive_failures: int = 0
    last_failure_at: float | None = None
    last_success_at: float | None = None
    opened_at: float | None = None
    next_attempt_at: float | None = None
    total_calls: int = 0
    total_failures: int = 0
    total_successes: int = 0
    total_rejected: int = 0


class AdmissionResult(BaseModel):
    """Outcome of a successful rate limiter admission."""

    limit: int
    remaining: int
    reset_at: float
    scope: str

    def headers(self) -> dict[str, str]:
        """Rate limit headers for the routing layer."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
            "X-RateLimit-Scope": self.scope,
        }


class EndpointCounters(BaseModel):
    """Per-endpoint rate limiter counters."""

    requests: int = 0
    blocked: int = 0


class RateLimiterStats(BaseModel):
    """Aggregate rate limiter counters."""

    total_requests: int = 0
    blocked_requests: int = 0
    active_buckets: int = 0
    by_endpoint: dict[str, EndpointCounters] = Field(default_factory=dict)


class PoolStats(BaseModel):
    """Browser pool occupancy."""

    active_sessions: int
    max_sessions: int
    is_connected: bool


@dataclass
class RateBucket:
    """Fixed-window counter for one client+endpoint key."""

    key: str
    window_start: float
    count: int = 0


__all__ = [
    "WebPageType",
    "ExtractionSource",
    "Author",
    "MetadataResult",
    "ScrapeOptions",
    "CacheStats",
    "CircuitState",
    "CircuitBreakerStats",
    "AdmissionResult",
    "EndpointCounters",
    "RateLimiterStats",
    "PoolStats",
    "RateBucket",
]
