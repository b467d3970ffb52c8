"""Core domain models and interfaces."""

from .models import (
    Author,
    CacheStats,
    CircuitBreakerStats,
    CircuitState,
    ExtractionSource,
    MetadataResult,
    PoolStats,
    RateLimiterStats,
    ScrapeOptions,
    WebPageType,
)
from .protocols import CacheStore, Clock, Resolver
from .exceptions import (
    CiteFetchError,
    ConfigurationError,
    InputError,
    CapacityError,
    BackendError,
    ExtractionFailedError,
)

__all__ = [
    # Models
    "Author",
    "CacheStats",
    "CircuitBreakerStats",
    "CircuitState",
    "ExtractionSource",
    "MetadataResult",
    "PoolStats",
    "RateLimiterStats",
    "ScrapeOptions",
    "WebPageType",
    # Protocols
    "CacheStore",
    "Clock",
    "Resolver",
    # Exceptions
    "CiteFetchError",
    "ConfigurationError",
    "InputError",
    "CapacityError",
    "BackendError",
    "ExtractionFailedError",
]
