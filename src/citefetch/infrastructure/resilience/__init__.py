"""Admission control and failure isolation."""

from .circuit_breaker import CircuitBreaker
from .rate_limiter import RateLimiter, client_identity

__all__ = [
    "CircuitBreaker",
    "RateLimiter",
    "client_identity",
]
