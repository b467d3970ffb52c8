"""Fixed-window, per-endpoint rate limiter.

Buckets are keyed by client identity plus endpoint. Memory is bounded by a
sweep of expired buckets (at most once per window) and a hard cap on the
number of tracked buckets.
"""

import logging
import threading
import time
from collections.abc import Mapping

from citefetch.core.exceptions import RateLimitedError
from citefetch.core.models import AdmissionResult, EndpointCounters, RateBucket, RateLimiterStats
from citefetch.core.protocols import Clock

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


def client_identity(headers: Mapping[str, str]) -> str:
    """Derive a client key from proxy headers.

    Precedence: ``cf-connecting-ip``, first ``x-forwarded-for`` hop,
    ``x-real-ip``, then ``"unknown"``. These headers are caller-controlled
    unless a trusted proxy overwrites them, so the result is a hint for
    bucketing and not an authenticated identity.
    """
    lowered = {k.lower(): v for k, v in headers.items()}

    cf = (lowered.get("cf-connecting-ip") or "").strip()
    if cf:
        return cf

    xff = lowered.get("x-forwarded-for") or ""
    first = xff.split(",")[0].strip()
    if first:
        return first

    real = (lowered.get("x-real-ip") or "").strip()
    if real:
        return real

    return UNKNOWN_CLIENT


class RateLimiter:
    """Fixed-window request counter per (client, endpoint).

    Args:
        window_ms: Window length in milliseconds.
        default_limit: Limit for endpoints not in ``endpoint_limits``.
        endpoint_limits: Path suffix -> requests per window.
        max_buckets: Upper bound on tracked buckets.
        clock: Wall-clock source in seconds.
    """

    def __init__(
        self,
        window_ms: int = 60_000,
        default_limit: int = 30,
        endpoint_limits: Mapping[str, int] | None = None,
        max_buckets: int = 10_000,
        clock: Clock = time.time,
    ) -> None:
        if max_buckets <= 0:
            raise ValueError("max_buckets must be positive")
        self.window_ms = window_ms
        self.default_limit = default_limit
        self.endpoint_limits = dict(endpoint_limits or {})
        self.max_buckets = max_buckets
        self._clock = clock

        self._buckets: dict[str, RateBucket] = {}
        self._lock = threading.Lock()
        self._last_sweep_at = 0.0

        self._total_requests = 0
        self._blocked_requests = 0
        self._by_endpoint: dict[str, EndpointCounters] = {}

    @property
    def window_s(self) -> float:
        return self.window_ms / 1000

    def limit_for(self, endpoint: str) -> int:
        """Configured limit for ``endpoint`` (suffix match), else the default."""
        for suffix, limit in self.endpoint_limits.items():
            if endpoint.endswith(suffix):
                return limit
        return self.default_limit

    def admit(self, client_key: str, endpoint: str) -> AdmissionResult:
        """Count one request and admit or reject it.

        Raises:
            RateLimitedError: The window budget for this key is exhausted.
        """
        limit = self.limit_for(endpoint)
        key = f"{client_key}:{endpoint}"

        with self._lock:
            now = self._clock()
            self._total_requests += 1
            counters = self._by_endpoint.setdefault(endpoint, EndpointCounters())
            counters.requests += 1

            self._maybe_sweep(now)

            bucket = self._buckets.get(key)
            if bucket is None or now >= bucket.window_start + self.window_s:
                if bucket is None:
                    self._make_room()
                bucket = RateBucket(key=key, window_start=now)
                self._buckets[key] = bucket

            bucket.count += 1
            reset_at = bucket.window_start + self.window_s
            remaining = max(0, limit - bucket.count)

            if bucket.count > limit:
                self._blocked_requests += 1
                counters.blocked += 1
                blocked = True
            else:
                blocked = False

        if blocked:
            logger.info("Rate limited %s for %s (limit: %d)", endpoint, client_key, limit)
            raise RateLimitedError(
                "Too many requests. Please try again shortly.",
                limit=limit,
                reset_at=reset_at,
                retry_after=max(0.0, reset_at - now),
            )

        logger.debug("Admitted %s for %s (%d remaining)", endpoint, client_key, remaining)
        return AdmissionResult(limit=limit, remaining=remaining, reset_at=reset_at, scope=endpoint)

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep_at <= self.window_s:
            return
        expired = [k for k, b in self._buckets.items() if now >= b.window_start + self.window_s]
        for k in expired:
            del self._buckets[k]
        self._last_sweep_at = now
        if expired:
            logger.debug("Swept %d expired rate limit buckets", len(expired))

    def _make_room(self) -> None:
        # dicts iterate in insertion order, so this drops the oldest buckets
        while len(self._buckets) >= self.max_buckets:
            oldest = next(iter(self._buckets))
            del self._buckets[oldest]

    def stats(self) -> RateLimiterStats:
        """Snapshot of global and per-endpoint counters."""
        with self._lock:
            return RateLimiterStats(
                total_requests=self._total_requests,
                blocked_requests=self._blocked_requests,
                active_buckets=len(self._buckets),
                by_endpoint={k: v.model_copy() for k, v in self._by_endpoint.items()},
            )


__all__ = [
    "RateLimiter",
    "client_identity",
    "UNKNOWN_CLIENT",
]
