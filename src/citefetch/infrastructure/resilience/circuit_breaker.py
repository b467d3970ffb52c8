"""Circuit breaker for the browser automation backend.

closed -> open after ``failure_threshold`` consecutive counted failures.
open -> half-open once ``cooldown_ms`` has passed since the last failure.
half-open admits a single trial call: success closes the circuit, failure
reopens it.
"""

import logging
import threading
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from citefetch.core.exceptions import CircuitOpenError, is_transient
from citefetch.core.models import CircuitBreakerStats, CircuitState
from citefetch.core.protocols import Clock

logger = logging.getLogger(__name__)

T = TypeVar("T")

StateChangeHook = Callable[[CircuitState, CircuitState], None]


class CircuitBreaker:
    """Short-circuit calls to a failing backend.

    Args:
        name: Label used in logs and stats.
        failure_threshold: Consecutive failures that open the circuit.
        cooldown_ms: Time after the last failure before a trial call.
        is_failure: Decides whether an exception counts as a backend failure.
        on_state_change: Optional hook called as ``(new, previous)``.
        clock: Wall-clock source in seconds.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        cooldown_ms: int = 60_000,
        is_failure: Callable[[BaseException], bool] = is_transient,
        on_state_change: StateChangeHook | None = None,
        clock: Clock = time.time,
    ) -> None:
        if failure_threshold <= 0:
            raise ValueError("failure_threshold must be positive")
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown_ms = cooldown_ms
        self._is_failure = is_failure
        self._on_state_change = on_state_change
        self._clock = clock
        self._lock = threading.RLock()

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_at: float | None = None
        self._last_success_at: float | None = None
        self._opened_at: float | None = None
        self._trial_in_flight = False
        self._total_calls = 0
        self._total_failures = 0
        self._total_successes = 0
        self._total_rejected = 0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._refresh_state(self._clock())
            return self._state

    def _next_attempt_at(self) -> float | None:
        if self._state is CircuitState.CLOSED or self._last_failure_at is None:
            return None
        return self._last_failure_at + self.cooldown_ms / 1000

    def _refresh_state(self, now: float) -> None:
        if self._state is CircuitState.OPEN:
            next_attempt = self._next_attempt_at()
            if next_attempt is not None and now >= next_attempt:
                self._transition(CircuitState.HALF_OPEN, now)

    def _transition(self, new_state: CircuitState, now: float) -> None:
        previous = self._state
        if previous is new_state:
            return
        self._state = new_state
        if new_state is CircuitState.OPEN:
            self._opened_at = now
            logger.warning(
                "[CircuitBreaker:%s] %s -> %s (retry in %.1fs)",
                self.name,
                previous.value,
                new_state.value,
                self.cooldown_ms / 1000,
            )
        else:
            if new_state is CircuitState.CLOSED:
                self._opened_at = None
                self._consecutive_failures = 0
            self._trial_in_flight = False
            logger.info("[CircuitBreaker:%s] %s -> %s", self.name, previous.value, new_state.value)

        if self._on_state_change is not None:
            try:
                self._on_state_change(new_state, previous)
            except Exception as exc:
                logger.error("[CircuitBreaker:%s] Error in state change hook: %s", self.name, exc)

    def _admit(self) -> None:
        with self._lock:
            now = self._clock()
            self._total_calls += 1
            self._refresh_state(now)

            if self._state is CircuitState.CLOSED:
                return
            if self._state is CircuitState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                logger.info("[CircuitBreaker:%s] Admitting trial call", self.name)
                return

            self._total_rejected += 1
            next_attempt = self._next_attempt_at() or now
            retry_after = max(0.0, next_attempt - now)

        raise CircuitOpenError(
            f'Circuit breaker "{self.name}" is open. Try again in {retry_after:.0f}s.',
            retry_after=retry_after,
        )

    def _record_success(self) -> None:
        with self._lock:
            now = self._clock()
            self._total_successes += 1
            self._last_success_at = now
            if self._state is CircuitState.HALF_OPEN:
                self._transition(CircuitState.CLOSED, now)
            else:
                self._consecutive_failures = 0

    def _record_failure(self, exc: BaseException) -> None:
        with self._lock:
            now = self._clock()
            self._total_failures += 1
            self._consecutive_failures += 1
            self._last_failure_at = now
            logger.debug("[CircuitBreaker:%s] Failure recorded: %s", self.name, exc)

            if self._state is CircuitState.HALF_OPEN:
                self._trial_in_flight = False
                self._transition(CircuitState.OPEN, now)
            elif self._consecutive_failures >= self.failure_threshold:
                self._transition(CircuitState.OPEN, now)

    def _record_ignored(self) -> None:
        # Non-counted outcome of a trial call: let the next caller try again
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._trial_in_flight = False

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Await ``fn(*args, **kwargs)`` through the breaker.

        Raises:
            CircuitOpenError: Circuit is open (or a trial call is in flight).
        """
        self._admit()
        try:
            result = await fn(*args, **kwargs)
        except BaseException as exc:
            if isinstance(exc, Exception) and self._is_failure(exc):
                self._record_failure(exc)
            else:
                self._record_ignored()
            raise
        self._record_success()
        return result

    def reset(self) -> None:
        """Force the breaker closed and zero every counter."""
        with self._lock:
            logger.info("[CircuitBreaker:%s] Resetting", self.name)
            self._transition(CircuitState.CLOSED, self._clock())
            self._consecutive_failures = 0
            self._last_failure_at = None
            self._total_calls = 0
            self._total_failures = 0
            self._total_successes = 0
            self._total_rejected = 0

    def stats(self) -> CircuitBreakerStats:
        """Read-only snapshot (the open -> half-open transition is reported, not applied)."""
        with self._lock:
            now = self._clock()
            state = self._state
            next_attempt = self._next_attempt_at()
            if state is CircuitState.OPEN and next_attempt is not None and now >= next_attempt:
                state = CircuitState.HALF_OPEN
            return CircuitBreakerStats(
                name=self.name,
                state=state,
                consecutive_failures=self._consecutive_failures,
                last_failure_at=self._last_failure_at,
                last_success_at=self._last_success_at,
                opened_at=self._opened_at,
                next_attempt_at=next_attempt,
                total_calls=self._total_calls,
                total_failures=self._total_failures,
                total_successes=self._total_successes,
                total_rejected=self._total_rejected,
            )


__all__ = ["CircuitBreaker", "StateChangeHook"]
