"""Tests for the circuit breaker."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from citefetch.core.exceptions import (
    CircuitOpenError,
    FetchFailedError,
    PageNotFoundError,
    PoolExhaustedError,
)
from citefetch.core.models import CircuitState
from citefetch.infrastructure.resilience.circuit_breaker import CircuitBreaker


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


async def fail():
    raise FetchFailedError("backend down")


async def succeed(value="ok"):
    return value


def trip(breaker, times):
    for _ in range(times):
        with pytest.raises(FetchFailedError):
            run_async(breaker.call(fail))


class TestClosed:
    def test_passes_results_through(self):
        breaker = CircuitBreaker("test")
        assert run_async(breaker.call(succeed, "value")) == "value"
        assert breaker.state is CircuitState.CLOSED

    def test_stays_closed_below_threshold(self):
        breaker = CircuitBreaker("test", failure_threshold=3)
        trip(breaker, 2)
        assert breaker.state is CircuitState.CLOSED
        assert breaker.stats().consecutive_failures == 2

    def test_success_resets_streak(self):
        breaker = CircuitBreaker("test", failure_threshold=3)
        trip(breaker, 2)
        run_async(breaker.call(succeed))
        trip(breaker, 2)
        assert breaker.state is CircuitState.CLOSED

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            CircuitBreaker("test", failure_threshold=0)


class TestOpen:
    def setup_method(self):
        self.clock = FakeClock()
        self.breaker = CircuitBreaker("test", failure_threshold=3, cooldown_ms=10_000, clock=self.clock)

    def test_opens_at_threshold(self):
        trip(self.breaker, 3)
        assert self.breaker.state is CircuitState.OPEN

    def test_open_circuit_does_not_call_backend(self):
        trip(self.breaker, 3)
        backend = AsyncMock(return_value="ok")

        with pytest.raises(CircuitOpenError) as exc_info:
            run_async(self.breaker.call(backend))

        backend.assert_not_called()
        assert exc_info.value.retry_after == pytest.approx(10.0)
        assert exc_info.value.status == 503
        assert self.breaker.stats().total_rejected == 1

    def test_retry_after_counts_down(self):
        trip(self.breaker, 3)
        self.clock.advance(4)
        with pytest.raises(CircuitOpenError) as exc_info:
            run_async(self.breaker.call(succeed))
        assert exc_info.value.retry_after == pytest.approx(6.0)


class TestHalfOpen:
    def setup_method(self):
        self.clock = FakeClock()
        self.breaker = CircuitBreaker("test", failure_threshold=2, cooldown_ms=5_000, clock=self.clock)
        trip(self.breaker, 2)
        self.clock.advance(5)

    def test_half_open_after_cooldown(self):
        assert self.breaker.state is CircuitState.HALF_OPEN

    def test_trial_success_closes(self):
        assert run_async(self.breaker.call(succeed)) == "ok"

        stats = self.breaker.stats()
        assert stats.state is CircuitState.CLOSED
        assert stats.consecutive_failures == 0
        assert stats.opened_at is None

    def test_trial_failure_reopens(self):
        with pytest.raises(FetchFailedError):
            run_async(self.breaker.call(fail))

        assert self.breaker.state is CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            run_async(self.breaker.call(succeed))

    def test_single_trial_admitted(self):
        async def scenario():
            release = asyncio.Event()
            calls = []

            async def slow():
                calls.append(1)
                await release.wait()
                return "trial"

            first = asyncio.create_task(self.breaker.call(slow))
            await asyncio.sleep(0)
            with pytest.raises(CircuitOpenError):
                await self.breaker.call(slow)
            release.set()
            return await first, calls

        result, calls = run_async(scenario())
        assert result == "trial"
        assert len(calls) == 1
        assert self.breaker.state is CircuitState.CLOSED


class TestFailurePredicate:
    def test_not_found_does_not_count(self):
        breaker = CircuitBreaker("test", failure_threshold=1)

        async def missing():
            raise PageNotFoundError("gone")

        with pytest.raises(PageNotFoundError):
            run_async(breaker.call(missing))
        assert breaker.state is CircuitState.CLOSED
        assert breaker.stats().total_failures == 0

    def test_capacity_errors_do_not_count(self):
        breaker = CircuitBreaker("test", failure_threshold=1)

        async def busy():
            raise PoolExhaustedError("busy")

        with pytest.raises(PoolExhaustedError):
            run_async(breaker.call(busy))
        assert breaker.state is CircuitState.CLOSED

    def test_unexpected_errors_count(self):
        breaker = CircuitBreaker("test", failure_threshold=1)

        async def boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            run_async(breaker.call(boom))
        assert breaker.state is CircuitState.OPEN

    def test_ignored_trial_frees_the_slot(self):
        clock = FakeClock()
        breaker = CircuitBreaker("test", failure_threshold=1, cooldown_ms=1_000, clock=clock)
        trip(breaker, 1)
        clock.advance(1)

        async def missing():
            raise PageNotFoundError("gone")

        with pytest.raises(PageNotFoundError):
            run_async(breaker.call(missing))
        assert run_async(breaker.call(succeed)) == "ok"
        assert breaker.state is CircuitState.CLOSED


class TestHooksAndStats:
    def test_state_change_hook(self):
        clock = FakeClock()
        hook = MagicMock()
        breaker = CircuitBreaker("test", failure_threshold=1, cooldown_ms=1_000, on_state_change=hook, clock=clock)

        trip(breaker, 1)
        clock.advance(1)
        run_async(breaker.call(succeed))

        transitions = [call.args for call in hook.call_args_list]
        assert transitions == [
            (CircuitState.OPEN, CircuitState.CLOSED),
            (CircuitState.HALF_OPEN, CircuitState.OPEN),
            (CircuitState.CLOSED, CircuitState.HALF_OPEN),
        ]

    def test_hook_errors_are_ignored(self):
        breaker = CircuitBreaker("test", failure_threshold=1, on_state_change=MagicMock(side_effect=RuntimeError))
        trip(breaker, 1)
        assert breaker.state is CircuitState.OPEN

    def test_stats_counters(self):
        clock = FakeClock()
        breaker = CircuitBreaker("browser", failure_threshold=2, cooldown_ms=1_000, clock=clock)
        run_async(breaker.call(succeed))
        trip(breaker, 2)
        with pytest.raises(CircuitOpenError):
            run_async(breaker.call(succeed))

        stats = breaker.stats()
        assert stats.name == "browser"
        assert stats.state is CircuitState.OPEN
        assert stats.total_calls == 4
        assert stats.total_successes == 1
        assert stats.total_failures == 2
        assert stats.total_rejected == 1
        assert stats.last_failure_at == 1_000.0
        assert stats.next_attempt_at == 1_001.0

    def test_stats_reports_half_open_without_transition(self):
        clock = FakeClock()
        hook = MagicMock()
        breaker = CircuitBreaker("test", failure_threshold=1, cooldown_ms=1_000, on_state_change=hook, clock=clock)
        trip(breaker, 1)
        clock.advance(2)

        assert breaker.stats().state is CircuitState.HALF_OPEN
        assert hook.call_count == 1

    def test_reset(self):
        breaker = CircuitBreaker("test", failure_threshold=1)
        trip(breaker, 1)
        breaker.reset()

        stats = breaker.stats()
        assert stats.state is CircuitState.CLOSED
        assert stats.total_calls == 0
        assert stats.total_failures == 0
