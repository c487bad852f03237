"""Tests for the injectable clocks."""

from datetime import datetime, timezone

import pytest

from plan_kernel.domain.clock import DEFAULT_TEST_TIME, DeterministicClock, SystemClock


def test_system_clock_is_utc_aware():
    assert SystemClock().now().tzinfo is not None


def test_deterministic_clock_is_stable():
    clock = DeterministicClock()
    assert clock.now() == clock.now() == datetime(2024, 7, 1, 9, 0, tzinfo=timezone.utc)


def test_deterministic_clock_advance_and_tick():
    clock = DeterministicClock()
    start = clock.now()
    clock.advance(30)
    assert (clock.now() - start).total_seconds() == 30
    assert (clock.tick() - start).total_seconds() == 31


def test_deterministic_clock_set_time():
    clock = DeterministicClock()
    clock.advance(10)
    target = datetime(2025, 1, 1, tzinfo=timezone.utc)
    clock.set_time(target)
    assert clock.now() == target


def test_deterministic_clock_rejects_naive_times():
    with pytest.raises(ValueError):
        DeterministicClock(datetime(2024, 7, 1))
    clock = DeterministicClock()
    with pytest.raises(ValueError):
        clock.set_time(datetime(2025, 1, 1))
    assert clock.now() == DEFAULT_TEST_TIME
