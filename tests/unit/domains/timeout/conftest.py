"""Pytest fixtures for the timeout domain tests.

Time is driven by hand through ``FakeClock``; nothing in these tests
sleeps or starts a thread.
"""

from __future__ import annotations

import itertools
from typing import Callable, Dict, List, Tuple

import pytest

from pkglocal.domains.timeout import (
    TimeoutConfig,
    TimeoutEvent,
    TimerDependencies,
    clear_pattern_cache,
)


class FakeClock:
    """Deterministic clock and timer queue in milliseconds."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self._ids = itertools.count(1)
        self._timers: Dict[int, Tuple[float, int, Callable[[], None]]] = {}
        self.set_calls: List[int] = []

    def time(self) -> float:
        return self.now

    def set_timeout(self, callback: Callable[[], None], delay_ms: int) -> int:
        handle = next(self._ids)
        self._timers[handle] = (self.now + delay_ms, handle, callback)
        self.set_calls.append(delay_ms)
        return handle

    def clear_timeout(self, handle: int) -> None:
        self._timers.pop(handle, None)

    @property
    def pending(self) -> int:
        return len(self._timers)

    def deadlines(self) -> List[float]:
        return sorted(due for due, _, _ in self._timers.values())

    def advance(self, ms: float) -> None:
        """Move time forward, firing due timers in deadline order."""
        target = self.now + ms
        while True:
            due = [entry for entry in self._timers.values() if entry[0] <= target]
            if not due:
                break
            when, handle, callback = min(due)
            del self._timers[handle]
            self.now = when
            callback()
        self.now = target

    def advance_to(self, when: float) -> None:
        self.advance(when - self.now)

    def dependencies(self) -> TimerDependencies:
        return TimerDependencies(
            get_current_time=self.time,
            set_timeout=self.set_timeout,
            clear_timeout=self.clear_timeout,
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def deps(clock: FakeClock) -> TimerDependencies:
    return clock.dependencies()


@pytest.fixture
def basic_config() -> TimeoutConfig:
    """1s primary, 500ms extension and grace, 5s ceiling."""
    return TimeoutConfig(
        base_timeout=1000,
        activity_extension=500,
        grace_timeout=500,
        absolute_maximum=5000,
        progress_patterns=[r"Downloading .+", r"Collecting .+"],
        error_patterns=[r"ERROR: .+"],
    )


@pytest.fixture
def recorded_events() -> List[TimeoutEvent]:
    return []


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Clear timeout-related environment variables and the pattern cache."""
    for name in (
        "DEBUG_SHELL_RPC",
        "DEBUG_TIMEOUT",
        "PKG_LOCAL_TIMEOUT_MULTIPLIER",
        "PKG_LOCAL_TIMEOUT_PROFILES",
        "CI",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_pattern_cache()
    yield
    clear_pattern_cache()
