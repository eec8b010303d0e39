"""Timer and clock primitives for the resilient timeout.

The state machine never touches a system timer directly. It receives a
``TimerDependencies`` triple (clock, schedule, cancel) so tests can drive
time by hand and hosts can choose between the asyncio event loop and
plain threads.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], None]


def monotonic_ms() -> float:
    """Monotonic clock reading in milliseconds."""
    return time.monotonic() * 1000.0


@dataclass(frozen=True)
class TimerDependencies:
    """Clock and timer functions used by a ResilientTimeout.

    Attributes:
        get_current_time: Returns the current time in milliseconds.
        set_timeout: Schedules ``callback`` after ``delay_ms`` and returns
            an opaque handle.
        clear_timeout: Cancels a handle returned by ``set_timeout``.
            Cancelling an already-fired handle must be harmless.
    """
    get_current_time: Callable[[], float]
    set_timeout: Callable[[TimerCallback, int], Any]
    clear_timeout: Callable[[Any], None]

    def merged(
        self,
        get_current_time: Optional[Callable[[], float]] = None,
        set_timeout: Optional[Callable[[TimerCallback, int], Any]] = None,
        clear_timeout: Optional[Callable[[Any], None]] = None,
    ) -> "TimerDependencies":
        """Replace only the functions that were supplied."""
        return TimerDependencies(
            get_current_time=get_current_time or self.get_current_time,
            set_timeout=set_timeout or self.set_timeout,
            clear_timeout=clear_timeout or self.clear_timeout,
        )


def asyncio_timer_dependencies(
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> TimerDependencies:
    """Timers scheduled on an asyncio event loop.

    Callbacks run on the loop thread, so an owner that also feeds output
    from that loop never sees concurrent calls.
    """
    event_loop = loop or asyncio.get_running_loop()

    def set_timeout(callback: TimerCallback, delay_ms: int) -> asyncio.TimerHandle:
        return event_loop.call_later(delay_ms / 1000.0, callback)

    def clear_timeout(handle: asyncio.TimerHandle) -> None:
        handle.cancel()

    return TimerDependencies(
        get_current_time=monotonic_ms,
        set_timeout=set_timeout,
        clear_timeout=clear_timeout,
    )


def threading_timer_dependencies() -> TimerDependencies:
    """Timers backed by daemon ``threading.Timer`` objects.

    Callbacks fire on timer threads; the owner is responsible for
    serializing them with its own calls.
    """

    def set_timeout(callback: TimerCallback, delay_ms: int) -> threading.Timer:
        timer = threading.Timer(delay_ms / 1000.0, callback)
        timer.daemon = True
        timer.start()
        return timer

    def clear_timeout(handle: threading.Timer) -> None:
        handle.cancel()

    return TimerDependencies(
        get_current_time=monotonic_ms,
        set_timeout=set_timeout,
        clear_timeout=clear_timeout,
    )


def default_timer_dependencies() -> TimerDependencies:
    """Pick the event loop when one is running, threads otherwise."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.debug("No running event loop; using threading timers")
        return threading_timer_dependencies()
    return asyncio_timer_dependencies(loop)
