"""Shell-RPC Timeout Domain Aggregates.

ResilientTimeout is the aggregate root of the timeout bounded context. It
owns a TimeoutState and a TimeoutStats exclusively and implements the
two-stage timeout algorithm:

    ACTIVE --primary timer--> GRACE --grace timer--> EXPIRED
      ^                         |
      +------- any output ------+

An absolute timer armed once at construction bounds the total run time no
matter how much activity arrives. Error pattern matches terminate
immediately from either live stage.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from .entities import TimeoutState, TimeoutStats
from .errors import TimeoutConfigurationError
from .events import TimeoutEvent, TimeoutEventType
from .patterns import PatternMatcher
from .timers import TimerDependencies, TimerCallback, default_timer_dependencies
from .value_objects import (
    PatternActionType,
    TerminationReason,
    TimeoutConfig,
    TimeoutStage,
    TimerType,
)

logger = logging.getLogger(__name__)

EventListener = Callable[[TimeoutEvent], None]
TimeoutListener = Callable[[Union[TerminationReason, str]], None]

# Activity payloads are truncated in events unless debug is enabled
ACTIVITY_PREVIEW_CHARS = 100


class ResilientTimeout:
    """Two-stage timeout state machine for one running command.

    The owner feeds output chunks through ``process_output`` and is told
    about termination through ``on_timeout`` listeners; killing the
    process is the owner's job. All mutating calls must come from a single
    owner: there is no internal locking.

    Tie-break: when the primary or grace timer fires at or after the
    absolute deadline, the absolute maximum wins.

    Args:
        config: Validated before anything else is touched.
        dependencies: Clock and timer primitives. Defaults to the running
            asyncio loop, or threading timers when no loop is running.
        get_current_time, set_timeout, clear_timeout: Override individual
            primitives of ``dependencies``.
        on_event: Listener registered before the initial timers are armed,
            so it sees the construction events.
        on_timeout: Termination listener registered at construction.

    Raises:
        TimeoutConfigurationError: If the configuration has any error.

    Examples:
        >>> timeout = ResilientTimeout(config, on_timeout=lambda r: proc.kill())
        >>> for chunk in stream:
        ...     timeout.process_output(chunk)
        >>> timeout.cleanup()
    """

    def __init__(
        self,
        config: TimeoutConfig,
        dependencies: Optional[TimerDependencies] = None,
        *,
        get_current_time: Optional[Callable[[], float]] = None,
        set_timeout: Optional[Callable[[TimerCallback, int], Any]] = None,
        clear_timeout: Optional[Callable[[Any], None]] = None,
        on_event: Optional[EventListener] = None,
        on_timeout: Optional[TimeoutListener] = None,
    ) -> None:
        if not isinstance(config, TimeoutConfig):
            raise TypeError(
                f"config must be a TimeoutConfig, got {type(config).__name__}"
            )

        self.config = self._validate_config(config)
        self._debug = config.debug
        self._pattern_matcher = PatternMatcher(self.config)

        base_deps = dependencies or default_timer_dependencies()
        self._deps = base_deps.merged(get_current_time, set_timeout, clear_timeout)

        self._event_listeners: List[EventListener] = []
        self._timeout_listeners: List[TimeoutListener] = []
        if on_event is not None:
            self._event_listeners.append(on_event)
        if on_timeout is not None:
            self._timeout_listeners.append(on_timeout)

        now = self._deps.get_current_time()
        self._state = TimeoutState(
            stage=TimeoutStage.ACTIVE,
            last_activity=now,
            start_time=now,
        )
        self._stats = TimeoutStats()
        self._has_received_activity = False
        self._disposed = False

        # Incremented on every (re)arm so late callbacks from cancelled
        # timers can recognize themselves as stale.
        self._primary_generation = 0
        self._grace_generation = 0

        self._start()

    # ------------------------------------------------------------------
    # Listener registration
    # ------------------------------------------------------------------

    def on_event(self, listener: EventListener) -> EventListener:
        """Register a listener for every TimeoutEvent."""
        self._event_listeners.append(listener)
        return listener

    def on_timeout(self, listener: TimeoutListener) -> TimeoutListener:
        """Register a listener called once with the termination reason."""
        self._timeout_listeners.append(listener)
        return listener

    def remove_listener(self, listener: Callable[..., None]) -> None:
        if listener in self._event_listeners:
            self._event_listeners.remove(listener)
        if listener in self._timeout_listeners:
            self._timeout_listeners.remove(listener)

    def remove_all_listeners(self) -> None:
        self._event_listeners.clear()
        self._timeout_listeners.clear()

    # ------------------------------------------------------------------
    # Owner-facing operations
    # ------------------------------------------------------------------

    def process_output(self, data: str) -> None:
        """Feed one output chunk into the state machine.

        Returns immediately. Once terminated or disposed the call is a
        silent no-op.
        """
        if self._state.terminated or self._disposed:
            return

        started = self._deps.get_current_time()

        self._emit(
            TimeoutEventType.ACTIVITY,
            data=data if self._debug else data[:ACTIVITY_PREVIEW_CHARS],
        )

        action = self._pattern_matcher.process_output(data)

        if action.action == PatternActionType.TERMINATE:
            self._stats.pattern_matches["error"] += 1
            self._emit(
                TimeoutEventType.PATTERN_MATCH,
                pattern=action.pattern_source,
                reason="error_pattern_matched",
            )
            self._terminate(TerminationReason.ERROR_DETECTED)

        elif action.action == PatternActionType.RESET:
            self._stats.pattern_matches["progress"] += 1
            self._emit(
                TimeoutEventType.PATTERN_MATCH,
                pattern=action.pattern_source,
                reason="progress_pattern_matched",
            )
            self._has_received_activity = True
            if self._state.stage == TimeoutStage.GRACE:
                self._recover_from_grace()
            else:
                self._transition_to_active(self.config.base_timeout, "progress_reset")

        else:
            self._handle_regular_activity()

        now = self._deps.get_current_time()
        self._state.last_activity = now
        self._stats.record_processing_time(now - started)

    def terminate(
        self,
        reason: Union[TerminationReason, str] = TerminationReason.MANUAL_TERMINATION,
    ) -> None:
        """Terminate now. Ignored if already terminated."""
        self._terminate(TerminationReason.coerce(reason))

    def cleanup(self) -> None:
        """Dispose the timeout: clear every timer and detach listeners.

        Calling cleanup on a live timeout counts as a completion; the
        command finished before any deadline. Idempotent.
        """
        if self._disposed:
            return
        if not self._state.terminated:
            self._stats.completions += 1
        self._clear_all_timers(include_absolute=True)
        self._disposed = True
        self.remove_all_listeners()

    def __enter__(self) -> "ResilientTimeout":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def stage(self) -> TimeoutStage:
        return self._state.stage

    def get_state(self) -> TimeoutState:
        """Return a copy of the current state."""
        return self._state.snapshot()

    def get_stats(self) -> TimeoutStats:
        """Return a copy of the accumulated statistics."""
        return self._stats.snapshot()

    def is_terminated(self) -> bool:
        return self._state.terminated

    def is_disposed(self) -> bool:
        return self._disposed

    def get_termination_reason(self) -> Optional[Union[TerminationReason, str]]:
        return self._state.termination_reason

    def get_elapsed_time(self) -> float:
        return self._deps.get_current_time() - self._state.start_time

    def get_time_since_last_activity(self) -> float:
        return self._deps.get_current_time() - self._state.last_activity

    # ------------------------------------------------------------------
    # Stage transitions
    # ------------------------------------------------------------------

    def _start(self) -> None:
        self._state.absolute_timer = self._deps.set_timeout(
            self._on_absolute_timeout, self.config.absolute_maximum
        )
        self._emit(
            TimeoutEventType.TIMER_SET,
            timer_type=TimerType.ABSOLUTE.value,
            timeout=self.config.absolute_maximum,
            reason="absolute_maximum_timer",
        )
        self._transition_to_active(self.config.base_timeout, "timeout_started")

    def _handle_regular_activity(self) -> None:
        stage = self._state.stage
        if stage == TimeoutStage.ACTIVE:
            # The first chunk must not shorten the initial base window
            if self._has_received_activity:
                self._extend_primary_timer(self.config.activity_extension)
            self._has_received_activity = True
        elif stage == TimeoutStage.GRACE:
            self._has_received_activity = True
            self._recover_from_grace()

    def _recover_from_grace(self) -> None:
        self._stats.grace_recoveries += 1
        if self._debug:
            logger.debug(
                f"Grace recovery #{self._stats.grace_recoveries} after "
                f"{self.get_time_since_last_activity():.0f}ms of silence"
            )
        self._transition_to_active(self.config.base_timeout, "grace_recovery")

    def _transition_to_active(self, timeout: int, reason: str) -> None:
        previous = self._state.stage

        self._clear_all_timers(include_absolute=False)

        self._state.stage = TimeoutStage.ACTIVE
        self._arm_primary_timer(timeout)

        if previous != TimeoutStage.ACTIVE:
            self._emit(
                TimeoutEventType.STATE_CHANGE,
                **{"from": previous.value, "to": TimeoutStage.ACTIVE.value, "reason": reason},
            )
        self._emit(
            TimeoutEventType.TIMER_SET,
            timer_type=TimerType.PRIMARY.value,
            timeout=timeout,
            reason=reason,
        )

    def _extend_primary_timer(self, extension_ms: int) -> None:
        if self._state.stage != TimeoutStage.ACTIVE or self._state.primary_timer is None:
            return

        self._clear_timer(TimerType.PRIMARY)
        self._arm_primary_timer(extension_ms)
        self._emit(
            TimeoutEventType.TIMER_SET,
            timer_type=TimerType.PRIMARY.value,
            timeout=extension_ms,
            reason="activity_extension",
        )

    def _arm_primary_timer(self, timeout: int) -> None:
        self._primary_generation += 1
        generation = self._primary_generation
        self._state.primary_timer = self._deps.set_timeout(
            lambda: self._on_primary_timeout(generation), timeout
        )

    def _on_primary_timeout(self, generation: int) -> None:
        if (
            self._state.terminated
            or self._disposed
            or self._state.stage != TimeoutStage.ACTIVE
            or generation != self._primary_generation
        ):
            return

        if self._absolute_deadline_reached():
            self._terminate(TerminationReason.ABSOLUTE_MAXIMUM_REACHED)
            return

        self._state.stage = TimeoutStage.GRACE
        self._state.primary_timer = None
        self._emit(
            TimeoutEventType.TIMER_CLEARED,
            timer_type=TimerType.PRIMARY.value,
            reason="primary_timer_expired",
        )

        self._grace_generation += 1
        grace_generation = self._grace_generation
        self._state.grace_timer = self._deps.set_timeout(
            lambda: self._on_grace_timeout(grace_generation), self.config.grace_timeout
        )

        self._emit(
            TimeoutEventType.STATE_CHANGE,
            **{
                "from": TimeoutStage.ACTIVE.value,
                "to": TimeoutStage.GRACE.value,
                "reason": "primary_timeout_expired",
            },
        )
        self._emit(
            TimeoutEventType.TIMER_SET,
            timer_type=TimerType.GRACE.value,
            timeout=self.config.grace_timeout,
            reason="grace_period_timer",
        )

    def _on_grace_timeout(self, generation: int) -> None:
        if (
            self._state.terminated
            or self._disposed
            or self._state.stage != TimeoutStage.GRACE
            or generation != self._grace_generation
        ):
            return

        self._state.grace_timer = None
        if self._absolute_deadline_reached():
            self._terminate(TerminationReason.ABSOLUTE_MAXIMUM_REACHED)
        else:
            self._terminate(TerminationReason.GRACE_PERIOD_EXPIRED)

    def _on_absolute_timeout(self) -> None:
        if self._state.terminated or self._disposed:
            return
        self._state.absolute_timer = None
        self._terminate(TerminationReason.ABSOLUTE_MAXIMUM_REACHED)

    def _absolute_deadline_reached(self) -> bool:
        return self.get_elapsed_time() >= self.config.absolute_maximum

    def _terminate(self, reason: Union[TerminationReason, str]) -> None:
        if self._state.terminated or self._disposed:
            return

        previous = self._state.stage
        self._state.stage = TimeoutStage.EXPIRED
        self._state.terminated = True
        self._state.termination_reason = reason

        self._clear_all_timers(include_absolute=True)
        self._stats.record_termination(reason)

        reason_value = getattr(reason, "value", reason)
        self._emit(
            TimeoutEventType.STATE_CHANGE,
            **{
                "from": previous.value,
                "to": TimeoutStage.EXPIRED.value,
                "reason": f"terminated_{reason_value}",
            },
        )
        self._emit(TimeoutEventType.TERMINATION, reason=reason_value)

        logger.info(
            f"Timeout terminated: reason={reason_value}, stage={previous.value}, "
            f"elapsed={self.get_elapsed_time():.0f}ms"
        )

        for listener in list(self._timeout_listeners):
            try:
                listener(reason)
            except Exception as e:
                logger.error(f"Error in timeout listener for {reason_value}: {e}")

    # ------------------------------------------------------------------
    # Timers and events
    # ------------------------------------------------------------------

    def _clear_timer(self, timer_type: TimerType) -> None:
        attribute = f"{timer_type.value}_timer"
        handle = getattr(self._state, attribute)
        if handle is None:
            return
        self._deps.clear_timeout(handle)
        setattr(self._state, attribute, None)
        self._emit(TimeoutEventType.TIMER_CLEARED, timer_type=timer_type.value)

    def _clear_all_timers(self, include_absolute: bool) -> None:
        self._clear_timer(TimerType.PRIMARY)
        self._clear_timer(TimerType.GRACE)
        if include_absolute:
            self._clear_timer(TimerType.ABSOLUTE)

    def _emit(self, event_type: TimeoutEventType, **details: Any) -> None:
        event = TimeoutEvent(
            type=event_type,
            timestamp=self._deps.get_current_time(),
            details={key: value for key, value in details.items() if value is not None},
        )

        if self._debug:
            logger.debug(f"{event_type.value}: {event.details}")

        for listener in list(self._event_listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Error in timeout event listener for {event_type.value}: {e}")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_config(config: TimeoutConfig) -> TimeoutConfig:
        validation = config.validate()
        if not validation.valid:
            raise TimeoutConfigurationError(validation.errors)

        if validation.warnings and config.debug:
            logger.warning(f"Timeout configuration warnings: {validation.warnings}")

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot of state, stats and elapsed times."""
        return {
            "state": self._state.to_dict(),
            "stats": self._stats.to_dict(),
            "elapsed": self.get_elapsed_time(),
            "time_since_activity": self.get_time_since_last_activity(),
            "disposed": self._disposed,
        }
