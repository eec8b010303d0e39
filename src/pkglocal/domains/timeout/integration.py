"""Shell-RPC integration wrappers.

Adapters that let a shell session drive a ResilientTimeout with the
narrow interface it already uses: start with a command and a requested
timeout, feed output, stop.

- ShellRPCCompatTimeout: drop-in replacement for a fixed-timeout timer
- TimeoutIntegration: the same lifecycle, polled with ``is_timed_out``
- EnhancedTimeoutIntegration: emits ``timeout:*`` notifications and
  tracks grace recoveries for the session that owns it
"""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Union

from pkglocal.models.config_models import ShellRPCConfig

from .aggregates import ResilientTimeout
from .command_classifier import classify_command
from .entities import CommandCategory, TimeoutState, TimeoutStats
from .errors import ShellTimeoutError, TimeoutConfigurationError
from .events import TimeoutEvent, TimeoutEventType
from .services import auto_detect_timeout_config, fallback_timeout_config
from .timers import TimerDependencies
from .value_objects import TerminationReason, TimeoutConfig, TimeoutStage

logger = logging.getLogger(__name__)

OnTimeout = Callable[[Union[TerminationReason, str]], None]
NotificationHandler = Callable[..., None]

# Requests below this are treated as "fail fast" rather than scaled
SMALL_TIMEOUT_THRESHOLD_MS = 1000


def normalize_timeout_budget(timeout_ms: Union[int, float]) -> int:
    """Coerce a requested timeout to whole milliseconds.

    Whole-number floats such as ``30000.0`` are accepted. Fractional,
    non-numeric or non-positive budgets raise TimeoutConfigurationError.
    """
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, (int, float)):
        raise TimeoutConfigurationError(
            [f"requested timeout must be a number of milliseconds, got {timeout_ms!r}"]
        )
    if isinstance(timeout_ms, float) and not timeout_ms.is_integer():
        raise TimeoutConfigurationError(
            [f"requested timeout must be whole milliseconds, got {timeout_ms!r}"]
        )
    if timeout_ms <= 0:
        raise TimeoutConfigurationError(
            [f"requested timeout must be positive, got {timeout_ms!r}"]
        )
    return int(timeout_ms)


def config_for_requested_timeout(
    command: str, timeout_ms: Union[int, float]
) -> TimeoutConfig:
    """Profile for ``command`` with its primary window set to ``timeout_ms``.

    The absolute maximum becomes three times the request, or the
    profile's own ceiling when that is larger. If the profile cannot be
    built the result is a pattern-free config derived from the request.
    """
    timeout_ms = normalize_timeout_budget(timeout_ms)
    try:
        profile_config = auto_detect_timeout_config(command)
        return profile_config.with_overrides(
            base_timeout=timeout_ms,
            absolute_maximum=max(timeout_ms * 3, profile_config.absolute_maximum),
        )
    except (ShellTimeoutError, ValueError) as e:
        logger.warning(f"Falling back to generic timeout for {command[:80]!r}: {e}")
        return fallback_timeout_config(
            timeout_ms, debug=ShellRPCConfig.from_env().DEBUG_SHELL_RPC
        )


class ShellRPCCompatTimeout:
    """Fixed-timeout compatible wrapper around ResilientTimeout.

    Only one timeout runs at a time; ``start`` replaces any previous one.

    Args:
        dependencies: Timer primitives for every timeout this wrapper
            creates. Defaults are chosen per timeout.
    """

    def __init__(self, dependencies: Optional[TimerDependencies] = None):
        self._dependencies = dependencies
        self._timeout: Optional[ResilientTimeout] = None

    def start(
        self, command: str, timeout_ms: Union[int, float], on_timeout: OnTimeout
    ) -> None:
        """Start a timeout for ``command``.

        ``on_timeout`` is called once with the termination reason.
        """
        self.stop()
        config = config_for_requested_timeout(command, timeout_ms)
        self._timeout = ResilientTimeout(
            config, self._dependencies, on_timeout=on_timeout
        )

    def process_output(self, data: str) -> None:
        if self._timeout is not None:
            self._timeout.process_output(data)

    def stop(self) -> None:
        if self._timeout is not None:
            self._timeout.cleanup()
            self._timeout = None

    def is_active(self) -> bool:
        return self._timeout is not None and not self._timeout.is_terminated()

    def get_state(self) -> Optional[Dict[str, Any]]:
        """Stage and elapsed times of the running timeout, or None."""
        if self._timeout is None:
            return None
        return {
            "stage": self._timeout.stage.value,
            "elapsed": self._timeout.get_elapsed_time(),
            "time_since_activity": self._timeout.get_time_since_last_activity(),
        }

    def get_stats(self) -> Optional[TimeoutStats]:
        return self._timeout.get_stats() if self._timeout is not None else None

    def get_termination_reason(self) -> Optional[Union[TerminationReason, str]]:
        if self._timeout is None:
            return None
        return self._timeout.get_termination_reason()


class TimeoutIntegration:
    """Polling-style integration for callers without a callback slot.

    The caller checks ``is_timed_out`` between output reads instead of
    being called back. The flag and reason stay set until the next
    ``start`` or ``stop``.
    """

    def __init__(self, dependencies: Optional[TimerDependencies] = None):
        self._dependencies = dependencies
        self._timeout: Optional[ResilientTimeout] = None
        self._timed_out = False
        self._reason: Optional[Union[TerminationReason, str]] = None

    def start(self, command: str, timeout_ms: Union[int, float]) -> None:
        self.stop()
        config = config_for_requested_timeout(command, timeout_ms)
        self._timeout = ResilientTimeout(
            config, self._dependencies, on_timeout=self._handle_timeout
        )

    def process_output(self, data: str) -> None:
        if self._timeout is not None:
            self._timeout.process_output(data)

    def is_timed_out(self) -> bool:
        return self._timed_out

    def get_timeout_reason(self) -> Optional[Union[TerminationReason, str]]:
        return self._reason

    def stop(self) -> None:
        if self._timeout is not None:
            self._timeout.cleanup()
            self._timeout = None
        self._timed_out = False
        self._reason = None

    def get_stats(self) -> Optional[TimeoutStats]:
        return self._timeout.get_stats() if self._timeout is not None else None

    def get_state(self) -> Optional[TimeoutState]:
        return self._timeout.get_state() if self._timeout is not None else None

    def _handle_timeout(self, reason: Union[TerminationReason, str]) -> None:
        self._timed_out = True
        self._reason = reason


def create_timeout_integration(
    dependencies: Optional[TimerDependencies] = None,
) -> TimeoutIntegration:
    """Create a TimeoutIntegration for one shell session."""
    return TimeoutIntegration(dependencies)


class EnhancedTimeoutIntegration:
    """Timeout integration with lifecycle notifications.

    Notifications and their arguments:

    - ``timeout:started`` (command, category, config)
    - ``timeout:activity`` (data)
    - ``timeout:state_changed`` (from_stage, to_stage)
    - ``timeout:grace_entered`` ()
    - ``timeout:grace_recovered`` (attempts)
    - ``timeout:expired`` (reason)
    - ``timeout:stopped`` (stats)

    Handler exceptions are logged and do not reach the caller.

    Example:
        >>> integration = EnhancedTimeoutIntegration()
        >>> integration.on("timeout:expired", lambda reason: session.kill())
        >>> integration.start("pip install numpy", requested_timeout=60000)
    """

    def __init__(
        self,
        dependencies: Optional[TimerDependencies] = None,
        settings: Optional[ShellRPCConfig] = None,
    ):
        self._dependencies = dependencies
        self._settings = settings
        self._handlers: Dict[str, List[NotificationHandler]] = defaultdict(list)
        self._timeout: Optional[ResilientTimeout] = None
        self._config: Optional[TimeoutConfig] = None
        self._category: Optional[CommandCategory] = None
        self.grace_recovery_attempts = 0

    def on(self, name: str, handler: NotificationHandler) -> NotificationHandler:
        """Register ``handler`` for the notification ``name``."""
        self._handlers[name].append(handler)
        return handler

    def off(self, name: str, handler: NotificationHandler) -> None:
        if handler in self._handlers.get(name, []):
            self._handlers[name].remove(handler)

    def start(
        self, command: str, requested_timeout: Optional[Union[int, float]] = None
    ) -> None:
        """Start tracking ``command``.

        Without a positive ``requested_timeout`` the profile is picked by
        classifying the command. With one, the thresholds derive from the
        request: below one second the command is expected to fail fast and
        gets tight extension and grace windows, otherwise extension and
        grace scale with the request.
        """
        self.stop()
        settings = self._settings or ShellRPCConfig.from_env()
        self._category = classify_command(command)

        if requested_timeout is not None and requested_timeout > 0:
            self._config = self._config_for_request(requested_timeout, settings)
        else:
            self._config = auto_detect_timeout_config(command)

        if settings.DEBUG_TIMEOUT or self._config.debug:
            logger.debug(
                f"Starting timeout for {command[:80]!r}: category={self._category.value}, "
                f"base={self._config.base_timeout}ms, grace={self._config.grace_timeout}ms, "
                f"absolute={self._config.absolute_maximum}ms"
            )

        self._timeout = ResilientTimeout(
            self._config,
            self._dependencies,
            on_event=self._handle_event,
            on_timeout=self._handle_timeout,
        )
        self._notify("timeout:started", command, self._category, self._config)

    def process_output(self, data: str) -> None:
        if self._timeout is None or self._timeout.is_terminated():
            return
        self._timeout.process_output(data)
        self._notify("timeout:activity", data)

    def stop(self) -> Optional[TimeoutStats]:
        """Dispose the current timeout and return its final stats."""
        if self._timeout is None:
            return None

        timeout = self._timeout
        self._timeout = None
        timeout.cleanup()
        stats = timeout.get_stats()

        settings = self._settings or ShellRPCConfig.from_env()
        if settings.DEBUG_TIMEOUT:
            logger.debug(
                f"Stopped timeout: grace_recoveries={stats.grace_recoveries}, "
                f"terminations={stats.terminations}"
            )

        self._notify("timeout:stopped", stats)
        self.grace_recovery_attempts = 0
        return stats

    def is_active(self) -> bool:
        return self._timeout is not None and not self._timeout.is_terminated()

    def get_state(self) -> Optional[TimeoutState]:
        return self._timeout.get_state() if self._timeout is not None else None

    @property
    def category(self) -> Optional[CommandCategory]:
        return self._category

    @property
    def config(self) -> Optional[TimeoutConfig]:
        return self._config

    @staticmethod
    def _config_for_request(
        requested: Union[int, float], settings: ShellRPCConfig
    ) -> TimeoutConfig:
        requested = normalize_timeout_budget(requested)
        small = requested < SMALL_TIMEOUT_THRESHOLD_MS
        return TimeoutConfig(
            base_timeout=requested,
            activity_extension=50 if small else min(int(requested * 0.1), 1000),
            grace_timeout=100 if small else int(requested * 0.15),
            absolute_maximum=requested * 3,
            progress_patterns=(),
            error_patterns=(),
            debug=settings.DEBUG_TIMEOUT or settings.DEBUG_SHELL_RPC,
        )

    def _handle_event(self, event: TimeoutEvent) -> None:
        if event.type != TimeoutEventType.STATE_CHANGE:
            return

        from_stage = event.details.get("from")
        to_stage = event.details.get("to")
        self._notify("timeout:state_changed", from_stage, to_stage)

        if to_stage == TimeoutStage.GRACE.value:
            self._notify("timeout:grace_entered")
        elif from_stage == TimeoutStage.GRACE.value and to_stage == TimeoutStage.ACTIVE.value:
            self.grace_recovery_attempts += 1
            self._notify("timeout:grace_recovered", self.grace_recovery_attempts)

    def _handle_timeout(self, reason: Union[TerminationReason, str]) -> None:
        self._notify("timeout:expired", reason)

    def _notify(self, name: str, *args: Any) -> None:
        for handler in list(self._handlers.get(name, [])):
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"Error in {name} handler: {e}")
