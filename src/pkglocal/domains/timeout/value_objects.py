"""Shell-RPC Timeout Domain Value Objects.

This module contains immutable value objects for the resilient timeout
bounded context. Value objects are identified by their attributes rather
than by identity, so a TimeoutConfig can be shared read-only between any
number of ResilientTimeout instances.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field, replace
from typing import Any, List, Optional, Sequence, Union

PatternLike = Union[str, "re.Pattern[str]"]


class TimeoutStage(str, enum.Enum):
    """Lifecycle phase of a resilient timeout.

    ACTIVE: countdown running, command presumed healthy.
    GRACE: primary countdown expired, a shorter final countdown is running.
    EXPIRED: terminal, no further timers run.
    """
    ACTIVE = "ACTIVE"
    GRACE = "GRACE"
    EXPIRED = "EXPIRED"


class TerminationReason(str, enum.Enum):
    """Why a resilient timeout reached the EXPIRED stage.

    ``terminate`` also accepts arbitrary reason strings from external owners,
    so a termination reason may be a plain string outside this set.
    """
    ERROR_DETECTED = "error_detected"
    GRACE_PERIOD_EXPIRED = "grace_period_expired"
    ABSOLUTE_MAXIMUM_REACHED = "absolute_maximum_reached"
    MANUAL_TERMINATION = "manual_termination"
    EXTERNAL_TERMINATION = "external_termination"

    @classmethod
    def coerce(cls, value: Union[str, "TerminationReason"]) -> Union[str, "TerminationReason"]:
        """Return the enum member for known reasons, the raw string otherwise."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return value


class PatternActionType(str, enum.Enum):
    """Directive produced by the PatternMatcher for one output chunk."""
    TERMINATE = "terminate"
    RESET = "reset"
    EXTEND = "extend"
    IGNORE = "ignore"


class TimerType(str, enum.Enum):
    PRIMARY = "primary"
    GRACE = "grace"
    ABSOLUTE = "absolute"


@dataclass(frozen=True)
class PatternAction:
    """Result of classifying an output chunk.

    Attributes:
        action: What the state machine should do with the chunk.
        pattern: The compiled pattern that matched, if any.
        pattern_source: Source text of the matched pattern (for diagnostics).
    """
    action: PatternActionType
    pattern: Optional["re.Pattern[str]"] = None
    pattern_source: Optional[str] = None


@dataclass(frozen=True)
class ConfigValidation:
    """Outcome of validating a TimeoutConfig."""
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


@dataclass(frozen=True)
class TimeoutConfig:
    """Configuration for resilient timeout behavior.

    All durations are integer milliseconds. Patterns may be given as
    strings or precompiled ``re.Pattern`` objects and are matched with
    ``search`` semantics (anywhere in the chunk).

    Attributes:
        base_timeout: Initial ACTIVE window, and the window restored on
            progress matches and grace recoveries.
        activity_extension: Shorter window granted to unrecognized output.
        grace_timeout: Length of the GRACE stage.
        absolute_maximum: Hard ceiling on total wall-clock time.
        progress_patterns: Patterns signalling forward progress.
        error_patterns: Patterns signalling failure (checked first).
        debug: Log every timeout event at DEBUG level.

    Examples:
        >>> config = TimeoutConfig(base_timeout=1000, activity_extension=500,
        ...                        grace_timeout=500, absolute_maximum=5000)
        >>> config.with_overrides(base_timeout=2000).base_timeout
        2000
    """
    base_timeout: int
    activity_extension: int
    grace_timeout: int
    absolute_maximum: int
    progress_patterns: Sequence[PatternLike] = ()
    error_patterns: Sequence[PatternLike] = ()
    debug: bool = False

    def with_overrides(self, **overrides: Any) -> "TimeoutConfig":
        """Create a copy with the given fields replaced."""
        return replace(self, **overrides)

    def validate(self) -> ConfigValidation:
        """Check every constraint and collect all violations.

        Non-positive or non-integer durations, non-sequence pattern lists
        and uncompilable patterns are errors. Relationships between the
        durations only produce warnings.
        """
        errors: List[str] = []
        warnings: List[str] = []

        for name in ("base_timeout", "activity_extension", "grace_timeout", "absolute_maximum"):
            if not _is_positive_int(getattr(self, name)):
                errors.append(f"{name} must be a positive integer")

        if _is_positive_int(self.base_timeout) and _is_positive_int(self.grace_timeout):
            if _is_positive_int(self.absolute_maximum) and (
                self.absolute_maximum <= self.base_timeout + self.grace_timeout
            ):
                warnings.append(
                    "absolute_maximum should be significantly larger than "
                    "base_timeout + grace_timeout"
                )
            if self.grace_timeout >= self.base_timeout:
                warnings.append(
                    "grace_timeout is larger than or equal to base_timeout - "
                    "this may cause unexpected behavior"
                )

        for name in ("progress_patterns", "error_patterns"):
            patterns = getattr(self, name)
            if not isinstance(patterns, (list, tuple)):
                errors.append(f"{name} must be a list")
                continue
            for index, pattern in enumerate(patterns):
                if isinstance(pattern, re.Pattern):
                    continue
                if not isinstance(pattern, str):
                    errors.append(f"{name}[{index}] must be a string or compiled pattern")
                    continue
                try:
                    re.compile(pattern)
                except re.error as e:
                    errors.append(f"{name}[{index}] is invalid: {e}")

        return ConfigValidation(valid=not errors, errors=errors, warnings=warnings)

    def to_dict(self) -> dict:
        """Convert to a dictionary with pattern sources instead of objects."""
        def _sources(patterns: Sequence[PatternLike]) -> List[str]:
            return [p.pattern if isinstance(p, re.Pattern) else str(p) for p in patterns]

        return {
            "base_timeout": self.base_timeout,
            "activity_extension": self.activity_extension,
            "grace_timeout": self.grace_timeout,
            "absolute_maximum": self.absolute_maximum,
            "progress_patterns": _sources(self.progress_patterns),
            "error_patterns": _sources(self.error_patterns),
            "debug": self.debug,
        }


@dataclass(frozen=True)
class PlatformTimeoutConfig:
    """Platform-specific process teardown hints for the command executor.

    The timeout component never signals processes itself; the executor
    reads these values when it reacts to a termination.
    """
    windows_signal: str = "SIGTERM"
    unix_signal: str = "SIGTERM"
    cleanup_strategy: str = "graceful"  # "graceful" or "immediate"
    recovery_timeout: int = 3000
