"""Shell-RPC Timeout Domain Entities.

This module contains entities for the resilient timeout bounded context.
Entities have identity and lifecycle, unlike value objects: a TimeoutState
and its TimeoutStats belong to exactly one ResilientTimeout for its whole
life and are only mutated through that aggregate.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from .value_objects import TerminationReason, TimeoutStage

OTHER_TERMINATION = "other"


class CommandCategory(Enum):
    """Categories of shell commands with distinct timeout behavior.

    Commands are categorized by how long they are expected to run and
    what their output looks like:
    - Package operations: installs, removals, syncs and builds (long, chatty)
    - Environment operations: venv creation, variable exports
    - Quick operations: version checks, navigation, coreutils (short, quiet)
    """

    # Package manager operations
    PACKAGE_INSTALL = "package_install"
    PACKAGE_UNINSTALL = "package_uninstall"
    PACKAGE_LIST = "package_list"
    PACKAGE_SYNC = "package_sync"
    PACKAGE_BUILD = "package_build"

    # Environment operations
    ENV_CREATE = "env_create"
    ENV_SET = "env_set"

    # Quick operations
    VERSION_CHECK = "version_check"
    NAVIGATION = "navigation"
    QUICK_COMMAND = "quick_command"

    UNKNOWN = "unknown"


@dataclass
class TimeoutState:
    """Internal state of one resilient timeout.

    Invariants:
        - At most one primary timer and one grace timer exist, never both.
        - The absolute timer coexists with either of the other two.
        - ``termination_reason`` is set once and never cleared.

    Timer handles are opaque values returned by the injected timer
    primitive.
    """
    stage: TimeoutStage = TimeoutStage.ACTIVE
    primary_timer: Optional[Any] = None
    grace_timer: Optional[Any] = None
    absolute_timer: Optional[Any] = None
    last_activity: float = 0
    start_time: float = 0
    terminated: bool = False
    termination_reason: Optional[Union[TerminationReason, str]] = None

    def snapshot(self) -> "TimeoutState":
        return copy.copy(self)

    def to_dict(self) -> Dict[str, Any]:
        reason = self.termination_reason
        return {
            "stage": self.stage.value,
            "has_primary_timer": self.primary_timer is not None,
            "has_grace_timer": self.grace_timer is not None,
            "has_absolute_timer": self.absolute_timer is not None,
            "last_activity": self.last_activity,
            "start_time": self.start_time,
            "terminated": self.terminated,
            "termination_reason": getattr(reason, "value", reason),
        }


def _empty_terminations() -> Dict[str, int]:
    return {reason.value: 0 for reason in TerminationReason}


@dataclass
class TimeoutStats:
    """Cumulative statistics for one resilient timeout.

    Never reset; a fresh instance starts from zero.

    Attributes:
        total_created: Number of timeouts these stats cover (always 1).
        completions: Times the owner disposed the timeout before it expired.
        grace_recoveries: GRACE -> ACTIVE transitions caused by output.
        terminations: Count per termination reason. Reasons outside the
            known set are counted under ``"other"``.
        pattern_matches: Progress and error pattern match counts.
        avg_processing_time: Mean milliseconds spent per processed chunk.
    """
    total_created: int = 1
    completions: int = 0
    grace_recoveries: int = 0
    terminations: Dict[str, int] = field(default_factory=_empty_terminations)
    pattern_matches: Dict[str, int] = field(
        default_factory=lambda: {"progress": 0, "error": 0}
    )
    avg_processing_time: float = 0.0
    _processed_chunks: int = field(default=0, repr=False)

    def record_termination(self, reason: Union[TerminationReason, str]) -> None:
        key = getattr(reason, "value", reason)
        if key not in self.terminations:
            key = OTHER_TERMINATION
        self.terminations[key] = self.terminations.get(key, 0) + 1

    def record_processing_time(self, elapsed_ms: float) -> None:
        """Fold one chunk's processing time into the running mean."""
        self._processed_chunks += 1
        self.avg_processing_time += (
            elapsed_ms - self.avg_processing_time
        ) / self._processed_chunks

    @property
    def processed_chunks(self) -> int:
        return self._processed_chunks

    def snapshot(self) -> "TimeoutStats":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_created": self.total_created,
            "completions": self.completions,
            "grace_recoveries": self.grace_recoveries,
            "terminations": dict(self.terminations),
            "pattern_matches": dict(self.pattern_matches),
            "avg_processing_time": self.avg_processing_time,
            "processed_chunks": self._processed_chunks,
        }
