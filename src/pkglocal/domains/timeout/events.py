"""Shell-RPC Timeout Domain Events.

Events emitted by a ResilientTimeout for every observable transition.
They exist for diagnostics (listeners and the debug log) and are never
persisted. The payload shape is ``type``, ``timestamp`` and ``details``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class TimeoutEventType(str, enum.Enum):
    STATE_CHANGE = "state_change"
    TIMER_SET = "timer_set"
    TIMER_CLEARED = "timer_cleared"
    PATTERN_MATCH = "pattern_match"
    TERMINATION = "termination"
    ACTIVITY = "activity"


@dataclass(frozen=True)
class TimeoutEvent:
    """Immutable record of one timeout transition.

    Attributes:
        type: Kind of transition.
        timestamp: Clock reading (milliseconds) when the event was emitted.
        details: Event-specific fields. Known keys are ``from``, ``to``
            (state_change), ``reason``, ``pattern`` (pattern_match),
            ``timeout`` and ``timer_type`` (timer events) and ``data``
            (activity).
    """
    type: TimeoutEventType
    timestamp: float
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def reason(self) -> Optional[str]:
        return self.details.get("reason")

    @property
    def timer_type(self) -> Optional[str]:
        return self.details.get("timer_type")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "type": self.type.value,
            "timestamp": self.timestamp,
            "details": dict(self.details),
        }
