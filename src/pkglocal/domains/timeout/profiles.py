"""Tool timeout profiles.

A profile pairs a set of default patterns with the four thresholds of a
TimeoutConfig. The table below is configuration data; per-deployment
threshold overrides from a YAML file are merged over it by
``services.get_profile_table``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Tuple

from .patterns import merge_patterns
from .value_objects import TimeoutConfig


@dataclass(frozen=True)
class TimeoutProfile:
    """Thresholds and pattern sets for one kind of tool invocation.

    Attributes:
        name: Profile identifier (e.g. "pip_install").
        pattern_sets: Names of DEFAULT_PATTERNS entries, merged in order.
        base_timeout: Initial ACTIVE window (ms).
        activity_extension: Window granted per unrecognized output (ms).
        grace_timeout: GRACE stage length (ms).
        absolute_maximum: Hard ceiling (ms).
    """
    name: str
    pattern_sets: Tuple[str, ...]
    base_timeout: int
    activity_extension: int
    grace_timeout: int
    absolute_maximum: int

    def with_thresholds(self, **thresholds: int) -> "TimeoutProfile":
        return replace(self, **thresholds)

    def build(self, debug: bool = False, **overrides: Any) -> TimeoutConfig:
        """Create a TimeoutConfig from this profile.

        Args:
            debug: Enable event tracing for the resulting timeout.
            **overrides: Any TimeoutConfig field, applied last.
        """
        patterns = merge_patterns(*self.pattern_sets)
        config = TimeoutConfig(
            base_timeout=self.base_timeout,
            activity_extension=self.activity_extension,
            grace_timeout=self.grace_timeout,
            absolute_maximum=self.absolute_maximum,
            progress_patterns=patterns.progress_patterns,
            error_patterns=patterns.error_patterns,
            debug=debug,
        )
        return config.with_overrides(**overrides) if overrides else config

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "pattern_sets": list(self.pattern_sets),
            "base_timeout": self.base_timeout,
            "activity_extension": self.activity_extension,
            "grace_timeout": self.grace_timeout,
            "absolute_maximum": self.absolute_maximum,
        }


DEFAULT_PROFILES: Dict[str, TimeoutProfile] = {
    "pip_install": TimeoutProfile(
        name="pip_install",
        pattern_sets=("PIP_INSTALL",),
        base_timeout=30000,
        activity_extension=10000,
        grace_timeout=15000,
        absolute_maximum=600000,  # 10 minutes
    ),
    "pip_uninstall": TimeoutProfile(
        name="pip_uninstall",
        pattern_sets=("PIP_UNINSTALL",),
        base_timeout=15000,
        activity_extension=5000,
        grace_timeout=10000,
        absolute_maximum=120000,
    ),
    # uv is fast, so a shorter initial window
    "uv": TimeoutProfile(
        name="uv",
        pattern_sets=("UV",),
        base_timeout=15000,
        activity_extension=5000,
        grace_timeout=10000,
        absolute_maximum=300000,
    ),
    "npm": TimeoutProfile(
        name="npm",
        pattern_sets=("NPM",),
        base_timeout=30000,
        activity_extension=10000,
        grace_timeout=15000,
        absolute_maximum=600000,
    ),
    "maven": TimeoutProfile(
        name="maven",
        pattern_sets=("MAVEN",),
        base_timeout=60000,
        activity_extension=20000,
        grace_timeout=30000,
        absolute_maximum=1200000,  # 20 minutes
    ),
    "quick_command": TimeoutProfile(
        name="quick_command",
        pattern_sets=("QUICK_COMMAND",),
        base_timeout=3000,
        activity_extension=500,
        grace_timeout=2000,
        absolute_maximum=10000,
    ),
    "generic": TimeoutProfile(
        name="generic",
        pattern_sets=("PIP_INSTALL", "UV", "NPM", "QUICK_COMMAND"),
        base_timeout=30000,
        activity_extension=10000,
        grace_timeout=15000,
        absolute_maximum=600000,
    ),
}
