"""Timeout Domain - Bounded Context for Shell-RPC Command Timeouts.

This module decides when a shell command that has gone quiet should be
killed. Instead of a single fixed deadline it runs a two-stage state
machine:

- ACTIVE: output keeps the command alive; progress output resets the window
- GRACE: a last window after silence; any output recovers to ACTIVE
- EXPIRED: terminal; the owner is told why and kills the process

An absolute maximum bounds every command, and error output terminates
immediately.

The domain follows DDD patterns with:
- Value Objects: TimeoutConfig, stages, reasons and pattern actions
- Entities: TimeoutState and TimeoutStats owned by the aggregate
- Aggregates: ResilientTimeout
- Domain Events: TimeoutEvent records of timers, stages and matches
- Services: tool profiles, command classification and integrations

Example usage:
    from pkglocal.domains.timeout import (
        ResilientTimeout,
        auto_detect_timeout_config,
    )

    config = auto_detect_timeout_config("pip install numpy")
    timeout = ResilientTimeout(config, on_timeout=lambda reason: proc.kill())

    for chunk in proc.stdout:
        timeout.process_output(chunk)

    timeout.cleanup()
"""

# Errors
from .errors import (
    ShellTimeoutError,
    TimeoutConfigurationError,
    UnknownTimeoutProfileError,
)

# Value Objects
from .value_objects import (
    ConfigValidation,
    PatternAction,
    PatternActionType,
    PlatformTimeoutConfig,
    TerminationReason,
    TimeoutConfig,
    TimeoutStage,
    TimerType,
)

# Entities
from .entities import (
    CommandCategory,
    TimeoutState,
    TimeoutStats,
)

# Aggregates
from .aggregates import (
    ResilientTimeout,
)

# Domain Events
from .events import (
    TimeoutEvent,
    TimeoutEventType,
)

# Patterns
from .patterns import (
    DEFAULT_PATTERNS,
    PatternCache,
    PatternMatcher,
    PatternSet,
    clear_pattern_cache,
    create_pattern_config,
    merge_patterns,
    pattern_cache_stats,
    validate_patterns,
)

# Timers
from .timers import (
    TimerDependencies,
    asyncio_timer_dependencies,
    default_timer_dependencies,
    threading_timer_dependencies,
)

# Profiles and classification
from .profiles import (
    DEFAULT_PROFILES,
    TimeoutProfile,
)
from .command_classifier import (
    classify_command,
    is_package_operation,
    is_quick_command,
)

# Services
from .services import (
    PLATFORM_CONFIGS,
    auto_detect_timeout_config,
    create_generic_timeout,
    create_maven_timeout,
    create_npm_timeout,
    create_pip_install_timeout,
    create_pip_uninstall_timeout,
    create_quick_command_timeout,
    create_timeout_for_tool,
    create_uv_timeout,
    get_platform_timeout_config,
    get_profile_table,
    get_timeout_for_category,
)

# Integrations
from .integration import (
    EnhancedTimeoutIntegration,
    ShellRPCCompatTimeout,
    TimeoutIntegration,
    create_timeout_integration,
)

__all__ = [
    # Errors
    "ShellTimeoutError",
    "TimeoutConfigurationError",
    "UnknownTimeoutProfileError",
    # Value Objects
    "ConfigValidation",
    "PatternAction",
    "PatternActionType",
    "PlatformTimeoutConfig",
    "TerminationReason",
    "TimeoutConfig",
    "TimeoutStage",
    "TimerType",
    # Entities
    "CommandCategory",
    "TimeoutState",
    "TimeoutStats",
    # Aggregates
    "ResilientTimeout",
    # Domain Events
    "TimeoutEvent",
    "TimeoutEventType",
    # Patterns
    "DEFAULT_PATTERNS",
    "PatternCache",
    "PatternMatcher",
    "PatternSet",
    "clear_pattern_cache",
    "create_pattern_config",
    "merge_patterns",
    "pattern_cache_stats",
    "validate_patterns",
    # Timers
    "TimerDependencies",
    "asyncio_timer_dependencies",
    "default_timer_dependencies",
    "threading_timer_dependencies",
    # Profiles and classification
    "DEFAULT_PROFILES",
    "TimeoutProfile",
    "classify_command",
    "is_package_operation",
    "is_quick_command",
    # Services
    "PLATFORM_CONFIGS",
    "auto_detect_timeout_config",
    "create_generic_timeout",
    "create_maven_timeout",
    "create_npm_timeout",
    "create_pip_install_timeout",
    "create_pip_uninstall_timeout",
    "create_quick_command_timeout",
    "create_timeout_for_tool",
    "create_uv_timeout",
    "get_platform_timeout_config",
    "get_profile_table",
    "get_timeout_for_category",
    # Integrations
    "EnhancedTimeoutIntegration",
    "ShellRPCCompatTimeout",
    "TimeoutIntegration",
    "create_timeout_integration",
]
