"""Shell-RPC Timeout Domain Services.

Factory functions that turn a tool identity or free-text command into a
concrete TimeoutConfig. Thresholds come from the profile table in
``profiles.py``, with optional per-deployment overrides loaded from the
file named by PKG_LOCAL_TIMEOUT_PROFILES.
"""

import logging
import sys
from typing import Any, Dict, Optional

from pydantic import TypeAdapter, ValidationError

from pkglocal.domains.shared.kernel import TimeoutProfileName
from pkglocal.models.config_models import ShellRPCConfig

from .command_classifier import classify_command, matches_signature
from .entities import CommandCategory
from .errors import UnknownTimeoutProfileError
from .profiles import DEFAULT_PROFILES, TimeoutProfile
from .value_objects import PlatformTimeoutConfig, TimeoutConfig

logger = logging.getLogger(__name__)

_PROFILE_NAME_ADAPTER = TypeAdapter(TimeoutProfileName)


def get_profile_table(settings: Optional[ShellRPCConfig] = None) -> Dict[str, TimeoutProfile]:
    """Get the effective profile table.

    Built-in profiles with any threshold overrides from the configured
    profiles file applied on top.

    Args:
        settings: Configuration to read; defaults to the environment.

    Returns:
        Dictionary mapping profile names to TimeoutProfile values.
    """
    settings = settings or ShellRPCConfig.from_env()
    table = dict(DEFAULT_PROFILES)

    for name, thresholds in settings.load_profile_overrides().items():
        table[name] = table[name].with_thresholds(**thresholds)
        logger.debug(f"Applied threshold overrides to profile {name}: {thresholds}")

    return table


def _build_from_profile(name: str, overrides: Dict[str, Any]) -> TimeoutConfig:
    settings = ShellRPCConfig.from_env()
    profile = get_profile_table(settings)[name]
    debug = overrides.pop("debug", settings.DEBUG_SHELL_RPC)
    return profile.build(debug=debug, **overrides)


def create_pip_install_timeout(**overrides: Any) -> TimeoutConfig:
    """Create timeout config for pip install operations."""
    return _build_from_profile("pip_install", overrides)


def create_pip_uninstall_timeout(**overrides: Any) -> TimeoutConfig:
    """Create timeout config for pip uninstall operations."""
    return _build_from_profile("pip_uninstall", overrides)


def create_uv_timeout(**overrides: Any) -> TimeoutConfig:
    """Create timeout config for uv operations."""
    return _build_from_profile("uv", overrides)


def create_npm_timeout(**overrides: Any) -> TimeoutConfig:
    """Create timeout config for npm operations."""
    return _build_from_profile("npm", overrides)


def create_maven_timeout(**overrides: Any) -> TimeoutConfig:
    """Create timeout config for Maven operations."""
    return _build_from_profile("maven", overrides)


def create_quick_command_timeout(**overrides: Any) -> TimeoutConfig:
    """Create timeout config for commands with no expected progress output."""
    return _build_from_profile("quick_command", overrides)


def create_generic_timeout(**overrides: Any) -> TimeoutConfig:
    """Create a generic timeout config suitable for most operations.

    Combines the pip install, uv, npm and quick command patterns.
    """
    return _build_from_profile("generic", overrides)


def create_timeout_for_tool(tool_name: str, **overrides: Any) -> TimeoutConfig:
    """Create a timeout config by tool profile name.

    Names are normalized, so "Pip-Install", "pip install" and
    "pip_install" all select the same profile.

    Raises:
        UnknownTimeoutProfileError: If no profile has that name.
    """
    try:
        name = _PROFILE_NAME_ADAPTER.validate_python(tool_name)
    except ValidationError as e:
        raise UnknownTimeoutProfileError(str(tool_name), list(DEFAULT_PROFILES)) from e
    return _build_from_profile(name, overrides)


def get_timeout_for_category(category: CommandCategory, command: str) -> TimeoutConfig:
    """Get timeout configuration based on command category.

    Args:
        category: Result of ``classify_command``.
        command: The command text, used to pick the specific tool within
            a category.

    Returns:
        The TimeoutConfig for the category.
    """
    if category == CommandCategory.PACKAGE_INSTALL:
        if matches_signature(command, "PIP_INSTALL"):
            return create_pip_install_timeout()
        if matches_signature(command, "UV_ADD"):
            return create_uv_timeout()
        if matches_signature(command, "NPM_INSTALL"):
            return create_npm_timeout()
        return create_pip_install_timeout()

    if category == CommandCategory.PACKAGE_UNINSTALL:
        if matches_signature(command, "UV_REMOVE"):
            return create_uv_timeout(base_timeout=10000)
        return create_pip_uninstall_timeout()

    if category in (CommandCategory.PACKAGE_LIST, CommandCategory.VERSION_CHECK):
        return create_quick_command_timeout(
            base_timeout=5000,
            grace_timeout=2000,
            absolute_maximum=15000,
        )

    if category == CommandCategory.PACKAGE_SYNC:
        # Sync and lock resolve the whole dependency graph
        return create_uv_timeout(
            base_timeout=45000,
            grace_timeout=20000,
            absolute_maximum=600000,
        )

    if category == CommandCategory.PACKAGE_BUILD:
        if matches_signature(command, "MAVEN"):
            return create_maven_timeout()
        if matches_signature(command, "NPM_RUN"):
            return create_npm_timeout()
        return create_generic_timeout()

    if category == CommandCategory.ENV_CREATE:
        return create_generic_timeout(
            base_timeout=15000,
            grace_timeout=10000,
            absolute_maximum=60000,
        )

    if category in (
        CommandCategory.ENV_SET,
        CommandCategory.NAVIGATION,
        CommandCategory.QUICK_COMMAND,
    ):
        return create_quick_command_timeout(
            base_timeout=1000,
            grace_timeout=500,
            absolute_maximum=5000,
        )

    return create_generic_timeout()


def auto_detect_timeout_config(command: str) -> TimeoutConfig:
    """Pick a timeout config by classifying the command text."""
    category = classify_command(command)
    logger.debug(f"Classified command {command[:80]!r} as {category.value}")
    return get_timeout_for_category(category, command)


def fallback_timeout_config(timeout_ms: int, debug: bool = False) -> TimeoutConfig:
    """Pattern-free config derived only from a requested timeout."""
    return TimeoutConfig(
        base_timeout=timeout_ms,
        activity_extension=max(1, min(timeout_ms // 3, 10000)),
        grace_timeout=max(1, min(timeout_ms // 2, 15000)),
        absolute_maximum=timeout_ms * 3,
        progress_patterns=(),
        error_patterns=(),
        debug=debug,
    )


PLATFORM_CONFIGS: Dict[str, PlatformTimeoutConfig] = {
    "win32": PlatformTimeoutConfig(cleanup_strategy="immediate", recovery_timeout=5000),
    "darwin": PlatformTimeoutConfig(),
    "linux": PlatformTimeoutConfig(),
    "freebsd": PlatformTimeoutConfig(),
    "openbsd": PlatformTimeoutConfig(),
    "sunos": PlatformTimeoutConfig(),
    "aix": PlatformTimeoutConfig(),
}


def get_platform_timeout_config(platform: Optional[str] = None) -> PlatformTimeoutConfig:
    """Get platform-specific teardown hints.

    ``sys.platform`` values carry version suffixes on some systems
    ("freebsd14", "sunos5"), so lookup is by prefix. Unknown platforms
    use the linux entry.
    """
    platform = platform or sys.platform
    for prefix, config in PLATFORM_CONFIGS.items():
        if platform.startswith(prefix):
            return config
    return PLATFORM_CONFIGS["linux"]
