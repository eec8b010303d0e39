"""Configuration data models."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Mapping, Optional, Tuple

import yaml
from pydantic import PositiveInt, TypeAdapter, ValidationError

from pkglocal.domains.shared.kernel import ThresholdName, TimeoutProfileName

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "pkglocal"

ProfileOverrides = Dict[str, Dict[str, int]]

_PROFILE_OVERRIDES_ADAPTER = TypeAdapter(
    Dict[TimeoutProfileName, Dict[ThresholdName, PositiveInt]]
)


class ProfileOverridesError(ValueError):
    """Raised when a timeout profile overrides file is malformed."""

    def __init__(self, path: str, errors: List[str]):
        self.path = path
        self.errors = errors
        super().__init__(f"Invalid timeout profiles file {path}: {'; '.join(errors)}")


def _env_flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "").strip().lower() == "true"


@dataclass
class ShellRPCConfig:
    """Centralized configuration for the Shell-RPC timeout layer.

    Read from the environment on demand so tests and long-lived hosts see
    changes without a restart.
    """

    # Observability
    DEBUG_SHELL_RPC: bool = False  # verbose timeout event logging
    DEBUG_TIMEOUT: bool = False  # enhanced integration start/stop tracing

    # Timeout scaling for package manager operations
    TIMEOUT_MULTIPLIER: float = 1.0
    CI_TIMEOUT_MULTIPLIER: float = 4.0  # network operations are slower in CI

    # Optional YAML file with per-profile threshold overrides
    PROFILES_FILE: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ShellRPCConfig":
        """Create configuration from environment variables.

        Recognized variables: DEBUG_SHELL_RPC, DEBUG_TIMEOUT,
        PKG_LOCAL_TIMEOUT_MULTIPLIER, CI and PKG_LOCAL_TIMEOUT_PROFILES.
        """
        env = os.environ if environ is None else environ
        instance = cls()
        instance.DEBUG_SHELL_RPC = _env_flag(env, "DEBUG_SHELL_RPC")
        instance.DEBUG_TIMEOUT = _env_flag(env, "DEBUG_TIMEOUT")
        instance.PROFILES_FILE = env.get("PKG_LOCAL_TIMEOUT_PROFILES") or None

        raw_multiplier = env.get("PKG_LOCAL_TIMEOUT_MULTIPLIER", "").strip()
        if raw_multiplier:
            try:
                multiplier = float(raw_multiplier)
            except ValueError:
                multiplier = 0.0
            if multiplier > 0:
                instance.TIMEOUT_MULTIPLIER = multiplier
            else:
                logger.warning(
                    f"Ignoring invalid PKG_LOCAL_TIMEOUT_MULTIPLIER={raw_multiplier!r}"
                )
        elif env.get("CI"):
            instance.TIMEOUT_MULTIPLIER = instance.CI_TIMEOUT_MULTIPLIER

        return instance

    @classmethod
    def from_dict(cls, config: Dict) -> "ShellRPCConfig":
        """Create configuration from dictionary."""
        instance = cls()
        for key, value in config.items():
            if hasattr(instance, key):
                setattr(instance, key, value)
        return instance

    def to_dict(self) -> Dict:
        """Convert configuration to dictionary."""
        return {
            key: value for key, value in self.__dict__.items()
            if not key.startswith('_')
        }

    def update(self, **kwargs) -> None:
        """Update configuration values."""
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
            else:
                raise ValueError(f"Unknown configuration key: {key}")

    def validate(self) -> List[str]:
        """Validate configuration values and return any errors."""
        errors = []

        if self.TIMEOUT_MULTIPLIER <= 0:
            errors.append("TIMEOUT_MULTIPLIER must be positive")

        if self.CI_TIMEOUT_MULTIPLIER <= 0:
            errors.append("CI_TIMEOUT_MULTIPLIER must be positive")

        if self.PROFILES_FILE is not None and not os.path.isfile(self.PROFILES_FILE):
            errors.append(f"PROFILES_FILE does not exist: {self.PROFILES_FILE}")

        return errors

    def load_profile_overrides(self) -> ProfileOverrides:
        """Threshold overrides from PROFILES_FILE, or {} when unset."""
        if not self.PROFILES_FILE:
            return {}
        return load_profile_overrides(self.PROFILES_FILE)


@dataclass
class PackageManagerTimeouts:
    """Requested timeouts for package manager operations, in milliseconds.

    Values are scaled by the configured multiplier each time they are
    read, so environment changes take effect immediately.

    - immediate: which/where lookups, env var and file existence checks
    - quick: version checks, package listings
    - standard: installs, removals, venv creation, dependency sync
    - extended: large installs, initial cache population
    """

    config: Optional[ShellRPCConfig] = None
    base_values: Dict[str, int] = field(
        default_factory=lambda: {
            "immediate": 1000,
            "quick": 5000,
            "standard": 30000,
            "extended": 60000,
        }
    )

    def _scaled(self, name: str) -> int:
        config = self.config or ShellRPCConfig.from_env()
        return int(self.base_values[name] * config.TIMEOUT_MULTIPLIER)

    @property
    def immediate(self) -> int:
        return self._scaled("immediate")

    @property
    def quick(self) -> int:
        return self._scaled("quick")

    @property
    def standard(self) -> int:
        return self._scaled("standard")

    @property
    def extended(self) -> int:
        return self._scaled("extended")

    def to_dict(self) -> Dict[str, int]:
        return {name: self._scaled(name) for name in self.base_values}


def load_profile_overrides(path: str) -> ProfileOverrides:
    """Load per-profile threshold overrides from a YAML file.

    The file maps profile names to threshold values, either at the top
    level or under a ``profiles`` key::

        profiles:
          pip-install:
            base_timeout: 45000
          npm:
            absolute_maximum: 900000

    Profile and threshold names are normalized (case, hyphens).

    Raises:
        ProfileOverridesError: If the file cannot be parsed or validated.
    """
    try:
        mtime = os.path.getmtime(path)
    except OSError as e:
        raise ProfileOverridesError(path, [str(e)]) from e
    return dict(_load_profile_overrides_cached(path, mtime))


@lru_cache(maxsize=8)
def _load_profile_overrides_cached(path: str, mtime: float) -> Tuple[Tuple[str, Dict[str, int]], ...]:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ProfileOverridesError(path, [str(e)]) from e

    if isinstance(data, dict) and "profiles" in data:
        data = data["profiles"] or {}

    try:
        validated = _PROFILE_OVERRIDES_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise ProfileOverridesError(
            path,
            [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()],
        ) from e

    logger.debug(f"Loaded timeout profile overrides for {sorted(validated)} from {path}")
    return tuple((name, dict(values)) for name, values in validated.items())


def configure_debug_logging(config: Optional[ShellRPCConfig] = None) -> bool:
    """Route pkglocal DEBUG logs to stderr when DEBUG_SHELL_RPC or DEBUG_TIMEOUT is set.

    Returns:
        True if debug logging is enabled.
    """
    config = config or ShellRPCConfig.from_env()
    if not (config.DEBUG_SHELL_RPC or config.DEBUG_TIMEOUT):
        return False

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(logging.DEBUG)
    if not any(getattr(h, "_pkglocal_debug", False) for h in package_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter("[%(name)s] %(levelname)s %(message)s")
        )
        handler._pkglocal_debug = True  # type: ignore[attr-defined]
        package_logger.addHandler(handler)
    return True
