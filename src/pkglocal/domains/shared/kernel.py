"""Shared Kernel - Types shared across bounded contexts.

Kept minimal: only the names that cross the boundary between the
Shell-RPC timeout context and the configuration layer live here.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BeforeValidator


# ============================================================
# Literal type aliases with BeforeValidator for case-insensitive
# normalization. Accepts "Pip-Install", " NPM " and similar at
# runtime while the schema stays a flat enum.
# ============================================================


def _normalize_str(v: Any) -> Any:
    """Normalize string input: strip whitespace, lowercase."""
    return v.strip().lower() if isinstance(v, str) else v


def _normalize_identifier(v: Any) -> Any:
    """Normalize to a snake_case identifier ("Pip-Install" -> "pip_install")."""
    if not isinstance(v, str):
        return v
    return _normalize_str(v).replace("-", "_").replace(" ", "_")


TimeoutProfileName = Annotated[
    Literal[
        "pip_install",
        "pip_uninstall",
        "uv",
        "npm",
        "maven",
        "quick_command",
        "generic",
    ],
    BeforeValidator(_normalize_identifier),
]

ThresholdName = Annotated[
    Literal["base_timeout", "activity_extension", "grace_timeout", "absolute_maximum"],
    BeforeValidator(_normalize_identifier),
]
