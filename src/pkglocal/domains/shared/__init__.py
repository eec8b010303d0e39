"""Shared Kernel - Types shared across bounded contexts."""

from pkglocal.domains.shared.kernel import (
    ThresholdName,
    TimeoutProfileName,
)

__all__ = [
    "ThresholdName",
    "TimeoutProfileName",
]
