"""Shell-RPC Timeout Domain Errors."""

from typing import List


class ShellTimeoutError(Exception):
    """Base exception for resilient timeout errors."""

    pass


class TimeoutConfigurationError(ShellTimeoutError, ValueError):
    """Raised when a TimeoutConfig violates one or more constraints.

    All violations are collected before raising so the caller sees the
    complete list in a single message.
    """

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Invalid timeout configuration: {', '.join(self.errors)}")


class UnknownTimeoutProfileError(ShellTimeoutError, KeyError):
    """Raised when a tool profile name has no registered configuration."""

    def __init__(self, name: str, available: List[str]):
        self.name = name
        self.available = sorted(available)
        super().__init__(
            f"Unknown timeout profile '{name}'. Available: {', '.join(self.available)}"
        )

    def __str__(self) -> str:
        return self.args[0]
