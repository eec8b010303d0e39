"""pkglocal - Resilient timeouts for Shell-RPC package manager commands."""

from pkglocal.domains.timeout import (  # noqa: F401
    ResilientTimeout,
    ShellRPCCompatTimeout,
    TimeoutConfig,
)

__all__ = ["ResilientTimeout", "ShellRPCCompatTimeout", "TimeoutConfig"]

__version__ = "0.1.0"
