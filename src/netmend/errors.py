"""Exception hierarchy for netmend."""
from typing import Optional


class NetmendError(Exception):
    """Base class for all netmend errors."""


class ConfigError(NetmendError):
    """Invalid or unreadable settings file."""


class PreconditionError(NetmendError):
    """A run cannot start (no privilege, no uplink interface).

    Raised before any Action executes.
    """


class ProbeError(NetmendError):
    """Inspecting the host failed (tool missing, permission denied)."""


class RemediationError(NetmendError):
    """A mutating step failed."""


class CommandError(RemediationError):
    """A host command exited non-zero."""

    def __init__(self, result, message: Optional[str] = None):
        self.result = result
        if message is None:
            detail = (result.stderr or result.stdout).strip()
            message = f"'{result.command}' exited {result.returncode}"
            if detail:
                message += f": {detail}"
        super().__init__(message)
