"""Host executors: how netmend reaches the machine it reconciles."""
from typing import Optional

from .base import HostExecutor, CommandResult, DEFAULT_COMMAND_TIMEOUT
from .local import LocalExecutor
from .ssh import SSHExecutor


def create_executor(
    host: Optional[str] = None,
    username: str = "root",
    port: int = 22,
    password: Optional[str] = None,
    key_filename: Optional[str] = None,
    timeout: int = DEFAULT_COMMAND_TIMEOUT,
) -> HostExecutor:
    """Create a local executor, or an SSH executor when a host is given."""
    if host is None or host in ("localhost", "local"):
        return LocalExecutor(timeout=timeout)
    return SSHExecutor(
        host,
        username=username,
        port=port,
        password=password,
        key_filename=key_filename,
        timeout=timeout,
    )


__all__ = [
    "HostExecutor",
    "CommandResult",
    "LocalExecutor",
    "SSHExecutor",
    "create_executor",
]
