"""Base host abstraction: run commands and touch files on the target."""
import logging
import shlex
from abc import ABC, abstractmethod
from typing import Optional

from ..errors import CommandError

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 120


class CommandResult:
    """Result of a command execution on a host."""

    def __init__(
        self,
        argv: list[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ):
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command(self) -> str:
        return shlex.join(self.argv)

    def check(self) -> "CommandResult":
        """Raise CommandError unless the command succeeded."""
        if not self.ok:
            raise CommandError(self)
        return self

    def to_dict(self) -> dict:
        return {
            "command": self.command,
            "returncode": self.returncode,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }

    def __repr__(self) -> str:
        status = "OK" if self.ok else f"EXIT {self.returncode}"
        return f"CommandResult({status}, {self.command!r})"


class HostExecutor(ABC):
    """Abstract base class for reaching a host.

    Adapters only ever talk to the machine through this interface, so the
    same probes and remediations run locally or over SSH.
    """

    def __init__(self, host_id: str, timeout: int = DEFAULT_COMMAND_TIMEOUT):
        self.host_id = host_id
        self.timeout = timeout

    def run(
        self,
        argv: list[str],
        check: bool = False,
        env: Optional[dict[str, str]] = None,
        timeout: Optional[int] = None,
    ) -> CommandResult:
        """Run a command.

        Args:
            argv: Command and arguments, never passed through a shell
            check: Raise CommandError on a non-zero exit
            env: Extra environment variables
            timeout: Seconds before the command is abandoned

        Returns:
            CommandResult
        """
        logger.debug(f"[{self.host_id}] $ {shlex.join(argv)}")
        result = self._run(argv, env or {}, timeout or self.timeout)
        if not result.ok:
            logger.debug(
                f"[{self.host_id}] exit {result.returncode}: {result.stderr.strip()}"
            )
        if check:
            result.check()
        return result

    @abstractmethod
    def _run(self, argv: list[str], env: dict[str, str], timeout: int) -> CommandResult:
        """Execute argv on the host."""
        pass

    @abstractmethod
    def read_file(self, path: str) -> Optional[str]:
        """Return file contents, or None if the file does not exist."""
        pass

    @abstractmethod
    def write_file(self, path: str, content: str, mode: int = 0o644) -> None:
        """Create or replace a file, creating parent directories."""
        pass

    @abstractmethod
    def list_dir(self, path: str) -> list[str]:
        """Return sorted entry names of a directory, empty if it is missing."""
        pass

    def which(self, name: str) -> bool:
        """Check whether a command is available on the host."""
        return self.run(["sh", "-c", f"command -v {shlex.quote(name)}"]).ok

    def close(self) -> None:
        """Release any connection held to the host."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
