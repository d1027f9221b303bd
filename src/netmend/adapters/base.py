"""Base subsystem adapter."""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..engine import Action, Verdict
from ..errors import ProbeError
from ..host import CommandResult, HostExecutor

logger = logging.getLogger(__name__)


class SubsystemAdapter(ABC):
    """Abstract base class for one managed resource on a host.

    Adapters hold no state between calls: probe() reads the live host and
    remediate() changes it. Both go through the executor only.
    """

    def __init__(self, executor: HostExecutor):
        self.executor = executor

    @property
    @abstractmethod
    def name(self) -> str:
        """Action name shown in reports."""
        pass

    @abstractmethod
    def probe(self) -> Verdict:
        """Inspect the host without changing it."""
        pass

    @abstractmethod
    def remediate(self) -> None:
        """Bring the host to the desired state; raise on failure."""
        pass

    def action(self) -> Action:
        """Bind this adapter into an Action."""
        return Action(self.name, self.probe, self.remediate)

    @property
    def host_id(self) -> str:
        return self.executor.host_id

    # Helpers

    def inspect(self, argv: list[str], allow_codes: tuple = (0,)) -> CommandResult:
        """Run a read-only command for a probe.

        Raises:
            ProbeError: If the command exits with a code outside allow_codes
        """
        result = self.executor.run(argv)
        if result.returncode not in allow_codes:
            detail = (result.stderr or result.stdout).strip()
            raise ProbeError(f"'{result.command}' exited {result.returncode}: {detail}")
        return result

    def service_active(self, unit: str) -> bool:
        return self.executor.run(["systemctl", "is-active", "--quiet", unit]).ok

    def read_lines(self, path: str) -> Optional[list[str]]:
        content = self.executor.read_file(path)
        if content is None:
            return None
        return content.splitlines()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, host={self.host_id})"
