"""IPv4 forwarding adapter: live flag and persisted setting."""
import logging
import re
from typing import Optional

from ..config import SysctlSettings
from ..engine import Verdict
from ..host import HostExecutor
from .base import SubsystemAdapter

logger = logging.getLogger(__name__)


class ForwardingEnabled(SubsystemAdapter):
    """Ensure forwarding is on now and after reboot.

    The live flag and the persisted line are independent sub-checks; each
    is only touched when it is wrong.
    """

    def __init__(self, executor: HostExecutor, settings: Optional[SysctlSettings] = None):
        super().__init__(executor)
        self.settings = settings or SysctlSettings()
        self._line = re.compile(rf"^\s*{re.escape(self.settings.key)}\s*=\s*(\S*)\s*$")

    @property
    def name(self) -> str:
        return "ip-forward"

    @property
    def wanted_line(self) -> str:
        return f"{self.settings.key}=1"

    def live_enabled(self) -> bool:
        return self.inspect(["sysctl", "-n", self.settings.key]).stdout.strip() == "1"

    def persisted_values(self) -> list[str]:
        """Values assigned to the key in the sysctl file, in file order."""
        values = []
        for line in self.read_lines(self.settings.conf) or []:
            match = self._line.match(line)
            if match:
                values.append(match.group(1))
        return values

    def persisted_enabled(self) -> bool:
        # sysctl applies lines in order; the last assignment wins
        values = self.persisted_values()
        return bool(values) and values[-1] == "1"

    def probe(self) -> Verdict:
        problems = []
        if not self.live_enabled():
            problems.append(f"{self.settings.key} is 0")
        if not self.persisted_enabled():
            problems.append(f"not persisted in {self.settings.conf}")
        if problems:
            return Verdict.unsatisfied(", ".join(problems))
        return Verdict.holds()

    def remediate(self) -> None:
        if not self.live_enabled():
            self.executor.run(["sysctl", "-w", self.wanted_line], check=True)

        if not self.persisted_enabled():
            lines = self.read_lines(self.settings.conf) or []
            # Rewrite conflicting assignments instead of stacking another line
            replaced = False
            for i, line in enumerate(lines):
                if self._line.match(line):
                    lines[i] = self.wanted_line
                    replaced = True
            if not replaced:
                lines.append(self.wanted_line)
            self.executor.write_file(self.settings.conf, "\n".join(lines) + "\n")
            logger.info(f"Persisted {self.wanted_line} in {self.settings.conf}")
