"""libvirt default NAT network adapter.

Debian ships the default network XML but leaves the network undefined or
inactive. The three sub-checks run in this order: define, then mark
autostart, then start. Each one is skipped when its part already holds.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from ..config import LibvirtSettings
from ..engine import Verdict
from ..errors import ProbeError, RemediationError
from ..host import HostExecutor
from .base import SubsystemAdapter

logger = logging.getLogger(__name__)


@dataclass
class NetworkState:
    """What the probe needs to know about the libvirt network."""
    installed: bool = False
    daemon_active: bool = False
    defined: bool = False
    autostart: bool = False
    active: bool = False

    def problems(self, network: str, service: str) -> list[str]:
        if not self.installed:
            return ["libvirt not installed"]
        if not self.daemon_active:
            return [f"{service} not running"]
        if not self.defined:
            return [f"network '{network}' not defined"]
        problems = []
        if not self.autostart:
            problems.append("autostart off")
        if not self.active:
            problems.append("inactive")
        return problems


def parse_net_info(output: str) -> dict[str, str]:
    """Parse `virsh net-info` key/value lines."""
    info = {}
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            info[key.strip().lower()] = value.strip().lower()
    return info


class DefaultNetworkActive(SubsystemAdapter):
    """Ensure the NAT network is defined, autostarted and active."""

    def __init__(self, executor: HostExecutor, settings: Optional[LibvirtSettings] = None):
        super().__init__(executor)
        self.settings = settings or LibvirtSettings()

    @property
    def name(self) -> str:
        return f"libvirt-network:{self.settings.network}"

    def read_state(self) -> NetworkState:
        state = NetworkState()
        state.installed = self.executor.which("virsh")
        if not state.installed:
            return state
        state.daemon_active = self.service_active(self.settings.service)
        if not state.daemon_active:
            return state

        result = self.executor.run(["virsh", "net-info", self.settings.network])
        if not result.ok:
            if "not found" in result.stderr.lower():
                return state
            raise ProbeError(
                f"virsh net-info {self.settings.network} failed: {result.stderr.strip()}"
            )

        info = parse_net_info(result.stdout)
        state.defined = True
        state.autostart = info.get("autostart") == "yes"
        state.active = info.get("active") == "yes"
        return state

    def probe(self) -> Verdict:
        problems = self.read_state().problems(self.settings.network, self.settings.service)
        if problems:
            return Verdict.unsatisfied(", ".join(problems))
        return Verdict.holds()

    def remediate(self) -> None:
        state = self.read_state()

        if not state.installed:
            if not self.settings.install:
                raise RemediationError("virsh not found and libvirt installation is disabled")
            logger.info("Installing libvirt and dependencies")
            self.executor.run(
                ["apt-get", "install", "-y", *self.settings.packages],
                check=True,
                env={"DEBIAN_FRONTEND": "noninteractive"},
            )

        if not state.daemon_active:
            self.executor.run(
                ["systemctl", "enable", "--now", self.settings.service], check=True
            )

        network = self.settings.network
        state = self.read_state()
        if not state.defined:
            logger.info(f"Defining libvirt network '{network}'")
            self.executor.run(["virsh", "net-define", self.settings.template], check=True)
            state = self.read_state()
        if not state.autostart:
            self.executor.run(["virsh", "net-autostart", network], check=True)
        if not state.active:
            self.executor.run(["virsh", "net-start", network], check=True)
