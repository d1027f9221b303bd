"""Stray default route adapter.

Guests get tap devices named vnet*, which can pick up a link-local address
and install a default route that hijacks the host's traffic.
"""
import fnmatch
import logging

from ..engine import Verdict
from ..errors import RemediationError
from ..host import HostExecutor
from .base import SubsystemAdapter

logger = logging.getLogger(__name__)


def route_devices(output: str) -> list[str]:
    """Devices of the routes in `ip route show` output, in order."""
    devices = []
    for line in output.splitlines():
        words = line.split()
        if "dev" in words:
            index = words.index("dev")
            if index + 1 < len(words):
                devices.append(words[index + 1])
    return devices


class StrayRouteAbsent(SubsystemAdapter):
    """Ensure no default route is bound to a virtual-tap device."""

    def __init__(self, executor: HostExecutor, pattern: str = "vnet*"):
        super().__init__(executor)
        self.pattern = pattern

    @property
    def name(self) -> str:
        return f"stray-routes:{self.pattern}"

    def stray_routes(self) -> list[str]:
        """Device of every stray default route; a device appears once per route."""
        output = self.inspect(["ip", "-4", "route", "show", "default"]).stdout
        return [d for d in route_devices(output) if fnmatch.fnmatchcase(d, self.pattern)]

    def stray_devices(self) -> list[str]:
        return list(dict.fromkeys(self.stray_routes()))

    def probe(self) -> Verdict:
        stray = self.stray_devices()
        if stray:
            return Verdict.unsatisfied(f"default route via {', '.join(stray)}")
        return Verdict.holds()

    def remediate(self) -> None:
        failures = {}
        # `ip route del default dev X` removes one route per call
        for device in self.stray_routes():
            if device in failures:
                continue
            result = self.executor.run(["ip", "route", "del", "default", "dev", device])
            if result.ok:
                logger.info(f"Removed default route via {device}")
                continue
            # The guest may have shut down meanwhile; a vanished route is the goal
            if device not in self.stray_devices():
                logger.debug(f"Default route via {device} already gone")
                continue
            failures[device] = result.stderr.strip()
        if failures:
            detail = "; ".join(f"{device}: {error}" for device, error in failures.items())
            raise RemediationError(f"Could not delete routes: {detail}")
