"""Runner inputs resolved from the host before any action runs."""
import logging
from typing import Optional

from .adapters.netmanager import NETWORKMANAGER, NETWORKD, FALLBACK
from .errors import PreconditionError
from .host import HostExecutor
from .utils.logging_config import timed

logger = logging.getLogger(__name__)


@timed("require_root")
def require_root(executor: HostExecutor) -> None:
    """Every adapter mutates system state, so the run needs uid 0.

    Raises:
        PreconditionError: If the effective user is not root
    """
    result = executor.run(["id", "-u"])
    if not result.ok:
        raise PreconditionError(f"Cannot determine user id on {executor.host_id}")
    if result.stdout.strip() != "0":
        raise PreconditionError(
            f"Root privileges required on {executor.host_id} (uid {result.stdout.strip()})"
        )


@timed("detect_uplink")
def detect_uplink(executor: HostExecutor, probe_address: str = "1.1.1.1") -> str:
    """Find the physical uplink: the device routing traffic to probe_address.

    Raises:
        PreconditionError: If no device can be found
    """
    result = executor.run(["ip", "-o", "-4", "route", "get", probe_address])
    words = result.stdout.split() if result.ok else []
    if "dev" in words and words.index("dev") + 1 < len(words):
        uplink = words[words.index("dev") + 1]
        logger.debug(f"Uplink via route to {probe_address}: {uplink}")
        return uplink
    raise PreconditionError("No uplink interface detected. Pass it as an argument.")


def resolve_uplink(
    executor: HostExecutor,
    explicit: Optional[str] = None,
    configured: Optional[str] = None,
    probe_address: str = "1.1.1.1",
) -> str:
    """Command line wins over the settings file, which wins over detection."""
    if explicit:
        return explicit
    if configured:
        return configured
    return detect_uplink(executor, probe_address)


@timed("detect_bridge")
def detect_bridge(executor: HostExecutor, libvirt_bridge: str = "virbr0") -> Optional[str]:
    """Find the primary bridge, None when the host has none.

    Order: first bridge listed by brctl, first br* link, the libvirt bridge.
    """
    if executor.which("brctl"):
        result = executor.run(["brctl", "show"])
        lines = result.stdout.splitlines() if result.ok else []
        # Line 0 is the header; bridge names start in column 0
        for line in lines[1:]:
            if line and not line[0].isspace():
                return line.split()[0]

    result = executor.run(["ip", "-br", "link"])
    names = []
    if result.ok:
        names = [l.split()[0].split("@")[0] for l in result.stdout.splitlines() if l.strip()]
    for name in names:
        if name.startswith("br"):
            return name
    if libvirt_bridge in names:
        return libvirt_bridge

    logger.debug("No bridge device found")
    return None


def detect_network_manager(executor: HostExecutor) -> str:
    """Which of the mutually exclusive managers is running."""
    if executor.run(["systemctl", "is-active", "--quiet", "NetworkManager"]).ok:
        return NETWORKMANAGER
    if executor.run(["systemctl", "is-active", "--quiet", "systemd-networkd"]).ok:
        return NETWORKD
    return FALLBACK
