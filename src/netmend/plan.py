"""The fixed, ordered list of actions for one host.

Order matters: a device's boot unit is enabled only after that device's
offloads have been handled, and the ignore rule follows the route cleanup.
"""
import logging
from typing import Iterator, Optional

from .adapters import (
    DefaultNetworkActive,
    FirmwarePresence,
    ForwardingEnabled,
    ManagedIgnoreRule,
    OffloadDisabled,
    OffloadPersistence,
    StrayRouteAbsent,
)
from .config import Settings
from .detect import detect_bridge
from .engine import Action
from .host import HostExecutor

logger = logging.getLogger(__name__)


def build_actions(
    settings: Settings,
    executor: HostExecutor,
    uplink: str,
    bridge: Optional[str],
    manager: str,
) -> Iterator[Action]:
    """Bind adapters for this host into actions.

    Actions are produced lazily. When no bridge was found up front, the
    bridge is looked for again once the libvirt network action has run,
    and its offload actions follow right after it.

    Args:
        settings: Loaded settings
        executor: How to reach the host
        uplink: Physical uplink device
        bridge: Primary bridge, None when none exists yet
        manager: Active network manager (see detect_network_manager)
    """
    include_bridge = settings.offload.include_bridge
    devices = [uplink]
    if bridge and include_bridge and bridge != uplink:
        devices.append(bridge)

    yield FirmwarePresence(executor, settings.firmware).action()
    for device in devices:
        yield OffloadDisabled(executor, device, settings.offload).action()
    for device in devices:
        yield OffloadPersistence(executor, device, settings.offload).action()
    yield DefaultNetworkActive(executor, settings.libvirt).action()

    # The libvirt bridge only exists once its network has started
    if bridge is None and include_bridge:
        late = detect_bridge(executor, settings.libvirt.bridge)
        if late and late != uplink:
            logger.info(f"Bridge {late} appeared, adding its offload actions")
            yield OffloadDisabled(executor, late, settings.offload).action()
            yield OffloadPersistence(executor, late, settings.offload).action()
        else:
            logger.debug("No bridge present, skipping bridge offload actions")

    yield StrayRouteAbsent(executor, settings.tap_pattern).action()
    yield ManagedIgnoreRule(executor, manager, settings.tap_pattern, settings.network_manager).action()
    yield ForwardingEnabled(executor, settings.sysctl).action()
