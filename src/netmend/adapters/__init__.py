"""Subsystem adapters - one per managed resource on the host."""
from .base import SubsystemAdapter
from .firmware import FirmwarePresence
from .libvirt import DefaultNetworkActive
from .netmanager import ManagedIgnoreRule, NETWORKMANAGER, NETWORKD, FALLBACK
from .offload import OffloadDisabled, OffloadPersistence
from .routes import StrayRouteAbsent
from .sysctl import ForwardingEnabled

__all__ = [
    "SubsystemAdapter",
    "FirmwarePresence",
    "OffloadDisabled",
    "OffloadPersistence",
    "DefaultNetworkActive",
    "StrayRouteAbsent",
    "ManagedIgnoreRule",
    "ForwardingEnabled",
    "NETWORKMANAGER",
    "NETWORKD",
    "FALLBACK",
]
