"""Settings loaded from YAML configuration.

Every key has a default matching a stock Debian KVM host, so a settings file
is only needed to override something:

```yaml
uplink: eno1
tap_pattern: "vnet*"
firmware:
  package: firmware-bnx2
  driver: bnx2
libvirt:
  network: default
  install: false
sysctl:
  conf: /etc/sysctl.d/99-forwarding.conf
```
"""
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

OFFLOAD_FEATURES = ["gro", "gso", "tso", "sg", "rx", "tx"]

LIBVIRT_PACKAGES = [
    "qemu-kvm",
    "libvirt-daemon-system",
    "libvirt-clients",
    "dnsmasq-base",
]


@dataclass
class FirmwareSettings:
    """Driver firmware that must be installed when the kernel asks for it."""
    package: str = "firmware-bnx2"
    driver: str = "bnx2"
    # None: read VERSION_CODENAME from /etc/os-release
    codename: Optional[str] = None
    sources_list: str = "/etc/apt/sources.list"
    sources_dir: str = "/etc/apt/sources.list.d"
    components: list[str] = field(
        default_factory=lambda: ["contrib", "non-free", "non-free-firmware"]
    )


@dataclass
class OffloadSettings:
    """NIC offloads to disable and the boot unit that keeps them disabled."""
    features: list[str] = field(default_factory=lambda: OFFLOAD_FEATURES.copy())
    unit_template: str = "/etc/systemd/system/disable-offload@.service"
    ethtool_path: str = "/usr/sbin/ethtool"
    include_bridge: bool = True


@dataclass
class LibvirtSettings:
    """libvirt NAT network that must be defined, autostarted and running."""
    network: str = "default"
    template: str = "/usr/share/libvirt/networks/default.xml"
    service: str = "libvirtd"
    bridge: str = "virbr0"
    install: bool = True
    packages: list[str] = field(default_factory=lambda: LIBVIRT_PACKAGES.copy())


@dataclass
class NetworkManagerSettings:
    """Where each supported network manager reads its exclusion rule."""
    networkmanager_conf: str = "/etc/NetworkManager/NetworkManager.conf"
    networkmanager_snippet: str = "/etc/NetworkManager/conf.d/90-libvirt-vnet-ignore.conf"
    networkd_file: str = "/etc/systemd/network/99-libvirt-vnet.network"
    avahi_conf: str = "/etc/avahi/avahi-daemon.conf"


@dataclass
class SysctlSettings:
    """Forwarding flag, live and persisted."""
    key: str = "net.ipv4.ip_forward"
    conf: str = "/etc/sysctl.conf"


@dataclass
class Settings:
    """Complete netmend configuration."""
    uplink: Optional[str] = None
    # Address whose route decides the uplink when none is configured
    probe_address: str = "1.1.1.1"
    tap_pattern: str = "vnet*"
    command_timeout: int = 120
    audit_log: str = "~/.netmend/audit.log"
    firmware: FirmwareSettings = field(default_factory=FirmwareSettings)
    offload: OffloadSettings = field(default_factory=OffloadSettings)
    libvirt: LibvirtSettings = field(default_factory=LibvirtSettings)
    network_manager: NetworkManagerSettings = field(default_factory=NetworkManagerSettings)
    sysctl: SysctlSettings = field(default_factory=SysctlSettings)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "Settings":
        """Build settings from a parsed YAML mapping.

        Raises:
            ConfigError: On unknown keys or wrongly shaped sections
        """
        data = dict(data or {})
        sections = {
            "firmware": FirmwareSettings,
            "offload": OffloadSettings,
            "libvirt": LibvirtSettings,
            "network_manager": NetworkManagerSettings,
            "sysctl": SysctlSettings,
        }

        kwargs: dict[str, Any] = {}
        for name, section_cls in sections.items():
            if name in data:
                kwargs[name] = _build(section_cls, data.pop(name), name)

        kwargs.update(_check_keys(cls, data, "settings", exclude=set(sections)))
        return cls(**kwargs)


def _check_keys(cls, data: dict, where: str, exclude: set = frozenset()) -> dict:
    known = {f.name for f in fields(cls)} - set(exclude)
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in {where}: {', '.join(unknown)}")
    return data


def _build(cls, data: Any, where: str):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{where}' must be a mapping")
    return cls(**_check_keys(cls, data, f"section '{where}'"))


def find_config() -> Optional[Path]:
    """Find netmend.yaml in the usual places."""
    search_paths = [
        Path.cwd() / "configs" / "netmend.yaml",
        Path.cwd() / "netmend.yaml",
        Path.home() / ".config" / "netmend" / "netmend.yaml",
        Path("/etc/netmend/netmend.yaml"),
    ]

    for path in search_paths:
        if path.exists():
            return path
    return None


def load_settings(config_path: Optional[str] = None) -> Settings:
    """Load settings from a file, or from the first one found.

    An explicitly given path must exist; without one, a missing file simply
    means built-in defaults.
    """
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Settings file not found: {path}")
    else:
        path = find_config()
        if path is None:
            logger.debug("No netmend.yaml found, using defaults")
            return Settings()

    logger.debug(f"Loading settings from {path}")
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise ConfigError(f"{path}: root must be a mapping")
    return Settings.from_dict(data)
