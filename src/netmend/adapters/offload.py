"""NIC offload adapters.

Offloads (GRO, GSO, TSO, scatter/gather, rx/tx checksumming) corrupt packets
bridged or NATed into guests. OffloadDisabled turns them off now;
OffloadPersistence installs a templated one-shot unit that turns them off
again at every boot.
"""
import logging
import posixpath
from dataclasses import dataclass, field
from typing import Optional

from ..config import OffloadSettings
from ..engine import Verdict
from ..errors import RemediationError
from ..host import HostExecutor
from .base import SubsystemAdapter

logger = logging.getLogger(__name__)

# ethtool -K short names -> names reported by ethtool -k
FEATURE_NAMES = {
    "gro": "generic-receive-offload",
    "gso": "generic-segmentation-offload",
    "tso": "tcp-segmentation-offload",
    "sg": "scatter-gather",
    "rx": "rx-checksumming",
    "tx": "tx-checksumming",
    "lro": "large-receive-offload",
    "ufo": "udp-fragmentation-offload",
    "rxvlan": "rx-vlan-offload",
    "txvlan": "tx-vlan-offload",
}

UNIT_TEMPLATE = """\
[Unit]
Description=Disable NIC offloads on %i
After=network-online.target
Wants=network-online.target

[Service]
Type=oneshot
ExecStart={ethtool} -K %i {settings}

[Install]
WantedBy=multi-user.target
"""


@dataclass
class OffloadState:
    """Offload flags of one device, keyed by short feature name."""
    device: str
    enabled: list[str] = field(default_factory=list)
    fixed: list[str] = field(default_factory=list)  # on, but not changeable


def parse_features(output: str) -> dict[str, tuple[bool, bool]]:
    """Parse `ethtool -k` output into {long_name: (on, fixed)}.

    Only top-level features are returned; indented sub-features are skipped.
    """
    features = {}
    for line in output.splitlines():
        if not line or line[0].isspace() or line.startswith("Features for"):
            continue
        name, sep, rest = line.partition(":")
        if not sep:
            continue
        words = rest.split()
        if not words:
            continue
        features[name.strip()] = (words[0] == "on", "[fixed]" in rest)
    return features


class OffloadDisabled(SubsystemAdapter):
    """Ensure a fixed set of offloads is off on one device."""

    def __init__(
        self,
        executor: HostExecutor,
        device: str,
        settings: Optional[OffloadSettings] = None,
    ):
        super().__init__(executor)
        self.device = device
        self.settings = settings or OffloadSettings()

    @property
    def name(self) -> str:
        return f"disable-offload:{self.device}"

    def read_state(self) -> OffloadState:
        output = self.inspect(["ethtool", "-k", self.device]).stdout
        reported = parse_features(output)
        state = OffloadState(self.device)
        for short in self.settings.features:
            on, fixed = reported.get(FEATURE_NAMES.get(short, short), (False, False))
            if not on:
                continue
            if fixed:
                state.fixed.append(short)
            else:
                state.enabled.append(short)
        return state

    def probe(self) -> Verdict:
        state = self.read_state()
        if state.fixed:
            logger.warning(
                f"{self.device}: {', '.join(state.fixed)} fixed on by the driver, ignoring"
            )
        if state.enabled:
            return Verdict.unsatisfied(f"{', '.join(state.enabled)} on")
        return Verdict.holds()

    def remediate(self) -> None:
        state = self.read_state()
        failures = []
        for feature in state.enabled:
            result = self.executor.run(["ethtool", "-K", self.device, feature, "off"])
            if not result.ok:
                failures.append(f"{feature}: {(result.stderr or result.stdout).strip()}")
        if failures:
            raise RemediationError(
                f"Could not disable offloads on {self.device}: {'; '.join(failures)}"
            )
        logger.debug(f"{self.device}: disabled {', '.join(state.enabled)}")


class OffloadPersistence(SubsystemAdapter):
    """Ensure the boot-time offload unit exists and is enabled for a device."""

    def __init__(
        self,
        executor: HostExecutor,
        device: str,
        settings: Optional[OffloadSettings] = None,
    ):
        super().__init__(executor)
        self.device = device
        self.settings = settings or OffloadSettings()

    @property
    def name(self) -> str:
        return f"persist-offload:{self.device}"

    @property
    def unit(self) -> str:
        """Instance name, e.g. disable-offload@eth0.service."""
        template = posixpath.basename(self.settings.unit_template)
        prefix, _, suffix = template.partition("@")
        return f"{prefix}@{self.device}{suffix}"

    def render_template(self) -> str:
        return UNIT_TEMPLATE.format(
            ethtool=self.settings.ethtool_path,
            settings=" ".join(f"{f} off" for f in self.settings.features),
        )

    def template_state(self) -> str:
        """Template file on the host against render_template(): current, outdated or missing."""
        content = self.executor.read_file(self.settings.unit_template)
        if content is None:
            return "missing"
        return "current" if content == self.render_template() else "outdated"

    def unit_enabled(self) -> bool:
        result = self.executor.run(["systemctl", "is-enabled", self.unit])
        return result.stdout.strip() == "enabled"

    def probe(self) -> Verdict:
        missing = []
        template = self.template_state()
        if template != "current":
            missing.append(f"{self.settings.unit_template} {template}")
        if not self.unit_enabled():
            missing.append(f"{self.unit} not enabled")
        if missing:
            return Verdict.unsatisfied(", ".join(missing))
        return Verdict.holds()

    def remediate(self) -> None:
        if self.template_state() != "current":
            self.executor.write_file(self.settings.unit_template, self.render_template())
            self.executor.run(["systemctl", "daemon-reload"], check=True)
            logger.info(f"Installed {self.settings.unit_template}")
        if not self.unit_enabled():
            self.executor.run(["systemctl", "enable", self.unit], check=True)
