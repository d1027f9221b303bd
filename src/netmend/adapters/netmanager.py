"""Network manager exclusion rule adapter.

Whichever manager runs must leave guest tap devices alone, otherwise it
configures them and may add the stray default routes cleaned up elsewhere.
Supported managers, in priority order:

- NetworkManager: keyfile ``unmanaged-devices`` snippet, then reload
- systemd-networkd: ``.network`` file marking the devices unmanaged with no
  link-local addressing, then restart
- fallback: avahi-daemon's ``deny-interfaces`` list, extended with the tap
  devices present right now (avahi takes names, not patterns)
"""
import fnmatch
import logging
import posixpath
import re
from typing import Optional

from ..config import NetworkManagerSettings
from ..engine import Verdict
from ..errors import NetmendError
from ..host import HostExecutor
from .base import SubsystemAdapter

logger = logging.getLogger(__name__)

NETWORKMANAGER = "networkmanager"
NETWORKD = "networkd"
FALLBACK = "fallback"

MANAGERS = (NETWORKMANAGER, NETWORKD, FALLBACK)

NM_SNIPPET = """\
[keyfile]
unmanaged-devices=interface-name:{pattern}
"""

NETWORKD_FILE = """\
[Match]
Name={pattern}

[Link]
Unmanaged=yes

[Network]
LinkLocalAddressing=no
"""


def link_names(output: str) -> list[str]:
    """Device names from `ip -o link show` output."""
    names = []
    for line in output.splitlines():
        parts = line.split(":", 2)
        if len(parts) < 3:
            continue
        name = parts[1].strip().split("@")[0]
        if name:
            names.append(name)
    return names


class ManagedIgnoreRule(SubsystemAdapter):
    """Ensure the active network manager ignores virtual-tap devices."""

    def __init__(
        self,
        executor: HostExecutor,
        manager: str,
        pattern: str = "vnet*",
        settings: Optional[NetworkManagerSettings] = None,
    ):
        super().__init__(executor)
        if manager not in MANAGERS:
            raise NetmendError(f"Unknown network manager: {manager}")
        self.manager = manager
        self.pattern = pattern
        self.settings = settings or NetworkManagerSettings()

    @property
    def name(self) -> str:
        return f"ignore-rule:{self.manager}"

    def probe(self) -> Verdict:
        if self.manager == NETWORKMANAGER:
            return self._probe_networkmanager()
        if self.manager == NETWORKD:
            return self._probe_networkd()
        return self._probe_avahi()

    def remediate(self) -> None:
        if self.manager == NETWORKMANAGER:
            self._remediate_networkmanager()
        elif self.manager == NETWORKD:
            self._remediate_networkd()
        else:
            self._remediate_avahi()

    # NetworkManager

    def _nm_files(self) -> list[str]:
        conf_dir = posixpath.dirname(self.settings.networkmanager_snippet)
        files = [self.settings.networkmanager_conf]
        files += [
            posixpath.join(conf_dir, entry)
            for entry in self.executor.list_dir(conf_dir)
            if entry.endswith(".conf")
        ]
        return files

    def _probe_networkmanager(self) -> Verdict:
        wanted = f"interface-name:{self.pattern}"
        for path in self._nm_files():
            for line in self.read_lines(path) or []:
                key, sep, value = line.partition("=")
                if not sep or key.strip() != "unmanaged-devices":
                    continue
                specs = [s.strip() for s in re.split(r"[;,]", value)]
                if wanted in specs:
                    return Verdict.holds(path)
        return Verdict.unsatisfied(f"NetworkManager manages {self.pattern}")

    def _remediate_networkmanager(self) -> None:
        path = self.settings.networkmanager_snippet
        self.executor.write_file(path, NM_SNIPPET.format(pattern=self.pattern))
        logger.info(f"Wrote {path}")
        self.executor.run(["systemctl", "reload", "NetworkManager"], check=True)

    # systemd-networkd

    def _probe_networkd(self) -> Verdict:
        directory = posixpath.dirname(self.settings.networkd_file)
        for entry in self.executor.list_dir(directory):
            if not entry.endswith(".network"):
                continue
            lines = [l.strip() for l in self.read_lines(posixpath.join(directory, entry)) or []]
            names = []
            for line in lines:
                if line.startswith("Name="):
                    names += line[len("Name="):].split()
            if self.pattern in names and "Unmanaged=yes" in lines:
                return Verdict.holds(entry)
        return Verdict.unsatisfied(f"systemd-networkd manages {self.pattern}")

    def _remediate_networkd(self) -> None:
        path = self.settings.networkd_file
        self.executor.write_file(path, NETWORKD_FILE.format(pattern=self.pattern))
        logger.info(f"Wrote {path}")
        self.executor.run(["systemctl", "restart", "systemd-networkd"], check=True)

    # avahi fallback

    def _tap_devices(self) -> list[str]:
        output = self.inspect(["ip", "-o", "link", "show"]).stdout
        return [n for n in link_names(output) if fnmatch.fnmatchcase(n, self.pattern)]

    def _denied(self, lines: list[str]) -> list[str]:
        section = None
        for line in lines:
            stripped = line.strip()
            if stripped.startswith("["):
                section = stripped
                continue
            key, sep, value = stripped.partition("=")
            if section == "[server]" and sep and key.strip() == "deny-interfaces":
                return [v.strip() for v in value.split(",") if v.strip()]
        return []

    def _probe_avahi(self) -> Verdict:
        lines = self.read_lines(self.settings.avahi_conf)
        if lines is None:
            return Verdict.holds("no network manager running")
        missing = [d for d in self._tap_devices() if d not in self._denied(lines)]
        if missing:
            return Verdict.unsatisfied(f"avahi-daemon announces on {', '.join(missing)}")
        return Verdict.holds()

    def _remediate_avahi(self) -> None:
        path = self.settings.avahi_conf
        lines = self.read_lines(path) or []
        denied = self._denied(lines)
        denied += [d for d in self._tap_devices() if d not in denied]
        entry = f"deny-interfaces={','.join(denied)}"

        section = None
        server_at = None
        replaced = False
        for i, line in enumerate(lines):
            stripped = line.strip()
            if stripped.startswith("["):
                section = stripped
                if section == "[server]":
                    server_at = i
                continue
            if section == "[server]" and stripped.split("=")[0].strip() == "deny-interfaces":
                lines[i] = entry
                replaced = True
                break
        if not replaced:
            if server_at is None:
                lines += ["[server]", entry]
            else:
                lines.insert(server_at + 1, entry)

        self.executor.write_file(path, "\n".join(lines) + "\n")
        logger.info(f"Updated deny-interfaces in {path}")
        if self.service_active("avahi-daemon"):
            self.executor.run(["systemctl", "restart", "avahi-daemon"], check=True)
