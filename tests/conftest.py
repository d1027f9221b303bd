"""Shared fixtures: a simulated Debian KVM host."""
import posixpath
from typing import Optional

import pytest

from netmend.host.base import CommandResult, HostExecutor

LONG_NAMES = {
    "sg": "scatter-gather",
    "tx": "tx-checksumming",
    "rx": "rx-checksumming",
    "tso": "tcp-segmentation-offload",
    "gso": "generic-segmentation-offload",
    "gro": "generic-receive-offload",
}

NET_NOT_FOUND = (
    "error: failed to get network 'default'\n"
    "error: Network not found: no network with matching name 'default'\n"
)


class FakeHost(HostExecutor):
    """In-memory host answering the commands netmend issues.

    State is plain attributes so tests can set up any starting point and
    inspect the result. Failures are injected per command prefix.
    """

    def __init__(self):
        super().__init__("fakehost")
        self.uid = 0
        self.uplink: Optional[str] = "eth0"
        self.files: dict[str, str] = {
            "/etc/apt/sources.list": (
                "deb http://deb.debian.org/debian bookworm main\n"
                "deb http://security.debian.org/debian-security bookworm-security main\n"
            ),
            "/etc/os-release": 'PRETTY_NAME="Debian GNU/Linux 12"\nVERSION_CODENAME=bookworm\n',
            "/usr/share/libvirt/networks/default.xml": "<network><name>default</name></network>\n",
            "/etc/sysctl.conf": "# /etc/sysctl.conf\n#net.ipv4.ip_forward=1\n",
            "/etc/NetworkManager/NetworkManager.conf": "[main]\nplugins=ifupdown,keyfile\n",
        }
        self.commands_available = {
            "ethtool", "ip", "systemctl", "virsh", "dpkg-query", "apt-get",
            "sysctl", "dmesg", "id",
        }
        self.dmesg = "[    1.000000] Linux version 6.1.0-18-amd64\n"
        self.packages: set[str] = {"libvirt-clients", "libvirt-daemon-system"}
        self.links = ["lo", "eth0"]
        self.offloads: dict[str, dict[str, str]] = {
            "eth0": {name: "off" for name in LONG_NAMES.values()},
        }
        self.routes = ["default via 192.168.1.1 dev eth0 proto dhcp metric 100"]
        self.active_services = {"libvirtd", "NetworkManager"}
        self.enabled_units: set[str] = set()
        self.network: Optional[dict[str, bool]] = None
        self.sysctl = {"net.ipv4.ip_forward": "0"}
        self.failures: dict[tuple, tuple[int, str]] = {}
        self.history: list[list[str]] = []

    # Test helpers

    def fail(self, *prefix: str, stderr: str = "failed", code: int = 1) -> None:
        """Make every command starting with prefix fail."""
        self.failures[prefix] = (code, stderr)

    def mutations(self) -> list[list[str]]:
        """Commands that would change the host."""
        readonly = (
            ("id",), ("dmesg",), ("dpkg-query",), ("ethtool", "-k"),
            ("systemctl", "is-active"), ("systemctl", "is-enabled"),
            ("virsh", "net-info"), ("ip", "-4", "route", "show"),
            ("ip", "-o"), ("ip", "-br"), ("sysctl", "-n"), ("brctl", "show"),
        )
        return [
            argv for argv in self.history
            if not any(tuple(argv[:len(p)]) == p for p in readonly)
        ]

    def set_offload(self, device: str, short: str, value: str) -> None:
        self.offloads.setdefault(device, {n: "off" for n in LONG_NAMES.values()})
        self.offloads[device][LONG_NAMES[short]] = value

    def add_link(self, name: str) -> None:
        if name not in self.links:
            self.links.append(name)
        self.offloads.setdefault(name, {n: "off" for n in LONG_NAMES.values()})

    # HostExecutor

    def which(self, name: str) -> bool:
        return name in self.commands_available

    def read_file(self, path: str) -> Optional[str]:
        return self.files.get(path)

    def write_file(self, path: str, content: str, mode: int = 0o644) -> None:
        self.history.append(["write", path])
        self.files[path] = content

    def list_dir(self, path: str) -> list[str]:
        return sorted(
            posixpath.basename(p) for p in self.files if posixpath.dirname(p) == path
        )

    def _run(self, argv: list[str], env: dict[str, str], timeout: int) -> CommandResult:
        self.history.append(list(argv))
        for prefix, (code, stderr) in self.failures.items():
            if tuple(argv[:len(prefix)]) == prefix:
                return CommandResult(argv, code, "", stderr)
        if argv[0] not in self.commands_available:
            return CommandResult(argv, 127, "", f"{argv[0]}: command not found")
        handler = getattr(self, f"_cmd_{argv[0].replace('-', '_')}")
        code, out, err = handler(argv[1:])
        return CommandResult(argv, code, out, err)

    # Commands

    def _cmd_id(self, args):
        return 0, f"{self.uid}\n", ""

    def _cmd_dmesg(self, args):
        return 0, self.dmesg, ""

    def _cmd_dpkg_query(self, args):
        package = args[-1]
        if package in self.packages:
            return 0, "install ok installed", ""
        return 1, "", f"dpkg-query: no packages found matching {package}\n"

    def _cmd_apt_get(self, args):
        if args[0] == "update":
            return 0, "Reading package lists... Done\n", ""
        if args[0] == "install":
            packages = [a for a in args[1:] if not a.startswith("-")]
            self.packages.update(packages)
            if "libvirt-clients" in packages:
                self.commands_available.add("virsh")
            return 0, "", ""
        return 100, "", "E: Invalid operation\n"

    def _cmd_ethtool(self, args):
        device = args[1]
        if device not in self.offloads:
            return 1, "", "Cannot get device feature names: No such device\n"
        features = self.offloads[device]
        if args[0] == "-k":
            lines = [f"Features for {device}:"]
            for name, value in features.items():
                lines.append(f"{name}: {value}")
                if name == "tx-checksumming":
                    lines.append(f"\ttx-checksum-ipv4: {value}")
            return 0, "\n".join(lines) + "\n", ""
        if args[0] == "-K":
            for short, state in zip(args[2::2], args[3::2]):
                name = LONG_NAMES[short]
                if "[fixed]" in features[name]:
                    return 1, "", "Could not change any device features\n"
                features[name] = state
            return 0, "", ""
        return 1, "", "bad ethtool call\n"

    def _cmd_systemctl(self, args):
        verb = args[0]
        if verb == "is-active":
            return (0 if args[-1] in self.active_services else 3), "", ""
        if verb == "is-enabled":
            if args[1] in self.enabled_units:
                return 0, "enabled\n", ""
            return 1, "disabled\n", ""
        if verb == "daemon-reload":
            return 0, "", ""
        if verb == "enable":
            units = [a for a in args[1:] if not a.startswith("--")]
            self.enabled_units.update(units)
            if "--now" in args:
                self.active_services.update(units)
            return 0, "", ""
        if verb in ("reload", "restart"):
            if verb == "reload" and args[1] not in self.active_services:
                return 1, "", f"Job for {args[1]} failed\n"
            return 0, "", ""
        return 1, "", f"Unknown command verb {verb}\n"

    def _cmd_virsh(self, args):
        if "libvirtd" not in self.active_services:
            return 1, "", "error: failed to connect to the hypervisor\n"
        verb = args[0]
        if verb == "net-info":
            if self.network is None:
                return 1, "", NET_NOT_FOUND
            yes = {True: "yes", False: "no"}
            return 0, (
                "Name:           default\n"
                "UUID:           2f6e1a3c-0000-4000-8000-000000000000\n"
                f"Active:         {yes[self.network['active']]}\n"
                "Persistent:     yes\n"
                f"Autostart:      {yes[self.network['autostart']]}\n"
                "Bridge:         virbr0\n"
            ), ""
        if verb == "net-define":
            if args[1] not in self.files:
                return 1, "", f"error: Failed to open file '{args[1]}'\n"
            self.network = {"active": False, "autostart": False}
            return 0, "Network default defined\n", ""
        if self.network is None:
            return 1, "", NET_NOT_FOUND
        if verb == "net-autostart":
            self.network["autostart"] = True
            return 0, "Network default marked as autostarted\n", ""
        if verb == "net-start":
            if self.network["active"]:
                return 1, "", "error: network is already active\n"
            self.network["active"] = True
            self.add_link("virbr0")
            return 0, "Network default started\n", ""
        return 1, "", f"error: unknown command: '{verb}'\n"

    def _cmd_ip(self, args):
        if args[:4] == ["-4", "route", "show", "default"]:
            lines = [r for r in self.routes if r.startswith("default")]
            return 0, "".join(f"{r}\n" for r in lines), ""
        if args[:3] == ["route", "del", "default"]:
            device = args[4]
            matching = [r for r in self.routes if r.startswith("default") and f"dev {device}" in r]
            if not matching:
                return 2, "", "RTNETLINK answers: No such process\n"
            self.routes.remove(matching[0])
            return 0, "", ""
        if args[:4] == ["-o", "-4", "route", "get"]:
            if not self.uplink:
                return 2, "", "RTNETLINK answers: Network is unreachable\n"
            return 0, (
                f"{args[4]} via 192.168.1.1 dev {self.uplink} src 192.168.1.10 uid 0 \\    cache\n"
            ), ""
        if args[:2] == ["-br", "link"]:
            return 0, "".join(f"{name:16s} UP  00:11:22:33:44:55\n" for name in self.links), ""
        if args[:3] == ["-o", "link", "show"]:
            return 0, "".join(
                f"{i}: {name}: <BROADCAST,MULTICAST,UP> mtu 1500 state UP\n"
                for i, name in enumerate(self.links, 1)
            ), ""
        return 1, "", "Command line is not complete.\n"

    def _cmd_sysctl(self, args):
        if args[0] == "-n":
            return 0, f"{self.sysctl[args[1]]}\n", ""
        if args[0] == "-w":
            key, _, value = args[1].partition("=")
            self.sysctl[key] = value
            return 0, f"{key} = {value}\n", ""
        return 255, "", "sysctl: bad usage\n"

    def _cmd_brctl(self, args):
        lines = ["bridge name\tbridge id\t\tSTP enabled\tinterfaces"]
        for name in self.links:
            if name.startswith(("br", "virbr")):
                lines.append(f"{name}\t\t8000.525400000000\tyes\t\t")
        return 0, "\n".join(lines) + "\n", ""


@pytest.fixture
def host():
    """A fresh host: firmware fine, offloads off, no libvirt network, forwarding off."""
    return FakeHost()
