"""Tests for host detection run before the actions."""
import pytest

from netmend.adapters import FALLBACK, NETWORKD, NETWORKMANAGER
from netmend.detect import (
    detect_bridge,
    detect_network_manager,
    detect_uplink,
    require_root,
    resolve_uplink,
)
from netmend.errors import PreconditionError


class TestRequireRoot:
    """Tests for the privilege check."""

    def test_root_passes(self, host):
        require_root(host)

    def test_non_root_fails(self, host):
        host.uid = 1000
        with pytest.raises(PreconditionError, match="uid 1000"):
            require_root(host)

    def test_id_failure(self, host):
        host.fail("id")
        with pytest.raises(PreconditionError):
            require_root(host)


class TestUplink:
    """Tests for uplink detection and precedence."""

    def test_detect_from_route(self, host):
        host.uplink = "eno1"
        assert detect_uplink(host) == "eno1"
        assert ["ip", "-o", "-4", "route", "get", "1.1.1.1"] in host.history

    def test_custom_probe_address(self, host):
        detect_uplink(host, "9.9.9.9")
        assert ["ip", "-o", "-4", "route", "get", "9.9.9.9"] in host.history

    def test_no_route(self, host):
        host.uplink = None
        with pytest.raises(PreconditionError, match="Pass it as an argument"):
            detect_uplink(host)

    def test_explicit_wins(self, host):
        assert resolve_uplink(host, "eno2", "eno3") == "eno2"
        assert host.history == []

    def test_configured_before_detection(self, host):
        assert resolve_uplink(host, None, "eno3") == "eno3"

    def test_falls_back_to_detection(self, host):
        assert resolve_uplink(host) == "eth0"


class TestBridge:
    """Tests for bridge detection."""

    def test_no_bridge(self, host):
        assert detect_bridge(host) is None

    def test_br_link(self, host):
        host.add_link("br0")
        assert detect_bridge(host) == "br0"

    def test_libvirt_bridge(self, host):
        host.add_link("virbr0")
        assert detect_bridge(host) == "virbr0"

    def test_br_preferred_over_libvirt(self, host):
        host.add_link("virbr0")
        host.add_link("br0")
        assert detect_bridge(host) == "br0"

    def test_brctl_first(self, host):
        host.commands_available.add("brctl")
        host.add_link("virbr0")
        host.add_link("br0")
        assert detect_bridge(host) == "virbr0"
        assert ["brctl", "show"] in host.history


class TestNetworkManager:
    """Tests for network manager detection."""

    def test_networkmanager(self, host):
        assert detect_network_manager(host) == NETWORKMANAGER

    def test_networkd(self, host):
        host.active_services = {"systemd-networkd"}
        assert detect_network_manager(host) == NETWORKD

    def test_fallback(self, host):
        host.active_services = set()
        assert detect_network_manager(host) == FALLBACK
