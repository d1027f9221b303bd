"""End-to-end reconciliation runs against a simulated host."""
import random

from netmend.adapters import (
    DefaultNetworkActive,
    FirmwarePresence,
    ForwardingEnabled,
    ManagedIgnoreRule,
    OffloadDisabled,
    StrayRouteAbsent,
)
from netmend.config import Settings
from netmend.detect import detect_bridge, detect_network_manager
from netmend.engine import OutcomeKind, Reconciler
from netmend.plan import build_actions

UNCHANGED = OutcomeKind.UNCHANGED
CHANGED = OutcomeKind.CHANGED
FAILED = OutcomeKind.FAILED


def core_actions(host):
    return [
        FirmwarePresence(host).action(),
        OffloadDisabled(host, "eth0").action(),
        DefaultNetworkActive(host).action(),
        StrayRouteAbsent(host).action(),
        ManagedIgnoreRule(host, "networkmanager").action(),
        ForwardingEnabled(host).action(),
    ]


def planned(host, bridge=None):
    return build_actions(Settings(), host, "eth0", bridge, detect_network_manager(host))


class TestFreshHost:
    """A freshly installed KVM host with working firmware and no vnet routes."""

    def test_first_run(self, host):
        report = Reconciler(host.host_id).run(core_actions(host))

        assert [r.outcome for r in report.results] == [
            UNCHANGED, UNCHANGED, CHANGED, UNCHANGED, CHANGED, CHANGED,
        ]
        assert report.exit_code == 0
        assert host.network == {"active": True, "autostart": True}
        assert host.sysctl["net.ipv4.ip_forward"] == "1"

    def test_second_run_changes_nothing(self, host):
        Reconciler(host.host_id).run(core_actions(host))
        host.history.clear()

        report = Reconciler(host.host_id).run(core_actions(host))

        assert all(r.outcome == UNCHANGED for r in report.results)
        assert host.mutations() == []
        assert report.exit_code == 0

    def test_failed_reload_is_isolated(self, host):
        """A failing NetworkManager reload does not stop forwarding being enabled."""
        host.fail("systemctl", "reload", "NetworkManager", stderr="Job for NetworkManager.service failed")

        report = Reconciler(host.host_id).run(core_actions(host))

        assert report.outcome_of("ignore-rule:networkmanager") == FAILED
        assert "NetworkManager" in report.results[4].error
        assert report.outcome_of("ip-forward") == CHANGED
        assert report.exit_code == 1


class TestPlannedRun:
    """Runs using the full action plan."""

    def test_plan_order_with_bridge(self, host):
        names = [a.name for a in planned(host, bridge="br0")]
        assert names == [
            "firmware:bnx2",
            "disable-offload:eth0",
            "disable-offload:br0",
            "persist-offload:eth0",
            "persist-offload:br0",
            "libvirt-network:default",
            "stray-routes:vnet*",
            "ignore-rule:networkmanager",
            "ip-forward",
        ]

    def test_no_bridge_omits_bridge_actions(self, host):
        names = [a.name for a in planned(host)]
        assert "disable-offload:eth0" in names
        assert not any(n.endswith(":br0") or n.endswith(":virbr0") for n in names)

    def test_bridge_same_as_uplink_not_duplicated(self, host):
        names = [a.name for a in planned(host, bridge="eth0")]
        assert names.count("disable-offload:eth0") == 1

    def test_rerun_is_stable(self, host):
        first = Reconciler(host.host_id).run(planned(host, detect_bridge(host)))
        assert not first.failed
        host.history.clear()

        second = Reconciler(host.host_id).run(planned(host, detect_bridge(host)))

        assert second.changed == []
        assert not second.failed
        assert host.mutations() == []

    def test_bridge_picked_up_after_network_start(self, host):
        """virbr0 only exists once the libvirt network runs; the same run covers it."""
        assert detect_bridge(host) is None
        report = Reconciler(host.host_id).run(planned(host))

        names = report.names
        start = names.index("libvirt-network:default")
        assert names[start + 1:start + 3] == ["disable-offload:virbr0", "persist-offload:virbr0"]
        assert report.outcome_of("disable-offload:virbr0") == UNCHANGED
        assert report.outcome_of("persist-offload:virbr0") == CHANGED
        assert "disable-offload@virbr0.service" in host.enabled_units
        assert not report.failed

    def test_bridge_known_up_front_not_repeated(self, host):
        Reconciler(host.host_id).run(planned(host))

        bridge = detect_bridge(host)
        assert bridge == "virbr0"
        report = Reconciler(host.host_id).run(planned(host, bridge))

        assert report.names.count("persist-offload:virbr0") == 1
        assert report.names.index("persist-offload:virbr0") < report.names.index("libvirt-network:default")
        assert all(r.outcome == UNCHANGED for r in report.results)

    def test_late_bridge_respects_include_bridge(self, host):
        settings = Settings.from_dict({"offload": {"include_bridge": False}})
        actions = build_actions(settings, host, "eth0", None, detect_network_manager(host))
        report = Reconciler(host.host_id).run(actions)

        assert host.network["active"]
        assert not any(n.endswith(":virbr0") for n in report.names)

    def test_order_does_not_change_end_state(self, host):
        """Independent actions converge to the same host state in any order."""
        reference = type(host)()
        reference.set_offload("eth0", "gro", "on")
        reference.routes.append("default dev vnet0 scope link")
        Reconciler().run(core_actions(reference))

        other = type(host)()
        other.set_offload("eth0", "gro", "on")
        other.routes.append("default dev vnet0 scope link")
        actions = core_actions(other)
        random.Random(7).shuffle(actions)
        report = Reconciler().run(actions)

        assert not report.failed
        assert other.files == reference.files
        assert other.routes == reference.routes
        assert other.offloads == reference.offloads
        assert other.sysctl == reference.sysctl
        assert other.network == reference.network
