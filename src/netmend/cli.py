#!/usr/bin/env python3
"""netmend command line runner.

Usage:
    netmend [UPLINK] [--config FILE] [--host HOST] [--json] [-v]

Exit codes:
    0    every action unchanged or changed
    1    at least one action failed
    2    settings or precondition error, nothing was changed
    130  interrupted

Environment:
    NETMEND_LOG_LEVEL      Console log level (default: INFO)
    NETMEND_LOG_FILE       Log file (default: ~/.netmend/netmend.log)
    NETMEND_SSH_PASSWORD   Password for --host (default: keys/agent)
"""
import argparse
import json
import logging
import os
import sys
from typing import Optional

from .config import load_settings
from .detect import detect_bridge, detect_network_manager, require_root, resolve_uplink
from .engine import Reconciler, render_report
from .errors import ConfigError, PreconditionError
from .host import create_executor
from .plan import build_actions
from .utils.audit_log import AuditTrail, setup_audit_logging
from .utils.logging_config import setup_logging

logger = logging.getLogger("netmend.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="netmend",
        description=(
            "Reconcile KVM host networking: NIC firmware, offloads, libvirt "
            "NAT network, vnet* routes and IP forwarding"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Auto-detect the uplink from the default route
    sudo netmend

    # Explicit uplink
    sudo netmend eno1

    # Reconcile a remote host as root over SSH
    netmend --host kvm01.lan --json
""",
    )
    parser.add_argument(
        "uplink",
        nargs="?",
        help="Physical uplink interface (default: device of the default route)",
    )
    parser.add_argument("--config", help="Settings file (default: search for netmend.yaml)")
    parser.add_argument("--host", help="Reconcile this host over SSH instead of localhost")
    parser.add_argument("--user", default="root", help="SSH user (default: root)")
    parser.add_argument("--port", type=int, default=22, help="SSH port (default: 22)")
    parser.add_argument("--identity", help="SSH private key file")
    parser.add_argument(
        "--no-verify",
        action="store_true",
        help="Do not re-probe after remediating",
    )
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else None)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        logger.error(f"Settings error: {e}")
        return 2

    audit_path = setup_audit_logging(settings.audit_log)

    executor = create_executor(
        args.host,
        username=args.user,
        port=args.port,
        password=os.environ.get("NETMEND_SSH_PASSWORD") or None,
        key_filename=args.identity,
        timeout=settings.command_timeout,
    )

    try:
        with executor:
            try:
                require_root(executor)
                uplink = resolve_uplink(
                    executor, args.uplink, settings.uplink, settings.probe_address
                )
            except PreconditionError as e:
                logger.error(str(e))
                return 2

            logger.info(f"Using uplink interface: {uplink}")
            bridge = detect_bridge(executor, settings.libvirt.bridge)
            if bridge:
                logger.info(f"Using bridge: {bridge}")
            manager = detect_network_manager(executor)

            actions = build_actions(settings, executor, uplink, bridge, manager)
            reconciler = Reconciler(
                host_id=executor.host_id,
                verify=not args.no_verify,
                audit=AuditTrail(executor.host_id),
            )
            report = reconciler.run(actions)
    except KeyboardInterrupt:
        logger.warning("Interrupted; re-run to finish, every action is idempotent")
        return 130

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        logger.debug(render_report(report))

    summary = report.summary()
    logger.info(
        f"{summary['unchanged']} unchanged, {summary['changed']} changed, "
        f"{summary['failed']} failed (audit: {audit_path})"
    )
    if report.failed:
        logger.error("Some actions failed; fix the errors above and re-run")
    elif report.changed:
        logger.info("Done. Reboot, then start a VM to verify connectivity.")
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
