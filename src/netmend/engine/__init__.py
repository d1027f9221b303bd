"""Reconciliation engine - check-then-act over an ordered list of actions.

Describe desired state as actions, each a probe paired with a remediation;
only remediations whose probes fail are run, and every outcome is reported:

    from netmend.engine import Action, Reconciler, Verdict

    action = Action("ip-forward", probe=check_forwarding, remediate=enable_forwarding)
    report = Reconciler().run([action])
    print(report.exit_code)
"""

from .action import Action
from .reconciler import Reconciler
from .report import render_report
from .schema import ActionResult, OutcomeKind, Report, Verdict

__all__ = [
    "Action",
    "ActionResult",
    "OutcomeKind",
    "Reconciler",
    "Report",
    "Verdict",
    "render_report",
]
