"""Reconciler - runs actions in order and reports what changed.

For each action:
1. Probe the host
2. Skip if the desired state already holds
3. Otherwise remediate
4. Re-probe to confirm the remediation converged
"""
import logging
import time
from dataclasses import replace
from typing import Iterable, Optional

from ..utils.audit_log import AuditTrail
from ..utils.logging_config import timed_section
from .action import Action
from .schema import ActionResult, OutcomeKind, Report, Verdict

logger = logging.getLogger(__name__)

_MARKS = {
    OutcomeKind.UNCHANGED: "ok",
    OutcomeKind.CHANGED: "changed",
    OutcomeKind.FAILED: "FAILED",
}


class Reconciler:
    """
    Idempotent reconciliation engine.

    Usage:
        reconciler = Reconciler(host_id="localhost")
        report = reconciler.run(actions)
        sys.exit(report.exit_code)
    """

    def __init__(
        self,
        host_id: str = "localhost",
        verify: bool = True,
        audit: Optional[AuditTrail] = None,
    ):
        """
        Initialize the Reconciler.

        Args:
            host_id: Host name used in the report, logs and audit trail
            verify: Re-probe after each remediation and fail the action if
                the desired state still does not hold
            audit: Audit trail receiving one record per action (optional)
        """
        self.host_id = host_id
        self.verify = verify
        self.audit = audit

    def run(self, actions: Iterable[Action]) -> Report:
        """
        Execute actions strictly in order.

        A failed action never stops the run; the report is failed if any
        action failed.
        """
        report = Report(host=self.host_id)

        for action in actions:
            start = time.perf_counter()
            try:
                with timed_section(action.name, target=self.host_id):
                    result = self._reconcile(action)
            except Exception as e:
                # _reconcile captures adapter errors; this only guards the engine
                logger.exception(f"{action.name}: unexpected engine error")
                result = ActionResult(action.name, OutcomeKind.FAILED, error=str(e))

            result = replace(result, duration_ms=(time.perf_counter() - start) * 1000)
            report.append(result)
            self._log(result)

            if self.audit is not None:
                try:
                    self.audit.log_result(result)
                except Exception as e:
                    logger.warning(f"Failed to write audit record: {e}")

        summary = report.summary()
        logger.debug(
            f"Run on {self.host_id} finished: {summary['unchanged']} unchanged, "
            f"{summary['changed']} changed, {summary['failed']} failed"
        )
        return report

    def _reconcile(self, action: Action) -> ActionResult:
        probe_error = None
        try:
            verdict = action.probe()
        except Exception as e:
            logger.warning(f"{action.name}: probe failed ({e}), remediating anyway")
            probe_error = str(e)
            verdict = Verdict.unsatisfied(f"probe failed: {e}")

        if verdict.satisfied:
            return ActionResult(action.name, OutcomeKind.UNCHANGED, detail=verdict.detail)

        logger.debug(f"{action.name}: {verdict.detail}")

        try:
            action.remediate()
        except Exception as e:
            logger.debug(f"{action.name}: remediation raised", exc_info=True)
            return ActionResult(
                action.name,
                OutcomeKind.FAILED,
                detail=verdict.detail,
                error=str(e),
                probe_error=probe_error,
            )

        if self.verify:
            error = self._confirm(action)
            if error:
                return ActionResult(
                    action.name,
                    OutcomeKind.FAILED,
                    detail=verdict.detail,
                    error=error,
                    probe_error=probe_error,
                )

        return ActionResult(
            action.name,
            OutcomeKind.CHANGED,
            detail=verdict.detail,
            probe_error=probe_error,
        )

    def _confirm(self, action: Action) -> Optional[str]:
        """Re-probe after remediation; return an error if state still differs."""
        try:
            after = action.probe()
        except Exception as e:
            return f"verification probe failed: {e}"
        if not after.satisfied:
            return f"remediation did not converge: {after.detail}"
        return None

    def _log(self, result: ActionResult) -> None:
        line = f"[{_MARKS[result.outcome]:>7}] {result.name}"
        if result.outcome is OutcomeKind.CHANGED and result.detail:
            line += f" ({result.detail})"
        if result.failed:
            line += f": {result.error}"
            logger.error(line)
        else:
            logger.info(line)
        if result.probe_error:
            logger.warning(f"          probe error: {result.probe_error}")
