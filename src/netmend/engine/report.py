"""Human-readable rendering of a run report."""
from .schema import OutcomeKind, Report


def render_report(report: Report) -> str:
    """One line per action followed by a summary line."""
    if not report.results:
        return f"No actions ran on {report.host}"

    width = max(len(r.name) for r in report.results)
    lines = [f"Reconciliation report for {report.host}:"]
    for result in report.results:
        prefix = {
            OutcomeKind.UNCHANGED: "=",
            OutcomeKind.CHANGED: "~",
            OutcomeKind.FAILED: "!",
        }[result.outcome]
        line = f"  {prefix} {result.name:{width}s}  {result.outcome.value}"
        if result.outcome is OutcomeKind.CHANGED and result.detail:
            line += f"  ({result.detail})"
        if result.failed:
            line += f"  {result.error}"
        if result.probe_error:
            line += f"  [probe error: {result.probe_error}]"
        lines.append(line)

    summary = report.summary()
    lines.append(
        f"{summary['total']} actions: {summary['unchanged']} unchanged, "
        f"{summary['changed']} changed, {summary['failed']} failed"
    )
    return "\n".join(lines)
