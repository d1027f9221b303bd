"""Schema definitions for the reconciliation engine.

Defines verdicts, outcomes and the run report.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class Verdict:
    """Result of a probe: desired state holds, or not (with why)."""
    satisfied: bool
    detail: str = ""

    @classmethod
    def holds(cls, detail: str = "") -> "Verdict":
        return cls(True, detail)

    @classmethod
    def unsatisfied(cls, detail: str) -> "Verdict":
        return cls(False, detail)


class OutcomeKind(str, Enum):
    """What happened to one action in one run."""
    UNCHANGED = "unchanged"  # Probe already satisfied
    CHANGED = "changed"      # Remediated successfully
    FAILED = "failed"        # Remediation (or verification) failed


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one action."""
    name: str
    outcome: OutcomeKind
    detail: str = ""
    error: Optional[str] = None
    probe_error: Optional[str] = None
    duration_ms: float = 0

    @property
    def failed(self) -> bool:
        return self.outcome is OutcomeKind.FAILED

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "outcome": self.outcome.value,
            "detail": self.detail,
            "error": self.error,
            "probe_error": self.probe_error,
            "duration_ms": round(self.duration_ms, 2),
        }


@dataclass
class Report:
    """Ordered outcomes of one reconciliation run."""
    host: str = "localhost"
    results: list[ActionResult] = field(default_factory=list)

    def append(self, result: ActionResult) -> None:
        self.results.append(result)

    def outcome_of(self, name: str) -> Optional[OutcomeKind]:
        """Outcome of the named action, None if it did not run."""
        for result in self.results:
            if result.name == name:
                return result.outcome
        return None

    @property
    def names(self) -> list[str]:
        return [r.name for r in self.results]

    @property
    def failed(self) -> bool:
        """True if any action failed."""
        return any(r.failed for r in self.results)

    @property
    def changed(self) -> list[ActionResult]:
        return [r for r in self.results if r.outcome is OutcomeKind.CHANGED]

    @property
    def unchanged(self) -> list[ActionResult]:
        return [r for r in self.results if r.outcome is OutcomeKind.UNCHANGED]

    @property
    def failures(self) -> list[ActionResult]:
        return [r for r in self.results if r.failed]

    @property
    def exit_code(self) -> int:
        """Process exit status: 0 on full success, 1 if anything failed."""
        return 1 if self.failed else 0

    def summary(self) -> dict:
        return {
            "total": len(self.results),
            "unchanged": len(self.unchanged),
            "changed": len(self.changed),
            "failed": len(self.failures),
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "host": self.host,
            "success": not self.failed,
            "summary": self.summary(),
            "actions": [r.to_dict() for r in self.results],
        }
