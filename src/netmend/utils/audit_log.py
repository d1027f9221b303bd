"""Audit logging for reconciliation runs.

Every action outcome is written as one JSON line:
- Timestamped entries for each action of each run
- Outcome, probe detail and errors
- Separate audit log file, not propagated to the console
"""
import json
import logging
import os
from datetime import datetime, timezone
from dataclasses import dataclass, asdict
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Dedicated audit logger
audit_logger = logging.getLogger("netmend.audit")

DEFAULT_AUDIT_LOG = "~/.netmend/audit.log"


def setup_audit_logging(log_file: Optional[str] = None) -> Path:
    """Configure audit logging to file.

    Args:
        log_file: Audit log path. Defaults to ~/.netmend/audit.log

    Returns:
        The resolved audit log path
    """
    path = Path(os.path.expanduser(log_file or DEFAULT_AUDIT_LOG))
    path.parent.mkdir(parents=True, exist_ok=True)

    audit_logger.setLevel(logging.INFO)

    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
        handler.close()

    handler = RotatingFileHandler(
        path,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
        encoding="utf-8",
    )

    # Bare message: each record is already a JSON document
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)

    audit_logger.propagate = False
    return path


@dataclass
class ChangeRecord:
    """Record of one action's outcome in one run."""
    timestamp: str
    host: str
    action: str
    outcome: str  # unchanged, changed, failed
    detail: str = ""
    error: Optional[str] = None
    probe_error: Optional[str] = None
    duration_ms: float = 0

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        """Parse from JSON string."""
        data = json.loads(json_str)
        return cls(**data)


class AuditTrail:
    """Write action results of a run to the audit log."""

    def __init__(self, host_id: str):
        self.host_id = host_id

    def log_result(self, result) -> ChangeRecord:
        """Log an ActionResult.

        Returns:
            The ChangeRecord that was logged
        """
        record = ChangeRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            host=self.host_id,
            action=result.name,
            outcome=result.outcome.value,
            detail=result.detail[:1000],  # Truncate long probe output
            error=result.error,
            probe_error=result.probe_error,
            duration_ms=round(result.duration_ms, 2),
        )

        audit_logger.info(record.to_json())
        return record


def get_recent_changes(
    log_file: Optional[str] = None,
    host: Optional[str] = None,
    outcome: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent records from the audit log.

    Args:
        log_file: Path to audit log. Defaults to ~/.netmend/audit.log
        host: Filter by host
        outcome: Filter by outcome ("changed", "failed", ...)
        limit: Maximum number of records to return

    Returns:
        List of ChangeRecords, most recent first
    """
    path = os.path.expanduser(log_file or DEFAULT_AUDIT_LOG)

    if not os.path.exists(path):
        return []

    records = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = ChangeRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines

            if host and record.host != host:
                continue
            if outcome and record.outcome != outcome:
                continue

            records.append(record)

    return list(reversed(records[-limit:]))
