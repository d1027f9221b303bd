"""Utility modules for logging, auditing and retries."""
from .audit_log import AuditTrail, ChangeRecord, get_recent_changes, setup_audit_logging
from .connection import with_retry, RETRYABLE_EXCEPTIONS
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    perf_logger,
)

__all__ = [
    "AuditTrail",
    "ChangeRecord",
    "get_recent_changes",
    "setup_audit_logging",
    "with_retry",
    "RETRYABLE_EXCEPTIONS",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
]
