"""Utility modules for logging, auditing and connection retries."""
from .audit_log import ChangeRecord, ChangeTracker, setup_audit_logging
from .connection import with_retry
from .logging_config import perf_logger, setup_logging, timed, timed_section

__all__ = [
    "ChangeRecord",
    "ChangeTracker",
    "setup_audit_logging",
    "with_retry",
    "perf_logger",
    "setup_logging",
    "timed",
    "timed_section",
]
