"""Audit logging for applied network changes.

Every staged entry applied (or refused) during commit, and every immediate
route deletion, is written as one JSON object per line to a dedicated audit
log, separate from the diagnostic log.
"""
import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Dedicated audit logger
audit_logger = logging.getLogger("netd.audit")

DEFAULT_AUDIT_DIR = "~/.netd"


def setup_audit_logging(log_dir: Optional[str] = None) -> Path:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for audit logs. Defaults to ~/.netd/

    Returns:
        Path of the audit log file
    """
    log_dir = os.path.expanduser(log_dir or DEFAULT_AUDIT_DIR)
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    audit_file = Path(log_dir) / "audit.log"

    audit_logger.setLevel(logging.INFO)
    audit_logger.handlers.clear()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
        encoding="utf-8",
    )
    # Bare message: each line is a JSON document
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
    audit_logger.propagate = False

    return audit_file


@dataclass
class ChangeRecord:
    """Record of one network change."""
    timestamp: str
    operation: str  # configure_interface, add_route, delete_route, delete_routes
    source: str  # cli, rpc, startup
    success: bool
    parameters: dict
    output: str = ""
    error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        return cls(**json.loads(json_str))


class ChangeTracker:
    """Write ChangeRecords to the audit log."""

    def __init__(self, source: str = "netd"):
        self.source = source

    def log_change(
        self,
        operation: str,
        parameters: dict,
        success: bool,
        output: str = "",
        error: Optional[str] = None,
    ) -> ChangeRecord:
        """Log a network change.

        Args:
            operation: The operation performed (e.g., "add_route")
            parameters: Parameters of the change
            success: Whether the backend accepted it
            output: Backend message
            error: Error message if failed

        Returns:
            The ChangeRecord that was logged
        """
        record = ChangeRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            operation=operation,
            source=self.source,
            success=success,
            parameters=parameters,
            output=output[:1000] if output else "",  # Truncate long output
            error=error,
        )
        audit_logger.info(record.to_json())
        return record
