"""Structured JSON audit trail for permission arbitration decisions."""

import json
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .config import Config

MAX_CONTENT_LENGTH = 1000  # Truncate large content to prevent log bloat


class AuditEvent(str, Enum):
    """Audit event types for arbitration decisions."""

    REQUEST_QUEUED = "request_queued"
    REQUEST_DEFERRED = "request_deferred"
    REQUEST_DROPPED = "request_dropped"
    GROUP_PENDING = "group_pending"
    GROUP_GRANTED = "group_granted"
    GROUP_DENIED = "group_denied"
    GROUP_TIMEOUT = "group_timeout"
    REQUEST_COVERED = "request_covered"
    REQUEST_REQUEUED = "request_requeued"
    PERMISSION_REVOKED = "permission_revoked"


class AuditLogger:
    """
    Structured JSON audit logger for arbitration decisions.

    Features:
    - JSON Lines format (one JSON object per line)
    - ISO 8601 UTC timestamps
    - Automatic content truncation
    - Append-only file mode
    - Size-based rotation with timestamped backups
    - Retention cleanup based on AUDIT_RETENTION_DAYS
    """

    def __init__(self, log_path: Optional[str] = None):
        """
        Initialize audit logger with JSON Lines configuration.

        Args:
            log_path: Path to audit log file (defaults to Config.AUDIT_LOG_PATH)
        """
        if log_path is None:
            log_path = Config.AUDIT_LOG_PATH
        self.log_path = Path(log_path)
        self.retention_days = Config.AUDIT_RETENTION_DAYS
        self.rotation_bytes = Config.AUDIT_ROTATION_BYTES
        self._last_cleanup: Optional[datetime] = None
        # Ensure parent directory exists
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._cleanup_old_logs()

    def _rotate_if_needed(self) -> None:
        """Rotate the audit log if it exceeds the configured size."""
        if not self.log_path.exists():
            return
        if self.log_path.stat().st_size < self.rotation_bytes:
            return

        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        rotated_path = self.log_path.with_name(f"{self.log_path.name}.{timestamp}")
        counter = 1
        while rotated_path.exists():
            rotated_path = self.log_path.with_name(
                f"{self.log_path.name}.{timestamp}.{counter}"
            )
            counter += 1
        self.log_path.replace(rotated_path)

    def _cleanup_old_logs(self) -> None:
        """Remove audit log files older than the retention window."""
        if self.retention_days <= 0:
            return
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.retention_days)
        for path in self.log_path.parent.glob(f"{self.log_path.name}*"):
            if not path.is_file():
                continue
            modified = datetime.fromtimestamp(path.stat().st_mtime, timezone.utc)
            if modified < cutoff:
                path.unlink()
        self._last_cleanup = datetime.now(timezone.utc)

    def _maybe_cleanup(self) -> None:
        """Run cleanup once per day to enforce retention."""
        if self.retention_days <= 0:
            return
        now = datetime.now(timezone.utc)
        if self._last_cleanup is None or now - self._last_cleanup >= timedelta(days=1):
            self._cleanup_old_logs()

    @staticmethod
    def _truncate_content(value: Any, max_length: int = MAX_CONTENT_LENGTH) -> Any:
        if isinstance(value, str) and len(value) > max_length:
            return value[:max_length] + f"... [truncated, {len(value)} total chars]"
        elif isinstance(value, dict):
            return {k: AuditLogger._truncate_content(v, max_length) for k, v in value.items()}
        elif isinstance(value, list):
            return [AuditLogger._truncate_content(item, max_length) for item in value]
        return value

    def log(
        self,
        event: AuditEvent,
        request_id: Optional[str] = None,
        **kwargs,
    ):
        """
        Write structured audit log entry in JSON Lines format.

        Args:
            event: Audit event type
            request_id: Request identifier for correlation
            **kwargs: Additional fields to include in the audit record
        """
        audit_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event.value,
            "request_id": request_id,
            **self._truncate_content(kwargs),
        }

        json_line = json.dumps(audit_record, ensure_ascii=False, default=str)

        self._maybe_cleanup()
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json_line + "\n")

    def log_request(
        self,
        event: AuditEvent,
        request: Any,
        group_request_id: Optional[str] = None,
    ):
        """
        Log a routing decision for one request.

        Args:
            event: REQUEST_QUEUED, REQUEST_DEFERRED, REQUEST_COVERED or
                REQUEST_REQUEUED
            request: Normalized request record
            group_request_id: Group the request was deferred behind, if any
        """
        log_data: Dict[str, Any] = {
            "kind": request.kind.value,
            "originator": getattr(request, "originator", None),
        }
        if group_request_id is not None:
            log_data["group_request_id"] = group_request_id
        self.log(event, request_id=request.request_id, **log_data)

    def log_dropped(self, kind: str, reason: str, request_id: Optional[str] = None):
        """Log a malformed request that was dropped without queueing."""
        self.log(AuditEvent.REQUEST_DROPPED, request_id=request_id, kind=kind, reason=reason)

    def log_group_release(
        self,
        event: AuditEvent,
        request_id: Optional[str],
        covered_ids: Iterable[str],
        requeued_ids: Iterable[str],
        decision: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        """
        Log the outcome of a group release.

        Args:
            event: GROUP_GRANTED, GROUP_DENIED or GROUP_TIMEOUT
            request_id: Group request identifier
            covered_ids: Deferred requests discarded as covered
            requeued_ids: Deferred requests returned to their queues
            decision: Summary of the projected grant (grants only)
            error: Wallet engine error message, if the external call failed
        """
        log_data: Dict[str, Any] = {
            "covered": list(covered_ids),
            "requeued": list(requeued_ids),
        }
        if decision is not None:
            log_data["decision"] = decision
        if error is not None:
            log_data["error"] = error
        self.log(event, request_id=request_id, **log_data)


_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get or create the shared audit logger instance."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger
