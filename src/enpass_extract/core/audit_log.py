# Core - Session Audit Log
#
# Structured JSON log of what happened during an extraction session:
# container unlock, key derivation, per-record failures, export totals.
#
# Never logged: master password, identity hash, derived key, plaintext.

import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, TextIO
from uuid import uuid4

import structlog


class EventType(str, Enum):
    """Types of session events that can be logged."""
    VAULT_OPENED = "vault.opened"
    VAULT_OPEN_FAILED = "vault.open_failed"
    IDENTITY_LOADED = "identity.loaded"
    KEY_DERIVED = "key.derived"
    KEY_DERIVATION_FAILED = "key.derivation_failed"
    RECORD_FAILED = "record.failed"
    SESSION_ABORTED = "session.aborted"
    EXPORT_COMPLETED = "export.completed"


class EventSeverity(str, Enum):
    """
    Severity levels for session events.

    - INFO: normal progress
    - WARNING: a single record was lost, the run continues
    - CRITICAL: the session cannot continue
    """
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AuditLogger:
    """
    Append-only JSON event log for one process.

    Each event is one JSON object per line with a generated event id and
    ISO timestamp. Output goes to ``stream`` (stderr by default) or is
    appended to ``log_file``.
    """

    def __init__(self, stream: Optional[TextIO] = None, log_file: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            stream: Text stream to write events to (default: sys.stderr)
            log_file: Append events to this file instead of a stream
        """
        self.log_file = Path(log_file) if log_file else None
        self._owns_stream = False
        if self.log_file is not None:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            stream = open(self.log_file, "a", encoding="utf-8")
            self._owns_stream = True
        self.stream = stream or sys.stderr

        # Dedicated logger, isolated from the global structlog configuration
        self.logger = structlog.wrap_logger(
            structlog.PrintLogger(file=self.stream),
            processors=[
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            context_class=dict,
        )

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Log a session event.

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (never secrets!)

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())
        log = getattr(self.logger, severity.value)
        log(
            "vault_event",
            event_id=event_id,
            event_type=event_type.value,
            severity=severity.value,
            message=message,
            details=details or {},
        )
        return event_id

    def log_record_failure(self, error: Exception, policy: str) -> str:
        """Log a record that could not be decrypted or parsed."""
        return self.log_event(
            event_type=EventType.RECORD_FAILED,
            severity=EventSeverity.WARNING,
            message=str(error),
            details={
                "record_id": getattr(error, "record_id", None),
                "error": type(error).__name__,
                "policy": policy,
            },
        )

    def close(self) -> None:
        if self._owns_stream:
            self.stream.close()
            self._owns_stream = False


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def configure_audit_logger(
    stream: Optional[TextIO] = None,
    log_file: Optional[Path] = None,
) -> AuditLogger:
    """Replace the global audit logger (closing the previous one)."""
    global _audit_logger
    if _audit_logger is not None:
        _audit_logger.close()
    _audit_logger = AuditLogger(stream=stream, log_file=log_file)
    logging.getLogger(__name__).debug("Audit log -> %s", log_file or "stream")
    return _audit_logger


def log_session_event(
    event_type: EventType,
    severity: EventSeverity,
    message: str,
    **kwargs
) -> str:
    """
    Convenience function for logging session events.

    Usage:
        log_session_event(
            EventType.KEY_DERIVED,
            EventSeverity.INFO,
            "Record key derived",
            details={"identity_id": 1}
        )
    """
    return get_audit_logger().log_event(event_type, severity, message, **kwargs)
