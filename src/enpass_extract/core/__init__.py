# Core Module - Shared Utilities
#
# - Session audit logging
# - Configuration

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    configure_audit_logger,
    get_audit_logger,
    log_session_event,
)
from .config import Settings

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "configure_audit_logger",
    "get_audit_logger",
    "log_session_event",
    # Configuration
    "Settings",
]
