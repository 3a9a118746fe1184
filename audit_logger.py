"""
Audit logging for the Huntress MCP Server.

Every tool call produces structured JSON audit events ("started", then
"success" or "failure") on a dedicated logger built from Python's logging
primitives (Logger, Handler, Formatter, Filter).

Audit events go to stderr: in stdio mode stdout carries the JSON-RPC stream
and must not be written to. Events only ever contain metadata, never tool
results, credentials or query parameters other than the organization filter.

Configuration via environment variables:
- AUDIT_LOG_ENABLED: Enable/disable audit logging (default: true)
- AUDIT_LOG_LEVEL: Minimum severity to log - CRITICAL, HIGH, MEDIUM, LOW (default: MEDIUM)
- AUDIT_LOG_INCLUDE_LOW: Include LOW severity events (default: false)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

AUDIT_LOGGER_NAME = "huntress.audit"


class AuditSeverity(Enum):
    """Severity levels for audit events mapped to Python logging levels."""
    CRITICAL = logging.CRITICAL
    HIGH = logging.ERROR
    MEDIUM = logging.WARNING  # Reads of incident/agent data
    LOW = logging.INFO        # Account metadata


class AuditAction(Enum):
    """Action types for audit events."""
    READ = "read"
    EXECUTE = "execute"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class AuditLogFilter(logging.Filter):
    """Drops audit records below the configured severity."""

    def __init__(self, min_severity: AuditSeverity, include_low: bool = False):
        super().__init__()
        self.min_severity = min_severity
        self.include_low = include_low

    def filter(self, record: logging.LogRecord) -> bool:
        severity = getattr(record, "audit_severity", None)
        if severity is None:
            return True

        if severity == AuditSeverity.LOW:
            return self.include_low

        return severity.value >= self.min_severity.value


class AuditLogFormatter(logging.Formatter):
    """Renders audit records as 'AUDIT: {json}' lines."""

    SENSITIVE_PATTERNS = (
        "apikey",
        "api_key",
        "apisecret",
        "api_secret",
        "secret=",
        "password=",
        "authorization:",
    )

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "audit_event"):
            return super().format(record)

        event = dict(record.audit_event)
        if event.get("error_message"):
            event["error_message"] = self.sanitize_error_message(event["error_message"])

        try:
            return f"AUDIT: {json.dumps(event, ensure_ascii=False)}"
        except (TypeError, ValueError) as e:
            return f"AUDIT: {{\"error\": \"Failed to serialize audit event: {type(e).__name__}\"}}"

    @classmethod
    def sanitize_error_message(cls, error_message: str) -> str:
        """Truncate long messages and redact anything that looks like a credential."""
        if len(error_message) > 500:
            error_message = error_message[:497] + "..."

        lower_msg = error_message.lower()
        if any(pattern in lower_msg for pattern in cls.SENSITIVE_PATTERNS):
            return "Error occurred (details redacted for security)"

        return error_message


class AuditLogHandler(logging.StreamHandler):
    """Writes audit records to stderr and flushes after each one."""

    def __init__(self, stream=None):
        super().__init__(stream=stream or sys.stderr)
        self.setFormatter(AuditLogFormatter())

    def emit(self, record: logging.LogRecord) -> None:
        try:
            super().emit(record)
            self.flush()
        except Exception:
            self.handleError(record)


class AuditLogger:
    """
    Audit logger configured from the environment.

    Uses a dedicated, non-propagating logger so audit lines never mix with
    the operational log format.
    """

    def __init__(self, stream=None):
        self.enabled = _env_flag("AUDIT_LOG_ENABLED", "true")

        level_str = os.getenv("AUDIT_LOG_LEVEL", "MEDIUM").upper()
        try:
            self.min_severity = AuditSeverity[level_str]
        except KeyError:
            logging.warning(f"Invalid AUDIT_LOG_LEVEL '{level_str}', defaulting to MEDIUM")
            self.min_severity = AuditSeverity.MEDIUM

        self.include_low = _env_flag("AUDIT_LOG_INCLUDE_LOW", "false")

        self.logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self.logger.setLevel(logging.DEBUG)  # filtering happens in AuditLogFilter
        self.logger.propagate = False

        # Replace handlers from a previous instance so events are not duplicated
        for old_handler in list(self.logger.handlers):
            self.logger.removeHandler(old_handler)

        handler = AuditLogHandler(stream=stream)
        handler.addFilter(AuditLogFilter(self.min_severity, self.include_low))
        self.logger.addHandler(handler)

    def should_log(self, severity: AuditSeverity) -> bool:
        if not self.enabled:
            return False

        if severity == AuditSeverity.LOW:
            return self.include_low

        return severity.value >= self.min_severity.value

    def log_event(
        self,
        event_type: str,
        severity: AuditSeverity,
        action: AuditAction,
        status: str,
        organization_id: Optional[Any] = None,
        status_code: Optional[int] = None,
        error_kind: Optional[str] = None,
        error_message: Optional[str] = None,
        request_id: Optional[str] = None,
        source_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        duration_ms: Optional[int] = None,
        additional_safe_fields: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log an audit event with safe fields only.

        Args:
            event_type: The tool name
            severity: Event severity level
            action: Type of action being performed
            status: "started", "success" or "failure"
            organization_id: Organization filter or identifier from the tool arguments
            status_code: Upstream HTTP status code, if any
            error_kind: ToolError kind (e.g. "AuthRequired") or exception type
            error_message: Error text; sanitized before output
            request_id: Request correlation ID
            source_ip: Source IP address (HTTP mode)
            user_agent: User agent string (HTTP mode)
            duration_ms: Operation duration in milliseconds
            additional_safe_fields: Additional known-safe fields to include
        """
        if not self.should_log(severity):
            return

        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "severity": severity.name,
            "action": action.value,
            "status": status,
        }

        optional_fields = {
            "organization_id": organization_id,
            "status_code": status_code,
            "error_kind": error_kind,
            "error_message": error_message,
            "request_id": request_id,
            "source_ip": source_ip,
            "user_agent": user_agent,
            "duration_ms": duration_ms,
        }
        event.update({key: value for key, value in optional_fields.items() if value is not None})

        if additional_safe_fields:
            event.update(additional_safe_fields)

        self.logger.log(severity.value, "Audit event", extra={"audit_event": event, "audit_severity": severity})


_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get the global audit logger instance."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def infer_action_from_tool_name(tool_name: str) -> AuditAction:
    """get_* and list_* tools are reads, anything else is an execute."""
    if tool_name.lower().startswith(("get_", "list_")):
        return AuditAction.READ
    return AuditAction.EXECUTE


def infer_severity_from_tool_name(tool_name: str) -> AuditSeverity:
    """Account metadata is LOW, everything touching customer data is MEDIUM."""
    if tool_name == "get_account_info":
        return AuditSeverity.LOW
    return AuditSeverity.MEDIUM
