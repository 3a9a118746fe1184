"""
Audit logging decorator for tool dispatch.

Wraps an async `dispatch(self, tool_name, arguments, ...)` method so each
call is audited under the tool's own name, without logging arguments or
results.
"""

import functools
import time
import uuid
from contextvars import ContextVar
from typing import Any, Callable, Optional

from audit_logger import (
    AuditAction,
    AuditSeverity,
    get_audit_logger,
    infer_action_from_tool_name,
    infer_severity_from_tool_name,
)


# Context variables for request metadata (set by the HTTP middleware)
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
source_ip_var: ContextVar[Optional[str]] = ContextVar("source_ip", default=None)
user_agent_var: ContextVar[Optional[str]] = ContextVar("user_agent", default=None)


def audit_tool_call(severity: Optional[AuditSeverity] = None, action: Optional[AuditAction] = None):
    """
    Decorator to log audit events around a tool dispatch coroutine.

    The decorated coroutine must take the tool name as its first argument
    after self and the arguments mapping as its second.

    Args:
        severity: Fixed severity, or None to infer it from the tool name
        action: Fixed action type, or None to infer it from the tool name

    Example:
        @audit_tool_call()
        async def dispatch(self, tool_name, arguments):
            ...
    """

    def decorator(func: Callable) -> Callable:

        @functools.wraps(func)
        async def wrapper(self, tool_name: str, arguments: Optional[dict] = None, *args, **kwargs) -> Any:
            audit_logger = get_audit_logger()
            event_severity = severity or infer_severity_from_tool_name(tool_name)
            event_action = action or infer_action_from_tool_name(tool_name)
            common = {
                "event_type": tool_name,
                "severity": event_severity,
                "action": event_action,
                "organization_id": _extract_organization_id(arguments),
                "request_id": request_id_var.get() or str(uuid.uuid4()),
                "source_ip": source_ip_var.get(),
                "user_agent": user_agent_var.get(),
            }

            audit_logger.log_event(status="started", **common)
            start_time = time.time()

            try:
                result = await func(self, tool_name, arguments, *args, **kwargs)
            except Exception as e:
                audit_logger.log_event(
                    status="failure",
                    status_code=getattr(e, "status_code", None),
                    error_kind=getattr(e, "kind", type(e).__name__),
                    error_message=str(e),
                    duration_ms=int((time.time() - start_time) * 1000),
                    **common,
                )
                raise

            audit_logger.log_event(
                status="success",
                duration_ms=int((time.time() - start_time) * 1000),
                **common,
            )
            return result

        return wrapper

    return decorator


def _extract_organization_id(arguments: Optional[dict]) -> Optional[Any]:
    if not isinstance(arguments, dict):
        return None
    return arguments.get("organization_id")


def set_request_metadata(request_id: str, source_ip: Optional[str] = None, user_agent: Optional[str] = None):
    """
    Set request metadata for audit logging.

    Called by the HTTP middleware at the start of each request.
    """
    request_id_var.set(request_id)
    if source_ip:
        source_ip_var.set(source_ip)
    if user_agent:
        user_agent_var.set(user_agent)


def clear_request_metadata():
    """Called by the HTTP middleware at the end of each request."""
    request_id_var.set(None)
    source_ip_var.set(None)
    user_agent_var.set(None)
