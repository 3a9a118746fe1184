"""
Tests for audit logging framework.

This test suite verifies that:
1. Audit events are logged correctly
2. Sensitive data is never logged
3. Severity filtering works correctly
4. Tool dispatches are audited under the tool name
"""

import asyncio
import json
import os
import unittest
from io import StringIO
from unittest.mock import patch

from audit_decorator import audit_tool_call, clear_request_metadata, set_request_metadata
from audit_logger import (
    AuditAction,
    AuditLogFormatter,
    AuditLogger,
    AuditSeverity,
    get_audit_logger,
    infer_action_from_tool_name,
    infer_severity_from_tool_name,
)
from errors import MissingParameter

AUDIT_ENV = {
    "AUDIT_LOG_ENABLED": "true",
    "AUDIT_LOG_LEVEL": "MEDIUM",
    "AUDIT_LOG_INCLUDE_LOW": "false",
}


def audit_events(stream: StringIO) -> list[dict]:
    lines = [line for line in stream.getvalue().splitlines() if line.startswith("AUDIT: ")]
    return [json.loads(line[len("AUDIT: "):]) for line in lines]


class TestAuditLogger(unittest.TestCase):
    """Test the AuditLogger class."""

    def setUp(self):
        self.env = patch.dict(os.environ, AUDIT_ENV)
        self.env.start()
        self.stream = StringIO()
        self.logger = AuditLogger(stream=self.stream)

    def tearDown(self):
        self.env.stop()

    def test_logger_enabled_by_default(self):
        self.assertTrue(self.logger.enabled)

    def test_logger_can_be_disabled(self):
        os.environ["AUDIT_LOG_ENABLED"] = "false"
        logger = AuditLogger(stream=self.stream)
        self.assertFalse(logger.enabled)
        self.assertFalse(logger.should_log(AuditSeverity.CRITICAL))

    def test_severity_filtering(self):
        """HIGH level keeps HIGH and CRITICAL only."""
        os.environ["AUDIT_LOG_LEVEL"] = "HIGH"
        logger = AuditLogger(stream=self.stream)

        self.assertTrue(logger.should_log(AuditSeverity.CRITICAL))
        self.assertTrue(logger.should_log(AuditSeverity.HIGH))
        self.assertFalse(logger.should_log(AuditSeverity.MEDIUM))
        self.assertFalse(logger.should_log(AuditSeverity.LOW))

    def test_low_severity_filtering(self):
        self.assertFalse(self.logger.should_log(AuditSeverity.LOW))

        os.environ["AUDIT_LOG_INCLUDE_LOW"] = "true"
        logger = AuditLogger(stream=self.stream)
        self.assertTrue(logger.should_log(AuditSeverity.LOW))

    def test_invalid_level_defaults_to_medium(self):
        os.environ["AUDIT_LOG_LEVEL"] = "LOUD"
        logger = AuditLogger(stream=self.stream)
        self.assertEqual(logger.min_severity, AuditSeverity.MEDIUM)

    def test_audit_event_structure(self):
        self.logger.log_event(
            event_type="list_incidents",
            severity=AuditSeverity.MEDIUM,
            action=AuditAction.READ,
            status="failure",
            organization_id=17,
            status_code=404,
            error_kind="UpstreamError",
            error_message="Huntress API error: Not found",
            request_id="test-request-123",
            source_ip="1.2.3.4",
            user_agent="test-agent/1.0",
            duration_ms=100,
        )

        events = audit_events(self.stream)
        self.assertEqual(len(events), 1)
        event = events[0]
        self.assertEqual(event["event_type"], "list_incidents")
        self.assertEqual(event["severity"], "MEDIUM")
        self.assertEqual(event["action"], "read")
        self.assertEqual(event["status"], "failure")
        self.assertEqual(event["organization_id"], 17)
        self.assertEqual(event["status_code"], 404)
        self.assertEqual(event["error_kind"], "UpstreamError")
        self.assertEqual(event["error_message"], "Huntress API error: Not found")
        self.assertEqual(event["request_id"], "test-request-123")
        self.assertEqual(event["source_ip"], "1.2.3.4")
        self.assertEqual(event["user_agent"], "test-agent/1.0")
        self.assertEqual(event["duration_ms"], 100)
        self.assertIn("timestamp", event)

    def test_optional_fields_omitted(self):
        self.logger.log_event(
            event_type="get_agent",
            severity=AuditSeverity.HIGH,
            action=AuditAction.READ,
            status="success",
        )

        event = audit_events(self.stream)[0]
        self.assertEqual(set(event), {"timestamp", "event_type", "severity", "action", "status"})

    def test_filtered_events_are_not_written(self):
        self.logger.log_event(
            event_type="get_account_info",
            severity=AuditSeverity.LOW,
            action=AuditAction.READ,
            status="success",
        )
        self.assertEqual(self.stream.getvalue(), "")

    def test_new_instance_replaces_handler(self):
        second_stream = StringIO()
        logger = AuditLogger(stream=second_stream)
        logger.log_event("get_agent", AuditSeverity.HIGH, AuditAction.READ, "success")

        self.assertEqual(self.stream.getvalue(), "")
        self.assertEqual(len(audit_events(second_stream)), 1)


class TestErrorSanitization(unittest.TestCase):

    def test_credentials_are_redacted(self):
        for message in (
            "Error: api_key=secret123 failed",
            "request with apiSecret=abc rejected",
            "Authorization: Basic a2V5OnNlY3JldA==",
        ):
            self.assertEqual(
                AuditLogFormatter.sanitize_error_message(message),
                "Error occurred (details redacted for security)",
            )

    def test_safe_message_kept(self):
        for message in ("Connection timeout", "Huntress API error: basic plan required for reports"):
            self.assertEqual(AuditLogFormatter.sanitize_error_message(message), message)

    def test_long_error_message_truncation(self):
        sanitized = AuditLogFormatter.sanitize_error_message("Error: " + ("x" * 1000))
        self.assertEqual(len(sanitized), 500)
        self.assertTrue(sanitized.endswith("..."))


class TestInference(unittest.TestCase):

    def test_read_action_inference(self):
        self.assertEqual(infer_action_from_tool_name("get_agent"), AuditAction.READ)
        self.assertEqual(infer_action_from_tool_name("list_incidents"), AuditAction.READ)

    def test_default_action_inference(self):
        self.assertEqual(infer_action_from_tool_name("isolate_host"), AuditAction.EXECUTE)

    def test_severity_inference(self):
        self.assertEqual(infer_severity_from_tool_name("get_account_info"), AuditSeverity.LOW)
        self.assertEqual(infer_severity_from_tool_name("list_incidents"), AuditSeverity.MEDIUM)
        self.assertEqual(infer_severity_from_tool_name("get_billing_report"), AuditSeverity.MEDIUM)


class FakeDispatcher:

    @audit_tool_call()
    async def dispatch(self, tool_name, arguments=None, credentials=None):
        if tool_name == "get_agent" and not (arguments or {}).get("agent_id"):
            raise MissingParameter("agent_id")
        return [{"api_key": "sensitive_key_123", "agent": "host-1"}]


class TestAuditDecorator(unittest.TestCase):
    """Test the audit_tool_call decorator."""

    def setUp(self):
        self.env = patch.dict(os.environ, AUDIT_ENV)
        self.env.start()
        self.stream = StringIO()
        self.logger_patch = patch("audit_decorator.get_audit_logger", return_value=AuditLogger(stream=self.stream))
        self.logger_patch.start()
        self.dispatcher = FakeDispatcher()

    def tearDown(self):
        self.logger_patch.stop()
        self.env.stop()
        clear_request_metadata()

    def test_success_logs_started_and_success(self):
        asyncio.run(self.dispatcher.dispatch("list_agents", {"organization_id": 5}))

        events = audit_events(self.stream)
        self.assertEqual([event["status"] for event in events], ["started", "success"])
        for event in events:
            self.assertEqual(event["event_type"], "list_agents")
            self.assertEqual(event["organization_id"], 5)
            self.assertEqual(event["action"], "read")
        self.assertIn("duration_ms", events[1])
        self.assertEqual(events[0]["request_id"], events[1]["request_id"])

    def test_failure_logs_error_kind_and_reraises(self):
        with self.assertRaises(MissingParameter):
            asyncio.run(self.dispatcher.dispatch("get_agent", {}))

        events = audit_events(self.stream)
        self.assertEqual(events[-1]["status"], "failure")
        self.assertEqual(events[-1]["error_kind"], "MissingParameter")
        self.assertEqual(events[-1]["error_message"], "agent_id is required")

    def test_results_and_arguments_are_not_logged(self):
        asyncio.run(self.dispatcher.dispatch("list_agents", {"platform": "windows-secret-marker"}))

        output = self.stream.getvalue()
        self.assertNotIn("sensitive_key_123", output)
        self.assertNotIn("windows-secret-marker", output)

    def test_request_metadata_is_attached(self):
        async def call():
            set_request_metadata("req-1", source_ip="10.0.0.9", user_agent="claude/1.0")
            await self.dispatcher.dispatch("list_incidents", {})

        asyncio.run(call())

        events = audit_events(self.stream)
        self.assertEqual(events[0]["request_id"], "req-1")
        self.assertEqual(events[0]["source_ip"], "10.0.0.9")
        self.assertEqual(events[0]["user_agent"], "claude/1.0")


class TestGlobalLogger(unittest.TestCase):

    def test_get_audit_logger_returns_singleton(self):
        self.assertIs(get_audit_logger(), get_audit_logger())


if __name__ == "__main__":
    unittest.main()
