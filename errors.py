"""
Error taxonomy for the Huntress MCP Server.

Every failure a tool call can produce is a ToolError subclass carrying a
JSON-RPC error code from the MCP SDK, so the transport layer can report it
without knowing which tool raised it.
"""

from typing import Optional

from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND


class ToolError(Exception):
    """Base class for errors raised while executing a tool."""

    code: int = INTERNAL_ERROR
    kind: str = "ToolError"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "code": self.code, "message": self.message}


class UnknownTool(ToolError):
    """The requested tool name is not in the catalogue."""

    code = METHOD_NOT_FOUND
    kind = "UnknownTool"

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")


class MissingParameter(ToolError):
    """A required parameter (usually a path identifier) was not supplied."""

    code = INVALID_PARAMS
    kind = "MissingParameter"

    def __init__(self, parameter: str):
        self.parameter = parameter
        super().__init__(f"{parameter} is required")


class InvalidParameter(ToolError):
    """A parameter was supplied with the wrong type or an unsupported value."""

    code = INVALID_PARAMS
    kind = "InvalidParameter"

    def __init__(self, parameter: str, reason: str):
        self.parameter = parameter
        super().__init__(f"{parameter} {reason}")


class AuthRequired(ToolError):
    """No (or incomplete) Huntress API credentials are available."""

    code = INVALID_REQUEST
    kind = "AuthRequired"

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message
            or "Huntress API credentials are required. Set HUNTRESS_API_KEY and "
            "HUNTRESS_API_SECRET, or pass apiKey and apiSecret as query parameters."
        )


class UpstreamError(ToolError):
    """The Huntress API returned an error or could not be reached."""

    code = INTERNAL_ERROR
    kind = "UpstreamError"

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(f"Huntress API error: {message}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.status_code is not None:
            data["status_code"] = self.status_code
        return data
