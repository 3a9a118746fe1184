"""
Huntress MCP Server

This server provides MCP (Model Context Protocol) access to the Huntress
security platform API: account, organizations, agents, incidents and reports.
Every tool is a thin proxy to one authenticated GET request against
https://api.huntress.io/v1, throttled to 60 requests per minute.

AUTHENTICATION
==============

Huntress uses an API key / API secret pair (HTTP Basic auth).

1. Environment Variables (STDIO and HTTP mode):
     export HUNTRESS_API_KEY="your-api-key"
     export HUNTRESS_API_SECRET="your-api-secret"

2. Query Parameters (HTTP mode only, override the environment per request):
     http://host:3000/mcp?apiKey=...&apiSecret=...

Tool discovery works without credentials. Tool calls fail with AuthRequired
until credentials are available.

DEPLOYMENT MODES
================

STDIO Mode (Default, PORT unset):
- Used with Claude Desktop or other local MCP clients
- stdout carries JSON-RPC, all logging goes to stderr

HTTP Mode (PORT set):
- Starlette app served by uvicorn
- /mcp      streamable HTTP MCP endpoint (stateless, JSON responses)
- /sse      legacy SSE MCP endpoint (messages posted to /messages/)
- /health   readiness probe: {status, timestamp, hasCredentials}
- CORS preflight handled for every path

ENVIRONMENT VARIABLES REFERENCE
===============================

Authentication:
  HUNTRESS_API_KEY      - Huntress API key
  HUNTRESS_API_SECRET   - Huntress API secret

Deployment:
  PORT                  - Enables HTTP mode on this port (default: unset, STDIO)
  HOST                  - HTTP bind address (default: "0.0.0.0")
  MCP_PROFILE           - Tool profile filter: "all", "core", "reports" (default: "all")

Logging:
  LOG_LEVEL             - Root log level (default: "INFO")
  AUDIT_LOG_ENABLED     - Enable audit events (default: "true")
  AUDIT_LOG_LEVEL       - CRITICAL, HIGH, MEDIUM, LOW (default: "MEDIUM")
  AUDIT_LOG_INCLUDE_LOW - Include LOW severity audit events (default: "false")
"""

import asyncio
import contextlib
import contextvars
import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from audit_decorator import clear_request_metadata, set_request_metadata
from credentials import Credentials, credentials_from_env, credentials_from_query, resolve_credentials
from dispatcher import ToolDispatcher
from errors import ToolError, UnknownTool
from tool_catalogue import get_profile_tools, list_tools

# Type hints only (for IDE/type checkers, not runtime)
if TYPE_CHECKING:
    from starlette.types import ASGIApp, Receive, Scope, Send

SERVER_NAME = "huntress-server"
SERVER_VERSION = "1.0.0"

PORT = os.getenv("PORT")
HTTP_MODE = bool(PORT)
HOST = os.getenv("HOST", "0.0.0.0")
MCP_PROFILE = os.getenv("MCP_PROFILE", "all").lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Per-request credentials from query parameters (HTTP mode)
request_credentials_var: contextvars.ContextVar[Optional[Credentials]] = contextvars.ContextVar(
    "request_credentials", default=None
)


def create_server(dispatcher: ToolDispatcher, profile_name: str = MCP_PROFILE) -> Server:
    """
    Create a low-level MCP server exposing the tools of one profile.

    Args:
        dispatcher: Executes tool calls
        profile_name: Name of the profile (e.g. 'core', 'all')

    Returns:
        Server with tools/list and tools/call handlers registered
    """
    server = Server(SERVER_NAME, version=SERVER_VERSION)
    profile_tools = [tool.to_mcp_tool() for tool in list_tools(profile_name)]
    enabled = {tool.name for tool in profile_tools}

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        return profile_tools

    # Input validation is left to the dispatcher so paging limits are clamped
    # instead of rejected and errors keep their types
    @server.call_tool(validate_input=False)
    async def handle_call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
        if name not in enabled:
            logging.warning(f"Tool {name} is not available in profile '{profile_name}'")
            raise UnknownTool(name)

        try:
            return await dispatcher.dispatch(name, arguments, credentials=request_credentials_var.get())
        except ToolError as e:
            logging.warning(f"Tool {name} failed with {e.kind}: {e}")
            raise

    logging.info(f"Created MCP server for profile '{profile_name}' with {len(profile_tools)} tools")
    return server


class RequestContextMiddleware:
    """Stores per-request credentials and audit metadata in contextvars."""

    def __init__(self, app: "ASGIApp"):
        self.app = app

    async def __call__(self, scope: "Scope", receive: "Receive", send: "Send"):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        from starlette.requests import Request

        request = Request(scope)
        credentials_token = request_credentials_var.set(credentials_from_query(request.query_params))
        set_request_metadata(
            request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
            source_ip=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        try:
            await self.app(scope, receive, send)
        finally:
            request_credentials_var.reset(credentials_token)
            clear_request_metadata()


class TrailingSlashMiddleware:
    """Rewrites mount points without a trailing slash before routing, avoiding 307 redirects."""

    def __init__(self, app: "ASGIApp", paths: list[str]):
        self.app = app
        self.paths = paths

    async def __call__(self, scope: "Scope", receive: "Receive", send: "Send"):
        if scope["type"] == "http" and scope["path"] in self.paths:
            scope = dict(scope)
            scope["path"] = scope["path"] + "/"
            scope["raw_path"] = scope["path"].encode()
        await self.app(scope, receive, send)


def get_client_ip(request) -> Optional[str]:
    """X-Forwarded-For first (reverse proxies), then the direct peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def create_app(dispatcher: Optional[ToolDispatcher] = None, profile_name: str = MCP_PROFILE) -> "ASGIApp":
    """
    Build the HTTP-mode ASGI application.

    Args:
        dispatcher: Tool dispatcher shared by every connection
        profile_name: Tool profile to expose

    Returns:
        ASGI app (Starlette wrapped in TrailingSlashMiddleware)
    """
    from mcp.server.sse import SseServerTransport
    from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
    from starlette.applications import Starlette
    from starlette.middleware.cors import CORSMiddleware
    from starlette.requests import Request
    from starlette.responses import JSONResponse, Response
    from starlette.routing import Mount, Route

    dispatcher = dispatcher or ToolDispatcher()
    server = create_server(dispatcher, profile_name)
    session_manager = StreamableHTTPSessionManager(app=server, json_response=True, stateless=True)
    sse_transport = SseServerTransport("/messages/")

    async def handle_streamable_http(scope: "Scope", receive: "Receive", send: "Send"):
        await session_manager.handle_request(scope, receive, send)

    async def handle_sse(request: Request):
        async with sse_transport.connect_sse(request.scope, request.receive, request._send) as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
        return Response()

    async def health(request: Request):
        return JSONResponse({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "hasCredentials": resolve_credentials(request.query_params) is not None,
        })

    async def root(request: Request):
        return JSONResponse({
            "status": "ok",
            "type": "mcp-server",
            "name": SERVER_NAME,
            "version": SERVER_VERSION,
            "profile": profile_name,
            "tools": len(get_profile_tools(profile_name)),
            "endpoints": {"mcp": "/mcp", "sse": "/sse", "health": "/health"},
        })

    @contextlib.asynccontextmanager
    async def lifespan(app):
        async with session_manager.run():
            logging.info(f"HTTP mode started (profile: {profile_name})")
            try:
                yield
            finally:
                await dispatcher.aclose()
                logging.info("HTTP mode shut down")

    routes = [
        Route("/", root, methods=["GET"]),
        Route("/health", health, methods=["GET"]),
        Route("/sse", handle_sse, methods=["GET"]),
        Mount("/messages/", app=sse_transport.handle_post_message),
        Mount("/mcp/", app=handle_streamable_http),
    ]

    base_app = Starlette(routes=routes, lifespan=lifespan)
    base_app.add_middleware(RequestContextMiddleware)
    base_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["mcp-session-id"],
    )

    return TrailingSlashMiddleware(base_app, ["/mcp"])


async def run_stdio(dispatcher: Optional[ToolDispatcher] = None, profile_name: str = MCP_PROFILE) -> None:
    """Serve MCP over stdin/stdout until the client disconnects."""
    dispatcher = dispatcher or ToolDispatcher()
    server = create_server(dispatcher, profile_name)

    if credentials_from_env() is None:
        logging.warning(
            "HUNTRESS_API_KEY and HUNTRESS_API_SECRET are not set; "
            "tools will be listed but calls will fail until credentials are configured"
        )

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        await dispatcher.aclose()


# In HTTP mode the app is created at import so `uvicorn server:app` works too
app = create_app() if HTTP_MODE else None


def main() -> None:
    # All output goes to stderr, stdout is reserved for JSON-RPC in STDIO mode
    logging.basicConfig(
        level=LOG_LEVEL,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)]
    )

    try:
        get_profile_tools(MCP_PROFILE)
    except ValueError as e:
        logging.error(f"Invalid profile: {e}")
        sys.exit(1)

    if HTTP_MODE:
        import uvicorn

        logging.info(f"Starting Huntress MCP Server in HTTP mode on {HOST}:{PORT} (profile: {MCP_PROFILE})")
        uvicorn.run(app, host=HOST, port=int(PORT), log_level=LOG_LEVEL.lower())
        return

    logging.info(f"Starting Huntress MCP Server in STDIO mode (profile: {MCP_PROFILE})")
    try:
        asyncio.run(run_stdio())
    except KeyboardInterrupt:
        logging.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
