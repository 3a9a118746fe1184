"""
Tool dispatcher: turns (tool name, arguments) into one Huntress API call.

Per call the dispatcher:
1. looks the tool up in the route table (UnknownTool),
2. validates and normalizes parameters (MissingParameter / InvalidParameter),
3. resolves credentials lazily (AuthRequired),
4. issues the GET through the rate-gated HuntressClient (UpstreamError),
5. wraps the JSON payload in a text content block.

Steps 1-3 never touch the network.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import httpx
from mcp import types

from audit_decorator import audit_tool_call
from credentials import Credentials, credentials_from_env
from errors import AuthRequired, InvalidParameter, MissingParameter, UnknownTool
from huntress_client import BASE_URL, HuntressClient
from rate_limiter import RateGate
from tool_catalogue import (
    AGENT_PLATFORMS,
    BILLING_REPORT_STATUSES,
    DEFAULT_PAGE_LIMIT,
    INCIDENT_SEVERITIES,
    INCIDENT_STATUSES,
    MAX_PAGE_LIMIT,
    SUMMARY_REPORT_TYPES,
)


@dataclass(frozen=True)
class Route:
    """How a tool maps onto the REST API."""
    endpoint: str
    id_param: Optional[str] = None       # required path identifier, appended to endpoint
    paged: bool = False                  # accepts page/limit
    filters: tuple[str, ...] = ()        # optional integer query filters
    enums: tuple[tuple[str, tuple[str, ...]], ...] = ()  # optional enumerated query filters


ROUTES: dict[str, Route] = {
    "get_account_info": Route("/account"),
    "list_organizations": Route("/organizations", paged=True),
    "get_organization": Route("/organizations", id_param="organization_id"),
    "list_agents": Route(
        "/agents",
        paged=True,
        filters=("organization_id",),
        enums=(("platform", AGENT_PLATFORMS),),
    ),
    "get_agent": Route("/agents", id_param="agent_id"),
    "list_incidents": Route(
        "/incidents",
        paged=True,
        filters=("organization_id",),
        enums=(("status", INCIDENT_STATUSES), ("severity", INCIDENT_SEVERITIES)),
    ),
    "get_incident": Route("/incidents", id_param="incident_id"),
    "list_summary_reports": Route(
        "/reports",
        paged=True,
        filters=("organization_id",),
        enums=(("type", SUMMARY_REPORT_TYPES),),
    ),
    "get_summary_report": Route("/reports", id_param="report_id"),
    "list_billing_reports": Route(
        "/billing_reports",
        paged=True,
        enums=(("status", BILLING_REPORT_STATUSES),),
    ),
    "get_billing_report": Route("/billing_reports", id_param="report_id"),
}


class CredentialState(Enum):
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"


def _is_absent(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _as_int(name: str, value: Any) -> int:
    """Accept ints and digit strings; reject bools, floats with fractions and text."""
    if isinstance(value, bool):
        raise InvalidParameter(name, "must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            raise InvalidParameter(name, "must be an integer") from None
    raise InvalidParameter(name, "must be an integer")


def build_request(tool_name: str, arguments: Optional[dict[str, Any]]) -> tuple[str, dict[str, Any]]:
    """
    Validate arguments for a tool and compute the upstream request.

    Returns:
        (endpoint, query params)

    Raises:
        UnknownTool, MissingParameter, InvalidParameter
    """
    route = ROUTES.get(tool_name)
    if route is None:
        raise UnknownTool(tool_name)

    args = arguments or {}
    if not isinstance(args, dict):
        raise InvalidParameter("arguments", "must be an object")

    endpoint = route.endpoint
    if route.id_param:
        value = args.get(route.id_param)
        if _is_absent(value):
            raise MissingParameter(route.id_param)
        endpoint = f"{route.endpoint}/{_as_int(route.id_param, value)}"

    params: dict[str, Any] = {}
    if route.paged:
        page = args.get("page")
        limit = args.get("limit")
        params["page"] = 1 if _is_absent(page) else max(_as_int("page", page), 1)
        params["limit"] = DEFAULT_PAGE_LIMIT if _is_absent(limit) else min(max(_as_int("limit", limit), 1), MAX_PAGE_LIMIT)

    for name in route.filters:
        value = args.get(name)
        if not _is_absent(value):
            params[name] = _as_int(name, value)

    for name, allowed in route.enums:
        value = args.get(name)
        if _is_absent(value):
            continue
        if value not in allowed:
            raise InvalidParameter(name, f"must be one of: {', '.join(allowed)}")
        params[name] = value

    return endpoint, params


def format_result(payload: Any) -> list[types.TextContent]:
    """Uniform tool result: the JSON payload pretty-printed in one text block."""
    return [types.TextContent(type="text", text=json.dumps(payload, indent=2))]


class ToolDispatcher:
    """
    Executes catalogue tools against the Huntress API.

    Owns the RateGate (shared by every client it creates) and the cached
    process-level credentials. Credential resolution is lazy: nothing is read
    until the first tool call that needs upstream data. Per-request
    credentials are never cached; each such call gets its own client.
    """

    def __init__(
        self,
        rate_gate: Optional[RateGate] = None,
        credential_resolver: Callable[[], Optional[Credentials]] = credentials_from_env,
        base_url: str = BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            rate_gate: Gate for outbound calls (a fresh 60/60s gate by default)
            credential_resolver: Returns process-level credentials or None
            base_url: Huntress API root
            transport: Optional httpx transport handed to every client
        """
        self.rate_gate = rate_gate or RateGate()
        self.credential_resolver = credential_resolver
        self.base_url = base_url
        self.transport = transport
        self.credential_state = CredentialState.UNRESOLVED
        self.credentials: Optional[Credentials] = None
        self._client: Optional[HuntressClient] = None
        self._lock = asyncio.Lock()

    @property
    def has_credentials(self) -> bool:
        return self.credential_state is CredentialState.RESOLVED

    def _new_client(self, credentials: Credentials) -> HuntressClient:
        return HuntressClient(
            credentials,
            rate_gate=self.rate_gate,
            base_url=self.base_url,
            transport=self.transport,
        )

    async def _process_client(self) -> HuntressClient:
        """Return the client for the process-level credentials, resolving them on first use."""
        async with self._lock:
            if self.credential_state is CredentialState.RESOLVED:
                return self._client

            credentials = self.credential_resolver()
            if credentials is None:
                raise AuthRequired()

            logging.info(f"Resolved Huntress credentials: {credentials}")
            self._client = self._new_client(credentials)
            self.credentials = credentials
            self.credential_state = CredentialState.RESOLVED
            return self._client

    async def _fetch(self, endpoint: str, params: dict[str, Any], credentials: Optional[Credentials]) -> Any:
        if credentials is None:
            client = await self._process_client()
            return await client.get(endpoint, params)

        # Request credentials only live as long as the call
        logging.info(f"Using request credentials: {credentials}")
        async with self._new_client(credentials) as client:
            return await client.get(endpoint, params)

    @audit_tool_call()
    async def dispatch(
        self,
        tool_name: str,
        arguments: Optional[dict[str, Any]] = None,
        credentials: Optional[Credentials] = None,
    ) -> list[types.TextContent]:
        """
        Run one tool.

        Args:
            tool_name: Catalogue tool name
            arguments: Tool arguments as sent by the client
            credentials: Per-request credentials; take precedence over the
                process-level pair for this call only

        Returns:
            A single text content block with the upstream JSON, indented

        Raises:
            UnknownTool, MissingParameter, InvalidParameter, AuthRequired, UpstreamError
        """
        start = time.time()
        logging.info(f"Tool called: {tool_name}({json.dumps(arguments or {}, default=str)})")

        try:
            endpoint, params = build_request(tool_name, arguments)
            payload = await self._fetch(endpoint, params, credentials)
            return format_result(payload)
        finally:
            logging.info(f"{tool_name} time: {time.time() - start} seconds")

    async def aclose(self) -> None:
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
            self.credentials = None
            self.credential_state = CredentialState.UNRESOLVED
