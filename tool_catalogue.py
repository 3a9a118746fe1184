"""
Static catalogue of the tools exposed by the Huntress MCP Server.

The catalogue is plain JSON-Schema metadata. It never depends on credentials,
so clients can discover tools before authenticating.
"""

from dataclasses import dataclass, field
from typing import Any

from mcp import types

MAX_PAGE_LIMIT = 500
DEFAULT_PAGE_LIMIT = 50

AGENT_PLATFORMS = ("darwin", "windows")
INCIDENT_STATUSES = ("active", "resolved", "ignored")
INCIDENT_SEVERITIES = ("low", "high", "critical")
SUMMARY_REPORT_TYPES = ("monthly_summary", "quarterly_summary", "yearly_summary")
BILLING_REPORT_STATUSES = ("open", "paid", "failed", "partial_refund", "full_refund")


@dataclass(frozen=True)
class ToolDescriptor:
    """Name, description and input schema of one tool."""
    name: str
    description: str
    input_schema: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    def to_mcp_tool(self) -> types.Tool:
        return types.Tool(name=self.name, description=self.description, inputSchema=self.input_schema)


def _paging_properties() -> dict[str, Any]:
    return {
        "page": {
            "type": "integer",
            "description": "Page number (starts at 1)",
            "minimum": 1,
            "default": 1,
        },
        "limit": {
            "type": "integer",
            "description": f"Number of results per page (1-{MAX_PAGE_LIMIT}, values above {MAX_PAGE_LIMIT} are clamped)",
            "minimum": 1,
            "default": DEFAULT_PAGE_LIMIT,
        },
    }


def _id_schema(parameter: str, description: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            parameter: {"type": "integer", "description": description},
        },
        "required": [parameter],
    }


def _list_schema(**filters: dict[str, Any]) -> dict[str, Any]:
    properties = _paging_properties()
    properties.update(filters)
    return {"type": "object", "properties": properties}


_ORGANIZATION_FILTER = {"type": "integer", "description": "Filter by organization ID"}

TOOLS: tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        name="get_account_info",
        description="Get information about the current Huntress account",
    ),
    ToolDescriptor(
        name="list_organizations",
        description="List organizations in the account",
        input_schema=_list_schema(),
    ),
    ToolDescriptor(
        name="get_organization",
        description="Get details of a specific organization",
        input_schema=_id_schema("organization_id", "Organization ID"),
    ),
    ToolDescriptor(
        name="list_agents",
        description="List agents in the account",
        input_schema=_list_schema(
            organization_id=_ORGANIZATION_FILTER,
            platform={
                "type": "string",
                "description": "Filter by platform (darwin or windows)",
                "enum": list(AGENT_PLATFORMS),
            },
        ),
    ),
    ToolDescriptor(
        name="get_agent",
        description="Get details of a specific agent",
        input_schema=_id_schema("agent_id", "Agent ID"),
    ),
    ToolDescriptor(
        name="list_incidents",
        description="List incidents",
        input_schema=_list_schema(
            organization_id=_ORGANIZATION_FILTER,
            status={
                "type": "string",
                "description": "Filter by status",
                "enum": list(INCIDENT_STATUSES),
            },
            severity={
                "type": "string",
                "description": "Filter by severity",
                "enum": list(INCIDENT_SEVERITIES),
            },
        ),
    ),
    ToolDescriptor(
        name="get_incident",
        description="Get details of a specific incident",
        input_schema=_id_schema("incident_id", "Incident ID"),
    ),
    ToolDescriptor(
        name="list_summary_reports",
        description="List summary reports",
        input_schema=_list_schema(
            organization_id=_ORGANIZATION_FILTER,
            type={
                "type": "string",
                "description": "Filter by report type",
                "enum": list(SUMMARY_REPORT_TYPES),
            },
        ),
    ),
    ToolDescriptor(
        name="get_summary_report",
        description="Get details of a specific summary report",
        input_schema=_id_schema("report_id", "Summary Report ID"),
    ),
    ToolDescriptor(
        name="list_billing_reports",
        description="List billing reports",
        input_schema=_list_schema(
            status={
                "type": "string",
                "description": "Filter by status",
                "enum": list(BILLING_REPORT_STATUSES),
            },
        ),
    ),
    ToolDescriptor(
        name="get_billing_report",
        description="Get details of a specific billing report",
        input_schema=_id_schema("report_id", "Billing Report ID"),
    ),
)

TOOLS_BY_NAME: dict[str, ToolDescriptor] = {tool.name: tool for tool in TOOLS}

# Profile Definitions - maps profile names to sets of tool names
# "core" tools are included in all profiles
PROFILES = {
    "core": {
        "get_account_info",
        "list_organizations",
        "get_organization",
        "list_agents",
        "get_agent",
        "list_incidents",
        "get_incident",
    },
    "reports": {
        "list_summary_reports",
        "get_summary_report",
        "list_billing_reports",
        "get_billing_report",
    },
}


def get_profile_tools(profile_name: str) -> set[str]:
    """
    Get the set of tool names for a given profile.
    All profiles include core tools. 'all' profile includes everything.
    """
    if profile_name == "all":
        all_tools = set(PROFILES["core"])
        for tools in PROFILES.values():
            all_tools.update(tools)
        return all_tools

    if profile_name not in PROFILES:
        raise ValueError(f"Unknown profile: {profile_name}. Available profiles: {list(PROFILES.keys()) + ['all']}")

    return PROFILES["core"] | PROFILES[profile_name]


def list_tools(profile_name: str = "all") -> list[ToolDescriptor]:
    """Descriptors for a profile, in catalogue order."""
    names = get_profile_tools(profile_name)
    return [tool for tool in TOOLS if tool.name in names]
