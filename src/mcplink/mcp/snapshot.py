"""Read-only provider snapshot consumed by the selection prompts."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, cast

from mcplink.mcp.models import ConnectionStatus, JSONObject

if TYPE_CHECKING:
    from mcplink.mcp.manager import Connection

NO_SERVERS_TEXT = "No MCP servers are available."
NO_RESOURCES_TEXT = "No connected servers have available resources listed."


@dataclass(slots=True)
class ProviderSnapshot:
    """Structured and textual summary of every connection."""

    values: JSONObject = field(default_factory=lambda: {"mcp": {}})
    data: JSONObject = field(default_factory=lambda: {"mcp": {}})
    text: str = ""

    @property
    def servers(self) -> dict[str, JSONObject]:
        mcp = self.values.get("mcp")
        return cast(dict[str, JSONObject], mcp) if isinstance(mcp, dict) else {}


def _server_entry(connection: Connection) -> JSONObject:
    tools: JSONObject = {
        tool.name: {"description": tool.description, "inputSchema": tool.input_schema}
        for tool in connection.tools
    }
    resources: JSONObject = {
        resource.uri: {
            "name": resource.name,
            "description": resource.description,
            "mimeType": resource.mime_type,
        }
        for resource in connection.resources
    }
    templates: JSONObject = {
        template.uri_template: {
            "name": template.name,
            "description": template.description,
            "mimeType": template.mime_type,
        }
        for template in connection.resource_templates
    }
    return {
        "status": connection.status.value,
        "tools": tools,
        "resources": resources,
        "resourceTemplates": templates,
    }


def _render_text(connections: Sequence[Connection]) -> str:
    if not connections:
        return NO_SERVERS_TEXT
    lines = ["# MCP Configuration", ""]
    for connection in connections:
        lines.append(f"## Server: {connection.name} ({connection.status.value})")
        lines.append("")
        if connection.status is not ConnectionStatus.CONNECTED:
            if connection.error:
                lines.append(f"Error: {connection.error.splitlines()[-1]}")
                lines.append("")
            continue
        if connection.tools:
            lines.append("### Tools")
            for tool in connection.tools:
                lines.append(f"- **{tool.name}**: {tool.description or 'No description'}")
            lines.append("")
        if connection.resources:
            lines.append("### Resources")
            for resource in connection.resources:
                lines.append(
                    f"- **{resource.name}** ({resource.uri}): "
                    f"{resource.description or 'No description'}"
                )
            lines.append("")
        if not connection.tools and not connection.resources:
            lines.append("No tools or resources available.")
            lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def build_provider_snapshot(connections: Sequence[Connection]) -> ProviderSnapshot:
    """Flatten all connections into the snapshot shape."""
    servers: JSONObject = {connection.name: _server_entry(connection) for connection in connections}
    return ProviderSnapshot(
        values={"mcp": servers},
        data={"mcp": servers},
        text=_render_text(connections),
    )


def render_resources_description(snapshot: ProviderSnapshot) -> str:
    """Enumerate server/resource/name/description/MIME type for connected servers."""
    sections: list[str] = []
    for server_name, entry in snapshot.servers.items():
        if not isinstance(entry, dict) or entry.get("status") != ConnectionStatus.CONNECTED.value:
            continue
        resources = entry.get("resources")
        if not isinstance(resources, dict):
            continue
        if not resources:
            sections.append(f"Server: {server_name} - No resources available\n\n")
            continue
        section = f"Server: {server_name}\n"
        for uri, resource in resources.items():
            if not isinstance(resource, dict):
                continue
            section += f"  Resource: {uri}\n"
            section += f"  Name: {resource.get('name') or 'No name available'}\n"
            section += f"  Description: {resource.get('description') or 'No description available'}\n"
            section += f"  MIME Type: {resource.get('mimeType') or 'Not specified'}\n\n"
        sections.append(section)
    return "".join(sections) or NO_RESOURCES_TEXT
