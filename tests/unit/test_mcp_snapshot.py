from __future__ import annotations

from mcplink.mcp.manager import Connection
from mcplink.mcp.models import ConnectionStatus
from mcplink.mcp.snapshot import (
    NO_RESOURCES_TEXT,
    build_provider_snapshot,
    render_resources_description,
)
from tests.support.mcp_fakes import resource, sse_config, stdio_config, tool


def _connections() -> list[Connection]:
    return [
        Connection(
            name="docs",
            config=stdio_config(),
            status=ConnectionStatus.CONNECTED,
            tools=[tool("search", "Search docs")],
            resources=[resource("file:///readme.md", "Readme")],
        ),
        Connection(
            name="empty",
            config=stdio_config(),
            status=ConnectionStatus.CONNECTED,
        ),
        Connection(
            name="down",
            config=sse_config(),
            status=ConnectionStatus.DISCONNECTED,
            resources=[resource("file:///stale.md")],
            error="connect refused\nretry refused",
        ),
    ]


def test_snapshot_values_map_servers_to_capabilities() -> None:
    snapshot = build_provider_snapshot(_connections())

    assert snapshot.values == snapshot.data
    docs = snapshot.servers["docs"]
    assert docs["status"] == "connected"
    assert docs["tools"] == {
        "search": {
            "description": "Search docs",
            "inputSchema": {"type": "object", "properties": {"input": {"type": "string"}}},
        }
    }
    assert docs["resources"] == {
        "file:///readme.md": {
            "name": "Readme",
            "description": "Readme docs",
            "mimeType": "text/plain",
        }
    }
    assert snapshot.servers["down"]["status"] == "disconnected"


def test_snapshot_text_lists_connected_capabilities() -> None:
    text = build_provider_snapshot(_connections()).text

    assert text.startswith("# MCP Configuration")
    assert "## Server: docs (connected)" in text
    assert "- **search**: Search docs" in text
    assert "- **Readme** (file:///readme.md): Readme docs" in text
    assert "## Server: empty (connected)" in text
    assert "No tools or resources available." in text
    assert "## Server: down (disconnected)" in text
    assert "Error: retry refused" in text
    assert "file:///stale.md" not in text


def test_resources_description_covers_connected_servers_only() -> None:
    description = render_resources_description(build_provider_snapshot(_connections()))

    assert description == (
        "Server: docs\n"
        "  Resource: file:///readme.md\n"
        "  Name: Readme\n"
        "  Description: Readme docs\n"
        "  MIME Type: text/plain\n\n"
        "Server: empty - No resources available\n\n"
    )


def test_resources_description_without_servers() -> None:
    assert render_resources_description(build_provider_snapshot([])) == NO_RESOURCES_TEXT
