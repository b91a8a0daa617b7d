from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from mcplink.api.app import create_app
from mcplink.core.context import MCPContext
from mcplink.mcp.capabilities import CALCULATOR_URI
from mcplink.mcp.config import MCPSettings
from mcplink.mcp.errors import MCPTransportError
from mcplink.mcp.manager import MCPConnectionManager
from tests.support.mcp_fakes import (
    FakeClientFactory,
    ServerBehavior,
    build_manager,
    resource,
    sse_config,
    stdio_config,
    tool,
)

N8N_URL = "https://acme.app.n8n.cloud/mcp/sse"


def _behaviors() -> dict[str, ServerBehavior]:
    return {
        "n8n": ServerBehavior(
            tools=[tool("calculator", "Evaluates math"), tool("translate", "Translates text")],
            tool_results={
                "calculator": {"content": [{"type": "text", "text": "4"}], "isError": False},
                "broken": MCPTransportError("rpc failure", category="rpc_error"),
                "odd": {"content": "not-a-list"},
            },
        ),
        "docs": ServerBehavior(resources=[resource("file:///readme.md", "Readme")]),
        "slow": ServerBehavior(tools=[tool("sleep")], tool_delay=1.0),
        "down": ServerBehavior(connect_error=ConnectionError("connection refused")),
    }


def _settings() -> MCPSettings:
    return MCPSettings(
        servers={
            "n8n": sse_config(N8N_URL),
            "docs": stdio_config("docs-server"),
            "slow": stdio_config("slow-server", timeout_in_millis=20),
            "down": sse_config("http://down.local/sse"),
            "off": stdio_config("off-server", disabled=True),
        }
    )


@pytest.fixture
def harness() -> Iterator[tuple[TestClient, MCPConnectionManager, FakeClientFactory]]:
    manager, _, clients = build_manager(_behaviors())
    context = MCPContext.from_settings(_settings(), manager=manager)
    with TestClient(create_app(context)) as client:
        yield client, manager, clients


def test_health_reports_manager_state(
    harness: tuple[TestClient, MCPConnectionManager, FakeClientFactory],
) -> None:
    client, _, _ = harness

    response = client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "mcp": "ready"}


def test_list_servers_reports_each_connection(
    harness: tuple[TestClient, MCPConnectionManager, FakeClientFactory],
) -> None:
    client, _, _ = harness

    response = client.get("/api/v1/mcp/servers")

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "ready"
    items = {item["name"]: item for item in body["items"]}
    assert sorted(items) == ["docs", "down", "n8n", "off", "slow"]
    assert items["n8n"]["status"] == "connected"
    assert items["n8n"]["type"] == "sse"
    assert items["n8n"]["connected_at"] == "2026-03-14T09:30:00Z"
    assert [item["name"] for item in items["n8n"]["tools"]] == ["calculator", "translate"]
    synthetic = {item["uri"] for item in items["n8n"]["resources"] if item["synthetic"]}
    assert CALCULATOR_URI in synthetic
    assert "mcp://n8n/synthetic/tool/translate" in synthetic
    assert items["down"]["status"] == "disconnected"
    assert items["down"]["error"] == "connection refused"
    assert items["off"]["disabled"] is True
    assert items["off"]["error"] == "Server is disabled"


def test_get_server_and_missing_server(
    harness: tuple[TestClient, MCPConnectionManager, FakeClientFactory],
) -> None:
    client, _, _ = harness

    found = client.get("/api/v1/mcp/servers/docs")
    missing = client.get("/api/v1/mcp/servers/nope")

    assert found.status_code == 200
    assert found.json()["resources"][0]["uri"] == "file:///readme.md"
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Server not found"


def test_call_tool_returns_result(
    harness: tuple[TestClient, MCPConnectionManager, FakeClientFactory],
) -> None:
    client, _, clients = harness

    response = client.post(
        "/api/v1/mcp/servers/n8n/tools/calculator/call",
        json={"arguments": {"input": "2+2"}},
    )

    assert response.status_code == 200
    assert response.json() == {
        "content": [{"type": "text", "text": "4"}],
        "is_error": False,
        "structured_content": None,
    }
    assert clients.for_server("n8n")[-1].tool_calls == [("calculator", {"input": "2+2"})]


@pytest.mark.parametrize(
    ("path", "status_code"),
    [
        ("/api/v1/mcp/servers/ghost/tools/calculator/call", 404),
        ("/api/v1/mcp/servers/off/tools/anything/call", 409),
        ("/api/v1/mcp/servers/down/tools/anything/call", 409),
        ("/api/v1/mcp/servers/slow/tools/sleep/call", 504),
        ("/api/v1/mcp/servers/n8n/tools/broken/call", 502),
        ("/api/v1/mcp/servers/n8n/tools/odd/call", 502),
    ],
)
def test_call_tool_error_mapping(
    harness: tuple[TestClient, MCPConnectionManager, FakeClientFactory],
    path: str,
    status_code: int,
) -> None:
    client, _, _ = harness

    response = client.post(path, json={"arguments": {}})

    assert response.status_code == status_code


def test_read_resource_native_and_synthetic(
    harness: tuple[TestClient, MCPConnectionManager, FakeClientFactory],
) -> None:
    client, _, _ = harness

    native = client.post(
        "/api/v1/mcp/servers/docs/resources/read", json={"uri": "file:///readme.md"}
    )
    calculator = client.post(
        "/api/v1/mcp/servers/n8n/resources/read", json={"uri": CALCULATOR_URI}
    )
    described = client.post(
        "/api/v1/mcp/servers/n8n/resources/read",
        json={"uri": "mcp://n8n/synthetic/tool/translate"},
    )
    unknown_tool = client.post(
        "/api/v1/mcp/servers/n8n/resources/read",
        json={"uri": "mcp://n8n/synthetic/tool/missing"},
    )
    disabled = client.post(
        "/api/v1/mcp/servers/off/resources/read", json={"uri": "file:///x"}
    )

    assert native.status_code == 200
    assert native.json()["contents"][0]["text"] == "contents of file:///readme.md"
    assert calculator.status_code == 200
    assert calculator.json()["contents"][0]["mime_type"] == "application/mcp-error"
    assert described.status_code == 200
    assert '"name": "translate"' in described.json()["contents"][0]["text"]
    assert unknown_tool.status_code == 404
    assert disabled.status_code == 409


def test_restart_server(
    harness: tuple[TestClient, MCPConnectionManager, FakeClientFactory],
) -> None:
    client, _, clients = harness

    response = client.post("/api/v1/mcp/servers/docs/restart")
    missing = client.post("/api/v1/mcp/servers/ghost/restart")

    assert response.status_code == 200
    assert response.json()["status"] == "connected"
    assert len(clients.for_server("docs")) == 2
    assert clients.for_server("docs")[0].close_calls == 1
    assert missing.status_code == 404


def test_reconcile_replaces_server_set(
    harness: tuple[TestClient, MCPConnectionManager, FakeClientFactory],
) -> None:
    client, manager, clients = harness

    response = client.put(
        "/api/v1/mcp/servers",
        json={
            "servers": {
                "docs": {"type": "stdio", "command": "docs-server"},
                "extra": {"type": "sse", "url": "http://extra.local/sse", "timeoutInMillis": 500},
            },
            "maxRetries": 4,
        },
    )

    assert response.status_code == 200
    names = sorted(item["name"] for item in response.json()["items"])
    assert names == ["docs", "extra"]
    assert len(clients.for_server("docs")) == 1
    assert clients.for_server("n8n")[0].close_calls == 1
    extra = manager.get("extra")
    assert extra is not None
    assert extra.config.effective_timeout_millis == 500


def test_reconcile_rejects_unknown_server_type(
    harness: tuple[TestClient, MCPConnectionManager, FakeClientFactory],
) -> None:
    client, _, _ = harness

    response = client.put(
        "/api/v1/mcp/servers", json={"servers": {"x": {"type": "websocket"}}}
    )

    assert response.status_code == 422


def test_provider_snapshot_and_availability(
    harness: tuple[TestClient, MCPConnectionManager, FakeClientFactory],
) -> None:
    client, _, _ = harness

    provider = client.get("/api/v1/mcp/provider")
    availability = client.get("/api/v1/mcp/availability")

    assert provider.status_code == 200
    body = provider.json()
    assert "## Server: n8n (connected)" in body["text"]
    assert "Error: connection refused" in body["text"]
    assert body["values"] == body["data"]
    assert body["values"]["mcp"]["docs"]["status"] == "connected"
    assert "Resource: file:///readme.md" in body["resources_description"]
    assert availability.json() == {
        "state": "ready",
        "failure_reason": None,
        "resources_available": True,
    }


def test_connection_events_filter_and_limit(
    harness: tuple[TestClient, MCPConnectionManager, FakeClientFactory],
) -> None:
    client, _, _ = harness

    down = client.get("/api/v1/mcp/events", params={"server": "down"})
    latest = client.get("/api/v1/mcp/events", params={"limit": 1})
    none = client.get("/api/v1/mcp/events", params={"limit": 0})
    invalid = client.get("/api/v1/mcp/events", params={"limit": -1})

    assert down.status_code == 200
    assert [
        (item["from_status"], item["to_status"], item["reason"]) for item in down.json()["items"]
    ] == [("connecting", "disconnected", "connection refused")]
    assert len(latest.json()["items"]) == 1
    assert none.json()["items"] == []
    assert invalid.status_code == 422


def test_tool_selection_validation_endpoint(
    harness: tuple[TestClient, MCPConnectionManager, FakeClientFactory],
) -> None:
    client, _, _ = harness

    accepted = client.post(
        "/api/v1/mcp/selection/tool/validate",
        json={
            "response": (
                '```json\n{"serverName": "n8n", "toolName": "calculator",'
                ' "arguments": {"input": "2+2"}}\n```'
            )
        },
    )
    rejected = client.post(
        "/api/v1/mcp/selection/tool/validate", json={"response": {"serverName": "n8n"}}
    )

    assert accepted.json() == {
        "ok": True,
        "selection": {"serverName": "n8n", "toolName": "calculator", "arguments": {"input": "2+2"}},
        "errors": [],
    }
    body = rejected.json()
    assert body["ok"] is False
    assert body["selection"] is None
    assert any("toolName" in error for error in body["errors"])


def test_resource_selection_validation_endpoint(
    harness: tuple[TestClient, MCPConnectionManager, FakeClientFactory],
) -> None:
    client, _, _ = harness

    declined = client.post(
        "/api/v1/mcp/selection/resource/validate",
        json={"response": '{"noResourceAvailable": true, "reasoning": "nothing fits"}'},
    )
    malformed = client.post(
        "/api/v1/mcp/selection/resource/validate", json={"response": "```json\n{oops\n```"}
    )

    assert declined.json()["selection"] == {
        "noResourceAvailable": True,
        "reasoning": "nothing fits",
    }
    assert malformed.json()["ok"] is False
    assert malformed.json()["errors"][0].startswith(
        "Failed to parse JSON from resource selection response"
    )


def test_failed_initialization_is_reported() -> None:
    manager, _, _ = build_manager()

    async def explode(_: object) -> None:
        raise RuntimeError("settings store offline")

    manager.reconcile = explode  # type: ignore[method-assign]
    context = MCPContext.from_settings(MCPSettings(servers={"a": stdio_config()}), manager=manager)

    with TestClient(create_app(context)) as client:
        health = client.get("/api/v1/health")
        availability = client.get("/api/v1/mcp/availability")
        servers = client.get("/api/v1/mcp/servers")

    assert health.json()["mcp"] == "failed"
    assert availability.json() == {
        "state": "failed",
        "failure_reason": "Failed during MCP server initialization: settings store offline",
        "resources_available": False,
    }
    assert servers.json() == {"state": "failed", "items": []}
