"""MCP API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from mcplink.mcp.config import DEFAULT_MAX_RETRIES, ServerConfig
from mcplink.mcp.manager import ManagerState
from mcplink.mcp.models import ConnectionStatus


class MCPToolResponse(BaseModel):
    """Tool discovered on one server."""

    name: str
    description: str
    input_schema: dict[str, Any]
    output_schema: dict[str, Any]


class MCPResourceResponse(BaseModel):
    """Real or synthetic resource on one server."""

    uri: str
    name: str
    description: str
    mime_type: str | None
    template_uri: str | None
    synthetic: bool


class MCPResourceTemplateResponse(BaseModel):
    """Real or synthetic resource template on one server."""

    uri_template: str
    name: str
    description: str
    mime_type: str | None
    synthetic: bool


class MCPServerResponse(BaseModel):
    """Connection status payload."""

    name: str
    type: Literal["stdio", "sse"]
    status: ConnectionStatus
    disabled: bool
    error: str
    connected_at: datetime | None
    tools: list[MCPToolResponse]
    resources: list[MCPResourceResponse]
    resource_templates: list[MCPResourceTemplateResponse]


class MCPServersResponse(BaseModel):
    """Collection of connections."""

    state: ManagerState
    items: list[MCPServerResponse]


class ReconcileServersRequest(BaseModel):
    """Desired server map; replaces the current configuration."""

    model_config = ConfigDict(populate_by_name=True)

    servers: dict[str, ServerConfig] = Field(default_factory=dict)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, alias="maxRetries", ge=0)


class CallToolRequest(BaseModel):
    """Tool call payload."""

    arguments: dict[str, Any] = Field(default_factory=dict)


class MCPToolResultResponse(BaseModel):
    """Tool call result."""

    content: list[dict[str, Any]]
    is_error: bool
    structured_content: dict[str, Any] | None = None


class ReadResourceRequest(BaseModel):
    """Resource read payload."""

    uri: str


class MCPResourceContentResponse(BaseModel):
    uri: str
    mime_type: str | None = None
    text: str | None = None
    blob: str | None = None


class MCPResourceReadResponse(BaseModel):
    """Resource read result."""

    contents: list[MCPResourceContentResponse]


class MCPProviderSnapshotResponse(BaseModel):
    """Provider snapshot used by selection prompts."""

    values: dict[str, Any]
    data: dict[str, Any]
    text: str
    resources_description: str


class MCPAvailabilityResponse(BaseModel):
    state: ManagerState
    failure_reason: str | None
    resources_available: bool


class MCPConnectionEventResponse(BaseModel):
    """Connection status transition event response."""

    server: str
    from_status: ConnectionStatus
    to_status: ConnectionStatus
    reason: str
    timestamp: datetime


class MCPConnectionEventsResponse(BaseModel):
    """Collection of connection transition events."""

    items: list[MCPConnectionEventResponse]


class SelectionValidationRequest(BaseModel):
    """Raw model output to check against a selection schema."""

    response: str | dict[str, Any]


class SelectionValidationResponse(BaseModel):
    ok: bool
    selection: dict[str, Any] | None = None
    errors: list[str] = Field(default_factory=list)
