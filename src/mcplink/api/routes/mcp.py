"""MCP routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from mcplink.api.deps import get_connection_manager, get_context
from mcplink.api.schemas.mcp import (
    CallToolRequest,
    MCPAvailabilityResponse,
    MCPConnectionEventResponse,
    MCPConnectionEventsResponse,
    MCPProviderSnapshotResponse,
    MCPResourceContentResponse,
    MCPResourceReadResponse,
    MCPResourceResponse,
    MCPResourceTemplateResponse,
    MCPServerResponse,
    MCPServersResponse,
    MCPToolResponse,
    MCPToolResultResponse,
    ReadResourceRequest,
    ReconcileServersRequest,
    SelectionValidationRequest,
    SelectionValidationResponse,
)
from mcplink.core.context import MCPContext
from mcplink.mcp.config import MCPSettings
from mcplink.mcp.errors import (
    ConnectionNotFoundError,
    MCPError,
    ServerDisabledError,
    ServerNotConnectedError,
    ToolCallTimeoutError,
    ToolNotFoundError,
)
from mcplink.mcp.manager import Connection, MCPConnectionManager
from mcplink.mcp.snapshot import render_resources_description
from mcplink.selection.validation import (
    ValidationResult,
    validate_resource_selection,
    validate_tool_selection,
)

router = APIRouter(prefix="/api/v1/mcp", tags=["mcp"])


def _as_response(connection: Connection) -> MCPServerResponse:
    return MCPServerResponse(
        name=connection.name,
        type=connection.config.type,
        status=connection.status,
        disabled=connection.disabled,
        error=connection.error,
        connected_at=connection.connected_at,
        tools=[
            MCPToolResponse(
                name=tool.name,
                description=tool.description,
                input_schema=tool.input_schema,
                output_schema=tool.output_schema,
            )
            for tool in connection.tools
        ],
        resources=[
            MCPResourceResponse(
                uri=resource.uri,
                name=resource.name,
                description=resource.description,
                mime_type=resource.mime_type,
                template_uri=resource.template_uri,
                synthetic=resource.synthetic,
            )
            for resource in connection.resources
        ],
        resource_templates=[
            MCPResourceTemplateResponse(
                uri_template=template.uri_template,
                name=template.name,
                description=template.description,
                mime_type=template.mime_type,
                synthetic=template.synthetic,
            )
            for template in connection.resource_templates
        ],
    )


def _servers_response(manager: MCPConnectionManager) -> MCPServersResponse:
    return MCPServersResponse(
        state=manager.state,
        items=[_as_response(connection) for connection in manager.get_all()],
    )


def _http_error(exc: MCPError) -> HTTPException:
    if isinstance(exc, ConnectionNotFoundError | ToolNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ServerDisabledError | ServerNotConnectedError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, ToolCallTimeoutError):
        code = status.HTTP_504_GATEWAY_TIMEOUT
    else:
        code = status.HTTP_502_BAD_GATEWAY
    return HTTPException(status_code=code, detail=str(exc))


def _selection_response(result: ValidationResult[Any]) -> SelectionValidationResponse:
    selection = result.data.model_dump(by_alias=True, exclude_none=True) if result.data else None
    return SelectionValidationResponse(ok=result.ok, selection=selection, errors=result.errors)


@router.get("/servers", response_model=MCPServersResponse)
async def list_mcp_servers(
    manager: MCPConnectionManager = Depends(get_connection_manager),
) -> MCPServersResponse:
    return _servers_response(manager)


@router.put("/servers", response_model=MCPServersResponse)
async def reconcile_mcp_servers(
    request: ReconcileServersRequest,
    context: MCPContext = Depends(get_context),
) -> MCPServersResponse:
    await context.apply_settings(
        MCPSettings(servers=request.servers, max_retries=request.max_retries)
    )
    return _servers_response(context.manager)


@router.get("/servers/{name}", response_model=MCPServerResponse)
async def get_mcp_server(
    name: str,
    manager: MCPConnectionManager = Depends(get_connection_manager),
) -> MCPServerResponse:
    connection = manager.get(name)
    if connection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Server not found")
    return _as_response(connection)


@router.post("/servers/{name}/restart", response_model=MCPServerResponse)
async def restart_mcp_server(
    name: str,
    manager: MCPConnectionManager = Depends(get_connection_manager),
) -> MCPServerResponse:
    try:
        connection = await manager.restart(name)
    except MCPError as exc:
        raise _http_error(exc) from exc
    return _as_response(connection)


@router.post("/servers/{name}/tools/{tool}/call", response_model=MCPToolResultResponse)
async def call_mcp_tool(
    name: str,
    tool: str,
    request: CallToolRequest,
    manager: MCPConnectionManager = Depends(get_connection_manager),
) -> MCPToolResultResponse:
    try:
        result = await manager.call_tool(name, tool, request.arguments)
    except MCPError as exc:
        raise _http_error(exc) from exc
    return MCPToolResultResponse(
        content=result.content,
        is_error=result.is_error,
        structured_content=result.structured_content,
    )


@router.post("/servers/{name}/resources/read", response_model=MCPResourceReadResponse)
async def read_mcp_resource(
    name: str,
    request: ReadResourceRequest,
    manager: MCPConnectionManager = Depends(get_connection_manager),
) -> MCPResourceReadResponse:
    try:
        response = await manager.read_resource(name, request.uri)
    except MCPError as exc:
        raise _http_error(exc) from exc
    return MCPResourceReadResponse(
        contents=[
            MCPResourceContentResponse(
                uri=content.uri,
                mime_type=content.mime_type,
                text=content.text,
                blob=content.blob,
            )
            for content in response.contents
        ]
    )


@router.get("/provider", response_model=MCPProviderSnapshotResponse)
async def mcp_provider_snapshot(
    manager: MCPConnectionManager = Depends(get_connection_manager),
) -> MCPProviderSnapshotResponse:
    snapshot = manager.provider_snapshot()
    return MCPProviderSnapshotResponse(
        values=snapshot.values,
        data=snapshot.data,
        text=snapshot.text,
        resources_description=render_resources_description(snapshot),
    )


@router.get("/availability", response_model=MCPAvailabilityResponse)
async def mcp_resource_availability(
    manager: MCPConnectionManager = Depends(get_connection_manager),
) -> MCPAvailabilityResponse:
    return MCPAvailabilityResponse(
        state=manager.state,
        failure_reason=manager.failure_reason,
        resources_available=manager.check_resource_availability(),
    )


@router.get("/events", response_model=MCPConnectionEventsResponse)
async def mcp_connection_events(
    server: str | None = None,
    limit: int | None = Query(default=None, ge=0),
    manager: MCPConnectionManager = Depends(get_connection_manager),
) -> MCPConnectionEventsResponse:
    events = [
        MCPConnectionEventResponse(
            server=event.server,
            from_status=event.from_status,
            to_status=event.to_status,
            reason=event.reason,
            timestamp=event.timestamp,
        )
        for event in manager.list_events(server=server, limit=limit)
    ]
    return MCPConnectionEventsResponse(items=events)


@router.post("/selection/tool/validate", response_model=SelectionValidationResponse)
async def validate_mcp_tool_selection(
    request: SelectionValidationRequest,
) -> SelectionValidationResponse:
    return _selection_response(validate_tool_selection(request.response))


@router.post("/selection/resource/validate", response_model=SelectionValidationResponse)
async def validate_mcp_resource_selection(
    request: SelectionValidationRequest,
) -> SelectionValidationResponse:
    return _selection_response(validate_resource_selection(request.response))
