"""MCP client handle bound to one transport."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from datetime import timedelta
from typing import Any, Final, Protocol, cast

import anyio
import httpx
from mcp.shared.exceptions import McpError

from mcplink.mcp.errors import MCPTransportError, MethodNotSupportedError
from mcplink.mcp.models import (
    JSONObject,
    ResourceDescriptor,
    ResourceResponse,
    ResourceTemplateDescriptor,
    ToolDescriptor,
)
from mcplink.mcp.transport import ClientTransport, TaskOwnedContext

logger = logging.getLogger(__name__)

CLIENT_NAME: Final = "mcplink"
CLIENT_VERSION: Final = "0.1.0"
METHOD_NOT_FOUND_CODE: Final = -32601
REQUEST_TIMEOUT_CODE: Final = 408

type MessageHandler = Callable[[Any], Awaitable[None]]


class MCPClient(Protocol):
    """Client surface the connection manager relies on."""

    async def connect(self, transport: ClientTransport) -> None:
        """Open the transport and perform the initialize handshake."""

    async def list_tools(self) -> list[ToolDescriptor]:
        """List tools exposed by the server."""

    async def list_resources(self) -> list[ResourceDescriptor]:
        """List resources exposed by the server."""

    async def list_resource_templates(self) -> list[ResourceTemplateDescriptor]:
        """List resource templates exposed by the server."""

    async def call_tool(
        self,
        name: str,
        arguments: JSONObject,
        *,
        timeout_seconds: float | None = None,
    ) -> JSONObject:
        """Call one tool and return the raw result payload."""

    async def read_resource(self, uri: str) -> ResourceResponse:
        """Read one native resource."""

    async def close(self) -> None:
        """Close the session."""


class MCPSession(Protocol):
    """Minimal MCP SDK session surface used by SessionClient."""

    async def initialize(self) -> Any: ...

    async def list_tools(self) -> Any: ...

    async def list_resources(self) -> Any: ...

    async def list_resource_templates(self) -> Any: ...

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        read_timeout_seconds: timedelta | None = None,
    ) -> Any: ...

    async def read_resource(self, uri: Any) -> Any: ...


class MCPSessionFactory(Protocol):
    """Factory for a session context bound to an open stream pair."""

    def __call__(
        self,
        read: Any,
        write: Any,
        message_handler: MessageHandler,
    ) -> AbstractAsyncContextManager[MCPSession]:
        """Return async context manager for one session."""


def _default_session_factory(
    read: Any,
    write: Any,
    message_handler: MessageHandler,
) -> AbstractAsyncContextManager[MCPSession]:
    from mcp import ClientSession
    from mcp.types import Implementation

    session = ClientSession(
        read,
        write,
        message_handler=message_handler,
        client_info=Implementation(name=CLIENT_NAME, version=CLIENT_VERSION),
    )
    return cast(AbstractAsyncContextManager[MCPSession], session)


class SessionClient:
    """MCPClient backed by an MCP SDK ClientSession."""

    def __init__(self, *, session_factory: MCPSessionFactory | None = None) -> None:
        self._session_factory = session_factory or _default_session_factory
        self._session_context: TaskOwnedContext[MCPSession] | None = None
        self._session: MCPSession | None = None
        self._transport: ClientTransport | None = None

    async def connect(self, transport: ClientTransport) -> None:
        self._transport = transport
        read, write = await transport.open()
        handler = self._message_handler(transport)
        context = TaskOwnedContext(
            lambda: self._session_factory(read, write, handler),
            name=f"mcp-session-{transport.name}",
        )
        session = await context.enter()
        self._session_context = context
        self._session = session
        await self._request("initialize", session.initialize())
        logger.debug("Initialized MCP session for %s over %s", transport.name, transport.kind)

    async def list_tools(self) -> list[ToolDescriptor]:
        result = await self._request("tools/list", self._require_session().list_tools())
        payload = self._to_json_object(result)
        return [ToolDescriptor.from_payload(item) for item in self._items(payload, "tools")]

    async def list_resources(self) -> list[ResourceDescriptor]:
        result = await self._request("resources/list", self._require_session().list_resources())
        payload = self._to_json_object(result)
        return [
            ResourceDescriptor.from_payload(item) for item in self._items(payload, "resources")
        ]

    async def list_resource_templates(self) -> list[ResourceTemplateDescriptor]:
        result = await self._request(
            "resources/templates/list",
            self._require_session().list_resource_templates(),
        )
        payload = self._to_json_object(result)
        return [
            ResourceTemplateDescriptor.from_payload(item)
            for item in self._items(payload, "resourceTemplates")
        ]

    async def call_tool(
        self,
        name: str,
        arguments: JSONObject,
        *,
        timeout_seconds: float | None = None,
    ) -> JSONObject:
        read_timeout = timedelta(seconds=timeout_seconds) if timeout_seconds is not None else None
        result = await self._request(
            "tools/call",
            self._require_session().call_tool(name, dict(arguments), read_timeout),
        )
        return self._to_json_object(result)

    async def read_resource(self, uri: str) -> ResourceResponse:
        from pydantic import AnyUrl

        result = await self._request(
            "resources/read",
            self._require_session().read_resource(AnyUrl(uri)),
        )
        return ResourceResponse.from_payload(self._to_json_object(result))

    async def close(self) -> None:
        context, self._session_context = self._session_context, None
        self._session = None
        if context is not None:
            await context.exit()

    def _require_session(self) -> MCPSession:
        if self._session is None:
            msg = "MCP client is not connected"
            raise MCPTransportError(msg, category="transport_error")
        return self._session

    async def _request[T](self, method: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except MCPTransportError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise self._map_exception(method, exc) from exc

    @staticmethod
    def _message_handler(transport: ClientTransport) -> MessageHandler:
        async def handle(message: Any) -> None:
            if isinstance(message, Exception):
                transport.report_error(message)

        return handle

    def _map_exception(self, method: str, exc: Exception) -> MCPTransportError:
        code = self._rpc_error_code(exc)
        if code is not None:
            if code == METHOD_NOT_FOUND_CODE or "Method not found" in str(exc):
                return MethodNotSupportedError(method, str(exc))
            if code == REQUEST_TIMEOUT_CODE:
                return MCPTransportError(str(exc), category="network_timeout")
            return MCPTransportError(f"rpc error: {exc}", category="rpc_error")
        if isinstance(exc, anyio.ClosedResourceError | anyio.BrokenResourceError | anyio.EndOfStream):
            if self._transport is not None:
                self._transport.report_closed()
            message = str(exc) or f"{type(exc).__name__}: connection closed"
            return MCPTransportError(message, category="transport_error")
        if isinstance(exc, httpx.TimeoutException):
            return MCPTransportError(str(exc), category="network_timeout")
        if isinstance(exc, httpx.HTTPStatusError):
            status_code = exc.response.status_code
            return MCPTransportError(f"http status {status_code}", category="http_status")
        if isinstance(exc, httpx.HTTPError):
            return MCPTransportError(str(exc), category="transport_error")
        if isinstance(exc, ValueError | TypeError):
            return MCPTransportError(str(exc), category="invalid_payload")
        return MCPTransportError(str(exc), category="unknown")

    @staticmethod
    def _rpc_error_code(exc: Exception) -> int | None:
        if not isinstance(exc, McpError):
            return None
        error = getattr(exc, "error", None)
        code = getattr(error, "code", None)
        return code if isinstance(code, int) else 0

    @staticmethod
    def _items(payload: JSONObject, key: str) -> list[JSONObject]:
        raw = payload.get(key)
        if not isinstance(raw, list):
            return []
        return [cast(JSONObject, item) for item in raw if isinstance(item, dict)]

    @staticmethod
    def _to_json_object(value: Any) -> JSONObject:
        if hasattr(value, "model_dump"):
            payload = value.model_dump(mode="json", by_alias=True, exclude_none=True)
        else:
            payload = value
        if not isinstance(payload, dict):
            msg = "Invalid MCP SDK response payload"
            raise MCPTransportError(msg, category="invalid_payload")
        if not all(isinstance(key, str) for key in payload):
            msg = "Invalid MCP SDK response keys"
            raise MCPTransportError(msg, category="invalid_payload")
        return cast(JSONObject, payload)
