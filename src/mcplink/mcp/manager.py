"""Connection lifecycle, config reconciliation and aggregate read access."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from mcplink.mcp.capabilities import fetch_capabilities, is_n8n_url, synthesize_capabilities
from mcplink.mcp.client import MCPClient, SessionClient
from mcplink.mcp.config import MCPSettings, ServerConfig, SSEServerConfig
from mcplink.mcp.errors import (
    ConfigError,
    ConnectionNotFoundError,
    InvalidToolResultError,
    MCPTransportError,
    ReconnectFailedError,
    ServerDisabledError,
    ServerNotConnectedError,
    ToolCallTimeoutError,
)
from mcplink.mcp.models import (
    ConnectionStatus,
    JSONObject,
    ResourceDescriptor,
    ResourceResponse,
    ResourceTemplateDescriptor,
    ToolDescriptor,
    ToolResult,
)
from mcplink.mcp.router import ResourceRouter
from mcplink.mcp.snapshot import ProviderSnapshot, build_provider_snapshot
from mcplink.mcp.transport import ClientTransport, build_transport

logger = logging.getLogger(__name__)

type TransportFactory = Callable[[str, ServerConfig], ClientTransport]
type ClientFactory = Callable[[], MCPClient]
type Clock = Callable[[], datetime]


class ManagerState(StrEnum):
    """Readiness of the connection manager as a whole."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FAILED = "failed"


@dataclass(slots=True)
class Connection:
    """Live (or last known) state of one configured server."""

    name: str
    config: ServerConfig
    status: ConnectionStatus = ConnectionStatus.CONNECTING
    client: MCPClient | None = None
    transport: ClientTransport | None = None
    tools: list[ToolDescriptor] = field(default_factory=list)
    resources: list[ResourceDescriptor] = field(default_factory=list)
    resource_templates: list[ResourceTemplateDescriptor] = field(default_factory=list)
    error: str = ""
    connected_at: datetime | None = None

    @property
    def disabled(self) -> bool:
        return self.config.disabled

    def find_tool(self, name: str) -> ToolDescriptor | None:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None

    def require_client(self) -> MCPClient:
        if self.client is None or self.status is not ConnectionStatus.CONNECTED:
            raise ServerNotConnectedError(self.name, self.status.value)
        return self.client

    def append_error(self, message: str) -> None:
        self.error = f"{self.error}\n{message}" if self.error else message


@dataclass(slots=True)
class ConnectionEvent:
    """Connection status transition event."""

    server: str
    from_status: ConnectionStatus
    to_status: ConnectionStatus
    reason: str
    timestamp: datetime


class MCPConnectionManager:
    """Own the connection set and keep it in line with the desired configuration.

    Mutations of one server name are serialized by a per-name lock, so a
    delete always finishes (handles closed, entry removed) before the
    replacement connection is created. Transport callbacks only touch the
    Connection object they were registered for.
    """

    def __init__(
        self,
        *,
        transport_factory: TransportFactory | None = None,
        client_factory: ClientFactory | None = None,
        router: ResourceRouter | None = None,
        clock: Clock | None = None,
        max_events: int = 500,
    ) -> None:
        self._connections: dict[str, Connection] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._transport_factory = transport_factory or build_transport
        self._client_factory = client_factory or SessionClient
        self._router = router or ResourceRouter(clock=clock)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._events: deque[ConnectionEvent] = deque(maxlen=max(1, max_events))
        self._state = ManagerState.UNINITIALIZED
        self._failure_reason: str | None = None
        self._has_resourceful_servers = False
        self._snapshot = build_provider_snapshot([])

    @asynccontextmanager
    async def _name_lock(self, name: str) -> AsyncIterator[None]:
        """Hold the lock for `name`; it is dropped once no task holds or awaits it."""
        lock = self._locks.setdefault(name, asyncio.Lock())
        self._lock_users[name] = self._lock_users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[name] -= 1
            if not self._lock_users[name]:
                del self._lock_users[name]
                del self._locks[name]

    @property
    def state(self) -> ManagerState:
        return self._state

    @property
    def failure_reason(self) -> str | None:
        return self._failure_reason

    @property
    def is_ready(self) -> bool:
        return self._state is ManagerState.READY

    async def initialize(self, settings: MCPSettings | None) -> None:
        """Bring up every configured server and mark the manager ready (or failed)."""
        self._failure_reason = None
        try:
            if settings is None or not settings.servers:
                logger.info("No MCP servers configured in settings.")
            else:
                logger.debug("Found server configurations: %s", sorted(settings.servers))
                await self.reconcile(settings.servers)
        except Exception as exc:  # noqa: BLE001
            self._state = ManagerState.FAILED
            self._failure_reason = f"Failed during MCP server initialization: {exc}"
            logger.error("%s", self._failure_reason)
            return
        self._state = ManagerState.READY
        logger.info("MCP connection manager ready with %d servers.", len(self._connections))

    async def stop(self) -> None:
        for name in list(self._connections):
            async with self._name_lock(name):
                await self._delete_unlocked(name)

    async def reconcile(self, desired: Mapping[str, ServerConfig]) -> None:
        """Create, delete or recreate connections so the live set matches `desired`."""
        for name in [name for name in self._connections if name not in desired]:
            async with self._name_lock(name):
                if await self._delete_unlocked(name):
                    logger.info("Deleted MCP server: %s", name)

        for name, config in desired.items():
            async with self._name_lock(name):
                current = self._connections.get(name)
                if current is not None and current.config == config:
                    continue
                try:
                    if current is not None:
                        await self._delete_unlocked(name)
                        await self._connect_unlocked(name, config)
                        logger.info("Reconnected MCP server with updated config: %s", name)
                    else:
                        await self._connect_unlocked(name, config)
                except Exception as exc:  # noqa: BLE001
                    logger.error("Failed to connect to MCP server %s: %s", name, exc)

    async def connect(self, name: str, config: ServerConfig) -> Connection:
        """Connect one server, replacing any existing connection of that name.

        Raises ConfigError when the transport cannot be built. Handshake
        failures leave a disconnected connection with the error recorded.
        """
        async with self._name_lock(name):
            return await self._connect_unlocked(name, config)

    async def delete_connection(self, name: str) -> bool:
        async with self._name_lock(name):
            return await self._delete_unlocked(name)

    async def restart(self, name: str) -> Connection:
        """Delete and reconnect one server using its stored config."""
        async with self._name_lock(name):
            connection = self._connections.get(name)
            if connection is None:
                raise ConnectionNotFoundError(name)
            config = connection.config
            logger.info("Restarting %s MCP server...", name)
            self._set_status(connection, ConnectionStatus.CONNECTING, "restart requested")
            connection.error = ""
            await self._delete_unlocked(name)
            try:
                restarted = await self._connect_unlocked(name, config)
            except Exception as exc:
                logger.error("Failed to restart connection for %s: %s", name, exc)
                raise ReconnectFailedError(name) from exc
            logger.info("%s MCP server restarted with status %s", name, restarted.status.value)
            return restarted

    def get_all(self) -> tuple[Connection, ...]:
        if self._state is ManagerState.FAILED:
            logger.error("getAll called but initialization failed: %s", self._failure_reason)
            return ()
        return tuple(self._connections.values())

    def get(self, name: str) -> Connection | None:
        return self._connections.get(name)

    def check_resource_availability(self) -> bool:
        if self._state is ManagerState.FAILED:
            logger.error(
                "Resource availability checked but initialization failed: %s",
                self._failure_reason,
            )
            return False
        return self._has_resourceful_servers

    def provider_snapshot(self) -> ProviderSnapshot:
        return self._snapshot

    def list_events(
        self,
        *,
        server: str | None = None,
        limit: int | None = None,
    ) -> list[ConnectionEvent]:
        events = [event for event in self._events if server is None or event.server == server]
        if limit is not None:
            if limit <= 0:
                return []
            events = events[-limit:]
        return events

    async def call_tool(
        self,
        server: str,
        tool: str,
        arguments: JSONObject | None = None,
    ) -> ToolResult:
        """Call one tool with the server's timeout; errors propagate to the caller."""
        connection = self._require_connection(server)
        client = connection.require_client()
        timeout_seconds = connection.config.effective_timeout_millis / 1000
        try:
            payload = await asyncio.wait_for(
                client.call_tool(tool, arguments or {}, timeout_seconds=timeout_seconds),
                timeout=timeout_seconds,
            )
        except TimeoutError as exc:
            logger.error("Tool %s on server %s timed out", tool, server)
            raise ToolCallTimeoutError(server, tool, timeout_seconds) from exc
        except MCPTransportError as exc:
            if exc.category == "network_timeout":
                raise ToolCallTimeoutError(server, tool, timeout_seconds) from exc
            logger.error("Error calling tool %s on server %s: %s", tool, server, exc)
            raise

        content = payload.get("content")
        if not isinstance(content, list):
            logger.error(
                "Invalid tool result structure for %s on %s: missing or invalid 'content' array.",
                tool,
                server,
            )
            raise InvalidToolResultError(tool)
        structured = payload.get("structuredContent")
        return ToolResult(
            content=[item for item in content if isinstance(item, dict)],
            is_error=payload.get("isError") is True,
            structured_content=structured if isinstance(structured, dict) else None,
        )

    async def read_resource(self, server: str, uri: str) -> ResourceResponse:
        connection = self._require_connection(server)
        return await self._router.read(connection, uri)

    def _require_connection(self, server: str) -> Connection:
        connection = self._connections.get(server)
        if connection is None:
            raise ConnectionNotFoundError(server)
        if connection.disabled:
            raise ServerDisabledError(server)
        return connection

    async def _connect_unlocked(self, name: str, config: ServerConfig) -> Connection:
        if name in self._connections:
            await self._delete_unlocked(name)

        connection = Connection(name=name, config=config)
        self._connections[name] = connection

        if config.disabled:
            logger.info("MCP server %s is disabled; not connecting.", name)
            self._set_status(connection, ConnectionStatus.DISCONNECTED, "server disabled")
            connection.append_error("Server is disabled")
            self._refresh_aggregates()
            return connection

        try:
            transport = self._transport_factory(name, config)
        except ConfigError as exc:
            self._set_status(connection, ConnectionStatus.DISCONNECTED, str(exc))
            connection.append_error(str(exc))
            self._refresh_aggregates()
            raise

        client = self._client_factory()
        connection.transport = transport
        connection.client = client
        transport.on_error = lambda error: self._on_transport_error(connection, error)
        transport.on_close = lambda: self._on_transport_close(connection)

        try:
            await client.connect(transport)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to connect to MCP server %s: %s", name, exc)
            message = str(exc) or type(exc).__name__
            self._set_status(connection, ConnectionStatus.DISCONNECTED, message)
            connection.append_error(message)
            await self._close_handles(connection)
            self._refresh_aggregates()
            return connection

        logger.info("MCP transport connected for server: %s", name)
        connection.connected_at = self._clock()
        self._set_status(connection, ConnectionStatus.CONNECTED, "handshake complete")

        try:
            fetched = await fetch_capabilities(name, client)
            connection.tools = fetched.tools
            connection.resources = fetched.resources
            connection.resource_templates = fetched.resource_templates
            n8n_host = isinstance(config, SSEServerConfig) and is_n8n_url(config.url)
            if n8n_host:
                logger.info("[%s] Detected n8n MCP server; synthesizing resources.", name)
            synthesized = synthesize_capabilities(
                name,
                fetched.tools,
                fetched.resources,
                fetched.resource_templates,
                n8n_host=n8n_host,
            )
            connection.resources = synthesized.resources
            connection.resource_templates = synthesized.resource_templates
            logger.info("Finalized connection state for MCP server: %s", name)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to fetch capabilities for %s: %s", name, exc)
            connection.append_error(str(exc))
        finally:
            self._refresh_aggregates()
        return connection

    async def _delete_unlocked(self, name: str) -> bool:
        connection = self._connections.get(name)
        if connection is None:
            return False
        await self._close_handles(connection)
        if self._connections.get(name) is connection:
            del self._connections[name]
        self._refresh_aggregates()
        return True

    async def _close_handles(self, connection: Connection) -> None:
        transport, connection.transport = connection.transport, None
        client, connection.client = connection.client, None
        # The session runs on the transport's streams, so it goes first.
        if client is not None:
            try:
                await client.close()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to close client for %s: %s", connection.name, exc)
        if transport is not None:
            try:
                await transport.close()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to close transport for %s: %s", connection.name, exc)

    def _on_transport_error(self, connection: Connection, error: Exception) -> None:
        message = str(error) or type(error).__name__
        self._set_status(connection, ConnectionStatus.DISCONNECTED, message)
        connection.append_error(message)
        self._refresh_aggregates()

    def _on_transport_close(self, connection: Connection) -> None:
        self._set_status(connection, ConnectionStatus.DISCONNECTED, "transport closed")
        self._refresh_aggregates()

    def _set_status(self, connection: Connection, status: ConnectionStatus, reason: str) -> None:
        old_status = connection.status
        connection.status = status
        if status is not old_status:
            self._events.append(
                ConnectionEvent(
                    server=connection.name,
                    from_status=old_status,
                    to_status=status,
                    reason=reason,
                    timestamp=self._clock(),
                )
            )

    def _refresh_aggregates(self) -> None:
        connections = list(self._connections.values())
        self._has_resourceful_servers = any(
            connection.status is ConnectionStatus.CONNECTED and bool(connection.resources)
            for connection in connections
        )
        self._snapshot = build_provider_snapshot(connections)
        logger.debug("Resource availability flag updated: %s", self._has_resourceful_servers)
