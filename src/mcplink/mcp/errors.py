"""Error types raised by the MCP connection layer and selection protocol."""

from __future__ import annotations

from typing import Literal

type ErrorCategory = Literal[
    "network_timeout",
    "http_status",
    "invalid_payload",
    "rpc_error",
    "method_not_supported",
    "transport_error",
    "unknown",
]


class MCPError(RuntimeError):
    """Base class for all mcplink errors."""


class ConfigError(MCPError):
    """Server configuration is unusable for a connection attempt."""


class MissingCommandError(ConfigError):
    """stdio server configured without a command."""

    def __init__(self, server: str) -> None:
        super().__init__(f"Missing command for stdio MCP server {server}")
        self.server = server


class MissingURLError(ConfigError):
    """sse server configured without a URL."""

    def __init__(self, server: str) -> None:
        super().__init__(f"Missing URL for SSE MCP server {server}")
        self.server = server


class MCPTransportError(MCPError):
    """Transport failure with explicit category."""

    def __init__(self, message: str, *, category: ErrorCategory) -> None:
        super().__init__(message)
        self.category = category


class MethodNotSupportedError(MCPTransportError):
    """Remote provider does not implement the requested method."""

    def __init__(self, method: str, message: str | None = None) -> None:
        super().__init__(message or f"Method not found: {method}", category="method_not_supported")
        self.method = method


class CapabilityFetchError(MCPError):
    """Listing tools, resources or templates failed."""


class ConnectionNotFoundError(MCPError):
    """No connection is registered under the requested name."""

    def __init__(self, server: str) -> None:
        super().__init__(f"No connection found for server: {server}")
        self.server = server


class ServerDisabledError(MCPError):
    """Connection exists but its configuration is disabled."""

    def __init__(self, server: str) -> None:
        super().__init__(f'Server "{server}" is disabled')
        self.server = server


class ServerNotConnectedError(MCPError):
    """Connection exists but is not in the connected state."""

    def __init__(self, server: str, status: str) -> None:
        super().__init__(f"MCP server {server} is not connected. Status: {status}")
        self.server = server
        self.status = status


class ToolNotFoundError(MCPError):
    """Requested tool is not in the server's discovered tool list."""

    def __init__(self, server: str, tool: str) -> None:
        super().__init__(f"Tool '{tool}' not found on server '{server}'")
        self.server = server
        self.tool = tool


class InvalidToolResultError(MCPError):
    """Provider returned a tool result without a content list."""

    def __init__(self, tool: str) -> None:
        super().__init__(f"Invalid tool result from {tool}: missing or invalid 'content' array")
        self.tool = tool


class ToolCallTimeoutError(MCPError):
    """Tool call did not complete within its timeout."""

    def __init__(self, server: str, tool: str, timeout_seconds: float) -> None:
        super().__init__(f"Tool {tool} on server {server} timed out after {timeout_seconds:g}s")
        self.server = server
        self.tool = tool
        self.timeout_seconds = timeout_seconds


class ReconnectFailedError(MCPError):
    """Restarting a connection failed during the reconnect step."""

    def __init__(self, server: str) -> None:
        super().__init__(f"Failed to connect to {server} MCP server")
        self.server = server


class SelectionError(MCPError):
    """Model output could not be turned into a valid selection."""


class MalformedResponseError(SelectionError):
    """Model output is not parseable JSON."""


class SchemaValidationError(SelectionError):
    """Parsed selection violates the selection schema."""

    def __init__(self, message: str, *, errors: list[str]) -> None:
        super().__init__(message)
        self.errors = list(errors)
