"""Transport factory for stdio and SSE MCP servers."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

from mcplink.mcp.config import SSEServerConfig, StdioServerConfig
from mcplink.mcp.errors import MissingCommandError, MissingURLError

logger = logging.getLogger(__name__)

type ErrorCallback = Callable[[Exception], None]
type CloseCallback = Callable[[], None]
type StreamContextFactory = Callable[[], AbstractAsyncContextManager[Any]]


class ClientTransport(Protocol):
    """Stream pair provider with asynchronous error/close notification."""

    name: str
    kind: str
    on_error: ErrorCallback | None
    on_close: CloseCallback | None

    async def open(self) -> tuple[Any, Any]:
        """Open the underlying streams and return (read, write)."""

    async def close(self) -> None:
        """Release the streams; safe to call more than once."""

    def report_error(self, error: Exception) -> None:
        """Deliver an asynchronous transport error to on_error."""

    def report_closed(self) -> None:
        """Deliver an unexpected stream close to on_close."""


class TaskOwnedContext[T]:
    """Async context manager held open by a dedicated task.

    The MCP SDK contexts run anyio task groups whose cancel scopes must be
    exited by the task that entered them. Entering and exiting both happen
    inside the holder task, so `exit` may be awaited from any task.
    """

    def __init__(self, factory: Callable[[], AbstractAsyncContextManager[T]], *, name: str) -> None:
        self._factory = factory
        self._name = name
        self._task: asyncio.Task[None] | None = None
        self._release = asyncio.Event()

    async def enter(self) -> T:
        entered: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._release = asyncio.Event()
        task = asyncio.create_task(self._hold(entered), name=self._name)
        try:
            value = await entered
        except BaseException:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise
        self._task = task
        return value

    async def exit(self) -> None:
        """Release the context and wait for its exit; exit errors propagate."""
        task, self._task = self._task, None
        if task is None:
            return
        self._release.set()
        await task

    async def _hold(self, entered: asyncio.Future[T]) -> None:
        try:
            async with self._factory() as value:
                if entered.cancelled():
                    return
                entered.set_result(value)
                await self._release.wait()
        except asyncio.CancelledError:
            if not entered.done():
                entered.cancel()
            raise
        except Exception as exc:
            if entered.done():
                raise
            entered.set_exception(exc)


class SDKClientTransport:
    """Transport backed by one of the MCP SDK stream context managers."""

    def __init__(self, name: str, kind: str, context_factory: StreamContextFactory) -> None:
        self.name = name
        self.kind = kind
        self.on_error: ErrorCallback | None = None
        self.on_close: CloseCallback | None = None
        self._context_factory = context_factory
        self._context: TaskOwnedContext[Any] | None = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._context is not None and not self._closed

    async def open(self) -> tuple[Any, Any]:
        context = TaskOwnedContext(self._context_factory, name=f"mcp-transport-{self.name}")
        streams = await context.enter()
        self._context = context
        self._closed = False
        return streams[0], streams[1]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        context, self._context = self._context, None
        try:
            if context is not None:
                await context.exit()
        finally:
            self.report_closed()

    def report_error(self, error: Exception) -> None:
        logger.error('Transport error for "%s": %s', self.name, error)
        if self.on_error is not None:
            self.on_error(error)

    def report_closed(self) -> None:
        logger.info('Transport closed for "%s".', self.name)
        if self.on_close is not None:
            self.on_close()


def build_stdio_transport(name: str, config: StdioServerConfig) -> SDKClientTransport:
    """Build a child-process transport; raises MissingCommandError without a command."""
    if not config.command:
        raise MissingCommandError(name)

    from mcp import StdioServerParameters
    from mcp.client.stdio import stdio_client

    env = dict(config.env)
    path = os.environ.get("PATH")
    if path:
        env["PATH"] = path
    params = StdioServerParameters(
        command=config.command,
        args=list(config.args),
        env=env,
        cwd=config.cwd,
    )
    return SDKClientTransport(name, "stdio", lambda: stdio_client(params))


def build_sse_transport(name: str, config: SSEServerConfig) -> SDKClientTransport:
    """Build an SSE transport; raises MissingURLError without a URL."""
    if not config.url:
        raise MissingURLError(name)

    from mcp.client.sse import sse_client

    url = config.url
    timeout_seconds = config.effective_timeout_millis / 1000
    return SDKClientTransport(name, "sse", lambda: sse_client(url, timeout=timeout_seconds))


def build_transport(name: str, config: StdioServerConfig | SSEServerConfig) -> ClientTransport:
    """Transport factory keyed on the configuration's kind."""
    if isinstance(config, StdioServerConfig):
        return build_stdio_transport(name, config)
    return build_sse_transport(name, config)
