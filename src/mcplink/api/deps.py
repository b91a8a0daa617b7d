"""Shared API dependency providers."""

from __future__ import annotations

from fastapi import Depends, Request

from mcplink.core.context import MCPContext
from mcplink.mcp.manager import MCPConnectionManager


def get_context(request: Request) -> MCPContext:
    context: MCPContext = request.app.state.context
    return context


def get_connection_manager(context: MCPContext = Depends(get_context)) -> MCPConnectionManager:
    return context.manager
