"""Explicit runtime context shared by every entry point."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from mcplink.mcp.config import DEFAULT_MAX_RETRIES, MCPSettings, settings_from_env
from mcplink.mcp.manager import MCPConnectionManager

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MCPContext:
    """Connection manager plus the settings it was started from.

    Build once at startup with `from_settings` (or `from_env`), `start()` it,
    then hand the same object to actions and the HTTP app.
    """

    manager: MCPConnectionManager = field(default_factory=MCPConnectionManager)
    settings: MCPSettings | None = None

    @classmethod
    def from_settings(
        cls,
        settings: MCPSettings | None,
        *,
        manager: MCPConnectionManager | None = None,
    ) -> MCPContext:
        return cls(manager=manager or MCPConnectionManager(), settings=settings)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        manager: MCPConnectionManager | None = None,
    ) -> MCPContext:
        return cls.from_settings(settings_from_env(environ), manager=manager)

    @property
    def max_retries(self) -> int:
        return self.settings.max_retries if self.settings is not None else DEFAULT_MAX_RETRIES

    async def start(self) -> None:
        await self.manager.initialize(self.settings)

    async def stop(self) -> None:
        await self.manager.stop()
        logger.info("MCP context stopped")

    async def apply_settings(self, settings: MCPSettings) -> None:
        """Replace the desired configuration and reconcile live connections to it."""
        self.settings = settings
        await self.manager.reconcile(settings.servers)
