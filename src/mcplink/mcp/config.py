"""Server configuration models and settings loading."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any, Final, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MCP_TIMEOUT_SECONDS: Final = 60
DEFAULT_MAX_RETRIES: Final = 2
SETTINGS_ENV_VAR: Final = "MCP_SETTINGS"
SETTINGS_PATH_ENV_VAR: Final = "MCP_SETTINGS_PATH"


class _ServerConfigBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    timeout: int | None = None
    timeout_in_millis: int | None = Field(default=None, alias="timeoutInMillis")
    disabled: bool = False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, _ServerConfigBase):
            return NotImplemented
        return type(self) is type(other) and self.model_dump() == other.model_dump()

    @property
    def effective_timeout_millis(self) -> int:
        """Per-call timeout: timeoutInMillis, then timeout, then the default."""
        return self.timeout_in_millis or self.timeout or DEFAULT_MCP_TIMEOUT_SECONDS * 1000


class StdioServerConfig(_ServerConfigBase):
    """Child-process server reached over stdin/stdout."""

    type: Literal["stdio"] = "stdio"
    command: str | None = None
    args: tuple[str, ...] = ()
    env: dict[str, str] = Field(default_factory=dict)
    cwd: str | None = None


class SSEServerConfig(_ServerConfigBase):
    """HTTP server reached over a server-sent event stream."""

    type: Literal["sse"] = "sse"
    url: str | None = None


type ServerConfig = Annotated[StdioServerConfig | SSEServerConfig, Field(discriminator="type")]

_SERVER_CONFIG_ADAPTER: TypeAdapter[StdioServerConfig | SSEServerConfig] = TypeAdapter(
    ServerConfig
)


class MCPSettings(BaseModel):
    """Desired server map plus selection retry bound."""

    model_config = ConfigDict(populate_by_name=True)

    servers: dict[str, ServerConfig] = Field(default_factory=dict)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, alias="maxRetries", ge=0)


def parse_server_config(raw: Mapping[str, Any]) -> StdioServerConfig | SSEServerConfig:
    """Validate one server entry; raises pydantic ValidationError."""
    return _SERVER_CONFIG_ADAPTER.validate_python(dict(raw))


def load_settings(source: Mapping[str, Any] | str | None) -> MCPSettings | None:
    """Build settings from a mapping or a JSON string.

    Returns None (after logging) when the source is empty or unusable. Server
    entries that fail validation are skipped so one bad entry cannot take the
    rest of the map down with it.
    """
    if source is None:
        logger.info("No MCP servers configured in settings.")
        return None

    payload: Any = source
    if isinstance(source, str):
        if source == "":
            logger.warning("Empty MCP settings string")
            return None
        try:
            payload = json.loads(source)
        except ValueError as exc:
            logger.error("Failed to parse MCP settings: %s", exc)
            return None

    if not isinstance(payload, Mapping) or "servers" not in payload:
        logger.warning("MCP settings has unexpected type: %s", type(payload).__name__)
        return None

    raw_servers = payload.get("servers") or {}
    if not isinstance(raw_servers, Mapping):
        logger.warning("MCP settings 'servers' is not an object")
        return None

    servers: dict[str, StdioServerConfig | SSEServerConfig] = {}
    for name, raw in raw_servers.items():
        if not isinstance(raw, Mapping):
            logger.error("Skipping MCP server %s: configuration is not an object", name)
            continue
        try:
            servers[str(name)] = parse_server_config(raw)
        except ValidationError as exc:
            logger.error("Skipping MCP server %s: %s", name, exc.errors(include_url=False))

    max_retries = payload.get("maxRetries", payload.get("max_retries", DEFAULT_MAX_RETRIES))
    try:
        return MCPSettings(servers=servers, max_retries=max_retries)
    except ValidationError as exc:
        logger.error("Invalid maxRetries in MCP settings, using default: %s", exc)
        return MCPSettings(servers=servers)


def settings_from_env(environ: Mapping[str, str] | None = None) -> MCPSettings | None:
    """Load settings from MCP_SETTINGS (inline JSON) or MCP_SETTINGS_PATH."""
    env = os.environ if environ is None else environ
    inline = env.get(SETTINGS_ENV_VAR)
    if inline is not None:
        return load_settings(inline)
    path = env.get(SETTINGS_PATH_ENV_VAR)
    if path:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to read MCP settings file %s: %s", path, exc)
            return None
        return load_settings(text)
    logger.info("No MCP servers configured in settings.")
    return None
