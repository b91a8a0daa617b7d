"""Resource read dispatch across synthetic and native resources."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Final
from urllib.parse import unquote

from mcplink.mcp.capabilities import CALCULATOR_URI, WEATHER_TOOL, WEATHER_URI_PREFIX
from mcplink.mcp.errors import ToolNotFoundError
from mcplink.mcp.models import JSONObject, ResourceContent, ResourceResponse

if TYPE_CHECKING:
    from mcplink.mcp.manager import Connection

logger = logging.getLogger(__name__)

ERROR_MIME_TYPE: Final = "application/mcp-error"
JSON_MIME_TYPE: Final = "application/json"
WEATHER_TOOL_TIMEOUT_SECONDS: Final = 10.0
SYNTHETIC_TOOL_PATTERN: Final = re.compile(r"^mcp://([^/]+)/synthetic/tool/(.+)$")

type Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def placeholder_weather(location: str, *, now: datetime) -> JSONObject:
    """Fixed weather payload used when the weather tool is absent or fails."""
    return {
        "location": unquote(location),
        "temperature": 22,
        "condition": "Sunny",
        "humidity": 65,
        "windSpeed": 10,
        "forecast": [
            {
                "date": (now + timedelta(days=1)).date().isoformat(),
                "temperature": {"min": 18, "max": 24},
                "condition": "Partly Cloudy",
            },
            {
                "date": (now + timedelta(days=2)).date().isoformat(),
                "temperature": {"min": 17, "max": 23},
                "condition": "Sunny",
            },
        ],
    }


class ResourceRouter:
    """Route a resource URI to a synthetic handler or the provider's native read."""

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        weather_timeout_seconds: float = WEATHER_TOOL_TIMEOUT_SECONDS,
    ) -> None:
        self._clock = clock or _utc_now
        self._weather_timeout_seconds = weather_timeout_seconds

    async def read(self, connection: Connection, uri: str) -> ResourceResponse:
        if uri == CALCULATOR_URI:
            return self._calculator_response(uri)
        if uri.startswith(WEATHER_URI_PREFIX):
            return await self._weather_response(connection, uri)
        match = SYNTHETIC_TOOL_PATTERN.match(uri)
        if match is not None and match.group(1) == connection.name:
            return self._tool_description_response(connection, uri, match.group(2))

        logger.debug("Reading native resource %s from server %s", uri, connection.name)
        return await connection.require_client().read_resource(uri)

    @staticmethod
    def _calculator_response(uri: str) -> ResourceResponse:
        logger.warning("Cannot read synthetic calculator resource %s; it must be called as a tool.", uri)
        return ResourceResponse(
            contents=[
                ResourceContent(
                    uri=uri,
                    mime_type=ERROR_MIME_TYPE,
                    text=(
                        f"Error: The calculator resource ({uri}) represents a tool and must be "
                        "invoked using the CALL_TOOL action. It cannot be read directly."
                    ),
                )
            ]
        )

    async def _weather_response(self, connection: Connection, uri: str) -> ResourceResponse:
        location = uri.removeprefix(WEATHER_URI_PREFIX)
        logger.info("Intercepted read for synthetic weather resource %s", uri)

        if connection.find_tool(WEATHER_TOOL) is not None and connection.client is not None:
            try:
                result = await asyncio.wait_for(
                    connection.client.call_tool(
                        WEATHER_TOOL,
                        {"location": location},
                        timeout_seconds=self._weather_timeout_seconds,
                    ),
                    timeout=self._weather_timeout_seconds,
                )
            except Exception as exc:  # noqa: BLE001
                logger.error("Weather tool failed for %s, using placeholder: %s", uri, exc)
            else:
                content = result.get("content")
                if isinstance(content, list) and content:
                    return self._json_response(uri, json.dumps(content[0]))

        payload = placeholder_weather(location, now=self._clock())
        return self._json_response(uri, json.dumps(payload))

    def _tool_description_response(
        self,
        connection: Connection,
        uri: str,
        tool_name: str,
    ) -> ResourceResponse:
        logger.info("Intercepted read for synthetic tool resource %s (tool: %s)", uri, tool_name)
        tool = connection.find_tool(tool_name)
        if tool is None:
            raise ToolNotFoundError(connection.name, tool_name)
        info: JSONObject = {
            "name": tool.name,
            "description": tool.description or f"The {tool.name} tool",
            "inputSchema": tool.input_schema,
            "outputSchema": tool.output_schema,
            "usage": (
                f'To use this tool, call the CALL_TOOL action with serverName: "{connection.name}", '
                f'toolName: "{tool_name}" and appropriate arguments.'
            ),
        }
        return self._json_response(uri, json.dumps(info, indent=2))

    @staticmethod
    def _json_response(uri: str, text: str) -> ResourceResponse:
        return ResourceResponse(
            contents=[ResourceContent(uri=uri, mime_type=JSON_MIME_TYPE, text=text)]
        )
