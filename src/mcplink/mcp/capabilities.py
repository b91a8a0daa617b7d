"""Capability discovery and synthetic resource generation."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Final

from mcplink.mcp.client import MCPClient
from mcplink.mcp.errors import CapabilityFetchError, MethodNotSupportedError
from mcplink.mcp.models import (
    JSONObject,
    ResourceDescriptor,
    ResourceTemplateDescriptor,
    ToolDescriptor,
)

logger = logging.getLogger(__name__)

CALCULATOR_TOOL: Final = "calculator"
WEATHER_TOOL: Final = "weather"
CALCULATOR_URI: Final = "mcp://n8n/synthetic/calculator"
WEATHER_URI_PREFIX: Final = "mcp://n8n/synthetic/weather/"
WEATHER_URI_TEMPLATE: Final = f"{WEATHER_URI_PREFIX}{{location}}"
N8N_HOST_MARKERS: Final = ("n8n.cloud", "n8n.io")

_CALCULATOR_INPUT_SCHEMA: Final[JSONObject] = {
    "type": "object",
    "properties": {
        "expression": {
            "type": "string",
            "description": 'The mathematical expression string to evaluate (e.g., "2+2*10").',
        },
    },
    "required": ["expression"],
}
_CALCULATOR_OUTPUT_SCHEMA: Final[JSONObject] = {
    "type": "object",
    "properties": {
        "result": {
            "type": ["number", "string"],
            "description": (
                "The numerical result of the calculation or an error message string."
            ),
        },
    },
    "required": ["result"],
}
_WEATHER_INPUT_SCHEMA: Final[JSONObject] = {
    "type": "object",
    "properties": {
        "location": {
            "type": "string",
            "description": (
                "The city name or location to get weather information for "
                '(e.g., "San Francisco", "New York").'
            ),
        },
        "units": {
            "type": "string",
            "enum": ["metric", "imperial"],
            "description": "Measurement units; defaults to metric.",
        },
    },
    "required": ["location"],
}
_WEATHER_OUTPUT_SCHEMA: Final[JSONObject] = {
    "type": "object",
    "properties": {
        "location": {"type": "string"},
        "temperature": {"type": "number"},
        "condition": {"type": "string"},
        "humidity": {"type": "number"},
        "windSpeed": {"type": "number"},
        "forecast": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "date": {"type": "string"},
                    "temperature": {
                        "type": "object",
                        "properties": {
                            "min": {"type": "number"},
                            "max": {"type": "number"},
                        },
                    },
                    "condition": {"type": "string"},
                },
            },
        },
    },
    "required": ["location", "temperature", "condition"],
}

CALCULATOR_TEMPLATE: Final = ResourceTemplateDescriptor(
    uri_template=CALCULATOR_URI,
    name="Calculator Resource",
    description=(
        "Evaluates a mathematical expression string using the n8n calculator tool, "
        "accessed via resource interface."
    ),
    input_schema=_CALCULATOR_INPUT_SCHEMA,
    output_schema=_CALCULATOR_OUTPUT_SCHEMA,
    synthetic=True,
)

WEATHER_TEMPLATE: Final = ResourceTemplateDescriptor(
    uri_template=WEATHER_URI_TEMPLATE,
    name="Weather Information Resource",
    description=(
        "Retrieves current weather information and optional forecast for a specified location."
    ),
    input_schema=_WEATHER_INPUT_SCHEMA,
    output_schema=_WEATHER_OUTPUT_SCHEMA,
    synthetic=True,
)

_SPECIAL_TEMPLATES: Final[dict[str, ResourceTemplateDescriptor]] = {
    CALCULATOR_TOOL: CALCULATOR_TEMPLATE,
    WEATHER_TOOL: WEATHER_TEMPLATE,
}


@dataclass(slots=True)
class FetchedCapabilities:
    """Raw capability lists reported by one server."""

    tools: list[ToolDescriptor] = field(default_factory=list)
    resources: list[ResourceDescriptor] = field(default_factory=list)
    resource_templates: list[ResourceTemplateDescriptor] = field(default_factory=list)


@dataclass(slots=True)
class SynthesizedCapabilities:
    """Real capabilities merged with tool-derived synthetic ones, in insertion order."""

    resources: list[ResourceDescriptor]
    resource_templates: list[ResourceTemplateDescriptor]


def synthetic_tool_uri(server: str, tool: str) -> str:
    return f"mcp://{server}/synthetic/tool/{tool}"


def synthetic_tool_template_uri(server: str, tool: str) -> str:
    return f"mcp://{server}/synthetic/tool-template/{tool}"


def is_n8n_url(url: str | None) -> bool:
    return bool(url) and any(marker in url for marker in N8N_HOST_MARKERS)


async def _list_capability[T](
    server: str,
    label: str,
    fetch: Callable[[], Awaitable[list[T]]],
) -> list[T]:
    try:
        return await fetch()
    except MethodNotSupportedError:
        raise
    except Exception as exc:  # noqa: BLE001
        msg = f"Failed to list {label} for {server}: {exc}"
        raise CapabilityFetchError(msg) from exc


async def fetch_tools(server: str, client: MCPClient) -> list[ToolDescriptor]:
    try:
        tools = await _list_capability(server, "tools", client.list_tools)
    except (MethodNotSupportedError, CapabilityFetchError) as exc:
        logger.warning("%s", exc)
        return []
    logger.info("Fetched %d tools for %s", len(tools), server)
    return tools


async def fetch_resources(server: str, client: MCPClient) -> list[ResourceDescriptor]:
    return await _fetch_optional(server, "resources", client.list_resources)


async def fetch_resource_templates(
    server: str,
    client: MCPClient,
) -> list[ResourceTemplateDescriptor]:
    return await _fetch_optional(server, "resource templates", client.list_resource_templates)


async def _fetch_optional[T](
    server: str,
    label: str,
    fetch: Callable[[], Awaitable[list[T]]],
) -> list[T]:
    try:
        items = await _list_capability(server, label, fetch)
    except MethodNotSupportedError:
        logger.info(
            "Server %s does not support listing %s; synthesizing from tools.", server, label
        )
        return []
    except CapabilityFetchError as exc:
        logger.warning("%s", exc)
        return []
    logger.debug("Fetched %d %s for %s", len(items), label, server)
    return items


async def fetch_capabilities(server: str, client: MCPClient) -> FetchedCapabilities:
    """List tools, resources and templates; absence of any of them is never fatal."""
    return FetchedCapabilities(
        tools=await fetch_tools(server, client),
        resources=await fetch_resources(server, client),
        resource_templates=await fetch_resource_templates(server, client),
    )


def _display_name(tool: str, suffix: str) -> str:
    return f"{tool[:1].upper()}{tool[1:]} {suffix}"


def synthesize_capabilities(
    server: str,
    tools: Sequence[ToolDescriptor],
    resources: Sequence[ResourceDescriptor],
    resource_templates: Sequence[ResourceTemplateDescriptor],
    *,
    n8n_host: bool = False,
) -> SynthesizedCapabilities:
    """Make every tool addressable as a resource.

    Output order is real entries, then calculator/weather specials at their
    fixed URIs, then generic per-tool wrappers. Generic wrappers are only
    produced when the server reported no real resources or is an n8n host,
    and never for calculator; weather gets both its special and a generic
    pair. Insertion is skipped on an exact URI
    match against anything already collected.
    """
    merged_resources = list(resources)
    merged_templates = list(resource_templates)
    resource_uris = {resource.uri for resource in merged_resources}
    template_uris = {template.uri_template for template in merged_templates}

    def add(resource: ResourceDescriptor, template: ResourceTemplateDescriptor) -> None:
        if resource.uri not in resource_uris:
            resource_uris.add(resource.uri)
            merged_resources.append(resource)
        if template.uri_template not in template_uris:
            template_uris.add(template.uri_template)
            merged_templates.append(template)

    for tool in tools:
        special = _SPECIAL_TEMPLATES.get(tool.name)
        if special is None:
            continue
        logger.info("[%s] %s tool found. Synthesizing resource and template.", server, tool.name)
        add(
            ResourceDescriptor(
                uri=special.uri_template,
                name=special.name,
                description=special.description,
                template_uri=special.uri_template,
                synthetic=True,
            ),
            special,
        )

    if n8n_host or not resources:
        logger.info("[%s] Synthesizing resources from available tools.", server)
        for tool in tools:
            if tool.name == CALCULATOR_TOOL:
                continue
            template_uri = synthetic_tool_template_uri(server, tool.name)
            add(
                ResourceDescriptor(
                    uri=synthetic_tool_uri(server, tool.name),
                    name=_display_name(tool.name, "Tool"),
                    description=tool.description or f"Access the {tool.name} functionality",
                    template_uri=template_uri,
                    synthetic=True,
                ),
                ResourceTemplateDescriptor(
                    uri_template=template_uri,
                    name=_display_name(tool.name, "Template"),
                    description=tool.description or f"Template for {tool.name} functionality",
                    input_schema=dict(tool.input_schema),
                    output_schema=dict(tool.output_schema),
                    synthetic=True,
                ),
            )

    return SynthesizedCapabilities(resources=merged_resources, resource_templates=merged_templates)
