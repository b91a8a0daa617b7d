"""Capability descriptors and response shapes exchanged with MCP servers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, cast

type JSONValue = None | bool | int | float | str | list[JSONValue] | dict[str, JSONValue]
type JSONObject = dict[str, JSONValue]


class ConnectionStatus(StrEnum):
    """Lifecycle state of one server connection."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


def _as_object(value: Any) -> JSONObject:
    if isinstance(value, dict) and all(isinstance(key, str) for key in value):
        return cast(JSONObject, value)
    return {}


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


@dataclass(slots=True, frozen=True)
class ToolDescriptor:
    """Tool snapshot reported by a provider at connect time."""

    name: str
    description: str = ""
    input_schema: JSONObject = field(default_factory=dict)
    output_schema: JSONObject = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: JSONObject) -> ToolDescriptor:
        return cls(
            name=str(payload.get("name", "")),
            description=_as_str(payload.get("description")) or "",
            input_schema=_as_object(payload.get("inputSchema")),
            output_schema=_as_object(payload.get("outputSchema")),
        )


@dataclass(slots=True, frozen=True)
class ResourceDescriptor:
    """Readable resource, either reported by the provider or synthesized from a tool."""

    uri: str
    name: str
    description: str = ""
    mime_type: str | None = None
    template_uri: str | None = None
    synthetic: bool = False

    @classmethod
    def from_payload(cls, payload: JSONObject) -> ResourceDescriptor:
        return cls(
            uri=str(payload.get("uri", "")),
            name=_as_str(payload.get("name")) or "",
            description=_as_str(payload.get("description")) or "",
            mime_type=_as_str(payload.get("mimeType")),
            template_uri=_as_str(payload.get("templateUri")),
        )


@dataclass(slots=True, frozen=True)
class ResourceTemplateDescriptor:
    """Parameterized resource; synthetic templates reuse the tool's schemas."""

    uri_template: str
    name: str
    description: str = ""
    mime_type: str | None = None
    input_schema: JSONObject = field(default_factory=dict)
    output_schema: JSONObject = field(default_factory=dict)
    synthetic: bool = False

    @classmethod
    def from_payload(cls, payload: JSONObject) -> ResourceTemplateDescriptor:
        return cls(
            uri_template=str(payload.get("uriTemplate", "")),
            name=_as_str(payload.get("name")) or "",
            description=_as_str(payload.get("description")) or "",
            mime_type=_as_str(payload.get("mimeType")),
            input_schema=_as_object(payload.get("inputSchema")),
            output_schema=_as_object(payload.get("outputSchema")),
        )


@dataclass(slots=True)
class ResourceContent:
    """One content item of a resource read."""

    uri: str
    mime_type: str | None = None
    text: str | None = None
    blob: str | None = None

    @classmethod
    def from_payload(cls, payload: JSONObject) -> ResourceContent:
        return cls(
            uri=str(payload.get("uri", "")),
            mime_type=_as_str(payload.get("mimeType")),
            text=_as_str(payload.get("text")),
            blob=_as_str(payload.get("blob")),
        )


@dataclass(slots=True)
class ResourceResponse:
    """Result of a resource read, native or synthetic."""

    contents: list[ResourceContent] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: JSONObject) -> ResourceResponse:
        raw_contents = payload.get("contents")
        items = raw_contents if isinstance(raw_contents, list) else []
        return cls(contents=[ResourceContent.from_payload(_as_object(item)) for item in items])


@dataclass(slots=True)
class ToolResult:
    """Tool call result; content items keep the provider's JSON shape."""

    content: list[JSONObject]
    is_error: bool = False
    structured_content: JSONObject | None = None
