"""Parse and schema-check model selections of a tool or a resource."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Annotated, Any, Final, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from mcplink.mcp.errors import MalformedResponseError, SchemaValidationError, SelectionError

logger = logging.getLogger(__name__)

_FENCED_JSON: Final = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")
_FENCE_MARKERS: Final = re.compile(r"```json|```")

type SelectionInput = str | Mapping[str, Any]


class _SelectionModel(BaseModel):
    model_config = ConfigDict(strict=True, populate_by_name=True, extra="ignore", frozen=True)


class ToolSelection(_SelectionModel):
    """Model's choice of one tool on one server."""

    server_name: str = Field(alias="serverName", min_length=1)
    tool_name: str = Field(alias="toolName", min_length=1)
    arguments: dict[str, Any]
    reasoning: str | None = None


class NoToolSelection(_SelectionModel):
    """Model's explicit statement that no tool fits the request."""

    no_tool_available: Literal[True] = Field(alias="noToolAvailable")
    reasoning: str | None = None


class ResourceSelection(_SelectionModel):
    """Model's choice of one resource URI on one server."""

    server_name: str = Field(alias="serverName", min_length=1)
    uri: str = Field(min_length=1)
    reasoning: str | None = None


class NoResourceSelection(_SelectionModel):
    """Model's explicit statement that no resource fits the request."""

    no_resource_available: Literal[True] = Field(alias="noResourceAvailable")
    reasoning: str | None = None


type ToolChoice = ToolSelection | NoToolSelection
type ResourceChoice = ResourceSelection | NoResourceSelection

_TOOL_CHOICE_ADAPTER: Final[TypeAdapter[ToolChoice]] = TypeAdapter(
    Annotated[NoToolSelection | ToolSelection, Field(union_mode="left_to_right")]
)
_RESOURCE_CHOICE_ADAPTER: Final[TypeAdapter[ResourceChoice]] = TypeAdapter(
    Annotated[NoResourceSelection | ResourceSelection, Field(union_mode="left_to_right")]
)


@dataclass(slots=True)
class ValidationResult[T]:
    """Outcome of one validation attempt; `errors` holds every violation found."""

    ok: bool
    data: T | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def error_message(self) -> str:
        return "\n".join(self.errors)


def parse_tool_selection_payload(data: SelectionInput) -> Any:
    """Decode a tool selection; the first fenced JSON block wins over the raw text."""
    if not isinstance(data, str):
        return data
    match = _FENCED_JSON.search(data)
    text = match.group(1) if match is not None else data
    try:
        return json.loads(text)
    except ValueError as exc:
        msg = f"Failed to parse JSON from tool selection response: {exc}"
        raise MalformedResponseError(msg) from exc


def parse_resource_selection_payload(data: SelectionInput) -> Any:
    """Decode a resource selection after stripping every code fence marker."""
    if not isinstance(data, str):
        return data
    cleaned = _FENCE_MARKERS.sub("", data).strip()
    try:
        return json.loads(cleaned)
    except ValueError as exc:
        msg = f"Failed to parse JSON from resource selection response: {exc}"
        raise MalformedResponseError(msg) from exc


def _format_errors(exc: ValidationError) -> list[str]:
    errors: list[str] = []
    for error in exc.errors(include_url=False):
        location = ".".join(str(part) for part in error["loc"])
        errors.append(f"{location}: {error['msg']}" if location else error["msg"])
    return errors


def parse_tool_selection(data: SelectionInput) -> ToolChoice:
    """Return the validated tool choice or raise a SelectionError."""
    payload = parse_tool_selection_payload(data)
    try:
        return _TOOL_CHOICE_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise SchemaValidationError(
            "Tool selection validation failed", errors=_format_errors(exc)
        ) from exc


def parse_resource_selection(data: SelectionInput) -> ResourceChoice:
    """Return the validated resource choice or raise a SelectionError."""
    payload = parse_resource_selection_payload(data)
    try:
        return _RESOURCE_CHOICE_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise SchemaValidationError(
            "Resource selection validation failed", errors=_format_errors(exc)
        ) from exc


def validate_tool_selection(data: SelectionInput) -> ValidationResult[ToolChoice]:
    try:
        selection = parse_tool_selection(data)
    except SelectionError as exc:
        errors = _selection_errors(exc)
        logger.error("Tool selection rejected: %s", "; ".join(errors))
        return ValidationResult(ok=False, errors=errors)
    return ValidationResult(ok=True, data=selection)


def validate_resource_selection(data: SelectionInput) -> ValidationResult[ResourceChoice]:
    try:
        selection = parse_resource_selection(data)
    except SelectionError as exc:
        errors = _selection_errors(exc)
        logger.error("Resource selection rejected: %s", "; ".join(errors))
        return ValidationResult(ok=False, errors=errors)
    return ValidationResult(ok=True, data=selection)


def _selection_errors(exc: SelectionError) -> list[str]:
    if isinstance(exc, SchemaValidationError) and exc.errors:
        return [f"{exc}: {error}" for error in exc.errors]
    return [str(exc)]
