from __future__ import annotations

import pytest

from mcplink.mcp.errors import MalformedResponseError, SchemaValidationError
from mcplink.selection.validation import (
    NoResourceSelection,
    NoToolSelection,
    ResourceSelection,
    ToolSelection,
    parse_resource_selection,
    parse_tool_selection,
    validate_resource_selection,
    validate_tool_selection,
)


def test_accepts_tool_selection_object() -> None:
    result = validate_tool_selection(
        {"serverName": "n8n", "toolName": "calculator", "arguments": {"input": "2+2"}}
    )

    assert result.ok is True
    assert result.errors == []
    assert isinstance(result.data, ToolSelection)
    assert result.data.server_name == "n8n"
    assert result.data.tool_name == "calculator"
    assert result.data.arguments == {"input": "2+2"}


def test_rejects_tool_selection_missing_fields_with_every_violation() -> None:
    result = validate_tool_selection({"serverName": "n8n"})

    assert result.ok is False
    assert result.data is None
    assert result.errors
    joined = result.error_message
    assert "toolName" in joined
    assert "arguments" in joined
    assert "noToolAvailable" in joined


def test_extracts_first_fenced_json_block() -> None:
    text = (
        "Sure, here is my pick:\n"
        "```json\n"
        '{"serverName": "n8n", "toolName": "weather", "arguments": {"location": "Oslo"},'
        ' "reasoning": "weather question"}\n'
        "```\n"
        "```json\n"
        '{"noToolAvailable": true}\n'
        "```"
    )

    selection = parse_tool_selection(text)

    assert isinstance(selection, ToolSelection)
    assert selection.tool_name == "weather"
    assert selection.reasoning == "weather question"


def test_accepts_unfenced_json_text() -> None:
    selection = parse_tool_selection(
        '{"serverName": "github", "toolName": "search", "arguments": {}}'
    )

    assert isinstance(selection, ToolSelection)
    assert selection.server_name == "github"


def test_accepts_no_tool_available_escape() -> None:
    result = validate_tool_selection('{"noToolAvailable": true, "reasoning": "small talk"}')

    assert result.ok is True
    assert isinstance(result.data, NoToolSelection)
    assert result.data.reasoning == "small talk"


def test_no_tool_available_must_be_true() -> None:
    result = validate_tool_selection({"noToolAvailable": False})

    assert result.ok is False


def test_field_types_are_not_coerced() -> None:
    result = validate_tool_selection(
        {"serverName": "n8n", "toolName": "calculator", "arguments": "2+2"}
    )

    assert result.ok is False
    assert "arguments" in result.error_message


def test_unparseable_tool_text_is_malformed() -> None:
    with pytest.raises(MalformedResponseError):
        parse_tool_selection("I think the calculator would work here")

    result = validate_tool_selection("I think the calculator would work here")
    assert result.ok is False
    assert result.errors[0].startswith("Failed to parse JSON from tool selection response")


def test_schema_errors_are_collected_on_the_exception() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        parse_tool_selection({"toolName": 7})

    assert len(exc_info.value.errors) >= 3


def test_resource_selection_strips_all_fence_markers() -> None:
    text = '```json\n{"serverName": "github", "uri": "github://org/repo/README.md"}\n```'

    selection = parse_resource_selection(text)

    assert isinstance(selection, ResourceSelection)
    assert selection.uri == "github://org/repo/README.md"


def test_accepts_no_resource_available_escape() -> None:
    result = validate_resource_selection({"noResourceAvailable": True})

    assert result.ok is True
    assert isinstance(result.data, NoResourceSelection)


def test_rejects_resource_selection_missing_uri() -> None:
    result = validate_resource_selection('{"serverName": "github"}')

    assert result.ok is False
    assert "uri" in result.error_message


def test_unparseable_resource_text_is_malformed() -> None:
    with pytest.raises(MalformedResponseError):
        parse_resource_selection("```json\nnot json\n```")
