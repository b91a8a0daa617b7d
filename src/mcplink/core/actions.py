"""Call-tool and read-resource actions driven by a model selection."""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final

from mcplink.core.context import MCPContext
from mcplink.mcp.models import ConnectionStatus, JSONObject, ResourceResponse, ToolResult
from mcplink.mcp.snapshot import render_resources_description
from mcplink.selection.feedback import (
    create_resource_selection_feedback_prompt,
    create_tool_selection_feedback_prompt,
)
from mcplink.selection.retry import ModelClient, with_model_retry
from mcplink.selection.templates import (
    RESOURCE_SELECTION_TEMPLATE,
    TOOL_SELECTION_TEMPLATE,
    render,
)
from mcplink.selection.validation import (
    NoResourceSelection,
    NoToolSelection,
    validate_resource_selection,
    validate_tool_selection,
)

logger = logging.getLogger(__name__)

NO_TOOL_TEXT: Final = (
    "I don't have a specific tool that can help with that request. "
    "Let me try to assist you directly instead."
)
TOOL_ABANDONED_TEXT: Final = (
    "I'm having trouble figuring out the best way to help with your request. "
    "Could you provide more details about what you're looking for?"
)
NO_RESOURCE_TEXT: Final = (
    "I don't have a specific resource that contains the information you're looking for. "
    "Let me try to assist you directly instead."
)
RESOURCE_ABANDONED_TEXT: Final = (
    "I'm having trouble figuring out where to find the information you're looking for. "
    "Could you provide more details about what you need?"
)


class ActionStatus(StrEnum):
    COMPLETED = "completed"
    NO_MATCH = "no_match"
    ABANDONED = "abandoned"


@dataclass(slots=True)
class ToolAttachment:
    """Image returned by a tool, carried as a data URL."""

    id: str
    content_type: str
    url: str
    source: str
    title: str = "Generated image"
    description: str = "Tool-generated image"


@dataclass(slots=True)
class ProcessedToolResult:
    output: str
    attachments: list[ToolAttachment] = field(default_factory=list)

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachments)


@dataclass(slots=True)
class ProcessedResource:
    content: str
    meta: str


@dataclass(slots=True)
class ToolActionOutcome:
    status: ActionStatus
    text: str
    attempts: int
    server_name: str | None = None
    tool_name: str | None = None
    arguments: JSONObject = field(default_factory=dict)
    reasoning: str | None = None
    is_error: bool = False
    attachments: list[ToolAttachment] = field(default_factory=list)


@dataclass(slots=True)
class ResourceActionOutcome:
    status: ActionStatus
    text: str
    attempts: int
    server_name: str | None = None
    uri: str | None = None
    reasoning: str | None = None
    meta: str = ""


def _attachment_id() -> str:
    return f"img-{int(time.time() * 1000)}-{secrets.token_hex(3)[:5]}"


def process_tool_result(result: ToolResult, server: str, tool: str) -> ProcessedToolResult:
    """Flatten tool content into text plus image attachments."""
    output = ""
    attachments: list[ToolAttachment] = []
    for item in result.content:
        kind = item.get("type")
        if kind == "text":
            output += str(item.get("text") or "")
        elif kind == "image":
            mime_type = str(item.get("mimeType") or "")
            attachments.append(
                ToolAttachment(
                    id=_attachment_id(),
                    content_type=mime_type,
                    url=f"data:{mime_type};base64,{item.get('data') or ''}",
                    source=f"{server}/{tool}",
                )
            )
        elif kind == "resource":
            resource = item.get("resource")
            if not isinstance(resource, dict):
                continue
            if "text" in resource:
                output += f"\n\nResource ({resource.get('uri')}):\n{resource.get('text')}"
            elif "blob" in resource:
                output += f"\n\nResource ({resource.get('uri')}): [Binary data]"
    return ProcessedToolResult(output=output, attachments=attachments)


def process_resource_result(response: ResourceResponse, uri: str) -> ProcessedResource:
    content = ""
    meta = ""
    for item in response.contents:
        if item.text:
            content += item.text
        elif item.blob:
            content += f"[Binary data - {item.mime_type or 'unknown type'}]"
        meta += f"Resource: {item.uri or uri}\n"
        if item.mime_type:
            meta += f"Type: {item.mime_type}\n"
    return ProcessedResource(content=content, meta=meta)


class CallToolAction:
    """Let the model pick a tool from the provider snapshot, then call it."""

    name = "CALL_TOOL"

    def __init__(self, context: MCPContext) -> None:
        self._context = context

    def validate(self) -> bool:
        manager = self._context.manager
        if not manager.is_ready:
            logger.error("MCP connection manager is not ready: %s", manager.state.value)
            return False
        ready = any(
            connection.status is ConnectionStatus.CONNECTED and connection.tools
            for connection in manager.get_all()
        )
        if not ready:
            logger.warning("No connected MCP server with tools available.")
        return ready

    async def handle(self, user_message: str, model: ModelClient) -> ToolActionOutcome:
        manager = self._context.manager
        provider_text = manager.provider_snapshot().text
        prompt = render(TOOL_SELECTION_TEMPLATE, user_message=user_message, provider_text=provider_text)
        initial = await model.generate_text(prompt)

        outcome = await with_model_retry(
            initial,
            validate=validate_tool_selection,
            feedback=create_tool_selection_feedback_prompt,
            model=model,
            user_message=user_message,
            provider_text=provider_text,
            max_retries=self._context.max_retries,
        )
        selection = outcome.selection
        if outcome.abandoned or selection is None:
            return ToolActionOutcome(
                status=ActionStatus.ABANDONED,
                text=TOOL_ABANDONED_TEXT,
                attempts=outcome.attempts,
            )
        if isinstance(selection, NoToolSelection):
            return ToolActionOutcome(
                status=ActionStatus.NO_MATCH,
                text=NO_TOOL_TEXT,
                attempts=outcome.attempts,
                reasoning=selection.reasoning,
            )

        logger.debug(
            'Selected tool "%s" on server "%s" because: %s',
            selection.tool_name,
            selection.server_name,
            selection.reasoning,
        )
        result = await manager.call_tool(
            selection.server_name, selection.tool_name, selection.arguments
        )
        processed = process_tool_result(result, selection.server_name, selection.tool_name)
        return ToolActionOutcome(
            status=ActionStatus.COMPLETED,
            text=processed.output,
            attempts=outcome.attempts,
            server_name=selection.server_name,
            tool_name=selection.tool_name,
            arguments=selection.arguments,
            reasoning=selection.reasoning,
            is_error=result.is_error,
            attachments=processed.attachments,
        )


class ReadResourceAction:
    """Let the model pick a resource from the provider snapshot, then read it."""

    name = "READ_RESOURCE"

    def __init__(self, context: MCPContext) -> None:
        self._context = context

    def validate(self) -> bool:
        manager = self._context.manager
        if not manager.is_ready:
            logger.error("MCP connection manager is not ready: %s", manager.state.value)
            return False
        available = manager.check_resource_availability()
        if not available:
            logger.warning("No connected MCP servers reported available resources.")
        return available

    async def handle(self, user_message: str, model: ModelClient) -> ResourceActionOutcome:
        manager = self._context.manager
        description = render_resources_description(manager.provider_snapshot())
        prompt = render(
            RESOURCE_SELECTION_TEMPLATE,
            user_message=user_message,
            resources_description=description,
        )
        initial = await model.generate_text(prompt)

        outcome = await with_model_retry(
            initial,
            validate=validate_resource_selection,
            feedback=create_resource_selection_feedback_prompt,
            model=model,
            user_message=user_message,
            provider_text=description,
            max_retries=self._context.max_retries,
        )
        selection = outcome.selection
        if outcome.abandoned or selection is None:
            return ResourceActionOutcome(
                status=ActionStatus.ABANDONED,
                text=RESOURCE_ABANDONED_TEXT,
                attempts=outcome.attempts,
            )
        if isinstance(selection, NoResourceSelection):
            return ResourceActionOutcome(
                status=ActionStatus.NO_MATCH,
                text=NO_RESOURCE_TEXT,
                attempts=outcome.attempts,
                reasoning=selection.reasoning,
            )

        logger.debug(
            'Selected resource "%s" on server "%s" because: %s',
            selection.uri,
            selection.server_name,
            selection.reasoning,
        )
        response = await manager.read_resource(selection.server_name, selection.uri)
        processed = process_resource_result(response, selection.uri)
        return ResourceActionOutcome(
            status=ActionStatus.COMPLETED,
            text=processed.content,
            attempts=outcome.attempts,
            server_name=selection.server_name,
            uri=selection.uri,
            reasoning=selection.reasoning,
            meta=processed.meta,
        )
