"""Corrective prompts for rejected selections."""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Final

from mcplink.selection.templates import (
    CALCULATOR_TOOL_FEEDBACK_TEMPLATE,
    GENERIC_TOOL_FEEDBACK_TEMPLATE,
    RESOURCE_FEEDBACK_TEMPLATE,
    WEATHER_TOOL_FEEDBACK_TEMPLATE,
    render,
)

NO_TOOLS_TEXT: Final = "No tools available"
NO_RESOURCES_TEXT: Final = "No resources available"


class Intent(StrEnum):
    """Coarse classification of a user request, used to pick a feedback template."""

    ARITHMETIC = "arithmetic"
    WEATHER_QUERY = "weather_query"
    UNCLASSIFIED = "unclassified"


_ARITHMETIC_PATTERN: Final = re.compile(
    r"\b(\d+\s*[\+\-\*\/\(\)\^\%]\s*\d+|\bsum\b|\bcalculate\b|\bcompute\b|\bsolve\b"
    r"|\bdivide\b|\bmultiply\b|\badd\b|\bsubtract\b)",
    re.IGNORECASE,
)
_WEATHER_PATTERN: Final = re.compile(
    r"\b(weather|temperature|forecast|rain|sunny|cloudy|humidity|wind|climate|cold|hot|warm|chilly)\b"
    r".*?\b(in|at|for|of)\b.*?\b([A-Z][a-z]+ ?[A-Z]?[a-z]*|[A-Z]{2,})\b",
    re.IGNORECASE,
)

# Checked in order; the first match wins.
_INTENT_RULES: Final[tuple[tuple[Intent, re.Pattern[str]], ...]] = (
    (Intent.ARITHMETIC, _ARITHMETIC_PATTERN),
    (Intent.WEATHER_QUERY, _WEATHER_PATTERN),
)

_TOOL_FEEDBACK_TEMPLATES: Final[dict[Intent, str]] = {
    Intent.ARITHMETIC: CALCULATOR_TOOL_FEEDBACK_TEMPLATE,
    Intent.WEATHER_QUERY: WEATHER_TOOL_FEEDBACK_TEMPLATE,
    Intent.UNCLASSIFIED: GENERIC_TOOL_FEEDBACK_TEMPLATE,
}


def classify_intent(text: str) -> Intent:
    for intent, pattern in _INTENT_RULES:
        if pattern.search(text):
            return intent
    return Intent.UNCLASSIFIED


def create_tool_selection_feedback_prompt(
    original_response: str,
    error_message: str,
    provider_text: str,
    user_message: str,
) -> str:
    """Build the re-prompt after a rejected tool selection.

    Arithmetic and weather requests get the domain-specific selection
    template; anything else gets the generic corrective template. Every
    variant carries the validation errors and the rejected response.
    """
    template = _TOOL_FEEDBACK_TEMPLATES[classify_intent(user_message)]
    return render(
        template,
        original_response=original_response,
        error_message=error_message,
        user_message=user_message,
        provider_text=provider_text or NO_TOOLS_TEXT,
    )


def create_resource_selection_feedback_prompt(
    original_response: str,
    error_message: str,
    provider_text: str,
    user_message: str,
) -> str:
    return render(
        RESOURCE_FEEDBACK_TEMPLATE,
        original_response=original_response,
        error_message=error_message,
        user_message=user_message,
        provider_text=provider_text or NO_RESOURCES_TEXT,
    )
