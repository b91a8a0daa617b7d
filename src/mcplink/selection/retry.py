"""Bounded propose/validate/feedback loop around an external model."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from mcplink.mcp.config import DEFAULT_MAX_RETRIES
from mcplink.selection.validation import SelectionInput, ValidationResult

logger = logging.getLogger(__name__)

type FeedbackBuilder = Callable[[str, str, str, str], str]


class ModelClient(Protocol):
    """Text generation backend that proposes selections."""

    async def generate_text(self, prompt: str) -> str: ...


@dataclass(slots=True)
class SelectionOutcome[T]:
    """Terminal state of one selection loop.

    `abandoned` is set when every attempt was rejected; callers treat that as
    "no selection", not as a failure.
    """

    selection: T | None
    attempts: int
    errors: list[str] = field(default_factory=list)
    abandoned: bool = False

    @property
    def accepted(self) -> bool:
        return self.selection is not None and not self.abandoned


def _response_text(response: SelectionInput) -> str:
    if isinstance(response, str):
        return response
    return json.dumps(dict(response), default=str)


async def with_model_retry[T](
    initial_response: str | Mapping[str, Any],
    *,
    validate: Callable[[SelectionInput], ValidationResult[T]],
    feedback: FeedbackBuilder,
    model: ModelClient,
    user_message: str,
    provider_text: str,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> SelectionOutcome[T]:
    """Validate `initial_response`, re-prompting the model after each rejection.

    At most `max_retries` responses are validated, the initial one included,
    so the model is re-invoked at most `max_retries - 1` times. Budgets below
    one still validate the initial response once. Every rejection costs one
    attempt whatever its cause. Model call errors propagate.
    """
    budget = max(1, max_retries)
    response: SelectionInput = initial_response
    errors: list[str] = []
    attempts = 0
    while True:
        attempts += 1
        result = validate(response)
        if result.ok and result.data is not None:
            if attempts > 1:
                logger.info("Selection accepted after %d attempts", attempts)
            return SelectionOutcome(selection=result.data, attempts=attempts, errors=errors)

        error_message = result.error_message or "Selection rejected"
        errors.append(error_message)
        if attempts >= budget:
            logger.error("Max retries (%d) exceeded; abandoning selection.", budget)
            return SelectionOutcome(selection=None, attempts=attempts, errors=errors, abandoned=True)

        logger.warning(
            "Selection rejected (attempt %d of %d): %s", attempts, budget, error_message
        )
        prompt = feedback(_response_text(response), error_message, provider_text, user_message)
        response = await model.generate_text(prompt)
