"""
Expansion stage: one prompt in, N independent research instructions out.

The model is asked for a bare JSON document and the reply is validated
against `ExpansionPayload`. Anything that does not fit the contract fails
the stage.
"""
import logging
from typing import Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from chorus.agents import llm
from chorus.agents.mock import mock_expand_model
from chorus.agents.prompts import JSON_CONTRACT, RESUME_ADDENDUM, resolve_prompt
from chorus.config import Config
from chorus.errors import StageError
from chorus.sessions.schema import Expansion, Instruction

logger = logging.getLogger(__name__)


class ExpansionItem(BaseModel):
    id: int
    perspective: str = Field(min_length=1)
    instruction: str = Field(min_length=1)
    methodology: str = ""


class ExpansionPayload(BaseModel):
    instructions: list[ExpansionItem]


def build_expand_messages(prompt: str, count: int, session_context: Optional[str] = None) -> tuple[str, str]:
    """Return (system, user) for the expansion call."""
    system = resolve_prompt("chorusExpander", N=count)
    if session_context:
        system += RESUME_ADDENDUM
    system += JSON_CONTRACT

    user = f"{prompt}\n\n{session_context}" if session_context else prompt
    return system, user


def parse_expansion(text: str, count: int) -> list[Instruction]:
    """
    Validate the expansion reply and normalize it to exactly `count` instructions.

    Raises:
        StageError: invalid JSON, schema mismatch, or fewer than `count` items
    """
    try:
        payload = ExpansionPayload.model_validate_json(text)
    except PydanticValidationError as e:
        raise StageError("expand", f"Expansion reply does not match the contract: {e}", e) from e

    items = payload.instructions
    if not items:
        raise StageError("expand", "Expansion returned zero instructions")
    if len(items) < count:
        raise StageError("expand", f"Expansion returned {len(items)} instructions, expected {count}")
    if len(items) > count:
        logger.warning("Expansion returned %d instructions; keeping the first %d", len(items), count)
        items = items[:count]

    return [
        Instruction(
            id=idx,
            perspective=item.perspective,
            instruction=item.instruction,
            methodology=item.methodology,
        )
        for idx, item in enumerate(items, 1)
    ]


def expand(prompt: str, count: int, model: str, session_context: Optional[str] = None) -> Expansion:
    """
    Run the expansion stage.

    Args:
        prompt: The user's research question
        count: Number of perspectives to produce
        model: Expansion model (shorthand or identifier)
        session_context: Prior turns when resuming a session
    """
    system, user = build_expand_messages(prompt, count, session_context)
    if session_context:
        logger.info("Expand: session context injected (%d chars)", len(session_context))

    model_obj = llm.chat_model(model, json_mode=True, mock=lambda: mock_expand_model(prompt, count))
    try:
        text, cost = llm.invoke_text(model_obj, model, system, user)
    except Exception as e:
        raise StageError("expand", f"Expansion call failed: {e}", e) from e

    instructions = parse_expansion(text, count)
    logger.info(
        "Expand: %d instructions, %d output tokens, $%.4f",
        len(instructions), cost.output_tokens, cost.usd,
    )
    return Expansion(model=Config.resolve_model(model), instructions=instructions, cost=cost)
