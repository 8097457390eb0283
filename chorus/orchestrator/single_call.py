"""
Single-call stage: one model call (optionally with tools), no fan-out.
"""
import logging
from typing import Optional

from chorus.agents import llm
from chorus.agents.mock import mock_single_call_model
from chorus.agents.prompts import INTERROGATION_FRAMING, resolve_prompt
from chorus.errors import StageError
from chorus.sessions.schema import Cost
from chorus.tools import RESEARCH_TOOLS

from .plan import RunOptions

logger = logging.getLogger(__name__)


def prompt_name_for(options: RunOptions) -> str:
    if options.prompt_name:
        return options.prompt_name
    return "interrogator" if options.interrogate else "default"


def build_single_call_messages(options: RunOptions, session_context: Optional[str] = None) -> tuple[str, str]:
    """Return (system, user). Prior turns come first, then the new prompt."""
    try:
        system = resolve_prompt(prompt_name_for(options))
    except KeyError as e:
        raise StageError("single_call", str(e), e) from e

    prompt = options.prompt
    if options.interrogate:
        prompt = INTERROGATION_FRAMING + prompt

    if session_context:
        user = f"{session_context}\n\n--- NEW PROMPT ---\n{prompt}"
    else:
        user = prompt
    return system, user


def single_call(options: RunOptions, session_context: Optional[str] = None) -> tuple[str, Cost]:
    """Run the single-call stage. Returns (response text, cost)."""
    system, user = build_single_call_messages(options, session_context)
    model_obj = llm.chat_model(
        options.model,
        mock=lambda: mock_single_call_model(user, system, options.model),
    )

    try:
        if options.use_tools:
            text, cost, iterations = llm.run_tool_loop(
                model_obj, options.model, system, user, RESEARCH_TOOLS,
            )
            logger.info("Single call finished after %d iteration(s)", iterations)
        else:
            text, cost = llm.invoke_text(model_obj, options.model, system, user)
    except Exception as e:
        raise StageError("single_call", f"Model call failed: {e}", e) from e

    return text or llm.NO_RESPONSE, cost
