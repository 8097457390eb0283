"""
Model-call boundary. Every stage talks to a model through these helpers.
"""
import logging
from typing import Callable, Optional, Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import BaseTool

from chorus.config import Config, get_model
from chorus.sessions.schema import Cost
from .mock import MockChatModel, last_human_text
from .pricing import estimate_usd

logger = logging.getLogger(__name__)

NO_RESPONSE = "[NO RESPONSE]"
MAX_ITERATIONS_TEXT = (
    "[MAX TOOL ITERATIONS REACHED ({limit})] "
    "The model continued requesting tool calls beyond the iteration limit."
)


def chat_model(
    model: str,
    json_mode: bool = False,
    mock: Optional[Callable[[], MockChatModel]] = None,
) -> BaseChatModel:
    """
    Get the chat model for one call.

    Args:
        model: Shorthand or full model identifier
        json_mode: Request a bare JSON reply
        mock: Factory for the canned model used when CHORUS_MOCK_API is set
    """
    if Config.MOCK_API:
        if mock is not None:
            return mock()
        return MockChatModel(responder=lambda messages: f"[MOCK] {last_human_text(messages)[:80]}")
    return get_model(model, json_mode=json_mode)


def message_text(message: BaseMessage) -> str:
    """Extract text from a reply. Gemini may return a list of content blocks."""
    content = message.content
    if isinstance(content, str):
        return content.strip()

    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "\n\n".join(p.strip() for p in parts if p and p.strip())


def usage_cost(model_name: str, message: BaseMessage) -> Cost:
    usage = getattr(message, "usage_metadata", None) or {}
    input_tokens = int(usage.get("input_tokens", 0) or 0)
    output_tokens = int(usage.get("output_tokens", 0) or 0)
    return Cost(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        usd=estimate_usd(model_name, input_tokens, output_tokens),
    )


def invoke_text(model_obj: BaseChatModel, model_name: str, system: str, user: str) -> tuple[str, Cost]:
    """One text-in, text-out call. Returns (text, cost)."""
    response = model_obj.invoke([SystemMessage(content=system), HumanMessage(content=user)])
    return message_text(response), usage_cost(model_name, response)


def execute_tool_call(tools_by_name: dict, call: dict) -> str:
    """Run one requested tool. Failures are reported back to the model as text."""
    tool = tools_by_name.get(call["name"])
    if tool is None:
        return f"ERROR: Unknown tool: {call['name']}"
    try:
        return str(tool.invoke(call.get("args", {})))
    except Exception as e:
        logger.warning("Tool %s failed: %s", call["name"], e)
        return f"ERROR: Tool error ({call['name']}): {e}"


def run_tool_loop(
    model_obj: BaseChatModel,
    model_name: str,
    system: str,
    user: str,
    tools: Sequence[BaseTool],
    max_iterations: Optional[int] = None,
) -> tuple[str, Cost, int]:
    """
    Let the model call tools until it answers in plain text.

    Returns:
        (text, accumulated cost, iterations used). When the cap is reached
        the text is the iteration-limit finding rather than an answer.
    """
    max_iterations = max_iterations or Config.MAX_TOOL_ITERATIONS
    tools_by_name = {t.name: t for t in tools}
    bound = model_obj.bind_tools(list(tools)) if tools else model_obj

    messages: list[BaseMessage] = [SystemMessage(content=system), HumanMessage(content=user)]
    total = Cost()

    for iteration in range(1, max_iterations + 1):
        response = bound.invoke(messages)
        total = total + usage_cost(model_name, response)

        if not response.tool_calls:
            return message_text(response) or NO_RESPONSE, total, iteration

        logger.debug(
            "Iteration %d: %d tool call(s): %s",
            iteration, len(response.tool_calls), [c["name"] for c in response.tool_calls],
        )
        messages.append(response)
        for call in response.tool_calls:
            messages.append(ToolMessage(
                content=execute_tool_call(tools_by_name, call),
                tool_call_id=call["id"],
                name=call["name"],
            ))

    logger.warning("Max tool iterations (%d) reached", max_iterations)
    return MAX_ITERATIONS_TEXT.format(limit=max_iterations), total, max_iterations
