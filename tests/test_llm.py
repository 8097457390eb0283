"""
Model-call helpers: reply text, cost accounting, the tool loop.
"""
import pytest
from langchain_core.messages import AIMessage, ToolMessage
from langchain_core.tools import tool

from chorus.agents.llm import (
    NO_RESPONSE,
    execute_tool_call,
    message_text,
    run_tool_loop,
    usage_cost,
)
from chorus.agents.mock import MockChatModel
from chorus.agents.pricing import estimate_usd, validate_model
from chorus.errors import UnknownModelError


@tool
def echo(text: str) -> str:
    """Echo the text back."""
    return f"echo: {text}"


@tool
def explode(text: str) -> str:
    """Always fails."""
    raise ValueError("kaboom")


def tool_call(name, args, call_id="call-1"):
    return AIMessage(content="", tool_calls=[{"name": name, "args": args, "id": call_id}])


def test_message_text_from_string():
    assert message_text(AIMessage(content="  hi  ")) == "hi"


def test_message_text_from_blocks():
    message = AIMessage(content=[
        {"type": "text", "text": "first"},
        {"type": "thinking", "thinking": "hidden"},
        "second",
    ])
    assert message_text(message) == "first\n\nsecond"


def test_usage_cost():
    message = AIMessage(content="x", usage_metadata={
        "input_tokens": 1_000_000, "output_tokens": 1_000_000, "total_tokens": 2_000_000,
    })
    cost = usage_cost("flash", message)
    assert cost.input_tokens == 1_000_000
    assert cost.usd == pytest.approx(0.30 + 2.50)


def test_usage_cost_without_metadata():
    cost = usage_cost("flash", AIMessage(content="x"))
    assert cost.input_tokens == 0
    assert cost.usd == 0


def test_estimate_usd_unknown_model():
    with pytest.raises(UnknownModelError):
        estimate_usd("gpt-nonexistent", 10, 10)


def test_validate_model_resolves_alias():
    assert validate_model("pro") == "gemini-2.5-pro"
    assert validate_model("gemini-2.5-flash") == "gemini-2.5-flash"


def test_tool_loop_runs_tools_until_text():
    seen = []

    def respond(messages):
        seen.append(messages)
        if len(messages) == 2:
            return tool_call("echo", {"text": "ping"})
        return "final answer"

    model = MockChatModel(responder=respond)
    text, cost, iterations = run_tool_loop(model, "flash", "sys", "question", [echo])

    assert text == "final answer"
    assert iterations == 2
    assert cost.input_tokens == 200
    tool_message = seen[1][-1]
    assert isinstance(tool_message, ToolMessage)
    assert tool_message.content == "echo: ping"


def test_tool_loop_iteration_cap():
    model = MockChatModel(responder=lambda messages: tool_call("echo", {"text": "again"}))
    text, cost, iterations = run_tool_loop(model, "flash", "sys", "q", [echo], max_iterations=3)

    assert iterations == 3
    assert text.startswith("[MAX TOOL ITERATIONS REACHED (3)]")
    assert cost.input_tokens == 300


def test_tool_loop_empty_reply():
    model = MockChatModel(responder=lambda messages: "")
    text, _, iterations = run_tool_loop(model, "flash", "sys", "q", [echo])
    assert text == NO_RESPONSE
    assert iterations == 1


def test_unknown_tool_reported_to_model():
    assert execute_tool_call({"echo": echo}, {"name": "rm", "args": {}, "id": "1"}) == "ERROR: Unknown tool: rm"


def test_tool_exception_reported_to_model():
    result = execute_tool_call({"explode": explode}, {"name": "explode", "args": {"text": "x"}, "id": "1"})
    assert result.startswith("ERROR: Tool error (explode)")
    assert "kaboom" in result
