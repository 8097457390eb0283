"""
Model-call helpers, prompts and pricing.
"""
from .llm import chat_model, invoke_text, message_text, run_tool_loop, usage_cost
from .mock import MockChatModel
from .pricing import estimate_usd, validate_model
from .prompts import PROMPTS, resolve_prompt

__all__ = [
    "chat_model",
    "invoke_text",
    "message_text",
    "run_tool_loop",
    "usage_cost",
    "MockChatModel",
    "estimate_usd",
    "validate_model",
    "PROMPTS",
    "resolve_prompt",
]
