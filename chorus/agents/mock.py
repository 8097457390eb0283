"""
Offline chat model for mock mode and tests.

`MockChatModel` is a regular LangChain chat model whose reply comes from a
`responder` callable instead of the network, so every stage runs unchanged
against it. The canned factories below reproduce the fixed mock replies and
token counts used when `CHORUS_MOCK_API` is set.
"""
import json
import time
from typing import Any, Callable, List, Optional, Union

from langchain_core.callbacks import CallbackManagerForLLMRun
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.outputs import ChatGeneration, ChatResult

Responder = Callable[[List[BaseMessage]], Union[str, AIMessage]]


class MockChatModel(BaseChatModel):
    """Chat model that answers with whatever `responder` returns."""

    responder: Responder
    delay: float = 0.0
    input_tokens: int = 100
    output_tokens: int = 200

    @property
    def _llm_type(self) -> str:
        return "mock-chat"

    def _generate(
        self,
        messages: List[BaseMessage],
        stop: Optional[List[str]] = None,
        run_manager: Optional[CallbackManagerForLLMRun] = None,
        **kwargs: Any,
    ) -> ChatResult:
        if self.delay:
            time.sleep(self.delay)

        reply = self.responder(messages)
        if isinstance(reply, str):
            reply = AIMessage(content=reply)
        if reply.usage_metadata is None:
            reply.usage_metadata = {
                "input_tokens": self.input_tokens,
                "output_tokens": self.output_tokens,
                "total_tokens": self.input_tokens + self.output_tokens,
            }
        return ChatResult(generations=[ChatGeneration(message=reply)])

    def bind_tools(self, tools, **kwargs):
        # Tool calls are scripted by the responder
        return self


def last_human_text(messages: List[BaseMessage]) -> str:
    for message in reversed(messages):
        if isinstance(message, HumanMessage):
            return message.content if isinstance(message.content, str) else str(message.content)
    return ""


# ─────────────────────────────────────────────────────────────
# Canned replies (mock mode)
# ─────────────────────────────────────────────────────────────

def mock_expand_model(prompt: str, count: int) -> MockChatModel:
    def respond(messages):
        instructions = [
            {
                "id": i,
                "perspective": f"Mock Perspective {i}",
                "instruction": f'[MOCK] Research instruction {i} for: "{prompt[:60]}..."',
                "methodology": f"Mock methodology {i}",
            }
            for i in range(1, count + 1)
        ]
        return json.dumps({"instructions": instructions})

    return MockChatModel(responder=respond, input_tokens=150, output_tokens=300)


def mock_research_model(perspective_id: int, perspective: str) -> MockChatModel:
    def respond(messages):
        return (
            f"[MOCK] Findings for perspective {perspective_id}: {perspective}.\n"
            "This is canned mock data for testing pipeline structure."
        )

    return MockChatModel(responder=respond, input_tokens=200, output_tokens=400)


def mock_synthesis_model(prompt: str, count: int) -> MockChatModel:
    def respond(messages):
        return f'[MOCK] Synthesis of {count} perspectives for: "{prompt[:60]}..."'

    return MockChatModel(responder=respond, input_tokens=300, output_tokens=600)


def mock_single_call_model(prompt: str, system: str, model: str) -> MockChatModel:
    def respond(messages):
        return (
            f'[MOCK] Response to: "{prompt[:80]}..."\n'
            f"System prompt: {system[:60]}...\n"
            f"Model: {model}"
        )

    return MockChatModel(responder=respond, input_tokens=100, output_tokens=200)
