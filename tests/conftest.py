"""
Shared fixtures. No test talks to a real model: stages get their chat model
from `chorus.agents.llm.chat_model`, which is either switched to mock mode
or replaced with a scripted MockChatModel here.
"""
import json
import re

import pytest
from langchain_core.messages import SystemMessage

from chorus.agents import llm
from chorus.agents.mock import MockChatModel, last_human_text
from chorus.config import Config
from chorus.jobs.services import Services


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def services(data_dir):
    return Services(data_dir)


@pytest.fixture
def store(services):
    return services.store


@pytest.fixture
def mock_api(monkeypatch):
    """Canned responses for every stage (same as CHORUS_MOCK_API=1)."""
    monkeypatch.setattr(Config, "MOCK_API", True)


# ─────────────────────────────────────────────────────────────
# Scripted models
# ─────────────────────────────────────────────────────────────

def _system_text(messages) -> str:
    for message in messages:
        if isinstance(message, SystemMessage):
            return message.content
    return ""


def default_expand(system: str, user: str) -> str:
    count = int(re.search(r"design (\d+) independent", system).group(1))
    return json.dumps({
        "instructions": [
            {
                "id": i,
                "perspective": f"Angle {i}",
                "instruction": f"Investigate angle {i} of: {user[:40]}",
                "methodology": f"Method {i}",
            }
            for i in range(1, count + 1)
        ]
    })


class ScriptedModels:
    """
    Routes each call to a handler by its system prompt.

    Handlers take (system, user) and return a string or AIMessage, or raise.
    """

    def __init__(self):
        self.expand = default_expand
        self.research = lambda system, user: f"Findings for: {user}"
        self.synthesize = lambda system, user: "Cross-perspective synthesis"
        self.single = lambda system, user: f"Answer to: {user}"
        self.delay = 0.0
        self.calls = []

    def _route(self, messages):
        system = _system_text(messages)
        user = last_human_text(messages)
        if "research director" in system:
            handler = self.expand
        elif "expert analyst" in system:
            handler = self.research
        elif "senior research editor" in system:
            handler = self.synthesize
        else:
            handler = self.single
        return handler(system, user)

    def factory(self, model, json_mode=False, mock=None):
        self.calls.append((model, json_mode))
        return MockChatModel(responder=self._route, delay=self.delay)


@pytest.fixture
def scripted(monkeypatch):
    models = ScriptedModels()
    monkeypatch.setattr(llm, "chat_model", models.factory)
    return models
