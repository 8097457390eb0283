"""
Expansion stage: reply parsing and the mock/scripted expansion call.
"""
import json

import pytest

from chorus.errors import StageError
from chorus.orchestrator.expand import build_expand_messages, expand, parse_expansion


def payload(count, **extra):
    return json.dumps({
        "instructions": [
            {"id": i * 10, "perspective": f"P{i}", "instruction": f"Do {i}", **extra}
            for i in range(1, count + 1)
        ]
    })


def test_parse_renumbers_ids():
    instructions = parse_expansion(payload(3, methodology="m"), 3)
    assert [i.id for i in instructions] == [1, 2, 3]
    assert [i.perspective for i in instructions] == ["P1", "P2", "P3"]
    assert instructions[0].methodology == "m"


def test_parse_rejects_fenced_reply():
    text = "```json\n" + payload(2) + "\n```"
    with pytest.raises(StageError):
        parse_expansion(text, 2)


def test_parse_truncates_extra_items():
    instructions = parse_expansion(payload(5), 3)
    assert [i.perspective for i in instructions] == ["P1", "P2", "P3"]


@pytest.mark.parametrize("text", [
    "not json at all",
    '{"perspectives": []}',
    '{"instructions": [{"id": 1, "perspective": "", "instruction": "x"}]}',
])
def test_parse_rejects_contract_violations(text):
    with pytest.raises(StageError) as exc:
        parse_expansion(text, 1)
    assert exc.value.stage == "expand"


def test_parse_rejects_short_and_empty_replies():
    with pytest.raises(StageError):
        parse_expansion(payload(2), 3)
    with pytest.raises(StageError):
        parse_expansion('{"instructions": []}', 3)


def test_expand_messages_without_context():
    system, user = build_expand_messages("Why?", 4)
    assert "design 4 independent" in system
    assert "JSON" in system
    assert user == "Why?"


def test_expand_messages_with_context():
    system, user = build_expand_messages("Why?", 2, "=== PRIOR RESEARCH SESSION: s ===")
    assert user.startswith("Why?")
    assert "PRIOR RESEARCH SESSION" in user
    assert len(system) > len(build_expand_messages("Why?", 2)[0])


def test_mock_expand(mock_api):
    expansion = expand("Should cities ban cars?", 3, "pro")
    assert len(expansion.instructions) == 3
    assert expansion.instructions[0].perspective == "Mock Perspective 1"
    assert expansion.cost.input_tokens == 150
    assert expansion.cost.output_tokens == 300
    assert expansion.cost.usd > 0
    assert expansion.model == "gemini-2.5-pro"


def test_expand_asks_for_json(scripted):
    expand("Q", 2, "pro")
    assert scripted.calls == [("pro", True)]


def test_expand_model_failure_is_stage_error(scripted):
    def boom(system, user):
        raise RuntimeError("quota exceeded")

    scripted.expand = boom
    with pytest.raises(StageError, match="quota exceeded"):
        expand("Q", 2, "pro")
