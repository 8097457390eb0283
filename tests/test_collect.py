"""
Collect stage: structured result, text report, persisted turn.
"""
import pytest

from chorus.orchestrator.collect import TurnOutcome, build_turn, format_json, format_text
from chorus.sessions.schema import Cost, Expansion, Instruction, PerspectiveResult, Synthesis


@pytest.fixture
def chorus_outcome():
    instructions = [
        Instruction(id=1, perspective="Economics", instruction="Estimate costs", methodology="Models"),
        Instruction(id=2, perspective="Ethics", instruction="Weigh harms"),
    ]
    return TurnOutcome(
        mode="chorus",
        prompt="Should we?",
        expansion=Expansion(model="gemini-2.5-pro", instructions=instructions,
                            cost=Cost(input_tokens=150, output_tokens=300, usd=0.003)),
        results=[
            PerspectiveResult(id=1, perspective="Economics", instruction="Estimate costs",
                              findings="Cheap", cost=Cost(input_tokens=200, output_tokens=400, usd=0.001)),
            PerspectiveResult(id=2, perspective="Ethics", instruction="Weigh harms",
                              findings="[AGENT FAILED: RuntimeError: boom]"),
        ],
        synthesis=Synthesis(text="Go ahead.", cost=Cost(input_tokens=300, output_tokens=600, usd=0.006)),
        elapsed_seconds=12.5,
    )


def test_chorus_json(chorus_outcome):
    output = format_json(chorus_outcome)
    assert output["mode"] == "chorus"
    assert output["prompt"] == "Should we?"
    assert len(output["expansion"]["instructions"]) == 2
    assert output["perspectives"][0]["findings"] == "Cheap"
    assert output["perspectives"][0]["turnsUsed"] == 0
    assert output["synthesis"]["text"] == "Go ahead."
    assert output["totals"] == {
        "inputTokens": 650,
        "outputTokens": 1300,
        "totalCostUsd": pytest.approx(0.010),
        "perspectivesCount": 2,
        "elapsedSeconds": 12.5,
    }
    assert "dryRun" not in output


def test_dry_run_json():
    outcome = TurnOutcome(
        mode="chorus",
        prompt="Q",
        expansion=Expansion(instructions=[Instruction(id=1, perspective="A", instruction="a")]),
        dry_run=True,
    )
    output = format_json(outcome)
    assert output["dryRun"] is True
    assert output["perspectives"] == []
    assert "synthesis" not in output


def test_single_call_json():
    outcome = TurnOutcome(
        mode="singleCall",
        prompt="Q",
        prompt_name="default",
        response="A",
        response_cost=Cost(input_tokens=100, output_tokens=200, usd=0.0005),
        response_model="gemini-2.5-flash",
        elapsed_seconds=1.2,
    )
    assert format_json(outcome) == {
        "mode": "singleCall",
        "promptName": "default",
        "prompt": "Q",
        "response": "A",
        "model": "gemini-2.5-flash",
        "cost": {"inputTokens": 100, "outputTokens": 200, "usd": 0.0005},
        "elapsedSeconds": 1.2,
    }


def test_chorus_text_report(chorus_outcome):
    text = format_text(chorus_outcome)
    assert "PROMPT EVALUATOR REPORT" in text
    assert "EXPANSION (2 perspectives):" in text
    assert "PERSPECTIVE 1: Economics" in text
    assert "[AGENT FAILED: RuntimeError: boom]" in text
    assert "SYNTHESIS" in text
    assert "COST SUMMARY" in text
    assert "$0.0100" in text


def test_single_call_text_report():
    outcome = TurnOutcome(mode="interrogation", prompt="Q", prompt_name="interrogator", response="A")
    text = format_text(outcome)
    assert "chorus -- interrogator" in text
    assert "PROMPT: Q" in text


def test_build_turn_for_chorus(chorus_outcome):
    turn = build_turn(chorus_outcome, 3)
    assert turn.turn_number == 3
    assert turn.turn_type == "chorus"
    assert len(turn.perspectives) == 2
    assert turn.response is None
    assert turn.total_cost.input_tokens == 650
    assert turn.elapsed_seconds == 12.5


def test_build_turn_for_single_call():
    outcome = TurnOutcome(
        mode="singleCall", prompt="Q", prompt_name="default", response="A",
        response_cost=Cost(input_tokens=1, output_tokens=2, usd=0.1),
    )
    turn = build_turn(outcome)
    assert turn.turn_type == "singleCall"
    assert turn.perspectives is None
    assert turn.response == "A"
    assert turn.total_cost.usd == pytest.approx(0.1)
