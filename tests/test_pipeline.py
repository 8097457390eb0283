"""
End-to-end turns through the LangGraph executor.
"""
import json

import pytest

from chorus.errors import StageError, ValidationError
from chorus.orchestrator import RunOptions, run_turn
from chorus.orchestrator.graph import build_turn_graph
from chorus.orchestrator.plan import Stage, plan_run


# ─────────────────────────────────────────────────────────────
# Run plans
# ─────────────────────────────────────────────────────────────

@pytest.mark.parametrize("options, stages, mode", [
    (RunOptions(prompt="Q"), (Stage.SINGLE_CALL, Stage.COLLECT), "singleCall"),
    (RunOptions(prompt="Q", interrogate=True), (Stage.SINGLE_CALL, Stage.COLLECT), "interrogation"),
    (RunOptions(prompt="Q", summarize=True, dry_run=True), (Stage.SINGLE_CALL, Stage.COLLECT), "singleCall"),
    (RunOptions(prompt="Q", perspectives=3), (Stage.EXPAND, Stage.FAN_OUT, Stage.COLLECT), "chorus"),
    (RunOptions(prompt="Q", perspectives=3, summarize=True),
     (Stage.EXPAND, Stage.FAN_OUT, Stage.SYNTHESIZE, Stage.COLLECT), "chorus"),
    (RunOptions(prompt="Q", perspectives=3, summarize=True, dry_run=True),
     (Stage.EXPAND, Stage.COLLECT), "chorus"),
    (RunOptions(prompt="Q", perspectives=2, interrogate=True),
     (Stage.EXPAND, Stage.FAN_OUT, Stage.COLLECT), "chorus"),
])
def test_plan_run(options, stages, mode):
    plan = plan_run(options)
    assert plan.stages == stages
    assert plan.mode == mode


def test_dry_run_flag_on_plan():
    assert plan_run(RunOptions(prompt="Q", perspectives=2, dry_run=True)).dry_run
    assert not plan_run(RunOptions(prompt="Q", perspectives=2)).dry_run


@pytest.mark.parametrize("options", [
    RunOptions(prompt=""),
    RunOptions(prompt="   "),
    RunOptions(prompt="Q", perspectives=-1),
    RunOptions(prompt="Q", perspectives=13),
])
def test_plan_rejects_bad_options(options):
    with pytest.raises(ValidationError):
        plan_run(options)


def test_graph_has_one_node_per_stage():
    plan = plan_run(RunOptions(prompt="Q", perspectives=2, summarize=True))
    graph = build_turn_graph(plan)
    nodes = set(graph.get_graph().nodes)
    assert {"expand", "fan_out", "synthesize", "collect"} <= nodes
    assert "single_call" not in nodes


# ─────────────────────────────────────────────────────────────
# Mock mode
# ─────────────────────────────────────────────────────────────

def test_full_chorus_in_mock_mode(mock_api):
    outcome = run_turn(RunOptions(prompt="Should cities ban cars?", perspectives=3, summarize=True))

    assert outcome.mode == "chorus"
    assert len(outcome.expansion.instructions) == 3
    assert len(outcome.results) == 3
    assert outcome.synthesis.text.startswith("[MOCK] Synthesis of 3 perspectives")

    total = outcome.total_cost
    assert total.input_tokens == 150 + 3 * 200 + 300
    assert total.output_tokens == 300 + 3 * 400 + 600
    assert total.usd == pytest.approx(
        outcome.expansion.cost.usd
        + sum(r.cost.usd for r in outcome.results)
        + outcome.synthesis.cost.usd
    )
    assert outcome.elapsed_seconds >= 0


def test_chorus_without_synthesis(mock_api):
    outcome = run_turn(RunOptions(prompt="Compare X and Y", perspectives=2))
    assert len(outcome.results) == 2
    assert outcome.synthesis is None
    assert outcome.total_cost.usd == pytest.approx(
        outcome.expansion.cost.usd + sum(r.cost.usd for r in outcome.results)
    )


def test_dry_run_stops_after_expansion(mock_api):
    outcome = run_turn(RunOptions(prompt="Q", perspectives=5, summarize=True, dry_run=True))
    assert outcome.dry_run
    assert len(outcome.expansion.instructions) == 5
    assert outcome.results is None
    assert outcome.synthesis is None
    assert outcome.total_cost.input_tokens == 150


def test_single_call_in_mock_mode(mock_api):
    outcome = run_turn(RunOptions(prompt="What is 2 + 2?"))
    assert outcome.mode == "singleCall"
    assert outcome.prompt_name == "default"
    assert outcome.response.startswith("[MOCK] Response to:")
    assert outcome.response_cost.input_tokens == 100
    assert outcome.response_model == "gemini-2.5-flash"


# ─────────────────────────────────────────────────────────────
# Scripted models
# ─────────────────────────────────────────────────────────────

def test_interrogation_frames_prompt_with_context(scripted):
    seen = {}

    def single(system, user):
        seen["system"], seen["user"] = system, user
        return "Deeper answer"

    scripted.single = single
    outcome = run_turn(
        RunOptions(prompt="Expand on costs", interrogate=True),
        session_context="=== PRIOR RESEARCH SESSION: s ===",
    )

    assert outcome.mode == "interrogation"
    assert outcome.prompt_name == "interrogator"
    assert outcome.response == "Deeper answer"
    assert seen["user"].startswith("=== PRIOR RESEARCH SESSION: s ===")
    assert seen["user"].endswith(
        "--- NEW PROMPT ---\n"
        "Analyze the prior research findings in context of the following question: Expand on costs"
    )


def test_unknown_prompt_name_fails_the_turn(scripted):
    with pytest.raises(StageError):
        run_turn(RunOptions(prompt="Q", prompt_name="nonexistent"))


def test_synthesis_skips_failed_participants(scripted):
    synthesis_input = {}

    def research(system, user):
        if "angle 2" in user:
            raise RuntimeError("boom")
        return "fine"

    def synthesize(system, user):
        synthesis_input["system"], synthesis_input["user"] = system, user
        return "merged"

    scripted.research = research
    scripted.synthesize = synthesize
    outcome = run_turn(RunOptions(prompt="Q", perspectives=3, summarize=True))

    assert [r.failed for r in outcome.results] == [False, True, False]
    assert outcome.synthesis.text == "merged"
    assert "FINDINGS FROM 2 INDEPENDENT ANALYSTS" in synthesis_input["user"]
    assert "AGENT FAILED" not in synthesis_input["user"]


def test_all_participants_failed_aborts_synthesis(scripted):
    def research(system, user):
        raise RuntimeError("down")

    scripted.research = research
    with pytest.raises(StageError) as exc:
        run_turn(RunOptions(prompt="Q", perspectives=2, summarize=True))
    assert exc.value.stage == "synthesize"


def test_all_participants_failed_without_synthesis_still_completes(scripted):
    def research(system, user):
        raise RuntimeError("down")

    scripted.research = research
    outcome = run_turn(RunOptions(prompt="Q", perspectives=2))
    assert all(r.failed for r in outcome.results)


def test_malformed_expansion_aborts_turn(scripted):
    scripted.expand = lambda system, user: "Here are some ideas: 1. costs 2. risks"
    with pytest.raises(StageError) as exc:
        run_turn(RunOptions(prompt="Q", perspectives=2, summarize=True))
    assert exc.value.stage == "expand"
    assert len(scripted.calls) == 1


def test_short_expansion_aborts_turn(scripted):
    scripted.expand = lambda system, user: json.dumps(
        {"instructions": [{"id": 1, "perspective": "Only", "instruction": "one"}]}
    )
    with pytest.raises(StageError):
        run_turn(RunOptions(prompt="Q", perspectives=3))


def test_unknown_model_fails_before_any_result(scripted):
    with pytest.raises(StageError):
        run_turn(RunOptions(prompt="Q", model="gpt-nonexistent"))
