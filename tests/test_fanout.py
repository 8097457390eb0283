"""
Fan-out stage: ordering, isolation of failures, concurrency.
"""
import time

from chorus.orchestrator.fanout import fan_out
from chorus.orchestrator.plan import RunOptions
from chorus.sessions.schema import Instruction


def instructions(count):
    return [
        Instruction(id=i, perspective=f"Angle {i}", instruction=f"Investigate {i}")
        for i in range(1, count + 1)
    ]


def test_mock_fan_out_keeps_instruction_order(mock_api):
    results = fan_out(instructions(4), RunOptions(prompt="Q", perspectives=4))
    assert [r.id for r in results] == [1, 2, 3, 4]
    assert [r.perspective for r in results] == ["Angle 1", "Angle 2", "Angle 3", "Angle 4"]
    for r in results:
        assert r.findings.startswith(f"[MOCK] Findings for perspective {r.id}")
        assert r.cost.input_tokens == 200
        assert r.cost.output_tokens == 400
        assert r.turns_used == 1
        assert r.model == "gemini-2.5-flash"
        assert not r.failed


def test_empty_fan_out():
    assert fan_out([], RunOptions(prompt="Q")) == []


def test_failed_participant_does_not_stop_others(scripted):
    def research(system, user):
        if user == "Investigate 2":
            raise RuntimeError("boom")
        return f"ok: {user}"

    scripted.research = research
    results = fan_out(instructions(3), RunOptions(prompt="Q", perspectives=3))

    assert [r.id for r in results] == [1, 2, 3]
    assert results[0].findings == "ok: Investigate 1"
    assert results[2].findings == "ok: Investigate 3"

    failed = results[1]
    assert failed.failed
    assert failed.findings == "[AGENT FAILED: RuntimeError: boom]"
    assert failed.cost.usd == 0
    assert failed.cost.input_tokens == 0
    assert failed.turns_used == 0


def test_empty_reply_becomes_no_response(scripted):
    scripted.research = lambda system, user: ""
    results = fan_out(instructions(1), RunOptions(prompt="Q", perspectives=1))
    assert results[0].findings == "[NO RESPONSE]"


def test_participants_run_concurrently(scripted):
    scripted.delay = 0.5
    started = time.monotonic()
    results = fan_out(instructions(4), RunOptions(prompt="Q", perspectives=4))
    elapsed = time.monotonic() - started

    assert len(results) == 4
    assert elapsed < 1.5


def test_serial_fan_out(scripted):
    scripted.delay = 0.5
    started = time.monotonic()
    results = fan_out(instructions(4), RunOptions(prompt="Q", perspectives=4, serial_fan_out=True))
    elapsed = time.monotonic() - started

    assert [r.id for r in results] == [1, 2, 3, 4]
    assert elapsed >= 2.0
