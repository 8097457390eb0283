"""
Fan-out stage: run one research participant per instruction.

Participants are independent. A participant that raises is recorded as a
failure marker in its own slot; the others keep going and the stage as a
whole still succeeds. Results always come back in instruction order.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor

from chorus.agents import llm
from chorus.agents.mock import mock_research_model
from chorus.agents.prompts import resolve_prompt
from chorus.config import Config
from chorus.sessions.schema import Cost, Instruction, PerspectiveResult
from chorus.tools import RESEARCH_TOOLS

from .plan import RunOptions

logger = logging.getLogger(__name__)


def run_participant(instruction: Instruction, options: RunOptions) -> PerspectiveResult:
    """Run one participant to completion. Raises on failure."""
    tag = f"[Agent {instruction.id}/{instruction.perspective}]"
    started = time.monotonic()

    system = resolve_prompt("chorusResearcher")
    model_obj = llm.chat_model(
        options.model,
        mock=lambda: mock_research_model(instruction.id, instruction.perspective),
    )

    if options.use_tools:
        findings, cost, turns_used = llm.run_tool_loop(
            model_obj, options.model, system, instruction.instruction, RESEARCH_TOOLS,
        )
    else:
        findings, cost = llm.invoke_text(model_obj, options.model, system, instruction.instruction)
        turns_used = 1

    logger.info(
        "%s finished in %.1fs, $%.4f, %d turn(s)",
        tag, time.monotonic() - started, cost.usd, turns_used,
    )
    return PerspectiveResult(
        id=instruction.id,
        perspective=instruction.perspective,
        instruction=instruction.instruction,
        findings=findings or llm.NO_RESPONSE,
        model=Config.resolve_model(options.model),
        cost=cost,
        turns_used=turns_used,
    )


def failed_result(instruction: Instruction, options: RunOptions, error: BaseException) -> PerspectiveResult:
    reason = f"{type(error).__name__}: {error}" if str(error) else type(error).__name__
    return PerspectiveResult(
        id=instruction.id,
        perspective=instruction.perspective,
        instruction=instruction.instruction,
        findings=f"[AGENT FAILED: {reason}]",
        model=Config.resolve_model(options.model),
        cost=Cost(),
        turns_used=0,
    )


def _settle(instruction: Instruction, options: RunOptions) -> PerspectiveResult:
    try:
        return run_participant(instruction, options)
    except Exception as e:
        logger.warning("Participant %d (%s) failed: %s", instruction.id, instruction.perspective, e)
        return failed_result(instruction, options, e)


def fan_out(instructions: list[Instruction], options: RunOptions) -> list[PerspectiveResult]:
    """
    Run every participant and wait for all of them to settle.

    Concurrent by default (one thread per participant, so elapsed time is
    roughly the slowest participant); serial when `options.serial_fan_out`.
    """
    if not instructions:
        return []

    if options.serial_fan_out:
        logger.info("Fan-out: running %d participants serially", len(instructions))
        return [_settle(instruction, options) for instruction in instructions]

    logger.info("Fan-out: dispatching %d participants concurrently", len(instructions))
    with ThreadPoolExecutor(max_workers=len(instructions), thread_name_prefix="participant") as pool:
        futures = [pool.submit(_settle, instruction, options) for instruction in instructions]
        results = [future.result() for future in futures]

    failed = sum(1 for r in results if r.failed)
    logger.info("Fan-out: all settled, %d succeeded, %d failed", len(results) - failed, failed)
    return results
