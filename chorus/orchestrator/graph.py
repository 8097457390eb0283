"""
Graph builder and run function.

Every turn runs through the same executor: the run plan's stages become
LangGraph nodes wired in a straight line. Any stage failure aborts the whole
graph, so callers either get a complete TurnOutcome or a StageError.
"""
import logging
import time
from typing import Optional

from langgraph.graph import StateGraph, START, END

from chorus.config import Config
from chorus.errors import StageError

from .collect import TurnOutcome
from .expand import expand
from .fanout import fan_out
from .plan import RunOptions, RunPlan, Stage, plan_run
from .single_call import prompt_name_for, single_call
from .state import TurnState
from .synthesize import synthesize

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Stage nodes
# ─────────────────────────────────────────────────────────────

def expand_node(state: TurnState) -> dict:
    options = state["options"]
    logger.info("Expanding into %d perspectives (model=%s)", options.perspectives, options.expand_model)
    expansion = expand(
        options.prompt,
        options.perspectives,
        options.expand_model,
        state.get("session_context"),
    )
    return {"expansion": expansion}


def single_call_node(state: TurnState) -> dict:
    options = state["options"]
    logger.info("Single call (model=%s, tools=%s)", options.model, options.use_tools)
    text, cost = single_call(options, state.get("session_context"))
    return {
        "response": text,
        "response_cost": cost,
        "response_model": Config.resolve_model(options.model),
    }


def fan_out_node(state: TurnState) -> dict:
    results = fan_out(state["expansion"].instructions, state["options"])
    return {"results": results}


def synthesize_node(state: TurnState) -> dict:
    options = state["options"]
    synthesis = synthesize(
        options.prompt,
        state["expansion"].instructions,
        state.get("results", []),
        options.expand_model,
    )
    return {"synthesis": synthesis}


def collect_node(state: TurnState) -> dict:
    options = state["options"]
    plan = state["plan"]
    elapsed = round(time.monotonic() - state["started_at"], 2)

    if plan.mode == "chorus":
        outcome = TurnOutcome(
            mode="chorus",
            prompt=options.prompt,
            expansion=state.get("expansion"),
            results=state.get("results"),
            synthesis=state.get("synthesis"),
            elapsed_seconds=elapsed,
            dry_run=plan.dry_run,
        )
    else:
        outcome = TurnOutcome(
            mode=plan.mode,
            prompt=options.prompt,
            prompt_name=prompt_name_for(options),
            response=state["response"],
            response_cost=state["response_cost"],
            response_model=state["response_model"],
            elapsed_seconds=elapsed,
        )
    return {"outcome": outcome}


STAGE_NODES = {
    Stage.EXPAND: expand_node,
    Stage.SINGLE_CALL: single_call_node,
    Stage.FAN_OUT: fan_out_node,
    Stage.SYNTHESIZE: synthesize_node,
    Stage.COLLECT: collect_node,
}


# ─────────────────────────────────────────────────────────────
# Graph Builder
# ─────────────────────────────────────────────────────────────

def build_turn_graph(plan: RunPlan):
    """
    Build the executor for one run plan.

    Flow (full chorus):
        START → expand → fan_out → synthesize → collect → END
    """
    builder = StateGraph(TurnState)

    previous = START
    for stage in plan.stages:
        builder.add_node(stage.value, STAGE_NODES[stage])
        builder.add_edge(previous, stage.value)
        previous = stage.value
    builder.add_edge(previous, END)

    return builder.compile()


def run_turn(options: RunOptions, session_context: Optional[str] = None) -> TurnOutcome:
    """
    Execute one turn.

    Raises:
        ValidationError: the options cannot be planned
        StageError: any stage failed; no partial outcome exists
    """
    plan = plan_run(options)
    logger.info("Run plan: %s", " → ".join(stage.value for stage in plan.stages))

    graph = build_turn_graph(plan)
    initial: TurnState = {
        "options": options,
        "plan": plan,
        "session_context": session_context,
        "started_at": time.monotonic(),
    }

    try:
        final = graph.invoke(initial)
    except StageError:
        raise
    except Exception as e:
        raise StageError("pipeline", f"{type(e).__name__}: {e}", e) from e

    return final["outcome"]
