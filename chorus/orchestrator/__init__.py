"""
Turn pipeline: plan, expand, fan out, synthesize, collect.
"""
from .collect import TurnOutcome, build_turn, format_json, format_text
from .graph import build_turn_graph, run_turn
from .plan import RunOptions, RunPlan, Stage, plan_run

__all__ = [
    "TurnOutcome",
    "build_turn",
    "format_json",
    "format_text",
    "build_turn_graph",
    "run_turn",
    "RunOptions",
    "RunPlan",
    "Stage",
    "plan_run",
]
