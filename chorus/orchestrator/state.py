"""State passed between the stages of one turn."""
from typing import Optional
from typing_extensions import TypedDict

from chorus.sessions.schema import Cost, Expansion, PerspectiveResult, Synthesis

from .collect import TurnOutcome
from .plan import RunOptions, RunPlan


class TurnState(TypedDict, total=False):
    options: RunOptions
    plan: RunPlan
    session_context: Optional[str]
    started_at: float                       # time.monotonic() at graph entry

    expansion: Expansion                    # EXPAND
    results: list[PerspectiveResult]        # FAN_OUT, in instruction order
    synthesis: Synthesis                    # SYNTHESIZE

    response: str                           # SINGLE_CALL
    response_cost: Cost
    response_model: str

    outcome: TurnOutcome                    # COLLECT
