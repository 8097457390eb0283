"""
Persisted shapes: costs, instructions, perspective results, turns, sessions.

Field names are snake_case in Python and camelCase on disk / on the wire.
"""
from datetime import datetime, timezone
from typing import Any, Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


FAILURE_PREFIX = "[AGENT FAILED"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Cost(CamelModel):
    input_tokens: int = 0
    output_tokens: int = 0
    usd: float = 0.0

    def __add__(self, other: "Cost") -> "Cost":
        return Cost(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            usd=self.usd + other.usd,
        )

    @classmethod
    def total(cls, costs: Iterable[Optional["Cost"]]) -> "Cost":
        result = cls()
        for cost in costs:
            if cost is not None:
                result = result + cost
        return result


class Instruction(CamelModel):
    """One analytical angle produced by expansion."""
    id: int
    perspective: str
    instruction: str
    methodology: str = ""


class PerspectiveResult(CamelModel):
    """One fan-out participant's outcome."""
    id: int
    perspective: str
    instruction: str
    findings: str
    model: Optional[str] = None
    cost: Cost = Field(default_factory=Cost)
    turns_used: int = 0

    @property
    def failed(self) -> bool:
        return self.findings.startswith(FAILURE_PREFIX)


class Expansion(CamelModel):
    model: Optional[str] = None
    instructions: list[Instruction]
    cost: Cost = Field(default_factory=Cost)


class Synthesis(CamelModel):
    text: str
    model: Optional[str] = None
    cost: Cost = Field(default_factory=Cost)


TurnType = Literal["chorus", "singleCall", "interrogation"]


class Turn(CamelModel):
    """One complete pipeline execution."""
    turn_number: int = Field(ge=1)
    turn_type: TurnType = "chorus"
    prompt: str
    prompt_name: Optional[str] = None
    response: Optional[str] = None
    expansion: Optional[Expansion] = None
    perspectives: Optional[list[PerspectiveResult]] = None
    synthesis: Optional[Synthesis] = None
    total_cost: Cost = Field(default_factory=Cost)
    elapsed_seconds: float = 0.0
    timestamp: str = Field(default_factory=utc_now_iso)


class SessionError(CamelModel):
    """Terminal failure marker for one turn (or the whole session if no turn)."""
    message: str
    turn_number: Optional[int] = None
    failed_at: str = Field(default_factory=utc_now_iso)


class Session(CamelModel):
    session_name: str
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)
    status: Optional[Literal["error"]] = None
    error: Optional[SessionError] = None
    # Run settings of the turn that created the session (restored on resume)
    settings: dict[str, Any] = Field(default_factory=dict)
    turns: list[Turn] = Field(default_factory=list)
    total_cost: Cost = Field(default_factory=Cost)

    def recompute_total(self) -> None:
        self.total_cost = Cost.total(turn.total_cost for turn in self.turns)

    def error_for_turn(self, turn_number: int) -> Optional[SessionError]:
        """The error marker that applies to `turn_number`, if any."""
        if self.status != "error" or self.error is None:
            return None
        if self.error.turn_number is None or self.error.turn_number == turn_number:
            return self.error
        return None


class SessionSummary(CamelModel):
    """Lightweight listing entry."""
    name: str
    created_at: str
    updated_at: str
    turn_count: int
    prompt_preview: str
    size_bytes: int
    status: Optional[str] = None
