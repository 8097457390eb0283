"""
Run plan: which stages one turn executes, decided once up front.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from chorus.config import Config
from chorus.errors import ValidationError

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    EXPAND = "expand"
    SINGLE_CALL = "single_call"
    FAN_OUT = "fan_out"
    SYNTHESIZE = "synthesize"
    COLLECT = "collect"


@dataclass(frozen=True)
class RunOptions:
    """Everything one pipeline execution needs to know."""
    prompt: str
    perspectives: int = 0
    summarize: bool = False
    model: str = field(default_factory=lambda: Config.AGENT_MODEL)
    expand_model: str = field(default_factory=lambda: Config.EXPAND_MODEL)
    dry_run: bool = False
    serial_fan_out: bool = False
    use_tools: bool = False
    interrogate: bool = False
    prompt_name: Optional[str] = None

    def settings(self) -> dict:
        """Settings remembered on a new session (restored on resume)."""
        return {
            "perspectives": self.perspectives,
            "summarize": self.summarize,
            "model": self.model,
            "expandModel": self.expand_model,
            "serialFanOut": self.serial_fan_out,
            "useTools": self.use_tools,
            "promptName": self.prompt_name,
        }


@dataclass(frozen=True)
class RunPlan:
    stages: tuple[Stage, ...]
    mode: str  # "chorus" | "singleCall" | "interrogation"

    @property
    def dry_run(self) -> bool:
        return self.mode == "chorus" and Stage.FAN_OUT not in self.stages

    def __contains__(self, stage: Stage) -> bool:
        return stage in self.stages


def plan_run(options: RunOptions) -> RunPlan:
    """
    Decide the stage sequence for a turn.

        perspectives == 0          -> SINGLE_CALL, COLLECT
        perspectives > 0, dry run  -> EXPAND, COLLECT
        perspectives > 0           -> EXPAND, FAN_OUT, [SYNTHESIZE], COLLECT
    """
    if not options.prompt or not options.prompt.strip():
        raise ValidationError("A prompt is required")
    if options.perspectives < 0 or options.perspectives > Config.MAX_PERSPECTIVES:
        raise ValidationError(
            f"perspectives must be between 0 and {Config.MAX_PERSPECTIVES}, got {options.perspectives}"
        )

    if options.perspectives == 0:
        if options.summarize:
            logger.warning("summarize ignored: single-call mode has no perspectives to synthesize")
        if options.dry_run:
            logger.warning("dry run ignored: single-call mode has no expansion stage")
        mode = "interrogation" if options.interrogate else "singleCall"
        return RunPlan(stages=(Stage.SINGLE_CALL, Stage.COLLECT), mode=mode)

    if options.interrogate:
        logger.warning("interrogate ignored: only applies to single-call mode")

    if options.dry_run:
        return RunPlan(stages=(Stage.EXPAND, Stage.COLLECT), mode="chorus")

    stages = [Stage.EXPAND, Stage.FAN_OUT]
    if options.summarize:
        stages.append(Stage.SYNTHESIZE)
    stages.append(Stage.COLLECT)
    return RunPlan(stages=tuple(stages), mode="chorus")
