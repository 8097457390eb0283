"""
Job request, queued job, and the shapes returned to submitters and pollers.
"""
import uuid
from typing import Any, Literal, Optional

from pydantic import Field

from chorus.orchestrator.plan import RunOptions
from chorus.sessions.schema import CamelModel, utc_now_iso


class JobRequest(CamelModel):
    """A study submission. Unset models fall back to the configured defaults."""
    prompt: str = Field(min_length=1)
    perspectives: int = Field(default=0, ge=0)
    summarize: bool = False
    model: Optional[str] = None
    expand_model: Optional[str] = None
    dry_run: bool = False
    serial_fan_out: bool = False
    session_name: Optional[str] = None
    use_tools: bool = False
    interrogate: bool = False
    prompt_name: Optional[str] = None

    def to_options(self) -> RunOptions:
        kwargs: dict[str, Any] = dict(
            prompt=self.prompt,
            perspectives=self.perspectives,
            summarize=self.summarize,
            dry_run=self.dry_run,
            serial_fan_out=self.serial_fan_out,
            use_tools=self.use_tools,
            interrogate=self.interrogate,
            prompt_name=self.prompt_name,
        )
        if self.model:
            kwargs["model"] = self.model
        if self.expand_model:
            kwargs["expand_model"] = self.expand_model
        return RunOptions(**kwargs)


class Job(CamelModel):
    """A queued unit of work: one turn of one session."""
    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    request: JobRequest
    session_name: str
    turn_number: int
    submitted_at: str = Field(default_factory=utc_now_iso)


class SubmissionAck(CamelModel):
    status: Literal["accepted"] = "accepted"
    session_name: str
    turn_number: int
    check_url: str
    estimated_seconds: int
    poll_advice: str


StudyStatus = Literal["running", "complete", "error"]


class StatusView(CamelModel):
    status: StudyStatus
    session_name: str
    turn_number: Optional[int] = None
    expected_turn: Optional[int] = None
    completed_turns: Optional[int] = None
    result: Optional[dict[str, Any]] = None
    message: Optional[str] = None
