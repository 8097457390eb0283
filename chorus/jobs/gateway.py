"""
Job submission gateway.

Validates a study request, reserves the session in the in-flight registry,
queues the job, and answers immediately. The pipeline itself runs later in a
worker process; from here on the submitter only learns about the outcome by
polling.
"""
import logging
from typing import Callable, Optional
from urllib.parse import urlencode

from chorus.agents.pricing import validate_model
from chorus.agents.prompts import PROMPTS
from chorus.config import Config
from chorus.errors import CorruptSessionError, ValidationError
from chorus.orchestrator.plan import plan_run
from chorus.sessions.store import SessionStore, validate_session_name

from .locks import InFlightRegistry
from .queue import JobQueue
from .types import Job, JobRequest, SubmissionAck

logger = logging.getLogger(__name__)


def check_url(session_name: str, turn_number: int) -> str:
    return "/studies/status?" + urlencode({"sessionName": session_name, "turnNumber": turn_number})


def estimate_seconds(perspectives: int) -> int:
    return max(perspectives, 1) * Config.SECONDS_PER_PERSPECTIVE


def validate_request(request: JobRequest) -> None:
    """
    Reject anything that would fail before a model is ever called.

    Raises:
        ValidationError: bad prompt, perspective count, model, prompt name, or session name
    """
    options = request.to_options()
    plan_run(options)
    validate_model(options.model)
    if options.perspectives > 0:
        validate_model(options.expand_model)
    if request.prompt_name and request.prompt_name not in PROMPTS:
        raise ValidationError(
            f'Unknown prompt "{request.prompt_name}". Available: {", ".join(PROMPTS)}'
        )
    if request.session_name is not None:
        validate_session_name(request.session_name)


class JobGateway:
    def __init__(
        self,
        store: SessionStore,
        registry: InFlightRegistry,
        queue: JobQueue,
        notify: Optional[Callable[[], None]] = None,
    ):
        self.store = store
        self.registry = registry
        self.queue = queue
        self.notify = notify

    def _next_turn_number(self, session_name: str) -> int:
        """Next turn number; also clears an error marker left by a failed attempt."""
        try:
            session = self.store.read(session_name)
        except CorruptSessionError:
            logger.warning("Session %s is unreadable; submitting as turn 1", session_name)
            return 1
        if session is None:
            return 1
        if session.status == "error":
            self.store.clear_error(session_name)
        return len(session.turns) + 1

    def submit(self, request: JobRequest) -> SubmissionAck:
        """
        Accept a study for background execution.

        Raises:
            ValidationError: rejected input; nothing is queued
            DuplicateInFlightError: the session already has a turn queued or running
        """
        validate_request(request)

        session_name = request.session_name or self.store.generate_name()
        job = Job(
            request=request.model_copy(update={"session_name": session_name}),
            session_name=session_name,
            turn_number=1,
        )

        # Reserve first so the turn number cannot change underneath us
        self.registry.acquire(session_name, holder=job.job_id)
        try:
            job.turn_number = self._next_turn_number(session_name)
            self.queue.enqueue(job)
        except Exception:
            self.registry.release(session_name, job.job_id)
            raise

        if self.notify:
            self.notify()

        logger.info(
            "Accepted study for %s turn %d (%d perspectives)",
            session_name, job.turn_number, request.perspectives,
        )
        return SubmissionAck(
            session_name=session_name,
            turn_number=job.turn_number,
            check_url=check_url(session_name, job.turn_number),
            estimated_seconds=estimate_seconds(request.perspectives),
            poll_advice=Config.POLL_ADVICE,
        )
