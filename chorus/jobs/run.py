"""
Job process entry point: run one queued turn and persist it.

Launched by the worker pool as its own OS process:

    python -m chorus.jobs.run --job-file <claimed job> --data-dir <data dir>

Exit codes: 0 the turn was appended; 1 the turn failed and an error marker
was recorded, or nothing was written (the session file is corrupt, or the
turn already exists). Anything else is a crash, which the worker translates
into an error marker.

While it runs, the process heartbeats its own session lock, so the turn stays
in flight even if the worker that launched it goes away.
"""
import argparse
import logging
import sys
from pathlib import Path

from chorus.config import Config
from chorus.errors import CorruptSessionError, StageError, TurnConflictError
from chorus.logging_config import setup_logging
from chorus.orchestrator import build_turn, run_turn
from chorus.sessions.context import build_session_context
from chorus.sessions.store import SessionStore

from .services import Services
from .types import Job

logger = logging.getLogger(__name__)


def run_job(job: Job, store: SessionStore) -> int:
    """Execute one job. Returns the process exit code."""
    options = job.request.to_options()

    try:
        session = store.read(job.session_name)
    except CorruptSessionError as e:
        logger.error("Cannot continue session %s: %s", job.session_name, e)
        return 1

    if session is not None and len(session.turns) >= job.turn_number:
        logger.error(
            "Session %s already has turn %d; not running it again", job.session_name, job.turn_number
        )
        return 1

    context = build_session_context(session) if session and session.turns else None
    logger.info(
        "Running %s turn %d (%d perspectives)%s",
        job.session_name, job.turn_number, options.perspectives,
        " with session context" if context else "",
    )

    try:
        outcome = run_turn(options, context)
    except StageError as e:
        logger.error("Turn %d of %s failed: %s", job.turn_number, job.session_name, e)
        store.record_error(job.session_name, str(e), job.turn_number)
        return 1

    turn = build_turn(outcome, job.turn_number)
    try:
        session = store.append_turn(job.session_name, turn, settings=options.settings())
    except TurnConflictError as e:
        logger.error("Discarding turn %d of %s: %s", job.turn_number, job.session_name, e)
        return 1
    logger.info(
        "Saved %s turn %d ($%.4f, %.1fs)",
        session.session_name, len(session.turns), turn.total_cost.usd, turn.elapsed_seconds,
    )
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run one queued chorus job")
    parser.add_argument("--job-file", required=True, type=Path)
    parser.add_argument("--data-dir", type=Path, default=None)
    args = parser.parse_args(argv)

    setup_logging(Config.DEBUG)
    data_dir = args.data_dir or Config.DATA_DIR

    job = Job.model_validate_json(args.job_file.read_text(encoding="utf-8"))
    services = Services(data_dir)
    with services.registry.keep_alive(job.session_name, job.job_id):
        code = run_job(job, services.store)
    sys.exit(code)


if __name__ == "__main__":
    main()
