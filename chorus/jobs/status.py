"""
Status poller. A pure function of what is on disk: no process inspection,
no writes, safe to call at any frequency.
"""
from chorus.errors import CorruptSessionError, ValidationError
from chorus.sessions.store import SessionStore

from .types import StatusView


def get_study_status(store: SessionStore, session_name: str, turn_number: int) -> StatusView:
    """
    Derive the status of one turn.

        no file                  -> running, completedTurns = 0
        unparseable file         -> error, "corrupt session file"
        error marker for turn    -> error, stored message
        turns >= turn_number     -> complete, with that turn
        otherwise                -> running, completedTurns = len(turns)
    """
    if turn_number < 1:
        raise ValidationError(f"turnNumber must be >= 1, got {turn_number}")
    base = dict(session_name=session_name, turn_number=turn_number)

    try:
        session = store.read(session_name)
    except CorruptSessionError:
        return StatusView(status="error", message="corrupt session file", **base)

    if session is None:
        return StatusView(status="running", completed_turns=0, **base)

    error = session.error_for_turn(turn_number)
    if error is not None:
        return StatusView(status="error", message=error.message, **base)

    completed = len(session.turns)
    if completed >= turn_number:
        turn = session.turns[turn_number - 1]
        return StatusView(
            status="complete",
            completed_turns=completed,
            result=turn.to_dict(),
            **base,
        )

    return StatusView(status="running", completed_turns=completed, expected_turn=turn_number, **base)
