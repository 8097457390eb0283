"""
Error taxonomy.

Errors raised before a job is queued reach the submitter directly. Anything
that goes wrong afterwards is only visible through the status poller.
"""
from typing import Optional


class ChorusError(Exception):
    """Base class for all chorus errors."""


class ValidationError(ChorusError):
    """Missing or malformed job input."""


class UnknownModelError(ValidationError):
    """Model identifier with no known price."""


class DuplicateInFlightError(ChorusError):
    """The session already has a turn queued or running."""

    def __init__(self, session_name: str):
        super().__init__(f'Session "{session_name}" already has a turn in progress')
        self.session_name = session_name


class StageError(ChorusError):
    """A pipeline stage failed; the whole turn is abandoned."""

    def __init__(self, stage: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"[{stage}] {message}")
        self.stage = stage
        self.message = message
        self.cause = cause


class SessionNotFoundError(ChorusError):
    def __init__(self, session_name: str):
        super().__init__(f'Session not found: "{session_name}"')
        self.session_name = session_name


class SessionExistsError(ChorusError):
    def __init__(self, session_name: str):
        super().__init__(f'A session named "{session_name}" already exists')
        self.session_name = session_name


class CorruptSessionError(ChorusError):
    """A session file exists but cannot be parsed."""

    def __init__(self, session_name: str, detail: str = ""):
        message = f'Corrupt session file: "{session_name}"'
        if detail:
            message += f" ({detail})"
        super().__init__(message)
        self.session_name = session_name


class TurnConflictError(ChorusError):
    """A turn was written out of sequence; the session already moved on."""

    def __init__(self, session_name: str, expected: int, got: int):
        super().__init__(f'Session "{session_name}" expected turn {expected}, got {got}')
        self.session_name = session_name
        self.expected = expected
        self.got = got
