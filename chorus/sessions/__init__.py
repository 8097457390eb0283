from .schema import (
    Cost,
    Expansion,
    Instruction,
    PerspectiveResult,
    Session,
    SessionError,
    SessionSummary,
    Synthesis,
    Turn,
)
from .store import SessionStore, validate_session_name
from .context import build_session_context

__all__ = [
    "Cost",
    "Expansion",
    "Instruction",
    "PerspectiveResult",
    "Session",
    "SessionError",
    "SessionSummary",
    "Synthesis",
    "Turn",
    "SessionStore",
    "validate_session_name",
    "build_session_context",
]
