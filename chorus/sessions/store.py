"""
Filesystem session store. One JSON file per session, named by session name.

The file is the entirety of durable session state: turn history, aggregate
cost and, when a turn failed, the error marker the status poller reports.
Writes go through a temp file and `os.replace`, so readers only ever see a
complete record.
"""
import json
import logging
import random
import re
import time
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from chorus.errors import (
    CorruptSessionError,
    SessionExistsError,
    SessionNotFoundError,
    TurnConflictError,
    ValidationError,
)
from chorus.fsutil import link_exclusive, write_atomic
from .schema import Session, SessionError, SessionSummary, Turn, utc_now_iso

logger = logging.getLogger(__name__)


ADJECTIVES = [
    "amber", "azure", "bright", "calm", "coral", "crystal", "dawn", "deep",
    "ember", "fern", "frost", "gentle", "golden", "grand", "green", "harbor",
    "iron", "ivory", "jade", "keen", "lush", "maple", "misty", "noble",
    "opal", "pale", "pearl", "quiet", "rapid", "rose", "ruby", "sage",
    "scarlet", "shadow", "silver", "slate", "soft", "stark", "steel", "stone",
    "swift", "tidal", "twilight", "vast", "velvet", "violet", "warm", "wild",
    "winter", "woven",
]

NOUNS = [
    "arch", "basin", "beacon", "brook", "canyon", "cedar", "cliff", "crest",
    "delta", "drift", "dune", "falcon", "field", "flame", "forge", "gate",
    "glade", "grove", "harbor", "heath", "hollow", "isle", "lake", "ledge",
    "marsh", "meadow", "mesa", "mist", "moss", "oak", "pass", "peak",
    "pine", "plain", "pond", "prairie", "range", "reef", "ridge", "river",
    "shore", "spring", "stone", "summit", "tide", "tower", "trail", "vale",
    "valley", "vista",
]

NAME_ATTEMPTS = 100
PREVIEW_LENGTH = 60

SESSION_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,127}$")


def validate_session_name(name: Any) -> str:
    """Session names double as file names, so keep them to a safe alphabet."""
    if not isinstance(name, str) or not SESSION_NAME_RE.match(name):
        raise ValidationError(
            f"Invalid session name {name!r}: use letters, digits, '_' or '-' (max 128)"
        )
    return name


class SessionStore:
    def __init__(self, root: Path):
        self.root = Path(root)

    # ─────────────────────────────────────────────────────────────
    # Paths
    # ─────────────────────────────────────────────────────────────

    def ensure_dir(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        return self.root / f"{validate_session_name(name)}.json"

    def exists(self, name: str) -> bool:
        return self.path_for(name).exists()

    def existing_names(self) -> set[str]:
        if not self.root.exists():
            return set()
        return {p.stem for p in self.root.glob("*.json")}

    # ─────────────────────────────────────────────────────────────
    # Create / read / write
    # ─────────────────────────────────────────────────────────────

    def generate_name(self, rng: random.Random = None) -> str:
        """Pick an unused adjective_noun name, falling back to a timestamp suffix."""
        rng = rng or random
        existing = self.existing_names()
        for _ in range(NAME_ATTEMPTS):
            name = f"{rng.choice(ADJECTIVES)}_{rng.choice(NOUNS)}"
            if name not in existing:
                return name
        return f"{rng.choice(ADJECTIVES)}_{rng.choice(NOUNS)}_{int(time.time() * 1000)}"

    def create(self, name: Optional[str] = None, settings: Optional[dict] = None) -> Session:
        """Build a new, empty session. Nothing is written until a turn is appended."""
        if name is None:
            name = self.generate_name()
        elif self.exists(name):
            raise SessionExistsError(name)
        return Session(session_name=name, settings=settings or {})

    def read(self, name: str) -> Optional[Session]:
        """Return the session, or None when no file exists."""
        path = self.path_for(name)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return Session.model_validate(json.loads(raw))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            raise CorruptSessionError(name, type(e).__name__) from e

    def load(self, name: str) -> Session:
        session = self.read(name)
        if session is None:
            raise SessionNotFoundError(name)
        return session

    def save(self, session: Session) -> Path:
        self.ensure_dir()
        session.updated_at = utc_now_iso()
        path = self.path_for(session.session_name)
        write_atomic(path, _dump(session))
        return path

    def append_turn(self, name: str, turn: Turn, settings: Optional[dict] = None) -> Session:
        """
        Append a completed turn, creating the session if needed.

        A successful append clears any earlier error marker.

        Raises:
            TurnConflictError: the turn is not numbered `len(turns) + 1`
        """
        session = self.read(name)
        if session is None:
            session = self.create(name, settings)

        expected = len(session.turns) + 1
        if turn.turn_number != expected:
            raise TurnConflictError(name, expected, turn.turn_number)

        session.turns.append(turn)
        session.recompute_total()
        session.status = None
        session.error = None
        self.save(session)
        return session

    def record_error(self, name: str, message: str, turn_number: Optional[int] = None) -> Optional[Session]:
        """
        Persist a terminal error marker for a turn (or the whole session).

        A corrupt file is left untouched: it already reads as an error, and
        overwriting it would destroy the only copy of its history.
        """
        try:
            session = self.read(name)
        except CorruptSessionError:
            logger.error("Session %s is corrupt; not recording error: %s", name, message)
            return None
        if session is None:
            session = Session(session_name=name)

        session.status = "error"
        session.error = SessionError(message=message, turn_number=turn_number)
        self.save(session)
        return session

    def clear_error(self, name: str) -> bool:
        """Drop a stale error marker before the failed turn is retried."""
        session = self.read(name)
        if session is None or session.status != "error":
            return False
        session.status = None
        session.error = None
        self.save(session)
        return True

    # ─────────────────────────────────────────────────────────────
    # Listing / rename / delete
    # ─────────────────────────────────────────────────────────────

    def list_sessions(self) -> list[SessionSummary]:
        """All readable sessions, most recently updated first."""
        if not self.root.exists():
            return []

        summaries = []
        for path in self.root.glob("*.json"):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                session = Session.model_validate(data)
            except (OSError, json.JSONDecodeError, PydanticValidationError):
                logger.debug("Skipping unreadable session file %s", path.name)
                continue

            first_prompt = session.turns[0].prompt if session.turns else "(no prompt)"
            if len(first_prompt) > PREVIEW_LENGTH:
                first_prompt = first_prompt[:PREVIEW_LENGTH - 3] + "..."

            summaries.append(SessionSummary(
                name=session.session_name,
                created_at=session.created_at,
                updated_at=session.updated_at,
                turn_count=len(session.turns),
                prompt_preview=first_prompt,
                size_bytes=path.stat().st_size,
                status=session.status,
            ))

        summaries.sort(key=lambda s: s.updated_at, reverse=True)
        return summaries

    def rename(self, old_name: str, new_name: str) -> Session:
        """
        Rename a session: write it under the new name, then delete the old file.

        The new file is linked into place only if the name is free, so an
        existing session is never overwritten.
        """
        old_path = self.path_for(old_name)
        new_path = self.path_for(new_name)

        session = self.load(old_name)
        if new_path.exists():
            raise SessionExistsError(new_name)

        session.session_name = new_name
        session.updated_at = utc_now_iso()

        if not link_exclusive(_dump(session), new_path):
            raise SessionExistsError(new_name)

        old_path.unlink()
        return session

    def delete(self, name: str) -> None:
        path = self.path_for(name)
        if not path.exists():
            raise SessionNotFoundError(name)
        path.unlink()


# ─────────────────────────────────────────────────────────────
# File helpers
# ─────────────────────────────────────────────────────────────

def _dump(session: Session) -> str:
    return json.dumps(session.to_dict(), indent=2, ensure_ascii=False)
