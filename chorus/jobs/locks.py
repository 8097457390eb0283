"""
In-flight registry: at most one queued or running turn per session.

Each lock is a small JSON file under `<data>/locks/`. Creation is exclusive
(`O_EXCL`), so two submitters can never both hold a session. Locks carry an
expiry: a queued lock lives for QUEUED_LOCK_TTL, a running lock for LOCK_TTL
past its last heartbeat. An expired lock belongs to a worker that died and is
taken over by the next acquirer, unless the job process it names is still
alive. Because the registry is on disk, it survives gateway and worker
restarts.
"""
import json
import logging
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Literal, Optional

from pydantic import ValidationError as PydanticValidationError

from chorus.config import Config
from chorus.errors import DuplicateInFlightError
from chorus.fsutil import write_atomic
from chorus.sessions.schema import CamelModel
from chorus.sessions.store import validate_session_name

logger = logging.getLogger(__name__)

# A lock file that cannot be parsed is treated as live for this long
# (its writer may still be mid-write), then as stale.
UNREADABLE_GRACE_SECONDS = 5.0


def pid_alive(pid: Optional[int]) -> bool:
    """True if a local process with this pid exists."""
    if not pid:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class LockRecord(CamelModel):
    session_name: str
    holder: str
    state: Literal["queued", "running"] = "queued"
    pid: Optional[int] = None
    acquired_at: float
    heartbeat_at: float
    expires_at: float

    def expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at


class InFlightRegistry:
    def __init__(self, root: Path, ttl: float = None, queued_ttl: float = None):
        self.root = Path(root)
        self.ttl = ttl if ttl is not None else Config.LOCK_TTL
        self.queued_ttl = queued_ttl if queued_ttl is not None else Config.QUEUED_LOCK_TTL
        self._lock = threading.Lock()

    def path_for(self, session_name: str) -> Path:
        return self.root / f"{validate_session_name(session_name)}.lock.json"

    def _ttl_for(self, state: str) -> float:
        return self.ttl if state == "running" else self.queued_ttl

    # ─────────────────────────────────────────────────────────────
    # Reading
    # ─────────────────────────────────────────────────────────────

    def _read(self, path: Path) -> Optional[LockRecord]:
        """The lock at `path`, or None if absent or unreadable and past its grace period."""
        try:
            raw = path.read_text(encoding="utf-8")
            return LockRecord.model_validate(json.loads(raw))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, PydanticValidationError):
            try:
                age = time.time() - path.stat().st_mtime
            except FileNotFoundError:
                return None
            if age < UNREADABLE_GRACE_SECONDS:
                # Treat as live: a placeholder that expires at the end of the grace period
                now = time.time()
                return LockRecord(
                    session_name=path.name.removesuffix(".lock.json"),
                    holder="<unreadable>",
                    acquired_at=now,
                    heartbeat_at=now,
                    expires_at=path.stat().st_mtime + UNREADABLE_GRACE_SECONDS,
                )
            logger.warning("Unreadable lock file %s; treating it as stale", path.name)
            return None

    def get(self, session_name: str) -> Optional[LockRecord]:
        return self._read(self.path_for(session_name))

    def is_live(self, record: Optional[LockRecord]) -> bool:
        """A lock is live until it expires and its job process is gone."""
        if record is None:
            return False
        return not record.expired() or pid_alive(record.pid)

    def is_in_flight(self, session_name: str) -> bool:
        return self.is_live(self.get(session_name))

    def list_locks(self) -> list[LockRecord]:
        if not self.root.exists():
            return []
        records = []
        for path in sorted(self.root.glob("*.lock.json")):
            record = self._read(path)
            if record is not None:
                records.append(record)
        return records

    # ─────────────────────────────────────────────────────────────
    # Writing
    # ─────────────────────────────────────────────────────────────

    def _record(self, session_name: str, holder: str, state: str, pid: Optional[int] = None,
                acquired_at: Optional[float] = None) -> LockRecord:
        now = time.time()
        return LockRecord(
            session_name=session_name,
            holder=holder,
            state=state,
            pid=pid,
            acquired_at=acquired_at if acquired_at is not None else now,
            heartbeat_at=now,
            expires_at=now + self._ttl_for(state),
        )

    def acquire(self, session_name: str, holder: str, state: str = "queued") -> LockRecord:
        """
        Claim the session for `holder`.

        Raises:
            DuplicateInFlightError: another holder has a live lock
        """
        path = self.path_for(session_name)
        self.root.mkdir(parents=True, exist_ok=True)
        record = self._record(session_name, holder, state)
        payload = json.dumps(record.to_dict(), indent=2)

        with self._lock:
            for _ in range(2):
                try:
                    fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
                except FileExistsError:
                    existing = self._read(path)
                    if self.is_live(existing):
                        if existing.holder == holder:
                            return existing
                        raise DuplicateInFlightError(session_name)
                    logger.warning(
                        "Replacing expired lock for %s (holder=%s)",
                        session_name, existing.holder if existing else "<unreadable>",
                    )
                    path.unlink(missing_ok=True)
                    continue

                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                logger.debug("Acquired lock %s for %s (%s)", session_name, holder, state)
                return record

        raise DuplicateInFlightError(session_name)

    def _update(self, session_name: str, holder: str, state: Optional[str] = None,
                pid: Optional[int] = None) -> bool:
        path = self.path_for(session_name)
        with self._lock:
            existing = self._read(path)
            if existing is None or existing.holder != holder:
                return False
            record = self._record(
                session_name,
                holder,
                state or existing.state,
                pid=pid if pid is not None else existing.pid,
                acquired_at=existing.acquired_at,
            )
            write_atomic(path, json.dumps(record.to_dict(), indent=2))
            return True

    def heartbeat(self, session_name: str, holder: str) -> bool:
        """Extend a held lock. False if `holder` no longer holds it."""
        return self._update(session_name, holder)

    def mark_running(self, session_name: str, holder: str, pid: Optional[int] = None) -> LockRecord:
        """
        Switch a queued lock to running, taking it over if it lapsed.

        Raises:
            DuplicateInFlightError: the session is now held by someone else
        """
        if self._update(session_name, holder, state="running", pid=pid):
            return self.get(session_name)
        logger.warning("Lock for %s lapsed before the job started; re-acquiring", session_name)
        return self.acquire(session_name, holder, state="running")

    @contextmanager
    def hold(self, session_name: str, holder: str, interval: Optional[float] = None):
        """
        Hold a running lock for the duration of a `with` block, heartbeating
        from a background thread.

        Raises:
            DuplicateInFlightError: the session is already in flight
        """
        record = self.acquire(session_name, holder, state="running")
        try:
            with self.keep_alive(session_name, holder, interval):
                yield record
        finally:
            self.release(session_name, holder)

    @contextmanager
    def keep_alive(self, session_name: str, holder: str, interval: Optional[float] = None):
        """
        Heartbeat a lock someone else acquired (and will release) for the
        duration of a `with` block. Used by job processes, so their lock
        outlives the worker that launched them.
        """
        interval = interval or Config.HEARTBEAT_INTERVAL
        stop = threading.Event()

        def beat():
            while not stop.wait(interval):
                if not self.heartbeat(session_name, holder):
                    logger.warning("Lost lock for %s (holder=%s)", session_name, holder)

        thread = threading.Thread(target=beat, name=f"lock-{session_name}", daemon=True)
        thread.start()
        try:
            yield
        finally:
            stop.set()
            thread.join()

    def release(self, session_name: str, holder: Optional[str] = None) -> bool:
        """Drop the lock. With `holder`, only if it still belongs to that holder."""
        path = self.path_for(session_name)
        with self._lock:
            existing = self._read(path)
            if existing is None:
                return False
            if holder is not None and existing.holder != holder:
                logger.warning(
                    "Not releasing %s: held by %s, not %s", session_name, existing.holder, holder
                )
                return False
            path.unlink(missing_ok=True)
            logger.debug("Released lock %s", session_name)
            return True
