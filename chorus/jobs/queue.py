"""
Durable job queue: one JSON file per job.

    <data>/queue/pending/   submitted, not yet picked up
    <data>/queue/claimed/   picked up by a worker, not yet finished
    <data>/queue/failed/    unreadable job files, kept for inspection

Claiming is an atomic rename from pending/ to claimed/, so a job is handed
to exactly one worker even with several worker processes.
"""
import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from pydantic import ValidationError as PydanticValidationError

from chorus.fsutil import write_atomic

from .types import Job

logger = logging.getLogger(__name__)


@dataclass
class ClaimedJob:
    job: Job
    path: Path


class JobQueue:
    def __init__(self, root: Path):
        self.root = Path(root)
        self.pending_dir = self.root / "pending"
        self.claimed_dir = self.root / "claimed"
        self.failed_dir = self.root / "failed"

    def ensure_dirs(self) -> None:
        for directory in (self.pending_dir, self.claimed_dir, self.failed_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def enqueue(self, job: Job) -> Path:
        """Write the job to pending/. File names sort in submission order."""
        self.ensure_dirs()
        path = self.pending_dir / f"{time.time_ns():020d}_{job.job_id}.json"
        write_atomic(path, json.dumps(job.to_dict(), indent=2))
        logger.info("Queued job %s (session=%s, turn=%d)", job.job_id, job.session_name, job.turn_number)
        return path

    def pending_count(self) -> int:
        if not self.pending_dir.exists():
            return 0
        return sum(1 for _ in self.pending_dir.glob("*.json"))

    def _load(self, path: Path) -> Optional[Job]:
        try:
            return Job.model_validate_json(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.error("Unreadable job file %s (%s); moving to failed/", path.name, e)
            self.failed_dir.mkdir(parents=True, exist_ok=True)
            os.replace(path, self.failed_dir / path.name)
            return None

    def claim(self) -> Optional[ClaimedJob]:
        """Take the oldest pending job, or None when the queue is empty."""
        if not self.pending_dir.exists():
            return None
        self.ensure_dirs()

        for path in sorted(self.pending_dir.glob("*.json")):
            target = self.claimed_dir / path.name
            try:
                os.rename(path, target)
            except FileNotFoundError:
                continue  # another worker got it first
            job = self._load(target)
            if job is None:
                continue
            logger.info("Claimed job %s (session=%s)", job.job_id, job.session_name)
            return ClaimedJob(job=job, path=target)
        return None

    def claimed(self) -> Iterator[ClaimedJob]:
        """Jobs currently marked claimed (used for crash recovery)."""
        if not self.claimed_dir.exists():
            return
        for path in sorted(self.claimed_dir.glob("*.json")):
            job = self._load(path)
            if job is not None:
                yield ClaimedJob(job=job, path=path)

    def requeue(self, claimed: ClaimedJob) -> None:
        """Put a claimed job back at its original position in pending/."""
        self.ensure_dirs()
        os.replace(claimed.path, self.pending_dir / claimed.path.name)
        logger.info("Requeued job %s", claimed.job.job_id)

    def complete(self, claimed: ClaimedJob) -> None:
        claimed.path.unlink(missing_ok=True)
