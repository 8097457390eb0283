"""
Worker pool: claims queued jobs and runs each one in its own OS process.

The job process is detached from the worker (new session, own log file), so
a slow or crashing pipeline never takes the gateway down with it. While the
process runs the worker keeps the session lock alive; when it exits the
worker makes sure the turn ended in exactly one terminal state (appended
turn or error marker) before releasing the lock.
"""
import argparse
import logging
import os
import subprocess
import sys
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from chorus.config import Config
from chorus.errors import CorruptSessionError, DuplicateInFlightError
from chorus.fsutil import tail_text
from chorus.logging_config import setup_logging

from .queue import ClaimedJob
from .services import Services

logger = logging.getLogger(__name__)

CRASH_TAIL_CHARS = 2000

CommandFactory = Callable[[Path, Path], list[str]]


def default_command(job_file: Path, data_dir: Path) -> list[str]:
    return [
        sys.executable, "-m", "chorus.jobs.run",
        "--job-file", str(job_file),
        "--data-dir", str(data_dir),
    ]


class WorkerPool:
    def __init__(
        self,
        services: Services,
        size: Optional[int] = None,
        command_factory: CommandFactory = default_command,
        poll_interval: float = 1.0,
        heartbeat_interval: Optional[float] = None,
    ):
        self.services = services
        self.size = size if size is not None else Config.WORKERS
        self.command_factory = command_factory
        self.poll_interval = poll_interval
        self.heartbeat_interval = heartbeat_interval or Config.HEARTBEAT_INTERVAL
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._recover_lock = threading.Lock()
        self._last_recover = time.monotonic()

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        self.recover()
        self._stop.clear()
        for i in range(self.size):
            thread = threading.Thread(target=self._loop, name=f"chorus-worker-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)
        logger.info("Started %d worker(s) on %s", self.size, self.services.data_dir)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop claiming new jobs. Running job processes are left to finish on their own."""
        self._stop.set()
        self._wake.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []

    def notify(self) -> None:
        """Wake idle workers (called by the gateway after enqueueing)."""
        self._wake.set()

    def _maybe_recover(self) -> None:
        # Orphans only become recoverable once their lock expires
        with self._recover_lock:
            if time.monotonic() - self._last_recover < self.services.registry.ttl:
                return
            self._last_recover = time.monotonic()
        self.recover()

    def _loop(self) -> None:
        queue = self.services.queue
        while not self._stop.is_set():
            claimed = queue.claim()
            if claimed is None:
                self._maybe_recover()
                self._wake.wait(self.poll_interval)
                self._wake.clear()
                continue
            try:
                self.process(claimed)
            except Exception:
                logger.exception("Worker failed while handling job %s", claimed.job.job_id)

    # ─────────────────────────────────────────────────────────────
    # One job
    # ─────────────────────────────────────────────────────────────

    def process(self, claimed: ClaimedJob) -> Optional[int]:
        """Run a claimed job to completion. Returns the exit code (None if skipped)."""
        job = claimed.job
        registry = self.services.registry

        try:
            registry.mark_running(job.session_name, job.job_id)
        except DuplicateInFlightError:
            logger.warning(
                "Skipping job %s: session %s is held by another job", job.job_id, job.session_name
            )
            self.services.queue.complete(claimed)
            return None

        logs_dir = self.services.logs_dir
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_path = logs_dir / f"{job.job_id}.log"

        code = None
        try:
            code = self._run_process(claimed, log_path)
            self._finish(claimed, code, log_path)
        except OSError as e:
            logger.error("Could not launch job %s: %s", job.job_id, e)
            self.services.store.record_error(
                job.session_name, f"failed to start job process: {e}", job.turn_number
            )
        finally:
            self.services.queue.complete(claimed)
            registry.release(job.session_name, job.job_id)
        return code

    def _run_process(self, claimed: ClaimedJob, log_path: Path) -> int:
        job = claimed.job
        command = self.command_factory(claimed.path, self.services.data_dir)
        env = dict(os.environ, CHORUS_DATA_DIR=str(self.services.data_dir))

        with open(log_path, "ab") as log_file:
            proc = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=log_file,
                env=env,
                start_new_session=True,
            )
            logger.info("Job %s running as pid %d", job.job_id, proc.pid)
            self.services.registry.mark_running(job.session_name, job.job_id, pid=proc.pid)

            while True:
                try:
                    return proc.wait(timeout=self.heartbeat_interval)
                except subprocess.TimeoutExpired:
                    self.services.registry.heartbeat(job.session_name, job.job_id)

    def _finish(self, claimed: ClaimedJob, code: int, log_path: Path) -> None:
        """Guarantee a terminal record for the turn."""
        job = claimed.job
        store = self.services.store

        try:
            session = store.read(job.session_name)
        except CorruptSessionError:
            logger.error("Job %s exited %d; session %s is corrupt", job.job_id, code, job.session_name)
            return

        turn_written = session is not None and len(session.turns) >= job.turn_number
        error_recorded = session is not None and session.error_for_turn(job.turn_number) is not None
        if turn_written or error_recorded:
            logger.info("Job %s finished with exit code %d", job.job_id, code)
            return

        if code == 0:
            message = f"exited with code 0 but turn {job.turn_number} was not written"
        else:
            message = f"exited with code {code}: {tail_text(log_path, CRASH_TAIL_CHARS).strip()}"
        logger.error("Job %s (%s turn %d) %s", job.job_id, job.session_name, job.turn_number, message)
        store.record_error(job.session_name, message, job.turn_number)

    # ─────────────────────────────────────────────────────────────
    # Recovery
    # ─────────────────────────────────────────────────────────────

    def recover(self) -> int:
        """
        Return orphaned claimed jobs to the queue.

        A claimed job whose lock has expired, and whose job process is gone,
        belonged to a worker that died.
        If its turn already reached a terminal state the job is just dropped;
        otherwise it is requeued under a fresh queued lock. Returns the number
        of requeued jobs.
        """
        services = self.services
        requeued = 0
        for claimed in list(services.queue.claimed()):
            job = claimed.job
            lock = services.registry.get(job.session_name)
            if lock is not None and lock.holder == job.job_id and services.registry.is_live(lock):
                continue

            try:
                session = services.store.read(job.session_name)
            except CorruptSessionError:
                session = None
            finished = session is not None and (
                len(session.turns) >= job.turn_number
                or session.error_for_turn(job.turn_number) is not None
            )
            if finished:
                services.queue.complete(claimed)
                services.registry.release(job.session_name, job.job_id)
                continue

            try:
                services.registry.acquire(job.session_name, job.job_id, state="queued")
            except DuplicateInFlightError:
                logger.error(
                    "Dropping orphaned job %s: session %s was taken by another job",
                    job.job_id, job.session_name,
                )
                services.queue.complete(claimed)
                continue
            services.queue.requeue(claimed)
            requeued += 1

        if requeued:
            logger.warning("Recovered %d orphaned job(s)", requeued)
        return requeued


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run a standalone chorus worker pool")
    parser.add_argument("--data-dir", type=Path, default=None)
    parser.add_argument("--workers", type=int, default=None)
    args = parser.parse_args(argv)

    setup_logging(Config.DEBUG)
    services = Services.from_config(args.data_dir)
    pool = WorkerPool(services, size=args.workers)
    pool.start()
    print(f"🧵 Worker pool running ({pool.size} workers, data dir {services.data_dir}). Ctrl-C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\n👋 Stopping workers...")
        pool.stop()


if __name__ == "__main__":
    main()
