"""
Background execution: submission, in-flight locking, durable queue, workers, status.
"""
from .gateway import JobGateway
from .locks import InFlightRegistry, LockRecord
from .queue import ClaimedJob, JobQueue
from .services import Services
from .status import get_study_status
from .types import Job, JobRequest, StatusView, SubmissionAck
from .worker import WorkerPool

__all__ = [
    "JobGateway",
    "InFlightRegistry",
    "LockRecord",
    "ClaimedJob",
    "JobQueue",
    "Services",
    "get_study_status",
    "Job",
    "JobRequest",
    "StatusView",
    "SubmissionAck",
    "WorkerPool",
]
