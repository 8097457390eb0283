"""
Wiring: everything that lives under one data directory.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from chorus.config import Config
from chorus.sessions.store import SessionStore

from .gateway import JobGateway
from .locks import InFlightRegistry
from .queue import JobQueue


@dataclass
class Services:
    data_dir: Path
    store: SessionStore = field(init=False)
    registry: InFlightRegistry = field(init=False)
    queue: JobQueue = field(init=False)
    gateway: JobGateway = field(init=False)

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        self.store = SessionStore(self.data_dir / "sessions")
        self.registry = InFlightRegistry(self.data_dir / "locks")
        self.queue = JobQueue(self.data_dir / "queue")
        self.gateway = JobGateway(self.store, self.registry, self.queue)

    @property
    def logs_dir(self) -> Path:
        return self.data_dir / "logs"

    @classmethod
    def from_config(cls, data_dir: Optional[Path] = None) -> "Services":
        return cls(data_dir=Path(data_dir) if data_dir else Config.DATA_DIR)
