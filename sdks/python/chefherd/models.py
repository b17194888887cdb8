"""chefherd data models."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class LockType(str, Enum):
    """Kinds of resources a mutex can lock."""
    ENVIRONMENT = "environment"


@dataclass
class LockItem:
    """A lock as stored in the locks data bag."""
    id: str
    type: str
    name: str
    client_name: str
    process_id: int
    time: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "LockItem":
        return cls(
            id=data["id"],
            type=data.get("type"),
            name=data.get("name"),
            client_name=data.get("client_name"),
            process_id=data.get("process_id"),
            time=data.get("time"),
        )


class JobState(str, Enum):
    """Job state enumeration."""
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"

    @property
    def completed(self) -> bool:
        return self is not JobState.RUNNING


@dataclass
class JobRecord:
    """Latest known state of a job."""
    id: str
    type: str
    state: JobState = JobState.RUNNING
    status: str = ""
    result: Any = None
    error: Optional[str] = None
    time_start: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    time_end: Optional[datetime] = None

    @property
    def completed(self) -> bool:
        return self.state.completed

    def update(self, job) -> None:
        """Copy the latest state of ``job`` into this record."""
        self.state = job.state
        self.status = job.status
        self.result = job.result
        self.error = job.error
        if self.completed and self.time_end is None:
            self.time_end = datetime.now(timezone.utc)


@dataclass(frozen=True)
class Node:
    """A bootstrap target."""
    hostname: str
    node_name: Optional[str] = None

    @property
    def registered(self) -> bool:
        return self.node_name is not None


@dataclass
class HostResponse:
    """Outcome of a command run on a single host."""
    host: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class BootstrapType(str, Enum):
    FULL = "full"
    PARTIAL = "partial"


class BootstrapStatus(str, Enum):
    OK = "ok"
    ERROR = "error"


@dataclass
class NodeBootstrapResult:
    """Result of bootstrapping one node."""
    hostname: str
    node_name: Optional[str]
    bootstrap_type: BootstrapType
    status: BootstrapStatus
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "hostname": self.hostname,
            "node_name": self.node_name,
            "bootstrap_type": self.bootstrap_type.value,
            "status": self.status.value,
            "message": self.message,
        }
