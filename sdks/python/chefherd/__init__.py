"""chefherd - environment locking, jobs and node bootstrap against a Chef server."""

from .application import Application
from .bootstrap import BootstrapWorker, ChefConnection, NodeQuerier, bootstrap_environment
from .client import ChefServerClient
from .config import Settings
from .exceptions import (
    ChefHerdError,
    StoreError,
    AuthenticationError,
    NetworkError,
    ValidationError,
    InvalidLockType,
    ResourceLocked,
    ValidatorNotFound,
    ValidatorCredentialMissing,
    RemoteFileCopyError,
    RemoteCommandError,
)
from .jobs import Job, JobManager
from .locks import LockRegistry
from .models import (
    LockType,
    LockItem,
    JobState,
    JobRecord,
    Node,
    HostResponse,
    BootstrapType,
    BootstrapStatus,
    NodeBootstrapResult,
)
from .mutex import ChefMutex, slugify
from .store import DataBagStore, MemoryDataBagStore

__version__ = "1.0.0"
__all__ = [
    "Application",
    "BootstrapWorker",
    "ChefConnection",
    "NodeQuerier",
    "bootstrap_environment",
    "ChefServerClient",
    "Settings",
    "ChefHerdError",
    "StoreError",
    "AuthenticationError",
    "NetworkError",
    "ValidationError",
    "InvalidLockType",
    "ResourceLocked",
    "ValidatorNotFound",
    "ValidatorCredentialMissing",
    "RemoteFileCopyError",
    "RemoteCommandError",
    "Job",
    "JobManager",
    "LockRegistry",
    "LockType",
    "LockItem",
    "JobState",
    "JobRecord",
    "Node",
    "HostResponse",
    "BootstrapType",
    "BootstrapStatus",
    "NodeBootstrapResult",
    "ChefMutex",
    "slugify",
    "DataBagStore",
    "MemoryDataBagStore",
]
