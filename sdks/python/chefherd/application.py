"""Services shared by everything running in one chefherd process."""

import functools
import logging
from typing import Awaitable, Callable, Iterable

from .bootstrap import ChefConnection, NodeQuerier, bootstrap_environment
from .client import ChefServerClient
from .config import Settings
from .jobs import Job, JobManager
from .locks import LockRegistry
from .mutex import ChefMutex
from .store import DataBagStore

_logger = logging.getLogger(__name__)


class Application:
    """Owns the lock store, the lock registry and the job manager.

    Build one per process (or per test) and hand it to whatever needs locks
    or jobs. ``store`` defaults to the data bags of the server in
    ``settings``.
    """

    def __init__(self, settings: Settings = None, store=None):
        self.settings = settings or Settings.from_env()
        self.client = None
        if store is None:
            self.client = ChefServerClient(
                self.settings.server_url,
                self.settings.client_name,
                token=self.settings.token,
                timeout=self.settings.timeout,
            )
            store = DataBagStore(self.client, atomic_create=self.settings.atomic_create)
        self.store = store
        self.lock_registry = LockRegistry()
        self.job_manager = JobManager()

    def chef_mutex(self, **options) -> ChefMutex:
        """Create a mutex, e.g. ``app.chef_mutex(environment="production")``."""
        options.setdefault("testing", self.settings.testing)
        return ChefMutex(self.store, self.lock_registry, **options)

    def start_job(self, type: str, body: Callable[[Job], Awaitable]) -> Job:
        """Create a job and run ``body(job)`` on its own task."""
        job = Job(type, self.job_manager)
        job.run(body)
        return job

    def bootstrap(self, environment: str, hosts: Iterable[str], node_querier: NodeQuerier,
                  chef_connection: ChefConnection, options: dict = None) -> Job:
        """Start a job bootstrapping ``hosts`` into ``environment``."""
        body = functools.partial(
            self._bootstrap_body, environment, list(hosts), node_querier, chef_connection, options)
        return self.start_job("bootstrap", body)

    async def _bootstrap_body(self, environment, hosts, node_querier, chef_connection, options, job):
        return await bootstrap_environment(self, job, environment, hosts, node_querier, chef_connection, options)

    async def shutdown(self) -> None:
        """Stop active jobs, then release the locks this process still holds."""
        _logger.info("Shutting down")
        await self.job_manager.terminate_active()
        await self.lock_registry.shutdown()
        if self.client is not None:
            await self.client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
