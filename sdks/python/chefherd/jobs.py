"""Supervised asynchronous jobs."""

import asyncio
import functools
import logging
import uuid
from typing import Awaitable, Callable, Dict, List, Optional

from .models import JobRecord, JobState

_logger = logging.getLogger(__name__)


class Job:
    """One unit of asynchronous work with an observable status.

    Creating a job adds it to ``manager``, which keeps a record of it. The
    job is running from the start; it ends in ``success`` or ``failure`` and
    stays there.
    """

    def __init__(self, type: str, manager: "JobManager"):
        self.manager = manager
        self.id = manager.new_id()
        self.type = type
        self._state = JobState.RUNNING
        self._status = ""
        self.result = None
        self.error = None
        self.task: Optional[asyncio.Task] = None
        manager.add(self)

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.type} {self.id} {self._state.value}>"

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def completed(self) -> bool:
        return self._state.completed

    @property
    def status(self) -> str:
        return self._status

    @status.setter
    def status(self, value: str) -> None:
        self._status = value
        _logger.debug("Job %s: %s", self.id, value)
        self.manager.update(self)

    @property
    def record(self) -> Optional[JobRecord]:
        return self.manager.find(self.id)

    def report_running(self, status: str = None) -> bool:
        return self._transition(JobState.RUNNING, status)

    def report_success(self, result=None, status: str = None) -> bool:
        self.result = result
        return self._transition(JobState.SUCCESS, status)

    def report_failure(self, reason: str = None, status: str = None) -> bool:
        self.error = reason
        return self._transition(JobState.FAILURE, status)

    def report_incomplete(self, reason: str) -> bool:
        """Fail a job whose worker went away without reporting an outcome."""
        return self.report_failure(reason, status="incomplete")

    def _transition(self, state: JobState, status: Optional[str]) -> bool:
        if self._state.completed:
            _logger.warning("Job %s already finished with %s; ignoring %s",
                            self.id, self._state.value, state.value)
            return False
        self._state = state
        if status is not None:
            self._status = status
        if state.completed:
            _logger.info("Job %s (%s) finished: %s", self.id, self.type, state.value)
        self.manager.update(self)
        if state.completed:
            self.manager.complete(self)
        return True

    def run(self, body: Callable[["Job"], Awaitable]) -> asyncio.Task:
        """Run ``body(job)`` on its own task.

        The value returned by the body is the job's result; an exception
        raised by it fails the job.
        """
        if self.task is not None:
            raise RuntimeError(f"Job {self.id} already started")
        self.task = asyncio.get_running_loop().create_task(self._execute(body), name=f"job-{self.id}")
        self.manager.monitor(self)
        return self.task

    async def _execute(self, body) -> None:
        self.report_running()
        try:
            result = await body(self)
        except Exception as e:
            _logger.exception("Job %s (%s) raised", self.id, self.type)
            self.report_failure(str(e) or e.__class__.__name__)
        else:
            self.report_success(result)

    def terminate(self) -> None:
        """Ask the job to stop."""
        if self.task is not None and not self.task.done():
            _logger.info("Terminating job %s", self.id)
            self.task.cancel()

    async def wait(self) -> JobRecord:
        """Wait for the job's task to end and return the job's record."""
        if self.task is not None:
            await asyncio.wait([self.task])
        return self.record


class JobManager:
    """Records every job of the process and tracks the active ones.

    Methods are plain functions run on the event loop thread, so requests to
    the manager are handled one at a time.
    """

    def __init__(self):
        _logger.debug("Job manager starting...")
        self._records: Dict[str, JobRecord] = {}
        self._active: Dict[str, Job] = {}

    @property
    def records(self) -> List[JobRecord]:
        """Records of all jobs, completed and active."""
        return list(self._records.values())

    def add(self, job: Job) -> None:
        """Track and record the given job."""
        self._active[job.id] = job
        record = JobRecord(id=job.id, type=job.type)
        record.update(job)
        self._records[job.id] = record
        if job.task is not None:
            self.monitor(job)

    def monitor(self, job: Job) -> None:
        """Complete ``job`` whenever its task ends, however it ends."""
        job.task.add_done_callback(functools.partial(self._force_complete, job))

    def complete(self, job: Job) -> None:
        self._active.pop(job.id, None)

    def active(self) -> List[JobRecord]:
        return [self._records[job_id] for job_id in self._active]

    def find(self, id: str) -> Optional[JobRecord]:
        return self._records.get(id)

    def update(self, job: Job) -> None:
        """Update the record of the given job."""
        record = self.find(job.id)
        if record is None:
            _logger.warning("No record for job %s", job.id)
            return
        record.update(job)

    async def terminate_active(self) -> None:
        """Stop every active job and wait for them to wind down."""
        jobs = list(self._active.values())
        for job in jobs:
            job.terminate()
        tasks = [job.task for job in jobs if job.task is not None]
        if tasks:
            await asyncio.wait(tasks)

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())

    def _force_complete(self, job: Job, task: asyncio.Task) -> None:
        if not job.completed:
            if task.cancelled():
                reason = "terminated"
            else:
                reason = repr(task.exception())
            _logger.warning("Job %s ended without an outcome (%s)", job.id, reason)
            job.report_incomplete(reason)
        self.complete(job)
