"""Locks on configuration server resources.

A mutex is identified by a lock type and a resource name. Locking it stores
an item in the ``_chefherd_locks_`` data bag holding the requestor's client
name, process id and the current time. Locking a resource that is already
locked fails if the lock belongs to someone else and succeeds if it belongs
to this client and process.

Example::

    mutex = ChefMutex(store, registry, environment="my_environment")

    if await mutex.lock():
        ...
        await mutex.unlock()

    await mutex.synchronize(do_stuff)

Acquiring is a read followed by a write. Unless the store creates items
atomically, two clients can both read "unlocked" and both write, and each
will believe it holds the lock.
"""

import asyncio
import inspect
import logging
import os
import re
from datetime import datetime, timezone
from typing import Optional

from .exceptions import InvalidLockType, ResourceLocked, StoreError
from .models import LockItem, LockType

_logger = logging.getLogger(__name__)

LOCKS_DATA_BAG = "_chefherd_locks_"

TESTING_ENV_VAR = "CHEFHERD_ENV"


def slugify(value: str) -> str:
    """Lower-case ``value`` and join its words with dashes."""
    return re.sub(r"\W+", "-", value.lower()).strip("-")


class ChefMutex:
    """A lock on one resource of the configuration server.

    Args:
        store: Data bag store the lock item lives in
        registry: Registry tracking the locks held by this process
        force: Write and delete the lock even if someone else holds it
        job: Job receiving status updates during lock and unlock
        unlock_on_failure: If False and the synchronized block raises,
            the lock is left in place
        testing: Skip the store entirely; taken from the ``CHEFHERD_ENV``
            environment variable when not given
        **resource: Exactly one ``<lock type>=<name>`` pair,
            e.g. ``environment="production"``
    """

    def __init__(self, store, registry, force: bool = False, job=None, unlock_on_failure: bool = True,
                 testing: Optional[bool] = None, **resource):
        lock_types = [lock_type.value for lock_type in LockType]
        found = [(key, value) for key, value in resource.items() if key in lock_types]
        if len(found) != 1 or len(resource) != 1:
            raise InvalidLockType(f"Must pass a valid lock type ({', '.join(lock_types)})")
        type, name = found[0]

        self._type = LockType(type)
        self._name = str(name)
        self.store = store
        self.registry = registry
        self.force = force
        self.job = job
        self.unlock_on_failure = unlock_on_failure
        self.testing = testing
        self._guard = asyncio.Lock()

    @property
    def type(self) -> LockType:
        return self._type

    @property
    def name(self) -> str:
        return self._name

    @property
    def data_bag_id(self) -> str:
        return slugify(str(self))

    @property
    def client_name(self) -> str:
        return self.store.client_name

    def __str__(self):
        return f"{self._type.value}:{self._name}"

    def __repr__(self):
        return f"<{self.__class__.__name__} {self}>"

    async def lock(self) -> bool:
        """Attempt to create the lock.

        Returns:
            True if the lock is now held by this client and process
        """
        if self._externally_testing():
            return True
        async with self._guard:
            _logger.info("Locking %s", self)
            self._set_job_status(f"Locking {self}")
            return await self._attempt_lock()

    async def unlock(self) -> bool:
        """Attempt to remove the lock.

        Returns:
            False if there is no lock or it is held by someone else
        """
        if self._externally_testing():
            return True
        async with self._guard:
            _logger.info("Unlocking %s", self)
            self._set_job_status(f"Unlocking {self}")
            return await self._attempt_unlock()

    async def synchronize(self, block) -> bool:
        """Obtain the lock, run ``block`` and release the lock.

        ``block`` is called without arguments; if it returns an awaitable, it
        is awaited. If the lock is held by someone else the block is not run.
        If the block raises, the lock is released unless
        ``unlock_on_failure`` is False, and the error is re-raised.

        Returns:
            False if the lock could not be obtained, True otherwise
        """
        if not await self.lock():
            error = self._locked_error(await self.read())
            _logger.error("Error in lock sync: %s", error)
            self._report_failure(error)
            return False
        try:
            result = block()
            if inspect.isawaitable(result):
                await result
        except (Exception, asyncio.CancelledError) as e:
            _logger.error("Error in lock sync for %s: %r", self, e)
            if self.unlock_on_failure:
                try:
                    await self.unlock()
                except StoreError:
                    _logger.exception("Failed to release %s after error", self)
            else:
                _logger.warning("Leaving %s locked after error", self)
            self._report_failure(e)
            raise
        await self.unlock()
        return True

    async def read(self) -> Optional[dict]:
        """Read the lock item.

        Returns:
            The item, or None if the resource is not locked
        """
        locks = await self._locks()
        if locks is None:
            return None
        return await locks.find(self.data_bag_id)

    def _externally_testing(self) -> bool:
        if self.testing is not None:
            return self.testing
        return os.environ.get(TESTING_ENV_VAR) == "test"

    def _our_lock(self, current_lock: Optional[dict]) -> Optional[bool]:
        """Tell whether ``current_lock`` was created by this client and process.

        Returns:
            None if there is no lock, False if it belongs to someone else
        """
        if not current_lock:
            return None
        if current_lock.get("client_name") != self.client_name:
            return False
        if current_lock.get("process_id") != os.getpid():
            return False
        return True

    async def _attempt_lock(self) -> bool:
        if not self.force:
            current_lock = await self.read()
            if current_lock:
                return bool(self._our_lock(current_lock))
        return await self._write()

    async def _attempt_unlock(self) -> bool:
        if not self.force:
            current_lock = await self.read()
            if not self._our_lock(current_lock):
                return False
        return await self._delete()

    async def _locks(self):
        return await self.store.find_container(LOCKS_DATA_BAG)

    async def _write(self) -> bool:
        item = LockItem(
            id=self.data_bag_id,
            type=self._type.value,
            name=self._name,
            client_name=self.client_name,
            process_id=os.getpid(),
            time=datetime.now(timezone.utc).isoformat(),
        )
        try:
            locks = await self._locks()
            if locks is None:
                locks = await self.store.create_container(LOCKS_DATA_BAG)
            saved = await locks.new(item.to_dict()).save(overwrite=self.force)
        except StoreError:
            _logger.exception("Failed to write lock %s", self)
            self.registry.unregister(self)
            return False
        if saved:
            self.registry.register(self)
        else:
            self.registry.unregister(self)
        return saved

    async def _delete(self) -> bool:
        try:
            locks = await self._locks()
            if locks is None:
                self.registry.unregister(self)
                return True
            result = await locks.delete(self.data_bag_id)
        except StoreError:
            _logger.exception("Failed to delete lock %s", self)
            self.registry.register(self)
            return False
        self.registry.unregister(self)
        return result

    def _locked_error(self, current_lock: Optional[dict]) -> ResourceLocked:
        if not current_lock:
            return ResourceLocked(f"Resource {self.data_bag_id} could not be locked")
        item = LockItem.from_dict(current_lock)
        return ResourceLocked(
            f"Resource {item.id} locked by {item.client_name} since {item.time} (PID {item.process_id})",
            holder=item.client_name,
            since=item.time,
            process_id=item.process_id,
        )

    def _set_job_status(self, status: str) -> None:
        if self.job is not None:
            self.job.status = status

    def _report_failure(self, error: BaseException) -> None:
        # A cancelled job is completed as incomplete by its manager.
        if self.job is not None and not isinstance(error, asyncio.CancelledError):
            self.job.report_failure(str(error) or error.__class__.__name__)
