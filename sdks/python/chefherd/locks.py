"""Registry of locks this process holds on the configuration server."""

import logging
from typing import List, Optional

from .models import LockType

_logger = logging.getLogger(__name__)


class LockRegistry:
    """Bookkeeping of live mutexes.

    A mutex is registered while this process believes it holds the lock. The
    registry is only used to release abandoned locks on shutdown and to look
    up an existing mutex; it never says whether a resource is actually locked.
    Only a read of the lock item does that.
    """

    def __init__(self):
        _logger.info("Lock registry starting...")
        self._locks = []

    @property
    def locks(self) -> List:
        return list(self._locks)

    def find(self, type, name: str):
        """Find a registered mutex for the given resource.

        Returns:
            The mutex, or None if none is registered or ``type`` is not a
            known lock type
        """
        try:
            type = LockType(type)
        except ValueError:
            return None
        for mutex in self._locks:
            if mutex.type == type and mutex.name == name:
                return mutex
        return None

    def register(self, mutex) -> None:
        if not any(m is mutex for m in self._locks):
            self._locks.append(mutex)

    def unregister(self, mutex) -> None:
        self._locks = [m for m in self._locks if m is not mutex]

    def reset(self) -> None:
        self._locks.clear()

    async def shutdown(self) -> None:
        """Release every lock still registered."""
        _logger.info("Lock registry stopping...")
        for mutex in self.locks:
            try:
                await mutex.unlock()
            except Exception:
                _logger.exception("Failed to release %s on shutdown", mutex)
        self.reset()

    def __len__(self):
        return len(self._locks)
