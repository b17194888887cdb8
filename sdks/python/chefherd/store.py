"""Data bag stores backing the lock protocol.

A store hands out containers (data bags) whose items are plain dicts. Two
stores are provided: :class:`DataBagStore` talks to a Chef server through
:class:`~chefherd.client.ChefServerClient`, :class:`MemoryDataBagStore`
keeps its bags in process memory and is what tests and dry runs use.

Neither store makes a read followed by a write atomic. ``save()`` is
create-or-overwrite unless the store was built with ``atomic_create=True``,
in which case a save that is not allowed to overwrite fails when the item
already exists.
"""

import asyncio
import copy
import logging
from typing import Dict, Optional

from .client import ChefServerClient
from .exceptions import StoreError

_logger = logging.getLogger(__name__)


class DataBagItem:
    """An unsaved item of a container."""

    def __init__(self, container, fields: dict):
        self.container = container
        self.fields = dict(fields)

    @property
    def id(self) -> str:
        return self.fields["id"]

    async def save(self, overwrite: bool = True) -> bool:
        return await self.container._save(self.fields, overwrite)

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.container.name}/{self.id}>"


class DataBagItems:
    """Items of one data bag on a Chef server."""

    def __init__(self, store: "DataBagStore", name: str):
        self.store = store
        self.name = name

    async def find(self, item_id: str) -> Optional[dict]:
        return await self.store.client.get_item(self.name, item_id)

    def new(self, fields: dict) -> DataBagItem:
        return DataBagItem(self, fields)

    async def delete(self, item_id: str) -> bool:
        return await self.store.client.delete_item(self.name, item_id)

    async def _save(self, fields: dict, overwrite: bool) -> bool:
        if await self.store.client.create_item(self.name, fields):
            return True
        if self.store.atomic_create and not overwrite:
            _logger.debug("Item %s/%s already exists; not overwriting", self.name, fields["id"])
            return False
        return await self.store.client.update_item(self.name, fields)


class DataBagStore:
    """Data bags on a Chef server."""

    def __init__(self, client: ChefServerClient, atomic_create: bool = False):
        self.client = client
        self.atomic_create = atomic_create

    @property
    def client_name(self) -> str:
        return self.client.client_name

    async def create_container(self, name: str) -> DataBagItems:
        _logger.info("Creating data bag %s", name)
        await self.client.create_data_bag(name)
        return DataBagItems(self, name)

    async def find_container(self, name: str) -> Optional[DataBagItems]:
        if await self.client.find_data_bag(name) is None:
            return None
        return DataBagItems(self, name)


class MemoryDataBagItems:
    """Items of one in-memory data bag."""

    def __init__(self, store: "MemoryDataBagStore", name: str):
        self.store = store
        self.name = name

    @property
    def _items(self) -> Dict[str, dict]:
        try:
            return self.store.data[self.name]
        except KeyError:
            raise StoreError(f"Data bag {self.name} not found", status_code=404)

    async def find(self, item_id: str) -> Optional[dict]:
        await self.store._pause()
        item = self._items.get(item_id)
        return copy.deepcopy(item) if item is not None else None

    def new(self, fields: dict) -> DataBagItem:
        return DataBagItem(self, fields)

    async def delete(self, item_id: str) -> bool:
        await self.store._pause()
        return self._items.pop(item_id, None) is not None

    async def _save(self, fields: dict, overwrite: bool) -> bool:
        await self.store._pause()
        items = self._items
        if fields["id"] in items and self.store.atomic_create and not overwrite:
            return False
        items[fields["id"]] = copy.deepcopy(fields)
        return True


class MemoryDataBagStore:
    """Data bags kept in process memory.

    Several stores may share ``data`` to stand for different clients of the
    same server; see :meth:`as_client`. ``latency`` is awaited before every
    item operation so concurrent callers interleave the way they would over
    the network.
    """

    def __init__(self, client_name: str = "chefherd", atomic_create: bool = False,
                 latency: float = 0.0, data: Dict[str, Dict[str, dict]] = None):
        self.client_name = client_name
        self.atomic_create = atomic_create
        self.latency = latency
        self.data = data if data is not None else {}

    def as_client(self, client_name: str) -> "MemoryDataBagStore":
        """Return a view of the same bags as seen by another client."""
        return MemoryDataBagStore(client_name, self.atomic_create, self.latency, self.data)

    async def _pause(self) -> None:
        await asyncio.sleep(self.latency)

    async def create_container(self, name: str) -> MemoryDataBagItems:
        await self._pause()
        self.data.setdefault(name, {})
        return MemoryDataBagItems(self, name)

    async def find_container(self, name: str) -> Optional[MemoryDataBagItems]:
        await self._pause()
        if name not in self.data:
            return None
        return MemoryDataBagItems(self, name)
