import asyncio
from datetime import timedelta
from typing import Dict, Optional, Protocol


class Storage(Protocol):
    """Key-value storage shared between all contexts competing for a lock.

    Nothing beyond get, set and remove is required: no compare-and-swap,
    no notifications, no transactions.
    """

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...


class MemoryStorage:
    """Storage kept in a dict, shared by everyone holding the same instance.

    Args:
        latency:    Delay applied to every operation, helpful to simulate a slow medium.
    """
    __slots__ = ['latency', '_items']

    latency: timedelta
    _items: Dict[str, str]

    def __init__(self, latency: timedelta = timedelta(0)) -> None:
        self.latency = latency
        self._items = {}

    async def _wait(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency.total_seconds())

    async def get(self, key: str) -> Optional[str]:
        await self._wait()
        return self._items.get(key)

    async def set(self, key: str, value: str) -> None:
        await self._wait()
        self._items[key] = value

    async def remove(self, key: str) -> None:
        await self._wait()
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items


_default: Optional[MemoryStorage] = None


def default_storage() -> MemoryStorage:
    """The storage used by mutexes created without an explicit one.

    It is shared by all mutexes of the current process.
    """
    global _default
    if _default is None:
        _default = MemoryStorage()
    return _default
