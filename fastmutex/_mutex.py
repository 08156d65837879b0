import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import AsyncIterator, Callable, Dict, Optional

from ._exceptions import LockTimeout
from ._record import Record, to_millis
from ._stats import Stats
from ._storage import Storage, default_storage


logger = logging.getLogger(__name__)

X_PREFIX = '_MUTEX_LOCK_X_'
Y_PREFIX = '_MUTEX_LOCK_Y_'


class FastMutex:
    """Mutual exclusion over a storage that offers only get, set and remove.

    Implements Lamport's fast mutex with two slots per lock:
    X is "who attempted last" and Y is "who holds the lock".
    Every value is stored with an expiration, so the lock of a context
    that died without releasing heals by itself after `timeout`.
    The same applies to a live holder: the lock lapses `timeout` after
    it was acquired, so critical sections must be shorter than that.

    The statistics of a held key are kept until `release` is called for it.

    Args:
        client_id:      Identity of this context, written into the slots.
        x_prefix:       Namespace of the "last attempt" slot.
        y_prefix:       Namespace of the "holder" slot.
        timeout:        Budget for a single `acquire` and lifetime of stored records.
        grace:          How long to wait for a rival before re-checking the holder.
        retry_delay:    Pause between attempts. Zero just yields to the event loop.
        storage:        Where to keep the slots. Process-wide memory storage by default.
        now:            Callback used to determine the current time.
    """
    __slots__ = [
        'client_id',
        'x_prefix',
        'y_prefix',
        'timeout',
        'grace',
        'retry_delay',
        'storage',
        'now',
        '_held',
    ]

    client_id: str
    x_prefix: str
    y_prefix: str
    timeout: timedelta
    grace: timedelta
    retry_delay: timedelta
    storage: Storage
    now: Callable[[], datetime]
    _held: Dict[str, Stats]

    def __init__(
        self,
        client_id: Optional[str] = None,
        x_prefix: str = X_PREFIX,
        y_prefix: str = Y_PREFIX,
        timeout: timedelta = timedelta(seconds=5),
        grace: timedelta = timedelta(milliseconds=50),
        retry_delay: timedelta = timedelta(0),
        storage: Optional[Storage] = None,
        now: Callable[[], datetime] = partial(datetime.now, timezone.utc),
    ) -> None:
        if client_id is None:
            client_id = uuid.uuid4().hex
        if not client_id:
            raise ValueError('client_id must not be empty')
        if not x_prefix or not y_prefix:
            raise ValueError('key prefixes must not be empty')
        if x_prefix == y_prefix:
            raise ValueError('x_prefix and y_prefix must differ')
        if timeout <= timedelta(0):
            raise ValueError('timeout must be positive')
        if grace < timedelta(0):
            raise ValueError('grace must not be negative')
        if retry_delay < timedelta(0):
            raise ValueError('retry_delay must not be negative')

        self.client_id = client_id
        self.x_prefix = x_prefix
        self.y_prefix = y_prefix
        self.timeout = timeout
        self.grace = grace
        self.retry_delay = retry_delay
        self.storage = storage if storage is not None else default_storage()
        self.now = now  # type: ignore
        self._held = {}

    def __repr__(self) -> str:
        return f'{type(self).__name__}(client_id={self.client_id!r})'

    async def acquire(self, key: str) -> Stats:
        """Acquire (lock) the mutex for the given key.

        Returns statistics of the attempt.

        Raises:
            LockTimeout
        """
        logger.debug('client %s is attempting to acquire %r', self.client_id, key)
        x = self.x_prefix + key
        y = self.y_prefix + key
        stats = Stats(acquire_start=self.now())
        try:
            await self._acquire(key, x, y, stats)
        except BaseException:
            # the reservation must not outlive a failed attempt
            await self._drop(y)
            raise

        end = self.now()
        stats.acquire_end = end
        stats.acquire_duration = end - stats.acquire_start  # type: ignore[operator]
        stats.lock_start = end
        self._held[key] = stats
        return replace(stats)

    async def _acquire(self, key: str, x: str, y: str, stats: Stats) -> None:
        while True:
            self._check_timeout(key, stats)
            await self._set(x, self.client_id)

            # someone else holds or is taking the inner lock
            holder = await self._get(y)
            if holder is not None:
                logger.debug('%r is taken by %s, restarting', key, holder)
                stats.restart_count += 1
                await self._pause()
                continue

            await self._set(y, self.client_id)

            rival = await self._get(x)
            if rival == self.client_id:
                self._check_timeout(key, stats)
                logger.debug('client %s acquired %r with no contention', self.client_id, key)
                return

            stats.contention_count += 1
            logger.debug('contention on %r detected, X=%s', key, rival)
            await asyncio.sleep(self.grace.total_seconds())
            holder = await self._get(y)
            if holder == self.client_id:
                self._check_timeout(key, stats)
                logger.debug('client %s won the contention on %r', self.client_id, key)
                return

            stats.restart_count += 1
            stats.locks_lost += 1
            logger.debug(
                'client %s lost the contention on %r to %s, restarting',
                self.client_id, key, holder,
            )
            await self._pause()

    def _check_timeout(self, key: str, stats: Stats) -> None:
        elapsed = self.now() - stats.acquire_start  # type: ignore[operator]
        if elapsed < self.timeout:
            return
        logger.debug(
            'client %s could not acquire %r within %s',
            self.client_id, key, self.timeout,
        )
        raise LockTimeout(key=key, timeout=self.timeout, stats=replace(stats))

    async def _pause(self) -> None:
        await asyncio.sleep(self.retry_delay.total_seconds())

    async def _drop(self, y: str) -> None:
        """Remove the inner slot if it is ours.
        """
        if await self._get(y) == self.client_id:
            await self.storage.remove(y)

    async def release(self, key: str) -> Stats:
        """Release (unlock) the mutex for the given key.

        The holder slot is cleared only if this client holds it,
        so releasing a lock that is not held is a no-op.
        Returns statistics of the whole lock cycle.
        """
        logger.debug('client %s is releasing %r', self.client_id, key)
        stats = self._held.pop(key, None) or Stats()
        await self._drop(self.y_prefix + key)
        end = self.now()
        duration = None
        if stats.lock_start is not None:
            duration = end - stats.lock_start
        return replace(stats, lock_end=end, lock_duration=duration)

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[Stats]:
        """Hold the lock for the duration of the `async with` block.

        Raises:
            LockTimeout
        """
        stats = await self.acquire(key)
        try:
            yield stats
        finally:
            await self.release(key)

    async def holder(self, key: str) -> Optional[str]:
        """The client currently holding the lock, if any.
        """
        return await self._get(self.y_prefix + key)

    async def acquired(self, key: str) -> bool:
        """Check if the lock is held by this client.
        """
        return await self.holder(key) == self.client_id

    async def _set(self, key: str, value: str) -> None:
        expires_at = to_millis(self.now() + self.timeout)
        await self.storage.set(key, Record(value=value, expires_at=expires_at).encode())

    async def _get(self, key: str) -> Optional[str]:
        raw = await self.storage.get(key)
        if raw is None:
            return None
        record = Record.decode(raw)
        if record is None:
            logger.warning('removing malformed record on %r', key)
            await self.storage.remove(key)
            return None
        if record.expired(self.now()):
            logger.debug('client %s removed an expired record on %r', self.client_id, key)
            await self.storage.remove(key)
            return None
        return record.value
