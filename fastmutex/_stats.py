from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional


def _ms(delta: Optional[timedelta]) -> Optional[float]:
    if delta is None:
        return None
    return delta.total_seconds() * 1000


@dataclass
class Stats:
    """Statistics of a single lock cycle.

    Args:
        restart_count:      How many times the attempt went back to the outer check.
        locks_lost:         How many contended inner reservations were lost to a rival.
        contention_count:   How many times a rival attempt was detected.
        acquire_start:      When `acquire` started.
        acquire_end:        When `acquire` succeeded.
        acquire_duration:   Time spent in `acquire`.
        lock_start:         When the lock became held.
        lock_end:           When the lock was released.
        lock_duration:      How long the lock was held.
    """
    restart_count: int = 0
    locks_lost: int = 0
    contention_count: int = 0
    acquire_start: Optional[datetime] = None
    acquire_end: Optional[datetime] = None
    acquire_duration: Optional[timedelta] = None
    lock_start: Optional[datetime] = None
    lock_end: Optional[datetime] = None
    lock_duration: Optional[timedelta] = None

    @property
    def acquire_duration_ms(self) -> Optional[float]:
        return _ms(self.acquire_duration)

    @property
    def lock_duration_ms(self) -> Optional[float]:
        return _ms(self.lock_duration)
