from datetime import timedelta
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ._stats import Stats


class MutexError(Exception):
    pass


class LockTimeout(MutexError, TimeoutError):
    """The lock could not be acquired within the configured timeout.
    """

    def __init__(
        self,
        key: str,
        timeout: timedelta,
        stats: Optional['Stats'] = None,
    ) -> None:
        ms = int(timeout.total_seconds() * 1000)
        super().__init__(f'lock {key!r} could not be acquired within {ms}ms')
        self.key = key
        self.timeout = timeout
        self.stats = stats
