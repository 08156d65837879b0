"""Mutual exclusion over a shared key-value storage without atomic primitives.
"""
from ._exceptions import LockTimeout, MutexError
from ._file import FileStorage
from ._gcs import GCSStorage
from ._mutex import FastMutex
from ._record import Record
from ._stats import Stats
from ._storage import MemoryStorage, Storage, default_storage


__version__ = '2.0.0'
__all__ = [
    'FastMutex',
    'FileStorage',
    'GCSStorage',
    'LockTimeout',
    'MemoryStorage',
    'MutexError',
    'Record',
    'Stats',
    'Storage',
    'default_storage',
]
