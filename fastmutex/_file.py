import logging
import os
import uuid
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote

import aiofiles
import aiofiles.os


logger = logging.getLogger(__name__)


class FileStorage:
    """Storage keeping every key in its own file inside a directory.

    All processes on the host pointing to the same directory share the storage.
    Writes go to a temporary file first and then replace the target,
    so readers never see a partially written value.

    Args:
        directory:  Where to keep the files. Created if missing.
    """
    __slots__ = ['directory']

    directory: Path

    def __init__(self, directory: Union[str, 'os.PathLike[str]']) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / quote(key, safe='')

    async def get(self, key: str) -> Optional[str]:
        try:
            async with aiofiles.open(self._path(key), 'r', encoding='utf-8') as stream:
                return await stream.read()
        except FileNotFoundError:
            return None

    async def set(self, key: str, value: str) -> None:
        tmp = self.directory / f'.{uuid.uuid4().hex}.tmp'
        try:
            async with aiofiles.open(tmp, 'w', encoding='utf-8') as stream:
                await stream.write(value)
            await aiofiles.os.replace(tmp, self._path(key))
        except BaseException:
            try:
                await aiofiles.os.remove(tmp)
            except FileNotFoundError:
                pass
            raise

    async def remove(self, key: str) -> None:
        try:
            await aiofiles.os.remove(self._path(key))
        except FileNotFoundError:
            logger.debug('nothing to remove for %r in %s', key, self.directory)
