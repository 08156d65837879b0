import os
from datetime import timedelta
from random import choice
from string import ascii_letters

import pytest

import fastmutex


@pytest.fixture
def bucket() -> str:
    bucket = os.environ.get('BUCKET')
    if not bucket:
        pytest.skip('BUCKET is not set')
    return bucket


@pytest.fixture
def random_name() -> str:
    return ''.join(choice(ascii_letters) for _ in range(20))


@pytest.fixture
async def storage(bucket: str):
    s = fastmutex.GCSStorage(
        bucket=bucket,
        prefix='fastmutex-tests/',
        api_url=os.environ.get('GCS_API_URL'),
    )
    async with s:
        yield s


@pytest.mark.asyncio
async def test_set_get_remove(storage: fastmutex.GCSStorage, random_name: str):
    assert await storage.get(random_name) is None
    await storage.set(random_name, '{"expiresAt": 1, "value": "a"}')
    assert await storage.get(random_name) == '{"expiresAt": 1, "value": "a"}'
    await storage.remove(random_name)
    assert await storage.get(random_name) is None


@pytest.mark.asyncio
async def test_remove_missing(storage: fastmutex.GCSStorage, random_name: str):
    await storage.remove(random_name)


@pytest.mark.asyncio
async def test_lock_unlock(storage: fastmutex.GCSStorage, random_name: str):
    mutex = fastmutex.FastMutex(storage=storage)
    await mutex.acquire(random_name)
    assert await mutex.acquired(random_name) is True
    await mutex.release(random_name)
    assert await mutex.acquired(random_name) is False


@pytest.mark.asyncio
async def test_lock_unlock__subdirectory(storage: fastmutex.GCSStorage, random_name: str):
    mutex = fastmutex.FastMutex(storage=storage)
    name = random_name + '/subpath.bin'
    await mutex.acquire(name)
    await mutex.release(name)


@pytest.mark.asyncio
async def test_cannot_lock_twice(storage: fastmutex.GCSStorage, random_name: str):
    first = fastmutex.FastMutex(storage=storage)
    second = fastmutex.FastMutex(storage=storage, timeout=timedelta(seconds=2))
    await first.acquire(random_name)
    with pytest.raises(fastmutex.LockTimeout):
        await second.acquire(random_name)
    await first.release(random_name)
