import json
from http import HTTPStatus
from typing import Dict, Optional
from urllib.parse import quote

import aiohttp
from gcloud.aio.auth import Token


DEFAULT_URL = 'https://www.googleapis.com'
SCOPES = [
    'https://www.googleapis.com/auth/devstorage.read_write',
]
BOUNDARY = 'cf58b63b6ce6f37881e9740f24be22d7'


class GCSStorage:
    """Storage keeping every key as an object in a Google Cloud Storage bucket.

    Args:
        bucket:     GCS bucket name.
        prefix:     Prepended to every key to build the object name.
        api_url:    URL of GCS API, helpful for testing with emulator.
        session:    HTTP session to use. Closed when leaving the context.
        token:      Auth token. Not used when talking to an emulator.
    """
    __slots__ = [
        'bucket',
        'prefix',
        'api_url',
        'session',
        'token',
        'emulator',
    ]

    bucket: str
    prefix: str
    api_url: str
    session: aiohttp.ClientSession
    token: Token
    emulator: bool

    def __init__(
        self,
        bucket: str,
        prefix: str = '',
        api_url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        token: Optional[Token] = None,
    ) -> None:
        self.bucket = bucket
        self.prefix = prefix
        self.emulator = api_url is not None
        self.api_url = api_url or DEFAULT_URL

        if session is None:
            session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(ssl=not self.emulator),
                timeout=aiohttp.ClientTimeout(total=10),
            )
        self.session = session
        if token is None:
            token = Token(scopes=SCOPES, session=session)  # type: ignore[arg-type]
        self.token = token

    async def _headers(self) -> Dict[str, str]:
        if self.emulator:
            return {}
        token = await self.token.get()
        return {
            'Authorization': f'Bearer {token}',
        }

    def _object_url(self, key: str) -> str:
        name = quote(self.prefix + key, safe='')
        return f'{self.api_url}/storage/v1/b/{self.bucket}/o/{name}'

    async def get(self, key: str) -> Optional[str]:
        """Read the object content, `None` if there is no such object.

        Raises:
            ClientResponseError
        """
        resp = await self.session.get(
            url=self._object_url(key),
            params=dict(alt='media'),
            headers=await self._headers(),
        )
        async with resp:
            if resp.status == HTTPStatus.NOT_FOUND:
                return None
            resp.raise_for_status()
            return await resp.text(encoding='utf8')

    async def set(self, key: str, value: str) -> None:
        """Create or overwrite the object.

        Raises:
            ClientResponseError
        """
        metadata = dict(name=self.prefix + key)
        body = '\r\n'.join([
            f'--{BOUNDARY}',
            'Content-Type: application/json; charset=UTF-8',
            '',
            json.dumps(metadata),
            f'--{BOUNDARY}',
            'Content-Type: text/plain; charset=UTF-8',
            '',
            value,
            f'--{BOUNDARY}--',
            '',
        ]).encode('utf8')
        headers = await self._headers()
        headers.update({
            'Accept': 'application/json',
            'Content-Length': str(len(body)),
            'Content-Type': f'multipart/related; boundary={BOUNDARY}',
        })
        resp = await self.session.post(
            url=f'{self.api_url}/upload/storage/v1/b/{self.bucket}/o',
            data=body,
            params=dict(uploadType='multipart'),
            headers=headers,
        )
        async with resp:
            resp.raise_for_status()

    async def remove(self, key: str) -> None:
        """Delete the object. Deleting a missing object is not an error.

        Raises:
            ClientResponseError
        """
        resp = await self.session.delete(
            url=self._object_url(key),
            headers=await self._headers(),
        )
        async with resp:
            if resp.status == HTTPStatus.NOT_FOUND:
                return
            resp.raise_for_status()

    async def __aenter__(self) -> 'GCSStorage':
        return self

    async def __aexit__(self, *args) -> None:
        await self.session.close()
