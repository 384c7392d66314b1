"""HTTP blob store adapter.

Wire format:
    PUT    {base}/{path}          body = object bytes
    GET    {base}/{path}          404 -> missing
    DELETE {base}/{path}          404 -> already gone
    GET    {base}?prefix={p}      {"paths": [...]}
"""

import logging
from urllib.parse import quote

import httpx

from decksync.domain.errors import BlobStoreError, NetworkUnavailable, SyncTimeout

logger = logging.getLogger(__name__)


class HttpBlobStore:
    """REST blob store client implementing the BlobStore protocol.

    Uses lazy client initialization for connection reuse. Timeouts map
    to SyncTimeout, transport failures and 5xx/429 to NetworkUnavailable,
    other 4xx to BlobStoreError.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize adapter.

        Args:
            base_url: Root URL of the object API
            token: Optional bearer token
            timeout: Request timeout in seconds
            transport: Custom transport (tests use httpx.MockTransport)
        """
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Lazy client initialization for connection reuse."""
        if self._client is None:
            headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
            self._client = httpx.AsyncClient(
                timeout=self._timeout, headers=headers, transport=self._transport
            )
        return self._client

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{quote(path.strip('/'), safe='/')}"

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request and classify failures.

        Returns:
            Response with status < 400, or 404

        Raises:
            SyncTimeout: Request timed out
            NetworkUnavailable: Transport error or server-side failure
            BlobStoreError: Request rejected
        """
        client = await self._get_client()
        url = kwargs.pop("url", None) or self._url(path)
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise SyncTimeout(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise NetworkUnavailable(f"{method} {path}: {e}") from e

        if response.status_code == 404:
            return response
        if response.status_code == 429 or response.status_code >= 500:
            raise NetworkUnavailable(f"{method} {path}: HTTP {response.status_code}")
        if response.status_code >= 400:
            raise BlobStoreError(path, response.status_code, response.text[:200])
        return response

    async def put(self, path: str, data: bytes) -> None:
        response = await self._request(
            "PUT", path, content=data, headers={"Content-Type": "application/octet-stream"}
        )
        if response.status_code == 404:
            raise BlobStoreError(path, 404, "upload target not found")
        logger.debug(f"PUT {path} ({len(data)} bytes)")

    async def get(self, path: str) -> bytes | None:
        response = await self._request("GET", path)
        if response.status_code == 404:
            return None
        return response.content

    async def list(self, prefix: str) -> list[str]:
        response = await self._request(
            "GET", prefix, url=self._base_url, params={"prefix": prefix.strip("/")}
        )
        if response.status_code == 404:
            return []
        try:
            paths = response.json().get("paths", [])
        except ValueError as e:
            raise BlobStoreError(prefix, response.status_code, "invalid listing payload") from e
        return sorted(str(p) for p in paths)

    async def delete(self, path: str) -> None:
        await self._request("DELETE", path)
        logger.debug(f"DELETE {path}")

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
