"""Tests for the HTTP blob store adapter against a mock transport."""

import httpx
import pytest

from decksync.adapters.http_blob_store import HttpBlobStore
from decksync.domain.errors import BlobStoreError, NetworkUnavailable, SyncTimeout

BASE = "https://blobs.example.com/store"


class FakeServer:
    """In-memory object API speaking the adapter's wire format."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/store").lstrip("/")
        if request.method == "GET" and not path:
            prefix = request.url.params.get("prefix", "")
            return httpx.Response(200, json={"paths": [p for p in self.objects if p.startswith(prefix)]})
        if request.method == "PUT":
            self.objects[path] = request.content
            return httpx.Response(204)
        if request.method == "GET":
            if path not in self.objects:
                return httpx.Response(404)
            return httpx.Response(200, content=self.objects[path])
        if request.method == "DELETE":
            if self.objects.pop(path, None) is None:
                return httpx.Response(404)
            return httpx.Response(204)
        return httpx.Response(405)


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
async def store(server):
    store = HttpBlobStore(BASE, token="secret", transport=httpx.MockTransport(server))
    yield store
    await store.close()


class TestObjects:
    async def test_put_get_delete(self, store, server):
        await store.put("u1/verbs/cards.txt", b"1\nc1,2024/03/01 09:00:00\n")
        assert server.objects["u1/verbs/cards.txt"].startswith(b"1\n")
        assert await store.get("u1/verbs/cards.txt") == b"1\nc1,2024/03/01 09:00:00\n"

        await store.delete("u1/verbs/cards.txt")
        assert await store.get("u1/verbs/cards.txt") is None

    async def test_missing_object_is_none(self, store):
        assert await store.get("u1/none") is None

    async def test_deleting_missing_object_succeeds(self, store):
        await store.delete("u1/none")

    async def test_list_by_prefix(self, store, server):
        server.objects = {"u1/a/cards.txt": b"x", "u1/b/cards.txt": b"y", "u2/a/cards.txt": b"z"}
        assert await store.list("u1/") == ["u1/a/cards.txt", "u1/b/cards.txt"]
        assert server.requests[-1].url.params["prefix"] == "u1"

    async def test_sends_bearer_token(self, store, server):
        await store.get("u1/x")
        assert server.requests[0].headers["Authorization"] == "Bearer secret"

    async def test_path_segments_are_quoted(self, store, server):
        await store.put("u1/日本語/cards.txt", b"0\n")
        assert "%E6%97%A5" in str(server.requests[0].url)


class TestErrorClassification:
    def _store(self, handler) -> HttpBlobStore:
        return HttpBlobStore(BASE, transport=httpx.MockTransport(handler))

    async def test_server_error_is_network_unavailable(self):
        store = self._store(lambda request: httpx.Response(503))
        with pytest.raises(NetworkUnavailable):
            await store.get("u1/x")

    async def test_throttling_is_network_unavailable(self):
        store = self._store(lambda request: httpx.Response(429))
        with pytest.raises(NetworkUnavailable):
            await store.put("u1/x", b"data")

    async def test_connection_error_is_network_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        store = self._store(handler)
        with pytest.raises(NetworkUnavailable):
            await store.list("u1/")

    async def test_timeout_is_sync_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        store = self._store(handler)
        with pytest.raises(SyncTimeout):
            await store.get("u1/x")

    async def test_rejected_request_is_blob_store_error(self):
        store = self._store(lambda request: httpx.Response(403, text="forbidden"))
        with pytest.raises(BlobStoreError) as exc_info:
            await store.delete("u1/x")
        assert exc_info.value.status_code == 403

    async def test_bad_listing_payload(self):
        store = self._store(lambda request: httpx.Response(200, content=b"not json"))
        with pytest.raises(BlobStoreError):
            await store.list("u1/")
