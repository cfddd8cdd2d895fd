from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Iterator

import httpx
import pytest
from fastapi.testclient import TestClient

from scholarship_gateway.main import app
from scholarship_gateway.services.storage import (
    StorageError,
    StorageUnavailableError,
    SupabaseStorage,
    build_upload_path,
    get_storage,
)

SUPABASE_URL = "https://example.supabase.co"


def _storage(handler) -> SupabaseStorage:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SupabaseStorage(
        supabase_url=f"{SUPABASE_URL}/",
        service_role_key="service-key",
        bucket="images",
        client=client,
    )


def test_build_upload_path_keeps_extension_and_defaults_to_jpg() -> None:
    assert re.fullmatch(r"posts/\d+-[0-9a-f]{10}\.png", build_upload_path("Campus Photo.PNG"))
    assert build_upload_path(None).endswith(".jpg")
    assert build_upload_path("no-extension").endswith(".jpg")
    assert build_upload_path("a.webp") != build_upload_path("a.webp")


def test_put_uploads_and_returns_public_url() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = request.content
        return httpx.Response(200, json={"Key": "images/posts/x.png"})

    url = asyncio.run(_storage(handler).put("posts/x.png", b"png-bytes", "image/png"))

    assert url == f"{SUPABASE_URL}/storage/v1/object/public/images/posts/x.png"
    assert seen["url"] == f"{SUPABASE_URL}/storage/v1/object/images/posts/x.png"
    headers = seen["headers"]
    assert headers["authorization"] == "Bearer service-key"
    assert headers["x-upsert"] == "false"
    assert headers["content-type"] == "image/png"
    assert seen["body"] == b"png-bytes"


def test_put_rejection_raises_storage_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"message": "The resource already exists"})

    with pytest.raises(StorageError, match="already exists"):
        asyncio.run(_storage(handler).put("posts/x.png", b"data", "image/png"))


def test_unconfigured_storage_is_unavailable() -> None:
    storage = SupabaseStorage(supabase_url=None, service_role_key=None, bucket="images")

    assert storage.configured is False
    with pytest.raises(StorageUnavailableError):
        asyncio.run(storage.put("posts/x.png", b"data", "image/png"))


def test_missing_service_key_fails_before_any_request() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=[])

    storage = SupabaseStorage(
        supabase_url=SUPABASE_URL,
        service_role_key="",
        bucket="images",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    with pytest.raises(StorageUnavailableError):
        asyncio.run(storage.ensure_bucket())
    assert requests == []


def test_ensure_bucket_creates_missing_public_bucket() -> None:
    created: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json=[{"id": "avatars", "name": "avatars"}])
        created.append(json.loads(request.content))
        return httpx.Response(200, json={"name": "images"})

    assert asyncio.run(_storage(handler).ensure_bucket()) is True
    assert created == [{"id": "images", "name": "images", "public": True}]


def test_ensure_bucket_is_a_no_op_when_present() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        return httpx.Response(200, json=[{"id": "images", "name": "images"}])

    assert asyncio.run(_storage(handler).ensure_bucket()) is False


class _FakeStorage:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.uploads: list[tuple[str, bytes, str]] = []

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        if self.error is not None:
            raise self.error
        self.uploads.append((path, data, content_type))
        return f"{SUPABASE_URL}/storage/v1/object/public/images/{path}"


@pytest.fixture
def upload_client() -> Iterator[tuple[TestClient, _FakeStorage]]:
    storage = _FakeStorage()
    app.dependency_overrides[get_storage] = lambda: storage

    with TestClient(app) as client:
        yield client, storage

    app.dependency_overrides.clear()


def test_upload_route_returns_public_url(upload_client) -> None:
    client, storage = upload_client

    response = client.post("/upload", files={"file": ("campus.png", b"png-bytes", "image/png")})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["url"].startswith(f"{SUPABASE_URL}/storage/v1/object/public/images/posts/")
    path, data, content_type = storage.uploads[0]
    assert path.endswith(".png")
    assert data == b"png-bytes"
    assert content_type == "image/png"


def test_upload_route_requires_a_file(upload_client) -> None:
    client, storage = upload_client

    response = client.post("/upload")

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "No file provided"}
    assert storage.uploads == []


@pytest.mark.parametrize(
    ("error", "status_code"),
    [
        (StorageUnavailableError("not configured"), 503),
        (StorageError("upload rejected"), 502),
    ],
)
def test_upload_route_maps_storage_failures(upload_client, error, status_code) -> None:
    client, storage = upload_client
    storage.error = error

    response = client.post("/upload", files={"file": ("campus.png", b"png-bytes", "image/png")})

    assert response.status_code == status_code
    assert response.json()["success"] is False
