from __future__ import annotations

import logging
import secrets
import time
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Any

import httpx

from scholarship_gateway.core.config import get_settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the blob store rejects or cannot take an upload."""


class StorageUnavailableError(StorageError):
    """Raised when the blob store is not configured."""


def build_upload_path(filename: str | None, *, prefix: str = "posts") -> str:
    extension = PurePosixPath(filename or "").suffix.lower() or ".jpg"
    return f"{prefix}/{int(time.time() * 1000)}-{secrets.token_hex(5)}{extension}"


class SupabaseStorage:
    """Supabase Storage REST client for a single public bucket."""

    def __init__(
        self,
        *,
        supabase_url: str | None,
        service_role_key: str | None,
        bucket: str,
        timeout_seconds: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.supabase_url = supabase_url.rstrip("/") if supabase_url else None
        self.service_role_key = service_role_key
        self.bucket = bucket
        self.timeout_seconds = timeout_seconds
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.supabase_url and self.service_role_key)

    def public_url(self, path: str) -> str:
        return f"{self.supabase_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        headers = {**self._auth_headers(), "Content-Type": content_type, "x-upsert": "false"}
        response = await self._request(
            "POST",
            f"/storage/v1/object/{self.bucket}/{path}",
            headers=headers,
            content=data,
        )
        if response.status_code not in {200, 201}:
            raise StorageError(f"upload rejected with status {response.status_code}: {_error_message(response)}")
        return self.public_url(path)

    async def ensure_bucket(self) -> bool:
        """Create the bucket as public if it is missing; returns True when it had to be created."""
        response = await self._request("GET", "/storage/v1/bucket", headers=self._auth_headers())
        if response.status_code != 200:
            raise StorageError(f"bucket listing failed with status {response.status_code}")
        if any(isinstance(item, dict) and item.get("name") == self.bucket for item in response.json()):
            return False

        response = await self._request(
            "POST",
            "/storage/v1/bucket",
            headers=self._auth_headers(),
            json={"id": self.bucket, "name": self.bucket, "public": True},
        )
        if response.status_code not in {200, 201}:
            raise StorageError(f"bucket creation failed with status {response.status_code}")
        return True

    def _auth_headers(self) -> dict[str, str]:
        key = self.service_role_key
        if not self.supabase_url or not key:
            raise StorageUnavailableError("SG_SUPABASE_URL and SG_SUPABASE_SERVICE_ROLE_KEY are required")
        return {
            "Authorization": f"Bearer {key}",
            "apikey": key,
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.supabase_url}{path}"
        try:
            if self._client is not None:
                return await self._client.request(method, url, **kwargs)
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:  # pragma: no cover - network dependent
            raise StorageError("storage service unavailable") from exc


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        return str(payload.get("message") or payload.get("error") or payload)
    return str(payload)


@lru_cache
def get_storage() -> SupabaseStorage:
    settings = get_settings()
    return SupabaseStorage(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        bucket=settings.storage_bucket,
        timeout_seconds=settings.storage_timeout_seconds,
    )
