from __future__ import annotations

from typing import List

import httpx

from app.clients.s3_storage import ObjectStore, Payload
from app.errors import StorageError


class SupabaseStorageClient(ObjectStore):
    def __init__(
        self,
        api_url: str | None,
        api_key: str | None,
        public_url: str | None = None,
        timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_url = (api_url or "").rstrip("/")
        self.public_url_base = (public_url or "").rstrip("/")
        self.api_key = (api_key or "").strip()
        self.timeout = timeout
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    def upload(self, bucket: str, name: str, data: Payload, content_type: str = "application/octet-stream") -> str:
        object_path = self._normalize_path(name)
        url = f"{self.api_url}/storage/v1/object/{bucket}/{object_path}"
        headers = {
            **self._auth_headers(),
            "Content-Type": content_type,
            "x-upsert": "true",
        }
        body = data if isinstance(data, bytes) else data.read()
        response = self._send("POST", url, headers=headers, content=body)
        if response.status_code not in (200, 201):
            raise StorageError(f"Supabase upload failed: {response.status_code} {response.text}")
        return self.public_url(bucket, object_path)

    def remove(self, bucket: str, names: List[str]) -> None:
        prefixes = [self._normalize_path(name) for name in names if name]
        if not prefixes:
            return
        url = f"{self.api_url}/storage/v1/object/{bucket}"
        response = self._send("DELETE", url, headers=self._auth_headers(), json={"prefixes": prefixes})
        if response.status_code not in (200, 204):
            raise StorageError(f"Supabase delete failed: {response.status_code} {response.text}")

    def ensure_bucket(self, bucket: str, public: bool = True) -> None:
        response = self._send("GET", f"{self.api_url}/storage/v1/bucket/{bucket}", headers=self._auth_headers())
        if response.status_code == 200:
            return
        response = self._send(
            "POST",
            f"{self.api_url}/storage/v1/bucket",
            headers=self._auth_headers(),
            json={"id": bucket, "name": bucket, "public": public},
        )
        if response.status_code not in (200, 201):
            raise StorageError(f"Supabase bucket creation failed: {response.status_code} {response.text}")

    def public_url(self, bucket: str, path: str) -> str:
        base = self.public_url_base or f"{self.api_url}/storage/v1/object/public"
        joined_path = "/".join(part.strip("/") for part in (bucket, path))
        return f"{base.rstrip('/')}/{joined_path}"

    def _auth_headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
        }

    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        if not self.is_configured():
            raise StorageError("Supabase storage is not configured")
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                return client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise StorageError(f"Supabase storage request failed: {exc}") from exc

    def _normalize_path(self, path: str) -> str:
        return path.strip().lstrip("/")
