from __future__ import annotations

from typing import IO, Any, Dict, List, Tuple, Union

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from app.errors import StorageError

Payload = Union[bytes, IO[bytes]]


class ObjectStore:
    def upload(self, bucket: str, name: str, data: Payload, content_type: str) -> str: ...  # pragma: no cover

    def remove(self, bucket: str, names: List[str]) -> None: ...  # pragma: no cover

    def ensure_bucket(self, bucket: str, public: bool = True) -> None: ...  # pragma: no cover


class S3StorageClient(ObjectStore):
    def __init__(
        self,
        access_key: str | None,
        secret_key: str | None,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        public_url: str | None = None,
        addressing_style: str | None = None,
    ) -> None:
        self.access_key = (access_key or "").strip()
        self.secret_key = (secret_key or "").strip()
        self.endpoint_url = (endpoint_url or "").rstrip("/") or None
        self.region_name = (region_name or "").strip() or None
        self.public_url_base = (public_url or "").rstrip("/")
        self._memory: Dict[Tuple[str, str], bytes] = {}
        self._client = None
        if self.is_configured():
            session = boto3.session.Session(
                aws_access_key_id=self.access_key,
                aws_secret_access_key=self.secret_key,
                region_name=self.region_name,
            )
            config = BotoConfig(
                s3={"addressing_style": (addressing_style or "virtual").lower()}
            )
            self._client = session.client("s3", endpoint_url=self.endpoint_url, config=config)

    def is_configured(self) -> bool:
        return bool(self.access_key and self.secret_key)

    def upload(self, bucket: str, name: str, data: Payload, content_type: str = "application/octet-stream") -> str:
        key = self._normalize_path(name)
        if self._client is None:
            self._memory[(bucket, key)] = data if isinstance(data, bytes) else data.read()
            return self.public_url(bucket, key)
        try:
            self._client.put_object(
                Bucket=bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover - AWS error surface
            raise StorageError(f"S3 upload failed: {exc}") from exc
        return self.public_url(bucket, key)

    def remove(self, bucket: str, names: List[str]) -> None:
        keys = [self._normalize_path(name) for name in names if name]
        if not keys:
            return
        if self._client is None:
            for key in keys:
                self._memory.pop((bucket, key), None)
            return
        try:
            response = self._client.delete_objects(
                Bucket=bucket,
                Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
            )
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover
            raise StorageError(f"S3 delete failed: {exc}") from exc
        errors = response.get("Errors") or []
        if errors:
            failed = ", ".join(str(item.get("Key")) for item in errors)
            raise StorageError(f"S3 delete failed for: {failed}")

    def ensure_bucket(self, bucket: str, public: bool = True) -> None:
        if self._client is None:
            return
        try:
            self._client.head_bucket(Bucket=bucket)
            return
        except ClientError:
            pass
        kwargs: Dict[str, Any] = {"Bucket": bucket}
        if public:
            kwargs["ACL"] = "public-read"
        try:
            self._client.create_bucket(**kwargs)
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover
            raise StorageError(f"S3 bucket creation failed: {exc}") from exc

    def exists(self, bucket: str, name: str) -> bool:
        key = self._normalize_path(name)
        if self._client is None:
            return (bucket, key) in self._memory
        try:
            self._client.head_object(Bucket=bucket, Key=key)
        except ClientError:
            return False
        return True

    def public_url(self, bucket: str, path: str) -> str:
        clean = self._normalize_path(path)
        if self.public_url_base:
            return f"{self.public_url_base}/{bucket}/{clean}"
        if self.endpoint_url:
            return f"{self.endpoint_url}/{bucket}/{clean}"
        return f"/{bucket}/{clean}"

    def _normalize_path(self, path: str | None) -> str:
        if not path:
            return ""
        return "/".join(part for part in path.strip().split("/") if part)
