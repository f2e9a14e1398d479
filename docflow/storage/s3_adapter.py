from datetime import datetime
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from docflow.storage.base import BaseObjectStorage
from docflow.storage.exceptions import ObjectNotFoundError, StorageError

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class S3StorageAdapter(BaseObjectStorage):
    """Object storage adapter for S3 and S3-compatible services."""

    def __init__(
        self,
        *,
        bucket: str,
        region: str,
        endpoint_url: str | None = None,
        access_key_id: str = "",
        secret_access_key: str = "",
        timeout_seconds: int = 120,
    ) -> None:
        if not bucket:
            raise ValueError("s3_bucket is required for storage_driver=s3")
        self._bucket = bucket
        client_kwargs: dict[str, Any] = {
            "region_name": region,
            "config": Config(
                retries={"max_attempts": 3, "mode": "standard"},
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
            ),
        }
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        if access_key_id and secret_access_key:
            client_kwargs["aws_access_key_id"] = access_key_id
            client_kwargs["aws_secret_access_key"] = secret_access_key
        self._client = boto3.client("s3", **client_kwargs)

    def get(self, path: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=self._key(path))
            body: bytes = response["Body"].read()
        except ClientError as exc:
            raise self._translate(exc, path) from exc
        except BotoCoreError as exc:
            raise StorageError(f"S3 get failed for {path}: {exc}") from exc
        return body

    def put(self, path: str, data: bytes, content_type: str | None = None) -> None:
        extra: dict[str, Any] = {"ContentType": content_type} if content_type else {}
        try:
            self._client.put_object(
                Bucket=self._bucket, Key=self._key(path), Body=data, **extra
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"S3 put failed for {path}: {exc}") from exc

    def delete(self, path: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=self._key(path))
        except ClientError as exc:
            if self._error_code(exc) in _NOT_FOUND_CODES:
                return
            raise StorageError(f"S3 delete failed for {path}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"S3 delete failed for {path}: {exc}") from exc

    def exists(self, path: str) -> bool:
        try:
            self._head(path)
        except ObjectNotFoundError:
            return False
        return True

    def size(self, path: str) -> int:
        return int(self._head(path)["ContentLength"])

    def last_modified(self, path: str) -> datetime:
        modified: datetime = self._head(path)["LastModified"]
        return modified

    def _head(self, path: str) -> dict[str, Any]:
        try:
            head: dict[str, Any] = self._client.head_object(
                Bucket=self._bucket, Key=self._key(path)
            )
        except ClientError as exc:
            raise self._translate(exc, path) from exc
        except BotoCoreError as exc:
            raise StorageError(f"S3 head failed for {path}: {exc}") from exc
        return head

    @staticmethod
    def _key(path: str) -> str:
        return path.lstrip("/")

    @staticmethod
    def _error_code(exc: ClientError) -> str:
        return str(exc.response.get("Error", {}).get("Code", ""))

    def _translate(self, exc: ClientError, path: str) -> StorageError:
        if self._error_code(exc) in _NOT_FOUND_CODES:
            return ObjectNotFoundError(f"Object not found: {path}")
        return StorageError(f"S3 request failed for {path}: {exc}")
