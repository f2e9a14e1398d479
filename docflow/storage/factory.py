from pathlib import Path

from docflow.config.settings import Settings
from docflow.storage.base import BaseObjectStorage
from docflow.storage.local_adapter import LocalStorageAdapter
from docflow.storage.s3_adapter import S3StorageAdapter


class ObjectStorageFactory:
    """Creates the configured object storage adapter."""

    DRIVERS: tuple[str, ...] = ("s3", "local")

    @classmethod
    def create(cls, settings: Settings) -> BaseObjectStorage:
        driver = settings.storage_driver.lower()
        if driver == "s3":
            return S3StorageAdapter(
                bucket=settings.s3_bucket,
                region=settings.s3_region,
                endpoint_url=settings.s3_endpoint_url,
                access_key_id=settings.s3_access_key_id,
                secret_access_key=settings.s3_secret_access_key,
                timeout_seconds=settings.provider_upload_timeout_seconds,
            )
        if driver == "local":
            return LocalStorageAdapter(Path(settings.storage_local_root))
        raise ValueError(
            f"Unknown storage driver '{driver}'. Choose from: {list(cls.DRIVERS)}"
        )
