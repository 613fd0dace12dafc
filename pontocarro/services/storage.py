import logging
import os
import shutil
from pathlib import Path
from typing import List

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from pontocarro.core.config import Settings


logger = logging.getLogger(__name__)

# delete_objects accepts at most 1000 keys per call
DELETE_BATCH_SIZE = 1000


class StorageError(Exception):
    pass


class ImageStorage:
    """Interface of an image host. Keys look like vehicles/<vehicle_id>/<name>."""

    def save(self, key: str, data: bytes, content_type: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def delete_prefix(self, prefix: str) -> int:
        """Delete every object under prefix, return how many were removed."""
        raise NotImplementedError

    def object_url(self, key: str) -> str:
        raise NotImplementedError

    def close(self) -> None:
        pass


class S3ImageStorage(ImageStorage):
    def __init__(self, settings: Settings, client=None) -> None:
        self.bucket = settings.AWS_S3_BUCKET_NAME
        self.region = settings.AWS_S3_REGION
        self.endpoint_url = settings.AWS_S3_ENDPOINT_URL.strip().rstrip("/") if settings.AWS_S3_ENDPOINT_URL else None

        if client is None:
            # Virtual-hosted-style addressing: the bucket goes in the host name
            s3_config = Config(
                region_name=self.region,
                signature_version="s3v4",
                s3={"addressing_style": "virtual"},
            )
            client_kwargs = {
                "aws_access_key_id": settings.AWS_ACCESS_KEY_ID,
                "aws_secret_access_key": settings.AWS_SECRET_ACCESS_KEY,
                "region_name": self.region,
                "config": s3_config,
            }
            # Only for custom endpoints (MinIO, DigitalOcean Spaces, ...)
            if self.endpoint_url:
                client_kwargs["endpoint_url"] = self.endpoint_url
            client = boto3.client("s3", **client_kwargs)

        self.client = client
        logger.info("S3 image storage ready: bucket=%s region=%s", self.bucket, self.region)

    def save(self, key: str, data: bytes, content_type: str) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000, immutable",
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("Error uploading %s to S3: %s", key, exc)
            raise StorageError(f"Falha ao enviar {key}") from exc

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Falha ao excluir {key}") from exc

    def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            keys: List[str] = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))

            for start in range(0, len(keys), DELETE_BATCH_SIZE):
                batch = keys[start:start + DELETE_BATCH_SIZE]
                response = self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
                errors = response.get("Errors", [])
                for err in errors:
                    logger.warning("Could not delete %s: %s", err.get("Key"), err.get("Message"))
                deleted += len(batch) - len(errors)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Falha ao excluir {prefix}") from exc
        return deleted

    def object_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close:
            close()


class LocalImageStorage(ImageStorage):
    """Stores images on disk under MEDIA_ROOT; served at <APP_URL>/uploads/."""

    def __init__(self, root: str, base_url: str) -> None:
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Chave inválida: {key}")
        return path

    def save(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Falha ao gravar {key}") from exc

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Falha ao excluir {key}") from exc

    def delete_prefix(self, prefix: str) -> int:
        folder = self._path(prefix.rstrip("/"))
        if not folder.is_dir():
            return 0
        count = sum(1 for _, _, files in os.walk(folder) for _ in files)
        try:
            shutil.rmtree(folder)
        except OSError as exc:
            raise StorageError(f"Falha ao excluir {prefix}") from exc
        return count

    def object_url(self, key: str) -> str:
        return f"{self.base_url}/uploads/{key}"


def build_storage(settings: Settings) -> ImageStorage:
    if settings.IMAGE_STORAGE == "local":
        return LocalImageStorage(settings.MEDIA_ROOT, settings.APP_URL)
    return S3ImageStorage(settings)
