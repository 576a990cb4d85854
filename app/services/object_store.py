"""
Object store adapters for damage photographs.

Two backends share one interface: a local filesystem store for development
and an S3 bucket for deployments. The lifecycle manager only ever sees
ObjectStore, so swapping backends never touches claim logic.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
import uuid

from pydantic import BaseModel

from app.core.config import Settings
from app.core.exceptions import StoreError
from app.core.logging import get_logger

logger = get_logger(__name__)


class StoredImage(BaseModel):
    """What a backend hands back after a successful write."""
    reference: str
    url: str
    size: int


def _blob_name(original_name: str) -> str:
    extension = Path(original_name or "").suffix.lower()
    return f"{uuid.uuid4().hex}{extension}"


class ObjectStore(ABC):
    """Base class for image blob storage."""

    @abstractmethod
    def store(self, data: bytes, original_name: str, mime_type: str) -> StoredImage:
        """Persist a blob. Raises StoreError on failure."""
        pass

    @abstractmethod
    def delete(self, reference: str) -> bool:
        """Remove a blob. Never raises; returns whether it succeeded."""
        pass

    def read(self, reference: str) -> bytes:
        """Fetch blob bytes back, used by analyzers that need the pixels."""
        raise NotImplementedError


class LocalObjectStore(ObjectStore):
    """Writes blobs under a directory and serves them from PUBLIC_BASE_URL/uploads."""

    def __init__(self, upload_dir: str, public_base_url: str):
        self.upload_dir = Path(upload_dir)
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")

    def _path(self, reference: str) -> Path:
        # References are bare file names; refuse anything that walks out of the directory
        path = (self.upload_dir / reference).resolve()
        if path.parent != self.upload_dir.resolve():
            raise StoreError("invalid reference", filename=reference)
        return path

    def store(self, data: bytes, original_name: str, mime_type: str) -> StoredImage:
        reference = _blob_name(original_name)
        try:
            self._path(reference).write_bytes(data)
        except OSError as e:
            raise StoreError(str(e), filename=original_name) from e

        logger.debug(f"Stored {original_name} ({mime_type}) as {reference}")
        return StoredImage(
            reference=reference,
            url=f"{self.public_base_url}/uploads/{reference}",
            size=len(data),
        )

    def read(self, reference: str) -> bytes:
        try:
            return self._path(reference).read_bytes()
        except OSError as e:
            raise StoreError(str(e), filename=reference) from e

    def delete(self, reference: str) -> bool:
        try:
            path = self._path(reference)
            if path.exists():
                path.unlink()
            return True
        except (OSError, StoreError) as e:
            logger.error(f"Failed to delete local blob {reference}: {e}")
            return False


class S3ObjectStore(ObjectStore):
    """S3 (or S3-compatible) bucket backend."""

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        public_base_url: Optional[str] = None,
        client=None
    ):
        self.bucket = bucket
        if client is None:
            import boto3
            client = boto3.client("s3", region_name=region, endpoint_url=endpoint_url)
        self.client = client
        if public_base_url:
            self.public_base_url = public_base_url.rstrip("/")
        elif endpoint_url:
            self.public_base_url = f"{endpoint_url.rstrip('/')}/{bucket}"
        else:
            self.public_base_url = f"https://{bucket}.s3.amazonaws.com"
        logger.info(f"S3 object store ready: bucket={bucket}")

    def store(self, data: bytes, original_name: str, mime_type: str) -> StoredImage:
        from botocore.exceptions import BotoCoreError, ClientError

        reference = _blob_name(original_name)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=reference,
                Body=data,
                ContentType=mime_type,
                Metadata={"original-name": original_name or ""},
            )
        except (BotoCoreError, ClientError) as e:
            raise StoreError(str(e), filename=original_name) from e

        return StoredImage(
            reference=reference,
            url=f"{self.public_base_url}/{reference}",
            size=len(data),
        )

    def read(self, reference: str) -> bytes:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = self.client.get_object(Bucket=self.bucket, Key=reference)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StoreError(str(e), filename=reference) from e

    def delete(self, reference: str) -> bool:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self.client.delete_object(Bucket=self.bucket, Key=reference)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to delete S3 object {reference}: {e}")
            return False


def build_object_store(config: Settings) -> ObjectStore:
    """Pick the backend named by OBJECT_STORE_BACKEND."""
    backend = config.OBJECT_STORE_BACKEND.lower()

    if backend == "s3":
        if not config.is_s3_configured:
            raise ValueError("OBJECT_STORE_BACKEND=s3 requires S3_BUCKET")
        return S3ObjectStore(
            bucket=config.S3_BUCKET,
            region=config.S3_REGION,
            endpoint_url=config.S3_ENDPOINT_URL,
            public_base_url=config.S3_PUBLIC_BASE_URL,
        )
    if backend == "local":
        return LocalObjectStore(config.UPLOAD_DIR, config.PUBLIC_BASE_URL)

    raise ValueError(f"Unknown object store backend: {backend}")
