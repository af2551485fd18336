"""
Blob Storage for Uploaded Files

Raw upload bytes live outside the dataset store, addressed by an opaque
locator of the form ``<owner>/<uuid>_<filename>``.
- LocalBlobStore: files under a directory (default for single-node runs)
- S3BlobStore: any S3-compatible endpoint through boto3

Stores are built explicitly and must be initialized before use. Every
backend failure surfaces as StorageError.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..core.config import Settings
from ..core.errors import StorageError

logger = logging.getLogger("datalens.blob_store")


def build_locator(owner_key: str, filename: str) -> str:
    """Unique object key for an upload: ``<owner>/<uuid>_<basename>``."""
    owner = str(owner_key).replace("/", "_")
    basename = Path(filename or "upload").name
    return f"{owner}/{uuid.uuid4()}_{basename}"


class BlobStore:
    """Base interface for blob storage backends."""

    name: str = "base"

    def initialize(self) -> None:
        """Prepare the backend (create directories, open clients)."""

    def put(self, owner_key: str, filename: str, content: bytes, content_type: Optional[str] = None) -> str:
        raise NotImplementedError

    def get(self, locator: str) -> bytes:
        raise NotImplementedError

    def delete(self, locator: str) -> None:
        raise NotImplementedError

    def download_url(self, locator: str, expires_in: int = 3600) -> str:
        raise NotImplementedError


# ═══════════════════════════════════════════════════════════════════════════
# Local Filesystem
# ═══════════════════════════════════════════════════════════════════════════


class LocalBlobStore(BlobStore):
    """Stores blobs as files under ``root_dir``."""

    name = "local"

    def __init__(self, root_dir: str):
        self.root_dir = Path(root_dir)

    def initialize(self) -> None:
        self.root_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Local blob store at %s", self.root_dir)

    def _path(self, locator: str) -> Path:
        root = self.root_dir.resolve()
        path = (root / locator.lstrip("/")).resolve()
        if root not in path.parents:
            raise StorageError(f"Invalid storage locator: {locator!r}")
        return path

    def put(self, owner_key: str, filename: str, content: bytes, content_type: Optional[str] = None) -> str:
        locator = build_locator(owner_key, filename)
        path = self._path(locator)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as e:
            raise StorageError(f"Failed to store {locator}: {e}") from e
        logger.info("Stored %d bytes as %s", len(content), locator)
        return locator

    def get(self, locator: str) -> bytes:
        try:
            return self._path(locator).read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {locator}: {e}") from e

    def delete(self, locator: str) -> None:
        try:
            self._path(locator).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {locator}: {e}") from e
        logger.info("Deleted %s", locator)

    def download_url(self, locator: str, expires_in: int = 3600) -> str:
        return self._path(locator).as_uri()


# ═══════════════════════════════════════════════════════════════════════════
# S3-Compatible Object Storage
# ═══════════════════════════════════════════════════════════════════════════


class S3BlobStore(BlobStore):
    """Stores blobs in one bucket of an S3-compatible service."""

    name = "s3"

    def __init__(
        self,
        bucket_name: str,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region_name: Optional[str] = None,
        s3_client=None,
    ):
        self.bucket_name = bucket_name
        self.endpoint_url = endpoint_url
        self.access_key = access_key
        self.secret_key = secret_key
        self.region_name = region_name
        self.s3_client = s3_client

    def initialize(self) -> None:
        if self.s3_client is None:
            self.s3_client = boto3.client(
                's3',
                endpoint_url=self.endpoint_url,
                aws_access_key_id=self.access_key,
                aws_secret_access_key=self.secret_key,
                region_name=self.region_name,
            )
        logger.info("Connected to S3 at %s (bucket %s)", self.endpoint_url or "aws", self.bucket_name)

    def _client(self):
        if self.s3_client is None:
            raise StorageError("S3 blob store used before initialize()")
        return self.s3_client

    def put(self, owner_key: str, filename: str, content: bytes, content_type: Optional[str] = None) -> str:
        locator = build_locator(owner_key, filename)
        try:
            self._client().put_object(
                Bucket=self.bucket_name,
                Key=locator,
                Body=content,
                ContentType=content_type or "application/octet-stream",
                ContentLength=len(content),
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to upload {locator} to S3: {e}") from e
        logger.info("File uploaded to bucket %s as %s", self.bucket_name, locator)
        return locator

    def get(self, locator: str) -> bytes:
        try:
            response = self._client().get_object(Bucket=self.bucket_name, Key=locator)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to download {locator} from S3: {e}") from e

    def delete(self, locator: str) -> None:
        key = locator.lstrip("/")
        try:
            self._client().delete_object(Bucket=self.bucket_name, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to delete {key} from S3: {e}") from e
        logger.info("File %s deleted from bucket %s", key, self.bucket_name)

    def download_url(self, locator: str, expires_in: int = 3600) -> str:
        try:
            return self._client().generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": locator},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to presign {locator}: {e}") from e


def build_blob_store(config: Settings) -> BlobStore:
    """Construct (but do not initialize) the configured blob store."""
    backend = config.BLOB_BACKEND.lower()
    if backend == "s3":
        return S3BlobStore(
            bucket_name=config.S3_BUCKET,
            endpoint_url=config.S3_ENDPOINT_URL,
            access_key=config.S3_ACCESS_KEY_ID,
            secret_key=config.S3_SECRET_ACCESS_KEY,
            region_name=config.S3_REGION,
        )
    if backend == "local":
        return LocalBlobStore(str(Path(config.DATA_DIR) / "blobs"))
    raise ValueError(f"Unknown BLOB_BACKEND: {config.BLOB_BACKEND!r}")
