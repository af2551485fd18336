"""
Tests for the local and S3 blob stores.
"""

import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from datalens.core.config import Settings
from datalens.core.errors import StorageError
from datalens.services.blob_store import (
    LocalBlobStore,
    S3BlobStore,
    build_blob_store,
    build_locator,
)


def test_build_locator():
    locator = build_locator("user-1", "../reports/q1.csv")

    owner, _, rest = locator.partition("/")
    assert owner == "user-1"
    assert rest.endswith("_q1.csv")
    assert build_locator("user-1", "q1.csv") != build_locator("user-1", "q1.csv")


# ============ Local ============

def test_local_put_get_delete(blob_store: LocalBlobStore):
    locator = blob_store.put("user-1", "data.csv", b"a,b\n1,2\n", "text/csv")

    assert blob_store.get(locator) == b"a,b\n1,2\n"

    blob_store.delete(locator)
    with pytest.raises(StorageError):
        blob_store.get(locator)


def test_local_delete_missing_is_quiet(blob_store: LocalBlobStore):
    blob_store.delete("user-1/never-stored.csv")


def test_local_rejects_escaping_locators(blob_store: LocalBlobStore):
    with pytest.raises(StorageError):
        blob_store.get("../../etc/passwd")


def test_local_download_url(blob_store: LocalBlobStore):
    locator = blob_store.put("user-1", "data.csv", b"x\n1\n")

    assert blob_store.download_url(locator).startswith("file://")


# ============ S3 ============

@pytest.fixture
def s3_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def s3_store(s3_client: MagicMock) -> S3BlobStore:
    store = S3BlobStore(bucket_name="datasets", s3_client=s3_client)
    store.initialize()
    return store


def _client_error(operation: str) -> ClientError:
    return ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, operation)


def test_s3_put(s3_store: S3BlobStore, s3_client: MagicMock):
    locator = s3_store.put("user-1", "data.csv", b"abc", "text/csv")

    s3_client.put_object.assert_called_once()
    kwargs = s3_client.put_object.call_args.kwargs
    assert kwargs["Bucket"] == "datasets"
    assert kwargs["Key"] == locator
    assert kwargs["Body"] == b"abc"
    assert kwargs["ContentType"] == "text/csv"


def test_s3_get(s3_store: S3BlobStore, s3_client: MagicMock):
    s3_client.get_object.return_value = {"Body": io.BytesIO(b"payload")}

    assert s3_store.get("user-1/x_data.csv") == b"payload"
    s3_client.get_object.assert_called_once_with(Bucket="datasets", Key="user-1/x_data.csv")


def test_s3_errors_become_storage_errors(s3_store: S3BlobStore, s3_client: MagicMock):
    s3_client.get_object.side_effect = _client_error("GetObject")
    s3_client.delete_object.side_effect = _client_error("DeleteObject")
    s3_client.put_object.side_effect = _client_error("PutObject")

    with pytest.raises(StorageError):
        s3_store.get("user-1/x_data.csv")
    with pytest.raises(StorageError):
        s3_store.delete("user-1/x_data.csv")
    with pytest.raises(StorageError):
        s3_store.put("user-1", "data.csv", b"abc")


def test_s3_presigned_download_url(s3_store: S3BlobStore, s3_client: MagicMock):
    s3_client.generate_presigned_url.return_value = "https://example.test/signed"

    url = s3_store.download_url("user-1/x_data.csv", expires_in=60)

    assert url == "https://example.test/signed"
    s3_client.generate_presigned_url.assert_called_once_with(
        "get_object",
        Params={"Bucket": "datasets", "Key": "user-1/x_data.csv"},
        ExpiresIn=60,
    )


def test_s3_requires_initialize():
    store = S3BlobStore(bucket_name="datasets")

    with pytest.raises(StorageError):
        store.get("user-1/x_data.csv")


# ============ Factory ============

def test_build_blob_store_local(temp_data_dir):
    store = build_blob_store(Settings(DATA_DIR=str(temp_data_dir), BLOB_BACKEND="local"))

    assert isinstance(store, LocalBlobStore)
    assert store.root_dir == temp_data_dir / "blobs"


def test_build_blob_store_s3():
    store = build_blob_store(Settings(BLOB_BACKEND="S3", S3_BUCKET="uploads", S3_ENDPOINT_URL="http://minio:9000"))

    assert isinstance(store, S3BlobStore)
    assert store.bucket_name == "uploads"
    assert store.s3_client is None


def test_build_blob_store_unknown():
    with pytest.raises(ValueError):
        build_blob_store(Settings(BLOB_BACKEND="ftp"))
