"""
Dataset Service

Caller-facing operations over datasets: upload, listing, column profiles,
previews, download links and deletion. Upload validation happens here,
synchronously, before anything is stored; profiling itself is handed to the
ingestion coordinator and never awaited.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..core.config import settings
from ..core.errors import (
    DatasetNotFoundError,
    EmptyUploadError,
    FileTooLargeError,
    PersistenceError,
    StorageError,
)
from ..models.dataset import ColumnProfile, Dataset
from .blob_store import BlobStore
from .data_store import DatasetStore
from .ingestion_coordinator import IngestionCoordinator
from .tabular_reader import detect_file_kind, read_table

logger = logging.getLogger("datalens.datasets")


class DatasetService:
    """Upload and read access to an owner's datasets."""

    def __init__(
        self,
        store: DatasetStore,
        blob_store: BlobStore,
        coordinator: IngestionCoordinator,
        max_file_size_bytes: int = None,
    ):
        self.store = store
        self.blob_store = blob_store
        self.coordinator = coordinator
        self.max_file_size_bytes = max_file_size_bytes or settings.max_file_size_bytes

    # ============ Upload ============

    async def upload_dataset(
        self,
        owner_id: str,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
    ) -> Dataset:
        """Store the file, create a PROCESSING record and queue profiling.

        Raises UnsupportedFormatError or an InvalidUploadError before any
        storage call; StorageError/PersistenceError if storing fails.
        """
        file_kind = detect_file_kind(filename)

        if not content:
            raise EmptyUploadError("Uploaded file is empty")
        if len(content) > self.max_file_size_bytes:
            raise FileTooLargeError(
                f"File exceeds the maximum size of {self.max_file_size_bytes // (1024 * 1024)} MB"
            )

        locator = await asyncio.to_thread(
            self.blob_store.put, owner_id, filename, content, content_type
        )

        try:
            dataset = self.store.create_dataset(
                owner_id=owner_id,
                name=filename,
                storage_locator=locator,
                file_size=len(content),
                file_kind=file_kind,
            )
        except PersistenceError:
            logger.error("Could not record upload %s, removing stored blob %s", filename, locator)
            await asyncio.to_thread(self._discard_blob, locator)
            raise

        logger.info("Dataset %s uploaded by %s (%s, %d bytes)",
                    dataset.id, owner_id, file_kind.value, len(content))
        self.coordinator.submit(dataset.id, content)
        return dataset

    def _discard_blob(self, locator: str) -> None:
        try:
            self.blob_store.delete(locator)
        except StorageError as e:
            logger.warning("Orphaned blob %s left behind: %s", locator, e)

    # ============ Queries ============

    def list_datasets(self, owner_id: str) -> List[Dataset]:
        return self.store.list_datasets(owner_id)

    def get_dataset(self, dataset_id: str, owner_id: str) -> Dataset:
        dataset = self.store.find_owned_dataset(dataset_id, owner_id)
        if dataset is None:
            raise DatasetNotFoundError(f"Dataset {dataset_id} not found")
        return dataset

    def get_columns(self, dataset_id: str, owner_id: str) -> List[ColumnProfile]:
        return self.get_dataset(dataset_id, owner_id).columns

    def get_download_url(self, dataset_id: str, owner_id: str, expires_in: int = None) -> str:
        dataset = self.get_dataset(dataset_id, owner_id)
        return self.blob_store.download_url(
            dataset.storage_locator, expires_in or settings.PRESIGNED_URL_TTL_SECONDS
        )

    async def get_preview(self, dataset_id: str, owner_id: str, limit: int = None) -> List[Dict[str, Any]]:
        """First ``limit`` rows of the stored file as header -> value maps.

        With duplicate headers the later column wins in each map.
        """
        dataset = self.get_dataset(dataset_id, owner_id)
        limit = settings.PREVIEW_DEFAULT_LIMIT if limit is None else limit

        content = await asyncio.to_thread(self.blob_store.get, dataset.storage_locator)
        table = await asyncio.to_thread(read_table, content, dataset.file_kind)
        return [dict(zip(table.headers, row)) for row in table.rows[:limit]]

    # ============ Deletion ============

    async def delete_dataset(self, dataset_id: str, owner_id: str) -> None:
        """Remove the stored file, then the record and its column profiles."""
        dataset = self.get_dataset(dataset_id, owner_id)
        await asyncio.to_thread(self.blob_store.delete, dataset.storage_locator)
        self.store.delete_dataset(dataset_id)
        logger.info("Dataset %s deleted", dataset_id)
