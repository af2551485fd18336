"""
Dataset Storage Service

File-based persistence for dataset records and their column profiles.
- One JSON document per dataset, column profiles embedded
- Atomic temp-file-then-rename writes, so a completed run's counts,
  profiles and status land together or not at all
- In-memory cache guarded by a re-entrant lock for concurrent workers

Terminal writes against a dataset that has been deleted return None instead
of raising, so a late profiling run can never resurrect a removed record.
"""

import json
import logging
import os
import tempfile
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.config import settings
from ..core.errors import InvalidStatusTransitionError, PersistenceError
from ..models.dataset import ColumnProfile, Dataset, DatasetStatus, FileKind

logger = logging.getLogger("datalens.data_store")


class DatasetStore:
    """JSON-file dataset store shared by request handlers and profiling workers."""

    def __init__(self, data_dir: str = None):
        self.data_dir = Path(data_dir or settings.DATA_DIR)
        self.datasets_dir = self.data_dir / "datasets"
        self.datasets_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()

        # In-memory cache of dataset documents
        self._datasets_cache: Dict[str, Dict[str, Any]] = {}
        self._load_datasets()

    @staticmethod
    def _atomic_write(file_path: Path, data: Any, indent: int = None) -> None:
        """Dump JSON to a sibling temp file, then rename it over ``file_path``."""
        fd, tmp_path = tempfile.mkstemp(dir=str(file_path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=indent, default=str)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, str(file_path))
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def _dataset_file(self, dataset_id: str) -> Path:
        return self.datasets_dir / f"{dataset_id}.json"

    def _write(self, document: Dict[str, Any]) -> None:
        try:
            self._atomic_write(self._dataset_file(document["id"]), document, indent=2)
        except OSError as e:
            raise PersistenceError(f"Failed to write dataset {document['id']}: {e}") from e

    def _load_datasets(self):
        """Load all dataset documents from disk into the memory cache."""
        with self._lock:
            for dataset_file in self.datasets_dir.glob("*.json"):
                try:
                    with open(dataset_file) as f:
                        document = json.load(f)
                    self._datasets_cache[document["id"]] = document
                except (OSError, ValueError, KeyError) as e:
                    logger.warning("Skipping unreadable dataset file %s: %s", dataset_file, e)

    # ============ Dataset Operations ============

    def create_dataset(
        self,
        owner_id: str,
        name: str,
        storage_locator: str,
        file_size: int,
        file_kind: FileKind,
    ) -> Dataset:
        """Create a dataset record in PROCESSING state with zero counts."""
        now = datetime.utcnow().isoformat()
        dataset = Dataset(
            id=str(uuid.uuid4()),
            owner_id=str(owner_id),
            name=name,
            file_kind=FileKind(file_kind),
            file_size=int(file_size),
            storage_locator=storage_locator,
            status=DatasetStatus.PROCESSING,
            total_rows=0,
            total_columns=0,
            created_at=now,
            updated_at=now,
        )
        document = dataset.to_dict()
        with self._lock:
            self._write(document)
            self._datasets_cache[dataset.id] = document
        return dataset

    def find_dataset(self, dataset_id: str) -> Optional[Dataset]:
        """Get a dataset by ID."""
        with self._lock:
            document = self._datasets_cache.get(dataset_id)
            return Dataset.from_dict(document) if document else None

    def find_owned_dataset(self, dataset_id: str, owner_id: str) -> Optional[Dataset]:
        """Get a dataset by ID, only if it belongs to ``owner_id``."""
        dataset = self.find_dataset(dataset_id)
        if dataset is None or dataset.owner_id != str(owner_id):
            return None
        return dataset

    def list_datasets(self, owner_id: str) -> List[Dataset]:
        """List an owner's datasets, newest first."""
        with self._lock:
            documents = [
                d for d in self._datasets_cache.values() if d["owner_id"] == str(owner_id)
            ]
        documents.sort(key=lambda d: d.get("created_at", ""), reverse=True)
        return [Dataset.from_dict(d) for d in documents]

    def get_column_profiles(self, dataset_id: str) -> List[ColumnProfile]:
        dataset = self.find_dataset(dataset_id)
        return dataset.columns if dataset else []

    def delete_dataset(self, dataset_id: str) -> bool:
        """Delete a dataset together with its column profiles."""
        with self._lock:
            if dataset_id not in self._datasets_cache:
                return False

            dataset_file = self._dataset_file(dataset_id)
            try:
                if dataset_file.exists():
                    dataset_file.unlink()
            except OSError as e:
                raise PersistenceError(f"Failed to delete dataset {dataset_id}: {e}") from e

            del self._datasets_cache[dataset_id]
            return True

    # ============ Profiling Results ============

    def _updated(self, dataset_id: str, updates: Dict[str, Any]) -> Optional[Dataset]:
        """Apply ``updates`` in one atomic write; None if the dataset is gone."""
        with self._lock:
            current = self._datasets_cache.get(dataset_id)
            if current is None:
                return None

            document = {**current, **updates, "updated_at": datetime.utcnow().isoformat()}
            self._write(document)
            self._datasets_cache[dataset_id] = document
            return Dataset.from_dict(document)

    def save_column_profiles(self, dataset_id: str, profiles: List[ColumnProfile]) -> Optional[Dataset]:
        """Replace the dataset's column profiles wholesale."""
        return self._updated(dataset_id, {"columns": [p.to_dict() for p in profiles]})

    def set_status(
        self,
        dataset_id: str,
        status: DatasetStatus,
        row_count: int = 0,
        column_count: int = 0,
    ) -> Optional[Dataset]:
        """Move a PROCESSING dataset to a terminal status."""
        status = DatasetStatus(status)
        with self._lock:
            current = self._datasets_cache.get(dataset_id)
            if current is None:
                return None

            current_status = DatasetStatus(current["status"])
            if not current_status.can_transition_to(status):
                raise InvalidStatusTransitionError(
                    f"Dataset {dataset_id} cannot move from {current_status.value} to {status.value}"
                )

            return self._updated(dataset_id, {
                "status": status.value,
                "total_rows": int(row_count),
                "total_columns": int(column_count),
            })

    def complete_dataset(
        self,
        dataset_id: str,
        row_count: int,
        column_count: int,
        profiles: List[ColumnProfile],
    ) -> Optional[Dataset]:
        """Persist counts, profiles and COMPLETED status in a single write."""
        with self._lock:
            current = self._datasets_cache.get(dataset_id)
            if current is None:
                return None

            current_status = DatasetStatus(current["status"])
            if not current_status.can_transition_to(DatasetStatus.COMPLETED):
                raise InvalidStatusTransitionError(
                    f"Dataset {dataset_id} cannot move from {current_status.value} to COMPLETED"
                )

            return self._updated(dataset_id, {
                "status": DatasetStatus.COMPLETED.value,
                "total_rows": int(row_count),
                "total_columns": int(column_count),
                "columns": [p.to_dict() for p in profiles],
            })

    def fail_dataset(self, dataset_id: str) -> Optional[Dataset]:
        """Mark a PROCESSING dataset FAILED; counts stay 0 and no profiles are kept."""
        return self.set_status(dataset_id, DatasetStatus.FAILED)
