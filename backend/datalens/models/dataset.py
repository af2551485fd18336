"""
Dataset and column profile records.

These are the shapes the dataset store persists and the API reads back.
"""

import enum
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


class FileKind(str, enum.Enum):
    """Detected kind of an uploaded file."""
    CSV = "CSV"
    SPREADSHEET = "SPREADSHEET"


class DatasetStatus(str, enum.Enum):
    """Lifecycle status of a dataset's profiling run."""
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not DatasetStatus.PROCESSING

    def can_transition_to(self, target: "DatasetStatus") -> bool:
        """Only PROCESSING may move, and only to a terminal status."""
        return self is DatasetStatus.PROCESSING and target.is_terminal


class ColumnType(str, enum.Enum):
    """Inferred semantic type of a column."""
    NUMERIC = "NUMERIC"
    TEXT = "TEXT"
    DATE = "DATE"
    BOOLEAN = "BOOLEAN"


@dataclass
class ColumnProfile:
    """Inferred type and statistics for one column of a dataset."""
    column_name: str
    column_index: int
    data_type: ColumnType
    unique_values: int
    null_count: int
    # Numeric columns only
    mean: Optional[float] = None
    median: Optional[float] = None
    std_dev: Optional[float] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["data_type"] = self.data_type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnProfile":
        return cls(
            column_name=data["column_name"],
            column_index=int(data["column_index"]),
            data_type=ColumnType(data["data_type"]),
            unique_values=int(data["unique_values"]),
            null_count=int(data["null_count"]),
            mean=data.get("mean"),
            median=data.get("median"),
            std_dev=data.get("std_dev"),
            min_value=data.get("min_value"),
            max_value=data.get("max_value"),
        )


@dataclass
class Dataset:
    """One uploaded tabular file and its profiling state."""
    id: str
    owner_id: str
    name: str
    file_kind: FileKind
    file_size: int
    storage_locator: str
    status: DatasetStatus = DatasetStatus.PROCESSING
    total_rows: int = 0
    total_columns: int = 0
    created_at: str = ""
    updated_at: str = ""
    columns: List[ColumnProfile] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "file_kind": self.file_kind.value,
            "file_size": self.file_size,
            "storage_locator": self.storage_locator,
            "status": self.status.value,
            "total_rows": self.total_rows,
            "total_columns": self.total_columns,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "columns": [c.to_dict() for c in self.columns],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Dataset":
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            name=data["name"],
            file_kind=FileKind(data["file_kind"]),
            file_size=int(data["file_size"]),
            storage_locator=data["storage_locator"],
            status=DatasetStatus(data["status"]),
            total_rows=int(data.get("total_rows", 0)),
            total_columns=int(data.get("total_columns", 0)),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            columns=sorted(
                (ColumnProfile.from_dict(c) for c in data.get("columns", [])),
                key=lambda c: c.column_index,
            ),
        )
