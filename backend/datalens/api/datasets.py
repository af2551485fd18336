"""
Datasets API Endpoints

Upload tabular files, follow their profiling status and read back column
profiles, previews and download links. The caller is identified by the
``X-User-Id`` header; every lookup is scoped to that owner.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, Request, UploadFile
from pydantic import BaseModel

from ..core.config import settings
from ..core.errors import (
    DatasetNotFoundError,
    DatasetProcessingError,
    InvalidUploadError,
    StorageError,
    UnsupportedFormatError,
)
from ..models.dataset import ColumnProfile, Dataset
from ..services.dataset_service import DatasetService
from ..services.tabular_reader import detect_file_kind


router = APIRouter(prefix="/datasets", tags=["Datasets"])


# Pydantic models for API
class UploadResponse(BaseModel):
    id: str
    name: str
    status: str
    message: str


class DatasetResponse(BaseModel):
    id: str
    name: str
    file_kind: str
    file_size: int
    status: str
    total_rows: int
    total_columns: int
    created_at: str
    updated_at: str


class ColumnResponse(BaseModel):
    column_name: str
    column_index: int
    data_type: str
    unique_values: int
    null_count: int
    mean: Optional[float] = None
    median: Optional[float] = None
    std_dev: Optional[float] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None


class DownloadResponse(BaseModel):
    download_url: str
    filename: str


class MessageResponse(BaseModel):
    message: str


def _dataset_response(dataset: Dataset) -> DatasetResponse:
    return DatasetResponse(
        id=dataset.id,
        name=dataset.name,
        file_kind=dataset.file_kind.value,
        file_size=dataset.file_size,
        status=dataset.status.value,
        total_rows=dataset.total_rows,
        total_columns=dataset.total_columns,
        created_at=dataset.created_at,
        updated_at=dataset.updated_at,
    )


def _column_response(profile: ColumnProfile) -> ColumnResponse:
    return ColumnResponse(**profile.to_dict())


def get_dataset_service(request: Request) -> DatasetService:
    return request.app.state.dataset_service


@router.post("/upload", response_model=UploadResponse)
async def upload_dataset(
    file: UploadFile = File(...),
    x_user_id: str = Header(...),
    service: DatasetService = Depends(get_dataset_service),
):
    """
    Upload a CSV or Excel file.

    Returns immediately with the dataset in PROCESSING state; column
    profiling continues in the background.
    """
    try:
        # Rejected on the name alone, before the body is read
        detect_file_kind(file.filename)
        content = await file.read()
        dataset = await service.upload_dataset(
            owner_id=x_user_id,
            filename=file.filename,
            content=content,
            content_type=file.content_type,
        )
    except (UnsupportedFormatError, InvalidUploadError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return UploadResponse(
        id=dataset.id,
        name=dataset.name,
        status=dataset.status.value,
        message="File uploaded successfully. Processing started.",
    )


@router.get("/", response_model=List[DatasetResponse])
async def list_datasets(
    x_user_id: str = Header(...),
    service: DatasetService = Depends(get_dataset_service),
):
    """List the caller's datasets, newest first."""
    return [_dataset_response(d) for d in service.list_datasets(x_user_id)]


@router.get("/{dataset_id}", response_model=DatasetResponse)
async def get_dataset(
    dataset_id: str,
    x_user_id: str = Header(...),
    service: DatasetService = Depends(get_dataset_service),
):
    try:
        return _dataset_response(service.get_dataset(dataset_id, x_user_id))
    except DatasetNotFoundError:
        raise HTTPException(status_code=404, detail="Dataset not found")


@router.get("/{dataset_id}/columns", response_model=List[ColumnResponse])
async def get_dataset_columns(
    dataset_id: str,
    x_user_id: str = Header(...),
    service: DatasetService = Depends(get_dataset_service),
):
    """Column profiles ordered by position; empty until profiling completes."""
    try:
        columns = service.get_columns(dataset_id, x_user_id)
    except DatasetNotFoundError:
        raise HTTPException(status_code=404, detail="Dataset not found")
    return [_column_response(c) for c in columns]


@router.get("/{dataset_id}/preview", response_model=List[Dict[str, Any]])
async def get_dataset_preview(
    dataset_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=settings.PREVIEW_MAX_LIMIT),
    x_user_id: str = Header(...),
    service: DatasetService = Depends(get_dataset_service),
):
    """First rows of the stored file, one header -> value map per row."""
    try:
        return await service.get_preview(dataset_id, x_user_id, limit)
    except DatasetNotFoundError:
        raise HTTPException(status_code=404, detail="Dataset not found")
    except DatasetProcessingError:
        raise HTTPException(status_code=500, detail="Failed to load data preview")


@router.get("/{dataset_id}/download", response_model=DownloadResponse)
async def get_download_url(
    dataset_id: str,
    x_user_id: str = Header(...),
    service: DatasetService = Depends(get_dataset_service),
):
    try:
        dataset = service.get_dataset(dataset_id, x_user_id)
        url = service.get_download_url(dataset_id, x_user_id)
    except DatasetNotFoundError:
        raise HTTPException(status_code=404, detail="Dataset not found")
    except StorageError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return DownloadResponse(download_url=url, filename=dataset.name)


@router.delete("/{dataset_id}", response_model=MessageResponse)
async def delete_dataset(
    dataset_id: str,
    x_user_id: str = Header(...),
    service: DatasetService = Depends(get_dataset_service),
):
    """Delete a dataset, its stored file and its column profiles."""
    try:
        await service.delete_dataset(dataset_id, x_user_id)
    except DatasetNotFoundError:
        raise HTTPException(status_code=404, detail="Dataset not found")
    except StorageError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return MessageResponse(message="Dataset deleted successfully")
