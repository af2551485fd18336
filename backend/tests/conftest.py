"""
Shared pytest fixtures for the DataLens test suite.
"""

import io
from pathlib import Path
from typing import AsyncGenerator, Callable, Sequence

import openpyxl
import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport

from datalens.core.config import Settings
from datalens.main import create_app
from datalens.services.blob_store import LocalBlobStore
from datalens.services.data_store import DatasetStore


@pytest.fixture
def temp_data_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test data."""
    data_dir = tmp_path / "test_data"
    data_dir.mkdir(exist_ok=True)
    return data_dir


@pytest.fixture
def dataset_store(temp_data_dir: Path) -> DatasetStore:
    """Provide a DatasetStore instance with temporary directory."""
    return DatasetStore(data_dir=str(temp_data_dir))


@pytest.fixture
def blob_store(temp_data_dir: Path) -> LocalBlobStore:
    store = LocalBlobStore(str(temp_data_dir / "blobs"))
    store.initialize()
    return store


@pytest.fixture
def sample_csv() -> bytes:
    return (
        b"name,age,joined,active\n"
        b"Alice,30,2024-01-15,true\n"
        b"Bob,25,2024-02-01,false\n"
        b"Carol,35,2023-12-31,yes\n"
        b"Dave,40,15/03/2024,no\n"
        b"Eve,30,2024-04-01,true\n"
    )


@pytest.fixture
def build_xlsx() -> Callable[[Sequence[Sequence]], bytes]:
    """Build an in-memory .xlsx workbook; an empty row leaves a gap."""

    def _build(rows: Sequence[Sequence]) -> bytes:
        workbook = openpyxl.Workbook()
        sheet = workbook.active
        for row in rows:
            sheet.append(list(row))
        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    return _build


@pytest.fixture
def test_settings(temp_data_dir: Path) -> Settings:
    return Settings(
        DATA_DIR=str(temp_data_dir),
        BLOB_BACKEND="local",
        PROFILING_WORKERS=2,
        MAX_FILE_SIZE_MB=1,
    )


@pytest.fixture
def app(test_settings: Settings) -> FastAPI:
    return create_app(test_settings)


@pytest.fixture
async def test_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client with the app's lifespan running."""
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
