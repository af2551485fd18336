"""
DataLens API

Upload tabular files and get per-column type inference and statistics,
computed in the background after the upload returns.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import datasets
from .core.config import Settings, settings
from .middleware import ErrorHandlerMiddleware, RequestLoggerMiddleware
from .services.blob_store import build_blob_store
from .services.data_store import DatasetStore
from .services.dataset_service import DatasetService
from .services.ingestion_coordinator import IngestionCoordinator
from .services.profiling_pipeline import ColumnProfilingPipeline

logger = logging.getLogger("datalens")


def create_app(config: Settings = None) -> FastAPI:
    """Build the FastAPI app; services are created in the lifespan from ``config``."""
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = DatasetStore(config.DATA_DIR)
        blob_store = build_blob_store(config)
        blob_store.initialize()

        coordinator = IngestionCoordinator(
            store,
            blob_store,
            pipeline=ColumnProfilingPipeline(),
            workers=config.PROFILING_WORKERS,
            timeout=config.PROFILING_TIMEOUT_SECONDS,
        )
        await coordinator.start()

        app.state.store = store
        app.state.blob_store = blob_store
        app.state.coordinator = coordinator
        app.state.dataset_service = DatasetService(
            store, blob_store, coordinator, config.max_file_size_bytes
        )
        logger.info("%s v%s started (blob backend: %s)",
                    config.APP_NAME, config.APP_VERSION, blob_store.name)
        try:
            yield
        finally:
            await coordinator.stop()
            logger.info("%s shut down", config.APP_NAME)

    app = FastAPI(
        title=config.APP_NAME,
        version=config.APP_VERSION,
        description="Tabular dataset ingestion and column profiling",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Added innermost first: errors are converted before the logger sees the status
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestLoggerMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in config.CORS_ORIGINS.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(datasets.router, prefix=config.API_PREFIX)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": config.APP_VERSION}

    return app


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
