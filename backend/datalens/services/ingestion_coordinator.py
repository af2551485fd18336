"""
Ingestion Lifecycle Coordinator

Runs profiling in the background for freshly uploaded datasets and moves
each one from PROCESSING to COMPLETED or FAILED exactly once.

- submit() only enqueues; upload handlers never wait on profiling
- A fixed pool of worker tasks drains the queue; parsing and profiling run
  in a thread so the event loop stays responsive
- At most one run per dataset is queued or in flight at any time
- Any error inside a run becomes a FAILED status; nothing is re-raised and
  no partial profile data is written
- A dataset deleted mid-run is left deleted (the final write is skipped)
"""

import asyncio
import logging
import time
from typing import List, Optional, Set, Tuple

from ..core.config import settings
from ..core.errors import PersistenceError, ProcessingTimeoutError
from ..models.dataset import Dataset, DatasetStatus
from .blob_store import BlobStore
from .data_store import DatasetStore
from .profiling_pipeline import ColumnProfilingPipeline, ProfilingResult

logger = logging.getLogger("datalens.coordinator")


class IngestionCoordinator:
    """Queue of profiling jobs consumed by a pool of asyncio workers."""

    def __init__(
        self,
        store: DatasetStore,
        blob_store: BlobStore,
        pipeline: Optional[ColumnProfilingPipeline] = None,
        workers: int = None,
        timeout: Optional[float] = None,
    ):
        self.store = store
        self.blob_store = blob_store
        self.pipeline = pipeline or ColumnProfilingPipeline()
        self.worker_count = max(1, workers or settings.PROFILING_WORKERS)
        self.timeout = timeout if timeout is not None else settings.PROFILING_TIMEOUT_SECONDS

        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._in_flight: Set[str] = set()

    @property
    def running(self) -> bool:
        return bool(self._workers)

    # ============ Lifecycle ============

    async def start(self) -> None:
        """Create the job queue and spawn the worker tasks."""
        if self._workers:
            return
        self._queue = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"profiling-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.info("[Coordinator] Started %d profiling workers (timeout=%s)",
                    self.worker_count, self.timeout)

    async def stop(self, drain: bool = True) -> None:
        """Stop the workers, by default after the queue has drained."""
        if not self._workers:
            return
        if drain:
            await self._queue.join()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("[Coordinator] Stopped")

    async def join(self) -> None:
        """Wait until every submitted job has finished."""
        if self._queue is not None:
            await self._queue.join()

    # ============ Submission ============

    def submit(self, dataset_id: str, content: Optional[bytes] = None) -> bool:
        """Enqueue a profiling run without blocking.

        ``content`` is the uploaded bytes when the caller still has them;
        otherwise the worker fetches them from blob storage. Returns False
        when a run for this dataset is already queued or running. Must be
        called from the event loop thread.
        """
        if self._queue is None:
            raise RuntimeError("IngestionCoordinator.start() has not been called")
        if dataset_id in self._in_flight:
            logger.warning("[Coordinator] Dataset %s already queued, ignoring duplicate submit", dataset_id)
            return False

        self._in_flight.add(dataset_id)
        self._queue.put_nowait((dataset_id, content))
        logger.info("[Coordinator] Queued dataset %s (queue size %d)", dataset_id, self._queue.qsize())
        return True

    async def _worker(self, index: int) -> None:
        while True:
            job: Tuple[str, Optional[bytes]] = await self._queue.get()
            dataset_id, content = job
            try:
                await self.process(dataset_id, content)
            except Exception:
                logger.exception("[Coordinator] Worker %d crashed while handling %s", index, dataset_id)
            finally:
                self._in_flight.discard(dataset_id)
                self._queue.task_done()

    # ============ Single Run ============

    async def process(self, dataset_id: str, content: Optional[bytes] = None) -> Optional[DatasetStatus]:
        """Run one profiling pass and record its outcome.

        Returns the dataset's resulting status, or None when the dataset no
        longer exists.
        """
        dataset = self.store.find_dataset(dataset_id)
        if dataset is None:
            logger.warning("[Coordinator] Dataset %s no longer exists, skipping run", dataset_id)
            return None
        if dataset.status is not DatasetStatus.PROCESSING:
            logger.warning("[Coordinator] Dataset %s already %s, skipping run",
                           dataset_id, dataset.status.value)
            return dataset.status

        t_start = time.time()
        logger.info("[Coordinator] START | dataset_id=%s | kind=%s | size=%d",
                    dataset_id, dataset.file_kind.value, dataset.file_size)

        try:
            result = await self._profile_with_timeout(dataset, content)
            updated = self.store.complete_dataset(
                dataset_id,
                row_count=result.total_rows,
                column_count=result.total_columns,
                profiles=result.columns,
            )
        except Exception as exc:
            return self._record_failure(dataset_id, exc)

        if updated is None:
            logger.warning("[Coordinator] Dataset %s was deleted during profiling, result discarded", dataset_id)
            return None

        logger.info("[Coordinator] COMPLETE | dataset_id=%s | rows=%d | columns=%d | %.2fs",
                    dataset_id, result.total_rows, result.total_columns, time.time() - t_start)
        return updated.status

    async def _profile_with_timeout(self, dataset: Dataset, content: Optional[bytes]) -> ProfilingResult:
        work = self._fetch_and_profile(dataset, content)
        if self.timeout is None:
            return await work
        try:
            return await asyncio.wait_for(work, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise ProcessingTimeoutError(
                f"Profiling dataset {dataset.id} exceeded {self.timeout}s"
            ) from exc

    async def _fetch_and_profile(self, dataset: Dataset, content: Optional[bytes]) -> ProfilingResult:
        if content is None:
            content = await asyncio.to_thread(self.blob_store.get, dataset.storage_locator)
        return await asyncio.to_thread(self.pipeline.profile_bytes, content, dataset.file_kind)

    def _record_failure(self, dataset_id: str, exc: Exception) -> Optional[DatasetStatus]:
        kind = getattr(exc, "kind", type(exc).__name__)
        logger.error("[Coordinator] FAILED | dataset_id=%s | kind=%s | %s", dataset_id, kind, exc)

        try:
            updated = self.store.fail_dataset(dataset_id)
        except PersistenceError as persist_exc:
            logger.error("[Coordinator] Could not record failure for %s: %s", dataset_id, persist_exc)
            return None

        if updated is None:
            logger.warning("[Coordinator] Dataset %s was deleted during profiling", dataset_id)
            return None
        return updated.status
