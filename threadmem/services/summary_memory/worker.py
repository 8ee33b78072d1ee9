"""
Background Summary Worker

Bounded asyncio queue drained by a fixed pool of worker tasks.
Callers get a future that resolves to the turn's ProcessingResult.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional

from threadmem.core.config import settings
from threadmem.core.logger import Logger
from threadmem.services.summary_memory.data_models import ProcessingResult
from threadmem.services.summary_memory.service import SummaryMemoryService

logger = Logger("SummaryWorker")


@dataclass
class SummaryJob:
    thread_id: str
    user_message_id: str
    assistant_message_id: str
    future: asyncio.Future


class SummaryWorker:

    def __init__(self, service: SummaryMemoryService, workers: int = None, queue_size: int = None):
        self.service = service
        self.worker_count = max(1, workers or settings.SUMMARY_WORKERS)
        self.queue_size = queue_size if queue_size is not None else settings.SUMMARY_QUEUE_SIZE
        self.is_running = False
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: List[asyncio.Task] = []

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue else 0

    async def start(self):
        """Start the worker pool."""
        if self.is_running:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._tasks = [
            asyncio.create_task(self._worker_loop(i), name=f"summary-worker-{i}")
            for i in range(self.worker_count)
        ]
        self.is_running = True
        logger.info(f"✅ Summary worker started ({self.worker_count} workers)")

    async def stop(self, drain: bool = False):
        """Stop the pool; queued jobs are cancelled unless drain is set."""
        if not self.is_running:
            return
        self.is_running = False
        if drain:
            await self._queue.join()

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        while not self._queue.empty():
            job = self._queue.get_nowait()
            job.future.cancel()
            self._queue.task_done()
        logger.info("Summary worker stopped")

    def submit(self, thread_id: str, user_message_id: str, assistant_message_id: str) -> asyncio.Future:
        """
        Queue a turn for processing.
        Raises RuntimeError when stopped and asyncio.QueueFull when saturated.
        """
        if not self.is_running:
            raise RuntimeError("Summary worker is not running")
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(SummaryJob(thread_id, user_message_id, assistant_message_id, future))
        return future

    async def _worker_loop(self, index: int):
        while True:
            job = await self._queue.get()
            try:
                if job.future.cancelled():
                    continue
                result = await self._run(job)
                if not job.future.done():
                    job.future.set_result(result)
            except asyncio.CancelledError:
                if not job.future.done():
                    job.future.cancel()
                raise
            except Exception as e:
                logger.error(f"Summary worker {index} crashed on {job.thread_id}", e)
                if not job.future.done():
                    job.future.set_exception(e)
            finally:
                self._queue.task_done()

    async def _run(self, job: SummaryJob) -> ProcessingResult:
        if not await self.service.is_enabled_for_thread(job.thread_id):
            logger.debug(f"Summary memory disabled for {job.thread_id}, skipping")
            return ProcessingResult(success=True, skipped=True)

        result = await self.service.process_turn(job.thread_id, job.user_message_id, job.assistant_message_id)
        if not result.success:
            logger.warn(f"Turn {job.assistant_message_id} on {job.thread_id} failed: {result.failure.value}: {result.error}")
        return result
