"""
Single-flight job worker.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from market_ingress.core.logging import get_logger

from .job_queue import Job, JobQueue

logger = get_logger(__name__)

Processor = Callable[[Job], Awaitable[Any]]
FailedCallback = Callable[[Job, BaseException], Any]


class Worker:
    """
    Processes jobs of one queue one at a time.

    While a job runs its lease is renewed every half lock period. A raising
    processor fails the job (the queue applies backoff or dead-letters it)
    and the error is handed to ``on_failed``.
    """

    def __init__(
        self,
        queue: JobQueue,
        processor: Processor,
        poll_interval: float = 0.5,
        on_failed: Optional[FailedCallback] = None,
    ):
        self.queue = queue
        self.processor = processor
        self.poll_interval = poll_interval
        self.on_failed = on_failed
        self.running = False
        self._task: Optional[asyncio.Task] = None
        self._wakeup = asyncio.Event()
        self.logger = logger.bind(service="worker", queue=queue.name)

    async def start(self) -> None:
        if self._task is not None:
            return
        self.running = True
        self._wakeup.clear()
        self._task = asyncio.create_task(self._run())
        self.logger.info("Worker started")

    async def close(self, timeout: float = 30.0) -> None:
        """Stop claiming jobs and wait for the current one to finish."""
        if self._task is None:
            return
        self.running = False
        self._wakeup.set()
        try:
            await asyncio.wait_for(self._task, timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Worker did not stop in time, cancelled", timeout=timeout)
        self._task = None
        self.logger.info("Worker closed")

    async def _run(self) -> None:
        while self.running:
            try:
                await self.queue.recover_stalled()
                job = await self.queue.claim()
                if job is None:
                    await self._idle()
                    continue
                await self._process(job)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error("Worker loop error", error=str(e))
                await self._idle()

    async def _idle(self) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), self.poll_interval)
        except asyncio.TimeoutError:
            pass

    async def _process(self, job: Job) -> None:
        heartbeat = asyncio.create_task(self._heartbeat(job))
        try:
            await self.processor(job)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            retrying = await self.queue.fail(job, str(e))
            self.logger.debug("Job failed", job_id=job.id, attempts=job.attempts_made, retrying=retrying)
            if self.on_failed:
                self.on_failed(job, e)
        else:
            await self.queue.complete(job)
        finally:
            heartbeat.cancel()

    async def _heartbeat(self, job: Job) -> None:
        interval = self.queue.lock_duration / 2
        while True:
            await asyncio.sleep(interval)
            try:
                await self.queue.renew(job)
            except Exception as e:
                self.logger.warning("Failed to renew job lease", job_id=job.id, error=str(e))
