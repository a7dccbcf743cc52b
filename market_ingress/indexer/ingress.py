"""
Order ingestion scheduler.

Each network owns one perpetually requeued job. An execution polls the
indexer from the cursor carried by the job, persists whatever it reads,
saves the new cursor and queues its own successor. A failed execution is
retried by the queue with the same cursor, so the last saved cursor is
always the recovery point.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from market_ingress.core.logging import get_logger
from market_ingress.queue.job_queue import Job, JobOptions, JobQueue
from market_ingress.queue.worker import Worker
from market_ingress.repositories.cursor import CursorStore

from .client import IndexerClient
from .notifier import ChangeNotifier
from .poller import BatchPoller
from .projector import build_order, build_token
from .types import IngressStats, IngressStatus
from .upserter import Upserter

logger = get_logger(__name__)

JOB_NAME = "ingress"
CURSOR_KEY = "ingress_last_block"


class IngressPartition:
    """Single-flight ingestion of one network."""

    def __init__(
        self,
        network: str,
        client: IndexerClient,
        queue: JobQueue,
        cursors: CursorStore,
        upserter: Upserter,
        notifier: ChangeNotifier,
        job_options: Optional[JobOptions] = None,
        page_size: int = 1000,
        poll_interval: float = 0.5,
    ):
        self.network = network
        self.queue = queue
        self.cursors = cursors
        self.upserter = upserter
        self.notifier = notifier
        self.job_options = job_options or JobOptions(delay=1.0, backoff=2.0)
        self.cursor_key = f"{CURSOR_KEY}:{network}"
        self.poller = BatchPoller(client, self.process, page_size)
        self.worker = Worker(queue, self.run, poll_interval, on_failed=self._on_failed)
        self.status = IngressStatus.STOPPED
        self.stats = IngressStats()
        self.logger = logger.bind(service="ingress", network=network)

    async def start(self) -> None:
        """Seed the job from the saved cursor unless one is queued, then start the worker."""
        self.status = IngressStatus.STARTING

        if not await self.queue.count():
            cursor = await self.cursors.get(self.cursor_key)
            job = await self.queue.add(JOB_NAME, {"last_block_gt": cursor}, self.job_options)
            self.logger.info("Created ingress job", job_id=job.id, last_block_gt=cursor)

        await self.worker.start()
        self.status = IngressStatus.RUNNING
        self.logger.info("Ingress started")

    async def stop(self) -> None:
        self.status = IngressStatus.STOPPING
        await self.worker.close()
        self.status = IngressStatus.STOPPED
        self.logger.info("Ingress stopped")

    async def run(self, job: Job) -> Optional[str]:
        """Execute one ingress job and queue its successor."""
        last_block_gt = job.data.get("last_block_gt")
        started = time.monotonic()
        self.logger.debug("Ingress execution started", job_id=job.id, last_block_gt=last_block_gt)

        try:
            last_block = await self.poller.poll(last_block_gt)

            if last_block is not None and last_block != last_block_gt:
                await self.cursors.set(self.cursor_key, last_block)
            await self.queue.add(JOB_NAME, {"last_block_gt": last_block}, self.job_options)

        except Exception as e:
            self.stats.executions_failed += 1
            self.stats.last_error = str(e)
            raise
        finally:
            duration = time.monotonic() - started
            self.stats.last_duration = duration
            self.stats.total_duration += duration
            self.stats.last_run_at = datetime.now(timezone.utc)

        self.stats.executions_succeeded += 1
        self.stats.last_cursor = last_block
        self.logger.debug(
            "Ingress execution finished",
            job_id=job.id,
            last_block_gt=last_block_gt,
            last_block=last_block,
            duration=round(duration, 3)
        )
        return last_block

    async def process(self, page: List[Dict[str, Any]]) -> None:
        """Project, persist and dispatch one page of indexer orders."""
        orders = [build_order(raw, self.network) for raw in page]
        tokens = [build_token(raw, self.network) for raw in page]

        result = await self.upserter.upsert(orders, tokens)
        dispatched = await self.notifier.dispatch(orders, tokens, result)

        self.stats.records_ingested += len(page) - len(result.failed)
        self.stats.records_failed += len(result.failed)
        self.stats.tokens_inserted += len(result.inserted)
        self.stats.enrichments_enqueued += dispatched.enqueued
        self.stats.orders_published += dispatched.published

        self.logger.info(
            "Ingested orders",
            records=len(page),
            inserted=len(result.inserted),
            failed=len(result.failed),
            last_block=page[-1].get("lastBlock")
        )

    def _on_failed(self, job: Job, error: BaseException) -> None:
        self.logger.error(
            "Failed to ingress",
            job_id=job.id,
            last_block_gt=job.data.get("last_block_gt"),
            attempts=job.attempts_made,
            error=str(error),
            error_type=type(error).__name__
        )

    def get_status(self) -> Dict[str, Any]:
        return {
            "network": self.network,
            "status": self.status.value,
            "stats": self.stats.to_dict(),
        }


class IngressService:
    """All ingress partitions of the process."""

    def __init__(self, partitions: List[IngressPartition]):
        self.partitions = {partition.network: partition for partition in partitions}

    async def start(self) -> None:
        for partition in self.partitions.values():
            await partition.start()

    async def stop(self) -> None:
        for partition in self.partitions.values():
            await partition.stop()

    def get_status(self) -> List[Dict[str, Any]]:
        return [partition.get_status() for partition in self.partitions.values()]
