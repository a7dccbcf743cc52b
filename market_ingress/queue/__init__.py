"""
Redis-backed job queue, worker and enrichment queue.
"""

from .enrich import EnrichQueue
from .job_queue import Job, JobOptions, JobQueue, backoff_delay
from .worker import Worker

__all__ = [
    "EnrichQueue",
    "Job",
    "JobOptions",
    "JobQueue",
    "backoff_delay",
    "Worker",
]
