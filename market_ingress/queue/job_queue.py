"""
Delayed job queue on Redis.

Layout per queue (all keys share ``{prefix}{name}``):

    :jobs     HASH  job id -> job JSON
    :delayed  ZSET  job id scored by the time it becomes eligible
    :active   ZSET  job id scored by its lease deadline
    :dead     LIST  job JSON of jobs that ran out of attempts

A claimed job leaves ``:delayed`` and enters ``:active`` atomically. The
worker renews the lease while it runs; a lease that expires means the
worker died, and the job is moved back to ``:delayed``.
"""

import json
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from market_ingress.core.exceptions import QueueError
from market_ingress.core.logging import get_logger

logger = get_logger(__name__)

# KEYS: delayed, active, jobs  ARGV: now, lease deadline
CLAIM_SCRIPT = """
local ids = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, 1)
if #ids == 0 then
    return false
end
redis.call('ZREM', KEYS[1], ids[1])
redis.call('ZADD', KEYS[2], ARGV[2], ids[1])
return {ids[1], redis.call('HGET', KEYS[3], ids[1])}
"""

# KEYS: active, delayed  ARGV: now
RECOVER_SCRIPT = """
local ids = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1])
for _, id in ipairs(ids) do
    redis.call('ZREM', KEYS[1], id)
    redis.call('ZADD', KEYS[2], ARGV[1], id)
end
return #ids
"""


@dataclass
class JobOptions:
    """Scheduling options carried by every job."""
    delay: float = 0.0
    backoff: float = 2.0
    backoff_strategy: str = "fixed"
    max_attempts: Optional[int] = None  # None retries forever


@dataclass
class Job:
    id: str
    name: str
    data: Dict[str, Any]
    options: JobOptions = field(default_factory=JobOptions)
    attempts_made: int = 0
    created_at: float = field(default_factory=time.time)
    failed_reason: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "Job":
        payload = json.loads(raw)
        payload["options"] = JobOptions(**payload.get("options", {}))
        return cls(**payload)


def backoff_delay(options: JobOptions, attempts_made: int) -> float:
    """Seconds to wait before the next attempt, after ``attempts_made`` failures."""
    if options.backoff_strategy == "exponential":
        return options.backoff * (2 ** max(attempts_made - 1, 0))
    return options.backoff


class JobQueue:
    """Delayed, retrying job queue with leases and a dead-letter list."""

    def __init__(self, redis: Redis, name: str, prefix: str = "", lock_duration: float = 300.0):
        self.redis = redis
        self.name = name
        self.lock_duration = lock_duration
        base = f"{prefix}{name}"
        self.jobs_key = f"{base}:jobs"
        self.delayed_key = f"{base}:delayed"
        self.active_key = f"{base}:active"
        self.dead_key = f"{base}:dead"
        self._claim = redis.register_script(CLAIM_SCRIPT)
        self._recover = redis.register_script(RECOVER_SCRIPT)
        self.logger = logger.bind(service="job_queue", queue=name)

    async def add(self, name: str, data: Dict[str, Any], options: Optional[JobOptions] = None) -> Job:
        """Store a job and make it eligible after ``options.delay`` seconds."""
        job = Job(id=uuid.uuid4().hex, name=name, data=data, options=options or JobOptions())
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.hset(self.jobs_key, job.id, job.to_json())
                pipe.zadd(self.delayed_key, {job.id: time.time() + job.options.delay})
                await pipe.execute()
        except RedisError as e:
            raise QueueError("Failed to add job", {"queue": self.name, "error": str(e)}) from e
        return job

    async def count(self) -> int:
        """Number of jobs waiting or running."""
        async with self.redis.pipeline(transaction=False) as pipe:
            pipe.zcard(self.delayed_key)
            pipe.zcard(self.active_key)
            delayed, active = await pipe.execute()
        return delayed + active

    async def claim(self) -> Optional[Job]:
        """Take the next eligible job and lease it, or return None."""
        now = time.time()
        result = await self._claim(
            keys=[self.delayed_key, self.active_key, self.jobs_key],
            args=[now, now + self.lock_duration],
        )
        if not result:
            return None

        job_id, raw = result
        if raw is None:
            # Payload removed underneath us
            await self.redis.zrem(self.active_key, job_id)
            self.logger.warning("Dropping job without payload", job_id=job_id)
            return None
        return Job.from_json(raw)

    async def renew(self, job: Job) -> None:
        """Extend the lease of a running job."""
        await self.redis.zadd(self.active_key, {job.id: time.time() + self.lock_duration}, xx=True)

    async def complete(self, job: Job) -> None:
        """Remove a finished job."""
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zrem(self.active_key, job.id)
            pipe.hdel(self.jobs_key, job.id)
            await pipe.execute()

    async def fail(self, job: Job, error: str) -> bool:
        """
        Record a failed attempt.

        Returns True when the job was rescheduled with backoff, False when
        it ran out of attempts and was moved to the dead-letter list.
        """
        job.attempts_made += 1
        job.failed_reason = error
        max_attempts = job.options.max_attempts

        if max_attempts is not None and job.attempts_made >= max_attempts:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.zrem(self.active_key, job.id)
                pipe.hdel(self.jobs_key, job.id)
                pipe.rpush(self.dead_key, job.to_json())
                await pipe.execute()
            self.logger.error(
                "Job exhausted its attempts",
                job_id=job.id,
                attempts=job.attempts_made,
                error=error
            )
            return False

        delay = backoff_delay(job.options, job.attempts_made)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(self.jobs_key, job.id, job.to_json())
            pipe.zrem(self.active_key, job.id)
            pipe.zadd(self.delayed_key, {job.id: time.time() + delay})
            await pipe.execute()
        return True

    async def recover_stalled(self) -> int:
        """Requeue jobs whose lease expired; returns how many were moved."""
        moved = await self._recover(keys=[self.active_key, self.delayed_key], args=[time.time()])
        if moved:
            self.logger.warning("Recovered stalled jobs", count=moved)
        return moved

    async def dead_letters(self, limit: int = 100) -> List[Job]:
        raw = await self.redis.lrange(self.dead_key, 0, limit - 1)
        return [Job.from_json(item) for item in raw]

    async def obliterate(self) -> None:
        """Delete every key of the queue."""
        await self.redis.delete(self.jobs_key, self.delayed_key, self.active_key, self.dead_key)
