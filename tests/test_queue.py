"""
Tests for job scheduling helpers and the single-flight worker.
"""

import asyncio

from market_ingress.queue.job_queue import Job, JobOptions, backoff_delay
from market_ingress.queue.worker import Worker

from fakes import FakeJobQueue


async def wait_until(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate() and loop.time() < deadline:
        await asyncio.sleep(0.01)
    assert predicate()


def test_fixed_backoff_is_constant():
    options = JobOptions(backoff=2.0)

    assert [backoff_delay(options, n) for n in (1, 2, 5)] == [2.0, 2.0, 2.0]


def test_exponential_backoff_doubles_per_attempt():
    options = JobOptions(backoff=1.5, backoff_strategy="exponential")

    assert [backoff_delay(options, n) for n in (1, 2, 3, 4)] == [1.5, 3.0, 6.0, 12.0]


def test_job_survives_json():
    job = Job(id="j1", name="ingress", data={"last_block_gt": "12"}, options=JobOptions(delay=1.0, max_attempts=3))
    job.attempts_made = 2
    job.failed_reason = "boom"

    restored = Job.from_json(job.to_json())

    assert restored == job
    assert isinstance(restored.options, JobOptions)


async def test_worker_completes_jobs_in_order():
    queue = FakeJobQueue()
    seen = []

    async def processor(job):
        seen.append(job.data["n"])

    for n in range(3):
        await queue.add("task", {"n": n})
    worker = Worker(queue, processor, poll_interval=0.01)

    await worker.start()
    await wait_until(lambda: len(queue.completed) == 3)
    await worker.close()

    assert seen == [0, 1, 2]
    assert queue.active == []


async def test_worker_runs_one_job_at_a_time():
    queue = FakeJobQueue()
    running = []
    overlaps = []

    async def processor(job):
        running.append(job.id)
        overlaps.append(len(running))
        await asyncio.sleep(0.01)
        running.remove(job.id)

    for n in range(3):
        await queue.add("task", {"n": n})
    worker = Worker(queue, processor, poll_interval=0.01)

    await worker.start()
    await wait_until(lambda: len(queue.completed) == 3)
    await worker.close()

    assert overlaps == [1, 1, 1]


async def test_worker_fails_job_and_reports_error():
    queue = FakeJobQueue()
    reported = []

    async def processor(job):
        raise RuntimeError("broken")

    await queue.add("task", {}, JobOptions(max_attempts=2))
    worker = Worker(queue, processor, poll_interval=0.01, on_failed=lambda job, e: reported.append(str(e)))

    await worker.start()
    await wait_until(lambda: len(reported) == 2)
    await worker.close()

    assert reported == ["broken", "broken"]
    assert queue.failed[-1].attempts_made == 2
    assert queue.failed[-1].failed_reason == "broken"
    assert await queue.count() == 0


async def test_worker_close_without_start_is_noop():
    worker = Worker(FakeJobQueue(), processor=lambda job: None)

    await worker.close()

    assert worker.running is False
