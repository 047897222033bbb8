"""Tests for the in-process background job runner."""

import asyncio

import pytest

from riskread.workers.jobs import JobRunner


@pytest.mark.asyncio
async def test_wait_blocks_until_job_finishes():
    runner = JobRunner()
    done = []

    async def job():
        await asyncio.sleep(0.01)
        done.append("a")

    runner.submit("a", job)
    assert runner.is_running("a")

    await runner.wait("a")

    assert done == ["a"]
    assert not runner.is_running("a")


@pytest.mark.asyncio
async def test_failing_job_is_contained():
    runner = JobRunner()

    async def boom():
        raise RuntimeError("boom")

    task = runner.submit("a", boom)
    await runner.wait("a")

    assert task.done()
    assert task.exception() is None


@pytest.mark.asyncio
async def test_join_waits_for_every_key():
    runner = JobRunner()
    done = []

    async def job(key, delay):
        await asyncio.sleep(delay)
        done.append(key)

    runner.submit("a", lambda: job("a", 0.02))
    runner.submit("b", lambda: job("b", 0.01))
    await runner.join()

    assert sorted(done) == ["a", "b"]


@pytest.mark.asyncio
async def test_shutdown_cancels_running_jobs():
    runner = JobRunner()
    started = asyncio.Event()

    async def forever():
        started.set()
        await asyncio.sleep(3600)

    task = runner.submit("a", forever)
    await started.wait()
    await runner.shutdown()

    assert task.cancelled()
    assert not runner.is_running("a")


@pytest.mark.asyncio
async def test_wait_on_unknown_key_returns():
    await JobRunner().wait("nothing")
