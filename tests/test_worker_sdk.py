from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport

from conftest import BASE_URL, WORKER_KEY
from render_queue.main import app
from render_queue.domain.states import JobStatus
from worker_sdk import WorkerClient, WorkerRunner


@pytest.fixture
async def worker_client(db) -> AsyncGenerator[WorkerClient, None]:
    client = WorkerClient(
        BASE_URL,
        worker_id="sdk-worker",
        worker_key=WORKER_KEY,
        transport=ASGITransport(app=app),
    )
    yield client
    await client.close()


async def test_poll_and_complete(worker_client: WorkerClient, job_factory, fetch_job) -> None:
    job_id = await job_factory()

    job = await worker_client.poll()
    assert job["id"] == job_id
    assert job["worker_id"] == "sdk-worker"

    assert await worker_client.complete(job_id, {"gif_url": "https://cdn.example.com/out.gif"}) is True

    stored = await fetch_job(job_id)
    assert stored.status == "done"
    assert stored.output_url == "https://cdn.example.com/out.gif"


async def test_poll_with_bad_key_returns_none(db, job_factory, fetch_job) -> None:
    job_id = await job_factory()
    client = WorkerClient(BASE_URL, worker_id="x", worker_key="wrong", transport=ASGITransport(app=app))
    try:
        assert await client.poll() is None
        assert await client.heartbeat() is False
    finally:
        await client.close()

    assert (await fetch_job(job_id)).status == "pending"


async def test_heartbeat(worker_client: WorkerClient, fetch_worker) -> None:
    assert await worker_client.heartbeat(status="idle", polling_interval_ms=2000) is True

    stored = await fetch_worker("sdk-worker")
    assert stored.status == "idle"
    assert stored.polling_interval_ms == 2000


async def test_runner_reports_handler_result(worker_client: WorkerClient, job_factory, fetch_job) -> None:
    job_id = await job_factory()
    seen = []

    async def handler(job: dict) -> dict:
        seen.append(job["image_url"])
        return {"success": True, "url": "https://cdn.example.com/rendered.gif"}

    runner = WorkerRunner(worker_client, handler)
    assert await runner.run_once() is True
    assert await runner.run_once() is False

    stored = await fetch_job(job_id)
    assert seen == [stored.image_url]
    assert stored.status == "done"
    assert stored.output_url == "https://cdn.example.com/rendered.gif"
    assert stored.result["success"] is True


async def test_runner_reports_handler_failure(worker_client: WorkerClient, job_factory, fetch_job) -> None:
    job_id = await job_factory()

    async def handler(job: dict) -> dict:
        raise RuntimeError("FFmpeg error: exit 1")

    runner = WorkerRunner(worker_client, handler)
    assert await runner.run_once() is True

    stored = await fetch_job(job_id)
    assert stored.status == "error"
    assert stored.error_message == "RuntimeError: FFmpeg error: exit 1"
    assert stored.result == {"success": False, "worker": "sdk-worker"}


async def test_runner_run_stops_cleanly(worker_client: WorkerClient, job_factory, fetch_job) -> None:
    job_id = await job_factory(status=JobStatus.PENDING)
    runner = WorkerRunner(worker_client, handler=None, poll_interval=0.01, heartbeat_interval=0.01)

    async def handler(job: dict) -> dict:
        runner.stop()
        return {"video_url": "https://cdn.example.com/v.mp4"}

    runner.handler = handler
    await runner.run()

    assert runner.running is False
    assert (await fetch_job(job_id)).output_url == "https://cdn.example.com/v.mp4"
