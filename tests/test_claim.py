"""
Claim ordering, lease expiry and rejection over the HTTP surface.

These run on SQLite, which compiles away FOR UPDATE SKIP LOCKED and has no
advisory locks. Concurrent claims against Postgres are exercised only by
scripts/verify_no_double_claim.py.
"""
import pytest
from httpx import AsyncClient

from conftest import minutes_ago
from render_queue.commands.claim_job import NO_IMAGE_ERROR
from render_queue.domain.states import JobStatus


async def _poll(client: AsyncClient, headers, worker_id="worker-a"):
    resp = await client.post("/worker-poll", json={"worker_id": worker_id}, headers=headers)
    assert resp.status_code == 200
    return resp.json()["job"]


@pytest.mark.parametrize("high_first", [True, False])
async def test_higher_priority_is_claimed_first(app_client: AsyncClient, worker_headers, job_factory, high_first) -> None:
    if high_first:
        high = await job_factory(priority=10, created_at=minutes_ago(2))
        await job_factory(priority=5, created_at=minutes_ago(1))
    else:
        await job_factory(priority=5, created_at=minutes_ago(2))
        high = await job_factory(priority=10, created_at=minutes_ago(1))

    job = await _poll(app_client, worker_headers)
    assert job["id"] == high
    assert job["priority"] == 10


async def test_equal_priority_is_fifo(app_client: AsyncClient, worker_headers, job_factory) -> None:
    newer = await job_factory(priority=3, created_at=minutes_ago(1))
    older = await job_factory(priority=3, created_at=minutes_ago(5))

    first = await _poll(app_client, worker_headers, "worker-a")
    second = await _poll(app_client, worker_headers, "worker-b")
    assert first["id"] == older
    assert second["id"] == newer


async def test_claim_marks_job_running(app_client: AsyncClient, worker_headers, job_factory, fetch_job) -> None:
    job_id = await job_factory()

    job = await _poll(app_client, worker_headers, "fly-gif-worker")
    assert job["id"] == job_id
    assert job["status"] == "running"

    stored = await fetch_job(job_id)
    assert stored.status == "running"
    assert stored.worker_id == "fly-gif-worker"
    assert stored.started_at is not None
    assert stored.locked_at is not None
    assert stored.attempts == 1


async def test_empty_queue_is_a_noop(app_client: AsyncClient, worker_headers, job_factory) -> None:
    await job_factory(status=JobStatus.DONE)

    resp = await app_client.post("/worker-poll", json={"worker_id": "worker-a"}, headers=worker_headers)
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "job": None}


async def test_claimed_job_is_not_handed_out_twice(app_client: AsyncClient, worker_headers, job_factory) -> None:
    await job_factory()

    assert await _poll(app_client, worker_headers, "worker-a") is not None
    assert await _poll(app_client, worker_headers, "worker-b") is None


async def test_job_without_image_is_marked_error(app_client: AsyncClient, worker_headers, job_factory, fetch_job) -> None:
    broken = await job_factory(priority=9, image_url=None, payload={"artist": "Unknown"})
    good = await job_factory(priority=1)

    job = await _poll(app_client, worker_headers)
    assert job["id"] == good

    stored = await fetch_job(broken)
    assert stored.status == "error"
    assert stored.error_message == NO_IMAGE_ERROR


async def test_image_only_in_payload_is_accepted(app_client: AsyncClient, worker_headers, job_factory) -> None:
    job_id = await job_factory(image_url=None, payload={"images": ["https://img.example.com/a.jpg"]})

    job = await _poll(app_client, worker_headers)
    assert job["id"] == job_id
    assert job["image_url"] == "https://img.example.com/a.jpg"


async def test_expired_lease_is_reclaimed(app_client: AsyncClient, worker_headers, job_factory, fetch_job) -> None:
    job_id = await job_factory(
        status=JobStatus.RUNNING,
        worker_id="crashed-worker",
        attempts=1,
        updated_at=minutes_ago(30),
    )

    job = await _poll(app_client, worker_headers, "worker-b")
    assert job["id"] == job_id

    stored = await fetch_job(job_id)
    assert stored.worker_id == "worker-b"
    assert stored.attempts == 2


async def test_live_or_exhausted_leases_are_left_alone(app_client: AsyncClient, worker_headers, job_factory) -> None:
    await job_factory(status=JobStatus.RUNNING, worker_id="busy", attempts=1, updated_at=minutes_ago(1))
    await job_factory(status=JobStatus.RUNNING, worker_id="dead", attempts=3, max_attempts=3, updated_at=minutes_ago(30))

    assert await _poll(app_client, worker_headers) is None


async def test_poll_requires_worker_key(app_client: AsyncClient, job_factory, fetch_job) -> None:
    job_id = await job_factory()

    resp = await app_client.post("/worker-poll", json={"worker_id": "intruder"})
    assert resp.status_code == 401
    assert resp.json()["ok"] is False

    wrong = await app_client.post("/worker-poll", json={"worker_id": "intruder"}, headers={"X-WORKER-KEY": "guess"})
    assert wrong.status_code == 401

    assert (await fetch_job(job_id)).status == "pending"


async def test_process_render_queue(app_client: AsyncClient, job_factory) -> None:
    empty = await app_client.post("/process-render-queue")
    assert empty.status_code == 200
    assert empty.json()["job"] is None

    job_id = await job_factory()
    resp = await app_client.post("/process-render-queue", json={"worker_id": "dispatcher"})
    data = resp.json()
    assert data["ok"] is True
    assert data["job"]["id"] == job_id
    assert data["job"]["worker_id"] == "dispatcher"
