"""Pytest fixtures for the render queue."""
# ruff: noqa: E402

import os
import tempfile
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any, Optional

# Settings are read at import time, configure them before importing the app
_DB_DIR = tempfile.mkdtemp(prefix="render-queue-tests-")
os.environ["SQLALCHEMY_DATABASE_URI"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'render_queue.db')}"
os.environ["WORKER_SECRET"] = "test-worker-secret"
os.environ["ADMIN_SECRET"] = "test-admin-secret"
os.environ["SWEEP_ENABLED"] = "false"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from render_queue.main import app
from render_queue.db.models import RenderJob, RenderJobEvent, WorkerStats, utcnow
from render_queue.db.session import AsyncSessionLocal, create_all, drop_all, engine
from render_queue.domain.states import JobStatus

WORKER_KEY = os.environ["WORKER_SECRET"]
ADMIN_KEY = os.environ["ADMIN_SECRET"]
BASE_URL = "http://testserver/functions/v1"
COVER_URL = "https://img.example.com/covers/abbey-road.jpg"


@pytest.fixture
async def db() -> AsyncGenerator[None, None]:
    await drop_all()
    await create_all()
    yield
    # Pooled aiosqlite connections are bound to this test's event loop
    await engine.dispose()


@pytest.fixture
async def app_client(db) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=BASE_URL) as client:
        yield client


@pytest.fixture
def worker_headers() -> dict[str, str]:
    return {"X-WORKER-KEY": WORKER_KEY}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-ADMIN-KEY": ADMIN_KEY}


@pytest.fixture
def job_factory(db) -> Callable[..., Awaitable[str]]:
    """Inserts a render job directly and returns its id."""

    async def _create(
        status: str = JobStatus.PENDING,
        priority: int = 0,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        image_url: Optional[str] = COVER_URL,
        payload: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ) -> str:
        now = utcnow()
        job = RenderJob(
            type=kwargs.pop("type", "gif"),
            payload=payload if payload is not None else {"image_url": image_url},
            image_url=image_url,
            status=status,
            priority=priority,
            created_at=created_at or now,
            updated_at=updated_at or now,
            **kwargs,
        )
        async with AsyncSessionLocal() as session:
            session.add(job)
            await session.commit()
            return job.id

    return _create


@pytest.fixture
def fetch_job(db) -> Callable[[str], Awaitable[Optional[RenderJob]]]:
    async def _fetch(job_id: str) -> Optional[RenderJob]:
        async with AsyncSessionLocal() as session:
            return await session.get(RenderJob, job_id)

    return _fetch


@pytest.fixture
def fetch_worker(db) -> Callable[[str], Awaitable[Optional[WorkerStats]]]:
    async def _fetch(worker_id: str) -> Optional[WorkerStats]:
        async with AsyncSessionLocal() as session:
            return await session.get(WorkerStats, worker_id)

    return _fetch


@pytest.fixture
def count_jobs(db) -> Callable[[], Awaitable[int]]:
    async def _count() -> int:
        async with AsyncSessionLocal() as session:
            return (await session.execute(select(func.count()).select_from(RenderJob))).scalar() or 0

    return _count


@pytest.fixture
def count_events(db) -> Callable[[], Awaitable[int]]:
    async def _count() -> int:
        async with AsyncSessionLocal() as session:
            return (await session.execute(select(func.count()).select_from(RenderJobEvent))).scalar() or 0

    return _count


def minutes_ago(minutes: float) -> datetime:
    return utcnow() - timedelta(minutes=minutes)
