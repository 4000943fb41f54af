from typing import Any, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from render_queue.db.models import RenderJob, WorkerStats, as_utc, utcnow
from render_queue.domain.states import JobStatus, liveness_for
from render_queue.domain.errors import InvalidStatusError
from render_queue.settings import settings

def parse_status_filter(status: Optional[str]) -> Optional[JobStatus]:
    if not status or status == "all":
        return None
    try:
        return JobStatus(status)
    except ValueError:
        raise InvalidStatusError(status, set(JobStatus))

def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return settings.LIST_DEFAULT_LIMIT
    return max(1, min(limit, settings.LIST_MAX_LIMIT))

async def list_jobs(
    session: AsyncSession,
    status: Optional[JobStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[RenderJob], int]:
    """Returns one page of jobs (newest first) and the total matching the filter."""
    offset = max(0, offset)

    stmt = select(RenderJob)
    count_stmt = select(func.count()).select_from(RenderJob)
    if status:
        stmt = stmt.where(RenderJob.status == status)
        count_stmt = count_stmt.where(RenderJob.status == status)

    stmt = stmt.order_by(RenderJob.created_at.desc(), RenderJob.id).limit(limit).offset(offset)

    jobs = list((await session.execute(stmt)).scalars().all())
    total = (await session.execute(count_stmt)).scalar() or 0
    return jobs, total

async def count_by_status(session: AsyncSession) -> dict[str, int]:
    q = select(RenderJob.status, func.count(RenderJob.id)).group_by(RenderJob.status)
    rows = (await session.execute(q)).all()

    stats = {s.value: 0 for s in JobStatus}
    for status, count in rows:
        stats[status] = count
    stats["total"] = sum(count for _, count in rows)
    return stats

async def latest_worker(session: AsyncSession) -> Optional[dict[str, Any]]:
    """The most recently seen worker, with a derived liveness label."""
    stmt = select(WorkerStats).order_by(WorkerStats.last_heartbeat.desc()).limit(1)
    worker = await session.scalar(stmt)
    if not worker:
        return None

    data = worker.to_dict()
    last = as_utc(worker.last_heartbeat)
    age = (utcnow() - last).total_seconds() if last else None
    data["liveness"] = liveness_for(age)
    return data
