from datetime import timedelta
from typing import Any, Optional, Sequence
import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from render_queue.db.models import RenderJob, RenderJobEvent, utcnow
from render_queue.domain.states import JobStatus, JobEvent
from render_queue.api.v1.metrics import JOBS_RESET
from render_queue.settings import settings

logger = logging.getLogger(__name__)

_RETURNED = (
    RenderJob.id,
    RenderJob.type,
    RenderJob.status,
    RenderJob.attempts,
    RenderJob.retry_count,
)

def _summaries(rows) -> list[dict[str, Any]]:
    return [
        {
            "id": row.id,
            "type": row.type,
            "status": row.status,
            "attempts": row.attempts,
            "retry_count": row.retry_count,
        }
        for row in rows
    ]

async def _log_events(session: AsyncSession, jobs: list[dict[str, Any]], event_type: JobEvent, meta: dict[str, Any]) -> None:
    now = utcnow()
    for job in jobs:
        session.add(RenderJobEvent(
            job_id=job["id"],
            event_type=event_type,
            timestamp=now,
            meta=meta,
        ))
    await session.flush()

async def reset_stuck_jobs(session: AsyncSession, minutes: Optional[int] = None) -> list[dict[str, Any]]:
    """
    RUNNING jobs whose updated_at is older than `minutes` go back to PENDING
    with their lease cleared, so any worker can claim them again.
    Returns the reset jobs.
    """
    threshold = minutes if minutes is not None else settings.STUCK_JOB_MINUTES
    now = utcnow()
    cutoff = now - timedelta(minutes=threshold)

    stmt = (
        update(RenderJob)
        .where(
            RenderJob.status == JobStatus.RUNNING,
            RenderJob.updated_at < cutoff,
        )
        .values(
            status=JobStatus.PENDING,
            worker_id=None,
            started_at=None,
            locked_at=None,
            updated_at=now,
        )
        .returning(*_RETURNED)
        .execution_options(synchronize_session=False)
    )
    jobs = _summaries((await session.execute(stmt)).all())

    if jobs:
        await _log_events(session, jobs, JobEvent.REQUEUED, {"reason": "stuck", "minutes": threshold})
        JOBS_RESET.labels(mode="stuck").inc(len(jobs))
        logger.warning("Reset %s render jobs stuck in running for over %s minutes", len(jobs), threshold)
    return jobs

async def reset_error_jobs(session: AsyncSession, retry_limit: Optional[int] = None) -> list[dict[str, Any]]:
    """
    ERROR jobs with retry_count below `retry_limit` go back to PENDING with
    their error cleared and retry_count incremented. Jobs at the limit stay
    in ERROR.
    """
    limit = retry_limit if retry_limit is not None else settings.ERROR_RETRY_LIMIT
    jobs = await _retry_errors(session, RenderJob.retry_count < limit)

    if jobs:
        await _log_events(session, jobs, JobEvent.RETRIED, {"reason": "sweep", "retry_limit": limit})
        JOBS_RESET.labels(mode="error").inc(len(jobs))
        logger.info("Re-queued %s failed render jobs (retry limit %s)", len(jobs), limit)
    return jobs

async def retry_failed_jobs(session: AsyncSession, ids: Optional[Sequence[str]] = None) -> list[dict[str, Any]]:
    """
    Administrative retry: ERROR jobs still under their own max_attempts go
    back to PENDING. Optionally restricted to `ids`.
    """
    criteria = [RenderJob.retry_count < RenderJob.max_attempts]
    if ids:
        criteria.append(RenderJob.id.in_(list(ids)))
    jobs = await _retry_errors(session, *criteria)

    if jobs:
        await _log_events(session, jobs, JobEvent.RETRIED, {"reason": "admin"})
        JOBS_RESET.labels(mode="admin").inc(len(jobs))
        logger.info("Admin retry re-queued %s render jobs", len(jobs))
    return jobs

async def _retry_errors(session: AsyncSession, *criteria) -> list[dict[str, Any]]:
    now = utcnow()
    stmt = (
        update(RenderJob)
        .where(RenderJob.status == JobStatus.ERROR, *criteria)
        .values(
            status=JobStatus.PENDING,
            error_message=None,
            retry_count=RenderJob.retry_count + 1,
            worker_id=None,
            started_at=None,
            locked_at=None,
            updated_at=now,
        )
        .returning(*_RETURNED)
        .execution_options(synchronize_session=False)
    )
    return _summaries((await session.execute(stmt)).all())
