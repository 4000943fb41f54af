from datetime import datetime, timedelta
from typing import Optional
import logging

from sqlalchemy import select, update, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from render_queue.db.models import RenderJob, RenderJobEvent, utcnow
from render_queue.domain.states import JobStatus, JobEvent
from render_queue.domain.image_source import resolve_image_url
from render_queue.api.v1.metrics import JOB_CLAIMS
from render_queue.settings import settings

logger = logging.getLogger(__name__)

NO_IMAGE_ERROR = "No image URL found in payload"

def _claimable(model, lease_cutoff: datetime):
    """
    PENDING rows, plus RUNNING rows whose lease went quiet for longer than
    the lease timeout and that still have attempts left.
    """
    return or_(
        model.status == JobStatus.PENDING,
        and_(
            model.status == JobStatus.RUNNING,
            model.updated_at < lease_cutoff,
            model.attempts < model.max_attempts,
        ),
    )

def _build_claim_statement(worker_id: str, now: datetime, lease_cutoff: datetime):
    # The candidate select runs over an alias so it is not correlated
    # against the table being updated.
    candidate = aliased(RenderJob)
    candidate_id = (
        select(candidate.id)
        .where(_claimable(candidate, lease_cutoff))
        .order_by(
            candidate.priority.desc(),
            candidate.created_at.asc()
        )
        .limit(1)
        .with_for_update(skip_locked=True)
        .scalar_subquery()
    )

    # UPDATE render_jobs SET status='running' ... WHERE id = (candidate) AND still claimable RETURNING *
    return (
        update(RenderJob)
        .where(
            RenderJob.id == candidate_id,
            _claimable(RenderJob, lease_cutoff),
        )
        .values(
            status=JobStatus.RUNNING,
            worker_id=worker_id,
            started_at=now,
            locked_at=now,
            updated_at=now,
            attempts=RenderJob.attempts + 1,
        )
        .returning(RenderJob)
        .execution_options(synchronize_session=False, populate_existing=True)
    )

async def claim_next_job(
    session: AsyncSession,
    worker_id: str,
    lease_timeout_seconds: Optional[int] = None,
    scan_limit: Optional[int] = None,
) -> Optional[RenderJob]:
    """
    Claims the next job for `worker_id` in one conditional UPDATE.

    Order: priority DESC, then created_at ASC.
    A claimed job without any resolvable image URL is marked ERROR on the
    spot and the claim moves on to the next candidate, at most `scan_limit`
    times per call.
    Returns None when nothing is claimable.
    """
    timeout = lease_timeout_seconds if lease_timeout_seconds is not None else settings.LEASE_TIMEOUT_SECONDS
    limit = scan_limit if scan_limit is not None else settings.CLAIM_SCAN_LIMIT

    for _ in range(limit):
        now = utcnow()
        lease_cutoff = now - timedelta(seconds=timeout)

        result = await session.execute(_build_claim_statement(worker_id, now, lease_cutoff))
        job = result.scalar_one_or_none()

        if not job:
            JOB_CLAIMS.labels(result="empty").inc()
            return None

        image_url = job.image_url or resolve_image_url(payload=job.payload)
        if not image_url:
            await _reject_job(session, job, worker_id, now)
            continue

        if not job.image_url:
            # Older rows only carry the URL inside the payload
            job.image_url = image_url

        session.add(RenderJobEvent(
            job_id=job.id,
            event_type=JobEvent.CLAIMED,
            timestamp=now,
            meta={"worker_id": worker_id, "attempt": job.attempts}
        ))
        await session.flush()

        JOB_CLAIMS.labels(result="claimed").inc()
        logger.info("Worker %s claimed render job %s (attempt %s)", worker_id, job.id, job.attempts)
        return job

    logger.warning("Worker %s gave up claiming after %s rejected jobs", worker_id, limit)
    return None

async def _reject_job(session: AsyncSession, job: RenderJob, worker_id: str, now: datetime) -> None:
    await session.execute(
        update(RenderJob)
        .where(RenderJob.id == job.id)
        .values(
            status=JobStatus.ERROR,
            error_message=NO_IMAGE_ERROR,
            updated_at=now,
        )
    )
    session.add(RenderJobEvent(
        job_id=job.id,
        event_type=JobEvent.REJECTED,
        timestamp=now,
        meta={"worker_id": worker_id, "error": NO_IMAGE_ERROR}
    ))
    await session.flush()

    JOB_CLAIMS.labels(result="rejected").inc()
    logger.warning("Render job %s has no image URL, marked as error", job.id)
