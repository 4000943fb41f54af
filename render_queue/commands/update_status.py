import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from render_queue.db.models import RenderJob, RenderJobEvent, as_utc, utcnow
from render_queue.domain.states import JobStatus, JobEvent, WORKER_REPORTABLE
from render_queue.domain.errors import InvalidStatusError, JobNotFoundError, MissingFieldError
from render_queue.domain.image_source import extract_output_url
from render_queue.api.v1.metrics import JOB_DURATION, JOB_STATUS_UPDATES

logger = logging.getLogger(__name__)

def parse_reported_status(status: Optional[str]) -> JobStatus:
    if not status:
        raise MissingFieldError("status")
    try:
        parsed = JobStatus(status)
    except ValueError:
        raise InvalidStatusError(status, WORKER_REPORTABLE)
    if parsed not in WORKER_REPORTABLE:
        raise InvalidStatusError(status, WORKER_REPORTABLE)
    return parsed

async def update_job_status(
    session: AsyncSession,
    job_id: Optional[str],
    status: Optional[str],
    result: Any = None,
    error_message: Optional[str] = None,
    output_url: Optional[str] = None,
    worker_id: Optional[str] = None,
) -> RenderJob:
    """
    Applies a worker's report to a job. Last write wins: the current status
    is not checked, a worker finishing a job the sweep already re-queued
    still records its result.

    done    -> completed_at, result verbatim, canonical output_url
    error   -> error_message (and result if sent)
    running -> lease refresh (updated_at), worker_id
    pending -> lease fields cleared
    """
    if not job_id:
        raise MissingFieldError("id")
    new_status = parse_reported_status(status)

    stmt = select(RenderJob).where(RenderJob.id == job_id)
    job = (await session.execute(stmt)).scalar_one_or_none()
    if not job:
        raise JobNotFoundError(job_id)

    now = utcnow()
    previous = job.status

    job.status = new_status
    job.updated_at = now
    event_type = JobEvent.STATUS_UPDATED

    if new_status == JobStatus.DONE:
        job.completed_at = now
        job.result = result
        job.output_url = extract_output_url(result, output_url)
        job.error_message = None
        event_type = JobEvent.COMPLETED

        started = as_utc(job.started_at)
        if started:
            JOB_DURATION.observe(max(0.0, (now - started).total_seconds()))

    elif new_status == JobStatus.ERROR:
        if error_message:
            job.error_message = error_message
        if result is not None:
            job.result = result
        event_type = JobEvent.FAILED

    elif new_status == JobStatus.RUNNING:
        if worker_id:
            job.worker_id = worker_id
        if job.started_at is None:
            job.started_at = now
        job.locked_at = now

    elif new_status == JobStatus.PENDING:
        job.worker_id = None
        job.started_at = None
        job.locked_at = None

    session.add(RenderJobEvent(
        job_id=job.id,
        event_type=event_type,
        timestamp=now,
        meta={
            "from": previous,
            "to": new_status,
            "worker_id": worker_id,
            "error": error_message,
        }
    ))
    await session.flush()

    JOB_STATUS_UPDATES.labels(status=new_status).inc()
    if new_status == JobStatus.ERROR:
        logger.warning("Render job %s failed: %s", job.id, error_message)
    else:
        logger.info("Render job %s: %s -> %s", job.id, previous, new_status)
    return job
