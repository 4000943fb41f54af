import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from render_queue.db.models import RenderJob, RenderJobEvent
from render_queue.domain.states import JobStatus, JobEvent, ACTIVE_STATUSES
from render_queue.domain.errors import MissingFieldError
from render_queue.domain.image_source import resolve_image_url
from render_queue.api.v1.metrics import JOBS_ENQUEUED
from render_queue.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_TYPE = "gif"

async def create_render_job(
    session: AsyncSession,
    type: Optional[str],
    payload: Optional[dict[str, Any]] = None,
    priority: Optional[int] = None,
    input_url: Optional[str] = None,
    image_url: Optional[str] = None,
    source_type: Optional[str] = None,
    source_id: Optional[str] = None,
    endpoint: str = "create",
) -> RenderJob:
    """
    Inserts one PENDING job.
    The image source is normalized into `image_url` (and copied into the payload
    when the payload does not carry a usable one) so workers only ever look at one field.
    Raises MissingFieldError before touching the database.
    """
    if not type:
        raise MissingFieldError("type")

    payload = dict(payload or {})
    resolved = resolve_image_url(input_url, image_url, payload)
    if not resolved:
        raise MissingFieldError("image_url")

    current = payload.get("image_url")
    if not isinstance(current, str) or not current.strip():
        payload["image_url"] = resolved

    job = RenderJob(
        type=type,
        payload=payload,
        image_url=resolved,
        priority=priority or 0,
        status=JobStatus.PENDING,
        attempts=0,
        max_attempts=settings.DEFAULT_MAX_ATTEMPTS,
        retry_count=0,
        source_type=source_type,
        source_id=source_id,
    )
    session.add(job)
    await session.flush()

    session.add(RenderJobEvent(
        job_id=job.id,
        event_type=JobEvent.CREATED,
        meta={"type": type, "priority": job.priority, "endpoint": endpoint}
    ))
    await session.flush()

    JOBS_ENQUEUED.labels(endpoint=endpoint, outcome="created").inc()
    logger.info("Enqueued render job %s type=%s priority=%s", job.id, type, job.priority)
    return job

async def find_active_job(
    session: AsyncSession,
    source_type: str,
    source_id: str,
) -> Optional[RenderJob]:
    stmt = select(RenderJob).where(
        RenderJob.source_type == source_type,
        RenderJob.source_id == source_id,
        RenderJob.status.in_(ACTIVE_STATUSES),
    ).order_by(RenderJob.created_at.asc()).limit(1)
    return await session.scalar(stmt)

async def queue_render_job(
    session: AsyncSession,
    image_url: Optional[str],
    source_type: Optional[str],
    source_id: Optional[str] = None,
    artist: Optional[str] = None,
    title: Optional[str] = None,
    priority: Optional[int] = None,
    type: Optional[str] = None,
) -> tuple[RenderJob, bool]:
    """
    Enqueue keyed by the logical source.
    Returns (job, created). When an active job already exists for
    (source_type, source_id) it is returned untouched with created=False.
    """
    if not image_url:
        raise MissingFieldError("imageUrl")
    if not source_type:
        raise MissingFieldError("sourceType")

    if source_id:
        existing = await find_active_job(session, source_type, source_id)
        if existing:
            JOBS_ENQUEUED.labels(endpoint="queue", outcome="deduplicated").inc()
            logger.info(
                "Render job for %s/%s already %s as %s",
                source_type, source_id, existing.status, existing.id,
            )
            return existing, False

    payload: dict[str, Any] = {
        "image_url": image_url,
        "source_type": source_type,
    }
    if source_id:
        payload["source_id"] = source_id
    if artist:
        payload["artist"] = artist
    if title:
        payload["title"] = title

    job = await create_render_job(
        session,
        type=type or DEFAULT_QUEUE_TYPE,
        payload=payload,
        priority=priority,
        image_url=image_url,
        source_type=source_type,
        source_id=source_id,
        endpoint="queue",
    )
    return job, True
