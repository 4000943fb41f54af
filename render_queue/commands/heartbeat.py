from datetime import datetime, timezone
from typing import Any, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from render_queue.db.models import WorkerStats, utcnow
from render_queue.domain.errors import MissingFieldError
from render_queue.api.v1.metrics import WORKER_HEARTBEATS

logger = logging.getLogger(__name__)

async def record_heartbeat(
    session: AsyncSession,
    worker_id: Optional[str],
    ts: Optional[datetime] = None,
    status: Optional[str] = None,
    polling_interval_ms: Optional[int] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> WorkerStats:
    """
    Upserts the liveness record of a worker. Every call overwrites the whole
    record, nothing from the previous heartbeat is kept.
    Staleness is left to readers comparing last_heartbeat with now.
    """
    if not worker_id:
        raise MissingFieldError("id")

    now = utcnow()
    stats = await session.get(WorkerStats, worker_id)
    if stats is None:
        stats = WorkerStats(id=worker_id)
        session.add(stats)

    if ts is not None and ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    stats.last_heartbeat = ts or now
    stats.status = status
    stats.polling_interval_ms = polling_interval_ms
    stats.meta = metadata or {}
    stats.updated_at = now

    await session.flush()

    WORKER_HEARTBEATS.labels(status=status or "unknown").inc()
    logger.debug("Heartbeat from worker %s status=%s", worker_id, status)
    return stats
