from sqlalchemy.ext.asyncio import AsyncSession

from render_queue.commands.list_jobs import count_by_status
from render_queue.commands.reset_stuck import reset_stuck_jobs
from render_queue.api.v1.metrics import QUEUE_DEPTH

async def run_leader_tasks(session: AsyncSession) -> int:
    """
    Periodic maintenance run by exactly one instance:
    reclaims RUNNING jobs whose workers went quiet.
    Returns the number of reset jobs.
    """
    jobs = await reset_stuck_jobs(session)
    await session.commit()
    return len(jobs)

async def run_metrics_tasks(session: AsyncSession) -> None:
    # Gauges are recomputed from the table rather than tracked incrementally,
    # so every instance can serve /metrics.
    stats = await count_by_status(session)
    for status, count in stats.items():
        if status == "total":
            continue
        QUEUE_DEPTH.labels(status=status).set(count)
    await session.commit()
