from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from render_queue.api.deps import DbSession
from render_queue.auth.security import require_admin_key
from render_queue.commands.claim_job import claim_next_job
from render_queue.commands.reset_stuck import reset_error_jobs, reset_stuck_jobs, retry_failed_jobs

router = APIRouter()

class ProcessRequest(BaseModel):
    worker_id: Optional[str] = None

class ResetRequest(BaseModel):
    minutes: Optional[int] = None
    reset_errors: bool = False

class RetryRequest(BaseModel):
    ids: Optional[list[str]] = None

@router.post("/process-render-queue")
async def process_render_queue(session: DbSession, body: Optional[ProcessRequest] = None):
    """Claims the next job on behalf of a dispatcher running inside the trust boundary."""
    worker_id = (body.worker_id if body else None) or "queue-processor"
    job = await claim_next_job(session, worker_id=worker_id)
    await session.commit()

    if not job:
        return {"ok": True, "job": None, "message": "No pending jobs"}
    return {"ok": True, "job": job.to_dict()}

@router.post("/reset-stuck-render-jobs")
async def reset_stuck_render_jobs(session: DbSession, body: Optional[ResetRequest] = None):
    body = body or ResetRequest()
    if body.reset_errors:
        jobs = await reset_error_jobs(session)
    else:
        jobs = await reset_stuck_jobs(session, minutes=body.minutes)
    await session.commit()
    return {"success": True, "reset_count": len(jobs), "jobs": jobs}

@router.post("/retry_failed_jobs", dependencies=[Depends(require_admin_key)])
async def trigger_retry_failed(session: DbSession, body: Optional[RetryRequest] = None):
    jobs = await retry_failed_jobs(session, ids=body.ids if body else None)
    await session.commit()
    return {
        "ok": True,
        "reset_count": len(jobs),
        "jobs": jobs,
        "message": f"{len(jobs)} failed jobs re-queued",
    }
