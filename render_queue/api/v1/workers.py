from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from render_queue.api.deps import DbSession
from render_queue.auth.security import require_worker_key
from render_queue.commands.claim_job import claim_next_job
from render_queue.commands.heartbeat import record_heartbeat
from render_queue.commands.update_status import update_job_status
from render_queue.domain.errors import RenderQueueError

router = APIRouter(dependencies=[Depends(require_worker_key)])

DEFAULT_WORKER_ID = "render-worker"

class PollRequest(BaseModel):
    worker_id: Optional[str] = None

class StatusUpdateRequest(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    result: Any = None
    error_message: Optional[str] = None
    output_url: Optional[str] = None
    worker_id: Optional[str] = None

class HeartbeatRequest(BaseModel):
    id: Optional[str] = None
    ts: Optional[datetime] = None
    status: Optional[str] = None
    polling_interval_ms: Optional[int] = None
    metadata: Optional[dict[str, Any]] = None

@router.post("/worker-poll")
async def poll_job(session: DbSession, body: Optional[PollRequest] = None):
    worker_id = (body.worker_id if body else None) or DEFAULT_WORKER_ID
    job = await claim_next_job(session, worker_id=worker_id)
    # Rejected jobs (no image URL) are committed even when nothing was claimed
    await session.commit()

    if not job:
        return {"ok": True, "job": None}
    return {"ok": True, "job": job.to_dict()}

@router.post("/update_render_job_status")
@router.post("/worker-update")
async def job_status_update(body: StatusUpdateRequest, session: DbSession):
    try:
        job = await update_job_status(
            session,
            job_id=body.id,
            status=body.status,
            result=body.result,
            error_message=body.error_message,
            output_url=body.output_url,
            worker_id=body.worker_id,
        )
    except RenderQueueError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    await session.commit()
    return {"ok": True, "id": job.id, "status": job.status, "output_url": job.output_url}

@router.post("/worker_heartbeat")
async def worker_heartbeat(body: HeartbeatRequest, session: DbSession):
    try:
        stats = await record_heartbeat(
            session,
            worker_id=body.id,
            ts=body.ts,
            status=body.status,
            polling_interval_ms=body.polling_interval_ms,
            metadata=body.metadata,
        )
    except RenderQueueError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    await session.commit()
    return {"ok": True, "message": f"Heartbeat recorded for {stats.id}"}
