from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from render_queue.api.deps import DbSession
from render_queue.auth.security import require_admin_key
from render_queue.commands.create_job import create_render_job, queue_render_job
from render_queue.commands.list_jobs import (
    clamp_limit,
    count_by_status,
    latest_worker,
    list_jobs,
    parse_status_filter,
)
from render_queue.domain.errors import RenderQueueError

router = APIRouter()

class JobCreate(BaseModel):
    type: Optional[str] = None
    payload: Optional[dict[str, Any]] = None
    priority: Optional[int] = None
    input_url: Optional[str] = None
    image_url: Optional[str] = None

class QueueRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    source_type: Optional[str] = Field(default=None, alias="sourceType")
    source_id: Optional[Union[str, int]] = Field(default=None, alias="sourceId")
    artist: Optional[str] = None
    title: Optional[str] = None
    priority: Optional[int] = None
    type: Optional[str] = None

async def _create(body: JobCreate, session: DbSession) -> dict[str, Any]:
    try:
        job = await create_render_job(
            session,
            type=body.type,
            payload=body.payload,
            priority=body.priority,
            input_url=body.input_url,
            image_url=body.image_url,
        )
    except RenderQueueError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    await session.commit()
    return {"ok": True, "id": job.id}

@router.post("/create-render-job", status_code=status.HTTP_201_CREATED)
async def create_job(body: JobCreate, session: DbSession):
    return await _create(body, session)

@router.post(
    "/enqueue_render_job",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin_key)],
)
async def enqueue_job(body: JobCreate, session: DbSession):
    # Admin re-enqueue of an existing job's type/payload/priority
    return await _create(body, session)

@router.post("/queue-render-job", status_code=status.HTTP_201_CREATED)
async def queue_job(body: QueueRequest, session: DbSession):
    source_id = str(body.source_id) if body.source_id is not None else None
    try:
        job, created = await queue_render_job(
            session,
            image_url=body.image_url,
            source_type=body.source_type,
            source_id=source_id,
            artist=body.artist,
            title=body.title,
            priority=body.priority,
            type=body.type,
        )
    except RenderQueueError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    await session.commit()

    if not created:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={
                "success": True,
                "jobId": job.id,
                "status": job.status,
                "existing": True,
                "message": f"Render job already {job.status} for this source",
            },
        )
    return {"success": True, "jobId": job.id, "message": "Render job queued"}

@router.get("/list_render_jobs")
async def list_render_jobs(
    session: DbSession,
    status: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
    worker_stats: bool = False,
):
    try:
        status_filter = parse_status_filter(status)
    except RenderQueueError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    page_size = clamp_limit(limit)
    offset = max(0, offset)
    jobs, total = await list_jobs(session, status=status_filter, limit=page_size, offset=offset)
    stats = await count_by_status(session)

    response: dict[str, Any] = {
        "ok": True,
        "jobs": [job.to_dict() for job in jobs],
        "stats": stats,
        "pagination": {
            "total": total,
            "limit": page_size,
            "offset": offset,
            "hasMore": offset + len(jobs) < total,
        },
    }
    if worker_stats:
        response["worker_stats"] = await latest_worker(session)
    return response
