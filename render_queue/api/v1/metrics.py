from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response

router = APIRouter()

# Metrics Definitions
QUEUE_DEPTH = Gauge('render_queue_depth', 'Number of render jobs per status', ['status'])

JOBS_ENQUEUED = Counter(
    "render_jobs_enqueued_total",
    "Render jobs inserted or deduplicated",
    ["endpoint", "outcome"]  # outcome=created|deduplicated
)

JOB_CLAIMS = Counter(
    "render_job_claims_total",
    "Claim attempts by result",
    ["result"]  # claimed|empty|rejected|reclaimed
)

JOB_STATUS_UPDATES = Counter(
    "render_job_status_updates_total",
    "Worker status callbacks by reported status",
    ["status"]
)

JOBS_RESET = Counter(
    "render_jobs_reset_total",
    "Jobs moved back to pending by the recovery sweep or an admin retry",
    ["mode"]  # stuck|error|admin
)

WORKER_HEARTBEATS = Counter(
    "render_worker_heartbeats_total",
    "Heartbeats received by reported worker status",
    ["status"]
)

JOB_DURATION = Histogram(
    'render_job_duration_seconds',
    'Time from claim to done',
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0]
)

LEADER_STATUS = Gauge(
    "render_sweeper_leader_status",
    "Whether this instance currently runs the sweep (1 for leader, 0 for follower)"
)

@router.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
