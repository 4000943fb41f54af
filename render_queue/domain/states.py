from enum import StrEnum, auto

class JobStatus(StrEnum):
    PENDING = auto()   # Waiting to be claimed
    RUNNING = auto()   # Claimed by a worker
    DONE = auto()      # Worker reported success
    ERROR = auto()     # Worker reported failure (retryable by sweep/admin)
    POISON = auto()    # Terminal failure, never retried automatically

class JobEvent(StrEnum):
    CREATED = auto()
    CLAIMED = auto()
    REJECTED = auto()
    STATUS_UPDATED = auto()
    COMPLETED = auto()
    FAILED = auto()
    REQUEUED = auto()
    RETRIED = auto()

class WorkerLiveness(StrEnum):
    ACTIVE = auto()
    IDLE = auto()
    OFFLINE = auto()

# Statuses a worker may report through the callback endpoint
WORKER_REPORTABLE = frozenset({
    JobStatus.DONE,
    JobStatus.ERROR,
    JobStatus.PENDING,
    JobStatus.RUNNING,
})

# At most one job per (source_type, source_id) may sit in these
ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.RUNNING)

ACTIVE_HEARTBEAT_SECONDS = 60
IDLE_HEARTBEAT_SECONDS = 300

def liveness_for(age_seconds: float | None) -> WorkerLiveness:
    """Classifies a worker by the age of its last heartbeat."""
    if age_seconds is None:
        return WorkerLiveness.OFFLINE
    if age_seconds < ACTIVE_HEARTBEAT_SECONDS:
        return WorkerLiveness.ACTIVE
    if age_seconds < IDLE_HEARTBEAT_SECONDS:
        return WorkerLiveness.IDLE
    return WorkerLiveness.OFFLINE
