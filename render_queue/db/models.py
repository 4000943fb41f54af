from datetime import datetime, timezone
from typing import Optional, Any
from uuid import uuid4

from sqlalchemy import String, Integer, Text, DateTime, ForeignKey, Index, JSON, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import JSONB

from render_queue.db.session import Base
from render_queue.domain.states import JobStatus, JobEvent

# JSONB on Postgres, plain JSON elsewhere (tests run on SQLite)
JsonType = JSON().with_variant(JSONB(), "postgresql")

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def new_id() -> str:
    return str(uuid4())

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

class RenderJob(Base):
    __tablename__ = "render_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    type: Mapped[str] = mapped_column(String, nullable=False)

    payload: Mapped[dict[str, Any]] = mapped_column(JsonType, default=dict)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Core queue fields
    status: Mapped[JobStatus] = mapped_column(String, default=JobStatus.PENDING, index=True)
    priority: Mapped[int] = mapped_column(Integer, default=0)

    # Retry bookkeeping
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)

    # Lease / audit
    worker_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Outcome
    result: Mapped[Optional[Any]] = mapped_column(JsonType, nullable=True)
    output_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Dedup key
    source_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    source_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    events: Mapped[list["RenderJobEvent"]] = relationship(
        "RenderJobEvent", back_populates="job", cascade="all, delete-orphan"
    )

    __table_args__ = (
        # Claim query: pending rows by priority desc, created_at asc
        Index(
            "ix_render_jobs_poll", "status", "priority", "created_at",
            postgresql_where=text("status IN ('pending', 'running')"),
        ),
        Index("ix_render_jobs_source", "source_type", "source_id"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "payload": self.payload or {},
            "image_url": self.image_url,
            "status": self.status,
            "priority": self.priority,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "retry_count": self.retry_count,
            "worker_id": self.worker_id,
            "started_at": self.started_at,
            "locked_at": self.locked_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
            "result": self.result,
            "output_url": self.output_url,
            "error_message": self.error_message,
            "source_type": self.source_type,
            "source_id": self.source_id,
        }

class RenderJobEvent(Base):
    __tablename__ = "render_job_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(String(36), ForeignKey("render_jobs.id", ondelete="CASCADE"), index=True)

    event_type: Mapped[JobEvent] = mapped_column(String, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Context (worker_id, error message, previous status...)
    meta: Mapped[dict[str, Any]] = mapped_column(JsonType, default=dict)

    job: Mapped["RenderJob"] = relationship("RenderJob", back_populates="events")

class WorkerStats(Base):
    __tablename__ = "worker_stats"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    last_heartbeat: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    polling_interval_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict[str, Any]] = mapped_column("metadata", JsonType, default=dict)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "last_heartbeat": self.last_heartbeat,
            "status": self.status,
            "polling_interval_ms": self.polling_interval_ms,
            "metadata": self.meta or {},
            "updated_at": self.updated_at,
        }
