"""Queue storage, audit trail and run bookkeeping models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from triage.db.base import Base
from triage.db.enums import IncidentSeverity, PipelineRunState
from triage.db.models._common import BigIntPK, now_utc
from triage.types import JsonObject


class QueueMessage(Base):
    """
    Live message in a visibility-timeout queue.

    A message is visible when ``vt <= now``. Reading it bumps ``read_ct`` and
    pushes ``vt`` forward so other workers skip it until the timeout lapses.
    """

    __tablename__ = "queue_messages"
    __table_args__ = (
        Index("idx_queue_messages_visible", "queue_name", "vt", "msg_id"),
        # msg ids must never be reused after a delete
        {"sqlite_autoincrement": True},
    )

    msg_id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    queue_name: Mapped[str] = mapped_column(String(100), nullable=False)
    read_ct: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    enqueued_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
    vt: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
    message: Mapped[JsonObject] = mapped_column(nullable=False)


class QueueArchive(Base):
    """Messages removed from a live queue but kept for inspection."""

    __tablename__ = "queue_archive"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    msg_id: Mapped[int] = mapped_column(BigIntPK, nullable=False, index=True)
    queue_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    read_ct: Mapped[int] = mapped_column(Integer, nullable=False)
    enqueued_at: Mapped[datetime] = mapped_column(nullable=False)
    archived_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
    message: Mapped[JsonObject] = mapped_column(nullable=False)


class PipelineJobAudit(Base):
    """One row per handled queue message outcome."""

    __tablename__ = "pipeline_job_audit"
    __table_args__ = (Index("idx_job_audit_workspace", "workspace_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    run_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    queue_name: Mapped[str] = mapped_column(String(100), nullable=False)
    job_payload: Mapped[JsonObject] = mapped_column(nullable=False)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)


class PipelineIncident(Base):
    """Operator-facing record of a dead-lettered job or other hard failure."""

    __tablename__ = "pipeline_incidents"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    run_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    severity: Mapped[str] = mapped_column(
        String(20), default=IncidentSeverity.ERROR.value, nullable=False
    )
    scope: Mapped[str] = mapped_column(String(50), nullable=False)
    error: Mapped[str] = mapped_column(Text, nullable=False)
    context: Mapped[JsonObject] = mapped_column(default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)


class PipelineRun(Base):
    """A workspace import/triage run; ``metrics`` carries progress counters."""

    __tablename__ = "pipeline_runs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    state: Mapped[str] = mapped_column(
        String(20), default=PipelineRunState.RUNNING.value, nullable=False
    )
    metrics: Mapped[JsonObject] = mapped_column(default=dict, nullable=False)
    last_heartbeat_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
