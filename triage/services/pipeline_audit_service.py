"""Pipeline audit trail, dead-lettering and run metrics."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from triage.core.structured_logging import build_log_context
from triage.db.enums import AuditOutcome, IncidentSeverity, JobType
from triage.db.models import PipelineIncident, PipelineJobAudit, PipelineRun
from triage.services import queue_service
from triage.services.http_service import calculate_backoff_seconds
from triage.types import JsonObject

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 4000


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_uuid(value: object) -> UUID | None:
    """Payload ids arrive as strings and may be garbage on a malformed job."""
    if isinstance(value, UUID):
        return value
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def audit_job(
    db: Session,
    *,
    workspace_id: object,
    run_id: object,
    queue_name: str,
    job_payload: JsonObject,
    outcome: AuditOutcome,
    error: str | None = None,
    attempts: int = 0,
    commit: bool = True,
) -> PipelineJobAudit:
    """Record what happened to one queue message."""
    row = PipelineJobAudit(
        workspace_id=_coerce_uuid(workspace_id),
        run_id=_coerce_uuid(run_id),
        queue_name=queue_name,
        job_payload=dict(job_payload or {}),
        outcome=outcome.value,
        error=error[:MAX_ERROR_LENGTH] if error else None,
        attempts=attempts,
    )
    db.add(row)
    if commit:
        db.commit()
    return row


def record_incident(
    db: Session,
    *,
    workspace_id: object,
    run_id: object,
    scope: str,
    error: str,
    context: JsonObject | None = None,
    severity: IncidentSeverity = IncidentSeverity.ERROR,
    commit: bool = True,
) -> PipelineIncident:
    incident = PipelineIncident(
        workspace_id=_coerce_uuid(workspace_id),
        run_id=_coerce_uuid(run_id),
        severity=severity.value,
        scope=scope,
        error=error[:MAX_ERROR_LENGTH],
        context=dict(context or {}),
    )
    db.add(incident)
    if commit:
        db.commit()
    return incident


def deadletter_job(
    db: Session,
    *,
    from_queue: str,
    deadletter_queue: str,
    msg_id: int,
    attempts: int,
    workspace_id: object,
    run_id: object,
    job_payload: JsonObject,
    error: str,
    scope: str,
) -> int:
    """
    Move a poison message to the dead-letter queue.

    The dead-letter copy, the archive of the source message, the incident and
    the audit row are written in one transaction. Returns the dead-letter msg_id.
    """
    deadletter_payload = {
        **(job_payload or {}),
        "deadlettered_from": from_queue,
        "deadlettered_msg_id": msg_id,
        "deadlettered_attempts": attempts,
        "deadlettered_error": error[:MAX_ERROR_LENGTH],
        "deadlettered_at": _now_utc().isoformat(),
    }
    try:
        dead_msg_id = queue_service.queue_send(
            db, deadletter_queue, deadletter_payload, commit=False
        )
        queue_service.queue_archive(db, from_queue, msg_id, commit=False)
        record_incident(
            db,
            workspace_id=workspace_id,
            run_id=run_id,
            scope=scope,
            error=error,
            context={
                "queue_name": from_queue,
                "msg_id": msg_id,
                "attempts": attempts,
                "job_payload": dict(job_payload or {}),
            },
            commit=False,
        )
        audit_job(
            db,
            workspace_id=workspace_id,
            run_id=run_id,
            queue_name=from_queue,
            job_payload=job_payload,
            outcome=AuditOutcome.DEADLETTERED,
            error=error,
            attempts=attempts,
            commit=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.error(
        "Job dead-lettered after %s attempts",
        attempts,
        extra=build_log_context(
            workspace_id=str(workspace_id) if workspace_id else None,
            run_id=str(run_id) if run_id else None,
            msg_id=msg_id,
            queue=from_queue,
        ),
    )
    return dead_msg_id


def requeue_job(
    db: Session,
    *,
    queue_name: str,
    job_payload: JsonObject,
    attempt: int,
    workspace_id: object = None,
    run_id: object = None,
    reason: str | None = None,
) -> int:
    """Re-send a job with exponential backoff delay and audit it as requeued."""
    delay = calculate_backoff_seconds(attempt)
    new_msg_id = queue_service.queue_send(
        db, queue_name, job_payload, delay_seconds=delay, commit=False
    )
    audit_job(
        db,
        workspace_id=workspace_id,
        run_id=run_id,
        queue_name=queue_name,
        job_payload=job_payload,
        outcome=AuditOutcome.REQUEUED,
        error=reason,
        attempts=attempt,
        commit=False,
    )
    db.commit()
    return new_msg_id


def replay_deadletters(
    db: Session,
    *,
    deadletter_queue: str,
    target_queue: str,
    job_type: JobType = JobType.CLASSIFY,
    limit: int = 100,
) -> int:
    """
    Move dead-lettered jobs of ``job_type`` back onto ``target_queue``.

    The ``deadlettered_*`` bookkeeping keys are stripped and the replay is
    audited as requeued. Returns the number of jobs replayed.
    """
    replayed = 0
    for row in queue_service.list_queue_messages(db, deadletter_queue, limit=limit):
        payload = row.message
        if not isinstance(payload, dict) or payload.get("job_type") != job_type.value:
            continue
        attempts = int(payload.get("deadlettered_attempts") or 0)
        original = {k: v for k, v in payload.items() if not k.startswith("deadlettered_")}
        queue_service.queue_archive(db, deadletter_queue, row.msg_id, commit=False)
        requeue_job(
            db,
            queue_name=target_queue,
            job_payload=original,
            attempt=1,
            workspace_id=original.get("workspace_id"),
            run_id=original.get("run_id"),
            reason=f"Replayed from {deadletter_queue} after {attempts} attempts",
        )
        replayed += 1
    return replayed


def touch_pipeline_run(
    db: Session,
    *,
    run_id: object,
    metrics_patch: JsonObject,
) -> None:
    """Merge ``metrics_patch`` into a run's metrics and bump its heartbeat."""
    run_uuid = _coerce_uuid(run_id)
    if not run_uuid:
        return
    run = db.query(PipelineRun).filter(PipelineRun.id == run_uuid).first()
    if not run:
        return
    run.metrics = {**(run.metrics or {}), **metrics_patch}
    run.last_heartbeat_at = _now_utc()
    db.commit()
