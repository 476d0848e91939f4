"""Tests for job audit, dead-lettering and replay."""

import uuid
from datetime import datetime, timedelta, timezone

from triage.db.enums import AuditOutcome, JobType
from triage.db.models import PipelineIncident, PipelineJobAudit, PipelineRun, QueueArchive
from triage.services import pipeline_audit_service, queue_service

SOURCE = "bb_classify_jobs"
DEADLETTER = "bb_deadletter_jobs"


def _job(workspace_id):
    return {
        "job_type": JobType.CLASSIFY.value,
        "workspace_id": str(workspace_id),
        "event_id": str(uuid.uuid4()),
        "conversation_id": str(uuid.uuid4()),
        "target_message_id": str(uuid.uuid4()),
    }


def test_audit_job_coerces_ids_and_truncates_error(db, workspace_id):
    row = pipeline_audit_service.audit_job(
        db,
        workspace_id=str(workspace_id),
        run_id="not-a-uuid",
        queue_name=SOURCE,
        job_payload={"a": 1},
        outcome=AuditOutcome.FAILED,
        error="x" * 5000,
        attempts=2,
    )

    assert row.workspace_id == workspace_id
    assert row.run_id is None
    assert row.outcome == "failed"
    assert len(row.error) == pipeline_audit_service.MAX_ERROR_LENGTH


def test_deadletter_job_moves_payload_and_records_incident(db, workspace_id):
    payload = _job(workspace_id)
    msg_id = queue_service.queue_send(db, SOURCE, payload)

    dead_id = pipeline_audit_service.deadletter_job(
        db,
        from_queue=SOURCE,
        deadletter_queue=DEADLETTER,
        msg_id=msg_id,
        attempts=6,
        workspace_id=payload["workspace_id"],
        run_id=None,
        job_payload=payload,
        error="Conversation not found",
        scope="classify_prepare",
    )

    assert queue_service.queue_depth(db, SOURCE) == 0
    assert db.query(QueueArchive).filter(QueueArchive.msg_id == msg_id).count() == 1

    [dead] = queue_service.list_queue_messages(db, DEADLETTER)
    assert dead.msg_id == dead_id
    assert dead.message["event_id"] == payload["event_id"]
    assert dead.message["deadlettered_from"] == SOURCE
    assert dead.message["deadlettered_msg_id"] == msg_id
    assert dead.message["deadlettered_attempts"] == 6
    assert dead.message["deadlettered_error"] == "Conversation not found"
    assert "deadlettered_at" in dead.message

    incident = db.query(PipelineIncident).one()
    assert incident.severity == "error"
    assert incident.scope == "classify_prepare"
    assert incident.workspace_id == workspace_id

    audit = db.query(PipelineJobAudit).one()
    assert audit.outcome == AuditOutcome.DEADLETTERED.value
    assert audit.attempts == 6


def test_replay_deadletters_requeues_original_payload(db, workspace_id):
    payload = _job(workspace_id)
    msg_id = queue_service.queue_send(db, SOURCE, payload)
    pipeline_audit_service.deadletter_job(
        db,
        from_queue=SOURCE,
        deadletter_queue=DEADLETTER,
        msg_id=msg_id,
        attempts=6,
        workspace_id=payload["workspace_id"],
        run_id=None,
        job_payload=payload,
        error="boom",
        scope="classify_batch",
    )
    queue_service.queue_send(db, DEADLETTER, {"job_type": JobType.DRAFT.value})

    replayed = pipeline_audit_service.replay_deadletters(
        db, deadletter_queue=DEADLETTER, target_queue=SOURCE
    )

    assert replayed == 1
    # the DRAFT job stays put
    assert queue_service.queue_depth(db, DEADLETTER) == 1

    # replays are delayed by the queue backoff
    assert queue_service.read_queue(db, SOURCE, vt_seconds=60, qty=10) == []
    later = datetime.now(timezone.utc) + timedelta(minutes=10)
    [record] = queue_service.read_queue(db, SOURCE, vt_seconds=60, qty=10, now=later)
    assert record.message == payload

    requeued = (
        db.query(PipelineJobAudit)
        .filter(PipelineJobAudit.outcome == AuditOutcome.REQUEUED.value)
        .one()
    )
    assert "after 6 attempts" in requeued.error


def test_touch_pipeline_run_merges_metrics(db, workspace_id):
    run = PipelineRun(workspace_id=workspace_id, metrics={"imported": 10})
    db.add(run)
    db.commit()

    pipeline_audit_service.touch_pipeline_run(
        db, run_id=str(run.id), metrics_patch={"classify_source": "ai"}
    )

    db.refresh(run)
    assert run.metrics == {"imported": 10, "classify_source": "ai"}
    assert run.last_heartbeat_at is not None


def test_touch_pipeline_run_ignores_missing_run(db):
    pipeline_audit_service.touch_pipeline_run(
        db, run_id=None, metrics_patch={"x": 1}
    )
    pipeline_audit_service.touch_pipeline_run(
        db, run_id=uuid.uuid4(), metrics_patch={"x": 1}
    )
    assert db.query(PipelineRun).count() == 0
