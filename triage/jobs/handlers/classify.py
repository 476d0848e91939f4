"""CLASSIFY queue handler.

One invocation reads a bounded batch from the classify queue and resolves
each job one of three ways: discarded (invalid, stale or already done),
decided synchronously (sender rule or gatekeeper), or collected as an AI
candidate. Candidates are classified in one call per workspace. Failures are
audited and left for redelivery until the read count reaches the dead-letter
threshold.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import update
from sqlalchemy.orm import Session

from triage.core.config import Settings
from triage.core.structured_logging import build_log_context
from triage.db.enums import (
    AuditOutcome,
    Channel,
    ClassifySource,
    ConversationStatus,
    DecisionBucket,
)
from triage.db.models import Message, MessageEvent
from triage.schemas.jobs import ClassifyJob
from triage.schemas.triage import ClassifyItem, NormalizedResult, RecentMessage
from triage.services import pipeline_audit_service, queue_service, sender_rule_service
from triage.services.classification_oracle import Classifier, default_classification
from triage.services.conversation_mutator import (
    ApplyOutcome,
    apply_classification,
    check_guards,
    load_conversation,
)
from triage.services.decision_router import decide
from triage.services.gatekeeper import GatekeeperDecision, check_gatekeeper
from triage.services.queue_service import QueueRecord
from triage.services.sender_rule_service import SenderRuleCache
from triage.services.workspace_context_service import load_workspace_context
from triage.types import JsonObject, QueuePayload
from triage.utils.normalization import mask_email, normalize_email

logger = logging.getLogger(__name__)

RECENT_MESSAGES_LIMIT = 6
# Stop starting new workspace groups this close to the budget.
GROUP_BUDGET_MARGIN_MS = 3000

DISCARD_INVALID = "Invalid CLASSIFY job"
DISCARD_STALE = "Stale classify job (target no longer latest inbound)"
DISCARD_DUPLICATE = "Already classified target message"
DISCARD_RACE = "Conversation advanced before classification was applied"

_SKIP_REASONS = {
    ApplyOutcome.SKIPPED_STALE: DISCARD_STALE,
    ApplyOutcome.SKIPPED_DUPLICATE: DISCARD_DUPLICATE,
    ApplyOutcome.SKIPPED_RACE: DISCARD_RACE,
}


class InvalidJobError(ValueError):
    pass


class MessageEventNotFoundError(Exception):
    pass


@dataclass
class ClassifyWorkerDeps:
    """Collaborators for one worker process, built by the entrypoint."""

    oracle: Classifier
    settings: Settings
    clock: Callable[[], float] = time.monotonic


@dataclass
class WorkerSummary:
    queue: str
    ok: bool = True
    fetched_jobs: int = 0
    ai_candidates: int = 0
    processed: int = 0
    discarded: int = 0
    failed: int = 0
    deadlettered: int = 0
    elapsed_ms: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AiCandidate:
    record: QueueRecord
    job: ClassifyJob
    item: ClassifyItem
    review_floor: bool = False


@dataclass
class _Invocation:
    """State shared by the steps of one handler run."""

    db: Session
    deps: ClassifyWorkerDeps
    summary: WorkerSummary
    started: float
    rule_cache: SenderRuleCache
    candidates: list[AiCandidate] = field(default_factory=list)

    @property
    def settings(self) -> Settings:
        return self.deps.settings

    def elapsed_ms(self) -> int:
        return int((self.deps.clock() - self.started) * 1000)


def parse_classify_job(payload: QueuePayload) -> ClassifyJob:
    try:
        return ClassifyJob.model_validate(payload)
    except ValidationError as exc:
        raise InvalidJobError(DISCARD_INVALID) from exc


def gatekeeper_result(decision: GatekeeperDecision) -> NormalizedResult:
    return NormalizedResult(
        category=decision.category,
        requires_reply=False,
        confidence=decision.confidence,
        lane=decision.lane,
        batch_group=decision.batch_group,
        why_this_needs_you=decision.why,
    )


# =============================================================================
# Queue bookkeeping
# =============================================================================


def _payload(record: QueueRecord) -> JsonObject:
    """The job body as an object; a non-object body is kept under ``raw``."""
    if isinstance(record.message, dict):
        return record.message
    return {"raw": record.message}


def _discard(run: _Invocation, record: QueueRecord, reason: str) -> None:
    payload = _payload(record)
    queue_service.queue_delete(run.db, run.summary.queue, record.msg_id)
    pipeline_audit_service.audit_job(
        run.db,
        workspace_id=payload.get("workspace_id"),
        run_id=payload.get("run_id"),
        queue_name=run.summary.queue,
        job_payload=payload,
        outcome=AuditOutcome.DISCARDED,
        error=reason,
        attempts=record.read_ct,
    )
    run.summary.discarded += 1


def _fail(run: _Invocation, record: QueueRecord, error: str, scope: str) -> None:
    """Dead-letter at the attempt limit, otherwise audit and leave for redelivery."""
    payload = _payload(record)
    context = build_log_context(
        workspace_id=payload.get("workspace_id"),
        run_id=payload.get("run_id"),
        msg_id=record.msg_id,
        queue=run.summary.queue,
    )
    if record.read_ct >= run.settings.CLASSIFY_MAX_ATTEMPTS:
        pipeline_audit_service.deadletter_job(
            run.db,
            from_queue=run.summary.queue,
            deadletter_queue=run.settings.DEADLETTER_QUEUE,
            msg_id=record.msg_id,
            attempts=record.read_ct,
            workspace_id=payload.get("workspace_id"),
            run_id=payload.get("run_id"),
            job_payload=payload,
            error=error,
            scope=scope,
        )
        run.summary.deadlettered += 1
        return

    logger.warning(
        "Classify job failed (attempt %s/%s): %s",
        record.read_ct,
        run.settings.CLASSIFY_MAX_ATTEMPTS,
        error,
        extra=context,
    )
    pipeline_audit_service.audit_job(
        run.db,
        workspace_id=payload.get("workspace_id"),
        run_id=payload.get("run_id"),
        queue_name=run.summary.queue,
        job_payload=payload,
        outcome=AuditOutcome.FAILED,
        error=error,
        attempts=record.read_ct,
    )
    run.summary.failed += 1


def _record_event_error(db: Session, event_id: UUID, error: str) -> None:
    db.execute(
        update(MessageEvent)
        .where(MessageEvent.id == event_id)
        .values(last_error=error[:4000], updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    db.commit()


def _finish(
    run: _Invocation,
    record: QueueRecord,
    job: ClassifyJob,
    result: NormalizedResult,
    *,
    forced_bucket: DecisionBucket | None = None,
    forced_status: ConversationStatus | None = None,
    review_floor: bool = False,
    source: ClassifySource,
) -> bool:
    """Route, apply, delete and audit one job; False if it was discarded at apply time."""
    result, decision = decide(
        result,
        forced_bucket=forced_bucket,
        forced_status=forced_status,
        review_floor=review_floor,
    )
    applied = apply_classification(
        run.db,
        job,
        result,
        decision=decision,
        draft_queue=run.settings.DRAFT_QUEUE,
    )
    if not applied.applied:
        _discard(run, record, _SKIP_REASONS[applied.outcome])
        return False

    queue_service.queue_delete(run.db, run.summary.queue, record.msg_id)
    issues = result.validation_issues
    pipeline_audit_service.audit_job(
        run.db,
        workspace_id=job.workspace_id,
        run_id=job.run_id,
        queue_name=run.summary.queue,
        job_payload=_payload(record),
        outcome=AuditOutcome.PROCESSED,
        error=f"validation_issues: {', '.join(issues)}" if issues else None,
        attempts=record.read_ct,
    )
    run.summary.processed += 1
    pipeline_audit_service.touch_pipeline_run(
        run.db,
        run_id=job.run_id,
        metrics_patch={
            "last_classified_event_id": str(job.event_id),
            "last_classified_at": datetime.now(timezone.utc).isoformat(),
            "classify_source": source.value,
        },
    )
    logger.info(
        "Classified via %s -> %s/%s",
        source.value,
        decision.bucket.value,
        decision.status.value,
        extra=build_log_context(
            workspace_id=job.workspace_id,
            run_id=job.run_id,
            conversation_id=job.conversation_id,
            msg_id=record.msg_id,
        ),
    )
    return True


# =============================================================================
# Steps
# =============================================================================


def _recent_messages(db: Session, conversation_id: UUID) -> list[RecentMessage]:
    rows = (
        db.query(Message.direction, Message.body)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc())
        .limit(RECENT_MESSAGES_LIMIT)
        .all()
    )
    return [RecentMessage(direction=direction, body=body or "") for direction, body in rows]


def _prepare(run: _Invocation, record: QueueRecord, job: ClassifyJob) -> None:
    """Discard, resolve synchronously, or queue the job as an AI candidate."""
    db = run.db
    conversation = load_conversation(db, job)
    skipped = check_guards(conversation, job)
    if skipped:
        _discard(run, record, _SKIP_REASONS[skipped])
        return

    event = db.query(MessageEvent).filter(MessageEvent.id == job.event_id).first()
    if not event:
        raise MessageEventNotFoundError(f"Message event {job.event_id} not found")

    match = sender_rule_service.match_sender_rule(
        run.rule_cache.get(job.workspace_id),
        event.from_identifier,
        event.subject,
        event.body,
    )
    if match:
        if _finish(
            run,
            record,
            job,
            match.classification,
            forced_bucket=match.forced_bucket,
            forced_status=match.forced_status,
            source=ClassifySource.SENDER_RULE,
        ):
            sender_rule_service.record_rule_hit(db, match.rule_id)
        return

    gate = None
    if (event.channel or conversation.channel) == Channel.EMAIL.value:
        gate = check_gatekeeper(event.from_identifier, event.subject)
    if gate and gate.is_terminal:
        logger.info(
            "Gatekeeper resolved %s as %s",
            mask_email(normalize_email(event.from_identifier)),
            gate.classification.value,
            extra=build_log_context(workspace_id=job.workspace_id, msg_id=record.msg_id),
        )
        _finish(
            run,
            record,
            job,
            gatekeeper_result(gate),
            forced_bucket=gate.bucket,
            source=ClassifySource.GATEKEEPER,
        )
        return

    run.candidates.append(
        AiCandidate(
            record=record,
            job=job,
            item=ClassifyItem(
                item_id=str(job.event_id),
                conversation_id=str(job.conversation_id),
                target_message_id=str(job.target_message_id),
                channel=event.channel or conversation.channel,
                sender_identifier=event.from_identifier or "",
                subject=event.subject or "",
                body=event.body or "",
                recent_messages=_recent_messages(db, job.conversation_id),
            ),
            review_floor=gate is not None,
        )
    )


async def _classify_group(run: _Invocation, workspace_id: UUID, group: list[AiCandidate]) -> None:
    db = run.db
    try:
        context = load_workspace_context(db, workspace_id)
        results = await run.deps.oracle.classify_batch([c.item for c in group], context)
    except Exception as exc:
        db.rollback()
        logger.warning(
            "Batch classification failed for %s jobs: %s",
            len(group),
            exc,
            extra=build_log_context(workspace_id=workspace_id, queue=run.summary.queue),
        )
        for candidate in group:
            _fail(run, candidate.record, str(exc), scope="classify_batch")
        return

    for candidate in group:
        try:
            _finish(
                run,
                candidate.record,
                candidate.job,
                results.get(candidate.item.item_id) or default_classification(),
                review_floor=candidate.review_floor,
                source=ClassifySource.AI,
            )
        except Exception as exc:
            db.rollback()
            _record_event_error(db, candidate.job.event_id, str(exc))
            _fail(run, candidate.record, str(exc), scope="classify_apply")


async def process_classify_batch(db: Session, deps: ClassifyWorkerDeps) -> WorkerSummary:
    """Run one bounded pass over the classify queue."""
    settings = deps.settings
    run = _Invocation(
        db=db,
        deps=deps,
        summary=WorkerSummary(queue=settings.CLASSIFY_QUEUE),
        started=deps.clock(),
        rule_cache=SenderRuleCache(db),
    )

    records = queue_service.read_queue(
        db,
        settings.CLASSIFY_QUEUE,
        settings.CLASSIFY_VT_SECONDS,
        settings.classify_batch_size,
    )
    run.summary.fetched_jobs = len(records)

    for record in records:
        if run.elapsed_ms() > settings.WORKER_TIME_BUDGET_MS:
            logger.info("Time budget reached during prep; remaining jobs will be redelivered")
            break
        try:
            job = parse_classify_job(record.message)
        except InvalidJobError as exc:
            _discard(run, record, str(exc))
            continue
        try:
            _prepare(run, record, job)
        except Exception as exc:
            db.rollback()
            _fail(run, record, str(exc), scope="classify_prepare")

    run.summary.ai_candidates = len(run.candidates)
    groups: dict[UUID, list[AiCandidate]] = {}
    for candidate in run.candidates:
        groups.setdefault(candidate.job.workspace_id, []).append(candidate)

    for workspace_id, group in groups.items():
        if run.elapsed_ms() > settings.WORKER_TIME_BUDGET_MS - GROUP_BUDGET_MARGIN_MS:
            logger.info(
                "Time budget reached; %s jobs left for redelivery",
                len(group),
                extra=build_log_context(workspace_id=workspace_id, queue=run.summary.queue),
            )
            break
        await _classify_group(run, workspace_id, group)

    run.summary.elapsed_ms = run.elapsed_ms()
    return run.summary
