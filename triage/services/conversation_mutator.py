"""Apply a routed classification to a conversation.

All writes are conditional on the conversation still pointing at the job's
target message and not having been classified for it yet, so a superseded
or concurrent job turns into a no-op instead of overwriting newer state. The
DRAFT enqueue uses ``last_draft_enqueued_message_id`` as a compare-and-set
guard and commits in the same transaction as the guard update.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from triage.core.structured_logging import build_log_context
from triage.db.enums import Channel, DecisionBucket, MessageEventStatus
from triage.db.models import Conversation, MessageEvent
from triage.schemas.jobs import ClassifyJob, DraftJob
from triage.schemas.triage import NormalizedResult
from triage.services import identity_service, queue_service
from triage.services.decision_router import RoutingDecision

logger = logging.getLogger(__name__)


class ConversationNotFoundError(Exception):
    pass


class ApplyOutcome(str, Enum):
    APPLIED = "applied"
    SKIPPED_STALE = "skipped_stale"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    SKIPPED_RACE = "skipped_race"


@dataclass(frozen=True)
class ApplyResult:
    outcome: ApplyOutcome
    draft_msg_id: int | None = None

    @property
    def applied(self) -> bool:
        return self.outcome == ApplyOutcome.APPLIED

    @property
    def draft_enqueued(self) -> bool:
        return self.draft_msg_id is not None


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def check_guards(conversation: Conversation, job: ClassifyJob) -> ApplyOutcome | None:
    """Return the skip outcome if the job is stale or already applied, else None."""
    if conversation.last_inbound_message_id != job.target_message_id:
        return ApplyOutcome.SKIPPED_STALE
    if conversation.last_classified_message_id == job.target_message_id:
        return ApplyOutcome.SKIPPED_DUPLICATE
    return None


def load_conversation(db: Session, job: ClassifyJob) -> Conversation:
    conversation = (
        db.query(Conversation)
        .filter(Conversation.id == job.conversation_id)
        .populate_existing()
        .first()
    )
    if not conversation:
        raise ConversationNotFoundError(f"Conversation {job.conversation_id} not found")
    return conversation


def _merged_metadata(conversation: Conversation, result: NormalizedResult, decision: RoutingDecision) -> dict:
    metadata = dict(conversation.meta or {})
    metadata["entities"] = result.entities.model_dump(exclude_defaults=True)
    metadata["last_decision_bucket"] = decision.bucket.value
    if result.suggested_reply:
        metadata["suggested_reply"] = result.suggested_reply
    else:
        metadata.pop("suggested_reply", None)
    if result.validation_issues:
        metadata["validation_issues"] = list(result.validation_issues)
    else:
        metadata.pop("validation_issues", None)
    return metadata


def apply_classification(
    db: Session,
    job: ClassifyJob,
    result: NormalizedResult,
    *,
    decision: RoutingDecision,
    draft_queue: str,
) -> ApplyResult:
    """
    Write the classification and, when a reply is warranted, enqueue one DRAFT job.

    Stale, duplicate and lost-race jobs return a skipped outcome and write
    nothing. Raises ConversationNotFoundError if the conversation is gone.
    """
    conversation = load_conversation(db, job)
    skipped = check_guards(conversation, job)
    if skipped:
        return ApplyResult(skipped)

    log_context = build_log_context(
        workspace_id=job.workspace_id,
        run_id=job.run_id,
        conversation_id=job.conversation_id,
    )
    now = _now_utc()
    values = {
        "category": result.category.value,
        "requires_reply": result.requires_reply,
        "triage_confidence": result.confidence,
        "decision_bucket": decision.bucket.value,
        "lane": result.lane.value,
        "status": decision.status.value,
        "is_urgent": result.is_urgent,
        "needs_review": result.needs_review,
        "batch_group": result.batch_group.value if result.batch_group else None,
        "meta": _merged_metadata(conversation, result, decision),
        "last_classified_message_id": job.target_message_id,
        "ai_reasoning": result.reasoning,
        "ai_sentiment": result.sentiment.value if result.sentiment else None,
        "ai_why_flagged": result.why_this_needs_you,
        "summary_for_human": result.summary_for_human,
        "updated_at": now,
    }
    if conversation.channel == Channel.EMAIL.value:
        values["email_classification"] = result.category.value

    try:
        updated = db.execute(
            update(Conversation)
            .where(
                Conversation.id == job.conversation_id,
                Conversation.last_inbound_message_id == job.target_message_id,
                or_(
                    Conversation.last_classified_message_id.is_(None),
                    Conversation.last_classified_message_id != job.target_message_id,
                ),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if updated.rowcount == 0:
            db.rollback()
            logger.info("Conversation advanced or already classified; skipping", extra=log_context)
            return ApplyResult(ApplyOutcome.SKIPPED_RACE)

        identity_service.harvest_identities(
            db,
            workspace_id=job.workspace_id,
            customer_id=conversation.customer_id,
            entities=result.entities,
            source_channel=conversation.channel,
        )

        db.execute(
            update(MessageEvent)
            .where(
                MessageEvent.id == job.event_id,
                MessageEvent.status != MessageEventStatus.DRAFTED.value,
            )
            .values(status=MessageEventStatus.DECIDED.value, last_error=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )

        draft_msg_id = None
        if result.requires_reply and decision.bucket != DecisionBucket.AUTO_HANDLED:
            draft_msg_id = _enqueue_draft_once(db, job, draft_queue, now)

        db.commit()
    except Exception:
        db.rollback()
        raise

    if draft_msg_id is not None:
        logger.info("Draft job %s enqueued", draft_msg_id, extra=log_context)
    return ApplyResult(ApplyOutcome.APPLIED, draft_msg_id=draft_msg_id)


def _enqueue_draft_once(
    db: Session, job: ClassifyJob, draft_queue: str, now: datetime
) -> int | None:
    """Claim the draft guard for the target message and enqueue; None if already claimed."""
    current = db.execute(
        select(Conversation.last_draft_enqueued_message_id).where(
            Conversation.id == job.conversation_id
        )
    ).scalar_one_or_none()
    if current == job.target_message_id:
        return None

    claimed = db.execute(
        update(Conversation)
        .where(
            Conversation.id == job.conversation_id,
            or_(
                Conversation.last_draft_enqueued_message_id.is_(None),
                Conversation.last_draft_enqueued_message_id != job.target_message_id,
            ),
        )
        .values(last_draft_enqueued_message_id=job.target_message_id, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        return None

    draft = DraftJob(
        workspace_id=job.workspace_id,
        run_id=job.run_id,
        conversation_id=job.conversation_id,
        target_message_id=job.target_message_id,
        event_id=job.event_id,
    )
    return queue_service.queue_send(db, draft_queue, draft.to_message(), commit=False)
