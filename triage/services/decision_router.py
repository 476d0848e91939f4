"""Decision router: classification -> bucket/status, kept in sync with the lane."""

from __future__ import annotations

from dataclasses import dataclass

from triage.db.enums import (
    NOISE_CATEGORIES,
    Category,
    ConversationStatus,
    DecisionBucket,
    Lane,
)
from triage.schemas.triage import NormalizedResult
from triage.services import triage_normalizer

# Below this the legacy router escalates to a human regardless of category.
ROUTER_REVIEW_CONFIDENCE = 0.70

FORCED_BUCKET_STATUS: dict[DecisionBucket, ConversationStatus] = {
    DecisionBucket.AUTO_HANDLED: ConversationStatus.RESOLVED,
    DecisionBucket.NEEDS_HUMAN: ConversationStatus.ESCALATED,
    DecisionBucket.ACT_NOW: ConversationStatus.AI_HANDLING,
    DecisionBucket.QUICK_WIN: ConversationStatus.OPEN,
}

ACTION_BUCKETS = frozenset({DecisionBucket.ACT_NOW, DecisionBucket.QUICK_WIN})


@dataclass(frozen=True)
class RoutingDecision:
    bucket: DecisionBucket
    status: ConversationStatus

    @property
    def lane(self) -> Lane:
        return triage_normalizer.bucket_to_lane(self.bucket)[0]

    @property
    def is_urgent(self) -> bool:
        return self.bucket == DecisionBucket.ACT_NOW


_NEEDS_HUMAN = RoutingDecision(DecisionBucket.NEEDS_HUMAN, ConversationStatus.ESCALATED)
_AUTO_HANDLED = RoutingDecision(DecisionBucket.AUTO_HANDLED, ConversationStatus.RESOLVED)


def route(
    result: NormalizedResult,
    forced_bucket: DecisionBucket | None = None,
    forced_status: ConversationStatus | None = None,
) -> RoutingDecision:
    """
    Map a classification to a decision bucket and conversation status.

    A forced bucket (from a sender rule) wins outright; otherwise the first
    matching rule applies: noise, non-reply follow-up, low confidence,
    complaint needing a reply, any reply, default.
    """
    if forced_bucket is not None:
        status = forced_status or FORCED_BUCKET_STATUS.get(forced_bucket, ConversationStatus.OPEN)
        return RoutingDecision(forced_bucket, status)

    if result.category in NOISE_CATEGORIES:
        return _AUTO_HANDLED
    if result.category == Category.FOLLOW_UP and not result.requires_reply:
        return _AUTO_HANDLED
    if result.confidence < ROUTER_REVIEW_CONFIDENCE:
        return _NEEDS_HUMAN
    if result.requires_reply and result.category == Category.COMPLAINT:
        return RoutingDecision(DecisionBucket.ACT_NOW, ConversationStatus.AI_HANDLING)
    if result.requires_reply:
        return RoutingDecision(DecisionBucket.QUICK_WIN, ConversationStatus.OPEN)
    return RoutingDecision(DecisionBucket.QUICK_WIN, ConversationStatus.OPEN)


def decide(
    result: NormalizedResult,
    *,
    forced_bucket: DecisionBucket | None = None,
    forced_status: ConversationStatus | None = None,
    review_floor: bool = False,
) -> tuple[NormalizedResult, RoutingDecision]:
    """
    Run the full decision pass for one classification.

    The result is validated and auto-corrected, low confidence is routed to
    review, then the bucket router runs. A review lane from the lane pass
    downgrades an action bucket to needs_human; ``review_floor`` (set for
    gatekeeper escalations) keeps the message out of auto_handled. The
    returned result's lane and reply flags agree with the decision.
    """
    if forced_bucket is None:
        result = triage_normalizer.finalize(result)
    decision = route(result, forced_bucket, forced_status)

    if forced_bucket is None:
        if result.lane == Lane.REVIEW and decision.bucket in ACTION_BUCKETS:
            decision = _NEEDS_HUMAN
        if review_floor and decision.bucket == DecisionBucket.AUTO_HANDLED:
            decision = _NEEDS_HUMAN

    return align_result(result, decision), decision


def align_result(result: NormalizedResult, decision: RoutingDecision) -> NormalizedResult:
    """Rewrite the result's lane flags to match the routed bucket."""
    lane = decision.lane
    update: dict = {"lane": lane, "is_urgent": decision.is_urgent}
    if lane == Lane.REVIEW:
        update["needs_review"] = True
    if lane != result.lane:
        update["why_this_needs_you"] = (
            result.why_this_needs_you
            if result.needs_review and lane == Lane.REVIEW
            else triage_normalizer.describe_why(result.category, lane)
        )
    aligned = result.model_copy(update=update)
    return triage_normalizer.enforce_done_invariant(aligned)
