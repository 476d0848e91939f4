"""Tests for the decision router and the full decision pass."""

import pytest

from triage.db.enums import Category, ConversationStatus, DecisionBucket, Lane
from triage.schemas.triage import NormalizedResult
from triage.services.decision_router import decide, route


def _result(**kwargs) -> NormalizedResult:
    kwargs.setdefault("why_this_needs_you", "Specific reason for a human")
    return NormalizedResult(**kwargs)


@pytest.mark.parametrize(
    "category",
    [Category.NOTIFICATION, Category.NEWSLETTER, Category.SPAM, Category.PERSONAL],
)
def test_noise_is_auto_handled(category):
    decision = route(_result(category=category, requires_reply=True, confidence=0.3))

    assert decision.bucket == DecisionBucket.AUTO_HANDLED
    assert decision.status == ConversationStatus.RESOLVED


def test_follow_up_without_reply_is_auto_handled():
    decision = route(_result(category=Category.FOLLOW_UP, requires_reply=False, confidence=0.9))

    assert decision.bucket == DecisionBucket.AUTO_HANDLED


def test_low_confidence_needs_human():
    decision = route(_result(category=Category.QUOTE, requires_reply=True, confidence=0.69))

    assert decision.bucket == DecisionBucket.NEEDS_HUMAN
    assert decision.status == ConversationStatus.ESCALATED


def test_complaint_needing_reply_acts_now():
    decision = route(_result(category=Category.COMPLAINT, requires_reply=True, confidence=0.7))

    assert decision.bucket == DecisionBucket.ACT_NOW
    assert decision.status == ConversationStatus.AI_HANDLING
    assert decision.lane == Lane.TO_REPLY
    assert decision.is_urgent


def test_reply_and_default_are_quick_win():
    reply = route(_result(category=Category.BOOKING, requires_reply=True, confidence=0.9))
    no_reply = route(_result(category=Category.INQUIRY, requires_reply=False, confidence=0.9))

    assert reply.bucket == no_reply.bucket == DecisionBucket.QUICK_WIN
    assert reply.status == ConversationStatus.OPEN


def test_forced_bucket_wins():
    noisy = _result(category=Category.SPAM, confidence=0.1)

    assert route(noisy, DecisionBucket.ACT_NOW).status == ConversationStatus.AI_HANDLING
    assert route(noisy, DecisionBucket.QUICK_WIN, ConversationStatus.WAITING).status == ConversationStatus.WAITING


def test_decide_low_confidence_quote_goes_to_review():
    result, decision = decide(_result(category=Category.QUOTE, requires_reply=True, confidence=0.5))

    assert decision.bucket == DecisionBucket.NEEDS_HUMAN
    assert decision.status == ConversationStatus.ESCALATED
    assert result.lane == Lane.REVIEW
    assert result.needs_review is True


def test_decide_review_lane_downgrades_action_bucket():
    # 0.75 clears the router threshold but not the lane threshold
    result, decision = decide(_result(category=Category.BOOKING, requires_reply=True, confidence=0.75))

    assert decision.bucket == DecisionBucket.NEEDS_HUMAN
    assert result.lane == Lane.REVIEW


def test_decide_confident_complaint_acts_now():
    result, decision = decide(
        _result(category=Category.COMPLAINT, requires_reply=True, confidence=0.92)
    )

    assert decision.bucket == DecisionBucket.ACT_NOW
    assert result.lane == Lane.TO_REPLY
    assert result.is_urgent is True
    assert result.needs_review is False


def test_decide_noise_clears_reply_flags():
    result, decision = decide(
        _result(category=Category.NEWSLETTER, requires_reply=True, confidence=0.95, suggested_reply="Hi")
    )

    assert decision.bucket == DecisionBucket.AUTO_HANDLED
    assert result.lane == Lane.DONE
    assert result.requires_reply is False
    assert result.suggested_reply is None


def test_decide_review_floor_keeps_escalations_out_of_auto_handled():
    result, decision = decide(
        _result(category=Category.NOTIFICATION, requires_reply=False, lane=Lane.DONE, confidence=0.95),
        review_floor=True,
    )

    assert decision.bucket == DecisionBucket.NEEDS_HUMAN
    assert result.lane == Lane.REVIEW


def test_decide_forced_bucket_skips_confidence_routing():
    result, decision = decide(
        _result(category=Category.INQUIRY, requires_reply=True, confidence=0.2),
        forced_bucket=DecisionBucket.QUICK_WIN,
    )

    assert decision.bucket == DecisionBucket.QUICK_WIN
    assert result.lane == Lane.TO_REPLY
