"""Normalize and validate classifier output against triage business rules.

The classifier may answer in the flat batch shape
(``{"category", "requires_reply", "confidence", ...}``) or in the nested
lanes-and-flags shape (``{"lane", "flags": {...}, "decision": {...},
"classification": {...}}``). Both are coerced into ``NormalizedResult``;
nothing the model returns can raise here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from triage.db.enums import BatchGroup, Category, DecisionBucket, Lane, Sentiment
from triage.schemas.triage import ClassificationEntities, NormalizedResult

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = Category.INQUIRY
DEFAULT_REQUIRES_REPLY = True
DEFAULT_CONFIDENCE = 0.55

# Below this the lane variant of the router sends the result to review.
LANE_REVIEW_CONFIDENCE = 0.80
# Below this a non-done result is flagged for human review.
NEEDS_REVIEW_CONFIDENCE = 0.85

MIN_WHY_LENGTH = 5
GENERIC_WHY_MAX_LENGTH = 30
GENERIC_WHY_PHRASES = ("needs a response", "requires attention", "action needed", "needs human")

ISSUE_DONE_REPLY = "DONE + reply_required conflict"
ISSUE_DONE_SUGGESTED_REPLY = "DONE + suggested_reply conflict"
ISSUE_LOW_CONFIDENCE_URGENT = "Low confidence routed to urgent action"
ISSUE_GENERIC_WHY = "Generic why_this_needs_you"
ISSUE_SHORT_WHY = "Empty or too short why_this_needs_you"
ISSUE_MISDIRECTED_LANE = "Misdirected should be to_reply"
ISSUE_MISDIRECTED_REPLY = "Misdirected should require reply"

# Fine-grained labels from the lanes-and-flags prompt, folded onto the closed enum.
CATEGORY_ALIASES: dict[str, Category] = {
    "customer_inquiry": Category.INQUIRY,
    "customer_feedback": Category.INQUIRY,
    "lead_new": Category.INQUIRY,
    "partner_request": Category.INQUIRY,
    "supplier_urgent": Category.INQUIRY,
    "general": Category.INQUIRY,
    "customer_complaint": Category.COMPLAINT,
    "lead_followup": Category.FOLLOW_UP,
    "payment_promise": Category.FOLLOW_UP,
    "quote_request": Category.QUOTE,
    "booking_request": Category.BOOKING,
    "reschedule_request": Category.BOOKING,
    "cancellation_request": Category.BOOKING,
    "automated_notification": Category.NOTIFICATION,
    "receipt_confirmation": Category.NOTIFICATION,
    "payment_confirmation": Category.NOTIFICATION,
    "supplier_invoice": Category.NOTIFICATION,
    "internal_system": Category.NOTIFICATION,
    "informational_only": Category.NOTIFICATION,
    "recruitment_hr": Category.NOTIFICATION,
    "marketing_newsletter": Category.NEWSLETTER,
    "spam_phishing": Category.SPAM,
}

_LANE_WHY_TEMPLATES = {
    Lane.TO_REPLY: "{label} - reply needed",
    Lane.REVIEW: "{label} - needs review",
    Lane.DONE: "{label} - no action needed",
    Lane.SNOOZED: "{label} - follow up later",
}


@dataclass
class ValidationReport:
    valid: bool
    issues: list[str] = field(default_factory=list)


# =============================================================================
# Lane <-> bucket
# =============================================================================


def lane_to_bucket(lane: Lane, urgent: bool = False) -> DecisionBucket:
    """Legacy bucket view of a lane."""
    if lane == Lane.TO_REPLY:
        return DecisionBucket.ACT_NOW if urgent else DecisionBucket.QUICK_WIN
    if lane == Lane.DONE:
        return DecisionBucket.AUTO_HANDLED
    if lane == Lane.SNOOZED:
        return DecisionBucket.WAIT
    return DecisionBucket.NEEDS_HUMAN


def bucket_to_lane(bucket: DecisionBucket | str | None) -> tuple[Lane, bool]:
    """Lane and urgency implied by a legacy bucket; unknown buckets go to review."""
    mapping = {
        DecisionBucket.ACT_NOW.value: (Lane.TO_REPLY, True),
        DecisionBucket.QUICK_WIN.value: (Lane.TO_REPLY, False),
        DecisionBucket.NEEDS_HUMAN.value: (Lane.REVIEW, False),
        DecisionBucket.AUTO_HANDLED.value: (Lane.DONE, False),
        DecisionBucket.WAIT.value: (Lane.SNOOZED, False),
    }
    key = bucket.value if isinstance(bucket, DecisionBucket) else bucket
    return mapping.get(key, (Lane.REVIEW, False))


# =============================================================================
# Coercion helpers
# =============================================================================


def _dig(raw: dict[str, Any], *paths: tuple[str, ...]) -> Any:
    """First non-None value found along any of the key paths."""
    for path in paths:
        node: Any = raw
        for key in path:
            if not isinstance(node, dict):
                node = None
                break
            node = node.get(key)
        if node is not None:
            return node
    return None


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1"):
            return True
        if lowered in ("false", "no", "0"):
            return False
    return None


def _as_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _as_confidence(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)) or value != value:  # NaN
        return None
    return max(0.0, min(1.0, float(value)))


def _as_enum(enum_cls, value: Any):
    if not isinstance(value, str):
        return None
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        return None


def coerce_category(value: Any) -> Category:
    """Map a free-form label onto the closed category enum."""
    if not isinstance(value, str) or not value.strip():
        return DEFAULT_CATEGORY
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return Category(key)
    except ValueError:
        return CATEGORY_ALIASES.get(key, DEFAULT_CATEGORY)


def _coerce_entities(value: Any) -> ClassificationEntities:
    if not isinstance(value, dict):
        return ClassificationEntities()
    try:
        return ClassificationEntities.model_validate(value)
    except ValidationError as exc:
        logger.warning("Dropping malformed entities: %s", exc.error_count())
        return ClassificationEntities()


def _coerce_batch_group(value: Any) -> BatchGroup | None:
    if not isinstance(value, str):
        return None
    try:
        return BatchGroup(value.strip().upper())
    except ValueError:
        return None


# =============================================================================
# Normalize / validate / correct
# =============================================================================


def normalize(raw: Any) -> NormalizedResult:
    """
    Coerce raw classifier output into a ``NormalizedResult``.

    Every field falls back independently, so one bad field never discards
    the rest. Non-dict input yields the safe default.
    """
    if not isinstance(raw, dict):
        return NormalizedResult()

    category = coerce_category(_dig(raw, ("category",), ("classification", "category")))

    requires_reply = _as_bool(
        _dig(raw, ("requires_reply",), ("classification", "requires_reply"), ("flags", "reply_required"))
    )
    if requires_reply is None:
        requires_reply = DEFAULT_REQUIRES_REPLY

    confidence = _as_confidence(_dig(raw, ("confidence",), ("decision", "confidence")))
    if confidence is None:
        confidence = DEFAULT_CONFIDENCE

    raw_bucket = _dig(raw, ("decision_bucket",), ("bucket",), ("decision", "bucket"))
    urgent = _as_bool(_dig(raw, ("urgent",), ("is_urgent",), ("flags", "urgent"))) or False
    lane = _as_enum(Lane, raw.get("lane"))
    if lane is None and isinstance(raw_bucket, str):
        lane, bucket_urgent = bucket_to_lane(raw_bucket.strip().lower())
        urgent = urgent or bucket_urgent
    if lane is None:
        lane = Lane.TO_REPLY if requires_reply else Lane.REVIEW

    why = _as_text(_dig(raw, ("why_this_needs_you",), ("decision", "why_this_needs_you")))
    if not why or len(why) < MIN_WHY_LENGTH:
        why = f"{category.value.replace('_', ' ')} - review needed"

    return NormalizedResult(
        category=category,
        requires_reply=requires_reply,
        confidence=confidence,
        entities=_coerce_entities(raw.get("entities")),
        lane=lane,
        is_urgent=urgent,
        suggested_reply=_as_text(raw.get("suggested_reply")),
        batch_group=_coerce_batch_group(raw.get("batch_group")),
        reasoning=_as_text(raw.get("reasoning")),
        sentiment=_as_enum(Sentiment, _dig(raw, ("sentiment", "tone"), ("sentiment",))),
        why_this_needs_you=why,
        summary_for_human=_as_text(
            _dig(raw, ("summary_for_human",), ("summary", "one_line"), ("summary",))
        ),
    )


def validate(result: NormalizedResult) -> ValidationReport:
    """Check cross-field business rules; never raises."""
    issues: list[str] = []

    if result.lane == Lane.DONE and result.requires_reply:
        issues.append(ISSUE_DONE_REPLY)
    if result.lane == Lane.DONE and result.suggested_reply:
        issues.append(ISSUE_DONE_SUGGESTED_REPLY)

    if result.confidence < LANE_REVIEW_CONFIDENCE and result.is_urgent:
        issues.append(ISSUE_LOW_CONFIDENCE_URGENT)

    why = (result.why_this_needs_you or "").lower()
    if why and len(why) < GENERIC_WHY_MAX_LENGTH and any(p in why for p in GENERIC_WHY_PHRASES):
        issues.append(ISSUE_GENERIC_WHY)
    if len(why) < MIN_WHY_LENGTH:
        issues.append(ISSUE_SHORT_WHY)

    if result.category == Category.MISDIRECTED:
        if result.lane != Lane.TO_REPLY:
            issues.append(ISSUE_MISDIRECTED_LANE)
        if not result.requires_reply:
            issues.append(ISSUE_MISDIRECTED_REPLY)

    return ValidationReport(valid=not issues, issues=issues)


def describe_why(category: Category, lane: Lane) -> str:
    label = category.value.replace("_", " ")
    return _LANE_WHY_TEMPLATES[lane].format(label=label)


def auto_correct(result: NormalizedResult, issues: list[str]) -> NormalizedResult:
    """Deterministically repair the issues ``validate`` reported."""
    if not issues:
        return result
    update: dict[str, Any] = {"validation_issues": list(issues)}
    lane = result.lane

    if ISSUE_DONE_REPLY in issues:
        # A reply was asked for, so the done lane was the mistake.
        lane = Lane.TO_REPLY
        update["requires_reply"] = True
    if ISSUE_DONE_SUGGESTED_REPLY in issues and lane == Lane.DONE:
        update["suggested_reply"] = None
    if ISSUE_LOW_CONFIDENCE_URGENT in issues:
        update["is_urgent"] = False
        lane = Lane.REVIEW
    if ISSUE_MISDIRECTED_LANE in issues:
        lane = Lane.TO_REPLY
    if ISSUE_MISDIRECTED_REPLY in issues:
        update["requires_reply"] = True

    update["lane"] = lane
    if ISSUE_GENERIC_WHY in issues or ISSUE_SHORT_WHY in issues or lane != result.lane:
        update["why_this_needs_you"] = describe_why(result.category, lane)

    return result.model_copy(update=update)


def apply_confidence_routing(
    result: NormalizedResult, threshold: float = LANE_REVIEW_CONFIDENCE
) -> NormalizedResult:
    """
    Send uncertain results to review instead of an action lane.

    Done results are left alone; the noise rules already decided those.
    """
    if result.confidence >= threshold or result.lane == Lane.DONE:
        return result
    percent = round(result.confidence * 100)
    return result.model_copy(
        update={
            "lane": Lane.REVIEW,
            "is_urgent": False,
            "needs_review": True,
            "why_this_needs_you": f"Low confidence ({percent}%) - teach me",
        }
    )


def enforce_done_invariant(result: NormalizedResult) -> NormalizedResult:
    """A done lane never asks for a reply and never carries a draft."""
    if result.lane != Lane.DONE:
        return result
    return result.model_copy(
        update={"requires_reply": False, "suggested_reply": None, "is_urgent": False}
    )


def compute_needs_review(result: NormalizedResult, *, known_sender: bool = True) -> bool:
    return (
        result.lane == Lane.REVIEW
        or (result.confidence < NEEDS_REVIEW_CONFIDENCE and result.lane != Lane.DONE)
        or not known_sender
    )


def finalize(raw: Any, *, known_sender: bool = True) -> NormalizedResult:
    """
    Full lanes-and-flags pass: normalize, validate, auto-correct, route low
    confidence to review, then apply the done invariant.
    """
    result = raw if isinstance(raw, NormalizedResult) else normalize(raw)
    report = validate(result)
    if not report.valid:
        logger.info("Auto-correcting classification: %s", ", ".join(report.issues))
        result = auto_correct(result, report.issues)
    result = apply_confidence_routing(result)
    result = enforce_done_invariant(result)
    return result.model_copy(
        update={"needs_review": result.needs_review or compute_needs_review(result, known_sender=known_sender)}
    )
