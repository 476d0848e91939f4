"""Workspace sender rules: deterministic overrides that bypass the classifier."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from triage.db.enums import ConversationStatus, DecisionBucket, Lane, SenderRulePatternType
from triage.db.models import SenderRule
from triage.schemas.triage import ClassificationEntities, NormalizedResult
from triage.services.triage_normalizer import coerce_category

logger = logging.getLogger(__name__)

FORCEABLE_BUCKETS = frozenset(
    {
        DecisionBucket.AUTO_HANDLED,
        DecisionBucket.NEEDS_HUMAN,
        DecisionBucket.ACT_NOW,
        DecisionBucket.QUICK_WIN,
    }
)


@dataclass(frozen=True)
class SenderRuleMatch:
    rule_id: UUID | None
    classification: NormalizedResult
    forced_bucket: DecisionBucket | None = None
    forced_status: ConversationStatus | None = None


def _to_bool(value: Any, fallback: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    return fallback


def _rule_matches(pattern: str, pattern_type: str, haystack: str) -> bool:
    if pattern_type == SenderRulePatternType.REGEX.value:
        try:
            return re.search(pattern, haystack, re.IGNORECASE) is not None
        except re.error:
            logger.debug("Skipping sender rule with invalid regex")
            return False
    return pattern.lower() in haystack


def _forced_bucket(value: Any) -> DecisionBucket | None:
    if not isinstance(value, str):
        return None
    try:
        bucket = DecisionBucket(value.strip().lower())
    except ValueError:
        return None
    return bucket if bucket in FORCEABLE_BUCKETS else None


def _forced_status(value: Any) -> ConversationStatus | None:
    if not isinstance(value, str):
        return None
    try:
        return ConversationStatus(value.strip().lower())
    except ValueError:
        return None


def match_sender_rule(
    rules: Sequence[SenderRule],
    sender: str | None,
    subject: str | None,
    body: str | None,
) -> SenderRuleMatch | None:
    """
    Return the first rule whose pattern occurs in sender, subject or body.

    Matching is case-insensitive. Rules with an empty pattern or an invalid
    regex never match. Pure: no I/O.
    """
    haystack = f"{sender or ''}\n{subject or ''}\n{body or ''}".lower()

    for rule in rules:
        pattern = (rule.pattern or "").strip()
        if not pattern:
            continue
        pattern_type = (rule.pattern_type or SenderRulePatternType.CONTAINS.value).strip().lower()
        if not _rule_matches(pattern, pattern_type, haystack):
            continue

        requires_reply = _to_bool(rule.requires_reply, False)
        classification = NormalizedResult(
            category=coerce_category(rule.category),
            requires_reply=requires_reply,
            confidence=1.0,
            entities=ClassificationEntities(
                sender_rule_id=str(rule.id) if rule.id else None,
                sender_rule_pattern=pattern,
            ),
            lane=Lane.TO_REPLY if requires_reply else Lane.DONE,
            why_this_needs_you=f"Matched sender rule '{pattern}'",
        )
        return SenderRuleMatch(
            rule_id=rule.id,
            classification=classification,
            forced_bucket=_forced_bucket(rule.decision_bucket),
            forced_status=_forced_status(rule.status),
        )

    return None


def load_sender_rules(db: Session, workspace_id: UUID) -> list[SenderRule]:
    """Active rules for a workspace in evaluation order."""
    return (
        db.query(SenderRule)
        .filter(SenderRule.workspace_id == workspace_id, SenderRule.is_active.is_(True))
        .order_by(SenderRule.position, SenderRule.created_at)
        .all()
    )


class SenderRuleCache:
    """Per-invocation cache so each workspace's rules are loaded once."""

    def __init__(self, db: Session):
        self._db = db
        self._rules: dict[UUID, list[SenderRule]] = {}

    def get(self, workspace_id: UUID) -> list[SenderRule]:
        if workspace_id not in self._rules:
            self._rules[workspace_id] = load_sender_rules(self._db, workspace_id)
        return self._rules[workspace_id]


def record_rule_hit(db: Session, rule_id: UUID | None) -> None:
    """Increment a rule's hit counter. Best effort: failures are only logged."""
    if not rule_id:
        return
    try:
        db.execute(
            update(SenderRule)
            .where(SenderRule.id == rule_id)
            .values(hit_count=SenderRule.hit_count + 1)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Failed to record sender rule hit: %s", type(exc).__name__)
