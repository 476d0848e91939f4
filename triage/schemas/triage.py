"""Typed classification results exchanged between the oracle, normalizer and router."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from triage.db.enums import BatchGroup, Category, Lane, Sentiment


class ClassificationEntities(BaseModel):
    """
    Entities extracted from a message.

    Only these keys survive normalization; anything else the model returns is
    dropped. Scalars that are not strings become None, list members that are
    not strings are skipped.
    """

    model_config = ConfigDict(extra="ignore")

    customer_name: str | None = None
    order_id: str | None = None
    address: str | None = None
    requested_date: str | None = None
    extracted_phones: list[str] = Field(default_factory=list)
    extracted_emails: list[str] = Field(default_factory=list)
    sender_rule_id: str | None = None
    sender_rule_pattern: str | None = None

    @field_validator(
        "customer_name",
        "order_id",
        "address",
        "requested_date",
        "sender_rule_id",
        "sender_rule_pattern",
        mode="before",
    )
    @classmethod
    def _coerce_scalar(cls, value: Any) -> str | None:
        if isinstance(value, bool) or value is None:
            return None
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str):
            return value.strip() or None
        return None

    @field_validator("extracted_phones", "extracted_emails", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return []
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]


class NormalizedResult(BaseModel):
    """
    A classification after defensive normalization.

    ``lane`` is the authoritative triage state; the legacy bucket is derived
    from it where needed.
    """

    model_config = ConfigDict(extra="ignore")

    category: Category = Category.INQUIRY
    requires_reply: bool = True
    confidence: float = 0.55
    entities: ClassificationEntities = Field(default_factory=ClassificationEntities)
    lane: Lane = Lane.TO_REPLY
    is_urgent: bool = False
    suggested_reply: str | None = None
    batch_group: BatchGroup | None = None
    reasoning: str | None = None
    sentiment: Sentiment | None = None
    why_this_needs_you: str | None = None
    summary_for_human: str | None = None
    needs_review: bool = False
    validation_issues: list[str] = Field(default_factory=list)


class RecentMessage(BaseModel):
    direction: str
    body: str


class ClassifyItem(BaseModel):
    """One message as presented to the batch classifier."""

    item_id: str
    conversation_id: str
    target_message_id: str
    channel: str
    sender_identifier: str
    subject: str
    body: str
    recent_messages: list[RecentMessage] = Field(default_factory=list)
