"""Conversation, message and customer identity models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Float, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from triage.db.base import Base
from triage.db.enums import ConversationStatus, MessageEventStatus
from triage.db.models._common import now_utc
from triage.types import JsonObject


class Conversation(Base):
    """
    The unit of customer interaction state.

    Lane is the authoritative triage state; decision_bucket is written next to
    it as the legacy view. The three ``last_*_message_id`` columns act as
    optimistic-concurrency guards for the classify and draft stages.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        Index("idx_conversations_workspace_lane", "workspace_id", "lane"),
        Index("idx_conversations_workspace_bucket", "workspace_id", "decision_bucket"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ConversationStatus.NEW.value, nullable=False
    )

    # Triage state
    lane: Mapped[str | None] = mapped_column(String(20), nullable=True)
    decision_bucket: Mapped[str | None] = mapped_column(String(20), nullable=True)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email_classification: Mapped[str | None] = mapped_column(String(50), nullable=True)
    requires_reply: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    triage_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_urgent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    batch_group: Mapped[str | None] = mapped_column(String(40), nullable=True)
    ai_reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_sentiment: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ai_why_flagged: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary_for_human: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Pipeline guards
    last_inbound_message_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    last_classified_message_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    last_draft_enqueued_message_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)

    # "metadata" is reserved on declarative classes
    meta: Mapped[JsonObject] = mapped_column("metadata", default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=now_utc, onupdate=now_utc, nullable=False
    )


class Message(Base):
    """A single inbound or outbound message within a conversation."""

    __tablename__ = "messages"
    __table_args__ = (Index("idx_messages_conversation", "conversation_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)


class MessageEvent(Base):
    """Unified record of one inbound message feeding the pipeline."""

    __tablename__ = "message_events"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    conversation_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False)
    from_identifier: Mapped[str | None] = mapped_column(String(320), nullable=True)
    subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=MessageEventStatus.PENDING.value, nullable=False
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=now_utc, onupdate=now_utc, nullable=False
    )


class CustomerIdentity(Base):
    """Phone/email identifiers linked to a customer, harvested from classifications."""

    __tablename__ = "customer_identities"
    __table_args__ = (
        UniqueConstraint(
            "workspace_id",
            "identifier_type",
            "identifier_value_norm",
            name="uq_customer_identity",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    customer_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    identifier_type: Mapped[str] = mapped_column(String(10), nullable=False)
    identifier_value: Mapped[str] = mapped_column(String(320), nullable=False)
    identifier_value_norm: Mapped[str] = mapped_column(String(320), nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    source_channel: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
