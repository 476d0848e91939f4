"""Workspace-scoped configuration used by the classifier."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from triage.db.base import Base
from triage.db.enums import SenderRulePatternType
from triage.db.models._common import now_utc


class SenderRule(Base):
    """
    Deterministic per-workspace override.

    Rules are evaluated in ``position`` order; the first match wins and
    bypasses both the gatekeeper and the LLM.
    """

    __tablename__ = "sender_rules"
    __table_args__ = (Index("idx_sender_rules_workspace", "workspace_id", "is_active", "position"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    pattern: Mapped[str] = mapped_column(String(500), nullable=False)
    pattern_type: Mapped[str] = mapped_column(
        String(20), default=SenderRulePatternType.CONTAINS.value, nullable=False
    )
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    requires_reply: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    decision_bucket: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    hit_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)


class BusinessContext(Base):
    """Free-form description of the business, injected into classification prompts."""

    __tablename__ = "business_context"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    industry: Mapped[str | None] = mapped_column(String(100), nullable=True)
    rules_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        default=now_utc, onupdate=now_utc, nullable=False
    )


class FaqEntry(Base):
    __tablename__ = "faq_entries"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class ClassificationCorrection(Base):
    """A human fix of an AI classification; recent ones are fed back as few-shot hints."""

    __tablename__ = "classification_corrections"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    sender_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    corrected_category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
