"""Per-workspace context injected into classification prompts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from triage.db.models import BusinessContext, ClassificationCorrection, FaqEntry

logger = logging.getLogger(__name__)

FAQ_LIMIT = 60
CORRECTIONS_LIMIT = 60


@dataclass
class WorkspaceAiContext:
    business_context: dict[str, Any] | None = None
    faq_entries: list[dict[str, Any]] = field(default_factory=list)
    corrections: list[dict[str, Any]] = field(default_factory=list)


def load_workspace_context(db: Session, workspace_id: UUID) -> WorkspaceAiContext:
    """
    Load business context, FAQs and recent corrections for a workspace.

    Each source is optional: a failing query is logged and skipped so the
    classifier still runs with whatever context is available.
    """
    context = WorkspaceAiContext()

    try:
        row = (
            db.query(BusinessContext)
            .filter(BusinessContext.workspace_id == workspace_id)
            .order_by(BusinessContext.updated_at.desc())
            .first()
        )
        if row:
            context.business_context = {
                "business_name": row.business_name,
                "industry": row.industry,
                "rules": row.rules_text,
            }
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("business_context load failed: %s", type(exc).__name__)

    try:
        faqs = (
            db.query(FaqEntry)
            .filter(FaqEntry.workspace_id == workspace_id)
            .order_by(FaqEntry.priority.desc())
            .limit(FAQ_LIMIT)
            .all()
        )
        context.faq_entries = [
            {"question": f.question, "answer": f.answer, "category": f.category}
            for f in faqs
        ]
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("faq_entries load failed: %s", type(exc).__name__)

    try:
        corrections = (
            db.query(ClassificationCorrection)
            .filter(ClassificationCorrection.workspace_id == workspace_id)
            .order_by(ClassificationCorrection.created_at.desc())
            .limit(CORRECTIONS_LIMIT)
            .all()
        )
        context.corrections = [
            {
                "sender_email": c.sender_email,
                "subject": c.subject,
                "original_category": c.original_category,
                "corrected_category": c.corrected_category,
            }
            for c in corrections
        ]
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("classification_corrections load failed: %s", type(exc).__name__)

    return context
