"""SQLAlchemy ORM models."""

from triage.db.models.conversations import (
    Conversation,
    CustomerIdentity,
    Message,
    MessageEvent,
)
from triage.db.models.pipeline import (
    PipelineIncident,
    PipelineJobAudit,
    PipelineRun,
    QueueArchive,
    QueueMessage,
)
from triage.db.models.workspaces import (
    BusinessContext,
    ClassificationCorrection,
    FaqEntry,
    SenderRule,
)

__all__ = [
    "BusinessContext",
    "ClassificationCorrection",
    "Conversation",
    "CustomerIdentity",
    "FaqEntry",
    "Message",
    "MessageEvent",
    "PipelineIncident",
    "PipelineJobAudit",
    "PipelineRun",
    "QueueArchive",
    "QueueMessage",
    "SenderRule",
]
