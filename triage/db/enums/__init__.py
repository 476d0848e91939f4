"""Enum definitions for pipeline constants."""

from triage.db.enums.pipeline import (
    AuditOutcome,
    ClassifySource,
    IncidentSeverity,
    JobType,
    MessageEventStatus,
    PipelineRunState,
)
from triage.db.enums.triage import (
    NOISE_CATEGORIES,
    BatchGroup,
    Category,
    Channel,
    ConversationStatus,
    DecisionBucket,
    IdentifierType,
    Lane,
    MessageDirection,
    SenderRulePatternType,
    Sentiment,
    TriageCategory,
)

__all__ = [
    "AuditOutcome",
    "BatchGroup",
    "Category",
    "Channel",
    "ClassifySource",
    "ConversationStatus",
    "DecisionBucket",
    "IdentifierType",
    "IncidentSeverity",
    "JobType",
    "Lane",
    "MessageDirection",
    "MessageEventStatus",
    "NOISE_CATEGORIES",
    "PipelineRunState",
    "SenderRulePatternType",
    "Sentiment",
    "TriageCategory",
]
