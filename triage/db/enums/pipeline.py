"""Queue and pipeline bookkeeping enums."""

from enum import Enum


class JobType(str, Enum):
    """Job types carried in queue message payloads."""

    CLASSIFY = "CLASSIFY"
    DRAFT = "DRAFT"


class AuditOutcome(str, Enum):
    """Outcome recorded in pipeline_job_audit for each handled queue message."""

    PROCESSED = "processed"
    REQUEUED = "requeued"
    DEADLETTERED = "deadlettered"
    DISCARDED = "discarded"
    FAILED = "failed"


class IncidentSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class MessageEventStatus(str, Enum):
    """Lifecycle of an inbound message event. Only moves forward."""

    RECEIVED = "received"
    MATERIALIZED = "materialized"
    PENDING = "pending"
    CLASSIFIED = "classified"
    DECIDED = "decided"
    DRAFTED = "drafted"
    FAILED = "failed"


class PipelineRunState(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class ClassifySource(str, Enum):
    """What produced the classification applied to a conversation."""

    SENDER_RULE = "sender_rule"
    GATEKEEPER = "gatekeeper"
    AI = "ai"
