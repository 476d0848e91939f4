"""Pydantic schemas for queue payloads and classification results."""

from triage.schemas.jobs import ClassifyJob, DraftJob
from triage.schemas.triage import (
    ClassificationEntities,
    ClassifyItem,
    NormalizedResult,
    RecentMessage,
)

__all__ = [
    "ClassificationEntities",
    "ClassifyItem",
    "ClassifyJob",
    "DraftJob",
    "NormalizedResult",
    "RecentMessage",
]
