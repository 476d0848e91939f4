"""Queue message payloads."""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from triage.db.enums import JobType


class ClassifyJob(BaseModel):
    """CLASSIFY job as enqueued by ingestion. Unknown keys are dropped."""

    model_config = ConfigDict(extra="ignore")

    job_type: Literal["CLASSIFY"]
    workspace_id: UUID
    run_id: UUID | None = None
    config_id: UUID | None = None
    channel: str | None = None
    event_id: UUID
    conversation_id: UUID
    target_message_id: UUID


class DraftJob(BaseModel):
    model_config = ConfigDict(extra="ignore")

    job_type: Literal["DRAFT"] = JobType.DRAFT.value
    workspace_id: UUID
    run_id: UUID | None = None
    conversation_id: UUID
    target_message_id: UUID
    event_id: UUID | None = None

    def to_message(self) -> dict:
        return self.model_dump(mode="json")
