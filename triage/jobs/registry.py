"""Queue handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from triage.db.enums import JobType
from triage.jobs.handlers import classify

JobHandler = Callable[[object, object], Awaitable[object]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.CLASSIFY.value: classify.process_classify_batch,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
