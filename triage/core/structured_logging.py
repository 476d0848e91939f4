"""Structured logging helpers (PII-safe)."""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    workspace_id: UUID | str | None = None,
    run_id: UUID | str | None = None,
    conversation_id: UUID | str | None = None,
    msg_id: int | None = None,
    queue: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict for ``extra=``; message content never goes here."""
    context: dict[str, Any] = {}
    if workspace_id:
        context["workspace_id"] = str(workspace_id)
    if run_id:
        context["run_id"] = str(run_id)
    if conversation_id:
        context["conversation_id"] = str(conversation_id)
    if msg_id is not None:
        context["msg_id"] = msg_id
    if queue:
        context["queue"] = queue
    return context
