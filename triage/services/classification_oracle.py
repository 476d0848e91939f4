"""Batched LLM classification of pending messages.

One chat call classifies every pending message of a workspace. The response
is parsed leniently and each row normalized; items the model skipped get the
safe default so nothing is dropped. Transport failures raise
``ClassificationOracleError`` so the caller can fail the whole batch.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol, Sequence

import httpx

from triage.schemas.triage import ClassifyItem, NormalizedResult
from triage.services import triage_normalizer
from triage.services.ai_prompt_registry import get_prompt
from triage.services.ai_provider import AIProvider, ChatMessage
from triage.services.ai_response_validation import parse_json_object
from triage.services.workspace_context_service import WorkspaceAiContext

logger = logging.getLogger(__name__)

FAQ_PROMPT_LIMIT = 30
CORRECTIONS_PROMPT_LIMIT = 20


class ClassificationOracleError(Exception):
    """The classifier could not be reached or answered with an error status."""


class Classifier(Protocol):
    async def classify_batch(
        self, items: Sequence[ClassifyItem], context: WorkspaceAiContext
    ) -> dict[str, NormalizedResult]: ...


def default_classification() -> NormalizedResult:
    return NormalizedResult(
        category=triage_normalizer.DEFAULT_CATEGORY,
        requires_reply=triage_normalizer.DEFAULT_REQUIRES_REPLY,
        confidence=triage_normalizer.DEFAULT_CONFIDENCE,
    )


def format_corrections(corrections: Sequence[dict[str, Any]]) -> str:
    """Render recent human corrections as few-shot hints; empty when there are none."""
    if not corrections:
        return ""
    lines = []
    for c in list(corrections)[:CORRECTIONS_PROMPT_LIMIT]:
        sender = c.get("sender_email") or "unknown sender"
        subject = c.get("subject") or "unknown subject"
        original = c.get("original_category") or "unknown"
        corrected = c.get("corrected_category") or "unknown"
        if original == corrected:
            lines.append(f'- Email from "{sender}" about "{subject}" was correctly confirmed as "{corrected}"')
        else:
            lines.append(
                f'- Email from "{sender}" about "{subject}" was incorrectly classified as '
                f'"{original}"; the correct category is "{corrected}"'
            )
    return "\n\n## Previous Corrections (learn from these)\n" + "\n".join(lines)


def build_system_prompt(context: WorkspaceAiContext) -> str:
    return get_prompt("classify_batch").render_system(
        business_context=json.dumps(context.business_context or {}, default=str),
        faq_snippets=json.dumps(context.faq_entries[:FAQ_PROMPT_LIMIT], default=str),
        corrections_section=format_corrections(context.corrections),
    )


def parse_batch_response(
    content: str, item_ids: Sequence[str]
) -> dict[str, NormalizedResult]:
    """Map each requested item id to a normalized result, defaulting the missing ones."""
    results: dict[str, NormalizedResult] = {item_id: default_classification() for item_id in item_ids}

    parsed = parse_json_object(content)
    rows = parsed.get("results") if parsed else None
    if not isinstance(rows, list):
        logger.warning("Classifier response had no results list; using defaults for %s items", len(item_ids))
        return results

    seen: set[str] = set()
    for row in rows:
        if not isinstance(row, dict):
            continue
        item_id = row.get("item_id")
        if not isinstance(item_id, str) or item_id not in results:
            continue
        results[item_id] = triage_normalizer.normalize(row)
        seen.add(item_id)

    missing = len(results) - len(seen)
    if missing:
        logger.warning("Classifier omitted %s of %s items; defaults applied", missing, len(item_ids))
    return results


class ClassificationOracle:
    """Classifier backed by an injected ``AIProvider``."""

    def __init__(self, provider: AIProvider, *, model: str | None = None):
        self.provider = provider
        self.model = model

    async def classify_batch(
        self, items: Sequence[ClassifyItem], context: WorkspaceAiContext
    ) -> dict[str, NormalizedResult]:
        if not items:
            return {}

        prompt = get_prompt("classify_batch")
        messages = [
            ChatMessage(role="system", content=build_system_prompt(context)),
            ChatMessage(
                role="user",
                content=prompt.render_user(
                    items_json=json.dumps({"items": [item.model_dump() for item in items]})
                ),
            ),
        ]
        try:
            response = await self.provider.chat(
                messages, model=self.model, temperature=0.0, json_mode=True
            )
        except asyncio.TimeoutError as exc:
            raise ClassificationOracleError("Classify request timed out") from exc
        except httpx.HTTPStatusError as exc:
            raise ClassificationOracleError(
                f"Classify request failed ({exc.response.status_code})"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            # ValueError: a 2xx body that is not JSON at all
            raise ClassificationOracleError(
                f"Classify request failed: {type(exc).__name__}"
            ) from exc

        return parse_batch_response(response.content, [item.item_id for item in items])
