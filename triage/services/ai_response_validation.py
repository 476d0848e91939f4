"""Helpers for parsing AI JSON responses."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def extract_json_from_text(text: str | None) -> Any:
    """
    Best-effort JSON extraction from a model response.

    Tries the whole text, then the first fenced block, then the span from the
    first ``{`` to the last ``}``. Returns None if nothing parses.
    """
    if not text:
        return None
    content = text.strip()

    direct = _loads(content)
    if direct is not None:
        return direct

    fenced = _FENCED_JSON.search(content)
    if fenced:
        parsed = _loads(fenced.group(1))
        if parsed is not None:
            return parsed

    first, last = content.find("{"), content.rfind("}")
    if first >= 0 and last > first:
        parsed = _loads(content[first : last + 1])
        if parsed is not None:
            return parsed

    logger.warning("Failed to extract JSON from model response (%s chars)", len(content))
    return None


def parse_json_object(text: str | None) -> dict | None:
    data = extract_json_from_text(text)
    return data if isinstance(data, dict) else None
