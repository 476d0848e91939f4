"""Type aliases for JSON columns and queue bodies."""

from __future__ import annotations

from typing import TypeAlias

JsonValue: TypeAlias = object
JsonObject: TypeAlias = dict[str, JsonValue]

# Body of a pgmq-style queue message. Producers send objects, but a stored
# body can be any JSON value and is validated by the consuming handler.
QueuePayload: TypeAlias = JsonValue
