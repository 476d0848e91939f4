"""Tests for lenient JSON extraction from model output."""

from triage.services.ai_response_validation import extract_json_from_text, parse_json_object


def test_extracts_plain_json():
    assert extract_json_from_text('{"results": []}') == {"results": []}


def test_extracts_fenced_json():
    text = 'Here you go:\n```json\n{"results": [{"item_id": "a"}]}\n```\nThanks'

    assert extract_json_from_text(text) == {"results": [{"item_id": "a"}]}


def test_extracts_braced_span_from_prose():
    text = 'Sure! {"results": [], "note": "ok"} Let me know.'

    assert extract_json_from_text(text) == {"results": [], "note": "ok"}


def test_returns_none_for_unparseable_text():
    assert extract_json_from_text("no json here") is None
    assert extract_json_from_text("") is None
    assert extract_json_from_text(None) is None


def test_parse_json_object_rejects_non_objects():
    assert parse_json_object("[1, 2]") is None
    assert parse_json_object('{"a": 1}') == {"a": 1}
