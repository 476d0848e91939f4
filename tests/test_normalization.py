"""Tests for identifier normalization."""

import pytest

from triage.utils.normalization import (
    extract_email_domain,
    mask_email,
    normalize_email,
    normalize_phone,
)


def test_normalize_email_handles_display_names():
    assert normalize_email("  Jane Doe <Jane.Doe@Example.COM> ") == "jane.doe@example.com"
    assert normalize_email("") is None


def test_extract_email_domain():
    assert extract_email_domain("billing@mail.Stripe.com") == "mail.stripe.com"
    assert extract_email_domain("not-an-address") is None


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("+44 7700 900123", "+447700900123"),
        ("+1 (415) 555-0100", "+14155550100"),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize("raw", ["07700900123", "+12", "+1234567890123456"])
def test_normalize_phone_rejects_invalid(raw):
    with pytest.raises(ValueError):
        normalize_phone(raw)


def test_mask_email():
    assert mask_email("jonathan@example.com") == "jon...@example.com"
    assert mask_email(None) == ""
