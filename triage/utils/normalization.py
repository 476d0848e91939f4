"""Identifier normalization for senders and harvested customer identities."""

import re
from typing import Optional

# E.164 allows at most 15 digits; shorter than 8 is not a dialable number.
E164_MIN_DIGITS = 8
E164_MAX_DIGITS = 15


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize email to lowercase.

    Accepts display-name forms such as ``"Jane <Jane@Example.com>"``.

    Returns:
        Lowercased bare address or None if empty
    """
    if not email:
        return None
    value = email.strip()
    match = re.search(r"<([^<>]+)>", value)
    if match:
        value = match.group(1).strip()
    return value.lower() or None


def extract_email_domain(email: Optional[str]) -> Optional[str]:
    """
    Extract lowercased email domain.

    Expects a normalized email, but will normalize if needed.
    """
    normalized = normalize_email(email)
    if not normalized or "@" not in normalized:
        return None
    return normalized.rsplit("@", 1)[1]


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize an international phone number to E.164 (+447700900123).

    Only numbers that already carry a ``+`` country prefix are accepted;
    spaces, dashes, dots and parentheses are stripped.

    Raises:
        ValueError: If the number has no country prefix or a bad length
    """
    if not phone:
        return None
    cleaned = phone.strip()
    if not cleaned.startswith("+"):
        raise ValueError(f"Phone number '{phone}' is missing a +country prefix")
    digits = re.sub(r"\D", "", cleaned[1:])
    if not E164_MIN_DIGITS <= len(digits) <= E164_MAX_DIGITS:
        raise ValueError(f"Invalid phone number '{phone}'")
    return f"+{digits}"


def mask_email(email: Optional[str]) -> str:
    """Log-safe rendering of an address: first three local chars and the domain."""
    if not email:
        return ""
    local, _, domain = email.partition("@")
    prefix = local[:3] if local else ""
    return f"{prefix}...@{domain}" if domain else f"{prefix}..."
