"""Utility modules."""

from triage.utils.normalization import (
    extract_email_domain,
    mask_email,
    normalize_email,
    normalize_phone,
)

__all__ = [
    "extract_email_domain",
    "mask_email",
    "normalize_email",
    "normalize_phone",
]
