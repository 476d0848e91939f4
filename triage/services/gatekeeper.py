"""Deterministic gatekeeper for inbound email.

Decides from sender address and subject alone whether a message is known
automated noise that can skip the LLM. Pure functions only.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from triage.db.enums import BatchGroup, Category, DecisionBucket, Lane, TriageCategory
from triage.utils.normalization import extract_email_domain, normalize_email

RECEIPT_DOMAINS = ("stripe.com", "gocardless.com", "paypal.com", "square.com")
JOB_BOARD_DOMAINS = ("indeed.com", "linkedin.com", "reed.co.uk", "totaljobs.com", "glassdoor.com")
NEWSLETTER_DOMAINS = ("substack.com", "mailchimp.com", "sendgrid.net")

AUTO_DONE_DOMAINS = (
    # Payment processors
    *RECEIPT_DOMAINS,
    "payments.amazon.co.uk",
    "pay.amazon.co.uk",
    "amazon.co.uk",
    "xero.com",
    "quickbooks.intuit.com",
    "intuit.com",
    # Job boards
    *JOB_BOARD_DOMAINS,
    "cv-library.co.uk",
    "monster.com",
    # Social notifications
    "facebookmail.com",
    "twitter.com",
    "instagram.com",
    "x.com",
    "notifications.google.com",
    "youtube.com",
    # Newsletters / marketing
    *NEWSLETTER_DOMAINS,
    "mailgun.com",
    "campaign-archive.com",
    "list-manage.com",
    # Shipping
    "royalmail.com",
    "dpd.co.uk",
    "hermes.com",
    "ups.com",
    "fedex.com",
)

AUTO_DONE_SENDER_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^noreply@",
        r"^no-reply@",
        r"^donotreply@",
        r"^notifications@",
        r"^mailer-daemon@",
        r"^postmaster@",
        r"^bounce@",
        r"^automated@",
    )
)

AUTO_DONE_SUBJECT_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"payment.*received",
        r"payment.*successful",
        r"your.*receipt",
        r"transaction.*confirmed",
        r"order.*confirmation",
        r"shipping.*notification",
        r"delivery.*update",
        r"someone.*applied.*position",
        r"new.*application.*received",
        r"weekly.*digest",
        r"newsletter",
    )
)

# These win over every auto-done rule: the message still reaches the LLM.
ESCALATE_SUBJECT_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"payment.*failed",
        r"transaction.*declined",
        r"action.*required",
        r"urgent",
        r"error",
        r"problem.*with",
        r"suspended",
        r"cancelled",
    )
)

_RECEIPT_SUBJECT = re.compile(r"receipt|payment.*received|transaction.*confirmed", re.IGNORECASE)
_NEWSLETTER_SUBJECT = re.compile(r"newsletter|digest", re.IGNORECASE)
_JOB_APP_SUBJECT = re.compile(r"applied|application", re.IGNORECASE)

_CATEGORY_FOR_TRIAGE = {
    TriageCategory.AUTOMATED_NOTIFICATION: Category.NOTIFICATION,
    TriageCategory.RECEIPT_CONFIRMATION: Category.NOTIFICATION,
    TriageCategory.RECRUITMENT_HR: Category.NOTIFICATION,
    TriageCategory.MARKETING_NEWSLETTER: Category.NEWSLETTER,
}


@dataclass(frozen=True)
class GatekeeperDecision:
    skip_llm: bool
    lane: Lane
    bucket: DecisionBucket
    batch_group: BatchGroup | None
    classification: TriageCategory
    why: str
    confidence: float

    @property
    def category(self) -> Category:
        """The closed-enum category this decision classifies as."""
        return _CATEGORY_FOR_TRIAGE[self.classification]

    @property
    def is_terminal(self) -> bool:
        return self.skip_llm and self.lane == Lane.DONE


def match_auto_done_domain(domain: str | None) -> str | None:
    """Return the listed domain that ``domain`` equals or is a subdomain of."""
    if not domain:
        return None
    for candidate in AUTO_DONE_DOMAINS:
        if domain == candidate or domain.endswith(f".{candidate}"):
            return candidate
    return None


def _done(
    *,
    batch_group: BatchGroup | None,
    classification: TriageCategory,
    why: str,
    confidence: float,
) -> GatekeeperDecision:
    return GatekeeperDecision(
        skip_llm=True,
        lane=Lane.DONE,
        bucket=DecisionBucket.AUTO_HANDLED,
        batch_group=batch_group,
        classification=classification,
        why=why,
        confidence=confidence,
    )


def check_gatekeeper(from_email: str | None, subject: str | None) -> GatekeeperDecision | None:
    """
    Classify obvious automated mail without an LLM call.

    Order: escalation subjects, known domains, sender patterns, subject
    patterns. Returns None when nothing matches.
    """
    sender = normalize_email(from_email) or ""
    subject = subject or ""

    if any(p.search(subject) for p in ESCALATE_SUBJECT_PATTERNS):
        return GatekeeperDecision(
            skip_llm=False,
            lane=Lane.REVIEW,
            bucket=DecisionBucket.QUICK_WIN,
            batch_group=None,
            classification=TriageCategory.AUTOMATED_NOTIFICATION,
            why="System alert - may need attention",
            confidence=0.7,
        )

    domain = match_auto_done_domain(extract_email_domain(sender))
    if domain:
        if domain in RECEIPT_DOMAINS:
            group, classification = BatchGroup.RECEIPTS, TriageCategory.RECEIPT_CONFIRMATION
        elif domain in JOB_BOARD_DOMAINS:
            group, classification = BatchGroup.JOB_APPS, TriageCategory.RECRUITMENT_HR
        elif domain in NEWSLETTER_DOMAINS:
            group, classification = BatchGroup.NEWSLETTERS, TriageCategory.MARKETING_NEWSLETTER
        else:
            group, classification = None, TriageCategory.AUTOMATED_NOTIFICATION
        return _done(
            batch_group=group,
            classification=classification,
            why=f"Known {domain} notification - no action needed",
            confidence=0.99,
        )

    if any(p.search(sender) for p in AUTO_DONE_SENDER_PATTERNS):
        return _done(
            batch_group=None,
            classification=TriageCategory.AUTOMATED_NOTIFICATION,
            why="Automated sender - no action needed",
            confidence=0.95,
        )

    if any(p.search(subject) for p in AUTO_DONE_SUBJECT_PATTERNS):
        if _RECEIPT_SUBJECT.search(subject):
            group, classification = BatchGroup.RECEIPTS, TriageCategory.RECEIPT_CONFIRMATION
        elif _NEWSLETTER_SUBJECT.search(subject):
            group, classification = BatchGroup.NEWSLETTERS, TriageCategory.MARKETING_NEWSLETTER
        elif _JOB_APP_SUBJECT.search(subject):
            group, classification = BatchGroup.JOB_APPS, TriageCategory.RECRUITMENT_HR
        else:
            group, classification = None, TriageCategory.AUTOMATED_NOTIFICATION
        return _done(
            batch_group=group,
            classification=classification,
            why="Automated notification - no action needed",
            confidence=0.92,
        )

    return None
