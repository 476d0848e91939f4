"""Tests for the deterministic email gatekeeper."""

import pytest

from triage.db.enums import BatchGroup, Category, DecisionBucket, Lane, TriageCategory
from triage.services.gatekeeper import check_gatekeeper, match_auto_done_domain


def test_receipt_domain_is_terminal_done():
    decision = check_gatekeeper("billing@stripe.com", "Your payment receipt")

    assert decision is not None
    assert decision.is_terminal
    assert decision.lane == Lane.DONE
    assert decision.bucket == DecisionBucket.AUTO_HANDLED
    assert decision.batch_group == BatchGroup.RECEIPTS
    assert decision.classification == TriageCategory.RECEIPT_CONFIRMATION
    assert decision.category == Category.NOTIFICATION
    assert decision.confidence == 0.99


def test_display_name_sender_is_normalized():
    decision = check_gatekeeper("Stripe <Receipts@Stripe.com>", "Receipt #1234")

    assert decision is not None
    assert decision.batch_group == BatchGroup.RECEIPTS


@pytest.mark.parametrize(
    "domain,expected",
    [
        ("stripe.com", "stripe.com"),
        ("mail.stripe.com", "stripe.com"),
        ("notstripe.com", None),
        ("stripe.com.evil.io", None),
        (None, None),
    ],
)
def test_match_auto_done_domain_exact_or_subdomain(domain, expected):
    assert match_auto_done_domain(domain) == expected


def test_job_board_and_newsletter_groups():
    jobs = check_gatekeeper("jobs-noreply@linkedin.com", "New applicant")
    news = check_gatekeeper("hello@substack.com", "This week")

    assert jobs.batch_group == BatchGroup.JOB_APPS
    assert jobs.category == Category.NOTIFICATION
    assert news.batch_group == BatchGroup.NEWSLETTERS
    assert news.category == Category.NEWSLETTER


def test_automated_sender_pattern():
    decision = check_gatekeeper("noreply@someshop.example", "Hello")

    assert decision.is_terminal
    assert decision.confidence == 0.95
    assert decision.batch_group is None


def test_subject_pattern_assigns_group():
    decision = check_gatekeeper("team@someshop.example", "Your order receipt")

    assert decision.is_terminal
    assert decision.confidence == 0.92
    assert decision.batch_group == BatchGroup.RECEIPTS


def test_escalation_subject_wins_over_known_domain():
    decision = check_gatekeeper("billing@stripe.com", "Payment failed for invoice 42")

    assert decision is not None
    assert decision.skip_llm is False
    assert decision.is_terminal is False
    assert decision.lane == Lane.REVIEW


def test_unknown_sender_falls_through():
    assert check_gatekeeper("jane@customer.example", "Boiler still broken") is None
    assert check_gatekeeper(None, None) is None
