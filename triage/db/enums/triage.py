"""Conversation triage enums (lanes, buckets, statuses, categories)."""

from enum import Enum


class Channel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"
    WEBCHAT = "webchat"
    PHONE = "phone"


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class Lane(str, Enum):
    """Authoritative triage state of a conversation."""

    TO_REPLY = "to_reply"
    REVIEW = "review"
    DONE = "done"
    SNOOZED = "snoozed"


class DecisionBucket(str, Enum):
    """Legacy bucket, kept in sync with the lane as a compatibility view."""

    ACT_NOW = "act_now"
    QUICK_WIN = "quick_win"
    NEEDS_HUMAN = "needs_human"
    AUTO_HANDLED = "auto_handled"
    WAIT = "wait"


class ConversationStatus(str, Enum):
    NEW = "new"
    OPEN = "open"
    WAITING = "waiting"
    AI_HANDLING = "ai_handling"
    ESCALATED = "escalated"
    RESOLVED = "resolved"


class Category(str, Enum):
    """Closed classification enum the oracle must choose from."""

    QUOTE = "quote"
    BOOKING = "booking"
    COMPLAINT = "complaint"
    FOLLOW_UP = "follow_up"
    INQUIRY = "inquiry"
    NOTIFICATION = "notification"
    NEWSLETTER = "newsletter"
    SPAM = "spam"
    PERSONAL = "personal"
    MISDIRECTED = "misdirected"


class TriageCategory(str, Enum):
    """Fine-grained categories produced by the deterministic gatekeeper."""

    AUTOMATED_NOTIFICATION = "automated_notification"
    RECEIPT_CONFIRMATION = "receipt_confirmation"
    MARKETING_NEWSLETTER = "marketing_newsletter"
    RECRUITMENT_HR = "recruitment_hr"


class BatchGroup(str, Enum):
    """Tags for bulk UI actions on auto-handled mail."""

    RECEIPTS = "BATCH_RECEIPTS"
    JOB_APPS = "BATCH_JOB_APPS"
    NEWSLETTERS = "BATCH_NEWSLETTERS"
    NOTIFICATIONS = "BATCH_NOTIFICATIONS"


class Sentiment(str, Enum):
    ANGRY = "angry"
    FRUSTRATED = "frustrated"
    CONCERNED = "concerned"
    NEUTRAL = "neutral"
    POSITIVE = "positive"


class SenderRulePatternType(str, Enum):
    CONTAINS = "contains"
    REGEX = "regex"


class IdentifierType(str, Enum):
    EMAIL = "email"
    PHONE = "phone"


NOISE_CATEGORIES = frozenset(
    {
        Category.NOTIFICATION,
        Category.NEWSLETTER,
        Category.SPAM,
        Category.PERSONAL,
    }
)
