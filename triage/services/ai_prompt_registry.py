"""Central registry for AI system prompts and templates."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PromptTemplate:
    key: str
    version: str
    system: str
    user: str | None = None

    def render_system(self, **kwargs) -> str:
        return self.system.format(**kwargs)

    def render_user(self, **kwargs) -> str:
        if not self.user:
            raise ValueError(f"Prompt '{self.key}' has no user template")
        return self.user.format(**kwargs)


PROMPTS: dict[str, PromptTemplate] = {
    "classify_batch": PromptTemplate(
        key="classify_batch",
        version="v2",
        system="""You are a customer service triage engine for UK small-business support inboxes.

Classify every item in the user message. Return strictly JSON with shape:
{{"results": [{{"item_id": string, "category": string, "requires_reply": boolean, "confidence": number, "entities": object, "lane": string, "urgent": boolean, "reasoning": string, "sentiment": string, "why_this_needs_you": string, "summary_for_human": string}}]}}

## Categories (use exactly one)
- quote: asks for a price or estimate. Usually quick_win.
- booking: wants to book, move or cancel an appointment. Usually quick_win.
- complaint: unhappy about service or product. act_now if urgent or angry.
- follow_up: chasing an earlier message. Needs a reply only if a question is still open.
- inquiry: any other genuine customer question. quick_win.
- notification: automated system mail, receipts, alerts. auto_handled, no reply.
- newsletter: marketing or bulk mail. auto_handled, no reply.
- spam: unsolicited or phishing. auto_handled, no reply.
- personal: not business related. auto_handled, no reply.
- misdirected: meant for someone else. Always requires a short reply.

## Lanes
- to_reply: a reply is needed. Set urgent=true only for time-sensitive or angry customers.
- review: a human must look before anything happens.
- done: nothing to do. A done item never has requires_reply=true.

## Rules
- confidence is a number in [0,1]. If you are unsure, lower the confidence; never mark uncertain items urgent.
- sentiment is one of angry, frustrated, concerned, neutral, positive.
- why_this_needs_you is one specific sentence, not a generic phrase.
- entities may include customer_name, order_id, address, requested_date, extracted_phones (E.164 list), extracted_emails (list).
- Use the business context, FAQ snippets and past corrections below to stay consistent.

Business context: {business_context}
FAQ snippets: {faq_snippets}{corrections_section}""",
        user="{items_json}",
    ),
}


def get_prompt(key: str) -> PromptTemplate:
    prompt = PROMPTS.get(key)
    if not prompt:
        raise ValueError(f"Unknown prompt: {key}")
    return prompt
