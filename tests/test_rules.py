"""Summary: Tests for the rule-based classifier.

Importance: Rules are the fallback for every AI failure, so their priority order matters.
Alternatives: Only test the AI classification path.
"""

from __future__ import annotations

from datetime import datetime, timezone

from triageflow.models import Message
from triageflow.rules import RuleBasedClassifier


def _message(sender: str, subject: str, snippet: str = "") -> Message:
    return Message(
        remote_message_id="m-1",
        thread_id="t-1",
        sender=sender,
        recipients=("me@example.com",),
        subject=subject,
        snippet=snippet,
        received_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
    )


def test_spam_wins_over_other_families() -> None:
    """Summary: Verify spam content outranks invoice keywords.

    Importance: Phishing that mentions payments must never be labelled as an invoice.
    Alternatives: Score all families and pick the highest.
    """

    result = RuleBasedClassifier().classify(
        _message("Prize <winner@claim-now.xyz>", "You have won", "Send the payment by wire transfer")
    )
    assert result.category == "spam"
    assert result.confidence == 0.85
    assert result.source == "rules"


def test_spam_sender_domain_alone_is_enough() -> None:
    result = RuleBasedClassifier().classify(_message("hello@deals.top", "Hi there"))
    assert result.category == "spam"


def test_invoice_newsletter_urgent_and_personal() -> None:
    """Summary: Verify each rule family on a representative message.

    Importance: Confirms category and confidence per family.
    Alternatives: Snapshot the full regex tables.
    """

    classifier = RuleBasedClassifier()
    invoice = classifier.classify(
        _message("Billing <billing@hostingco.com>", "Invoice #4821 for September")
    )
    newsletter = classifier.classify(
        _message("news@mailchimp.com", "Your weekly digest", "Top stories this week. Unsubscribe anytime.")
    )
    urgent = classifier.classify(
        _message("ops@acme.io", "Production outage - action required", "Please respond immediately")
    )
    personal = classifier.classify(
        _message("Sam <sam.friend@gmail.com>", "Dinner on Saturday?", "Are you free?")
    )
    assert (invoice.category, invoice.confidence) == ("invoices", 0.8)
    assert (newsletter.category, newsletter.confidence) == ("newsletters", 0.75)
    assert (urgent.category, urgent.confidence) == ("urgent", 0.75)
    assert (personal.category, personal.confidence) == ("personal", 0.65)


def test_professional_sender_defaults_to_business() -> None:
    """Summary: Verify unmatched professional mail falls back to business.

    Importance: The default carries a confidence below the label threshold.
    Alternatives: Return unknown for unmatched messages.
    """

    result = RuleBasedClassifier().classify(
        _message("Alice <alice@acme.io>", "Hello team", "Attached are the notes from our meeting.")
    )
    assert result.category == "business"
    assert result.confidence == 0.45
    assert result.rationale == "Default classification, no specific rule matched"


def test_priority_with_mixed_cues() -> None:
    """Summary: Verify invoices beat newsletters and spam beats invoices.

    Importance: Billing mail carries unsubscribe footers and scams mention invoices.
    Alternatives: Prefer the most specific family.
    """

    classifier = RuleBasedClassifier()
    billing = classifier.classify(
        _message("billing@hostingco.com", "Your invoice is ready", "Unsubscribe from these emails")
    )
    scam = classifier.classify(
        _message("claims@prizes.example", "Lottery winner invoice", "Pay the invoice to release your prize")
    )
    assert billing.category == "invoices"
    assert scam.category == "spam"
