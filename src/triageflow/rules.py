"""Summary: Deterministic rule-based message classification.

Importance: Guarantees every message gets a category when the AI path is unavailable.
Alternatives: Train a small supervised model on labelled mail.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from email.utils import parseaddr

from triageflow.models import Classification, Message, SOURCE_RULES


_FLAGS = re.IGNORECASE

SPAM_PATTERNS = tuple(
    re.compile(pattern, _FLAGS)
    for pattern in (
        r"nigerian prince|loterie|lottery|you('ve| have) won|félicitations.*gagné|congratulations.*won",
        r"v[ée]rif(y|ier|ication) (votre |your )?(compte|account|identity)",
        r"wire transfer|western union|moneygram",
        r"click here to claim|cliquer ici pour réclamer",
        r"free (prize|gift|iphone|money)|cadeau gratuit",
        r"earn \$\d+",
        r"no prescription needed|sans ordonnance",
        r"\b(viagra|cialis|levitra)\b",
    )
)
SPAM_SENDER_DOMAIN = re.compile(r"@[a-z0-9.-]+\.(xyz|top|loan|win|click|download|stream)$", _FLAGS)

INVOICE_PATTERNS = tuple(
    re.compile(pattern, _FLAGS)
    for pattern in (
        r"\b(facture|invoice|receipt|reçu|quittance)\b",
        r"\b(payment|paiement|règlement|solde|montant dû)\b",
        r"\b(billing|facturation|statement|relevé)\b",
        r"order (confirmation|confirmed)|commande (confirmée|numéro)",
        r"\b(debit|crédit|prélèvement|virement)\b",
        r"\btax(e)?s?\b.*\b(due|à payer|déclaration)\b",
        r"\d+[,.]?\d*\s*[€$£¥]|[€$£¥]\s*\d+",
        r"invoice #\d+|ref.*\d{4,}",
    )
)

NEWSLETTER_PATTERNS = tuple(
    re.compile(pattern, _FLAGS)
    for pattern in (
        r"@([a-z0-9-]+\.)?(mailchimp|sendgrid|mailgun|constantcontact|klaviyo|brevo|sendinblue"
        r"|substack|convertkit|drip|hubspot|marketo)\.",
        r"noreply|no-reply|donotreply|do-not-reply",
        r"\b(unsubscribe|se désabonner|désabonner|désabonnement|manage preferences)\b",
        r"\b(newsletter|digest|weekly update|mise à jour hebdomadaire)\b",
        r"\b(promotion|promo|deal|offre spéciale|limited time|offre limitée|sale|soldes)\b",
        r"\b(new product|nouveau produit|launch|now available|disponible maintenant)\b",
        r"\b(notification|alert|automated|no reply)\b",
        r"github.*(mention|pull request|issue|commit|action)|gitlab.*(merge request|pipeline)",
        r"\b(linkedin|twitter|facebook|instagram)\b.*\b(notification|mentioned|liked|followed)\b",
    )
)

URGENT_PATTERNS = tuple(
    re.compile(pattern, _FLAGS)
    for pattern in (
        r"\b(urgent|urgente|urgently|asap|as soon as possible)\b",
        r"\b(immédiat|immédiatement|immediately|right away)\b",
        r"\b(impératif|imperative|critique|critical|bloquant|blocking)\b",
        r"\b(dès que possible|au plus vite|as fast as possible)\b",
        r"\b(deadline|échéance|date limite)\b.*\baujourd'hui\b|\btoday\b.*\b(deadline|due)\b",
        r"\b(action requise|action required|response needed|réponse requise)\b",
        r"\b(incident|outage|panne|down|hors service)\b",
    )
)

PERSONAL_DOMAIN = re.compile(
    r"@(gmail|yahoo|hotmail|outlook|live|icloud|protonmail|laposte|orange|sfr|free)\.(fr|com|net|org)$",
    _FLAGS,
)
PERSONAL_SUBJECT_PATTERNS = (
    re.compile(r"^((re|fwd?):\s*)?(salut|bonjour|coucou|hey|yo|hello|hi)\b", _FLAGS),
    re.compile(r"^((re|fwd?):\s*)?(rdv|anniversaire|birthday|weekend|dîner|dinner|apéro|vacances)\b", _FLAGS),
)
PROFESSIONAL_DOMAIN = re.compile(r"@[a-z0-9.-]+\.(com|fr|io|net|org|co)$", _FLAGS)


@dataclass(frozen=True)
class RuleBasedClassifier:
    """Summary: Keyword and sender-pattern classifier with a fixed priority order.

    Importance: Offers deterministic, fast categorization without AI and never raises.
    Alternatives: Use a supervised ML classifier or LLM-based categorizer.
    """

    def classify(self, message: Message) -> Classification:
        """Summary: Classify a message by the first matching rule family.

        Importance: Spam wins over invoices, invoices over newsletters, newsletters over urgent.
        Alternatives: Score every family and pick the highest total.
        """

        address = _sender_address(message.sender)
        text = f"{message.sender} {message.subject} {message.snippet}"

        if _matches(SPAM_PATTERNS, text) or SPAM_SENDER_DOMAIN.search(address):
            return _result("spam", 0.85, "Spam or phishing content detected")
        if _matches(INVOICE_PATTERNS, text):
            return _result("invoices", 0.8, "Financial keywords or billing document detected")
        if _matches(NEWSLETTER_PATTERNS, text):
            return _result("newsletters", 0.75, "Automated sender or marketing content detected")
        if _matches(URGENT_PATTERNS, text):
            return _result("urgent", 0.75, "Urgency keywords detected")

        personal_domain = bool(PERSONAL_DOMAIN.search(address))
        professional = bool(PROFESSIONAL_DOMAIN.search(address)) and not personal_domain
        informal_subject = _matches(PERSONAL_SUBJECT_PATTERNS, message.subject.strip())
        if not professional and (personal_domain or informal_subject):
            return _result("personal", 0.65, "Personal sender or informal tone detected")

        return _result("business", 0.45, "Default classification, no specific rule matched")


def _sender_address(sender: str) -> str:
    _, address = parseaddr(sender or "")
    return (address or sender or "").strip().lower()


def _matches(patterns: tuple[re.Pattern[str], ...], text: str) -> bool:
    return any(pattern.search(text) for pattern in patterns)


def _result(category: str, confidence: float, rationale: str) -> Classification:
    return Classification(
        category=category,
        confidence=confidence,
        rationale=rationale,
        source=SOURCE_RULES,
    )
