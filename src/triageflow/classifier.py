"""Summary: Message classification with an AI primary path and rule fallback.

Importance: Produces a category for every message regardless of AI availability.
Alternatives: Use rules only, or fail messages when the AI provider is down.
"""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from triageflow.ai import AiProvider
from triageflow.models import CATEGORIES, Classification, Message, SOURCE_AI
from triageflow.ratelimit import RATE_LIMIT_CONFIGS, RateLimiter
from triageflow.rules import RuleBasedClassifier


logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional email classifier. Put each email in exactly one category "
    "with a confidence score. Reply ONLY with valid JSON, no text before or after."
)

DEFAULT_RATIONALE = "Classified by AI"


def build_user_prompt(message: Message) -> str:
    """Summary: Render the classification prompt for a message.

    Importance: Sends only headers and the snippet, never the full body.
    Alternatives: Send the full message body for better accuracy.
    """

    recipients = ", ".join(message.recipients[:3])
    return (
        "Available categories:\n"
        "- urgent: needs action within 24h, critical request, blocking problem\n"
        "- personal: friends and family, informal tone, unrelated to work\n"
        "- business: non-urgent professional mail, project follow-up, meetings\n"
        "- invoices: invoices, receipts, payment confirmations, financial documents\n"
        "- newsletters: newsletters, promotions, marketing, automated notifications\n"
        "- spam: obvious spam, phishing, unsolicited advertising\n\n"
        "Priority rules:\n"
        "1. Explicit urgent request with a short deadline -> urgent\n"
        "2. Newsletters and promotions go to newsletters, even from a client\n"
        "3. Invoices go to invoices, even when urgent\n"
        "4. When in doubt -> business with low confidence\n\n"
        "Email to classify:\n"
        f"From: {message.sender}\n"
        f"To: {recipients}\n"
        f"Subject: {message.subject}\n"
        f"Snippet: {message.snippet}\n\n"
        'Reply in JSON: {"category": "...", "confidence": 0.0, "reason": "..."}'
    )


def parse_classification(raw: str) -> Classification | None:
    """Summary: Parse an AI reply into a Classification, or None when unusable.

    Importance: Tolerates prose around the JSON object and bad confidence values.
    Alternatives: Trust the provider's JSON mode and fail on anything else.
    """

    payload = _load_object(raw)
    if payload is None:
        payload = _first_embedded_object(raw)
    if payload is None:
        return None
    category = payload.get("category")
    if not isinstance(category, str) or category not in CATEGORIES:
        logger.warning("AI returned invalid category: %r", category)
        return None
    reason = payload.get("reason")
    return Classification(
        category=category,
        confidence=_clamp_confidence(payload.get("confidence")),
        rationale=reason if isinstance(reason, str) and reason else DEFAULT_RATIONALE,
        source=SOURCE_AI,
    )


def _load_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def _first_embedded_object(text: str) -> dict[str, Any] | None:
    """Summary: Find the first balanced {...} span in text that parses as a JSON object.

    Importance: Models sometimes wrap the JSON reply in a sentence.
    Alternatives: A greedy regex from the first brace to the last brace.
    """

    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        if end is None:
            return None
        value = _load_object(text[start : end + 1])
        if value is not None:
            return value
        start = text.find("{", start + 1)
    return None


def _balanced_end(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def _clamp_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.5
    if not math.isfinite(value):
        return 0.5
    return min(1.0, max(0.0, float(value)))


@dataclass(frozen=True)
class MessageClassifier:
    """Summary: Classifies messages with the AI provider and falls back to rules.

    Importance: classify never raises, so a batch always yields one result per message.
    Alternatives: Surface AI failures to the caller and let it retry.
    """

    ai_provider: AiProvider
    rules: RuleBasedClassifier = field(default_factory=RuleBasedClassifier)
    rate_limiter: RateLimiter | None = None
    rate_limit_key: str = "global"

    def classify(self, message: Message) -> Classification:
        """Summary: Classify one message.

        Importance: Any AI failure or local budget refusal yields the rule result.
        Alternatives: Queue refused messages for a later attempt.
        """

        if self.rate_limiter is not None:
            decision = self.rate_limiter.allow(self.rate_limit_key, RATE_LIMIT_CONFIGS["classifier"])
            if not decision.allowed:
                logger.info("Classifier budget exhausted, using rules")
                return self.rules.classify(message)
        try:
            raw, latency_ms = self.ai_provider.complete(SYSTEM_PROMPT, build_user_prompt(message))
        except Exception as exc:
            logger.warning("AI classification failed, using rules: %s", exc)
            return self.rules.classify(message)
        if not raw or not raw.strip():
            logger.warning("AI returned an empty reply, using rules")
            return self.rules.classify(message)
        parsed = parse_classification(raw)
        if parsed is None:
            logger.warning("AI reply could not be parsed, using rules")
            return self.rules.classify(message)
        logger.debug("AI classified message in %sms", latency_ms)
        return parsed

    def classify_batch(
        self,
        messages: Iterable[Message],
        pacing_seconds: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> dict[str, Classification]:
        """Summary: Classify messages sequentially with a pause between calls.

        Importance: Keeps bursty batches under the provider's request rate.
        Alternatives: Fire all calls concurrently and rely on provider backoff.
        """

        results: dict[str, Classification] = {}
        for index, message in enumerate(messages):
            if index and pacing_seconds > 0:
                sleep(pacing_seconds)
            results[message.remote_message_id] = self.classify(message)
        return results
