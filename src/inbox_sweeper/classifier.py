"""Keyword classification of messages against a rule set."""

from __future__ import annotations

from .models import Message, RuleSet


def _hits(text: str, keywords: list[str]) -> list[str]:
    return [kw for kw in keywords if kw in text]


def keyword_hits(subject: str, sender: str, body: str, keywords) -> dict:
    """Return which keywords were found in each field.

    Each keyword is counted at most once per field no matter how often it
    occurs. Useful for explaining why a message did or did not match.
    """
    lowered = [kw.lower() for kw in keywords]
    subject_hits = _hits((subject or "").lower(), lowered)
    sender_hits = _hits((sender or "").lower(), lowered)
    body_hits = _hits((body or "").lower(), lowered)
    return {
        "subject": subject_hits,
        "sender": sender_hits,
        "body": body_hits,
        "subject_count": len(subject_hits),
        "sender_count": len(sender_hits),
        "body_count": len(body_hits),
    }


def matches(subject: str, sender: str, body: str, rule_set: RuleSet) -> bool:
    """Decide whether a message should be deleted under ``rule_set``.

    Subject and sender share one threshold and the better of the two counts
    is used. The body has its own threshold. A rule set without keywords
    never matches.
    """
    if not rule_set.keywords:
        return False

    hits = keyword_hits(subject, sender, body, rule_set.keywords)
    subject_or_sender = max(hits["subject_count"], hits["sender_count"])

    return (
        subject_or_sender >= rule_set.min_subject_or_sender_matches
        and hits["body_count"] >= rule_set.min_body_matches
    )


def message_matches(message: Message, rule_set: RuleSet) -> bool:
    return matches(message.subject, message.sender, message.body, rule_set)


def filter_matching(messages: list[Message], rule_set: RuleSet | None) -> list[Message]:
    """Return the messages that ``rule_set`` would delete, in input order."""
    if rule_set is None:
        return []
    return [m for m in messages if message_matches(m, rule_set)]
