"""Priority-ordered rule evaluation.

Each declared criterion (from, from_domain, subject, body_keywords) counts as
one unit; a criterion is satisfied when any of its values is a
case-insensitive substring of the matching email field. Confidence is the
satisfied/declared ratio and a rule matches at >= 0.5 with at least one hit.
exclude_keywords vetoes a rule outright before confidence is computed.

Rules are tried highest priority first and the first match wins: lower
priority rules are never evaluated for that email. Matching is plain
substring search, no user-supplied regex is compiled.

Usage:
    from todo_agent.rules.engine import RuleEngine

    engine = RuleEngine(store, mail)
    result = await engine.evaluate(email)
    if result.matched:
        ...  # result.rule.actions.label has been written to the email
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import regex

from todo_agent.core.logging import get_logger

if TYPE_CHECKING:
    from todo_agent.models import Email
    from todo_agent.providers.base import MailProvider
    from todo_agent.rules.store import Rule, RuleStore

logger = get_logger(__name__)

MATCH_THRESHOLD = 0.5

_DOMAIN_PATTERN = regex.compile(r"@([^>]+)")


@dataclass(frozen=True, slots=True)
class RuleMatchResult:
    """Result of evaluating rules against an email.

    Attributes:
        matched: Whether a rule fired
        rule: The rule that fired (None when unmatched)
        confidence: Satisfied/declared criteria ratio of the evaluated rule
        matched_criteria: Names of the satisfied criteria
    """

    matched: bool
    rule: Rule | None = None
    confidence: float = 0.0
    matched_criteria: tuple[str, ...] = ()


NO_MATCH = RuleMatchResult(matched=False)


def extract_domain(sender: str) -> str:
    """Extract the lowercased domain from a From header ('' if none)."""
    match = _DOMAIN_PATTERN.search(sender, timeout=1)
    return match.group(1).lower() if match else ""


def _any_in(values: list[str], haystacks: tuple[str, ...]) -> bool:
    return any(value.lower() in haystack for value in values for haystack in haystacks)


def evaluate_rule(email: Email, rule: Rule) -> RuleMatchResult:
    """Evaluate one rule against an email. Pure, no side effects.

    Args:
        email: Email to test
        rule: Rule to evaluate

    Returns:
        RuleMatchResult for this rule alone
    """
    criteria = rule.criteria
    sender = email.sender.lower()
    subject = email.subject.lower()
    body = email.body.lower()
    snippet = email.snippet.lower()

    matched_criteria: list[str] = []
    total = 0

    if criteria.from_:
        total += 1
        if _any_in(criteria.from_, (sender,)):
            matched_criteria.append("from")

    if criteria.from_domain:
        total += 1
        if _any_in(criteria.from_domain, (extract_domain(email.sender),)):
            matched_criteria.append("from_domain")

    if criteria.subject:
        total += 1
        if _any_in(criteria.subject, (subject,)):
            matched_criteria.append("subject")

    if criteria.body_keywords:
        total += 1
        if _any_in(criteria.body_keywords, (body, snippet)):
            matched_criteria.append("body_keywords")

    # Veto wins regardless of how many criteria matched
    if criteria.exclude_keywords and _any_in(criteria.exclude_keywords, (body, snippet, subject)):
        return NO_MATCH

    matched_count = len(matched_criteria)
    confidence = matched_count / total if total else 0.0
    matched = confidence >= MATCH_THRESHOLD and matched_count > 0

    return RuleMatchResult(
        matched=matched,
        rule=rule if matched else None,
        confidence=confidence,
        matched_criteria=tuple(matched_criteria),
    )


class RuleEngine:
    """Evaluates emails against the active rules of a RuleStore.

    On a match the rule's statistics are updated and its label is written to
    the email through the mail provider before the result is returned.
    """

    def __init__(self, store: RuleStore, mail: MailProvider) -> None:
        self._store = store
        self._mail = mail

    @property
    def store(self) -> RuleStore:
        return self._store

    def find_match(self, email: Email) -> RuleMatchResult:
        """Return the first matching active rule without side effects."""
        for rule in self._store.active_rules_by_priority():
            result = evaluate_rule(email, rule)
            if result.matched:
                return result
        return NO_MATCH

    async def evaluate(self, email: Email) -> RuleMatchResult:
        """Evaluate an email and apply the winning rule's label.

        Raises:
            MailProviderError: If writing the label fails at the transport level
        """
        result = self.find_match(email)
        if not result.matched or result.rule is None:
            return NO_MATCH

        rule = result.rule
        self._store.record_match(rule)

        logger.info(
            "rule_matched",
            email_id=email.id[:20],
            rule_id=rule.id,
            rule=rule.name,
            confidence=round(result.confidence, 2),
            matched_criteria=list(result.matched_criteria),
            label=rule.actions.label,
        )

        if rule.actions.label:
            applied = await self._mail.add_label(email.id, rule.actions.label)
            if not applied:
                logger.warning(
                    "rule_label_not_applied",
                    email_id=email.id[:20],
                    rule_id=rule.id,
                    label=rule.actions.label,
                )

        return result
