"""Rule model and the in-memory rule store.

The store owns the rule list for one agent session. Rules are mutated only
through the CRUD operations here; the rule engine reads an ordered view and
records match statistics back through `record_match`.

Usage:
    from todo_agent.rules.store import RuleStore

    store = RuleStore.from_config(config.rules)
    rule_id = store.add_rule(
        name="Invoices",
        criteria={"subject": ["invoice"]},
        actions={"label": "TodoAgent_Task", "priority": 3},
    )
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from todo_agent.config_schema import RuleAction, RuleCriteria
from todo_agent.core.logging import get_logger

if TYPE_CHECKING:
    from todo_agent.config_schema import RuleDefinition, RulesConfig

logger = get_logger(__name__)

# Fields update_rule() refuses to overwrite
_IMMUTABLE_FIELDS = frozenset({"id", "stats"})


def _now() -> datetime:
    return datetime.now(UTC)


class RuleStats(BaseModel):
    """Match statistics for a rule (process lifetime only)."""

    matched: int = 0
    last_matched: datetime | None = None
    created: datetime = Field(default_factory=_now)
    accuracy: float | None = None


class Rule(BaseModel):
    """A named, prioritized criteria-to-label mapping."""

    id: str
    name: str
    description: str = ""
    priority: int = 5
    active: bool = True
    criteria: RuleCriteria = Field(default_factory=RuleCriteria)
    actions: RuleAction
    stats: RuleStats = Field(default_factory=RuleStats)


class RuleStore:
    """Owns the rule list for a session.

    List order is significant: among rules with equal priority, the one
    added first is evaluated first.
    """

    def __init__(self, rules: Iterable[Rule] | None = None) -> None:
        self._rules: list[Rule] = list(rules or [])

    @classmethod
    def from_config(cls, rules_config: RulesConfig) -> RuleStore:
        """Build a store from the `rules:` config section.

        Defaults (when enabled) come first, then custom rules in file order.
        """
        store = cls()
        if rules_config.load_defaults:
            store.load_defaults(rules_config.vip_senders)
        for definition in rules_config.custom:
            store.add_definition(definition)
        return store

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def list_rules(self) -> list[Rule]:
        """Return all rules (active and inactive) in insertion order."""
        return list(self._rules)

    def active_rules_by_priority(self) -> list[Rule]:
        """Active rules, highest priority first.

        sorted() is stable, so ties keep insertion order.
        """
        return sorted(
            (rule for rule in self._rules if rule.active),
            key=lambda rule: rule.priority,
            reverse=True,
        )

    def get_rule(self, rule_id: str) -> Rule | None:
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        return None

    def rule_stats(self) -> dict[str, int]:
        """Map rule name to its match count."""
        return {rule.name: rule.stats.matched for rule in self._rules}

    def __len__(self) -> int:
        return len(self._rules)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def load_defaults(self, vip_senders: Sequence[str] = ()) -> None:
        """(Re)load the built-in rule set.

        Built-in rules replace any existing rule with the same ID and are placed
        ahead of custom rules.
        """
        from todo_agent.rules.defaults import default_rules

        defaults = default_rules(vip_senders)
        default_ids = {rule.id for rule in defaults}
        custom = [rule for rule in self._rules if rule.id not in default_ids]
        self._rules = defaults + custom

        logger.info(
            "default_rules_loaded",
            count=len(defaults),
            active=sum(1 for rule in defaults if rule.active),
            vip_senders_count=len(vip_senders),
        )

    def add_rule(
        self,
        *,
        name: str,
        actions: RuleAction | dict[str, Any],
        criteria: RuleCriteria | dict[str, Any] | None = None,
        description: str = "",
        priority: int = 5,
        active: bool = True,
        rule_id: str | None = None,
    ) -> str:
        """Add a rule and return its ID.

        Generated IDs are `custom-<epoch milliseconds>`.

        Raises:
            pydantic.ValidationError: If criteria or actions are malformed
        """
        rule = Rule.model_validate(
            {
                "id": rule_id or self._generate_id("custom"),
                "name": name,
                "description": description,
                "priority": priority,
                "active": active,
                "criteria": criteria if criteria is not None else RuleCriteria(),
                "actions": actions,
            }
        )
        if self.get_rule(rule.id) is not None:
            raise ValueError(f"Rule ID '{rule.id}' already exists")

        self._rules.append(rule)
        logger.info("rule_added", rule_id=rule.id, rule=rule.name, priority=rule.priority)
        return rule.id

    def add_definition(self, definition: RuleDefinition) -> str:
        """Add a rule declared in config.yaml."""
        return self.add_rule(
            name=definition.name,
            description=definition.description,
            priority=definition.priority,
            active=definition.active,
            criteria=definition.criteria,
            actions=definition.actions,
            rule_id=definition.id,
        )

    def update_rule(self, rule_id: str, **changes: Any) -> bool:
        """Apply field changes to a rule.

        `id` and `stats` cannot be changed. The updated rule is re-validated
        before it replaces the old one.

        Returns:
            False if no rule has that ID
        """
        for index, rule in enumerate(self._rules):
            if rule.id != rule_id:
                continue

            rejected = _IMMUTABLE_FIELDS.intersection(changes)
            if rejected:
                raise ValueError(f"Cannot update rule fields: {', '.join(sorted(rejected))}")

            data = rule.model_dump()
            data.update(changes)
            self._rules[index] = Rule.model_validate(data)
            logger.info("rule_updated", rule_id=rule_id, fields=sorted(changes))
            return True

        return False

    def delete_rule(self, rule_id: str) -> bool:
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                del self._rules[index]
                logger.info("rule_deleted", rule_id=rule_id, rule=rule.name)
                return True
        return False

    def record_match(self, rule: Rule) -> None:
        """Bump a rule's match counter and last-matched timestamp."""
        rule.stats.matched += 1
        rule.stats.last_matched = _now()

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def suggest_rule_from_pattern(
        self,
        *,
        label: str,
        sender: str | None = None,
        keywords: Sequence[str] | None = None,
        sample_count: int = 3,
    ) -> Rule:
        """Draft a rule from an observed classification pattern.

        The draft is returned inactive and is NOT added to the store; an
        operator reviews it and calls add_rule() to adopt it.
        """
        criteria: dict[str, list[str]] = {}
        if sender:
            criteria["from"] = [sender]
        if keywords:
            criteria["body_keywords"] = list(keywords)

        subject = sender or ", ".join(keywords or [])
        return Rule.model_validate(
            {
                "id": self._generate_id("suggested"),
                "name": f"Auto-suggested: {subject}",
                "description": f"Suggested rule based on {sample_count} similar classifications",
                "priority": 5,
                "active": False,
                "criteria": criteria,
                "actions": {"label": label, "priority": 2},
                "stats": {"accuracy": 0.8},
            }
        )

    def _generate_id(self, prefix: str) -> str:
        millis = int(time.time() * 1000)
        rule_id = f"{prefix}-{millis}"
        while self.get_rule(rule_id) is not None:
            millis += 1
            rule_id = f"{prefix}-{millis}"
        return rule_id
