"""Declarative email rules.

This package provides the rule side of classification:
- Rule model and in-memory RuleStore with CRUD operations
- The built-in default rule set
- RuleEngine for priority-ordered evaluation
"""

from todo_agent.rules.defaults import default_rules
from todo_agent.rules.engine import RuleEngine, RuleMatchResult, evaluate_rule, extract_domain
from todo_agent.rules.store import Rule, RuleStats, RuleStore

__all__ = [
    "Rule",
    "RuleEngine",
    "RuleMatchResult",
    "RuleStats",
    "RuleStore",
    "default_rules",
    "evaluate_rule",
    "extract_domain",
]
