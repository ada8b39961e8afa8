"""
Ordered registry of policy rules.

Registration order is the canonical order of violations in a verdict.
Rules can be disabled without being removed so reports can still count
them as skipped. A rule id can never be registered twice.
"""
import logging
from typing import Dict, Iterator, List, Set

from kure_gate.errors import DuplicateRuleId, UnknownRuleId
from kure_gate.policies.rule import Rule

logger = logging.getLogger(__name__)


class RuleRegistry:

    def __init__(self, rules=()):
        self._rules: Dict[str, Rule] = {}
        self._disabled: Set[str] = set()
        for rule in rules:
            self.register(rule)

    def register(self, rule: Rule) -> None:
        if rule.id in self._rules:
            raise DuplicateRuleId(rule.id)
        self._rules[rule.id] = rule
        logger.debug(f"Registered rule {rule.id} ({rule.severity.value})")

    def get(self, rule_id: str) -> Rule:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise UnknownRuleId(rule_id)

    def set_enabled(self, rule_id: str, enabled: bool) -> None:
        if rule_id not in self._rules:
            raise UnknownRuleId(rule_id)
        if enabled:
            self._disabled.discard(rule_id)
        else:
            self._disabled.add(rule_id)

    def is_enabled(self, rule_id: str) -> bool:
        if rule_id not in self._rules:
            raise UnknownRuleId(rule_id)
        return rule_id not in self._disabled

    def rules_for(self, kind: str, namespace: str) -> List[Rule]:
        """Enabled rules applicable to this kind/namespace, in registration order"""
        return [
            rule for rule in self._rules.values()
            if rule.id not in self._disabled and rule.applies_to(kind, namespace)
        ]

    def skipped_count(self, kind: str, namespace: str) -> int:
        return len(self._rules) - len(self.rules_for(kind, namespace))

    def snapshot(self) -> 'RuleRegistry':
        """Independent copy; toggling the original does not affect it"""
        copy = RuleRegistry(self._rules.values())
        copy._disabled = set(self._disabled)
        return copy

    def describe(self) -> List[dict]:
        return [
            {
                "id": rule.id,
                "title": rule.title,
                "severity": rule.severity.value,
                "category": rule.category,
                "description": rule.description,
                "enabled": rule.id not in self._disabled,
            }
            for rule in self._rules.values()
        ]

    def __iter__(self) -> Iterator[Rule]:
        return iter(list(self._rules.values()))

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: str) -> bool:
        return rule_id in self._rules
