"""
Default rule catalogue.

Builds a RuleRegistry from a PolicyConfig: every rule family in canonical
order, then severity overrides and enable/disable lists applied. Unknown
rule ids in the configuration are configuration errors.
"""
import logging
from typing import List

from kure_gate.config.config import PolicyConfig
from kure_gate.errors import ConfigurationError
from kure_gate.policies.registry import RuleRegistry
from kure_gate.policies.rule import Rule
from kure_gate.policies.rules.images import image_rules
from kure_gate.policies.rules.labels import label_rules
from kure_gate.policies.rules.observability import observability_rules
from kure_gate.policies.rules.probes import probe_rules
from kure_gate.policies.rules.resources import resource_rules
from kure_gate.policies.rules.security import security_rules

logger = logging.getLogger(__name__)

RULE_FAMILIES = (
    image_rules,
    resource_rules,
    security_rules,
    label_rules,
    observability_rules,
    probe_rules,
)


def default_rules(config: PolicyConfig) -> List[Rule]:
    rules = []
    for family in RULE_FAMILIES:
        rules.extend(family(config))
    return rules


def build_registry(config: PolicyConfig) -> RuleRegistry:
    rules = default_rules(config)
    known = {rule.id for rule in rules}

    for option, ids in (('severity_overrides', set(config.severity_overrides)),
                        ('enabled_rule_ids', set(config.enabled_rule_ids or ())),
                        ('disabled_rule_ids', set(config.disabled_rule_ids))):
        unknown = ids - known
        if unknown:
            raise ConfigurationError(f"{option} names unknown rules: {', '.join(sorted(unknown))}")

    registry = RuleRegistry()
    for rule in rules:
        override = config.severity_overrides.get(rule.id)
        registry.register(rule.with_severity(override) if override else rule)

    for rule in rules:
        enabled = config.enabled_rule_ids is None or rule.id in config.enabled_rule_ids
        if not enabled or rule.id in config.disabled_rule_ids:
            registry.set_enabled(rule.id, False)

    disabled = [r['id'] for r in registry.describe() if not r['enabled']]
    logger.info(f"Built rule registry with {len(registry)} rules ({len(disabled)} disabled)")
    return registry
