from .catalog import build_registry, default_rules
from .registry import RuleRegistry
from .rule import Rule, workloads_in_namespaces, workloads_only

__all__ = [
    "Rule",
    "RuleRegistry",
    "build_registry",
    "default_rules",
    "workloads_in_namespaces",
    "workloads_only",
]
