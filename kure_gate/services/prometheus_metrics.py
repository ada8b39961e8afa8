"""
Centralized Prometheus metrics registry for Kure Gate.

All metric objects are defined here. Other modules import and
increment/observe these objects at instrumentation points.
"""
from prometheus_client import Counter, Summary

# Evaluation Metrics
MANIFESTS_EVALUATED_TOTAL = Counter(
    "kure_gate_manifests_evaluated_total",
    "Total number of manifests evaluated, by verdict",
    ["result"],
)

VIOLATIONS_TOTAL = Counter(
    "kure_gate_violations_total",
    "Total policy violations found, by rule and severity",
    ["rule_id", "severity"],
)

RULE_INTERNAL_ERRORS_TOTAL = Counter(
    "kure_gate_rule_internal_errors_total",
    "Total number of rules that raised an unexpected error during evaluation",
    ["rule_id"],
)

EVALUATION_DURATION_SECONDS = Summary(
    "kure_gate_evaluation_duration_seconds",
    "Duration of a single manifest evaluation in seconds",
)

PARSE_ERRORS_TOTAL = Counter(
    "kure_gate_parse_errors_total",
    "Total number of input documents rejected by the parser",
)

# External Checker Metrics
CHECKER_CALLS_TOTAL = Counter(
    "kure_gate_checker_calls_total",
    "Total external checker calls by checker and outcome",
    ["checker", "outcome"],
)
