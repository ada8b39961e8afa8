from typing import List

from kure_gate.config.config import PolicyConfig
from kure_gate.models.models import Severity
from kure_gate.policies.rule import Rule

CATEGORY = "Reliability"

# probe type -> (ContainerSpec attribute, manifest field)
PROBES = (
    ('liveness', 'liveness_probe', 'livenessProbe'),
    ('readiness', 'readiness_probe', 'readinessProbe'),
    ('startup', 'startup_probe', 'startupProbe'),
)

TIMING_FIELDS = (
    ('initial_delay_seconds', 'initialDelaySeconds'),
    ('period_seconds', 'periodSeconds'),
    ('timeout_seconds', 'timeoutSeconds'),
    ('failure_threshold', 'failureThreshold'),
)


def _describe_range(low, high) -> str:
    if low is not None and high is not None:
        return f"{low}-{high}"
    if low is not None:
        return f">= {low}"
    return f"<= {high}"


def probe_rules(config: PolicyConfig) -> List[Rule]:
    timing_bounds = config.probe_timing_bounds

    def check_required(rule, manifest, checkers):
        for i, container in enumerate(manifest.containers):
            # Init containers cannot declare probes
            if container.is_init:
                continue
            for _, attr, field in PROBES[:2]:
                if getattr(container, attr) is None:
                    yield rule.violation(
                        f"{container.path}.{field}",
                        f"Container '{container.name}' has no {field}",
                        container_index=i)

    def check_timing(rule, manifest, checkers):
        for i, container in enumerate(manifest.containers):
            for probe_type, attr, field in PROBES:
                probe = getattr(container, attr)
                bounds = timing_bounds.get(probe_type)
                if probe is None or bounds is None:
                    continue
                for timing_attr, timing_field in TIMING_FIELDS:
                    value = getattr(probe, timing_attr)
                    low, high = bounds.bounds(timing_attr)
                    if (low is not None and value < low) or (high is not None and value > high):
                        yield rule.violation(
                            f"{container.path}.{field}.{timing_field}",
                            f"Container '{container.name}' {field}.{timing_field} is {value}, "
                            f"outside the recommended range {_describe_range(low, high)}",
                            container_index=i)

    return [
        Rule(
            id="probes-required",
            title="Require Liveness and Readiness Probes",
            severity=Severity.WARNING,
            category=CATEGORY,
            description="Containers must define liveness and readiness probes.",
            remediation="Add livenessProbe and readinessProbe so failed containers restart and traffic only reaches ready pods.",
            check=check_required,
        ),
        Rule(
            id="probes-timing",
            title="Recommended Probe Timing",
            severity=Severity.WARNING,
            category=CATEGORY,
            description="Probe delays, periods, timeouts and thresholds should stay within recommended bounds.",
            remediation="Tune the probe timing to the recommended bounds for its probe type.",
            check=check_timing,
        ),
    ]
