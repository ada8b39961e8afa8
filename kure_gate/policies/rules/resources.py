from typing import List

from kure_gate.config.config import PolicyConfig
from kure_gate.models.models import Severity
from kure_gate.policies.rule import Rule
from kure_gate.services.quantities import parse_cpu_to_millicores, parse_memory_to_bytes

CATEGORY = "Best Practices"

REQUIRED_FIELDS = (
    ('requests', 'cpu'),
    ('requests', 'memory'),
    ('limits', 'cpu'),
    ('limits', 'memory'),
)

_PARSERS = {'cpu': parse_cpu_to_millicores, 'memory': parse_memory_to_bytes}


def resource_rules(config: PolicyConfig) -> List[Rule]:
    low, high = config.resource_request_limit_ratio_band

    def check_requests_limits(rule, manifest, checkers):
        for i, container in enumerate(manifest.containers):
            for section, resource in REQUIRED_FIELDS:
                if getattr(getattr(container.resources, section), resource) is None:
                    yield rule.violation(
                        f"{container.path}.resources.{section}.{resource}",
                        f"Container '{container.name}' does not set resources.{section}.{resource}",
                        container_index=i)

    def check_ratio(rule, manifest, checkers):
        for i, container in enumerate(manifest.containers):
            for resource in ('cpu', 'memory'):
                request_raw = getattr(container.resources.requests, resource)
                limit_raw = getattr(container.resources.limits, resource)
                if request_raw is None or limit_raw is None:
                    # Absence is reported by resources-requests-limits
                    continue
                path = f"{container.path}.resources"
                request = _PARSERS[resource](request_raw)
                limit = _PARSERS[resource](limit_raw)
                if request is None or limit is None or limit <= 0:
                    yield rule.violation(
                        path,
                        f"Container '{container.name}' has unparseable {resource} quantities (request '{request_raw}', limit '{limit_raw}')",
                        container_index=i)
                    continue
                ratio = request / limit
                if ratio < low or ratio > high:
                    yield rule.violation(
                        path,
                        f"Container '{container.name}' {resource} request/limit ratio is {ratio:.2f} "
                        f"({request_raw}/{limit_raw}), outside the recommended band {low:.2f}-{high:.2f}",
                        container_index=i)

    return [
        Rule(
            id="resources-requests-limits",
            title="Require Resource Requests and Limits",
            severity=Severity.ERROR,
            category=CATEGORY,
            description="Every container must declare CPU and memory requests and limits.",
            remediation="Add resources.requests and resources.limits (cpu and memory) to the container specification.",
            check=check_requests_limits,
        ),
        Rule(
            id="resources-request-limit-ratio",
            title="Balanced Requests and Limits",
            severity=Severity.WARNING,
            category=CATEGORY,
            description="Requests should stay within a configured fraction of limits to avoid overcommit and waste.",
            remediation=f"Size requests at roughly {low:.0%}-{high:.0%} of the corresponding limits.",
            check=check_ratio,
        ),
    ]
