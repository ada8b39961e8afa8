from typing import List

from kure_gate.config.config import PolicyConfig
from kure_gate.models.models import Severity
from kure_gate.policies.rule import Rule

CATEGORY = "Observability"

SCRAPE_ANNOTATION = "prometheus.io/scrape"
PORT_ANNOTATION = "prometheus.io/port"


def observability_rules(config: PolicyConfig) -> List[Rule]:
    shipper_pattern = config.compiled_log_shipper_pattern()

    def check_annotations(rule, manifest, checkers):
        for key in (SCRAPE_ANNOTATION, PORT_ANNOTATION):
            if key not in manifest.annotations:
                yield rule.violation("metadata.annotations", f"Missing annotation '{key}'")
        port = manifest.annotations.get(PORT_ANNOTATION)
        if port is not None and not port.strip().isdigit():
            yield rule.violation(
                "metadata.annotations",
                f"Annotation '{PORT_ANNOTATION}' must be a port number, got '{port}'")

    def check_log_shipper(rule, manifest, checkers):
        if not any(shipper_pattern.search(c.name) for c in manifest.long_running_containers):
            yield rule.violation(
                f"{manifest.pod_spec_path}.containers",
                f"No log shipper sidecar matching {config.log_shipper_name_pattern} among the containers of {manifest.kind} '{manifest.name}'")

    return [
        Rule(
            id="observability-prometheus-annotations",
            title="Require Prometheus Scrape Annotations",
            severity=Severity.WARNING,
            category=CATEGORY,
            description="Workloads must expose metrics through prometheus.io/scrape and prometheus.io/port annotations.",
            remediation="Add 'prometheus.io/scrape: \"true\"' and 'prometheus.io/port' to the pod template annotations.",
            check=check_annotations,
        ),
        Rule(
            id="observability-log-shipper",
            title="Require Log Shipper Sidecar",
            severity=Severity.WARNING,
            category=CATEGORY,
            description="Workloads must run a log shipping sidecar next to the application container.",
            remediation="Add a log shipper sidecar (e.g. promtail or fluent-bit) to the pod template.",
            check=check_log_shipper,
        ),
    ]
