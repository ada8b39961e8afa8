from typing import List

from kure_gate.config.config import PolicyConfig
from kure_gate.models.models import Severity
from kure_gate.policies.rule import Rule

CATEGORY = "Naming and Labels"


def label_rules(config: PolicyConfig) -> List[Rule]:
    required = sorted(config.required_labels)
    name_pattern = config.compiled_name_pattern()

    def check_required_labels(rule, manifest, checkers):
        for key in required:
            value = manifest.labels.get(key)
            if value is None:
                yield rule.violation("metadata.labels", f"Missing required label '{key}'")
            elif not value.strip():
                yield rule.violation("metadata.labels", f"Required label '{key}' is empty")

    def check_name(rule, manifest, checkers):
        if not name_pattern.fullmatch(manifest.name):
            yield rule.violation(
                "metadata.name",
                f"Name '{manifest.name}' does not match the naming convention {config.name_pattern}")

    def check_namespace(rule, manifest, checkers):
        if manifest.namespace == "default":
            yield rule.violation(
                "metadata.namespace",
                f"{manifest.kind} '{manifest.name}' is deployed to the default namespace")

    return [
        Rule(
            id="labels-required",
            title="Require Labels",
            severity=Severity.ERROR,
            category=CATEGORY,
            description="Workloads must carry the organisation's standard labels.",
            remediation=f"Add the labels: {', '.join(required)}.",
            check=check_required_labels,
        ),
        Rule(
            id="naming-convention",
            title="Enforce Naming Convention",
            severity=Severity.ERROR,
            category=CATEGORY,
            description="Workload names follow the team-app-env convention.",
            remediation="Rename the workload to <team>-<app>-<env>, lowercase alphanumerics and hyphens only.",
            check=check_name,
        ),
        Rule(
            id="namespace-not-default",
            title="Disallow Default Namespace",
            severity=Severity.WARNING,
            category=CATEGORY,
            description="Workloads should live in a dedicated namespace instead of 'default'.",
            remediation="Deploy the workload to a team or application namespace.",
            check=check_namespace,
        ),
    ]
