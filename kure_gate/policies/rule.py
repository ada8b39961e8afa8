from dataclasses import dataclass, replace
from typing import Callable, Collection, Iterable, List, Optional

from kure_gate.errors import CheckerError, CheckerNotConfigured
from kure_gate.models.models import Manifest, Severity, Violation, ViolationOrigin
from kure_gate.services.checkers import ExternalCheckers
from kure_gate.services.manifest_parser import WORKLOAD_KINDS


def workloads_only(kind: str, namespace: str) -> bool:
    """Default scope: every kind that carries a pod spec, in any namespace"""
    return kind in WORKLOAD_KINDS


def workloads_in_namespaces(namespaces: Collection[str]) -> Callable[[str, str], bool]:
    namespaces = frozenset(namespaces)

    def applies(kind: str, namespace: str) -> bool:
        return kind in WORKLOAD_KINDS and namespace in namespaces
    return applies


@dataclass(frozen=True)
class Rule:
    """A named, read-only predicate over a Manifest.

    ``check`` receives the rule itself (to stamp violations), the manifest
    and the external checkers, and yields violations in container order.
    """
    id: str
    title: str
    severity: Severity
    category: str
    description: str
    check: Callable[['Rule', Manifest, ExternalCheckers], Iterable[Violation]]
    applies_to: Callable[[str, str], bool] = workloads_only
    remediation: Optional[str] = None

    def evaluate(self, manifest: Manifest, checkers: ExternalCheckers) -> List[Violation]:
        return list(self.check(self, manifest, checkers))

    def with_severity(self, severity: Severity) -> 'Rule':
        return replace(self, severity=severity)

    def violation(self, resource_path: str, message: str,
                  container_index: Optional[int] = None,
                  severity: Optional[Severity] = None,
                  remediation: Optional[str] = None) -> Violation:
        return Violation(
            rule_id=self.id,
            severity=severity or self.severity,
            resource_path=resource_path,
            message=message,
            remediation_hint=remediation or self.remediation,
            container_index=container_index,
        )

    def check_skipped(self, resource_path: str, error: CheckerError, subject: str,
                      container_index: Optional[int] = None) -> Violation:
        """Warning for a check that could not run; never mistaken for compliance.

        A missing checker is advisory; a configured checker that failed is
        tagged as a checker failure, which the reporter treats as a tooling
        failure.
        """
        origin = ViolationOrigin.CHECK_SKIPPED
        if not isinstance(error, CheckerNotConfigured):
            origin = ViolationOrigin.CHECKER_FAILURE
        return Violation(
            rule_id=self.id,
            severity=Severity.WARNING,
            resource_path=resource_path,
            message=f"check skipped: {error.reason} ({error.checker}) for {subject}",
            remediation_hint="Configure a working external checker for this rule or disable the rule explicitly.",
            container_index=container_index,
            origin=origin,
        )
