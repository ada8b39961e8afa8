from enum import Enum
from types import MappingProxyType
from typing import Annotated, Any, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

# Read-only view over a private copy; dumps back to a plain dict
ReadOnlyStrMap = Annotated[
    Mapping[str, str],
    AfterValidator(lambda value: MappingProxyType(dict(value))),
    PlainSerializer(lambda value: dict(value), return_type=Dict[str, str]),
]


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ViolationOrigin(str, Enum):
    POLICY = "policy"
    INTERNAL_ERROR = "internal-error"
    CHECK_SKIPPED = "check-skipped"  # no checker configured
    CHECKER_FAILURE = "checker-failure"  # configured checker failed or timed out


SKIPPED_CHECK_ORIGINS = frozenset({ViolationOrigin.CHECK_SKIPPED, ViolationOrigin.CHECKER_FAILURE})


class FrozenModel(BaseModel):
    """Immutable model; serialized with camelCase field names"""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


# --- Manifest model ---

class ResourceQuantities(FrozenModel):
    cpu: Optional[str] = None
    memory: Optional[str] = None


class ResourceRequirements(FrozenModel):
    requests: ResourceQuantities = ResourceQuantities()
    limits: ResourceQuantities = ResourceQuantities()


class SecurityContext(FrozenModel):
    run_as_non_root: Optional[bool] = None
    run_as_user: Optional[int] = None
    seccomp_profile_type: Optional[str] = None  # e.g. "RuntimeDefault", "Localhost", "Unconfined"
    read_only_root_filesystem: Optional[bool] = None
    capabilities_drop: FrozenSet[str] = frozenset()
    capabilities_add: FrozenSet[str] = frozenset()
    allow_privilege_escalation: Optional[bool] = None
    privileged: Optional[bool] = None


class Probe(FrozenModel):
    handler: str = "httpGet"  # httpGet, tcpSocket, exec, grpc
    path: Optional[str] = None
    port: Optional[Union[int, str]] = None
    # Kubernetes defaults apply when the manifest leaves a field unset
    initial_delay_seconds: int = 0
    period_seconds: int = 10
    timeout_seconds: int = 1
    failure_threshold: int = 3
    success_threshold: int = 1


class ContainerPort(FrozenModel):
    container_port: int
    name: Optional[str] = None


class ContainerSpec(FrozenModel):
    name: str
    image: str = ""
    path: str  # e.g. "spec.template.spec.containers[0]"
    is_init: bool = False
    resources: ResourceRequirements = ResourceRequirements()
    security_context: Optional[SecurityContext] = None
    ports: Tuple[ContainerPort, ...] = ()
    liveness_probe: Optional[Probe] = None
    readiness_probe: Optional[Probe] = None
    startup_probe: Optional[Probe] = None
    env: ReadOnlyStrMap = Field(default={}, validate_default=True)
    restart_policy: Optional[str] = None  # "Always" marks a native sidecar init container

    @property
    def is_sidecar(self) -> bool:
        return self.is_init and self.restart_policy == "Always"


class ManifestIdentity(FrozenModel):
    kind: str
    namespace: str
    name: str

    def __str__(self):
        return f"{self.kind}/{self.namespace}/{self.name}"


class Manifest(FrozenModel):
    kind: str
    namespace: str = "default"
    name: str = ""
    labels: ReadOnlyStrMap = Field(default={}, validate_default=True)
    annotations: ReadOnlyStrMap = Field(default={}, validate_default=True)
    containers: Tuple[ContainerSpec, ...] = ()
    pod_security_context: Optional[SecurityContext] = None
    pod_spec_path: str = "spec"

    @property
    def identity(self) -> ManifestIdentity:
        return ManifestIdentity(kind=self.kind, namespace=self.namespace, name=self.name)

    @property
    def regular_containers(self) -> Tuple[ContainerSpec, ...]:
        return tuple(c for c in self.containers if not c.is_init)

    @property
    def long_running_containers(self) -> Tuple[ContainerSpec, ...]:
        """Regular containers plus native sidecars (init containers with restartPolicy Always)"""
        return tuple(c for c in self.containers if not c.is_init or c.is_sidecar)


# --- Evaluation results ---

class Violation(FrozenModel):
    rule_id: str
    severity: Severity
    resource_path: str
    message: str
    remediation_hint: Optional[str] = None
    container_index: Optional[int] = None
    origin: ViolationOrigin = ViolationOrigin.POLICY


class Verdict(FrozenModel):
    manifest_identity: ManifestIdentity
    violations: List[Violation] = []
    passed: bool
    evaluated_rule_count: int
    skipped_rule_count: int

    @property
    def has_internal_errors(self) -> bool:
        return any(v.origin == ViolationOrigin.INTERNAL_ERROR for v in self.violations)

    @property
    def has_skipped_checks(self) -> bool:
        return any(v.origin in SKIPPED_CHECK_ORIGINS for v in self.violations)

    @property
    def has_checker_failures(self) -> bool:
        return any(v.origin == ViolationOrigin.CHECKER_FAILURE for v in self.violations)

    def count(self, severity: Severity) -> int:
        return sum(1 for v in self.violations if v.severity == severity)


class DocumentResult(FrozenModel):
    """Outcome for one input document: a verdict or a parse error"""
    index: int
    source: str = ""
    verdict: Optional[Verdict] = None
    parse_error: Optional[str] = None


class BatchReport(FrozenModel):
    results: List[DocumentResult] = []

    @property
    def verdicts(self) -> List[Verdict]:
        return [r.verdict for r in self.results if r.verdict is not None]

    @property
    def passed(self) -> bool:
        return all(r.verdict is not None and r.verdict.passed for r in self.results)

    @property
    def parse_error_count(self) -> int:
        return sum(1 for r in self.results if r.parse_error is not None)


# --- API payloads ---

class EvaluateRequest(BaseModel):
    documents: Optional[List[Any]] = None  # already-decoded workload documents
    manifest: Optional[str] = None  # YAML/JSON multi-document text


class AdmissionRequest(BaseModel):
    model_config = ConfigDict(extra='allow')

    uid: str
    operation: Optional[str] = None
    namespace: Optional[str] = None
    object: Optional[Dict[str, Any]] = None


class AdmissionReview(BaseModel):
    model_config = ConfigDict(extra='allow')

    apiVersion: str = "admission.k8s.io/v1"
    kind: str = "AdmissionReview"
    request: Optional[AdmissionRequest] = None
