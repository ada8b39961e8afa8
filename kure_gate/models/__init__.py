from .models import (
    BatchReport,
    ContainerPort,
    ContainerSpec,
    DocumentResult,
    Manifest,
    ManifestIdentity,
    Probe,
    ResourceQuantities,
    ResourceRequirements,
    SecurityContext,
    Severity,
    Verdict,
    EvaluateRequest,
    AdmissionRequest,
    AdmissionReview,
    Violation,
    ViolationOrigin,
)

__all__ = [
    "BatchReport",
    "ContainerPort",
    "ContainerSpec",
    "DocumentResult",
    "Manifest",
    "ManifestIdentity",
    "Probe",
    "ResourceQuantities",
    "ResourceRequirements",
    "SecurityContext",
    "Severity",
    "Verdict",
    "EvaluateRequest",
    "AdmissionRequest",
    "AdmissionReview",
    "Violation",
    "ViolationOrigin",
]
