"""Image provenance rules: tag pinning, trusted registries, digests, signatures"""
from typing import Iterator, List, Tuple

from kure_gate.config.config import PolicyConfig
from kure_gate.errors import CheckerError, ImageReferenceError
from kure_gate.models.models import ContainerSpec, Manifest, Severity
from kure_gate.policies.rule import Rule, workloads_in_namespaces
from kure_gate.services.image_reference import ImageReference, parse_image_reference

CATEGORY = "Image Security"


def _parsed_images(manifest: Manifest) -> Iterator[Tuple[int, ContainerSpec, ImageReference]]:
    """Containers whose image parses; image-no-latest-tag alone reports the rest"""
    for i, container in enumerate(manifest.containers):
        try:
            yield i, container, parse_image_reference(container.image)
        except ImageReferenceError:
            continue


def image_rules(config: PolicyConfig) -> List[Rule]:
    floating_tags = config.floating_tags
    floating_patterns = config.compiled_floating_tag_patterns()
    allowed_registries = config.allowed_registries

    def check_tag_pinning(rule, manifest, checkers):
        for i, container in enumerate(manifest.containers):
            path = f"{container.path}.image"
            try:
                ref = parse_image_reference(container.image)
            except ImageReferenceError as e:
                yield rule.violation(
                    path,
                    f"Container '{container.name}' has a malformed image reference: {e}",
                    container_index=i,
                    remediation="Use a valid image reference of the form registry/repository:tag@sha256:digest.",
                )
                continue
            if ref.digest:
                continue
            if ref.tag is None:
                yield rule.violation(
                    path,
                    f"Container '{container.name}' uses image '{container.image}' without tag or digest, which resolves to the implicit :latest tag",
                    container_index=i)
            elif ref.tag in floating_tags:
                yield rule.violation(
                    path,
                    f"Container '{container.name}' uses image '{container.image}' with mutable tag '{ref.tag}'",
                    container_index=i)
            elif any(p.search(ref.tag) for p in floating_patterns):
                yield rule.violation(
                    path,
                    f"Container '{container.name}' uses image '{container.image}' with floating tag '{ref.tag}'",
                    container_index=i)

    def check_registry(rule, manifest, checkers):
        if not manifest.containers:
            return
        allowed = set(allowed_registries)
        if checkers.has_registry_allow_list:
            try:
                allowed |= checkers.resolve_registry_allow_list()
            except CheckerError as e:
                yield rule.check_skipped(manifest.pod_spec_path, e, "registry allow-list resolution; using configured registries only")
        allowed_text = ', '.join(sorted(allowed)) or '(none)'

        for i, container, ref in _parsed_images(manifest):
            path = f"{container.path}.image"
            if ref.registry is None:
                yield rule.violation(
                    path,
                    f"Container '{container.name}' uses image '{container.image}' without an explicit registry; allowed registries: {allowed_text}",
                    container_index=i)
            elif ref.registry not in allowed and ref.registry_host not in allowed:
                yield rule.violation(
                    path,
                    f"Container '{container.name}' uses image from registry '{ref.registry}' which is not in the allowed registry list ({allowed_text})",
                    container_index=i)

    def check_digest_required(rule, manifest, checkers):
        for i, container, ref in _parsed_images(manifest):
            if not ref.digest:
                yield rule.violation(
                    f"{container.path}.image",
                    f"Container '{container.name}' uses image '{container.image}' without a sha256 digest in restricted namespace '{manifest.namespace}'",
                    container_index=i)

    def check_signature(rule, manifest, checkers):
        for i, container, ref in _parsed_images(manifest):
            path = f"{container.path}.image"
            try:
                verified = checkers.verify_signature(ref)
            except CheckerError as e:
                yield rule.check_skipped(path, e, f"image '{container.image}'", container_index=i)
                continue
            if not verified:
                yield rule.violation(
                    path,
                    f"Container '{container.name}' uses image '{container.image}' whose signature could not be verified",
                    container_index=i)

    def check_digest_resolvable(rule, manifest, checkers):
        for i, container, ref in _parsed_images(manifest):
            if ref.digest or ref.tag is None:
                continue
            path = f"{container.path}.image"
            try:
                digest = checkers.resolve_digest(ref)
            except CheckerError as e:
                yield rule.check_skipped(path, e, f"image '{container.image}'", container_index=i)
                continue
            pinned = ref.model_copy(update={"digest": digest})
            yield rule.violation(
                path,
                f"Container '{container.name}' image '{container.image}' currently resolves to sha256:{digest}; pin it as '{pinned}'",
                container_index=i)

    return [
        Rule(
            id="image-no-latest-tag",
            title="Disallow Latest and Floating Tags",
            severity=Severity.ERROR,
            category=CATEGORY,
            description="Images must be pinned to an immutable version tag or digest; :latest, missing tags and floating tags are rejected.",
            remediation="Use immutable image tags (e.g., specific versions or SHA digests) for reproducible deployments.",
            check=check_tag_pinning,
        ),
        Rule(
            id="image-registry-allowed",
            title="Restrict Image Registries",
            severity=Severity.ERROR,
            category=CATEGORY,
            description="Images must come from an explicitly allowed registry.",
            remediation="Push the image to an allowed registry and reference it with the registry host.",
            check=check_registry,
        ),
        Rule(
            id="image-digest-required",
            title="Require Image Digests in Restricted Namespaces",
            severity=Severity.ERROR,
            category=CATEGORY,
            description="Workloads in restricted namespaces must reference images by sha256 digest.",
            remediation="Reference the image as repository:tag@sha256:<digest>.",
            check=check_digest_required,
            applies_to=workloads_in_namespaces(config.restricted_namespaces),
        ),
        Rule(
            id="image-signature-verified",
            title="Require Signed Images",
            severity=Severity.ERROR,
            category=CATEGORY,
            description="Image signatures must verify against the organisation's trust root.",
            remediation="Sign the image in the CI pipeline before deploying it.",
            check=check_signature,
        ),
        Rule(
            id="image-digest-resolvable",
            title="Suggest Digest Pinning",
            severity=Severity.INFO,
            category=CATEGORY,
            description="Tag-only images are resolved to their current digest so they can be pinned.",
            remediation="Replace the tag reference with the resolved digest.",
            check=check_digest_resolvable,
        ),
    ]
