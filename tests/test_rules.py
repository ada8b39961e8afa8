from unittest.mock import Mock, patch

import pytest

from kure_gate.config.config import PolicyConfig, parse_config
from kure_gate.errors import CheckerNotConfigured, CheckerUnreachable
from kure_gate.models.models import Severity, ViolationOrigin
from kure_gate.policies.catalog import build_registry
from kure_gate.services.checkers import ExternalCheckers
from kure_gate.services.manifest_parser import parse_manifest


def _pod(containers, namespace="dev", pod_security_context=None, name="pe-eng-app-dev"):
    spec = {"containers": containers}
    if pod_security_context is not None:
        spec["securityContext"] = pod_security_context
    return parse_manifest({"kind": "Pod", "metadata": {"name": name, "namespace": namespace}, "spec": spec})


@pytest.fixture
def run(checkers):
    """Evaluate one rule of the default catalogue against a manifest"""
    def run(rule_id, manifest, config=None, rule_checkers=None):
        rule = build_registry(config or PolicyConfig()).get(rule_id)
        return rule.evaluate(manifest, rule_checkers or checkers)
    return run


class TestImageRules:

    @pytest.mark.parametrize("image", [
        "registry.bank.internal/app",
        "registry.bank.internal/app:latest",
        "registry.bank.internal/app:stable",
        "registry.bank.internal/app:1",
        "registry.bank.internal/app:v2",
        "registry.bank.internal/app:1.4",
        "registry.bank.internal/app:2.0-SNAPSHOT",
    ])
    def test_floating_tags_flagged(self, run, image):
        violations = run("image-no-latest-tag", _pod([{"name": "app", "image": image}]))
        assert len(violations) == 1
        assert violations[0].resource_path == "spec.containers[0].image"
        assert violations[0].severity == Severity.ERROR

    @pytest.mark.parametrize("image", [
        "registry.bank.internal/app:1.4.2",
        "registry.bank.internal/app:20240101",
        "registry.bank.internal/app:1234",
        "registry.bank.internal/app@sha256:" + "b" * 64,
        "registry.bank.internal/app:latest@sha256:" + "b" * 64,
    ])
    def test_pinned_images_pass(self, run, image):
        assert run("image-no-latest-tag", _pod([{"name": "app", "image": image}])) == []

    def test_malformed_image_is_a_violation(self, run):
        """Test that an unparseable image is reported instead of raising"""
        violations = run("image-no-latest-tag", _pod([{"name": "app", "image": "Not A Valid Image"}]))
        assert len(violations) == 1
        assert "malformed image reference" in violations[0].message

    def test_malformed_image_reported_once(self, run):
        """Test that the other image rules skip an unparseable image instead of repeating it"""
        manifest = _pod([{"name": "app", "image": "Not A Valid Image"}], namespace="production")
        rule_ids = [
            "image-no-latest-tag", "image-registry-allowed", "image-digest-required",
            "image-signature-verified", "image-digest-resolvable",
        ]
        violations = [v for rule_id in rule_ids for v in run(rule_id, manifest)]
        assert [v.rule_id for v in violations] == ["image-no-latest-tag"]

    def test_registry_not_allowed(self, run):
        violations = run("image-registry-allowed", _pod([
            {"name": "a", "image": "registry.bank.internal/app:1.0.0"},
            {"name": "b", "image": "docker.io/library/nginx:1.25.3"},
            {"name": "c", "image": "nginx:1.25.3"},
        ]))
        assert [v.container_index for v in violations] == [1, 2]
        assert "docker.io" in violations[0].message
        assert "without an explicit registry" in violations[1].message

    def test_registry_host_with_port_allowed(self, run):
        manifest = _pod([{"name": "a", "image": "registry.bank.internal:5000/app:1.0.0"}])
        assert run("image-registry-allowed", manifest) == []

    def test_registry_allow_list_checker_extends_configuration(self, run):
        checkers = ExternalCheckers(registry_allow_list=lambda: ["ghcr.io"])
        try:
            manifest = _pod([{"name": "a", "image": "ghcr.io/acme/app:1.0.0"}])
            assert run("image-registry-allowed", manifest, rule_checkers=checkers) == []
        finally:
            checkers.close()

    def test_registry_allow_list_checker_failure_is_checker_failure(self, run):
        def unreachable():
            raise ConnectionError("registry down")

        checkers = ExternalCheckers(registry_allow_list=unreachable)
        try:
            manifest = _pod([{"name": "a", "image": "registry.bank.internal/app:1.0.0"}])
            violations = run("image-registry-allowed", manifest, rule_checkers=checkers)
        finally:
            checkers.close()

        assert len(violations) == 1
        assert violations[0].severity == Severity.WARNING
        assert violations[0].origin == ViolationOrigin.CHECKER_FAILURE
        assert "unreachable" in violations[0].message

    def test_digest_required_only_in_restricted_namespaces(self):
        """Test that the digest rule applies to production only"""
        registry = build_registry(PolicyConfig())
        assert "image-digest-required" not in [r.id for r in registry.rules_for("Deployment", "dev")]
        assert "image-digest-required" in [r.id for r in registry.rules_for("Deployment", "production")]

    def test_digest_required_violation(self, run):
        manifest = _pod([{"name": "a", "image": "registry.bank.internal/app:1.0.0"}], namespace="production")
        violations = run("image-digest-required", manifest)
        assert len(violations) == 1
        assert "production" in violations[0].message

    def test_signature_without_checker_is_skipped_check(self, run):
        violations = run("image-signature-verified", _pod([{"name": "a", "image": "registry.bank.internal/app:1.0.0"}]))
        assert len(violations) == 1
        assert violations[0].severity == Severity.WARNING
        assert violations[0].origin == ViolationOrigin.CHECK_SKIPPED
        assert "no checker configured" in violations[0].message

    def test_signature_rejected(self, run):
        checkers = ExternalCheckers(signature_verifier=lambda ref: ref.repository != "unsigned")
        try:
            manifest = _pod([
                {"name": "a", "image": "registry.bank.internal/signed:1.0.0"},
                {"name": "b", "image": "registry.bank.internal/unsigned:1.0.0"},
            ])
            violations = run("image-signature-verified", manifest, rule_checkers=checkers)
        finally:
            checkers.close()

        assert len(violations) == 1
        assert violations[0].severity == Severity.ERROR
        assert violations[0].container_index == 1

    def test_digest_resolution_suggests_pinning(self, run):
        checkers = ExternalCheckers(digest_resolver=lambda ref: "sha256:" + "c" * 64)
        try:
            manifest = _pod([{"name": "a", "image": "registry.bank.internal/app:1.0.0"}])
            violations = run("image-digest-resolvable", manifest, rule_checkers=checkers)
        finally:
            checkers.close()

        assert len(violations) == 1
        assert violations[0].severity == Severity.INFO
        assert f"registry.bank.internal/app:1.0.0@sha256:{'c' * 64}" in violations[0].message


class TestResourceRules:

    def test_each_missing_field_reported(self, run):
        violations = run("resources-requests-limits", _pod([
            {"name": "a", "image": "app:1.0.0", "resources": {"requests": {"cpu": "100m"}}},
        ]))
        assert [v.resource_path for v in violations] == [
            "spec.containers[0].resources.requests.memory",
            "spec.containers[0].resources.limits.cpu",
            "spec.containers[0].resources.limits.memory",
        ]

    def test_ratio_outside_band(self, run):
        manifest = _pod([{"name": "a", "image": "app:1.0.0", "resources": {
            "requests": {"cpu": "100m", "memory": "256Mi"},
            "limits": {"cpu": "1", "memory": "512Mi"},
        }}])
        violations = run("resources-request-limit-ratio", manifest)
        assert len(violations) == 1
        assert violations[0].severity == Severity.WARNING
        assert "cpu request/limit ratio is 0.10" in violations[0].message

    def test_ratio_within_band(self, run):
        manifest = _pod([{"name": "a", "image": "app:1.0.0", "resources": {
            "requests": {"cpu": "300m", "memory": "0.5Gi"},
            "limits": {"cpu": "500m", "memory": "1Gi"},
        }}])
        assert run("resources-request-limit-ratio", manifest) == []

    def test_unparseable_quantity(self, run):
        manifest = _pod([{"name": "a", "image": "app:1.0.0", "resources": {
            "requests": {"cpu": "lots", "memory": "256Mi"},
            "limits": {"cpu": "1", "memory": "512Mi"},
        }}])
        violations = run("resources-request-limit-ratio", manifest)
        assert len(violations) == 1
        assert "unparseable cpu" in violations[0].message


class TestSecurityRules:

    def test_missing_security_context(self, run):
        manifest = _pod([{"name": "a", "image": "app:1.0.0"}])
        for rule_id in ("security-run-as-non-root", "security-seccomp-runtime-default",
                        "security-read-only-root-fs", "security-drop-all-capabilities"):
            assert len(run(rule_id, manifest)) == 1, rule_id
        assert run("security-no-privilege-escalation", manifest) == []
        assert run("security-capabilities-added", manifest) == []

    def test_pod_security_context_is_inherited(self, run):
        manifest = _pod(
            [{"name": "a", "image": "app:1.0.0"}],
            pod_security_context={"runAsNonRoot": True, "seccompProfile": {"type": "RuntimeDefault"}},
        )
        assert run("security-run-as-non-root", manifest) == []
        assert run("security-seccomp-runtime-default", manifest) == []

    def test_container_overrides_pod(self, run):
        manifest = _pod(
            [{"name": "a", "image": "app:1.0.0", "securityContext": {"runAsUser": 0}}],
            pod_security_context={"runAsNonRoot": True},
        )
        violations = run("security-run-as-non-root", manifest)
        assert len(violations) == 1
        assert violations[0].resource_path == "spec.containers[0].securityContext.runAsUser"

    def test_drop_must_be_exactly_all(self, run):
        manifest = _pod([
            {"name": "a", "image": "app:1.0.0", "securityContext": {"capabilities": {"drop": ["all"]}}},
            {"name": "b", "image": "app:1.0.0", "securityContext": {"capabilities": {"drop": ["NET_RAW"]}}},
            {"name": "c", "image": "app:1.0.0", "securityContext": {"capabilities": {"drop": ["ALL", "NET_RAW"]}}},
        ])
        violations = run("security-drop-all-capabilities", manifest)
        assert [v.container_index for v in violations] == [1, 2]

    def test_added_capabilities_reported_as_info(self, run):
        manifest = _pod([{"name": "a", "image": "app:1.0.0", "securityContext": {
            "capabilities": {"drop": ["ALL"], "add": ["SYS_ADMIN", "NET_BIND_SERVICE"]},
        }}])
        violations = run("security-capabilities-added", manifest)
        assert len(violations) == 1
        assert violations[0].severity == Severity.INFO
        assert "NET_BIND_SERVICE, SYS_ADMIN" in violations[0].message
        assert "dangerous: SYS_ADMIN" in violations[0].message

    def test_privilege_escalation_only_when_explicit(self, run):
        manifest = _pod([
            {"name": "a", "image": "app:1.0.0", "securityContext": {"allowPrivilegeEscalation": True}},
            {"name": "b", "image": "app:1.0.0", "securityContext": {"privileged": True}},
            {"name": "c", "image": "app:1.0.0", "securityContext": {"runAsNonRoot": True}},
        ])
        violations = run("security-no-privilege-escalation", manifest)
        assert [v.resource_path for v in violations] == [
            "spec.containers[0].securityContext.allowPrivilegeEscalation",
            "spec.containers[1].securityContext.privileged",
        ]


class TestLabelRules:

    def test_missing_labels_sorted(self, run):
        manifest = parse_manifest({"kind": "Pod", "metadata": {"name": "x", "labels": {"team": "pe"}}, "spec": {}})
        violations = run("labels-required", manifest)
        assert [v.message for v in violations] == [
            "Missing required label 'app.kubernetes.io/instance'",
            "Missing required label 'app.kubernetes.io/name'",
            "Missing required label 'app.kubernetes.io/version'",
            "Missing required label 'environment'",
        ]

    def test_empty_label_value(self, run):
        config = parse_config({"requiredLabels": ["team"]})
        manifest = parse_manifest({"kind": "Pod", "metadata": {"name": "x", "labels": {"team": " "}}, "spec": {}})
        violations = run("labels-required", manifest, config=config)
        assert [v.message for v in violations] == ["Required label 'team' is empty"]

    @pytest.mark.parametrize("name,valid", [
        ("pe-eng-petclinic-dev", True),
        ("team-app-prod", True),
        ("myapp", False),
        ("team-app", False),
        ("Team-App-Prod", False),
        ("team-app-prod-", False),
    ])
    def test_naming_convention(self, run, name, valid):
        violations = run("naming-convention", _pod([], name=name))
        assert (violations == []) == valid

    def test_default_namespace(self, run):
        violations = run("namespace-not-default", _pod([], namespace="default"))
        assert len(violations) == 1
        assert violations[0].severity == Severity.WARNING


class TestObservabilityRules:

    def test_missing_annotations(self, run):
        violations = run("observability-prometheus-annotations", _pod([]))
        assert len(violations) == 2

    def test_non_numeric_port(self, run):
        manifest = parse_manifest({"kind": "Pod", "metadata": {"name": "x", "annotations": {
            "prometheus.io/scrape": "true", "prometheus.io/port": "http",
        }}, "spec": {}})
        violations = run("observability-prometheus-annotations", manifest)
        assert len(violations) == 1
        assert "must be a port number" in violations[0].message

    def test_log_shipper_sidecar(self, run):
        without = _pod([{"name": "app", "image": "app:1.0.0"}])
        with_shipper = _pod([{"name": "app", "image": "app:1.0.0"}, {"name": "fluent-bit", "image": "fb:2.2.0"}])
        assert len(run("observability-log-shipper", without)) == 1
        assert run("observability-log-shipper", with_shipper) == []

    def test_native_sidecar_log_shipper(self, run, compliant_document):
        """Test that a log shipper running as an init container with restartPolicy Always is found"""
        pod_spec = compliant_document["spec"]["template"]["spec"]
        shipper = pod_spec["containers"].pop(1)
        pod_spec["initContainers"] = [dict(shipper, restartPolicy="Always")]
        assert run("observability-log-shipper", parse_manifest(compliant_document)) == []

    def test_one_shot_init_container_is_not_a_log_shipper(self, run):
        manifest = parse_manifest({"kind": "Pod", "metadata": {"name": "x"}, "spec": {
            "containers": [{"name": "app", "image": "app:1.0.0"}],
            "initContainers": [{"name": "fluent-bit", "image": "fb:2.2.0"}],
        }})
        assert len(run("observability-log-shipper", manifest)) == 1


class TestProbeRules:

    def test_missing_probes(self, run):
        violations = run("probes-required", _pod([{"name": "app", "image": "app:1.0.0"}]))
        assert [v.resource_path for v in violations] == [
            "spec.containers[0].livenessProbe",
            "spec.containers[0].readinessProbe",
        ]

    def test_init_containers_exempt(self, run):
        manifest = parse_manifest({"kind": "Pod", "metadata": {"name": "x"}, "spec": {
            "containers": [],
            "initContainers": [{"name": "migrate", "image": "migrate:1.0.0"}],
        }})
        assert run("probes-required", manifest) == []

    def test_timing_outside_bounds(self, run):
        manifest = _pod([{"name": "app", "image": "app:1.0.0", "livenessProbe": {
            "httpGet": {"path": "/healthz", "port": 8080},
            "initialDelaySeconds": 0,
            "periodSeconds": 120,
        }}])
        violations = run("probes-timing", manifest)
        assert [v.resource_path for v in violations] == [
            "spec.containers[0].livenessProbe.initialDelaySeconds",
            "spec.containers[0].livenessProbe.periodSeconds",
        ]
        assert "outside the recommended range 10-300" in violations[0].message

    def test_kubernetes_defaults_apply(self, run):
        """Test that unset readiness timing falls back to Kubernetes defaults, which are in range"""
        manifest = _pod([{"name": "app", "image": "app:1.0.0", "readinessProbe": {"tcpSocket": {"port": 8080}}}])
        assert run("probes-timing", manifest) == []


class TestCheckerErrors:

    def test_checker_error_class_carries_reason(self):
        error = CheckerUnreachable("signature-verifier", "connection refused")
        assert error.reason == "unreachable"
        assert error.checker == "signature-verifier"

    def test_check_skipped_origin_follows_checker_outcome(self):
        """Test that a missing checker is advisory while a failing one is tagged as a checker failure"""
        rule = build_registry(PolicyConfig()).get("image-signature-verified")
        missing = rule.check_skipped("spec.containers[0].image", CheckerNotConfigured("signature-verifier"), "image 'a'")
        broken = rule.check_skipped("spec.containers[0].image", CheckerUnreachable("signature-verifier", "refused"), "image 'a'")

        assert missing.origin == ViolationOrigin.CHECK_SKIPPED
        assert broken.origin == ViolationOrigin.CHECKER_FAILURE
        assert missing.severity == broken.severity == Severity.WARNING

    def test_signature_verifier_called_per_container(self, run):
        verifier = Mock(return_value=True)
        checkers = ExternalCheckers(signature_verifier=verifier)
        try:
            manifest = _pod([
                {"name": "a", "image": "registry.bank.internal/app:1.0.0"},
                {"name": "b", "image": "registry.bank.internal/sidecar:2.0.0"},
            ])
            assert run("image-signature-verified", manifest, rule_checkers=checkers) == []
        finally:
            checkers.close()

        assert verifier.call_count == 2
        assert verifier.call_args_list[1].args[0].repository == "sidecar"

    def test_checker_metrics_recorded(self, run):
        checkers = ExternalCheckers(signature_verifier=Mock(return_value=False))
        try:
            with patch('kure_gate.services.checkers.CHECKER_CALLS_TOTAL') as calls_total:
                run("image-signature-verified", _pod([{"name": "a", "image": "app:1.0.0"}]), rule_checkers=checkers)
        finally:
            checkers.close()

        calls_total.labels.assert_called_once_with(checker="signature-verifier", outcome="ok")
