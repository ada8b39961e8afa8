import copy

import pytest
from httpx import ASGITransport, AsyncClient

from kure_gate.config.config import PolicyConfig
from kure_gate.core.app import create_app
from kure_gate.services.checkers import ExternalCheckers
from kure_gate.services.evaluator import PolicyEvaluator

DIGEST = "a" * 64

HARDENED_SECURITY_CONTEXT = {
    "runAsNonRoot": True,
    "runAsUser": 10001,
    "seccompProfile": {"type": "RuntimeDefault"},
    "readOnlyRootFilesystem": True,
    "allowPrivilegeEscalation": False,
    "capabilities": {"drop": ["ALL"]},
}

RESOURCES = {
    "requests": {"cpu": "250m", "memory": "256Mi"},
    "limits": {"cpu": "500m", "memory": "512Mi"},
}


def _container(name, image, port):
    return {
        "name": name,
        "image": image,
        "ports": [{"containerPort": port, "name": "http"}],
        "resources": copy.deepcopy(RESOURCES),
        "securityContext": copy.deepcopy(HARDENED_SECURITY_CONTEXT),
        "livenessProbe": {
            "httpGet": {"path": "/healthz", "port": port},
            "initialDelaySeconds": 30,
            "periodSeconds": 10,
            "timeoutSeconds": 2,
            "failureThreshold": 3,
        },
        "readinessProbe": {
            "httpGet": {"path": "/ready", "port": port},
            "initialDelaySeconds": 5,
            "periodSeconds": 10,
            "timeoutSeconds": 2,
            "failureThreshold": 3,
        },
    }


@pytest.fixture
def compliant_document():
    """Deployment satisfying every rule of the default configuration"""
    labels = {
        "app.kubernetes.io/name": "petclinic",
        "app.kubernetes.io/instance": "petclinic-dev",
        "app.kubernetes.io/version": "1.4.2",
        "team": "pe-eng",
        "environment": "dev",
    }
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "pe-eng-petclinic-dev", "namespace": "dev", "labels": dict(labels)},
        "spec": {
            "replicas": 2,
            "template": {
                "metadata": {
                    "labels": dict(labels),
                    "annotations": {"prometheus.io/scrape": "true", "prometheus.io/port": "8080"},
                },
                "spec": {
                    "containers": [
                        _container("petclinic", f"registry.bank.internal/petclinic:1.4.2@sha256:{DIGEST}", 8080),
                        _container("promtail", f"registry.bank.internal/promtail:2.9.0@sha256:{DIGEST}", 9080),
                    ],
                },
            },
        },
    }


@pytest.fixture
def negative_document():
    """Bare Deployment breaking every hardening rule"""
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "myapp", "namespace": "dev"},
        "spec": {
            "template": {
                "spec": {"containers": [{"name": "petclinic", "image": "petclinic:latest"}]},
            },
        },
    }


@pytest.fixture
def config():
    return PolicyConfig()


@pytest.fixture
def checkers():
    checkers = ExternalCheckers(timeout_seconds=1.0)
    yield checkers
    checkers.close()


@pytest.fixture
def evaluator(config):
    evaluator = PolicyEvaluator(config)
    yield evaluator
    evaluator.close()


@pytest.fixture
def app():
    """Create test app with the default policy configuration"""
    return create_app(PolicyConfig())


@pytest.fixture
async def client(app):
    """Create test client"""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
