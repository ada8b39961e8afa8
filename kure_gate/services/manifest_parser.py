"""Workload document parsing.

Turns raw Kubernetes-style documents (already loaded mappings, or YAML/JSON
text) into immutable ``Manifest`` objects. Missing optional fields are not
errors; rules decide what absence means. Only structurally invalid input
raises ``ParseError``.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from kure_gate.errors import ParseError
from kure_gate.models.models import (
    ContainerPort, ContainerSpec, Manifest, Probe,
    ResourceQuantities, ResourceRequirements, SecurityContext,
)

logger = logging.getLogger(__name__)

# Kinds carrying a pod template, mapped to the path of their pod spec
POD_SPEC_PATHS = {
    'Pod': ('spec',),
    'Deployment': ('spec', 'template', 'spec'),
    'StatefulSet': ('spec', 'template', 'spec'),
    'DaemonSet': ('spec', 'template', 'spec'),
    'ReplicaSet': ('spec', 'template', 'spec'),
    'Job': ('spec', 'template', 'spec'),
    'CronJob': ('spec', 'jobTemplate', 'spec', 'template', 'spec'),
}

WORKLOAD_KINDS = frozenset(POD_SPEC_PATHS)

PROBE_HANDLERS = ('httpGet', 'tcpSocket', 'grpc', 'exec')


def _expect_mapping(value, path: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ParseError(f"expected a mapping, got {type(value).__name__}", path)
    return value


def _expect_list(value, path: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ParseError(f"expected a list, got {type(value).__name__}", path)
    return value


def _expect_str(value, path: str, default: Optional[str] = None) -> Optional[str]:
    if value is None:
        return default
    if not isinstance(value, str):
        raise ParseError(f"expected a string, got {type(value).__name__}", path)
    return value


def _expect_bool(value, path: str) -> Optional[bool]:
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ParseError(f"expected a boolean, got {type(value).__name__}", path)
    return value


def _expect_int(value, path: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParseError(f"expected an integer, got {type(value).__name__}", path)
    return value


def _string_map(value, path: str) -> Dict[str, str]:
    """Labels and annotations: keys are strings, scalar values are stringified"""
    result = {}
    for key, item in _expect_mapping(value, path).items():
        if not isinstance(key, str):
            raise ParseError(f"expected string keys, got {type(key).__name__}", path)
        if isinstance(item, (dict, list)):
            raise ParseError(f"expected a scalar value for '{key}'", path)
        result[key] = "" if item is None else str(item)
    return result


def _quantity(value, path: str) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ParseError(f"expected a resource quantity, got {type(value).__name__}", path)
    return str(value)


def _parse_resources(raw, path: str) -> ResourceRequirements:
    raw = _expect_mapping(raw, path)
    sections = {}
    for section in ('requests', 'limits'):
        values = _expect_mapping(raw.get(section), f"{path}.{section}")
        sections[section] = ResourceQuantities(
            cpu=_quantity(values.get('cpu'), f"{path}.{section}.cpu"),
            memory=_quantity(values.get('memory'), f"{path}.{section}.memory"),
        )
    return ResourceRequirements(**sections)


def _parse_capability_list(raw, path: str) -> frozenset:
    items = _expect_list(raw, path)
    for i, item in enumerate(items):
        if not isinstance(item, str):
            raise ParseError("expected a capability name", f"{path}[{i}]")
    return frozenset(items)


def _parse_security_context(raw, path: str) -> Optional[SecurityContext]:
    if raw is None:
        return None
    raw = _expect_mapping(raw, path)
    seccomp = _expect_mapping(raw.get('seccompProfile'), f"{path}.seccompProfile")
    capabilities = _expect_mapping(raw.get('capabilities'), f"{path}.capabilities")
    return SecurityContext(
        run_as_non_root=_expect_bool(raw.get('runAsNonRoot'), f"{path}.runAsNonRoot"),
        run_as_user=_expect_int(raw.get('runAsUser'), f"{path}.runAsUser"),
        seccomp_profile_type=_expect_str(seccomp.get('type'), f"{path}.seccompProfile.type"),
        read_only_root_filesystem=_expect_bool(raw.get('readOnlyRootFilesystem'), f"{path}.readOnlyRootFilesystem"),
        capabilities_drop=_parse_capability_list(capabilities.get('drop'), f"{path}.capabilities.drop"),
        capabilities_add=_parse_capability_list(capabilities.get('add'), f"{path}.capabilities.add"),
        allow_privilege_escalation=_expect_bool(raw.get('allowPrivilegeEscalation'), f"{path}.allowPrivilegeEscalation"),
        privileged=_expect_bool(raw.get('privileged'), f"{path}.privileged"),
    )


def _parse_probe(raw, path: str) -> Optional[Probe]:
    if raw is None:
        return None
    raw = _expect_mapping(raw, path)
    fields = {}
    handler = next((h for h in PROBE_HANDLERS if h in raw), None)
    fields['handler'] = handler or 'none'
    if handler in ('httpGet', 'tcpSocket', 'grpc'):
        action = _expect_mapping(raw.get(handler), f"{path}.{handler}")
        fields['path'] = _expect_str(action.get('path'), f"{path}.{handler}.path")
        port = action.get('port')
        if port is not None and (isinstance(port, bool) or not isinstance(port, (int, str))):
            raise ParseError("expected a port number or name", f"{path}.{handler}.port")
        fields['port'] = port
    for key, field in (('initialDelaySeconds', 'initial_delay_seconds'),
                       ('periodSeconds', 'period_seconds'),
                       ('timeoutSeconds', 'timeout_seconds'),
                       ('failureThreshold', 'failure_threshold'),
                       ('successThreshold', 'success_threshold')):
        value = _expect_int(raw.get(key), f"{path}.{key}")
        if value is not None:
            fields[field] = value
    return Probe(**fields)


def _parse_ports(raw, path: str) -> List[ContainerPort]:
    ports = []
    for i, item in enumerate(_expect_list(raw, path)):
        item_path = f"{path}[{i}]"
        item = _expect_mapping(item, item_path)
        container_port = _expect_int(item.get('containerPort'), f"{item_path}.containerPort")
        if container_port is None:
            raise ParseError("containerPort is required", item_path)
        ports.append(ContainerPort(
            container_port=container_port,
            name=_expect_str(item.get('name'), f"{item_path}.name"),
        ))
    return ports


def _parse_env(raw, path: str) -> Dict[str, str]:
    env = {}
    for i, item in enumerate(_expect_list(raw, path)):
        item_path = f"{path}[{i}]"
        item = _expect_mapping(item, item_path)
        name = _expect_str(item.get('name'), f"{item_path}.name")
        if not name:
            raise ParseError("environment variable name is required", item_path)
        value = item.get('value')
        # valueFrom references resolve at runtime; only the name is known here
        env[name] = "" if value is None else str(value)
    return env


def _parse_container(raw, path: str, is_init: bool) -> ContainerSpec:
    raw = _expect_mapping(raw, path)
    return ContainerSpec(
        name=_expect_str(raw.get('name'), f"{path}.name", default=""),
        image=_expect_str(raw.get('image'), f"{path}.image", default=""),
        path=path,
        is_init=is_init,
        resources=_parse_resources(raw.get('resources'), f"{path}.resources"),
        security_context=_parse_security_context(raw.get('securityContext'), f"{path}.securityContext"),
        ports=_parse_ports(raw.get('ports'), f"{path}.ports"),
        liveness_probe=_parse_probe(raw.get('livenessProbe'), f"{path}.livenessProbe"),
        readiness_probe=_parse_probe(raw.get('readinessProbe'), f"{path}.readinessProbe"),
        startup_probe=_parse_probe(raw.get('startupProbe'), f"{path}.startupProbe"),
        env=_parse_env(raw.get('env'), f"{path}.env"),
        restart_policy=_expect_str(raw.get('restartPolicy'), f"{path}.restartPolicy"),
    )


def _walk(document: Dict[str, Any], keys: Tuple[str, ...]) -> Tuple[Dict[str, Any], str]:
    node = document
    walked = []
    for key in keys:
        walked.append(key)
        node = _expect_mapping(node.get(key), '.'.join(walked))
    return node, '.'.join(keys)


def parse_manifest(document: Any) -> Manifest:
    """Parse one workload document into a Manifest.

    Raises ParseError when the document is not a mapping, has no string
    ``kind`` or carries a field of the wrong type.
    """
    if not isinstance(document, dict):
        raise ParseError(f"document must be a mapping, got {type(document).__name__}")

    kind = document.get('kind')
    if not isinstance(kind, str) or not kind:
        raise ParseError("document has no 'kind'", "kind")

    metadata = _expect_mapping(document.get('metadata'), 'metadata')
    labels = _string_map(metadata.get('labels'), 'metadata.labels')
    annotations = _string_map(metadata.get('annotations'), 'metadata.annotations')

    containers = []
    pod_security_context = None
    pod_spec_path = 'spec'
    if kind in POD_SPEC_PATHS:
        spec_keys = POD_SPEC_PATHS[kind]
        pod_spec, pod_spec_path = _walk(document, spec_keys)
        if len(spec_keys) > 1:
            # Pod template metadata: template values win over the owner's
            template_meta, _ = _walk(document, spec_keys[:-1] + ('metadata',))
            labels.update(_string_map(template_meta.get('labels'), f"{'.'.join(spec_keys[:-1])}.metadata.labels"))
            annotations.update(_string_map(template_meta.get('annotations'), f"{'.'.join(spec_keys[:-1])}.metadata.annotations"))

        for field, is_init in (('containers', False), ('initContainers', True)):
            for i, raw in enumerate(_expect_list(pod_spec.get(field), f"{pod_spec_path}.{field}")):
                containers.append(_parse_container(raw, f"{pod_spec_path}.{field}[{i}]", is_init))
        pod_security_context = _parse_security_context(
            pod_spec.get('securityContext'), f"{pod_spec_path}.securityContext")

    try:
        return Manifest(
            kind=kind,
            namespace=_expect_str(metadata.get('namespace'), 'metadata.namespace') or 'default',
            name=_expect_str(metadata.get('name'), 'metadata.name', default=''),
            labels=labels,
            annotations=annotations,
            containers=containers,
            pod_security_context=pod_security_context,
            pod_spec_path=pod_spec_path,
        )
    except ValidationError as e:
        raise ParseError(f"invalid manifest: {e}")


def parse_documents(text: str, source: str = "") -> List[Tuple[str, Any]]:
    """Load a YAML (or JSON) multi-document stream.

    Returns (label, document) pairs in stream order. Empty documents are
    dropped and ``kind: List`` wrappers are expanded into their items.
    Documents are not validated here; ``parse_manifest`` does that per
    document so one bad document never hides the others.
    """
    try:
        loaded = list(yaml.safe_load_all(text))
    except yaml.YAMLError as e:
        raise ParseError(f"invalid YAML: {e}", source)

    documents = []
    for doc in loaded:
        if doc is None:
            continue
        if isinstance(doc, dict) and doc.get('kind') == 'List' and isinstance(doc.get('items'), list):
            documents.extend(doc['items'])
        else:
            documents.append(doc)

    prefix = source or "<input>"
    logger.debug(f"Loaded {len(documents)} document(s) from {prefix}")
    return [(f"{prefix}#{i}", doc) for i, doc in enumerate(documents)]
