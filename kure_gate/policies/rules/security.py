"""Pod security baseline rules.

runAsNonRoot, runAsUser and the seccomp profile inherit from the pod-level
securityContext when the container leaves them unset; the remaining fields
are container-only.
"""
from typing import List

from kure_gate.config.config import PolicyConfig
from kure_gate.models.models import ContainerSpec, Manifest, Severity
from kure_gate.policies.rule import Rule

CATEGORY = "Pod Security"

RUNTIME_DEFAULT = "RuntimeDefault"


def effective(manifest: Manifest, container: ContainerSpec, field: str):
    """Container value, falling back to the pod security context"""
    if container.security_context is not None:
        value = getattr(container.security_context, field)
        if value is not None:
            return value
    if manifest.pod_security_context is not None:
        return getattr(manifest.pod_security_context, field)
    return None


def security_rules(config: PolicyConfig) -> List[Rule]:
    dangerous = config.dangerous_capabilities

    def check_non_root(rule, manifest, checkers):
        for i, container in enumerate(manifest.containers):
            sec_path = f"{container.path}.securityContext"
            if effective(manifest, container, 'run_as_user') == 0:
                yield rule.violation(
                    f"{sec_path}.runAsUser",
                    f"Container '{container.name}' explicitly runs as root (runAsUser: 0)",
                    container_index=i)
            elif effective(manifest, container, 'run_as_non_root') is not True:
                yield rule.violation(
                    f"{sec_path}.runAsNonRoot",
                    f"Container '{container.name}' does not set runAsNonRoot: true",
                    container_index=i)

    def check_seccomp(rule, manifest, checkers):
        for i, container in enumerate(manifest.containers):
            profile = effective(manifest, container, 'seccomp_profile_type')
            if profile != RUNTIME_DEFAULT:
                yield rule.violation(
                    f"{container.path}.securityContext.seccompProfile.type",
                    f"Container '{container.name}' seccomp profile is {profile or 'unset'}, expected {RUNTIME_DEFAULT}",
                    container_index=i)

    def check_read_only_root(rule, manifest, checkers):
        for i, container in enumerate(manifest.containers):
            sec_ctx = container.security_context
            if not sec_ctx or sec_ctx.read_only_root_filesystem is not True:
                yield rule.violation(
                    f"{container.path}.securityContext.readOnlyRootFilesystem",
                    f"Container '{container.name}' has a writable root filesystem",
                    container_index=i)

    def check_drop_all(rule, manifest, checkers):
        for i, container in enumerate(manifest.containers):
            sec_ctx = container.security_context
            dropped = {c.upper() for c in sec_ctx.capabilities_drop} if sec_ctx else set()
            if dropped != {'ALL'}:
                shown = ', '.join(sorted(dropped)) or 'nothing'
                yield rule.violation(
                    f"{container.path}.securityContext.capabilities.drop",
                    f"Container '{container.name}' drops {shown} instead of exactly [ALL]",
                    container_index=i)

    def check_added(rule, manifest, checkers):
        for i, container in enumerate(manifest.containers):
            sec_ctx = container.security_context
            if not sec_ctx or not sec_ctx.capabilities_add:
                continue
            added = sorted(sec_ctx.capabilities_add)
            risky = [c for c in added if c.upper() in dangerous]
            message = f"Container '{container.name}' adds capabilities: {', '.join(added)}"
            if risky:
                message += f" (dangerous: {', '.join(risky)})"
            yield rule.violation(
                f"{container.path}.securityContext.capabilities.add",
                message,
                container_index=i)

    def check_escalation(rule, manifest, checkers):
        for i, container in enumerate(manifest.containers):
            sec_ctx = container.security_context
            if sec_ctx is None:
                continue
            sec_path = f"{container.path}.securityContext"
            if sec_ctx.privileged is True:
                yield rule.violation(
                    f"{sec_path}.privileged",
                    f"Container '{container.name}' is running in privileged mode",
                    container_index=i,
                    remediation="Remove 'privileged: true' from the container's securityContext. Use specific capabilities if needed.")
            if sec_ctx.allow_privilege_escalation is True:
                yield rule.violation(
                    f"{sec_path}.allowPrivilegeEscalation",
                    f"Container '{container.name}' allows privilege escalation",
                    container_index=i)

    return [
        Rule(
            id="security-run-as-non-root",
            title="Require Non-Root User",
            severity=Severity.ERROR,
            category=CATEGORY,
            description="Containers must run as a non-root user.",
            remediation="Set 'runAsNonRoot: true' and a non-zero 'runAsUser' in the container's or pod's securityContext.",
            check=check_non_root,
        ),
        Rule(
            id="security-seccomp-runtime-default",
            title="Require RuntimeDefault Seccomp Profile",
            severity=Severity.ERROR,
            category=CATEGORY,
            description="Containers must use the RuntimeDefault seccomp profile to restrict system calls.",
            remediation="Set 'seccompProfile: {type: RuntimeDefault}' in the container's or pod's securityContext.",
            check=check_seccomp,
        ),
        Rule(
            id="security-read-only-root-fs",
            title="Require Read-Only Root Filesystem",
            severity=Severity.ERROR,
            category=CATEGORY,
            description="Containers must mount their root filesystem read-only.",
            remediation="Set 'readOnlyRootFilesystem: true' and use emptyDir or volumes for writable paths.",
            check=check_read_only_root,
        ),
        Rule(
            id="security-drop-all-capabilities",
            title="Require Drop All Capabilities",
            severity=Severity.ERROR,
            category=CATEGORY,
            description="Containers must drop all Linux capabilities.",
            remediation="Add 'drop: [\"ALL\"]' to capabilities and only add back specific needed capabilities.",
            check=check_drop_all,
        ),
        Rule(
            id="security-capabilities-added",
            title="Report Added Capabilities",
            severity=Severity.INFO,
            category=CATEGORY,
            description="Capabilities added back on top of drop ALL are reported for review.",
            remediation="Only NET_BIND_SERVICE is allowed in the Restricted policy; remove anything else.",
            check=check_added,
        ),
        Rule(
            id="security-no-privilege-escalation",
            title="Disallow Privileged Containers and Privilege Escalation",
            severity=Severity.ERROR,
            category=CATEGORY,
            description="Containers must not run privileged or allow privilege escalation.",
            remediation="Set 'allowPrivilegeEscalation: false' in the container's securityContext.",
            check=check_escalation,
        ),
    ]
