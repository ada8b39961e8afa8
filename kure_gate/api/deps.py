from dataclasses import dataclass

from kure_gate.services.evaluator import PolicyEvaluator


@dataclass
class RouterDeps:
    """Shared dependencies injected into all route modules."""
    evaluator: PolicyEvaluator
