class KureGateError(Exception):
    """Base class for all errors raised by the policy evaluator"""


class ParseError(KureGateError):
    """A workload document is structurally invalid"""

    def __init__(self, message: str, path: str = ""):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class ImageReferenceError(KureGateError):
    """A container image string cannot be parsed into an image reference"""


class ConfigurationError(KureGateError):
    """Policy configuration is invalid. Aborts the run before any evaluation."""


class DuplicateRuleId(ConfigurationError):
    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Rule '{rule_id}' is already registered")


class UnknownRuleId(KureGateError):
    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Rule '{rule_id}' is not registered")


class CheckerError(KureGateError):
    """An external checker could not produce an answer"""

    reason = "error"

    def __init__(self, checker: str, message: str = ""):
        self.checker = checker
        super().__init__(f"{checker}: {message or self.reason}")


class CheckerTimeout(CheckerError):
    reason = "timed out"


class CheckerUnreachable(CheckerError):
    reason = "unreachable"


class CheckerUnauthorized(CheckerError):
    reason = "unauthorized"


class CheckerNotFound(CheckerError):
    reason = "not found"


class CheckerNotConfigured(CheckerError):
    reason = "no checker configured"
