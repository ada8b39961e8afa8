"""External checker capability interface.

Rules that need facts the manifest cannot provide (registry allow-list
resolution, signature verification, digest resolution) call through
``ExternalCheckers``. The host supplies plain callables; every call runs on a
worker thread and is bounded by a timeout so a slow registry never blocks a
batch. Failures surface as ``CheckerError`` subclasses which rules downgrade
to Warning violations.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Callable, FrozenSet, Iterable, Optional

from kure_gate.errors import (
    CheckerError, CheckerNotConfigured, CheckerNotFound,
    CheckerTimeout, CheckerUnauthorized, CheckerUnreachable,
)
from kure_gate.services.image_reference import ImageReference
from kure_gate.services.prometheus_metrics import CHECKER_CALLS_TOTAL

logger = logging.getLogger(__name__)

REGISTRY_ALLOW_LIST = "registry-allow-list"
SIGNATURE_VERIFIER = "signature-verifier"
DIGEST_RESOLVER = "digest-resolver"


def _translate(checker: str, exc: Exception) -> CheckerError:
    """Map an exception raised by host checker code onto the checker taxonomy"""
    if isinstance(exc, CheckerError):
        return exc
    if isinstance(exc, TimeoutError):
        return CheckerTimeout(checker, str(exc))
    if isinstance(exc, PermissionError):
        return CheckerUnauthorized(checker, str(exc))
    if isinstance(exc, (LookupError, FileNotFoundError)):
        return CheckerNotFound(checker, str(exc))
    return CheckerUnreachable(checker, f"{type(exc).__name__}: {exc}")


class ExternalCheckers:
    """Capability set handed to every rule.

    Any capability may be None; rules depending on a missing capability
    report a "check skipped" Warning instead of passing silently.
    """

    def __init__(self,
                 registry_allow_list: Optional[Callable[[], Iterable[str]]] = None,
                 signature_verifier: Optional[Callable[[ImageReference], bool]] = None,
                 digest_resolver: Optional[Callable[[ImageReference], str]] = None,
                 timeout_seconds: float = 5.0,
                 max_workers: int = 4):
        self._registry_allow_list = registry_allow_list
        self._signature_verifier = signature_verifier
        self._digest_resolver = digest_resolver
        self.timeout_seconds = timeout_seconds
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="kure-gate-checker")

    @property
    def has_registry_allow_list(self) -> bool:
        return self._registry_allow_list is not None

    @property
    def has_signature_verifier(self) -> bool:
        return self._signature_verifier is not None

    @property
    def has_digest_resolver(self) -> bool:
        return self._digest_resolver is not None

    def _call(self, checker: str, fn: Optional[Callable], *args):
        if fn is None:
            CHECKER_CALLS_TOTAL.labels(checker=checker, outcome="not_configured").inc()
            raise CheckerNotConfigured(checker)
        future = self._executor.submit(fn, *args)
        try:
            result = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            # The worker keeps running; its result is discarded
            future.cancel()
            CHECKER_CALLS_TOTAL.labels(checker=checker, outcome="timeout").inc()
            logger.warning(f"Checker {checker} timed out after {self.timeout_seconds}s")
            raise CheckerTimeout(checker, f"no answer within {self.timeout_seconds}s")
        except Exception as e:
            error = _translate(checker, e)
            CHECKER_CALLS_TOTAL.labels(checker=checker, outcome="error").inc()
            logger.warning(f"Checker {checker} failed: {error}")
            if error is e:
                raise
            raise error from e

        CHECKER_CALLS_TOTAL.labels(checker=checker, outcome="ok").inc()
        return result

    def resolve_registry_allow_list(self) -> FrozenSet[str]:
        return frozenset(self._call(REGISTRY_ALLOW_LIST, self._registry_allow_list) or ())

    def verify_signature(self, image: ImageReference) -> bool:
        return bool(self._call(SIGNATURE_VERIFIER, self._signature_verifier, image))

    def resolve_digest(self, image: ImageReference) -> str:
        digest = self._call(DIGEST_RESOLVER, self._digest_resolver, image)
        if not digest:
            raise CheckerNotFound(DIGEST_RESOLVER, f"no digest for {image}")
        digest = str(digest)
        return digest[len("sha256:"):] if digest.startswith("sha256:") else digest

    def close(self):
        self._executor.shutdown(wait=False)
