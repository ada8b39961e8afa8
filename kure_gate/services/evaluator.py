"""Policy evaluation.

``evaluate`` runs every enabled, applicable rule against one manifest and
folds the results into a Verdict. Violations are ordered by rule
registration order, then container index, whatever order the rules ran in.
A failing rule never aborts the pass: its exception becomes an Error
violation tagged as an internal error.

``PolicyEvaluator`` owns the configuration, the registry and the external
checkers, and evaluates batches of documents concurrently.
"""
import asyncio
import logging
import traceback
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional, Sequence, Tuple

from kure_gate.config.config import PolicyConfig
from kure_gate.errors import CheckerError, ParseError
from kure_gate.models.models import (
    BatchReport, DocumentResult, Manifest, Severity,
    Verdict, Violation, ViolationOrigin,
)
from kure_gate.policies.catalog import build_registry
from kure_gate.policies.registry import RuleRegistry
from kure_gate.policies.rule import Rule
from kure_gate.services.checkers import ExternalCheckers
from kure_gate.services.manifest_parser import parse_documents, parse_manifest
from kure_gate.services.prometheus_metrics import (
    EVALUATION_DURATION_SECONDS, MANIFESTS_EVALUATED_TOTAL, PARSE_ERRORS_TOTAL,
    RULE_INTERNAL_ERRORS_TOTAL, VIOLATIONS_TOTAL,
)

logger = logging.getLogger(__name__)

# Capability-less checkers shared by every evaluate() call that passes none
_NO_CHECKERS = ExternalCheckers()


def _container_order(violation: Violation) -> int:
    return -1 if violation.container_index is None else violation.container_index


def run_rule(rule: Rule, manifest: Manifest, checkers: ExternalCheckers) -> List[Violation]:
    """Run one rule, converting any failure into a violation"""
    try:
        violations = rule.evaluate(manifest, checkers)
    except CheckerError as e:
        logger.warning(f"Rule {rule.id} could not complete a checker call for {manifest.identity}: {e}")
        return [rule.check_skipped(manifest.pod_spec_path, e, f"{manifest.kind} '{manifest.name}'")]
    except Exception as e:
        logger.error(f"Rule {rule.id} failed on {manifest.identity}: {e}")
        logger.error(f"Traceback for rule {rule.id}:\n{traceback.format_exc()}")
        RULE_INTERNAL_ERRORS_TOTAL.labels(rule_id=rule.id).inc()
        return [Violation(
            rule_id=f"{rule.id}-internal-error",
            severity=Severity.ERROR,
            resource_path=manifest.pod_spec_path,
            message=f"Rule '{rule.id}' failed with {type(e).__name__}: {e}",
            remediation_hint="This is a defect in the evaluator, not a policy failure of the manifest.",
            origin=ViolationOrigin.INTERNAL_ERROR,
        )]
    # Stable sort keeps each rule's own emission order per container
    return sorted(violations, key=_container_order)


def evaluate(manifest: Manifest, registry: RuleRegistry,
             checkers: Optional[ExternalCheckers] = None,
             rule_workers: int = 1) -> Verdict:
    """Evaluate one manifest against the enabled, applicable rules"""
    checkers = checkers or _NO_CHECKERS
    total = len(registry)
    rules = registry.rules_for(manifest.kind, manifest.namespace)

    with EVALUATION_DURATION_SECONDS.time():
        if rule_workers > 1 and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=rule_workers, thread_name_prefix="kure-gate-rule") as pool:
                # map() yields in submission order, which is registration order
                results = list(pool.map(lambda rule: run_rule(rule, manifest, checkers), rules))
        else:
            results = [run_rule(rule, manifest, checkers) for rule in rules]

    violations = [v for found in results for v in found]
    passed = not any(v.severity == Severity.ERROR for v in violations)

    MANIFESTS_EVALUATED_TOTAL.labels(result="passed" if passed else "failed").inc()
    for v in violations:
        VIOLATIONS_TOTAL.labels(rule_id=v.rule_id, severity=v.severity.value).inc()

    logger.debug(f"Evaluated {manifest.identity}: {len(rules)} rules, {len(violations)} violations, passed={passed}")
    return Verdict(
        manifest_identity=manifest.identity,
        violations=violations,
        passed=passed,
        evaluated_rule_count=len(rules),
        skipped_rule_count=total - len(rules),
    )


class PolicyEvaluator:
    """Configuration, rule registry and checkers for repeated evaluations.

    ``reload`` swaps configuration and registry together in a single
    assignment; an in-flight batch keeps the snapshot it started with.
    The active ``checker_timeout_seconds`` bounds every checker call,
    including calls to host-supplied checkers.
    """

    def __init__(self, config: Optional[PolicyConfig] = None,
                 checkers: Optional[ExternalCheckers] = None,
                 registry: Optional[RuleRegistry] = None):
        config = config or PolicyConfig()
        self._state: Tuple[PolicyConfig, RuleRegistry] = (config, registry or build_registry(config))
        self.checkers = checkers or ExternalCheckers()
        self.checkers.timeout_seconds = config.checker_timeout_seconds

    @property
    def config(self) -> PolicyConfig:
        return self._state[0]

    @property
    def registry(self) -> RuleRegistry:
        return self._state[1]

    def reload(self, config: PolicyConfig) -> None:
        """Replace configuration and registry; raises ConfigurationError and keeps the old state on failure"""
        registry = build_registry(config)
        self._state = (config, registry)
        self.checkers.timeout_seconds = config.checker_timeout_seconds
        logger.info(f"Reloaded policy configuration ({len(registry)} rules)")

    def evaluate_manifest(self, manifest: Manifest) -> Verdict:
        config, registry = self._state
        return evaluate(manifest, registry, self.checkers, config.rule_workers)

    def _evaluate_document(self, config: PolicyConfig, registry: RuleRegistry,
                           index: int, source: str, document: Any) -> DocumentResult:
        try:
            manifest = parse_manifest(document)
        except ParseError as e:
            PARSE_ERRORS_TOTAL.inc()
            logger.warning(f"Skipping document {source or index}: {e}")
            return DocumentResult(index=index, source=source, parse_error=str(e))
        verdict = evaluate(manifest, registry, self.checkers, config.rule_workers)
        return DocumentResult(index=index, source=source, verdict=verdict)

    async def evaluate_documents(self, documents: Sequence[Any],
                                 sources: Optional[Sequence[str]] = None) -> BatchReport:
        """Evaluate raw documents concurrently; results keep input order"""
        config, registry = self._state
        registry = registry.snapshot()
        sources = list(sources) if sources is not None else [f"document#{i}" for i in range(len(documents))]
        semaphore = asyncio.Semaphore(config.concurrency)

        async def run(index: int, source: str, document: Any) -> DocumentResult:
            async with semaphore:
                return await asyncio.to_thread(
                    self._evaluate_document, config, registry, index, source, document)

        results = await asyncio.gather(*(
            run(i, source, doc) for i, (source, doc) in enumerate(zip(sources, documents))
        ))
        report = BatchReport(results=list(results))
        logger.info(f"Evaluated {len(report.results)} document(s): "
                    f"{sum(1 for v in report.verdicts if v.passed)} passed, "
                    f"{sum(1 for v in report.verdicts if not v.passed)} failed, "
                    f"{report.parse_error_count} unparseable")
        return report

    async def evaluate_text(self, text: str, source: str = "") -> BatchReport:
        """Evaluate a YAML/JSON multi-document stream"""
        try:
            loaded = parse_documents(text, source)
        except ParseError as e:
            PARSE_ERRORS_TOTAL.inc()
            logger.warning(f"Could not load {source or 'input'}: {e}")
            return BatchReport(results=[DocumentResult(index=0, source=source, parse_error=str(e))])
        return await self.evaluate_documents([doc for _, doc in loaded], [label for label, _ in loaded])

    async def evaluate_sources(self, sources: Sequence[Tuple[str, str]]) -> BatchReport:
        """Evaluate several named YAML streams as one batch, in order"""
        documents: List[Any] = []
        labels: List[str] = []
        failures: List[Tuple[int, DocumentResult]] = []
        for name, text in sources:
            try:
                loaded = parse_documents(text, name)
            except ParseError as e:
                PARSE_ERRORS_TOTAL.inc()
                logger.warning(f"Could not load {name}: {e}")
                failures.append((len(documents), DocumentResult(index=0, source=name, parse_error=str(e))))
                continue
            labels.extend(label for label, _ in loaded)
            documents.extend(doc for _, doc in loaded)

        report = await self.evaluate_documents(documents, labels)
        if not failures:
            return report

        # Splice stream-level failures back in at their input position
        results = list(report.results)
        for offset, (position, failure) in enumerate(failures):
            results.insert(position + offset, failure)
        return BatchReport(results=[r.model_copy(update={"index": i}) for i, r in enumerate(results)])

    def close(self):
        self.checkers.close()
