import json
import logging
from enum import Enum
from pathlib import Path
from typing import Union

import yaml
from jinja2 import Environment, FileSystemLoader

from kure_gate.models.models import (
    SKIPPED_CHECK_ORIGINS, BatchReport, DocumentResult, Severity, Verdict, ViolationOrigin,
)

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

EXIT_PASSED = 0
EXIT_POLICY_FAILURE = 1
EXIT_TOOLING_FAILURE = 2


class ReportFormat(str, Enum):
    TEXT = "text"
    JSON = "json"
    YAML = "yaml"


_jinja_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


def _as_report(result: Union[BatchReport, Verdict]) -> BatchReport:
    if isinstance(result, Verdict):
        return BatchReport(results=[DocumentResult(index=0, source=str(result.manifest_identity), verdict=result)])
    return result


def exit_code(result: Union[BatchReport, Verdict], fail_on_checker_error: bool = False) -> int:
    """0: every manifest passed, 1: policy failure, 2: tooling failure.

    Tooling failures win over policy failures so callers can tell a broken
    evaluator from a non-compliant manifest. A configured checker that
    failed or timed out is a tooling failure; a check skipped because no
    checker is configured only counts when ``fail_on_checker_error`` is set.
    """
    report = _as_report(result)
    if report.parse_error_count:
        return EXIT_TOOLING_FAILURE
    if any(v.has_internal_errors for v in report.verdicts):
        return EXIT_TOOLING_FAILURE
    if any(v.has_checker_failures for v in report.verdicts):
        return EXIT_TOOLING_FAILURE
    if fail_on_checker_error and any(v.has_skipped_checks for v in report.verdicts):
        return EXIT_TOOLING_FAILURE
    if not report.passed:
        return EXIT_POLICY_FAILURE
    return EXIT_PASSED


def summarize(report: BatchReport) -> dict:
    verdicts = report.verdicts
    violations = [v for verdict in verdicts for v in verdict.violations]
    return {
        "documents": len(report.results),
        "passed": sum(1 for v in verdicts if v.passed),
        "failed": sum(1 for v in verdicts if not v.passed),
        "parseErrors": report.parse_error_count,
        "errors": sum(1 for v in violations if v.severity == Severity.ERROR),
        "warnings": sum(1 for v in violations if v.severity == Severity.WARNING),
        "info": sum(1 for v in violations if v.severity == Severity.INFO),
        "internalErrors": sum(1 for v in violations if v.origin == ViolationOrigin.INTERNAL_ERROR),
        "skippedChecks": sum(1 for v in violations if v.origin in SKIPPED_CHECK_ORIGINS),
        "checkerFailures": sum(1 for v in violations if v.origin == ViolationOrigin.CHECKER_FAILURE),
    }


def to_document(result: Union[BatchReport, Verdict], fail_on_checker_error: bool = False) -> dict:
    """Machine-readable report with stable camelCase field names"""
    report = _as_report(result)
    return {
        "passed": report.passed,
        "exitCode": exit_code(report, fail_on_checker_error),
        "summary": summarize(report),
        "results": [r.model_dump(mode="json", by_alias=True) for r in report.results],
    }


def render(result: Union[BatchReport, Verdict], fmt: Union[ReportFormat, str] = ReportFormat.TEXT,
           fail_on_checker_error: bool = False, show_hints: bool = True) -> str:
    fmt = ReportFormat(fmt)
    document = to_document(result, fail_on_checker_error)

    if fmt == ReportFormat.JSON:
        return json.dumps(document, indent=2) + "\n"
    if fmt == ReportFormat.YAML:
        return yaml.safe_dump(document, default_flow_style=False, sort_keys=False)

    template = _jinja_env.get_template("report.txt.j2")
    return template.render(
        results=document["results"],
        summary=document["summary"],
        exit_code=document["exitCode"],
        show_hints=show_hints,
    )
