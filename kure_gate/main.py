"""Command line entry point: evaluate manifest files and gate CI on the result.

Exit codes: 0 every manifest passed, 1 at least one Error violation,
2 tooling failure (unreadable or unparseable input, evaluator defect,
invalid configuration).
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from kure_gate.config.config import ServiceSettings, load_config
from kure_gate.errors import ConfigurationError
from kure_gate.services.evaluator import PolicyEvaluator
from kure_gate.services.reporter import EXIT_TOOLING_FAILURE, ReportFormat, exit_code, render

logger = logging.getLogger(__name__)

MANIFEST_SUFFIXES = ('.yaml', '.yml', '.json')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kure-gate",
        description="Evaluate Kubernetes workload manifests against hardening and operability policies.",
    )
    parser.add_argument("paths", nargs="*", help="Manifest files or directories ('-' reads stdin)")
    parser.add_argument("-c", "--config", help="Policy configuration file (YAML)")
    parser.add_argument("-f", "--format", choices=[f.value for f in ReportFormat], default=ReportFormat.TEXT.value,
                        help="Report format")
    parser.add_argument("--concurrency", type=int, help="Maximum manifests evaluated in parallel")
    parser.add_argument("--disable", action="append", default=[], metavar="RULE_ID",
                        help="Disable a rule (repeatable)")
    parser.add_argument("--no-hints", action="store_true", help="Omit remediation hints from text output")
    parser.add_argument("--list-rules", action="store_true", help="List rules and exit")
    return parser


def collect_sources(paths: List[str]) -> Tuple[List[Tuple[str, str]], List[str]]:
    """Read every input; returns (name, text) pairs and the inputs that could not be read"""
    sources = []
    unreadable = []
    for raw in paths:
        if raw == '-':
            sources.append(('<stdin>', sys.stdin.read()))
            continue
        path = Path(raw)
        files = sorted(p for p in path.rglob('*') if p.suffix in MANIFEST_SUFFIXES) if path.is_dir() else [path]
        for file in files:
            try:
                sources.append((str(file), file.read_text()))
            except (OSError, UnicodeDecodeError) as e:
                logger.error(f"Cannot read {file}: {e}")
                unreadable.append(str(file))
    return sources, unreadable


def print_rules(evaluator: PolicyEvaluator):
    for rule in evaluator.registry.describe():
        state = "on " if rule["enabled"] else "off"
        print(f"{state}  {rule['severity']:<8} {rule['id']:<40} {rule['title']}")


async def run(args) -> int:
    config = load_config(args.config)
    updates = {}
    if args.concurrency:
        updates["concurrency"] = max(1, args.concurrency)
    if args.disable:
        updates["disabled_rule_ids"] = config.disabled_rule_ids | frozenset(args.disable)
    if updates:
        config = config.model_copy(update=updates)

    evaluator = PolicyEvaluator(config)
    try:
        if args.list_rules:
            print_rules(evaluator)
            return 0

        if not args.paths:
            logger.error("No manifest paths given")
            return EXIT_TOOLING_FAILURE

        sources, unreadable = collect_sources(args.paths)
        report = await evaluator.evaluate_sources(sources)
        sys.stdout.write(render(report, args.format, config.fail_on_checker_error, show_hints=not args.no_hints))

        code = exit_code(report, config.fail_on_checker_error)
        return EXIT_TOOLING_FAILURE if unreadable else code
    finally:
        evaluator.close()


def main(argv: Optional[List[str]] = None) -> int:
    settings = ServiceSettings()
    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )

    args = build_parser().parse_args(argv)
    if not args.config:
        args.config = settings.config_path

    try:
        return asyncio.run(run(args))
    except ConfigurationError as e:
        logger.error(f"Invalid policy configuration: {e}")
        return EXIT_TOOLING_FAILURE
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_TOOLING_FAILURE


if __name__ == "__main__":
    sys.exit(main())
