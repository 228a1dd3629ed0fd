"""
Command-line interface for gherkin-core.

Usage:
    gherkin list features/                       # Features and expanded scenarios
    gherkin plan features/ --tags smoke          # Scenarios a run would execute
    gherkin plan features/login.feature:12 --json
    gherkin run features/ --steps tests.steps    # Run with step modules
    gherkin run --config gherkin.yaml --report out/report.json
    gherkin --version                            # Show version

Exit codes:
    0  every selected scenario passed
    1  at least one scenario failed
    2  usage, configuration, import or parse error
"""

import argparse
import asyncio
import importlib
import json
import logging
import os
import sys
from types import ModuleType
from typing import Any, Dict, List, Optional

from . import __version__
from .config import GherkinConfig, load_config
from .errors import ConfigError, InvalidPatternError, ParseError
from .filters import ScenarioNameFilter, TagFilter
from .model import Feature
from .outline import ExpandedScenario, OutlineExpander
from .paths import FeatureLoad, FeaturePath, load_features
from .registry import StepRegistry, register_module
from .reporter import ConsoleReporter, ReportGenerator, ReportResultCollector
from .runner import ScenarioRunner, entry_line, entry_name, entry_tags, select_entries

logger = logging.getLogger(__name__)


class UsageError(Exception):
    """Raised for problems the user must fix before anything can run."""

    pass


def _build_config(args: argparse.Namespace) -> GherkinConfig:
    """Config file, then environment, then command-line flags."""
    config = load_config(args.config)
    config.apply_environment()

    if args.paths:
        config.features = [
            spec for spec in (FeaturePath.parse(raw) for raw in args.paths) if spec is not None
        ]

    tags = getattr(args, "tags", None)
    exclude_tags = getattr(args, "exclude_tags", None)
    if tags or exclude_tags:
        config.tag_filter = config.tag_filter.merge(TagFilter.from_strings(tags, exclude_tags))

    names = getattr(args, "name", None)
    if names:
        config.name_filter = ScenarioNameFilter(names).merge(config.name_filter)

    steps = getattr(args, "steps", None)
    if steps:
        config.steps = config.steps + [s for s in steps if s not in config.steps]
    if getattr(args, "verbose", False):
        config.verbose = True
    if getattr(args, "report", None):
        config.report_path = args.report

    if not config.features:
        raise UsageError(
            "No feature paths given. Pass paths, set GHERKIN_FEATURES, or list "
            "'features' in gherkin.yaml."
        )
    return config


def _load(config: GherkinConfig) -> FeatureLoad:
    loaded = load_features(config.features, fail_fast=config.fail_fast)
    for error in loaded.errors.values():
        print(f"Error: {error}", file=sys.stderr)
    return loaded


def _import_step_modules(names: List[str]) -> List[ModuleType]:
    # Step modules usually live in the project being tested
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    modules = []
    for name in names:
        try:
            modules.append(importlib.import_module(name))
        except ImportError as e:
            raise UsageError(f"Cannot import step module '{name}': {e}") from e
        logger.debug("Imported step module %s", name)
    return modules


def _entry_plan(entry: ExpandedScenario, feature: Feature) -> Dict[str, Any]:
    plan: Dict[str, Any] = {
        "name": entry_name(entry),
        "tags": list(entry_tags(entry, feature)),
        "source_line": entry_line(entry),
    }
    if entry.scenario is not None:
        plan["steps"] = [str(step) for step in entry.scenario.steps]
    else:
        plan["error"] = str(entry.error)
    return plan


def cmd_list(args: argparse.Namespace) -> int:
    """List features and their expanded scenarios."""
    config = _build_config(args)
    loaded = _load(config)

    expander = OutlineExpander()
    for item in loaded.features:
        feature = item.feature
        print(f"{feature.source_file}: Feature: {feature.name}")
        for entry in expander.expand(feature).entries:
            marker = "" if entry.ok else "  [expansion error]"
            print(f"  {entry_line(entry):4d}  {entry_name(entry)}{marker}")

    return 0 if loaded.ok else 2


def cmd_plan(args: argparse.Namespace) -> int:
    """Show the filtered scenarios a run would execute."""
    config = _build_config(args)
    loaded = _load(config)

    expander = OutlineExpander()
    plan: List[Dict[str, Any]] = []
    for item in loaded.features:
        feature = item.feature
        entries = select_entries(
            expander.expand(feature).entries,
            feature,
            tag_filter=config.tag_filter,
            name_filter=config.name_filter,
            lines=item.lines,
        )
        plan.append(
            {
                "feature": feature.name,
                "source_file": feature.source_file,
                "background_steps": len(feature.background.steps) if feature.background else 0,
                "scenarios": [_entry_plan(entry, feature) for entry in entries],
            }
        )

    if args.json:
        print(json.dumps(plan, indent=2))
    else:
        print("=" * 70)
        print("GHERKIN PLAN")
        print("=" * 70)
        total = 0
        for feature_plan in plan:
            print(f"\nFeature: {feature_plan['feature']} ({feature_plan['source_file']})")
            for i, scenario in enumerate(feature_plan["scenarios"], 1):
                tags = " ".join(f"@{t}" for t in scenario["tags"])
                print(f"  [{i}] {scenario['name']}" + (f"  {tags}" if tags else ""))
                for step in scenario.get("steps", []):
                    print(f"        {step}")
                if "error" in scenario:
                    print(f"        Error: {scenario['error']}")
            total += len(feature_plan["scenarios"])
        print(f"\nTotal scenarios: {total}")

    return 0 if loaded.ok else 2


def cmd_run(args: argparse.Namespace) -> int:
    """Run the selected scenarios."""
    config = _build_config(args)
    if not config.steps:
        raise UsageError("No step modules given. Use --steps or list 'steps' in gherkin.yaml.")

    modules = _import_step_modules(config.steps)
    loaded = _load(config)

    def registry_factory() -> StepRegistry:
        registry = StepRegistry()
        for module in modules:
            register_module(registry, module, class_filter=config.step_classes)
        return registry

    collector = ReportResultCollector()
    runner = ScenarioRunner()

    async def run_all() -> None:
        for item in loaded.features:
            feature_result = await runner.run_feature(
                item.feature,
                tag_filter=config.tag_filter,
                name_filter=config.name_filter,
                registry_factory=registry_factory,
                lines=item.lines,
            )
            collector.record_feature(feature_result)

    asyncio.run(run_all())
    result = collector.build_test_run_result()

    if args.json:
        print(ReportGenerator(result).to_json())
    else:
        ConsoleReporter(result, verbose=config.verbose).print_full_report()

    if config.report_path:
        ReportGenerator(result).write_json(config.report_path)
        if not args.json:
            print(f"\nReport written to: {config.report_path}")

    if not loaded.ok:
        return 2
    return 0 if result.passed else 1


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "paths",
        nargs="*",
        help="Feature files or directories, optionally with :LINE suffixes",
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Path to configuration file (default: gherkin.yaml if present)",
    )


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--tags",
        type=str,
        help="Comma-separated tags to include",
    )
    parser.add_argument(
        "--exclude-tags",
        type=str,
        help="Comma-separated tags to exclude (wins over --tags)",
    )
    parser.add_argument(
        "--name",
        action="append",
        help="Scenario name to run (repeatable, case-insensitive)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output JSON",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gherkin",
        description="Parse, plan and run Gherkin feature files",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"gherkin-core {__version__}",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # List command
    list_parser = subparsers.add_parser("list", help="List features and scenarios")
    _add_common_arguments(list_parser)

    # Plan command
    plan_parser = subparsers.add_parser("plan", help="Show the filtered scenario plan")
    _add_common_arguments(plan_parser)
    _add_filter_arguments(plan_parser)

    # Run command
    run_parser = subparsers.add_parser("run", help="Run scenarios")
    _add_common_arguments(run_parser)
    _add_filter_arguments(run_parser)
    run_parser.add_argument(
        "--steps", "-s",
        action="append",
        help="Importable module providing step definitions (repeatable)",
    )
    run_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show step detail for failed scenarios",
    )
    run_parser.add_argument(
        "--report",
        type=str,
        help="Write JSON report to file",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    commands = {"list": cmd_list, "plan": cmd_plan, "run": cmd_run}
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 0

    try:
        return command(args)
    except (UsageError, ConfigError, ParseError, InvalidPatternError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
