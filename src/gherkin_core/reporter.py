"""
Result collection and report generation.

Scenario results are recorded one at a time (from any thread) into a
ReportResultCollector, which groups them by feature into a TestRunResult.
Features appear in the order their first scenario was recorded; scenarios
keep their recording order within a feature.

Two outputs are supported:
- JSON: machine-readable report (ReportGenerator)
- Console: human-readable summary (ConsoleReporter)

Example usage:
    from gherkin_core.reporter import (
        ConsoleReporter,
        ReportGenerator,
        ReportResultCollector,
    )

    collector = ReportResultCollector()
    collector.record_feature(feature_result)
    run = collector.build_test_run_result()

    ReportGenerator(run).write_json("gherkin_report.json")
    ConsoleReporter(run, verbose=True).print_full_report()
"""

import json
import os
import socket
import sys
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Tuple, Union

from .runner import FeatureResult, ScenarioResult, StepStatus

REPORT_VERSION = "1.0"


@dataclass(frozen=True)
class TestRunResult:
    """
    Aggregated results for a whole run.

    Attributes:
        feature_results: Results grouped per feature, first-seen order
        start_time: When collection started (UTC)
        end_time: When the result was built (UTC)
    """

    __test__ = False  # not a pytest test class

    feature_results: Tuple[FeatureResult, ...] = ()
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def duration(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    @property
    def passed(self) -> bool:
        return all(f.passed for f in self.feature_results)

    # Features

    @property
    def total_feature_count(self) -> int:
        return len(self.feature_results)

    @property
    def passed_feature_count(self) -> int:
        return sum(1 for f in self.feature_results if f.passed)

    @property
    def failed_feature_count(self) -> int:
        return self.total_feature_count - self.passed_feature_count

    # Scenarios

    @property
    def total_scenario_count(self) -> int:
        return sum(f.total for f in self.feature_results)

    @property
    def passed_scenario_count(self) -> int:
        return sum(f.passed_count for f in self.feature_results)

    @property
    def failed_scenario_count(self) -> int:
        return sum(f.failed_count for f in self.feature_results)

    # Steps

    def step_count(self, status: Optional[StepStatus] = None) -> int:
        """Number of steps with ``status``, or of all steps when None."""
        if status is None:
            return sum(
                len(s.step_results) for f in self.feature_results for s in f.scenario_results
            )
        return sum(f.step_count(status) for f in self.feature_results)

    def failed_scenarios(self) -> List[Tuple[FeatureResult, ScenarioResult]]:
        return [
            (feature, scenario)
            for feature in self.feature_results
            for scenario in feature.scenario_results
            if not scenario.passed
        ]


class ReportResultCollector:
    """
    Thread-safe accumulator of scenario results.

    Call record() (or record_feature()) as scenarios complete, then
    build_test_run_result() for the grouped result.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: List[Tuple[str, Tuple[str, ...], Optional[str], ScenarioResult]] = []
        self._start_time = datetime.now(timezone.utc)

    def record(
        self,
        scenario_result: ScenarioResult,
        feature_name: str,
        feature_tags: Tuple[str, ...] = (),
        source_file: Optional[str] = None,
    ) -> None:
        """Record one completed scenario."""
        with self._lock:
            self._records.append((feature_name, tuple(feature_tags), source_file, scenario_result))

    def record_feature(self, feature_result: FeatureResult) -> None:
        """Record every scenario of a completed feature."""
        for scenario_result in feature_result.scenario_results:
            self.record(
                scenario_result,
                feature_result.feature_name,
                feature_result.tags,
                feature_result.source_file,
            )

    def build_test_run_result(self) -> TestRunResult:
        """Group recorded scenarios by feature name, first-seen order."""
        with self._lock:
            records = list(self._records)
            start_time = self._start_time

        order: List[str] = []
        groups: Dict[str, Dict[str, Any]] = {}
        for feature_name, tags, source_file, scenario_result in records:
            if feature_name not in groups:
                order.append(feature_name)
                groups[feature_name] = {"tags": tags, "source_file": source_file, "scenarios": []}
            groups[feature_name]["scenarios"].append(scenario_result)

        feature_results = tuple(
            FeatureResult(
                feature_name=name,
                tags=groups[name]["tags"],
                source_file=groups[name]["source_file"],
                scenario_results=tuple(groups[name]["scenarios"]),
                duration=sum(s.duration for s in groups[name]["scenarios"]),
            )
            for name in order
        )
        return TestRunResult(
            feature_results=feature_results,
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
        )

    def reset(self) -> None:
        """Drop everything recorded and restart the clock."""
        with self._lock:
            self._records = []
            self._start_time = datetime.now(timezone.utc)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


@dataclass
class ReportMetadata:
    """
    Where and when the run happened.

    Attributes:
        run_id: Unique identifier for this run
        timestamp: ISO 8601 timestamp of report generation
        hostname: Machine hostname
        platform: Operating system platform
        user: Username from environment
    """

    run_id: str
    timestamp: str
    hostname: str
    platform: str
    user: str


@dataclass
class ReportSummary:
    """Aggregate counts of a run."""

    features: Dict[str, int]
    scenarios: Dict[str, int]
    steps: Dict[str, int]
    duration_ms: int


class ReportGenerator:
    """
    Generates JSON reports from a TestRunResult.
    """

    def __init__(self, result: TestRunResult, run_id: Optional[str] = None):
        """
        Initialize the report generator.

        Args:
            result: Aggregated run result
            run_id: Optional run identifier (generated if not provided)
        """
        self.result = result
        self.run_id = run_id or f"gherkin-{int(result.start_time.timestamp())}"

    def build_metadata(self) -> ReportMetadata:
        return ReportMetadata(
            run_id=self.run_id,
            timestamp=datetime.now(timezone.utc).isoformat(),
            hostname=socket.gethostname(),
            platform=sys.platform,
            user=os.environ.get("USER", os.environ.get("USERNAME", "unknown")),
        )

    def build_summary(self) -> ReportSummary:
        result = self.result
        steps = {status.value: result.step_count(status) for status in StepStatus}
        steps["total"] = result.step_count()
        return ReportSummary(
            features={
                "passed": result.passed_feature_count,
                "failed": result.failed_feature_count,
                "total": result.total_feature_count,
            },
            scenarios={
                "passed": result.passed_scenario_count,
                "failed": result.failed_scenario_count,
                "total": result.total_scenario_count,
            },
            steps=steps,
            duration_ms=int(result.duration * 1000),
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Build the report structure.

        Returns:
            Dictionary with version, metadata, summary and per-feature results
        """
        return {
            "version": REPORT_VERSION,
            "status": "passed" if self.result.passed else "failed",
            "metadata": asdict(self.build_metadata()),
            "summary": asdict(self.build_summary()),
            "started_at": self.result.start_time.isoformat(),
            "finished_at": self.result.end_time.isoformat(),
            "features": [f.to_dict() for f in self.result.feature_results],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def write_json(self, path: Union[str, Path], indent: int = 2) -> Path:
        """
        Write the JSON report to a file, creating parent directories.

        Returns:
            Path to written file
        """
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            f.write(self.to_json(indent=indent))

        return output_path


class ConsoleReporter:
    """
    Reports run results to the console.

    Provides per-scenario status lines, a summary block and, in verbose
    mode, the step-level detail of failed scenarios.
    """

    STATUS_LABELS = {
        StepStatus.PASSED: "PASS",
        StepStatus.FAILED: "FAIL",
        StepStatus.SKIPPED: "SKIP",
        StepStatus.UNDEFINED: "UNDF",
        StepStatus.AMBIGUOUS: "AMBG",
    }

    def __init__(
        self,
        result: TestRunResult,
        verbose: bool = False,
        output: Optional[TextIO] = None,
    ):
        """
        Initialize the console reporter.

        Args:
            result: Aggregated run result
            verbose: Include step-level detail for failures
            output: Output stream (default: sys.stdout)
        """
        self.result = result
        self.verbose = verbose
        self.output = output or sys.stdout

    def _print(self, *args, **kwargs):
        print(*args, file=self.output, **kwargs)

    def print_header(self):
        self._print("=" * 70)
        self._print("GHERKIN RUN")
        self._print("=" * 70)

    def print_feature(self, feature: FeatureResult):
        tags = " ".join(f"@{t}" for t in feature.tags)
        self._print(f"\nFeature: {feature.feature_name}" + (f"  {tags}" if tags else ""))
        for scenario in feature.scenario_results:
            self.print_scenario(scenario)

    def print_scenario(self, scenario: ScenarioResult):
        status = "PASS" if scenario.passed else "FAIL"
        duration = int(scenario.duration * 1000)
        self._print(f"  [{status}] {scenario.scenario_name} ({duration}ms)")

        if self.verbose and not scenario.passed:
            for step in scenario.step_results:
                label = self.STATUS_LABELS[step.status]
                self._print(f"        {label} {step.keyword} {step.text}")
            if scenario.error_message:
                self._print(f"        Error: {scenario.error_message[:200]}")

    def print_summary(self):
        result = self.result
        self._print()
        self._print("=" * 70)
        self._print("SUMMARY")
        self._print("=" * 70)

        self._print(
            f"Features:  {result.passed_feature_count}/{result.total_feature_count} passed"
        )
        self._print(
            f"Scenarios: {result.passed_scenario_count}/{result.total_scenario_count} passed"
        )
        self._print(
            f"Steps:     {result.step_count(StepStatus.PASSED)}/{result.step_count()} passed, "
            f"{result.step_count(StepStatus.FAILED)} failed, "
            f"{result.step_count(StepStatus.SKIPPED)} skipped, "
            f"{result.step_count(StepStatus.UNDEFINED)} undefined, "
            f"{result.step_count(StepStatus.AMBIGUOUS)} ambiguous"
        )

        failures = result.failed_scenarios()
        if failures:
            self._print("\nFailed scenarios:")
            for feature, scenario in failures:
                self._print(f"  - {feature.feature_name}: {scenario.scenario_name}")

        self._print(f"\nTotal time: {result.duration:.2f}s")
        self._print(f"\nStatus: {'PASS' if result.passed else 'FAIL'}")

    def print_full_report(self):
        """Print complete report with all sections."""
        self.print_header()
        for feature in self.result.feature_results:
            self.print_feature(feature)
        self.print_summary()
