"""
Scenario runner - executes scenarios against a step registry.

Steps run strictly in order: background steps first, then the scenario's own
steps. The first step that is undefined, ambiguous or whose handler raises
stops the scenario; that step is recorded with the matching status and every
later step is recorded as skipped. Errors are captured into the
ScenarioResult rather than raised, so one failing scenario never prevents
the next one from running.

Handlers may be plain functions or coroutine functions; anything awaitable a
handler returns is awaited before the next step starts. Cancellation,
KeyboardInterrupt and SystemExit are never captured.

Example usage:
    import asyncio
    from gherkin_core import GherkinParser, ScenarioRunner, StepRegistry

    feature = GherkinParser().parse_file("features/arithmetic.feature")
    registry = StepRegistry()
    ...  # register steps

    runner = ScenarioRunner(registry)
    result = asyncio.run(runner.run_feature(feature))
    print(f"{result.passed_count}/{result.total} scenarios passed")
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .errors import (
    AmbiguousStepError,
    ExpansionError,
    GherkinError,
    StepFailedError,
    UndefinedStepError,
)
from .filters import ScenarioNameFilter, TagFilter
from .model import Background, Feature, Scenario, Step, combine_tags
from .outline import ExpandedScenario, OutlineExpander
from .paths import scenario_matches_lines
from .registry import StepMatch, StepRegistry

logger = logging.getLogger(__name__)

RegistryFactory = Callable[[], StepRegistry]


class StepStatus(str, Enum):
    """
    Outcome of one step.

    - PASSED: Handler completed
    - FAILED: Handler raised
    - SKIPPED: Not run because an earlier step did not pass
    - UNDEFINED: No registration matched
    - AMBIGUOUS: Several registrations matched
    """

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    UNDEFINED = "undefined"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class StepResult:
    """
    Result of running (or skipping) a single step.

    Attributes:
        keyword: Keyword as written (Given, And, ...)
        text: Step text
        status: StepStatus
        duration: Execution time in seconds (0 for skipped steps)
        error: Error message for non-passing steps
        source_line: Line of the step in its source
    """

    keyword: str
    text: str
    status: StepStatus
    duration: float = 0.0
    error: Optional[str] = None
    source_line: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "keyword": self.keyword,
            "text": self.text,
            "status": self.status.value,
            "duration_ms": int(self.duration * 1000),
            "error": self.error,
            "source_line": self.source_line,
        }


@dataclass(frozen=True)
class ScenarioResult:
    """
    Outcome of one scenario run.

    Attributes:
        scenario_name: Name of the (expanded) scenario
        passed: True only if every step passed
        step_results: One entry per background and scenario step, in order
        error: Captured StepError or ExpansionError, if the scenario failed
        failed_step: Step that stopped the scenario
        tags: Feature tags unioned with scenario tags
        duration: Wall time in seconds
        source_line: Line of the scenario (or its outline)
        scenario: The scenario that ran (None for outline rows that failed to
            expand)
    """

    scenario_name: str
    passed: bool
    step_results: Tuple[StepResult, ...] = ()
    error: Optional[GherkinError] = field(default=None, compare=False)
    failed_step: Optional[Step] = None
    tags: Tuple[str, ...] = ()
    duration: float = 0.0
    source_line: int = 0
    scenario: Optional[Scenario] = field(default=None, compare=False, repr=False)

    @property
    def status(self) -> str:
        return "passed" if self.passed else "failed"

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    def count(self, status: StepStatus) -> int:
        return sum(1 for r in self.step_results if r.status == status)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.scenario_name,
            "status": self.status,
            "tags": list(self.tags),
            "duration_ms": int(self.duration * 1000),
            "source_line": self.source_line,
            "error": self.error_message,
            "steps": [r.to_dict() for r in self.step_results],
        }


@dataclass(frozen=True)
class FeatureResult:
    """
    Outcome of every selected scenario of one feature.

    Attributes:
        feature_name: Feature name
        tags: Feature tags
        source_file: Source identifier of the feature
        scenario_results: Results in run order
        duration: Wall time in seconds
    """

    feature_name: str
    tags: Tuple[str, ...] = ()
    source_file: Optional[str] = None
    scenario_results: Tuple[ScenarioResult, ...] = ()
    duration: float = 0.0

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.scenario_results)

    @property
    def total(self) -> int:
        return len(self.scenario_results)

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.scenario_results if r.passed)

    @property
    def failed_count(self) -> int:
        return self.total - self.passed_count

    def step_count(self, status: StepStatus) -> int:
        return sum(r.count(status) for r in self.scenario_results)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.feature_name,
            "tags": list(self.tags),
            "source_file": self.source_file,
            "status": "passed" if self.passed else "failed",
            "duration_ms": int(self.duration * 1000),
            "scenarios": [r.to_dict() for r in self.scenario_results],
        }


class ScenarioRunner:
    """
    Executes scenarios one step at a time.

    The runner itself holds no per-run state, so one instance may run
    several scenarios concurrently as long as each uses its own registry
    (pass ``registry_factory`` to run_feature).

    Example:
        runner = ScenarioRunner(registry)
        result = await runner.run(scenario, background=feature.background)

        if not result.passed:
            print(result.error_message)
    """

    def __init__(
        self,
        registry: Optional[StepRegistry] = None,
        on_step_complete: Optional[Callable[[Step, StepResult], None]] = None,
    ):
        """
        Initialize the runner.

        Args:
            registry: Registry used when no other registry is supplied
            on_step_complete: Optional callback invoked after each executed step
        """
        self.registry = registry
        self.on_step_complete = on_step_complete

    # =========================================================================
    # Single scenario
    # =========================================================================

    async def run(
        self,
        scenario: Scenario,
        background: Optional[Background] = None,
        feature: Optional[Feature] = None,
        registry: Optional[StepRegistry] = None,
    ) -> ScenarioResult:
        """
        Run one concrete scenario.

        Args:
            scenario: Scenario to run (never an outline)
            background: Background whose steps run first
            feature: Owning feature; supplies tags and the source file
            registry: Registry overriding the runner's own

        Returns:
            ScenarioResult; step errors are captured, never raised
        """
        registry = self._registry(registry)
        source_file = feature.source_file if feature else None
        tags = combine_tags(feature.tags, scenario.tags) if feature else scenario.tags
        steps = list(background.steps if background else ()) + list(scenario.steps)

        results: List[StepResult] = []
        error: Optional[GherkinError] = None
        failed_step: Optional[Step] = None
        started = time.perf_counter()

        for step in steps:
            if error is not None:
                results.append(_step_result(step, StepStatus.SKIPPED))
                continue

            step_started = time.perf_counter()
            step_error = await self._run_step(step, registry, source_file)
            elapsed = time.perf_counter() - step_started

            if step_error is None:
                result = _step_result(step, StepStatus.PASSED, elapsed)
            else:
                error = step_error
                failed_step = step
                result = _step_result(step, StepStatus(step_error.kind), elapsed, step_error.message)
            results.append(result)

            logger.debug("%s %s: %s", step.keyword.value, step.text, result.status.value)
            if self.on_step_complete:
                self.on_step_complete(step, result)

        scenario_result = ScenarioResult(
            scenario_name=scenario.name,
            passed=error is None,
            step_results=tuple(results),
            error=error,
            failed_step=failed_step,
            tags=tags,
            duration=time.perf_counter() - started,
            source_line=scenario.source_line,
            scenario=scenario,
        )
        if error is None:
            logger.info("Scenario passed: %s", scenario.name)
        else:
            logger.info("Scenario failed: %s (%s)", scenario.name, error)
        return scenario_result

    async def _run_step(
        self, step: Step, registry: StepRegistry, source_file: Optional[str]
    ) -> Optional[GherkinError]:
        try:
            match = registry.match(step, source_file)
        except (UndefinedStepError, AmbiguousStepError) as e:
            return e

        try:
            await _invoke(match)
        except Exception as e:
            failure = StepFailedError(step, e, source_file)
            failure.__cause__ = e
            return failure
        return None

    def _registry(self, registry: Optional[StepRegistry]) -> StepRegistry:
        # An empty registry is falsy (__len__), so test for None explicitly
        if registry is None:
            registry = self.registry
        if registry is None:
            raise ValueError("ScenarioRunner needs a registry or a registry_factory")
        return registry

    # =========================================================================
    # Whole feature
    # =========================================================================

    async def run_feature(
        self,
        feature: Feature,
        tag_filter: Optional[TagFilter] = None,
        name_filter: Optional[ScenarioNameFilter] = None,
        registry_factory: Optional[RegistryFactory] = None,
        lines: Optional[Iterable[int]] = None,
    ) -> FeatureResult:
        """
        Expand, filter and run every scenario of a feature.

        Args:
            feature: Parsed feature
            tag_filter: Applied to feature tags unioned with scenario tags
            name_filter: Selects scenarios by name
            registry_factory: Builds a fresh registry for each scenario;
                without it the runner's registry is shared
            lines: Source lines targeting scenarios (see paths module)

        Returns:
            FeatureResult; outline rows that failed to expand appear as
            failed scenarios with no steps
        """
        started = time.perf_counter()
        expanded = OutlineExpander().expand(feature)
        selected = select_entries(expanded.entries, feature, tag_filter, name_filter, lines)

        results: List[ScenarioResult] = []
        for entry in selected:
            if entry.error is not None:
                results.append(_expansion_failure(entry, feature))
                continue
            registry = registry_factory() if registry_factory else None
            results.append(
                await self.run(
                    entry.scenario,
                    background=feature.background,
                    feature=feature,
                    registry=registry,
                )
            )

        feature_result = FeatureResult(
            feature_name=feature.name,
            tags=feature.tags,
            source_file=feature.source_file,
            scenario_results=tuple(results),
            duration=time.perf_counter() - started,
        )
        logger.info(
            "Feature %r: %d/%d scenario(s) passed",
            feature.name,
            feature_result.passed_count,
            feature_result.total,
        )
        return feature_result

    # =========================================================================
    # Synchronous wrappers
    # =========================================================================

    def run_sync(
        self,
        scenario: Scenario,
        background: Optional[Background] = None,
        feature: Optional[Feature] = None,
        registry: Optional[StepRegistry] = None,
    ) -> ScenarioResult:
        """Run a scenario from synchronous code (starts its own event loop)."""
        return asyncio.run(self.run(scenario, background, feature, registry))

    def run_feature_sync(self, feature: Feature, **kwargs: Any) -> FeatureResult:
        """Run a feature from synchronous code (starts its own event loop)."""
        return asyncio.run(self.run_feature(feature, **kwargs))


def entry_tags(entry: ExpandedScenario, feature: Feature) -> Tuple[str, ...]:
    """Feature tags unioned with the tags of an expanded entry."""
    if entry.scenario is not None:
        return combine_tags(feature.tags, entry.scenario.tags)
    outline = entry.outline
    examples_tags = outline.examples[entry.examples_index].tags if outline else ()
    return combine_tags(feature.tags, outline.tags if outline else (), examples_tags)


def entry_name(entry: ExpandedScenario) -> str:
    if entry.scenario is not None:
        return entry.scenario.name
    return entry.error.row_name


def entry_line(entry: ExpandedScenario) -> int:
    if entry.outline is not None:
        return entry.outline.source_line
    return entry.scenario.source_line


def select_entries(
    entries: Iterable[ExpandedScenario],
    feature: Feature,
    tag_filter: Optional[TagFilter] = None,
    name_filter: Optional[ScenarioNameFilter] = None,
    lines: Optional[Iterable[int]] = None,
) -> List[ExpandedScenario]:
    """
    Narrow expanded entries by tags, names and targeted source lines.

    Background steps are never filtered; they run with every selected
    scenario.
    """
    line_list = list(lines or ())
    selected: List[ExpandedScenario] = []
    for entry in entries:
        if tag_filter is not None and not tag_filter.should_include(entry_tags(entry, feature)):
            continue
        if name_filter is not None and not name_filter.should_include(entry_name(entry)):
            continue
        if line_list and not scenario_matches_lines(entry_line(entry), line_list, feature):
            continue
        selected.append(entry)
    return selected


async def _invoke(match: StepMatch) -> None:
    outcome = match.registration.handler(match)
    if inspect.isawaitable(outcome):
        await outcome


def _step_result(
    step: Step,
    status: StepStatus,
    duration: float = 0.0,
    error: Optional[str] = None,
) -> StepResult:
    return StepResult(
        keyword=step.keyword.value,
        text=step.text,
        status=status,
        duration=duration,
        error=error,
        source_line=step.source_line,
    )


def _expansion_failure(entry: ExpandedScenario, feature: Feature) -> ScenarioResult:
    error: ExpansionError = entry.error
    return ScenarioResult(
        scenario_name=error.row_name,
        passed=False,
        error=error,
        tags=entry_tags(entry, feature),
        source_line=entry_line(entry),
    )
