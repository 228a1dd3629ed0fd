"""Tests for the scenario runner."""

import asyncio

import pytest

from gherkin_core import (
    AmbiguousStepError,
    GherkinParser,
    ScenarioNameFilter,
    ScenarioRunner,
    StepFailedError,
    StepRegistry,
    StepStatus,
    TagFilter,
    UndefinedStepError,
)
from gherkin_core.model import Scenario

CART_STEPS = [
    r"I have an empty cart",
    r"I am logged in as \"(\w+)\"",
    r"I add \"(\w+)\" to the cart",
    r"the cart should contain (\d+) items?",
]


def recording_registry(calls, patterns=CART_STEPS, fail_on=None):
    """Registry whose handlers record the step text they ran for."""
    registry = StepRegistry()
    for pattern in patterns:

        def handler(match):
            if fail_on and fail_on in match.text:
                raise RuntimeError(f"boom: {match.text}")
            calls.append(match.text)

        registry.step(pattern, handler)
    return registry


def parse(source):
    return GherkinParser().parse(source, source_file="inline.feature")


class TestRunScenario:
    """Tests for ScenarioRunner.run."""

    @pytest.mark.asyncio
    async def test_passing_scenario(self, load_fixture, arithmetic_registry):
        """Test every step passes and is recorded in order."""
        feature = load_fixture("basic")
        runner = ScenarioRunner(arithmetic_registry)

        result = await runner.run(feature.scenarios[0], feature=feature)

        assert result.passed
        assert result.error is None
        assert result.failed_step is None
        assert result.scenario is feature.scenarios[0]
        assert [r.status for r in result.step_results] == [StepStatus.PASSED] * 3
        assert [r.text for r in result.step_results] == [
            "I have the number 5",
            "I add 3",
            "the result should be 8",
        ]
        assert arithmetic_registry.state["value"] == 8

    @pytest.mark.asyncio
    async def test_background_runs_first(self, load_fixture):
        """Test background steps run before the scenario's own steps."""
        feature = load_fixture("with_background")
        calls = []
        runner = ScenarioRunner(recording_registry(calls))

        result = await runner.run(
            feature.scenarios[1], background=feature.background, feature=feature
        )

        assert result.passed
        assert calls == [
            "I have an empty cart",
            'I am logged in as "testuser"',
            'I add "apple" to the cart',
            'I add "banana" to the cart',
            "the cart should contain 2 items",
        ]
        assert [r.keyword for r in result.step_results] == ["Given", "And", "When", "And", "Then"]

    @pytest.mark.asyncio
    async def test_background_failure_skips_rest(self, load_fixture):
        """Test a failing background step skips every later step."""
        feature = load_fixture("with_background")
        calls = []
        runner = ScenarioRunner(recording_registry(calls, fail_on="empty cart"))

        result = await runner.run(
            feature.scenarios[0], background=feature.background, feature=feature
        )

        assert not result.passed
        assert calls == []
        assert [r.status for r in result.step_results] == [
            StepStatus.FAILED,
            StepStatus.SKIPPED,
            StepStatus.SKIPPED,
            StepStatus.SKIPPED,
        ]
        assert result.failed_step == feature.background.steps[0]

    @pytest.mark.asyncio
    async def test_handler_failure_wraps_cause(self, arithmetic_registry):
        """Test a raising handler gives StepFailedError keeping the cause."""
        feature = parse(
            "Feature: F\n  Scenario: Wrong\n    Given I have the number 1\n"
            "    Then the result should be 2\n    When I add 1\n"
        )
        runner = ScenarioRunner(arithmetic_registry)

        result = await runner.run(feature.scenarios[0], feature=feature)

        assert not result.passed
        assert isinstance(result.error, StepFailedError)
        assert isinstance(result.error.cause, AssertionError)
        assert result.error.__cause__ is result.error.cause
        assert result.failed_step.text == "the result should be 2"
        assert [r.status for r in result.step_results] == [
            StepStatus.PASSED,
            StepStatus.FAILED,
            StepStatus.SKIPPED,
        ]
        assert result.step_results[2].duration == 0.0

    @pytest.mark.asyncio
    async def test_undefined_step(self):
        """Test an unmatched step is recorded as undefined."""
        scenario = parse("Feature: F\n  Scenario: S\n    Given nothing matches\n").scenarios[0]

        result = await ScenarioRunner(StepRegistry()).run(scenario)

        assert not result.passed
        assert isinstance(result.error, UndefinedStepError)
        assert result.step_results[0].status == StepStatus.UNDEFINED
        assert "Undefined step" in result.step_results[0].error

    @pytest.mark.asyncio
    async def test_ambiguous_step(self):
        """Test a step matching two patterns is recorded as ambiguous."""
        registry = StepRegistry()
        registry.given(r"a (\w+)", lambda m: None)
        registry.step(r"a step", lambda m: None)
        scenario = parse("Feature: F\n  Scenario: S\n    Given a step\n").scenarios[0]

        result = await ScenarioRunner(registry).run(scenario)

        assert isinstance(result.error, AmbiguousStepError)
        assert result.step_results[0].status == StepStatus.AMBIGUOUS

    @pytest.mark.asyncio
    async def test_async_handlers_awaited(self):
        """Test coroutine handlers complete before the next step starts."""
        registry = StepRegistry()
        events = []

        @registry.given(r"a slow step")
        async def slow(match):
            await asyncio.sleep(0.01)
            events.append("slow done")

        @registry.then(r"a check")
        def check(match):
            events.append("check")

        scenario = parse(
            "Feature: F\n  Scenario: S\n    Given a slow step\n    Then a check\n"
        ).scenarios[0]
        result = await ScenarioRunner(registry).run(scenario)

        assert result.passed
        assert events == ["slow done", "check"]

    @pytest.mark.asyncio
    async def test_async_handler_failure(self):
        """Test exceptions from coroutine handlers fail the step."""
        registry = StepRegistry()

        @registry.given(r"it fails")
        async def fails(match):
            raise ValueError("bad value")

        scenario = parse("Feature: F\n  Scenario: S\n    Given it fails\n").scenarios[0]
        result = await ScenarioRunner(registry).run(scenario)

        assert result.step_results[0].status == StepStatus.FAILED
        assert "bad value" in result.error_message

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        """Test cancellation is not captured as a step failure."""
        registry = StepRegistry()

        @registry.given(r"it is cancelled")
        def cancelled(match):
            raise asyncio.CancelledError()

        scenario = parse("Feature: F\n  Scenario: S\n    Given it is cancelled\n").scenarios[0]

        with pytest.raises(asyncio.CancelledError):
            await ScenarioRunner(registry).run(scenario)

    @pytest.mark.asyncio
    async def test_zero_steps_pass(self):
        """Test a scenario without steps passes."""
        result = await ScenarioRunner(StepRegistry()).run(Scenario(name="Empty"))
        assert result.passed
        assert result.step_results == ()

    @pytest.mark.asyncio
    async def test_tags_combined(self, load_fixture):
        """Test results carry feature tags followed by scenario tags."""
        feature = load_fixture("with_tags")
        registry = StepRegistry()
        registry.step(r".*", lambda m: None)

        result = await ScenarioRunner(registry).run(feature.scenarios[1], feature=feature)

        assert result.tags == ("smoke", "slow", "integration")
        assert result.source_line == 9

    @pytest.mark.asyncio
    async def test_step_callback(self, load_fixture, arithmetic_registry):
        """Test on_step_complete sees each executed step."""
        feature = load_fixture("basic")
        seen = []
        runner = ScenarioRunner(
            arithmetic_registry, on_step_complete=lambda step, result: seen.append(result.status)
        )

        await runner.run(feature.scenarios[1], feature=feature)

        assert seen == [StepStatus.PASSED] * 3

    @pytest.mark.asyncio
    async def test_registry_required(self):
        """Test running without any registry is an error."""
        with pytest.raises(ValueError):
            await ScenarioRunner().run(Scenario(name="S"))

    @pytest.mark.asyncio
    async def test_empty_registry_argument_used(self):
        """Test an empty registry passed explicitly is not ignored."""
        fallback = StepRegistry()
        fallback.step(r".*", lambda m: None)
        scenario = parse("Feature: F\n  Scenario: S\n    Given x\n").scenarios[0]

        result = await ScenarioRunner(fallback).run(scenario, registry=StepRegistry())

        assert result.step_results[0].status == StepStatus.UNDEFINED


class TestRunFeature:
    """Tests for ScenarioRunner.run_feature."""

    @pytest.mark.asyncio
    async def test_runs_every_scenario(self, load_fixture, arithmetic_registry):
        """Test each scenario produces one result."""
        feature = load_fixture("basic")

        result = await ScenarioRunner(arithmetic_registry).run_feature(feature)

        assert result.passed
        assert result.total == 2
        assert result.passed_count == 2
        assert result.failed_count == 0
        assert result.step_count(StepStatus.PASSED) == 6
        assert result.feature_name == "Basic arithmetic"
        assert result.source_file.endswith("basic.feature")

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_feature(self, load_fixture):
        """Test later scenarios run after a failing one."""
        feature = load_fixture("with_background")
        calls = []
        registry = recording_registry(calls, fail_on="1 item")

        result = await ScenarioRunner(registry).run_feature(feature)

        assert [r.passed for r in result.scenario_results] == [False, True]
        assert result.failed_count == 1

    @pytest.mark.asyncio
    async def test_tag_filter(self, load_fixture):
        """Test tag filters see feature and scenario tags."""
        feature = load_fixture("with_tags")
        registry = StepRegistry()
        registry.step(r".*", lambda m: None)
        runner = ScenarioRunner(registry)

        excluded = await runner.run_feature(feature, tag_filter=TagFilter(exclude_tags=["wip"]))
        included = await runner.run_feature(feature, tag_filter=TagFilter(include_tags=["smoke"]))

        assert [r.scenario_name for r in excluded.scenario_results] == [
            "Quick check",
            "Full check",
        ]
        assert included.total == 3

    @pytest.mark.asyncio
    async def test_name_filter(self, load_fixture, arithmetic_registry):
        """Test name filters select scenarios case-insensitively."""
        feature = load_fixture("basic")

        result = await ScenarioRunner(arithmetic_registry).run_feature(
            feature, name_filter=ScenarioNameFilter(["subtraction"])
        )

        assert [r.scenario_name for r in result.scenario_results] == ["Subtraction"]

    @pytest.mark.asyncio
    async def test_lines(self, load_fixture, arithmetic_registry):
        """Test targeted lines select the covering scenario."""
        feature = load_fixture("basic")

        result = await ScenarioRunner(arithmetic_registry).run_feature(feature, lines=[13])

        assert [r.scenario_name for r in result.scenario_results] == ["Subtraction"]

    @pytest.mark.asyncio
    async def test_outline_rows_run(self, load_fixture):
        """Test outline rows run as separate scenarios with their Examples tags."""
        feature = load_fixture("with_outline")
        registry = StepRegistry()
        basket = {}

        @registry.given(r"I have (\d+) fruits")
        def have(match):
            basket["count"] = int(match.captures[0])

        @registry.when(r"I eat (\d+) fruits")
        def eat(match):
            basket["count"] -= int(match.captures[0])

        @registry.then(r"I should have (\d+) fruits")
        def check(match):
            assert basket["count"] == int(match.captures[0])

        result = await ScenarioRunner(registry).run_feature(
            feature, tag_filter=TagFilter(include_tags=["edge"])
        )

        assert [r.scenario_name for r in result.scenario_results] == [
            "Eating fruits [Examples 2, Row 1]",
            "Eating fruits [Examples 2, Row 2]",
        ]
        assert result.passed
        assert all(r.scenario.source_line == 3 for r in result.scenario_results)

    @pytest.mark.asyncio
    async def test_expansion_failure_reported(self):
        """Test rows that cannot expand appear as failed scenarios."""
        feature = parse(
            "Feature: F\n  Scenario Outline: O\n    Given <x> and <y>\n"
            "    Examples:\n      | x |\n      | 1 |\n"
        )

        result = await ScenarioRunner(StepRegistry()).run_feature(feature)

        assert result.total == 1
        failed = result.scenario_results[0]
        assert not failed.passed
        assert failed.scenario_name == "O [Row 1]"
        assert failed.scenario is None
        assert failed.step_results == ()
        assert "<y>" in failed.error_message

    @pytest.mark.asyncio
    async def test_registry_factory_per_scenario(self, load_fixture):
        """Test each scenario gets a fresh registry from the factory."""
        feature = load_fixture("basic")
        built = []

        def factory():
            registry = StepRegistry()
            registry.step(r".*", lambda m: None)
            built.append(registry)
            return registry

        result = await ScenarioRunner().run_feature(feature, registry_factory=factory)

        assert result.passed
        assert len(built) == 2
        assert built[0] is not built[1]


class TestSyncWrappers:
    """Tests for the synchronous entry points."""

    def test_run_sync(self, load_fixture, arithmetic_registry):
        """Test run_sync runs a scenario without an outer loop."""
        feature = load_fixture("basic")
        result = ScenarioRunner(arithmetic_registry).run_sync(feature.scenarios[0], feature=feature)
        assert result.passed

    def test_run_feature_sync(self, load_fixture, arithmetic_registry):
        """Test run_feature_sync forwards keyword arguments."""
        feature = load_fixture("basic")
        result = ScenarioRunner(arithmetic_registry).run_feature_sync(
            feature, name_filter=ScenarioNameFilter(["Addition"])
        )
        assert result.total == 1
        assert result.passed


class TestResultSerialization:
    """Tests for result dictionaries."""

    def test_scenario_to_dict(self):
        """Test scenario results serialize status, steps and error."""
        feature = parse("Feature: F\n  Scenario: S\n    Given missing\n    Then later\n")
        result = ScenarioRunner(StepRegistry()).run_sync(feature.scenarios[0], feature=feature)

        data = result.to_dict()

        assert data["name"] == "S"
        assert data["status"] == "failed"
        assert [s["status"] for s in data["steps"]] == ["undefined", "skipped"]
        assert data["error"].startswith("inline.feature:3")
