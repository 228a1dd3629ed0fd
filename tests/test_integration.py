"""End-to-end tests: parse, expand, filter, run and report."""

import io

import pytest

from gherkin_core import (
    ConsoleReporter,
    FeaturePath,
    GherkinParser,
    OutlineExpander,
    ReportGenerator,
    ReportResultCollector,
    ScenarioRunner,
    StepRegistry,
    StepStatus,
    TagFilter,
    load_features,
)


class TestBasicArithmetic:
    """Run the arithmetic feature from file to report."""

    @pytest.mark.asyncio
    async def test_feature_passes(self, load_fixture, arithmetic_registry):
        """Test both scenarios pass and produce a passing report."""
        feature = load_fixture("basic")
        assert feature.name == "Basic arithmetic"
        assert feature.description == (
            "As a user\nI want to perform basic math\nSo that I can verify calculations"
        )

        collector = ReportResultCollector()
        collector.record_feature(await ScenarioRunner(arithmetic_registry).run_feature(feature))
        run = collector.build_test_run_result()

        assert run.passed
        assert run.total_scenario_count == 2
        assert run.step_count(StepStatus.PASSED) == 6

        report = ReportGenerator(run).to_dict()
        assert report["status"] == "passed"
        assert [s["name"] for s in report["features"][0]["scenarios"]] == [
            "Addition",
            "Subtraction",
        ]


class TestOutlineExpansion:
    """Expand the fruit basket outline."""

    def test_four_scenarios(self, load_fixture):
        """Test four rows expand to four three-step scenarios."""
        expanded = OutlineExpander().expand(load_fixture("with_outline"))

        assert len(expanded.scenarios) == 4
        assert all(len(s.steps) == 3 for s in expanded.scenarios)
        assert str(expanded.scenarios[2].steps[0]) == "Given I have 8 fruits"


class TestTagSelection:
    """Select scenarios of the tagged feature."""

    @pytest.mark.asyncio
    async def test_exclude_wip(self, load_fixture):
        """Test excluding @wip runs the other two scenarios."""
        feature = load_fixture("with_tags")
        registry = StepRegistry()
        ran = []
        registry.given(r"an? (\w+) step", lambda m: ran.append(m.captures[0]))

        result = await ScenarioRunner(registry).run_feature(
            feature, tag_filter=TagFilter(exclude_tags=["wip"])
        )

        assert feature.tags == ("smoke",)
        assert result.total == 2
        assert ran == ["fast", "slow"]
        assert all("smoke" in r.tags for r in result.scenario_results)


class TestDirectoryRun:
    """Load every fixture and run with a catch-all registry."""

    def test_all_fixtures(self, fixtures_dir):
        """Test every fixture runs and tables and doc strings reach handlers."""
        loaded = load_features([FeaturePath.parse(str(fixtures_dir) + "/")], GherkinParser())
        seen = {}

        def factory():
            registry = StepRegistry()

            @registry.given(r"the following users exist:")
            def users(match):
                seen["users"] = [row["name"] for row in match.data_table.as_dicts()]

            @registry.given(r"the API returns:")
            def api(match):
                seen["content_type"] = match.doc_string.content_type

            registry.step(
                r"(?!the following users exist:|the API returns:).*", lambda m: None
            )
            return registry

        runner = ScenarioRunner()
        collector = ReportResultCollector()
        for item in loaded.features:
            collector.record_feature(
                runner.run_feature_sync(item.feature, registry_factory=factory, lines=item.lines)
            )
        run = collector.build_test_run_result()

        assert run.passed
        assert run.total_feature_count == 6
        assert seen == {"users": ["Alice", "Bob", "Charlie"], "content_type": "json"}

        output = io.StringIO()
        ConsoleReporter(run, output=output).print_summary()
        assert "Features:  6/6 passed" in output.getvalue()
