"""
gherkin-core: Parse, expand and run Gherkin feature files.

This package provides a behavior-driven testing engine. It supports:

- Parser: Feature, Background, Scenario, Scenario Outline, Examples, tags,
  data tables and doc strings, with line-accurate errors
- Outline expansion: one concrete scenario per Examples row
- Step registry: regex patterns bound to sync or async handlers, with
  undefined and ambiguous step detection
- Runner: background then scenario steps, failure short-circuiting,
  per-step results
- Filters: tags, scenario names and file:line targeting, also from the
  environment
- Reporting: thread-safe result collection, JSON and console reports

Quick Start:
    import asyncio
    from gherkin_core import GherkinParser, ScenarioRunner, StepRegistry

    feature = GherkinParser().parse('''
    Feature: Basic arithmetic
      Scenario: Adding two numbers
        Given I have the number 5
        When I add 3
        Then the result should be 8
    ''')

    registry = StepRegistry()
    state = {}

    @registry.given(r"I have the number (\\d+)")
    def have_number(match):
        state["value"] = int(match.captures[0])

    @registry.when(r"I add (\\d+)")
    def add(match):
        state["value"] += int(match.captures[0])

    @registry.then(r"the result should be (\\d+)")
    def check(match):
        assert state["value"] == int(match.captures[0])

    result = asyncio.run(ScenarioRunner(registry).run_feature(feature))
    print(f"{result.passed_count}/{result.total} scenarios passed")

Configuration from YAML:
    from gherkin_core import load_config, load_features

    config = load_config("gherkin.yaml").apply_environment()
    loaded = load_features(config.features)
"""

__version__ = "0.1.0"

# Model exports
from .model import (
    Background,
    DataTable,
    DocString,
    ExamplesTable,
    Feature,
    Keyword,
    Scenario,
    ScenarioDefinition,
    ScenarioOutline,
    Step,
)

# Error exports
from .errors import (
    AmbiguousStepError,
    ConfigError,
    ExpansionError,
    GherkinError,
    InvalidPatternError,
    ParseError,
    StepError,
    StepFailedError,
    UndefinedStepError,
)

# Parsing exports
from .parser import GherkinParser, ParseBatch
from .outline import ExpandedFeature, ExpandedScenario, OutlineExpander
from .paths import FeatureLoad, FeaturePath, LoadedFeature, load_features

# Filter exports
from .filters import ScenarioNameFilter, TagFilter

# Registry exports
from .registry import (
    ANY,
    StepDefinition,
    StepDefinitions,
    StepMatch,
    StepRegistration,
    StepRegistry,
    given,
    register_module,
    step,
    then,
    when,
)

# Runner exports
from .runner import (
    FeatureResult,
    ScenarioResult,
    ScenarioRunner,
    StepResult,
    StepStatus,
)

# Reporter exports
from .reporter import (
    ConsoleReporter,
    ReportGenerator,
    ReportResultCollector,
    TestRunResult,
)

# Configuration exports
from .config import GherkinConfig, load_config

__all__ = [
    # Version
    "__version__",
    # Model
    "Background",
    "DataTable",
    "DocString",
    "ExamplesTable",
    "Feature",
    "Keyword",
    "Scenario",
    "ScenarioDefinition",
    "ScenarioOutline",
    "Step",
    # Errors
    "GherkinError",
    "ParseError",
    "ExpansionError",
    "InvalidPatternError",
    "ConfigError",
    "StepError",
    "UndefinedStepError",
    "AmbiguousStepError",
    "StepFailedError",
    # Parsing
    "GherkinParser",
    "ParseBatch",
    "OutlineExpander",
    "ExpandedFeature",
    "ExpandedScenario",
    "FeaturePath",
    "FeatureLoad",
    "LoadedFeature",
    "load_features",
    # Filters
    "TagFilter",
    "ScenarioNameFilter",
    # Registry
    "ANY",
    "StepRegistry",
    "StepRegistration",
    "StepMatch",
    "StepDefinition",
    "StepDefinitions",
    "given",
    "when",
    "then",
    "step",
    "register_module",
    # Runner
    "ScenarioRunner",
    "ScenarioResult",
    "StepResult",
    "StepStatus",
    "FeatureResult",
    # Reporter
    "ReportResultCollector",
    "TestRunResult",
    "ReportGenerator",
    "ConsoleReporter",
    # Config
    "GherkinConfig",
    "load_config",
]
