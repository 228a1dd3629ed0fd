"""Shared fixtures for gherkin-core tests."""

from pathlib import Path

import pytest

from gherkin_core import GherkinParser, StepRegistry

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def parser() -> GherkinParser:
    return GherkinParser()


@pytest.fixture
def load_fixture(parser):
    """Parse tests/fixtures/<name>.feature."""

    def _load(name: str):
        return parser.parse_file(FIXTURES_DIR / f"{name}.feature")

    return _load


@pytest.fixture
def arithmetic_registry():
    """Registry implementing the basic.feature steps; state lives in registry.state."""
    registry = StepRegistry()
    state = {"value": 0}

    @registry.given(r"I have the number (\d+)")
    def have_number(match):
        state["value"] = int(match.captures[0])

    @registry.when(r"I add (\d+)")
    def add(match):
        state["value"] += int(match.captures[0])

    @registry.when(r"I subtract (\d+)")
    def subtract(match):
        state["value"] -= int(match.captures[0])

    @registry.then(r"the result should be (\d+)")
    def check(match):
        assert state["value"] == int(match.captures[0])

    registry.state = state
    return registry


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep GHERKIN_* variables from the outer shell out of tests."""
    for name in (
        "GHERKIN_TAGS",
        "GHERKIN_EXCLUDE_TAGS",
        "GHERKIN_SCENARIOS",
        "GHERKIN_FEATURES",
        "GHERKIN_STEP_DEFINITIONS",
    ):
        monkeypatch.delenv(name, raising=False)
