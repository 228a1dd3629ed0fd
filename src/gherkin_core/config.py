"""
Configuration handling for gherkin runs.

Settings come from a YAML file, a dictionary, or both combined with the
environment. Filters from the environment are merged with configured ones
(tags and names are unioned, nothing is dropped); GHERKIN_FEATURES replaces
the configured feature list.

Example YAML configuration:
    features:
      - features/
      - features/login.feature:12
    tags: [smoke]
    exclude_tags: [wip]
    scenarios:
      - Adding two numbers
    steps:
      - tests.steps.arithmetic
    report_path: reports/gherkin.json
    verbose: false
    fail_fast: true

Example usage:
    from gherkin_core.config import load_config

    config = load_config("gherkin.yaml").apply_environment()
    for spec in config.features:
        print(spec)
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Union

import yaml

from .errors import ConfigError
from .filters import ScenarioNameFilter, TagFilter, parse_tag_list
from .paths import FeaturePath
from .registry import step_definition_filter_from_environment

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("gherkin.yaml", "gherkin.yml", ".gherkin.yaml")
KNOWN_KEYS = frozenset(
    ["features", "tags", "exclude_tags", "scenarios", "steps", "report_path", "verbose", "fail_fast"]
)


def _string_list(data: Dict[str, Any], key: str, comma_separated: bool = False) -> List[str]:
    """Read a list of strings; a single string is accepted as a one-item list."""
    value = data.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        if comma_separated:
            return sorted(parse_tag_list(value))
        return [value]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"'{key}' must be a string or a list of strings, got {value!r}")
    return list(value)


def _bool(data: Dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false, got {value!r}")
    return value


class GherkinConfig:
    """
    Configuration container for a gherkin run.

    Attributes:
        features: Feature path specs to load
        tag_filter: Include/exclude tag policy
        name_filter: Scenario names to run (None = all)
        steps: Importable module names providing step definitions
        step_classes: StepDefinitions class names to use (None = all)
        report_path: Path for the JSON report (None = no report file)
        verbose: Enable verbose console output
        fail_fast: Stop at the first feature file that fails to parse
    """

    def __init__(
        self,
        features: Optional[List[FeaturePath]] = None,
        tag_filter: Optional[TagFilter] = None,
        name_filter: Optional[ScenarioNameFilter] = None,
        steps: Optional[List[str]] = None,
        step_classes: Optional[FrozenSet[str]] = None,
        report_path: Optional[str] = None,
        verbose: bool = False,
        fail_fast: bool = True,
    ):
        self.features = features or []
        self.tag_filter = tag_filter or TagFilter()
        self.name_filter = name_filter
        self.steps = steps or []
        self.step_classes = step_classes
        self.report_path = report_path
        self.verbose = verbose
        self.fail_fast = fail_fast

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], base_dir: Optional[Union[str, Path]] = None
    ) -> "GherkinConfig":
        """
        Create configuration from a dictionary.

        Args:
            data: Configuration dictionary
            base_dir: Directory relative feature paths resolve against

        Raises:
            ConfigError: If a value has the wrong type
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}")

        unknown = sorted(set(data) - KNOWN_KEYS)
        if unknown:
            logger.warning("Ignoring unknown configuration key(s): %s", ", ".join(unknown))

        features = [
            spec
            for raw in _string_list(data, "features")
            for spec in [FeaturePath.parse(raw, relative_to=base_dir)]
            if spec is not None
        ]
        names = _string_list(data, "scenarios")
        report_path = data.get("report_path")
        if report_path is not None and not isinstance(report_path, str):
            raise ConfigError(f"'report_path' must be a string, got {report_path!r}")

        return cls(
            features=features,
            tag_filter=TagFilter(
                _string_list(data, "tags", comma_separated=True),
                _string_list(data, "exclude_tags", comma_separated=True),
            ),
            name_filter=ScenarioNameFilter(names) if names else None,
            steps=_string_list(data, "steps"),
            report_path=report_path,
            verbose=_bool(data, "verbose", False),
            fail_fast=_bool(data, "fail_fast", True),
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "GherkinConfig":
        """
        Load configuration from a YAML file.

        Relative feature paths resolve against the file's directory.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ConfigError: If the YAML is malformed or has invalid values
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            data = {}
        logger.debug("Loaded configuration from %s", path)
        return cls.from_dict(data, base_dir=path.parent)

    def apply_environment(self, environ: Optional[Mapping[str, str]] = None) -> "GherkinConfig":
        """
        Merge GHERKIN_* environment variables into this configuration.

        Returns:
            self, for chaining
        """
        env = os.environ if environ is None else environ

        self.tag_filter = self.tag_filter.merge(TagFilter.from_environment(env))

        env_names = ScenarioNameFilter.from_environment(env)
        if env_names is not None:
            self.name_filter = env_names.merge(self.name_filter)

        env_features = FeaturePath.from_environment(env)
        if env_features is not None:
            self.features = env_features

        env_classes = step_definition_filter_from_environment(env)
        if env_classes is not None:
            self.step_classes = env_classes | (self.step_classes or frozenset())

        return self


def discover_config(directory: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Find the first of gherkin.yaml, gherkin.yml, .gherkin.yaml in a directory."""
    root = Path(directory) if directory is not None else Path.cwd()
    for name in CONFIG_FILENAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None


def load_config(source: Union[str, Path, Dict[str, Any], None] = None) -> GherkinConfig:
    """
    Load configuration from various sources.

    Convenience function that accepts:
    - Path to YAML file (str or Path)
    - Configuration dictionary
    - None: discover a config file in the current directory, or use defaults

    Returns:
        GherkinConfig instance
    """
    if isinstance(source, dict):
        return GherkinConfig.from_dict(source)
    if source is None:
        found = discover_config()
        if found is None:
            return GherkinConfig()
        return GherkinConfig.from_yaml(found)
    return GherkinConfig.from_yaml(source)
