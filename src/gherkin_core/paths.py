"""
Feature path specifications and feature discovery.

A path spec names a feature file or a directory, optionally followed by
line numbers that target individual scenarios:

    features/                      every *.feature file below the directory
    features/login.feature         one file, every scenario
    features/login.feature:10:25   only the scenarios covering lines 10 and 25

A line selects the scenario whose definition starts at the largest source
line <= that line. Every row of an outline shares the outline's source line,
so targeting an outline selects all of its rows.

Environment variable:
    GHERKIN_FEATURES="features/login.feature:10 features/signup/"

Paths containing spaces cannot be given through the environment variable.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .errors import ParseError
from .model import Feature
from .parser import GherkinParser

logger = logging.getLogger(__name__)

FEATURES_ENV = "GHERKIN_FEATURES"
FEATURE_SUFFIX = ".feature"


@dataclass(frozen=True)
class FeaturePath:
    """
    A parsed path spec.

    Attributes:
        path: Resolved, normalized filesystem path
        lines: Line numbers for scenario targeting; empty means all scenarios
        is_directory: True when the path names a directory of feature files
    """

    path: str
    lines: Tuple[int, ...] = ()
    is_directory: bool = False

    @classmethod
    def parse(
        cls, raw: str, relative_to: Optional[Union[str, Path]] = None
    ) -> Optional["FeaturePath"]:
        """
        Parse ``file.feature:10:25`` or ``dir/``.

        Args:
            raw: Path spec; trailing positive integer components are lines
            relative_to: Base for relative paths (default: current directory)

        Returns:
            FeaturePath, or None for blank input
        """
        trimmed = raw.strip()
        if not trimmed:
            return None

        components = trimmed.split(":")
        path_part = components[0]
        lines: List[int] = []
        for component in components[1:]:
            if component.isdigit() and int(component) > 0:
                lines.append(int(component))
            else:
                path_part += ":" + component

        base = Path(relative_to) if relative_to is not None else Path.cwd()
        resolved = os.path.normpath(str(base / path_part))

        if path_part.endswith("/"):
            is_directory = True
        else:
            is_directory = os.path.isdir(resolved)

        return cls(path=resolved, lines=tuple(lines), is_directory=is_directory)

    @classmethod
    def parse_list(
        cls, value: str, relative_to: Optional[Union[str, Path]] = None
    ) -> List["FeaturePath"]:
        """Parse a whitespace-separated list of path specs."""
        paths = (cls.parse(item, relative_to) for item in value.split())
        return [p for p in paths if p is not None]

    @classmethod
    def from_environment(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> Optional[List["FeaturePath"]]:
        """Paths from GHERKIN_FEATURES, or None if unset or blank."""
        env = os.environ if environ is None else environ
        value = env.get(FEATURES_ENV, "")
        if not value.strip():
            return None
        return cls.parse_list(value) or None

    def feature_files(self) -> List[Path]:
        """
        Files this spec refers to.

        Directories are searched recursively for *.feature files, sorted by
        path. A missing directory yields nothing.
        """
        if self.is_directory:
            root = Path(self.path)
            if not root.is_dir():
                logger.warning("Feature directory not found: %s", root)
                return []
            return sorted(p for p in root.rglob(f"*{FEATURE_SUFFIX}") if p.is_file())
        return [Path(self.path)]

    def __str__(self) -> str:
        return ":".join([self.path, *(str(line) for line in self.lines)])


def scenario_matches_lines(source_line: int, lines: Iterable[int], feature: Feature) -> bool:
    """
    Check whether a scenario starting at ``source_line`` is targeted.

    Args:
        source_line: Source line of the scenario (or its outline)
        lines: Requested line numbers
        feature: Feature the scenario belongs to

    Returns:
        True if any requested line falls inside the scenario's range
    """
    starts = sorted(definition.source_line for definition in feature.scenarios)
    for line in lines:
        owners = [start for start in starts if start <= line]
        if owners and owners[-1] == source_line:
            return True
    return False


@dataclass(frozen=True)
class LoadedFeature:
    """A parsed feature plus the lines its path spec targeted (empty = all)."""

    feature: Feature
    lines: Tuple[int, ...] = ()


@dataclass
class FeatureLoad:
    """
    Outcome of loading the features a set of path specs names.

    Attributes:
        features: Parsed features with their line selections, in load order
        errors: Parse errors keyed by file (only when not failing fast)
    """

    features: List[LoadedFeature] = field(default_factory=list)
    errors: Dict[str, ParseError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def load_features(
    paths: Sequence[FeaturePath],
    parser: Optional[GherkinParser] = None,
    fail_fast: bool = True,
) -> FeatureLoad:
    """
    Parse every feature file the given specs name.

    A file named by several specs is parsed once; line selections of the
    specs naming it are combined, and any spec without lines selects the
    whole file.

    Args:
        paths: Path specs
        parser: Parser to use (default: a new GherkinParser)
        fail_fast: Re-raise the first ParseError instead of collecting

    Raises:
        ParseError: On the first malformed file when failing fast
        FileNotFoundError: If an explicitly named file does not exist
    """
    parser = parser or GherkinParser()
    order: List[Path] = []
    selections: Dict[str, Optional[Set[int]]] = {}

    for spec in paths:
        for file_path in spec.feature_files():
            key = str(file_path)
            if key not in selections:
                order.append(file_path)
                selections[key] = set(spec.lines) if spec.lines else None
            elif selections[key] is not None:
                if spec.lines:
                    selections[key].update(spec.lines)
                else:
                    selections[key] = None

    batch = parser.parse_paths(order, fail_fast=fail_fast)
    result = FeatureLoad(errors=dict(batch.errors))
    for feature in batch.features:
        lines = selections.get(feature.source_file or "")
        result.features.append(
            LoadedFeature(feature=feature, lines=tuple(sorted(lines)) if lines else ())
        )
        logger.debug("Loaded %s (%d scenario(s))", feature.source_file, len(feature.scenarios))
    return result
