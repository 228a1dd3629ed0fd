"""
Scenario selection filters.

TagFilter decides inclusion from a scenario's tags (feature tags unioned
with scenario tags):

    included = no include tags configured, or any tag is an include tag
    excluded = any tag is an exclude tag
    result   = included and not excluded

Exclusion always wins. Two filters merge by unioning their include sets and
their exclude sets, so a filter from code and a filter from the environment
compose without either being dropped.

ScenarioNameFilter selects scenarios by case-insensitive exact name.

Environment variables:
    GHERKIN_TAGS=smoke,critical
    GHERKIN_EXCLUDE_TAGS=wip
    GHERKIN_SCENARIOS="Adding two numbers,Subtracting"
"""

import os
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Mapping, Optional

TAGS_ENV = "GHERKIN_TAGS"
EXCLUDE_TAGS_ENV = "GHERKIN_EXCLUDE_TAGS"
SCENARIOS_ENV = "GHERKIN_SCENARIOS"


def parse_tag_list(value: Optional[str]) -> FrozenSet[str]:
    """Parse a comma-separated tag list; surrounding spaces and '@' are dropped."""
    if not value:
        return frozenset()
    tags = (item.strip().lstrip("@") for item in value.split(","))
    return frozenset(tag for tag in tags if tag)


def _tag_set(tags: Iterable[str]) -> FrozenSet[str]:
    # A bare string is a comma-separated list, not a sequence of characters
    if isinstance(tags, str):
        return parse_tag_list(tags)
    return frozenset(tag.lstrip("@") for tag in tags)


@dataclass(frozen=True, init=False)
class TagFilter:
    """
    Include/exclude policy over tag sets.

    Attributes:
        include_tags: Any match includes; empty means include everything
        exclude_tags: Any match excludes; overrides include_tags
    """

    include_tags: FrozenSet[str] = frozenset()
    exclude_tags: FrozenSet[str] = frozenset()

    def __init__(self, include_tags: Iterable[str] = (), exclude_tags: Iterable[str] = ()):
        object.__setattr__(self, "include_tags", _tag_set(include_tags))
        object.__setattr__(self, "exclude_tags", _tag_set(exclude_tags))

    @property
    def is_empty(self) -> bool:
        return not self.include_tags and not self.exclude_tags

    def should_include(self, tags: Iterable[str]) -> bool:
        """Decide whether a scenario carrying ``tags`` runs."""
        tag_set = set(tags)
        if tag_set & self.exclude_tags:
            return False
        return not self.include_tags or bool(tag_set & self.include_tags)

    def merge(self, other: Optional["TagFilter"]) -> "TagFilter":
        """Union both include sets and both exclude sets."""
        if other is None:
            return self
        return TagFilter(
            include_tags=self.include_tags | other.include_tags,
            exclude_tags=self.exclude_tags | other.exclude_tags,
        )

    @classmethod
    def from_strings(
        cls, include: Optional[str] = None, exclude: Optional[str] = None
    ) -> "TagFilter":
        return cls(parse_tag_list(include), parse_tag_list(exclude))

    @classmethod
    def from_environment(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> Optional["TagFilter"]:
        """
        Build a filter from GHERKIN_TAGS / GHERKIN_EXCLUDE_TAGS.

        Returns:
            TagFilter, or None when neither variable is set
        """
        env = os.environ if environ is None else environ
        raw_include = env.get(TAGS_ENV)
        raw_exclude = env.get(EXCLUDE_TAGS_ENV)
        if raw_include is None and raw_exclude is None:
            return None
        return cls.from_strings(raw_include, raw_exclude)


@dataclass(frozen=True, init=False)
class ScenarioNameFilter:
    """Selects scenarios by name, case-insensitively and exactly."""

    names: FrozenSet[str] = frozenset()

    def __init__(self, names: Iterable[str] = ()):
        object.__setattr__(self, "names", frozenset(n.strip().lower() for n in names))

    def should_include(self, name: str) -> bool:
        return name.strip().lower() in self.names

    def merge(self, other: Optional["ScenarioNameFilter"]) -> "ScenarioNameFilter":
        if other is None:
            return self
        return ScenarioNameFilter(self.names | other.names)

    @classmethod
    def from_environment(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> Optional["ScenarioNameFilter"]:
        """Build a filter from GHERKIN_SCENARIOS; None if unset or empty."""
        env = os.environ if environ is None else environ
        raw = env.get(SCENARIOS_ENV)
        if raw is None:
            return None
        names = [name.strip() for name in raw.split(",") if name.strip()]
        if not names:
            return None
        return cls(names)
