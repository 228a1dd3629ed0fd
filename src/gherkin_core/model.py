"""
Abstract syntax tree for parsed feature files.

Every node is a frozen dataclass holding tuples, so a parsed Feature can be
shared freely between runs, compared for equality, and hashed. Nodes are
built once by the parser or the outline expander and never mutated.

Example usage:
    from gherkin_core import GherkinParser

    feature = GherkinParser().parse(source, source_file="cart.feature")
    for definition in feature.scenarios:
        print(definition.name, definition.tags)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union


class Keyword(str, Enum):
    """Step keyword as written in the source."""

    GIVEN = "Given"
    WHEN = "When"
    THEN = "Then"
    AND = "And"
    BUT = "But"

    @property
    def is_conjunction(self) -> bool:
        return self in (Keyword.AND, Keyword.BUT)


# Keywords a conjunction can resolve to
CONCRETE_KEYWORDS = (Keyword.GIVEN, Keyword.WHEN, Keyword.THEN)


@dataclass(frozen=True)
class DataTable:
    """
    Tabular step argument.

    The first row is a header by convention only; the parser does not treat
    it specially.
    """

    rows: Tuple[Tuple[str, ...], ...]

    @property
    def headers(self) -> Tuple[str, ...]:
        return self.rows[0] if self.rows else ()

    @property
    def data_rows(self) -> Tuple[Tuple[str, ...], ...]:
        return self.rows[1:]

    def as_dicts(self) -> List[Dict[str, str]]:
        """Return data rows as dictionaries keyed by header cells."""
        headers = self.headers
        return [dict(zip(headers, row)) for row in self.data_rows]

    def __len__(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class DocString:
    """Free-text step argument. Content is kept verbatim between the fences."""

    content: str
    content_type: Optional[str] = None

    def __str__(self) -> str:
        return self.content


@dataclass(frozen=True)
class Step:
    """
    One Given/When/Then/And/But line.

    Attributes:
        keyword: Keyword exactly as written
        text: Step text after the keyword
        resolved_keyword: Given/When/Then this step matches as; And/But take
            the keyword of the nearest preceding concrete step in the block
        data_table: Attached table argument, if any
        doc_string: Attached doc-string argument, if any
        source_line: 1-based line number of the step
    """

    keyword: Keyword
    text: str
    resolved_keyword: Keyword
    data_table: Optional[DataTable] = None
    doc_string: Optional[DocString] = None
    source_line: int = 0

    def __str__(self) -> str:
        return f"{self.keyword.value} {self.text}"


@dataclass(frozen=True)
class Background:
    steps: Tuple[Step, ...] = ()
    source_line: int = 0


@dataclass(frozen=True)
class Scenario:
    """One concrete, executable sequence of steps."""

    name: str
    tags: Tuple[str, ...] = ()
    steps: Tuple[Step, ...] = ()
    source_line: int = 0


@dataclass(frozen=True)
class ExamplesTable:
    """
    One Examples block of a Scenario Outline.

    Attributes:
        header: Column names, in order
        rows: Data rows, each aligned with header
        tags: Tags written above the Examples keyword
        source_line: Line of the Examples keyword
    """

    header: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...] = ()
    tags: Tuple[str, ...] = ()
    source_line: int = 0


@dataclass(frozen=True)
class ScenarioOutline:
    """A step template expanded once per Examples row. Never run directly."""

    name: str
    tags: Tuple[str, ...] = ()
    steps: Tuple[Step, ...] = ()
    examples: Tuple[ExamplesTable, ...] = ()
    source_line: int = 0


ScenarioDefinition = Union[Scenario, ScenarioOutline]


@dataclass(frozen=True)
class Feature:
    """
    One parsed source unit.

    Attributes:
        name: Feature name (non-empty)
        description_lines: Free-text lines between Feature and the first block
        tags: Feature tags in source order (may repeat)
        background: Shared Background, if any
        scenarios: Scenarios and outlines in source order
        source_file: Identifier of the source unit (path or name)
    """

    name: str
    description_lines: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    background: Optional[Background] = None
    scenarios: Tuple[ScenarioDefinition, ...] = ()
    source_file: Optional[str] = None

    @property
    def description(self) -> str:
        return "\n".join(self.description_lines)

    @property
    def outlines(self) -> List[ScenarioOutline]:
        return [d for d in self.scenarios if isinstance(d, ScenarioOutline)]


def combine_tags(*groups: Tuple[str, ...]) -> Tuple[str, ...]:
    """Union of tag groups in first-seen order."""
    seen: Dict[str, None] = {}
    for group in groups:
        for tag in group:
            seen.setdefault(tag, None)
    return tuple(seen)


def location(source_file: Optional[str], line: int) -> str:
    """Render a ``file:line`` location, tolerating a missing file name."""
    return f"{source_file or '<string>'}:{line}"

