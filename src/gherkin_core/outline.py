"""
Scenario Outline expansion.

Turns each ScenarioOutline into one concrete Scenario per Examples row.
Rows of several Examples blocks are concatenated in file order (never
combined as a cross-product), so an outline with blocks of r1..rn rows
yields r1 + ... + rn scenarios, each with exactly the template's steps.

Substitution is a plain textual replace of ``<column>`` tokens in step text,
data table cells and doc-string content. A token naming a column the active
Examples header does not have fails that single row with ExpansionError;
sibling rows still expand.

Example usage:
    from gherkin_core.outline import OutlineExpander

    expanded = OutlineExpander().expand(feature)
    for scenario in expanded.scenarios:
        print(scenario.name, len(scenario.steps))
    for error in expanded.errors:
        print(error)
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import ExpansionError
from .model import (
    Background,
    DataTable,
    Feature,
    Scenario,
    ScenarioOutline,
    Step,
    combine_tags,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"<([^<>\s](?:[^<>]*[^<>\s])?)>")


@dataclass(frozen=True)
class ExpandedScenario:
    """
    One entry of an expanded feature, in source order.

    Exactly one of ``scenario`` and ``error`` is set.

    Attributes:
        scenario: Concrete scenario ready to run
        error: Expansion failure for an outline row
        outline: Outline the entry came from (None for plain scenarios)
        examples_index: 0-based Examples block index within the outline
        row_index: 0-based row index within the Examples block
    """

    scenario: Optional[Scenario] = None
    error: Optional[ExpansionError] = None
    outline: Optional[ScenarioOutline] = None
    examples_index: int = 0
    row_index: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ExpandedFeature:
    """A Feature with every outline replaced by its concrete scenarios."""

    feature: Feature
    entries: Tuple[ExpandedScenario, ...] = field(default_factory=tuple)

    @property
    def background(self) -> Optional[Background]:
        return self.feature.background

    @property
    def scenarios(self) -> List[Scenario]:
        return [e.scenario for e in self.entries if e.scenario is not None]

    @property
    def errors(self) -> List[ExpansionError]:
        return [e.error for e in self.entries if e.error is not None]


class OutlineExpander:
    """Expands Scenario Outlines into concrete Scenarios."""

    def expand(self, feature: Feature) -> ExpandedFeature:
        """
        Expand every outline in a feature. Plain scenarios pass through.

        Args:
            feature: Parsed feature

        Returns:
            ExpandedFeature with entries in source order
        """
        entries: List[ExpandedScenario] = []
        for definition in feature.scenarios:
            if isinstance(definition, ScenarioOutline):
                entries.extend(self.expand_outline(definition, feature.source_file))
            else:
                entries.append(ExpandedScenario(scenario=definition))

        failed = sum(1 for e in entries if not e.ok)
        if failed:
            logger.warning(
                "%d outline row(s) in %s could not be expanded",
                failed,
                feature.source_file or feature.name,
            )
        return ExpandedFeature(feature=feature, entries=tuple(entries))

    def expand_outline(
        self, outline: ScenarioOutline, source_file: Optional[str] = None
    ) -> List[ExpandedScenario]:
        """Expand a single outline, one entry per Examples row."""
        entries: List[ExpandedScenario] = []
        multiple = len(outline.examples) > 1

        for examples_index, examples in enumerate(outline.examples):
            for row_index, row in enumerate(examples.rows):
                if multiple:
                    name = f"{outline.name} [Examples {examples_index + 1}, Row {row_index + 1}]"
                else:
                    name = f"{outline.name} [Row {row_index + 1}]"

                values = dict(zip(examples.header, row))
                missing = _missing_columns(outline.steps, values)
                if missing:
                    error = ExpansionError(
                        outline_name=outline.name,
                        row_name=name,
                        missing=missing,
                        line=outline.source_line,
                        source_file=source_file,
                    )
                    entries.append(
                        ExpandedScenario(
                            error=error,
                            outline=outline,
                            examples_index=examples_index,
                            row_index=row_index,
                        )
                    )
                    continue

                scenario = Scenario(
                    name=name,
                    tags=combine_tags(outline.tags, examples.tags),
                    steps=tuple(_substitute_step(step, values) for step in outline.steps),
                    source_line=outline.source_line,
                )
                entries.append(
                    ExpandedScenario(
                        scenario=scenario,
                        outline=outline,
                        examples_index=examples_index,
                        row_index=row_index,
                    )
                )
        return entries


def _placeholders(step: Step) -> List[str]:
    texts = [step.text]
    if step.data_table is not None:
        texts.extend(cell for row in step.data_table.rows for cell in row)
    if step.doc_string is not None:
        texts.append(step.doc_string.content)
    names: List[str] = []
    for text in texts:
        names.extend(PLACEHOLDER_PATTERN.findall(text))
    return names


def _missing_columns(steps: Sequence[Step], values: Dict[str, str]) -> List[str]:
    missing: Dict[str, None] = {}
    for step in steps:
        for name in _placeholders(step):
            if name not in values:
                missing.setdefault(name, None)
    return list(missing)


def _substitute(text: str, values: Dict[str, str]) -> str:
    return PLACEHOLDER_PATTERN.sub(lambda m: values.get(m.group(1), m.group(0)), text)


def _substitute_step(step: Step, values: Dict[str, str]) -> Step:
    table = step.data_table
    if table is not None:
        table = DataTable(
            rows=tuple(tuple(_substitute(cell, values) for cell in row) for row in table.rows)
        )
    doc_string = step.doc_string
    if doc_string is not None:
        doc_string = replace(doc_string, content=_substitute(doc_string.content, values))
    return replace(
        step,
        text=_substitute(step.text, values),
        data_table=table,
        doc_string=doc_string,
    )
