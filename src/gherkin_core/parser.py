"""
Gherkin source parser.

Turns the text of one feature file into a Feature. The parser is a line
oriented state machine:

    idle -> in-feature -> in-background -> in-scenario / in-outline
                                         in-outline -> in-examples
    any step block -> in-doc-string -> back to the same block

Grammar, top to bottom:
    @tags
    Feature: name
      free-text description
      Background:
        Given ...
      @tags
      Scenario: name
        Given ...
          | table | row |
        When ...
          \"\"\"json
          doc string
          \"\"\"
      @tags
      Scenario Outline: name
        Given I have <count> items
        @tags
        Examples:
          | count |
          | 3     |

Parsing is all-or-nothing: any structural error raises ParseError naming the
file and line, and no partial Feature is returned.

Example usage:
    from gherkin_core.parser import GherkinParser

    parser = GherkinParser()
    feature = parser.parse(Path("cart.feature").read_text(), "cart.feature")
    batch = parser.parse_paths(["a.feature", "b.feature"], fail_fast=False)
"""

import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .errors import GherkinError, ParseError
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

logger = logging.getLogger(__name__)

FEATURE_KEYWORDS = ("Feature:",)
BACKGROUND_KEYWORDS = ("Background:",)
SCENARIO_KEYWORDS = ("Scenario:", "Example:")
OUTLINE_KEYWORDS = ("Scenario Outline:", "Scenario Template:")
EXAMPLES_KEYWORDS = ("Examples:", "Scenarios:")
DOC_STRING_FENCES = ('"""', "```")

TAG_PATTERN = re.compile(r"^@[A-Za-z0-9_-]+$")
LINE_BREAK = re.compile(r"\r?\n")


class ParseMode(Enum):
    IDLE = "idle"
    FEATURE = "in-feature"
    BACKGROUND = "in-background"
    SCENARIO = "in-scenario"
    OUTLINE = "in-outline"
    EXAMPLES = "in-examples"
    DOC_STRING = "in-doc-string"


# Modes in which step lines (and their arguments) are accepted
STEP_MODES = (ParseMode.BACKGROUND, ParseMode.SCENARIO, ParseMode.OUTLINE)


@dataclass
class _Block:
    """Background, Scenario or Scenario Outline under construction."""

    mode: ParseMode
    name: str
    tags: Tuple[str, ...]
    line: int
    steps: List[Step] = field(default_factory=list)
    examples: List[ExamplesTable] = field(default_factory=list)
    # Keyword And/But resolve to; reset for every block
    last_keyword: Optional[Keyword] = None
    # True while the last step can still take a table or doc string
    accepts_argument: bool = False


@dataclass
class _Examples:
    tags: Tuple[str, ...]
    line: int
    rows: List[Tuple[str, ...]] = field(default_factory=list)


@dataclass
class _DocString:
    fence: str
    content_type: Optional[str]
    indent: str
    line: int
    resume: ParseMode
    lines: List[str] = field(default_factory=list)


@dataclass
class _ParserState:
    source_file: Optional[str]
    mode: ParseMode = ParseMode.IDLE

    feature_name: Optional[str] = None
    feature_line: int = 0
    feature_tags: Tuple[str, ...] = ()
    description: List[str] = field(default_factory=list)
    background: Optional[Background] = None
    scenarios: List[ScenarioDefinition] = field(default_factory=list)

    pending_tags: List[str] = field(default_factory=list)
    pending_tags_line: int = 0

    block: Optional[_Block] = None
    examples: Optional[_Examples] = None
    doc_string: Optional[_DocString] = None

    table_rows: List[Tuple[str, ...]] = field(default_factory=list)


def _argument_block(state: _ParserState) -> _Block:
    """Block whose last step receives a finished table or doc string."""
    block = state.block
    if block is None or not block.steps:
        raise GherkinError("Step argument finished without a step to attach it to")
    return block


@dataclass
class ParseBatch:
    """
    Outcome of parsing several source units.

    Attributes:
        features: Successfully parsed features, in input order
        errors: Parse errors keyed by source identifier
    """

    features: List[Feature] = field(default_factory=list)
    errors: Dict[str, ParseError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class GherkinParser:
    """
    Parser for Gherkin feature sources.

    The parser keeps no state between calls; one instance can parse any
    number of sources, including concurrently.
    """

    def parse(self, source: str, source_file: Optional[str] = None) -> Feature:
        """
        Parse Gherkin source text into a Feature.

        Args:
            source: Feature text
            source_file: Identifier used in diagnostics and kept on the Feature

        Returns:
            The parsed Feature

        Raises:
            ParseError: If the source is structurally malformed
        """
        if source.startswith("\ufeff"):
            source = source[1:]
        # Only \n (or \r\n) ends a line; other separators are content
        lines = LINE_BREAK.split(source)
        if lines[-1] == "":
            lines.pop()
        state = _ParserState(source_file=source_file)

        for index, raw_line in enumerate(lines):
            self._process_line(raw_line, index + 1, state)

        feature = self._finish(state, len(lines))
        logger.debug(
            "Parsed feature %r from %s (%d definitions)",
            feature.name,
            source_file or "<string>",
            len(feature.scenarios),
        )
        return feature

    def parse_file(self, path: Union[str, Path]) -> Feature:
        """Parse a feature file from disk (UTF-8)."""
        path = Path(path)
        source = path.read_text(encoding="utf-8")
        return self.parse(source, source_file=str(path))

    def parse_paths(
        self,
        paths: Iterable[Union[str, Path]],
        fail_fast: bool = True,
    ) -> ParseBatch:
        """
        Parse several feature files independently.

        Args:
            paths: Feature file paths
            fail_fast: Re-raise the first ParseError instead of collecting

        Returns:
            ParseBatch with the parsed features and any collected errors
        """
        batch = ParseBatch()
        for path in paths:
            try:
                batch.features.append(self.parse_file(path))
            except ParseError as e:
                if fail_fast:
                    raise
                logger.warning("Skipping %s: %s", path, e)
                batch.errors[str(path)] = e
        return batch

    # =========================================================================
    # Line dispatch
    # =========================================================================

    def _process_line(self, raw_line: str, line_no: int, state: _ParserState) -> None:
        if state.mode == ParseMode.DOC_STRING:
            self._doc_string_line(raw_line, line_no, state)
            return

        stripped = raw_line.strip()
        if not stripped or stripped.startswith("#"):
            return

        if stripped.startswith("|"):
            self._table_row(stripped, line_no, state)
            return

        self._flush_table(state)

        if stripped.startswith("@"):
            self._tag_line(stripped, line_no, state)
            return

        fence = _fence_of(stripped)
        if fence is not None:
            self._open_doc_string(raw_line, stripped, fence, line_no, state)
            return

        if stripped.startswith(FEATURE_KEYWORDS):
            self._feature(stripped, line_no, state)
        elif stripped.startswith(BACKGROUND_KEYWORDS):
            self._background(line_no, state)
        elif stripped.startswith(OUTLINE_KEYWORDS):
            self._scenario(stripped, line_no, state, ParseMode.OUTLINE)
        elif stripped.startswith(SCENARIO_KEYWORDS):
            self._scenario(stripped, line_no, state, ParseMode.SCENARIO)
        elif stripped.startswith(EXAMPLES_KEYWORDS):
            self._examples(line_no, state)
        else:
            keyword = _step_keyword(stripped)
            if keyword is not None:
                self._step(stripped, keyword, line_no, state)
            else:
                self._free_text(stripped, line_no, state)

    # =========================================================================
    # Keyword handlers
    # =========================================================================

    def _feature(self, line: str, line_no: int, state: _ParserState) -> None:
        if state.feature_name is not None:
            raise ParseError(
                f"Second 'Feature:' (first at line {state.feature_line}); "
                "only one Feature per file",
                line_no,
                state.source_file,
            )
        name = _keyword_value(line, FEATURE_KEYWORDS)
        if not name:
            raise ParseError("Feature has no name", line_no, state.source_file)
        state.feature_name = name
        state.feature_line = line_no
        state.feature_tags = self._take_tags(state)
        state.mode = ParseMode.FEATURE

    def _background(self, line_no: int, state: _ParserState) -> None:
        self._require_feature("Background:", line_no, state)
        if state.pending_tags:
            raise ParseError(
                "Tags are not allowed on Background", state.pending_tags_line, state.source_file
            )
        if state.background is not None or (
            state.block is not None and state.block.mode == ParseMode.BACKGROUND
        ):
            raise ParseError(
                "Duplicate Background; only one per Feature is allowed",
                line_no,
                state.source_file,
            )
        if state.block is not None or state.scenarios:
            raise ParseError(
                "Background must come before the first Scenario", line_no, state.source_file
            )
        state.block = _Block(mode=ParseMode.BACKGROUND, name="", tags=(), line=line_no)
        state.mode = ParseMode.BACKGROUND

    def _scenario(self, line: str, line_no: int, state: _ParserState, mode: ParseMode) -> None:
        keywords = OUTLINE_KEYWORDS if mode == ParseMode.OUTLINE else SCENARIO_KEYWORDS
        self._require_feature(line.split(":", 1)[0] + ":", line_no, state)
        self._finish_block(state)
        state.block = _Block(
            mode=mode,
            name=_keyword_value(line, keywords),
            tags=self._take_tags(state),
            line=line_no,
        )
        state.mode = mode

    def _examples(self, line_no: int, state: _ParserState) -> None:
        block = state.block
        if block is None or block.mode != ParseMode.OUTLINE:
            raise ParseError(
                "'Examples:' outside a Scenario Outline", line_no, state.source_file
            )
        self._finish_examples(state)
        state.examples = _Examples(tags=self._take_tags(state), line=line_no)
        block.accepts_argument = False
        state.mode = ParseMode.EXAMPLES

    def _step(self, line: str, keyword: Keyword, line_no: int, state: _ParserState) -> None:
        if state.pending_tags:
            raise ParseError(
                "Tags must precede Feature, Scenario, Scenario Outline or Examples",
                state.pending_tags_line,
                state.source_file,
            )
        block = state.block
        if state.mode == ParseMode.EXAMPLES:
            raise ParseError(
                "Step after 'Examples:'; steps belong before the Examples blocks",
                line_no,
                state.source_file,
            )
        if state.mode not in STEP_MODES or block is None:
            raise ParseError(
                f"Step '{line}' outside any Background, Scenario or Scenario Outline",
                line_no,
                state.source_file,
            )

        if keyword.is_conjunction:
            resolved = block.last_keyword or Keyword.GIVEN
        else:
            resolved = keyword
            block.last_keyword = keyword

        text = line[len(keyword.value):].strip()
        block.steps.append(
            Step(keyword=keyword, text=text, resolved_keyword=resolved, source_line=line_no)
        )
        block.accepts_argument = True

    def _free_text(self, line: str, line_no: int, state: _ParserState) -> None:
        if state.mode == ParseMode.FEATURE:
            state.description.append(line)
            return
        block = state.block
        # Descriptions are allowed under a block header, before its first step or row
        if state.mode in STEP_MODES and block is not None and not block.steps:
            return
        if state.mode == ParseMode.EXAMPLES and state.examples and not state.examples.rows:
            return
        if state.mode == ParseMode.IDLE:
            raise ParseError(
                f"Expected 'Feature:' but found '{line}'", line_no, state.source_file
            )
        raise ParseError(f"Unexpected text '{line}'", line_no, state.source_file)

    def _tag_line(self, line: str, line_no: int, state: _ParserState) -> None:
        content = line.split(" #", 1)[0]
        for token in content.split():
            if not TAG_PATTERN.match(token):
                raise ParseError(f"Invalid tag '{token}'", line_no, state.source_file)
            state.pending_tags.append(token[1:])
        if not state.pending_tags_line:
            state.pending_tags_line = line_no

    def _take_tags(self, state: _ParserState) -> Tuple[str, ...]:
        tags = tuple(state.pending_tags)
        state.pending_tags = []
        state.pending_tags_line = 0
        return tags

    def _require_feature(self, keyword: str, line_no: int, state: _ParserState) -> None:
        if state.feature_name is None:
            raise ParseError(
                f"'{keyword}' before 'Feature:'", line_no, state.source_file
            )

    # =========================================================================
    # Tables
    # =========================================================================

    def _table_row(self, line: str, line_no: int, state: _ParserState) -> None:
        cells = _split_row(line, line_no, state.source_file)

        if state.mode == ParseMode.EXAMPLES and state.examples is not None:
            examples = state.examples
            if examples.rows and len(cells) != len(examples.rows[0]):
                raise ParseError(
                    f"Inconsistent cell count: expected {len(examples.rows[0])}, "
                    f"got {len(cells)}",
                    line_no,
                    state.source_file,
                )
            examples.rows.append(cells)
            return

        if state.table_rows:
            if len(cells) != len(state.table_rows[0]):
                raise ParseError(
                    f"Inconsistent cell count: expected {len(state.table_rows[0])}, "
                    f"got {len(cells)}",
                    line_no,
                    state.source_file,
                )
            state.table_rows.append(cells)
            return

        block = state.block
        if state.mode not in STEP_MODES or block is None or not block.accepts_argument:
            raise ParseError("Table has no preceding step", line_no, state.source_file)
        state.table_rows = [cells]

    def _flush_table(self, state: _ParserState) -> None:
        if not state.table_rows:
            return
        block = _argument_block(state)
        table = DataTable(rows=tuple(state.table_rows))
        block.steps[-1] = replace(block.steps[-1], data_table=table)
        block.accepts_argument = False
        state.table_rows = []

    # =========================================================================
    # Doc strings
    # =========================================================================

    def _open_doc_string(
        self, raw_line: str, stripped: str, fence: str, line_no: int, state: _ParserState
    ) -> None:
        block = state.block
        if state.mode not in STEP_MODES or block is None or not block.accepts_argument:
            raise ParseError("Doc string has no preceding step", line_no, state.source_file)
        content_type = stripped[len(fence):].strip() or None
        indent = raw_line[: len(raw_line) - len(raw_line.lstrip())]
        state.doc_string = _DocString(
            fence=fence,
            content_type=content_type,
            indent=indent,
            line=line_no,
            resume=state.mode,
        )
        state.mode = ParseMode.DOC_STRING

    def _doc_string_line(self, raw_line: str, line_no: int, state: _ParserState) -> None:
        doc = state.doc_string
        if doc is None:
            raise GherkinError("Doc string line outside a doc string")
        if raw_line.strip() == doc.fence:
            block = _argument_block(state)
            content = "\n".join(doc.lines)
            block.steps[-1] = replace(
                block.steps[-1],
                doc_string=DocString(content=content, content_type=doc.content_type),
            )
            block.accepts_argument = False
            state.mode = doc.resume
            state.doc_string = None
            return

        if raw_line.startswith(doc.indent):
            content = raw_line[len(doc.indent):]
        else:
            content = raw_line.lstrip()
        escaped = "\\" + "\\".join(doc.fence)
        doc.lines.append(content.replace(escaped, doc.fence))

    # =========================================================================
    # Finalization
    # =========================================================================

    def _finish_examples(self, state: _ParserState) -> None:
        examples = state.examples
        block = state.block
        if examples is None or block is None:
            return
        header: Tuple[str, ...] = examples.rows[0] if examples.rows else ()
        block.examples.append(
            ExamplesTable(
                header=header,
                rows=tuple(examples.rows[1:]),
                tags=examples.tags,
                source_line=examples.line,
            )
        )
        state.examples = None

    def _finish_block(self, state: _ParserState) -> None:
        self._flush_table(state)
        self._finish_examples(state)
        block = state.block
        if block is None:
            return

        steps = tuple(block.steps)
        if block.mode == ParseMode.BACKGROUND:
            state.background = Background(steps=steps, source_line=block.line)
        elif block.mode == ParseMode.SCENARIO:
            state.scenarios.append(
                Scenario(name=block.name, tags=block.tags, steps=steps, source_line=block.line)
            )
        else:
            if not block.examples:
                raise ParseError(
                    f"Scenario Outline '{block.name}' has no Examples",
                    block.line,
                    state.source_file,
                )
            state.scenarios.append(
                ScenarioOutline(
                    name=block.name,
                    tags=block.tags,
                    steps=steps,
                    examples=tuple(block.examples),
                    source_line=block.line,
                )
            )
        state.block = None

    def _finish(self, state: _ParserState, line_count: int) -> Feature:
        if state.doc_string is not None:
            raise ParseError(
                "Unterminated doc string", state.doc_string.line, state.source_file
            )
        self._flush_table(state)
        if state.pending_tags:
            raise ParseError(
                "Tags at end of file are not attached to anything",
                state.pending_tags_line,
                state.source_file,
            )
        if state.feature_name is None:
            raise ParseError("No 'Feature:' found", max(line_count, 1), state.source_file)
        self._finish_block(state)

        return Feature(
            name=state.feature_name,
            description_lines=tuple(state.description),
            tags=state.feature_tags,
            background=state.background,
            scenarios=tuple(state.scenarios),
            source_file=state.source_file,
        )


# =============================================================================
# Line helpers
# =============================================================================


def _keyword_value(line: str, keywords: Tuple[str, ...]) -> str:
    for keyword in keywords:
        if line.startswith(keyword):
            return line[len(keyword):].strip()
    return ""


def _step_keyword(line: str) -> Optional[Keyword]:
    for keyword in Keyword:
        if line.startswith(keyword.value + " "):
            return keyword
    return None


def _fence_of(line: str) -> Optional[str]:
    for fence in DOC_STRING_FENCES:
        if line.startswith(fence):
            return fence
    return None


def _split_row(line: str, line_no: int, source_file: Optional[str]) -> Tuple[str, ...]:
    """Split ``| a | b |`` into cells, honouring ``\\|``, ``\\\\`` and ``\\n``."""
    cells: List[str] = []
    current: List[str] = []
    chars = iter(line[1:])
    for char in chars:
        if char == "\\":
            nxt = next(chars, "")
            if nxt == "|":
                current.append("|")
            elif nxt == "n":
                current.append("\n")
            elif nxt == "\\":
                current.append("\\")
            else:
                current.append(char + nxt)
        elif char == "|":
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    if not cells or "".join(current).strip():
        raise ParseError("Table row must end with '|'", line_no, source_file)
    return tuple(cells)
