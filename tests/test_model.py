"""Tests for the AST model."""

import dataclasses

import pytest

from gherkin_core import DataTable, DocString, Feature, Keyword, Scenario, ScenarioOutline, Step
from gherkin_core.model import combine_tags, location


class TestKeyword:
    """Tests for Keyword enum."""

    def test_conjunctions(self):
        """Test And/But are conjunctions and Given/When/Then are not."""
        assert Keyword.AND.is_conjunction
        assert Keyword.BUT.is_conjunction
        assert not Keyword.GIVEN.is_conjunction
        assert not Keyword.WHEN.is_conjunction
        assert not Keyword.THEN.is_conjunction

    def test_value_is_source_spelling(self):
        """Test keyword values match the source text."""
        assert Keyword.GIVEN.value == "Given"
        assert Keyword.BUT.value == "But"


class TestDataTable:
    """Tests for DataTable."""

    def test_headers_and_data_rows(self):
        """Test first row is the header."""
        table = DataTable(rows=(("name", "age"), ("Ann", "30"), ("Bo", "41")))
        assert table.headers == ("name", "age")
        assert table.data_rows == (("Ann", "30"), ("Bo", "41"))
        assert len(table) == 3

    def test_as_dicts(self):
        """Test rows are keyed by header."""
        table = DataTable(rows=(("name", "age"), ("Ann", "30")))
        assert table.as_dicts() == [{"name": "Ann", "age": "30"}]

    def test_empty_table(self):
        """Test an empty table has no header and no rows."""
        table = DataTable(rows=())
        assert table.headers == ()
        assert table.data_rows == ()
        assert table.as_dicts() == []


class TestNodes:
    """Tests for immutable AST nodes."""

    def test_step_str(self):
        """Test steps render as keyword plus text."""
        step = Step(keyword=Keyword.AND, text="I wait", resolved_keyword=Keyword.WHEN)
        assert str(step) == "And I wait"

    def test_nodes_are_frozen(self):
        """Test AST nodes cannot be mutated."""
        scenario = Scenario(name="A")
        with pytest.raises(dataclasses.FrozenInstanceError):
            scenario.name = "B"  # type: ignore

    def test_doc_string_keeps_content(self):
        """Test doc string content is stored verbatim."""
        doc = DocString(content="  indented\n\ttabbed ", content_type="text")
        assert str(doc) == "  indented\n\ttabbed "
        assert doc.content_type == "text"

    def test_feature_description_and_outlines(self):
        """Test description joins lines and outlines lists only outlines."""
        outline = ScenarioOutline(name="O")
        feature = Feature(
            name="F",
            description_lines=("line one", "line two"),
            scenarios=(Scenario(name="S"), outline),
        )
        assert feature.description == "line one\nline two"
        assert feature.outlines == [outline]


class TestHelpers:
    """Tests for module helpers."""

    def test_combine_tags_first_seen_order(self):
        """Test tag groups are unioned in first-seen order."""
        assert combine_tags(("a", "b"), ("b", "c"), ("a",)) == ("a", "b", "c")

    def test_location(self):
        """Test file:line rendering with and without a file."""
        assert location("cart.feature", 12) == "cart.feature:12"
        assert location(None, 3) == "<string>:3"
