"""Tests for line scanning and text formatting helpers."""

import pytest

from querylens.analyzer.scanning import (
    balanced_span_end,
    is_comment_line,
    iter_lines,
    line_number_at,
    split_lines,
    subquery_open_lines,
)
from querylens.formatting import (
    format_number,
    indent_code,
    truncate,
    truncate_fragment,
    wrap_text,
)


class TestLines:
    """Tests for line bookkeeping."""

    def test_split_lines_handles_crlf(self):
        assert split_lines("a\r\nb\nc") == ["a", "b", "c"]

    def test_iter_lines_is_one_based(self):
        assert list(iter_lines("x\ny")) == [(1, "x"), (2, "y")]

    def test_line_number_at(self):
        sql = "SELECT a\nFROM t\nWHERE b = 1"
        assert line_number_at(sql, 0) == 1
        assert line_number_at(sql, sql.index("FROM")) == 2
        assert line_number_at(sql, sql.index("WHERE")) == 3

    def test_comment_line(self):
        assert is_comment_line("   -- note")
        assert not is_comment_line("SELECT 1 -- note")


class TestBalancedSpanEnd:
    """Tests for literal- and comment-aware bracket spans."""

    def test_spans_lines(self):
        lines = ["SELECT a, (SELECT MAX(x)", "  FROM t", ") AS m", "FROM d"]
        assert balanced_span_end(lines, 0) == 2

    def test_balanced_line_ends_on_itself(self):
        lines = ["(SELECT MAX(x) FROM t) AS m", "FROM d"]
        assert balanced_span_end(lines, 0) == 0

    def test_starts_mid_text(self):
        lines = ["SELECT a,", "  (SELECT MAX(x)", "   FROM t) AS m", "FROM d"]
        assert balanced_span_end(lines, 1) == 2

    def test_ignores_parens_in_string_literals(self):
        lines = ["(SELECT 1 WHERE note = ')'", "AND other = 'it''s (quoted)')", "FROM d"]
        assert balanced_span_end(lines, 0) == 1

    def test_ignores_line_comments(self):
        lines = ["(SELECT 1 -- closing ) here does not count", "FROM t", ")", "FROM d"]
        assert balanced_span_end(lines, 0) == 2

    def test_block_comment_spans_lines(self):
        lines = ["(SELECT 1 /* ) ) )", "still comment ) */ )", "FROM d"]
        assert balanced_span_end(lines, 0) == 1

    def test_unbalanced_runs_to_last_line(self):
        lines = ["(SELECT MAX(x)", "FROM t"]
        assert balanced_span_end(lines, 0) == 1


class TestSubqueryOpenLines:
    """Tests for locating (SELECT openers outside comments and literals."""

    def test_finds_openers(self):
        lines = [
            "SELECT a,",
            "  ( SELECT MAX(x)",
            "   FROM t) AS m",
            "FROM d WHERE id IN (select id FROM u)",
        ]
        assert subquery_open_lines(lines) == {1, 3}

    def test_paren_on_previous_line(self):
        lines = ["SELECT a, (", "  SELECT MAX(x) FROM t) AS m"]
        assert subquery_open_lines(lines) == {0}

    def test_skips_line_comment(self):
        lines = ["SELECT d.id", "-- old: (SELECT MAX(g.dt) FROM gifts g) AS last", "FROM donors d"]
        assert subquery_open_lines(lines) == set()

    def test_skips_block_comment_and_literal(self):
        lines = ["SELECT '(SELECT 1)' AS s /*", "(SELECT MAX(x) FROM t)", "*/ FROM d"]
        assert subquery_open_lines(lines) == set()

    def test_function_call_is_not_an_opener(self):
        assert subquery_open_lines(["SELECT COUNT(id) FROM t"]) == set()


class TestFormatting:
    """Tests for number and text formatting."""

    @pytest.mark.parametrize(
        "value,expected",
        [(12_300_000, "12.3M"), (4_500, "4.5K"), (999, "999"), (0, "0")],
    )
    def test_format_number(self, value, expected):
        assert format_number(value) == expected

    def test_truncate(self):
        assert truncate("abcdefghij", 8) == "abcde..."
        assert truncate("short", 8) == "short"
        assert truncate(None, 8) == ""

    def test_truncate_fragment(self):
        assert truncate_fragment("x" * 250) == "x" * 200 + "..."
        assert truncate_fragment("short") == "short"

    def test_wrap_text_indents_every_line(self):
        text = " ".join(["word"] * 40)
        wrapped = wrap_text(text, indent=3, width=40)

        lines = wrapped.split("\n")
        assert len(lines) > 1
        assert all(line.startswith("   word") for line in lines)
        assert all(len(line) <= 40 for line in lines)

    def test_indent_code(self):
        assert indent_code("a\nb", spaces=2) == "  a\n  b"
