"""
Line-oriented text scanning helpers shared by the detectors.

Detectors work on raw SQL, not on a parse tree. These helpers keep the
1-based line bookkeeping in one place. Bracket spans are measured on
sqlparse tokens, so a parenthesis inside 'it''s (quoted)' or a -- comment
does not change depth.
"""

from __future__ import annotations

from typing import Iterator

from sqlparse import lexer
from sqlparse import tokens as T


def split_lines(sql: str) -> list[str]:
    """Split on newlines, tolerating CRLF input."""
    return sql.replace("\r\n", "\n").split("\n")


def iter_lines(sql: str) -> Iterator[tuple[int, str]]:
    """Yield (1-based line number, line) pairs."""
    for index, line in enumerate(split_lines(sql)):
        yield index + 1, line


def line_number_at(sql: str, offset: int) -> int:
    """1-based line containing character offset."""
    return sql.count("\n", 0, offset) + 1


def is_comment_line(line: str) -> bool:
    return line.lstrip().startswith("--")


def balanced_span_end(lines: list[str], start: int) -> int:
    """
    Index of the line where the bracket depth opened on lines[start] is closed.

    Depth is checked at each line end, so a line whose parentheses already
    balance ends the span on itself. The text is tokenized with sqlparse,
    which keeps parentheses inside string literals, quoted identifiers and
    comments (block comments across line breaks included) out of the count.
    An unbalanced span runs to the last line.

    Example:
        balanced_span_end(["SELECT a, (SELECT MAX(x)", "  FROM t WHERE n = ')')"], 0)
        # 1
    """
    depth = 0
    index = start
    for ttype, value in lexer.tokenize("\n".join(lines[start:])):
        if ttype in T.Punctuation:
            if value == "(":
                depth += 1
            elif value == ")":
                depth -= 1
        newlines = value.count("\n")
        if newlines:
            if depth <= 0:
                return index
            index += newlines
    return index


def subquery_open_lines(lines: list[str]) -> set[int]:
    """
    Indexes of lines holding a ``(`` followed directly by SELECT in code.

    Only whitespace may sit between the two tokens. A ``(SELECT`` inside a
    comment or a string literal is a single token of its own and is skipped.
    """
    found: set[int] = set()
    index = 0
    opened_at: int | None = None
    for ttype, value in lexer.tokenize("\n".join(lines)):
        if ttype in T.Punctuation and value == "(":
            opened_at = index
        elif opened_at is not None and ttype in T.Keyword.DML and value.upper() == "SELECT":
            found.add(opened_at)
            opened_at = None
        elif ttype not in T.Whitespace:
            opened_at = None
        index += value.count("\n")
    return found
