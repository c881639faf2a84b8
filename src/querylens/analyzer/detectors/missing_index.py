"""
Detector: Missing Index

Plan-driven: every costly scan with a known table becomes a covering index
recommendation. Key columns come from the predicates and join conditions
that reference the table's alias in the SQL; INCLUDE columns are the
other columns read through that alias.

When the alias cannot be found the finding still points at the scan, with
generic advice instead of a CREATE INDEX statement.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Sequence

from pydantic import Field

from querylens.analyzer.detectors.base import Detector, DetectorConfig
from querylens.analyzer.models import Bottleneck, IssueType
from querylens.analyzer.registry import register_detector
from querylens.formatting import format_number

if TYPE_CHECKING:
    from querylens.plan.models import PlanNode

logger = logging.getLogger(__name__)


SQL_KEYWORDS = frozenset({
    "AS", "ON", "WHERE", "WITH", "JOIN", "INNER", "LEFT", "RIGHT", "FULL",
    "CROSS", "OUTER", "GROUP", "ORDER", "HAVING", "UNION", "SELECT", "FROM",
    "AND", "OR", "NOT", "SET", "OPTION", "USING", "APPLY", "LIMIT", "INTO",
    "VALUES", "WHEN", "THEN", "ELSE", "END", "CASE",
})

# Expected read reduction by number of key columns
_REDUCTION_BY_KEYS = {0: 50.0, 1: 80.0, 2: 95.0}
_REDUCTION_MANY_KEYS = 98.0

MAX_INDEX_NAME_COLUMNS = 30


class MissingIndexConfig(DetectorConfig):
    """
    Configuration for missing index analysis.

    Attributes:
        min_cost_percentage: Scans below this share are ignored (default 5%)
        max_include_columns: Upper bound on INCLUDE columns (default 6)
    """

    min_cost_percentage: float = Field(
        default=5.0,
        ge=0.0,
        le=100.0,
        description="Minimum scan cost share to recommend an index",
    )

    max_include_columns: int = Field(
        default=6,
        ge=0,
        le=32,
        description="Maximum number of INCLUDE columns in a recommendation",
    )


@register_detector
class MissingIndex(Detector):
    """Recommend covering indexes for expensive scans."""

    detector_id = "MISSING_INDEX"
    version = "1.0.0"
    issue_type = IssueType.MISSING_INDEX
    description = "Recommends covering indexes for costly table and index scans"
    config_schema = MissingIndexConfig

    def detect(self, sql: str, plan: Sequence["PlanNode"]) -> list[Bottleneck]:
        config: MissingIndexConfig = self.config  # type: ignore[assignment]
        findings: list[Bottleneck] = []

        for node in plan:
            if not node.is_scan or node.cost_percentage < config.min_cost_percentage:
                continue
            if not node.object_name:
                continue

            alias = find_alias(sql, node.object_name)
            if alias is None:
                logger.debug("No alias found for %s", node.object_name)
                keys: list[str] = []
                includes: list[str] = []
            else:
                keys = key_columns(sql, alias)
                includes = referenced_columns(sql, alias)[: config.max_include_columns]

            findings.append(self._finding(node, keys, includes))

        return findings

    def _finding(
        self,
        node: "PlanNode",
        keys: list[str],
        includes: list[str],
    ) -> Bottleneck:
        table = node.object_name or ""

        if keys:
            statement = create_index_statement(table, keys, includes)
            fixes = [
                "Create a covering index on key columns",
                "Include frequently selected columns to avoid key lookups",
            ]
            if len(keys) > 1:
                fixes.append(
                    "Column order matters: most selective first, then equality, then range"
                )
            remediation = {
                "optimized_fragment": statement,
                "fix_queries": (statement,),
                "fixes": tuple(fixes),
            }
        else:
            remediation = {
                "fixes": (
                    "Add index on filtered/joined columns",
                    "Run: sp_executesql with SET STATISTICS IO ON to see missing index hints",
                ),
            }

        reduction = expected_reduction(len(keys))
        rows = node.actual_rows
        remaining = int(rows * (1 - reduction / 100))

        return Bottleneck.from_node(
            node,
            self.issue_type,
            detector_id=self.detector_id,
            problem_description=f"Table/Index Scan on {table}",
            why_its_slow=(
                f"SQL Server is scanning {format_number(rows)} rows from {table} "
                "instead of using an index seek. This reads "
                f"{format_number(node.logical_reads)} logical pages from disk/memory."
            ),
            expected_improvement=(
                f"~{reduction:.0f}% reduction in logical reads, seek instead of scan "
                f"(estimated {format_number(rows)} → {format_number(remaining)} rows)"
            ),
            **remediation,
        )


def short_table_name(table: str) -> str:
    """Drop schema/database prefixes and brackets: [SFDC].[dbo].[GIFTS] -> GIFTS."""
    return table.rsplit(".", 1)[-1].strip("[]\"")


def find_alias(sql: str, table: str) -> str | None:
    """
    Alias the query gives to table, if any.

    Scans every occurrence of the bare table name and returns the first
    following word that is not a SQL keyword.
    """
    short = short_table_name(table)
    if not short:
        return None
    pattern = re.compile(
        rf"\b{re.escape(short)}\]?\s+(?:AS\s+)?(\w+)",
        re.IGNORECASE,
    )
    for match in pattern.finditer(sql):
        candidate = match.group(1)
        if candidate.upper() not in SQL_KEYWORDS:
            return candidate
    return None


def key_columns(sql: str, alias: str) -> list[str]:
    """Columns compared or joined through alias, de-duplicated in order."""
    a = re.escape(alias)
    predicate = re.compile(
        rf"\b{a}\.(\w+)\s*(?:[=<>]|!=|IN\b|BETWEEN\b)",
        re.IGNORECASE,
    )
    join_key = re.compile(rf"\bON\s+{a}\.(\w+)\s*=", re.IGNORECASE)

    seen: dict[str, None] = {}
    for match in predicate.finditer(sql):
        seen.setdefault(match.group(1), None)
    for match in join_key.finditer(sql):
        seen.setdefault(match.group(1), None)
    return list(seen)


def referenced_columns(sql: str, alias: str) -> list[str]:
    """Every column read through alias, de-duplicated in order."""
    pattern = re.compile(rf"\b{re.escape(alias)}\.(\w+)", re.IGNORECASE)
    seen: dict[str, None] = {}
    for match in pattern.finditer(sql):
        seen.setdefault(match.group(1), None)
    return list(seen)


def index_name(table: str, keys: list[str]) -> str:
    short = re.sub(r"\W+", "", short_table_name(table))
    return f"IX_{short}_{'_'.join(keys)[:MAX_INDEX_NAME_COLUMNS]}"


def create_index_statement(table: str, keys: list[str], includes: list[str]) -> str:
    statement = f"CREATE INDEX {index_name(table, keys)}\nON {table} ({', '.join(keys)})"
    if includes:
        statement += f"\nINCLUDE ({', '.join(includes)})"
    return statement + ";"


def expected_reduction(key_count: int) -> float:
    """Heuristic read reduction (%) for an index with key_count key columns."""
    return _REDUCTION_BY_KEYS.get(key_count, _REDUCTION_MANY_KEYS)
