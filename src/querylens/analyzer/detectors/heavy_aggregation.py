"""
Detector: Heavy Aggregation

Finds aggregation work that grows with the size of the groups:

- STRING_AGG(DISTINCT ...) and STRING_AGG over large result sets
- COUNT(DISTINCT ...) on high-cardinality columns
- Several CASE expressions inside COUNT/SUM on one line
- GROUP BY over many columns

These are rarely the top bottleneck, so most findings are INFO. STRING_AGG
takes part of the plan's aggregate operator cost when one exists.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Sequence

from pydantic import Field

from querylens.analyzer.detectors.base import Detector, DetectorConfig
from querylens.analyzer.models import Bottleneck, IssueType, Severity
from querylens.analyzer.registry import register_detector
from querylens.analyzer.scanning import iter_lines, line_number_at, split_lines

if TYPE_CHECKING:
    from querylens.plan.models import PlanNode


STRING_AGG_DISTINCT_PATTERN = re.compile(
    r"\bSTRING_AGG\s*\(\s*DISTINCT\s+([^,]+),",
    re.IGNORECASE,
)

STRING_AGG_PATTERN = re.compile(
    r"\bSTRING_AGG\s*\(\s*([^,]+),",
    re.IGNORECASE,
)

COUNT_DISTINCT_PATTERN = re.compile(
    r"\bCOUNT\s*\(\s*DISTINCT\s+([^)]+)\)",
    re.IGNORECASE,
)

CASE_IN_AGGREGATE_PATTERN = re.compile(
    r"\b(COUNT|SUM)\s*\(\s*CASE\s+WHEN",
    re.IGNORECASE,
)

CASE_WHEN_PATTERN = re.compile(r"\bCASE\s+WHEN\b", re.IGNORECASE)

GROUP_BY_PATTERN = re.compile(r"\bGROUP\s+BY\b", re.IGNORECASE)

GROUP_BY_TERMINATOR = re.compile(r"\b(?:HAVING|ORDER\s+BY|OPTION)\b", re.IGNORECASE)

AGGREGATE_OPERATORS = ("Aggregate", "Hash Match")


class HeavyAggregationConfig(DetectorConfig):
    """
    Configuration for heavy aggregation detection.

    Attributes:
        min_case_expressions: CASE expressions on one line to report (default 3)
        min_group_by_columns: GROUP BY width to report (default 5)
        aggregate_cost_share: Share of the aggregate operator attributed to STRING_AGG
    """

    min_case_expressions: int = Field(
        default=3,
        ge=1,
        description="Minimum CASE WHEN count inside an aggregate line",
    )

    min_group_by_columns: int = Field(
        default=5,
        ge=1,
        description="Minimum GROUP BY column count",
    )

    aggregate_cost_share: float = Field(
        default=0.6,
        gt=0.0,
        le=1.0,
        description="Fraction of the aggregate operator's cost attributed to STRING_AGG",
    )


@register_detector
class HeavyAggregation(Detector):
    """Detect expensive aggregation constructs."""

    detector_id = "HEAVY_AGGREGATION"
    version = "1.1.0"
    issue_type = IssueType.HEAVY_AGGREGATION
    description = "Detects STRING_AGG, COUNT(DISTINCT), CASE-heavy and wide GROUP BY aggregation"
    config_schema = HeavyAggregationConfig

    def detect(self, sql: str, plan: Sequence["PlanNode"]) -> list[Bottleneck]:
        config: HeavyAggregationConfig = self.config  # type: ignore[assignment]
        findings: list[Bottleneck] = []

        for line_number, line in iter_lines(sql):
            fragment = line.strip()

            match = STRING_AGG_DISTINCT_PATTERN.search(line)
            if match:
                findings.append(self._string_agg(
                    match.group(1).strip(), True, line_number, fragment, plan
                ))
            else:
                match = STRING_AGG_PATTERN.search(line)
                if match:
                    findings.append(self._string_agg(
                        match.group(1).strip(), False, line_number, fragment, plan
                    ))

            if COUNT_DISTINCT_PATTERN.search(line):
                findings.append(self._count_distinct(line_number, fragment))

            if CASE_IN_AGGREGATE_PATTERN.search(line):
                case_count = len(CASE_WHEN_PATTERN.findall(line))
                if case_count >= config.min_case_expressions:
                    findings.append(self._many_cases(case_count, line_number, fragment))

        match = GROUP_BY_PATTERN.search(sql)
        if match:
            clause = group_by_clause(sql, match.end())
            columns = count_columns(clause)
            if columns >= config.min_group_by_columns:
                findings.append(self._wide_group_by(
                    columns, line_number_at(sql, match.start()), clause
                ))

        return findings

    def _string_agg(
        self,
        column: str,
        distinct: bool,
        line_number: int,
        fragment: str,
        plan: Sequence["PlanNode"],
    ) -> Bottleneck:
        config: HeavyAggregationConfig = self.config  # type: ignore[assignment]

        fields: dict[str, Any] = {"cost_percentage": 5.0, "cost_is_estimate": True}
        for node in plan:
            if any(op in node.operator_type for op in AGGREGATE_OPERATORS):
                fields = {
                    "cost_percentage": node.cost_percentage * config.aggregate_cost_share,
                    "time_impact_seconds": node.elapsed_seconds * config.aggregate_cost_share,
                    "operator_name": node.description,
                    "related_node": node,
                }
                break

        if distinct:
            fields["problem_description"] = "STRING_AGG with DISTINCT on large result set"
            fields["why_its_slow"] = (
                "STRING_AGG with DISTINCT must process and concatenate all values "
                "in memory. DISTINCT adds sorting/hashing overhead. For large "
                "groups, this can be CPU and memory intensive."
            )
            fields["fixes"] = (
                "Pre-aggregate DISTINCT values in a CTE",
                "Then apply STRING_AGG to pre-deduplicated set",
            )
            fields["optimized_fragment"] = (
                "-- Pre-aggregate in CTE:\n"
                "WITH distinct_vals AS (\n"
                "  SELECT DISTINCT\n"
                "    group_key,\n"
                f"    {column} AS value\n"
                "  FROM table_name\n"
                "  WHERE ...\n"
                ")\n"
                "SELECT\n"
                "  group_key,\n"
                "  STRING_AGG(value, ',') AS aggregated\n"
                "FROM distinct_vals\n"
                "GROUP BY group_key"
            )
        else:
            fields["problem_description"] = "STRING_AGG on large result set"
            fields["why_its_slow"] = (
                "STRING_AGG must process and concatenate all values in memory. "
                "For large groups, this can be CPU and memory intensive."
            )
            fields["fixes"] = (
                "Consider if DISTINCT is needed in source data",
                "Or pre-filter to reduce rows before aggregation",
            )

        return Bottleneck(
            severity=Severity.WARNING,
            issue_type=self.issue_type,
            detector_id=self.detector_id,
            line_number=line_number,
            query_fragment=fragment,
            expected_improvement="20-40% faster for large aggregations",
            **fields,
        )

    def _count_distinct(self, line_number: int, fragment: str) -> Bottleneck:
        return Bottleneck(
            severity=Severity.INFO,
            issue_type=self.issue_type,
            detector_id=self.detector_id,
            line_number=line_number,
            query_fragment=fragment,
            cost_percentage=3.0,
            cost_is_estimate=True,
            problem_description="COUNT(DISTINCT) may be expensive on high-cardinality columns",
            why_its_slow=(
                "COUNT(DISTINCT) requires sorting or hashing to find unique values, "
                "which can be expensive with millions of rows and high cardinality."
            ),
            fixes=(
                "Consider approximate count if exact isn't needed",
                "Or pre-aggregate in indexed view if query runs frequently",
            ),
        )

    def _many_cases(self, case_count: int, line_number: int, fragment: str) -> Bottleneck:
        return Bottleneck(
            severity=Severity.INFO,
            issue_type=self.issue_type,
            detector_id=self.detector_id,
            line_number=line_number,
            query_fragment=fragment,
            cost_is_estimate=True,
            problem_description=f"{case_count} CASE expressions in aggregation",
            why_its_slow=(
                "Multiple CASE evaluations in aggregates add CPU overhead. "
                "Each CASE is evaluated for every row in the group."
            ),
            fixes=(
                "Consider using FILTER clause if supported",
                "Or pivot the data first in a CTE",
                "Or use conditional aggregation: SUM(column) instead of COUNT(CASE)",
            ),
        )

    def _wide_group_by(self, columns: int, line_number: int, clause: str) -> Bottleneck:
        return Bottleneck(
            severity=Severity.INFO,
            issue_type=self.issue_type,
            detector_id=self.detector_id,
            line_number=line_number,
            query_fragment=f"GROUP BY {clause}",
            cost_is_estimate=True,
            problem_description=f"GROUP BY with {columns} columns may have high cardinality",
            why_its_slow=(
                "Large GROUP BY clauses create many groups, increasing memory usage "
                "and hash/sort operations."
            ),
            fixes=(
                "Review if all GROUP BY columns are necessary",
                "Consider aggregating in stages with CTEs",
            ),
        )


def group_by_clause(sql: str, start: int) -> str:
    """
    Text of the GROUP BY list beginning at offset start.

    The list runs to the end of its line and continues onto the next line
    only while the current one ends with a comma. It stops before HAVING,
    ORDER BY or OPTION, and before a closing paren it did not open.
    """
    lines = split_lines(sql[start:])
    collected = [lines[0]]
    for line in lines[1:]:
        if not collected[-1].rstrip().endswith(","):
            break
        collected.append(line)
    text = " ".join(part.strip() for part in collected)

    terminator = GROUP_BY_TERMINATOR.search(text)
    if terminator:
        text = text[:terminator.start()]

    depth = 0
    for index, ch in enumerate(text):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                text = text[:index]
                break

    return text.strip().rstrip(";").strip()


def count_columns(clause: str) -> int:
    """Number of top-level comma-separated items; commas inside parens do not split."""
    if not clause:
        return 0
    depth = 0
    count = 1
    for ch in clause:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "," and depth == 0:
            count += 1
    return count
