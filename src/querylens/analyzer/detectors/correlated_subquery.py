"""
Detector: Correlated Subquery

Finds scalar subqueries in the SELECT list that aggregate a fact table:

    (SELECT MAX(g.posted_date) FROM gifts g WHERE g.donor_id = d.id) AS last_gift

Why it matters:
- The subquery runs once per row of the outer query
- Each execution scans independently, so there is no parallelism and lots
  of redundant I/O

The span of a subquery is found by tracking bracket depth from the line
that opens it, on sqlparse tokens. Parentheses inside string literals,
quoted identifiers and comments do not count, and a (SELECT that sits in a
comment or literal does not open a subquery. Nested subqueries inside a
reported span are not reported again.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Sequence

from pydantic import Field, model_validator

from querylens.analyzer.detectors.base import Detector, DetectorConfig
from querylens.analyzer.models import Bottleneck, IssueType, Severity
from querylens.analyzer.registry import register_detector
from querylens.analyzer.scanning import (
    balanced_span_end,
    split_lines,
    subquery_open_lines,
)
from querylens.formatting import format_number, truncate_fragment

if TYPE_CHECKING:
    from querylens.plan.models import PlanNode


CLAUSE_START_PATTERN = re.compile(r"^(FROM|WHERE)\b", re.IGNORECASE)

AGGREGATE_PATTERN = re.compile(
    r"\(\s*SELECT\s+(MAX|MIN|COUNT|SUM|AVG)\s*\([^)]+\)\s+FROM",
    re.IGNORECASE,
)

REWRITE_TEMPLATE = """\
-- Instead of correlated subquery, use:

-- Option 1: Move to main aggregation
{agg}(column_name) AS result
-- Add to main SELECT and GROUP BY

-- Option 2: Pre-aggregate in CTE then JOIN
WITH aggregated AS (
  SELECT
    key_column,
    {agg}(value_column) AS agg_value
  FROM fact_table
  GROUP BY key_column
)
SELECT ... , agg.agg_value
FROM main_table m
LEFT JOIN aggregated agg ON agg.key_column = m.key_column"""


class CorrelatedSubqueryConfig(DetectorConfig):
    """
    Configuration for correlated subquery detection.

    Attributes:
        critical_executions: Executions above this are CRITICAL (default 10,000)
        warning_executions: Executions above this are WARNING (default 1,000)
        default_execution_count: Assumed outer row count without plan evidence
        max_fragment_length: Characters of subquery text kept in the finding
    """

    critical_executions: int = Field(
        default=10_000,
        ge=1,
        description="Executions above which the subquery is CRITICAL",
    )

    warning_executions: int = Field(
        default=1_000,
        ge=0,
        description="Executions above which the subquery is a WARNING",
    )

    default_execution_count: int = Field(
        default=10_000,
        ge=0,
        description="Outer row count assumed when the plan has none",
    )

    max_fragment_length: int = Field(
        default=200,
        ge=20,
        description="Maximum fragment length before truncation",
    )

    @model_validator(mode="after")
    def validate_thresholds(self) -> "CorrelatedSubqueryConfig":
        """Ensure the critical threshold is above the warning threshold."""
        if self.critical_executions <= self.warning_executions:
            raise ValueError(
                f"critical_executions ({self.critical_executions}) "
                f"must be greater than warning_executions ({self.warning_executions})"
            )
        return self


@register_detector
class CorrelatedSubquery(Detector):
    """Detect aggregate subqueries that execute once per outer row."""

    detector_id = "CORRELATED_SUBQUERY"
    version = "1.1.0"
    issue_type = IssueType.CORRELATED_SUBQUERY
    description = "Detects per-row aggregate subqueries in the SELECT list"
    config_schema = CorrelatedSubqueryConfig

    def detect(self, sql: str, plan: Sequence["PlanNode"]) -> list[Bottleneck]:
        lines = split_lines(sql)
        openers = subquery_open_lines(lines)
        findings: list[Bottleneck] = []
        reported_until = 0  # last 0-based line index covered by a finding

        for index, line in enumerate(lines):
            if findings and index <= reported_until:
                continue

            stripped = line.strip()
            if index not in openers or CLAUSE_START_PATTERN.match(stripped):
                continue

            end_index = balanced_span_end(lines, index)
            subquery = "\n".join(lines[index:end_index + 1])

            match = AGGREGATE_PATTERN.search(subquery)
            if match is None:
                continue

            findings.append(self._finding(
                subquery.strip(),
                match.group(1).upper(),
                start_line=index + 1,
                end_line=end_index + 1,
                plan=plan,
            ))
            reported_until = end_index

        return findings

    def _execution_count(self, plan: Sequence["PlanNode"]) -> int | None:
        """Outer row count: first non-scan node that produced rows."""
        for node in plan:
            if node.actual_rows > 0 and not node.is_scan:
                return node.actual_rows
        return None

    def _finding(
        self,
        subquery: str,
        aggregate: str,
        *,
        start_line: int,
        end_line: int,
        plan: Sequence["PlanNode"],
    ) -> Bottleneck:
        config: CorrelatedSubqueryConfig = self.config  # type: ignore[assignment]

        executions = self._execution_count(plan)
        is_estimate = executions is None
        if executions is None:
            executions = config.default_execution_count

        if executions > config.critical_executions:
            severity, cost = Severity.CRITICAL, 20.0
        elif executions > config.warning_executions:
            severity, cost = Severity.WARNING, 10.0
        else:
            severity, cost = Severity.INFO, 5.0

        runs = format_number(executions)
        return Bottleneck(
            severity=severity,
            issue_type=self.issue_type,
            detector_id=self.detector_id,
            line_number=start_line,
            start_line=start_line,
            end_line=end_line,
            query_fragment=truncate_fragment(subquery, config.max_fragment_length),
            cost_percentage=cost,
            cost_is_estimate=is_estimate,
            execution_count=executions,
            problem_description=f"Correlated subquery with {aggregate}() executes once per row",
            why_its_slow=(
                f"This subquery runs {runs} times (once for each row in the outer "
                "query). Each execution scans the table independently, preventing "
                "parallelism and causing redundant I/O."
            ),
            fixes=(
                "Move the aggregate to the main query's GROUP BY",
                "Or use a LEFT JOIN with pre-aggregated CTE",
                "This allows single-pass processing with parallelism",
            ),
            optimized_fragment=REWRITE_TEMPLATE.format(agg=aggregate),
            expected_improvement=(
                f"Eliminates {runs} subquery executions, typically 50-90% faster"
            ),
        )
