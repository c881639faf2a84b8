"""
Detector: OR Condition

Finds OR predicates that keep the optimizer from seeking either index:

- (account = @id OR contact = @id)
- (designation_code IN (...) OR (business_unit = X AND dept = Y))
- WHERE COALESCE(account, contact) = @id, which is an OR in disguise

The usual fix is to split the predicate into UNION ALL branches so that
each branch can seek its own index.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Sequence

from pydantic import Field

from querylens.analyzer.detectors.base import (
    Detector,
    DetectorConfig,
    find_expensive_scan,
)
from querylens.analyzer.models import Bottleneck, IssueType, Severity
from querylens.analyzer.registry import register_detector
from querylens.analyzer.scanning import iter_lines, line_number_at

if TYPE_CHECKING:
    from querylens.plan.models import PlanNode


SIMPLE_OR_PATTERN = re.compile(
    r"\(\s*([\w.]+)\s*=\s*[^)]+\s+OR\s+([\w.]+)\s*=\s*[^)]+\)",
    re.IGNORECASE,
)

COMPLEX_OR_PATTERN = re.compile(
    r"\([^()]+\s+OR\s+\([^)]+\)\)",
    re.IGNORECASE,
)

COALESCE_EQUALS_PATTERN = re.compile(
    r"WHERE.*?COALESCE\s*\(\s*([\w.]+)\s*,\s*([\w.]+)\s*\)\s*=",
    re.IGNORECASE | re.DOTALL,
)

# Characters of trailing context kept after a COALESCE match
COALESCE_CONTEXT_CHARS = 50


class OrConditionConfig(DetectorConfig):
    """
    Configuration for OR condition detection.

    Attributes:
        simple_or_cost_percentage: Cost estimate for a simple OR without plan evidence
        coalesce_cost_percentage: Cost estimate for COALESCE-as-OR without plan evidence
    """

    simple_or_cost_percentage: float = Field(
        default=15.0,
        ge=0.0,
        le=100.0,
        description="Heuristic cost share for (a = x OR b = y)",
    )

    coalesce_cost_percentage: float = Field(
        default=25.0,
        ge=0.0,
        le=100.0,
        description="Heuristic cost share for WHERE COALESCE(a, b) = x",
    )


@register_detector
class OrCondition(Detector):
    """Detect OR predicates and COALESCE filters that block index seeks."""

    detector_id = "OR_CONDITION"
    version = "1.0.0"
    issue_type = IssueType.OR_CONDITION
    description = "Detects OR conditions that prevent index usage"
    config_schema = OrConditionConfig

    def detect(self, sql: str, plan: Sequence["PlanNode"]) -> list[Bottleneck]:
        findings: list[Bottleneck] = []

        for line_number, line in iter_lines(sql):
            match = SIMPLE_OR_PATTERN.search(line)
            if match:
                findings.append(self._simple_or(
                    match.group(1), match.group(2), line_number, line.strip(), plan
                ))

            if COMPLEX_OR_PATTERN.search(line):
                findings.append(self._complex_or(line_number, line.strip()))

        match = COALESCE_EQUALS_PATTERN.search(sql)
        if match:
            findings.append(self._coalesce(
                match.group(1),
                match.group(2),
                line_number_at(sql, match.start()),
                sql[match.start():match.end() + COALESCE_CONTEXT_CHARS],
                plan,
            ))

        return findings

    def _simple_or(
        self,
        col1: str,
        col2: str,
        line_number: int,
        fragment: str,
        plan: Sequence["PlanNode"],
    ) -> Bottleneck:
        config: OrConditionConfig = self.config  # type: ignore[assignment]

        fields: dict[str, Any] = {"severity": Severity.WARNING}
        scan = find_expensive_scan(plan)
        if scan is not None:
            fields["cost_percentage"] = scan.cost_percentage
            fields["time_impact_seconds"] = scan.elapsed_seconds
            fields["operator_name"] = scan.description
            fields["related_node"] = scan
            fields["severity"] = Severity.from_cost(scan.cost_percentage)
        else:
            fields["cost_percentage"] = config.simple_or_cost_percentage
            fields["cost_is_estimate"] = True

        return Bottleneck(
            issue_type=self.issue_type,
            detector_id=self.detector_id,
            line_number=line_number,
            query_fragment=fragment,
            problem_description=(
                f"OR condition between '{col1}' and '{col2}' prevents index usage"
            ),
            why_its_slow=(
                "SQL Server cannot use indexes on either column when they're "
                "connected with OR. The query optimizer must scan the entire "
                "table to evaluate both conditions."
            ),
            fixes=(
                "Split OR condition into UNION ALL",
                "Each branch can use its respective index",
                "Deduplication happens at UNION ALL level",
            ),
            optimized_fragment=(
                "-- Split into two seekable branches:\n"
                "\n"
                f"-- Branch 1: Seek on {col1}\n"
                f"WHERE {col1} = @value\n"
                "\n"
                "UNION ALL\n"
                "\n"
                f"-- Branch 2: Seek on {col2} (exclude rows already in branch 1)\n"
                f"WHERE {col2} = @value\n"
                f"  AND {col1} IS NULL"
            ),
            expected_improvement=(
                "Converts table scan to two index seeks, typically 10-20x faster"
            ),
            **fields,
        )

    def _complex_or(self, line_number: int, fragment: str) -> Bottleneck:
        return Bottleneck(
            severity=Severity.WARNING,
            issue_type=self.issue_type,
            detector_id=self.detector_id,
            line_number=line_number,
            query_fragment=fragment,
            cost_percentage=10.0,
            cost_is_estimate=True,
            problem_description="Complex OR condition may prevent index usage",
            why_its_slow="Multiple OR conditions often force SQL Server to scan tables",
            fixes=(
                "Consider breaking into UNION ALL branches",
                "Or restructure logic to use IN clauses where possible",
            ),
        )

    def _coalesce(
        self,
        col1: str,
        col2: str,
        line_number: int,
        fragment: str,
        plan: Sequence["PlanNode"],
    ) -> Bottleneck:
        config: OrConditionConfig = self.config  # type: ignore[assignment]

        fields: dict[str, Any] = {"severity": Severity.CRITICAL}
        table = "fact_table"
        scan = find_expensive_scan(plan)
        if scan is not None:
            fields["cost_percentage"] = scan.cost_percentage
            fields["time_impact_seconds"] = scan.elapsed_seconds
            fields["operator_name"] = scan.description
            fields["related_node"] = scan
            fields["severity"] = Severity.from_cost(scan.cost_percentage)
            table = scan.object_name or table
        else:
            fields["cost_percentage"] = config.coalesce_cost_percentage
            fields["cost_is_estimate"] = True

        optimized = (
            "-- Replace COALESCE with UNION ALL:\n"
            "\n"
            "WITH a AS (\n"
            f"  SELECT txn_id, posted_date, amount, {col1} AS donor_key\n"
            f"  FROM {table}\n"
            f"  WHERE {col1} = @donor_id\n"
            "    AND posted_date >= @start_dt\n"
            "    AND posted_date < @end_dt\n"
            "),\n"
            "b AS (\n"
            f"  SELECT txn_id, posted_date, amount, {col2} AS donor_key\n"
            f"  FROM {table}\n"
            f"  WHERE {col2} = @donor_id\n"
            f"    AND {col1} IS NULL\n"
            "    AND posted_date >= @start_dt\n"
            "    AND posted_date < @end_dt\n"
            ")\n"
            "SELECT * FROM a\n"
            "UNION ALL\n"
            "SELECT * FROM b"
        )

        index_sql = (
            "-- Ensure indexes exist:\n"
            f"CREATE INDEX IX_{col1.replace('.', '_')} ON {table} ({col1}) INCLUDE (other_columns);\n"
            f"CREATE INDEX IX_{col2.replace('.', '_')} ON {table} ({col2}) INCLUDE (other_columns);"
        )

        return Bottleneck(
            issue_type=self.issue_type,
            detector_id=self.detector_id,
            line_number=line_number,
            query_fragment=fragment,
            problem_description=(
                f"COALESCE({col1}, {col2}) in WHERE clause prevents index seeks"
            ),
            why_its_slow=(
                f"COALESCE must be evaluated for every row, making indexes on "
                f"'{col1}' or '{col2}' unusable. This is equivalent to "
                f"({col1} = X OR {col2} = X) which forces a full table scan."
            ),
            fixes=(
                "Split COALESCE into two index-seekable branches",
                f"First branch: seek on '{col1}'",
                f"Second branch: seek on '{col2}' where {col1} IS NULL",
            ),
            fix_queries=(index_sql,),
            optimized_fragment=optimized,
            expected_improvement=(
                "Converts scan to two seeks, typically 10x faster"
            ),
            **fields,
        )
