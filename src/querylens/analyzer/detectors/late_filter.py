"""
Detector: Late Filter

Finds dimension filters that only apply after a join has already paired
every fact row:

    FROM fact_gifts gd
    JOIN dbo.designation_dim dd ON dd.id = gd.designation
    WHERE dd.business_unit = 'Dornsife'

Filtering the dimension in a CTE first shrinks the join input.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Sequence

from pydantic import Field

from querylens.analyzer.detectors.base import Detector, DetectorConfig
from querylens.analyzer.models import Bottleneck, IssueType, Severity
from querylens.analyzer.registry import register_detector
from querylens.analyzer.scanning import is_comment_line, iter_lines

if TYPE_CHECKING:
    from querylens.plan.models import PlanNode


JOIN_KEYWORD = re.compile(r"\bJOIN\s", re.IGNORECASE)

JOIN_ALIAS_PATTERN = re.compile(
    r"\bJOIN\s+([\w.\[\]]+)\s+(?:AS\s+)?(\w+)",
    re.IGNORECASE,
)

WHERE_START = re.compile(r"^WHERE\b", re.IGNORECASE)
AND_KEYWORD = re.compile(r"\bAND\s", re.IGNORECASE)

NOT_AN_ALIAS = frozenset({
    "ON", "WITH", "WHERE", "USING", "INNER", "LEFT", "RIGHT", "FULL",
    "CROSS", "OUTER", "JOIN", "GROUP", "ORDER", "UNION", "APPLY",
})

DEFAULT_DIMENSION_COLUMNS = (
    "business_unit",
    "department",
    "category",
    "status",
    "type",
    "region",
    "division",
)


class LateFilterConfig(DetectorConfig):
    """
    Configuration for late filter detection.

    Attributes:
        dimension_columns: Column names treated as dimension filters
        cost_percentage: Cost estimate without plan evidence
        join_cost_share: Share of an expensive join attributed to the filter
    """

    dimension_columns: tuple[str, ...] = Field(
        default=DEFAULT_DIMENSION_COLUMNS,
        description="Dimension attributes that should be filtered before joining",
    )

    cost_percentage: float = Field(
        default=8.0,
        ge=0.0,
        le=100.0,
        description="Heuristic cost share of a late filter",
    )

    join_cost_share: float = Field(
        default=0.5,
        gt=0.0,
        le=1.0,
        description="Fraction of an expensive join's cost attributed to the filter",
    )


@register_detector
class LateFilter(Detector):
    """Detect dimension filters applied after a join instead of before it."""

    detector_id = "LATE_FILTER"
    version = "1.0.0"
    issue_type = IssueType.LATE_FILTER
    description = "Detects dimension filters applied after expensive joins"
    config_schema = LateFilterConfig

    def detect(self, sql: str, plan: Sequence["PlanNode"]) -> list[Bottleneck]:
        config: LateFilterConfig = self.config  # type: ignore[assignment]

        # alias -> line of the JOIN that introduced it, in first-seen order
        joined: dict[str, int] = {}
        filter_patterns: dict[str, list[tuple[str, re.Pattern[str]]]] = {}
        findings: list[Bottleneck] = []

        for line_number, raw_line in iter_lines(sql):
            line = raw_line.strip()
            if is_comment_line(line):
                continue

            if JOIN_KEYWORD.search(line):
                match = JOIN_ALIAS_PATTERN.search(line)
                if match and match.group(2).upper() not in NOT_AN_ALIAS:
                    alias = match.group(2)
                    joined[alias] = line_number
                    filter_patterns.setdefault(alias, [
                        (column, re.compile(
                            rf"\b{re.escape(alias)}\.{re.escape(column)}\s*=",
                            re.IGNORECASE,
                        ))
                        for column in config.dimension_columns
                    ])

            if not (WHERE_START.match(line) or (joined and AND_KEYWORD.search(line))):
                continue

            for alias, join_line in joined.items():
                for column, pattern in filter_patterns[alias]:
                    if pattern.search(line):
                        findings.append(self._finding(
                            alias, column, line_number, join_line, line, plan
                        ))

        return findings

    def _finding(
        self,
        alias: str,
        column: str,
        filter_line: int,
        join_line: int,
        fragment: str,
        plan: Sequence["PlanNode"],
    ) -> Bottleneck:
        config: LateFilterConfig = self.config  # type: ignore[assignment]

        fields: dict[str, Any] = {
            "cost_percentage": config.cost_percentage,
            "cost_is_estimate": True,
        }
        join_node = _find_expensive_join(plan)
        if join_node is not None:
            fields = {
                "cost_percentage": join_node.cost_percentage * config.join_cost_share,
                "time_impact_seconds": join_node.elapsed_seconds * config.join_cost_share,
                "operator_name": join_node.description,
                "related_node": join_node,
            }

        return Bottleneck(
            severity=Severity.WARNING,
            issue_type=self.issue_type,
            detector_id=self.detector_id,
            line_number=filter_line,
            start_line=join_line,
            end_line=filter_line,
            query_fragment=fragment,
            problem_description=f"Filter on {alias}.{column} applied AFTER join",
            why_its_slow=(
                f"The join at line {join_line} processes all rows from both tables, "
                f"then filters on '{column}'. This wastes CPU and memory on rows "
                "that will be discarded. Applying the filter earlier (in a CTE or "
                "subquery) reduces the dataset before the join."
            ),
            fixes=(
                f"Move {column} filter into a CTE",
                "Filter dimension table BEFORE joining to fact table",
                "This reduces row count early in execution",
            ),
            optimized_fragment=(
                "-- Push filter into CTE:\n"
                "\n"
                f"WITH filtered_{alias} AS (\n"
                "  SELECT *\n"
                "  FROM table_name\n"
                f"  WHERE {column} = @value\n"
                ")\n"
                "\n"
                "-- Then join to filtered CTE\n"
                "FROM fact_table\n"
                f"JOIN filtered_{alias} {alias}\n"
                "  ON join_condition"
            ),
            expected_improvement=(
                "20-40% reduction in rows processed, faster hash/merge join operations"
            ),
            **fields,
        )


def _find_expensive_join(plan: Sequence["PlanNode"]) -> "PlanNode | None":
    for node in plan:
        if "Join" in node.operator_type and node.is_expensive:
            return node
    return None
