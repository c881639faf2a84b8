"""
Data models for the analyzer module.

A Bottleneck is one detected performance issue, linked to the SQL lines
that cause it and carrying the fixes for it. Findings are:
- Immutable (frozen=True): nothing downstream of a detector edits them
- Serializable: JSON output goes through output/schema.py
- Self-describing: severity, issue family and cost share travel together
"""

from __future__ import annotations

from collections import Counter
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from querylens.plan.models import (
    CRITICAL_COST_THRESHOLD,
    WARNING_COST_THRESHOLD,
    PlanNode,
)


class Severity(str, Enum):
    """
    Severity levels for findings.

    CRITICAL: >= 20% of total cost, or a construct that reliably forces scans
    WARNING: 10-20% of cost
    INFO: < 10% but still worth a look
    """
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        """Sort position: CRITICAL first."""
        return _SEVERITY_RANK[self]

    @property
    def emoji(self) -> str:
        return _SEVERITY_EMOJI[self]

    @classmethod
    def from_cost(cls, cost_percentage: float) -> "Severity":
        """Severity implied by a plan-attributed cost share."""
        if cost_percentage >= CRITICAL_COST_THRESHOLD:
            return cls.CRITICAL
        if cost_percentage >= WARNING_COST_THRESHOLD:
            return cls.WARNING
        return cls.INFO

    def __lt__(self, other: object) -> bool:
        """Enable sorting by severity (CRITICAL < WARNING < INFO)."""
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank


_SEVERITY_RANK = {Severity.CRITICAL: 0, Severity.WARNING: 1, Severity.INFO: 2}
_SEVERITY_EMOJI = {Severity.CRITICAL: "🔴", Severity.WARNING: "🟡", Severity.INFO: "🔵"}


class IssueType(str, Enum):
    """Anti-pattern families. EXPENSIVE_JOIN and CARTESIAN_PRODUCT are reserved."""

    NON_SARGABLE_PREDICATE = "NON_SARGABLE_PREDICATE"
    CORRELATED_SUBQUERY = "CORRELATED_SUBQUERY"
    OR_CONDITION = "OR_CONDITION"
    LATE_FILTER = "LATE_FILTER"
    MISSING_INDEX = "MISSING_INDEX"
    HEAVY_AGGREGATION = "HEAVY_AGGREGATION"
    EXPENSIVE_JOIN = "EXPENSIVE_JOIN"
    CARTESIAN_PRODUCT = "CARTESIAN_PRODUCT"

    @property
    def description(self) -> str:
        return _ISSUE_DESCRIPTIONS[self]


_ISSUE_DESCRIPTIONS = {
    IssueType.NON_SARGABLE_PREDICATE: "Non-SARGABLE Predicate",
    IssueType.CORRELATED_SUBQUERY: "Correlated Subquery",
    IssueType.OR_CONDITION: "OR Condition Blocking Index",
    IssueType.LATE_FILTER: "Late Filter Application",
    IssueType.MISSING_INDEX: "Missing Index",
    IssueType.HEAVY_AGGREGATION: "Heavy Aggregation",
    IssueType.EXPENSIVE_JOIN: "Expensive JOIN Operation",
    IssueType.CARTESIAN_PRODUCT: "Cartesian Product",
}


class Bottleneck(BaseModel):
    """
    A single performance issue found in a query.

    Links the issue to specific query lines and provides actionable fixes.
    Cost is either attributed from a plan node (severity then follows the
    cost share) or a fixed per-detector estimate, flagged by
    cost_is_estimate.

    Example:
        Bottleneck(
            severity=Severity.CRITICAL,
            issue_type=IssueType.NON_SARGABLE_PREDICATE,
            line_number=12,
            query_fragment="WHERE YEAR(gd.posted_date) = 2023",
            cost_percentage=72.0,
            time_impact_seconds=10.8,
            problem_description="Function YEAR() on column 'gd.posted_date' prevents index seek",
            optimized_fragment="gd.posted_date >= '2023-01-01' AND gd.posted_date < '2024-01-01'",
        )
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    severity: Severity = Field(..., description="Severity level of the finding")
    issue_type: IssueType = Field(..., description="Anti-pattern family")
    detector_id: str | None = Field(
        default=None,
        description="Detector that produced this finding",
    )

    # Location in query
    line_number: int | None = Field(default=None, description="1-based line of the issue")
    start_line: int | None = Field(default=None, description="First line of a multi-line span")
    end_line: int | None = Field(default=None, description="Last line of a multi-line span")
    query_fragment: str | None = Field(default=None, description="The offending SQL text")

    # Cost impact
    cost_percentage: float = Field(
        default=0.0,
        ge=0.0,
        description="Share of total query cost (0-100)",
    )
    time_impact_seconds: float | None = Field(
        default=None,
        description="Estimated seconds attributable to this issue",
    )
    operator_name: str | None = Field(
        default=None,
        description='Plan operator, e.g. "Table Scan on GIVING_DETAIL (12.3M rows)"',
    )
    execution_count: int = Field(
        default=0,
        ge=0,
        description="How often the construct runs (per-row subqueries)",
    )
    cost_is_estimate: bool = Field(
        default=False,
        description="True when cost is a heuristic constant, not a plan measurement",
    )

    # Explanation and remediation
    problem_description: str = Field(..., min_length=1, description="What is wrong")
    why_its_slow: str | None = Field(default=None, description="Why it hurts")
    fixes: tuple[str, ...] = Field(default_factory=tuple, description="Ordered fix steps")
    fix_queries: tuple[str, ...] = Field(
        default_factory=tuple,
        description="Ready-to-run SQL implementing the fixes",
    )
    optimized_fragment: str | None = Field(default=None, description="Rewritten SQL example")
    expected_improvement: str | None = Field(default=None, description="Free-text estimate")

    related_node: PlanNode | None = Field(
        default=None,
        exclude=True,
        repr=False,
        description="Plan node the cost was attributed from (non-owning)",
    )

    @classmethod
    def from_node(
        cls,
        node: PlanNode,
        issue_type: IssueType,
        **fields: Any,
    ) -> "Bottleneck":
        """
        Build a finding whose cost, time and location come from a plan node.

        Severity follows the node's cost share unless passed explicitly.
        """
        values: dict[str, Any] = {
            "issue_type": issue_type,
            "severity": Severity.from_cost(node.cost_percentage),
            "operator_name": node.description,
            "cost_percentage": node.cost_percentage,
            "time_impact_seconds": node.elapsed_seconds,
            "start_line": node.start_line,
            "end_line": node.end_line,
            "query_fragment": node.query_fragment,
            "related_node": node,
        }
        values.update(fields)
        return cls(**values)

    @property
    def issue_type_description(self) -> str:
        return self.issue_type.description

    @property
    def severity_emoji(self) -> str:
        return self.severity.emoji

    @property
    def formatted_cost_impact(self) -> str:
        """E.g. "72.0% of runtime (10.8s)"."""
        if self.time_impact_seconds is None:
            return f"{self.cost_percentage:.1f}% of runtime"
        return f"{self.cost_percentage:.1f}% of runtime ({self.time_impact_seconds:.1f}s)"

    @property
    def sort_key(self) -> tuple[int, float]:
        return (self.severity.rank, -self.cost_percentage)


class DetectorRunStatus(str, Enum):
    """Outcome of one detector execution."""

    PASS = "pass"
    FAIL = "fail"


class DetectorRun(BaseModel):
    """
    Record of a single detector execution.

    Lets callers tell "found nothing" apart from "crashed".
    """

    model_config = ConfigDict(frozen=True)

    detector_id: str = Field(..., description="Unique detector identifier")
    version: str = Field(..., description="Detector version")
    status: DetectorRunStatus = Field(..., description="Execution status")
    runtime_ms: float = Field(default=0.0, description="Execution time in milliseconds")
    findings_count: int = Field(default=0, description="Number of findings generated")
    error_summary: str | None = Field(default=None, description="Error message if FAIL")


class AnalysisResult(BaseModel):
    """
    Complete result of analyzing one query.

    Contains:
    - bottlenecks: every finding, ranked CRITICAL first then by cost share.
      Overlapping detectors may report the same clause twice; findings are
      not de-duplicated.
    - summary counters, total plan cost and attributed time
    - potential_improvement_percent: summed cost shares, saturated at 95
    - detector_runs: PASS/FAIL record per detector
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    bottlenecks: tuple[Bottleneck, ...] = Field(
        default_factory=tuple,
        description="All findings, ranked",
    )
    total_bottlenecks: int = Field(default=0, description="Number of findings")
    critical_count: int = Field(default=0, description="CRITICAL findings")
    warning_count: int = Field(default=0, description="WARNING findings")
    info_count: int = Field(default=0, description="INFO findings")
    total_cost_ms: float = Field(default=0.0, description="Sum of plan nodes' actual cost")
    total_impact_seconds: float = Field(
        default=0.0,
        description="Sum of findings' time impact (missing counts as 0)",
    )
    potential_improvement_percent: float = Field(
        default=0.0,
        ge=0.0,
        le=95.0,
        description="Summed cost share of all findings, capped at 95",
    )
    detector_runs: tuple[DetectorRun, ...] = Field(
        default_factory=tuple,
        description="Detailed status of each detector execution",
    )

    @property
    def estimated_baseline_seconds(self) -> float:
        return self.total_cost_ms / 1000.0

    @property
    def has_critical(self) -> bool:
        """Check if any critical issues were found."""
        return self.critical_count > 0

    @property
    def has_warnings(self) -> bool:
        return self.warning_count > 0

    @property
    def detectors_failed(self) -> int:
        return sum(1 for r in self.detector_runs if r.status == DetectorRunStatus.FAIL)

    def bottlenecks_by_severity(self, severity: Severity) -> list[Bottleneck]:
        """Get all findings of a specific severity."""
        return [b for b in self.bottlenecks if b.severity == severity]

    def bottlenecks_by_type(self, issue_type: IssueType) -> list[Bottleneck]:
        return [b for b in self.bottlenecks if b.issue_type == issue_type]

    def issue_type_counts(self) -> dict[IssueType, int]:
        return dict(Counter(b.issue_type for b in self.bottlenecks))

    def index_statements(self) -> list[str]:
        """Distinct CREATE INDEX fix queries, in first-seen order."""
        seen: dict[str, None] = {}
        for bottleneck in self.bottlenecks:
            for query in bottleneck.fix_queries:
                if "CREATE INDEX" in query:
                    seen.setdefault(query, None)
        return list(seen)

    def summary(self) -> dict[str, int | float]:
        """Get a summary count by severity plus cost totals."""
        return {
            "total": self.total_bottlenecks,
            "critical": self.critical_count,
            "warning": self.warning_count,
            "info": self.info_count,
            "total_cost_ms": self.total_cost_ms,
            "total_impact_seconds": self.total_impact_seconds,
            "potential_improvement_percent": self.potential_improvement_percent,
            "detectors_failed": self.detectors_failed,
        }
