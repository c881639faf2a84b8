"""
JSON Schema definitions for stable report output.

Provides a versioned schema for:
- CI/CD integration (fail the build on CRITICAL findings)
- Feeding findings into dashboards or tickets
- Documentation generation

The schema is stable across minor versions.
Breaking changes only in major versions.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Schema version - increment on breaking changes
SCHEMA_VERSION = "1.0"


class LocationSchema(BaseModel):
    """Where a finding sits in the SQL text."""

    model_config = ConfigDict(frozen=True)

    line_number: int | None = Field(None, description="1-based line of the issue")
    start_line: int | None = Field(None, description="First line of a multi-line span")
    end_line: int | None = Field(None, description="Last line of a multi-line span")
    query_fragment: str | None = Field(None, description="The offending SQL text")


class CostSchema(BaseModel):
    """Cost attribution of a finding."""

    model_config = ConfigDict(frozen=True)

    cost_percentage: float = Field(0.0, description="Share of total query cost (0-100)")
    time_impact_seconds: float | None = Field(None, description="Seconds attributable to the issue")
    operator_name: str | None = Field(None, description="Plan operator the cost came from")
    execution_count: int = Field(0, description="Executions of a per-row construct")
    is_estimate: bool = Field(False, description="True when cost is a heuristic constant")


class BottleneckSchema(BaseModel):
    """Schema for a single finding."""

    model_config = ConfigDict(frozen=True)

    severity: str = Field(..., description="Severity level (CRITICAL/WARNING/INFO)")
    issue_type: str = Field(..., description="Anti-pattern family")
    issue_type_description: str = Field(..., description="Readable anti-pattern name")
    detector_id: str | None = Field(None, description="Detector that produced the finding")
    location: LocationSchema = Field(..., description="Position in the SQL")
    cost: CostSchema = Field(..., description="Cost attribution")
    problem_description: str = Field(..., description="What is wrong")
    why_its_slow: str | None = Field(None, description="Why it hurts")
    fixes: list[str] = Field(default_factory=list, description="Ordered fix steps")
    fix_queries: list[str] = Field(default_factory=list, description="Ready-to-run SQL")
    optimized_fragment: str | None = Field(None, description="Rewritten SQL example")
    expected_improvement: str | None = Field(None, description="Free-text estimate")


class DetectorRunSchema(BaseModel):
    """Schema for detector execution record."""

    model_config = ConfigDict(frozen=True)

    detector_id: str = Field(..., description="Detector identifier")
    version: str = Field(..., description="Detector version")
    status: str = Field(..., description="Execution status (pass/fail)")
    runtime_ms: float = Field(0.0, description="Execution time in milliseconds")
    findings_count: int = Field(0, description="Number of findings generated")
    error_summary: str | None = Field(None, description="Error message if failed")


class SummarySchema(BaseModel):
    """Schema for result summary."""

    model_config = ConfigDict(frozen=True)

    total: int = Field(0, description="Total findings count")
    critical: int = Field(0, description="Critical findings count")
    warning: int = Field(0, description="Warning findings count")
    info: int = Field(0, description="Info findings count")
    total_cost_ms: float = Field(0.0, description="Summed plan cost")
    estimated_baseline_seconds: float = Field(0.0, description="Total cost in seconds")
    total_impact_seconds: float = Field(0.0, description="Summed time impact of findings")
    potential_improvement_percent: float = Field(0.0, description="Summed cost share, capped at 95")
    detectors_failed: int = Field(0, description="Detectors that raised")


class AnalysisResultSchema(BaseModel):
    """
    Top-level schema for analysis results.

    This schema is stable across minor versions.
    Breaking changes require major version bump.
    """

    model_config = ConfigDict(frozen=True)

    version: str = Field(SCHEMA_VERSION, description="Schema version")
    summary: SummarySchema = Field(..., description="Result summary")
    bottlenecks: list[BottleneckSchema] = Field(default_factory=list, description="Ranked findings")
    index_recommendations: list[str] = Field(
        default_factory=list,
        description="Distinct CREATE INDEX statements across findings",
    )
    detector_runs: list[DetectorRunSchema] = Field(
        default_factory=list,
        description="Detector execution records",
    )


def get_json_schema() -> dict[str, Any]:
    """Get the JSON Schema for documentation."""
    return AnalysisResultSchema.model_json_schema()
