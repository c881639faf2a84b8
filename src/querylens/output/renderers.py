"""
Output renderers for different formats.

Separates presentation logic from analysis logic.
Uses schema.py Pydantic models as the single source of truth
for JSON serialization, with no manual dict construction.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import TYPE_CHECKING

from querylens.analyzer.models import IssueType
from querylens.analyzer.scanning import split_lines
from querylens.formatting import format_number, indent_code, truncate, wrap_text
from querylens.output.schema import (
    SCHEMA_VERSION,
    AnalysisResultSchema,
    BottleneckSchema,
    CostSchema,
    DetectorRunSchema,
    LocationSchema,
    SummarySchema,
)

if TYPE_CHECKING:
    from querylens.analyzer.models import AnalysisResult, Bottleneck, DetectorRun


class OutputFormat(str, Enum):
    """Supported output formats."""

    TEXT = "text"
    JSON = "json"
    MARKDOWN = "markdown"


DEFAULT_WIDTH = 80
DEFAULT_BREAKDOWN_MIN_PERCENT = 5.0

# Executive summary line per detected family, in report order
_SUMMARY_LINES = (
    (IssueType.NON_SARGABLE_PREDICATE, "Non-SARGABLE predicates detected - blocking index seeks"),
    (IssueType.CORRELATED_SUBQUERY, "Correlated subqueries detected - executing per row"),
    (IssueType.OR_CONDITION, "OR conditions detected - preventing index usage"),
    (IssueType.MISSING_INDEX, "Missing indexes detected - causing full table scans"),
)


def render(
    result: "AnalysisResult",
    format: OutputFormat = OutputFormat.TEXT,
    sql: str | None = None,
    *,
    width: int = DEFAULT_WIDTH,
    breakdown_min_percent: float = DEFAULT_BREAKDOWN_MIN_PERCENT,
) -> str:
    """
    Render analysis result in the specified format.

    Args:
        result: Analysis result to render
        format: Output format (text, json, markdown)
        sql: The analyzed SQL, used to show source lines for findings
            that carry no fragment of their own
        width: Text report width
        breakdown_min_percent: Cost share needed to appear in the cost breakdown

    Returns:
        Formatted string
    """
    if format == OutputFormat.TEXT:
        return render_text(
            result, sql, width=width, breakdown_min_percent=breakdown_min_percent
        )
    elif format == OutputFormat.JSON:
        return render_json(result)
    elif format == OutputFormat.MARKDOWN:
        return render_markdown(result)
    else:
        raise ValueError(f"Unknown output format: {format}")


# =============================================================================
# Schema-based serialization (single source of truth)
# =============================================================================


def _result_to_schema(result: "AnalysisResult") -> AnalysisResultSchema:
    """Convert AnalysisResult to the Pydantic schema model."""
    summary = result.summary()

    return AnalysisResultSchema(
        version=SCHEMA_VERSION,
        summary=SummarySchema(
            total=summary["total"],
            critical=summary["critical"],
            warning=summary["warning"],
            info=summary["info"],
            total_cost_ms=summary["total_cost_ms"],
            estimated_baseline_seconds=result.estimated_baseline_seconds,
            total_impact_seconds=summary["total_impact_seconds"],
            potential_improvement_percent=summary["potential_improvement_percent"],
            detectors_failed=summary["detectors_failed"],
        ),
        bottlenecks=[_bottleneck_to_schema(b) for b in result.bottlenecks],
        index_recommendations=result.index_statements(),
        detector_runs=[_detector_run_to_schema(r) for r in result.detector_runs],
    )


def _bottleneck_to_schema(bottleneck: "Bottleneck") -> BottleneckSchema:
    """Convert Bottleneck to the Pydantic schema model."""
    return BottleneckSchema(
        severity=bottleneck.severity.value,
        issue_type=bottleneck.issue_type.value,
        issue_type_description=bottleneck.issue_type_description,
        detector_id=bottleneck.detector_id,
        location=LocationSchema(
            line_number=bottleneck.line_number,
            start_line=bottleneck.start_line,
            end_line=bottleneck.end_line,
            query_fragment=bottleneck.query_fragment,
        ),
        cost=CostSchema(
            cost_percentage=bottleneck.cost_percentage,
            time_impact_seconds=bottleneck.time_impact_seconds,
            operator_name=bottleneck.operator_name,
            execution_count=bottleneck.execution_count,
            is_estimate=bottleneck.cost_is_estimate,
        ),
        problem_description=bottleneck.problem_description,
        why_its_slow=bottleneck.why_its_slow,
        fixes=list(bottleneck.fixes),
        fix_queries=list(bottleneck.fix_queries),
        optimized_fragment=bottleneck.optimized_fragment,
        expected_improvement=bottleneck.expected_improvement,
    )


def _detector_run_to_schema(run: "DetectorRun") -> DetectorRunSchema:
    return DetectorRunSchema(
        detector_id=run.detector_id,
        version=run.version,
        status=run.status.value,
        runtime_ms=run.runtime_ms,
        findings_count=run.findings_count,
        error_summary=run.error_summary,
    )


# =============================================================================
# Text renderer (the one-pager)
# =============================================================================


def render_text(
    result: "AnalysisResult",
    sql: str | None = None,
    *,
    width: int = DEFAULT_WIDTH,
    breakdown_min_percent: float = DEFAULT_BREAKDOWN_MIN_PERCENT,
) -> str:
    """
    Render the one-page text report.

    Sections: header, executive summary, cost breakdown, detailed
    analysis per finding, index recommendations, performance projection.
    """
    source_lines = split_lines(sql) if sql is not None else None

    sections = [
        _text_header(result, width),
        _text_summary(result, width),
        _text_cost_breakdown(result, width, breakdown_min_percent),
        _text_details(result, width, source_lines),
        _text_index_recommendations(result, width),
        _text_projection(result, width),
    ]
    return "\n\n".join(sections) + "\n"


def _text_header(result: "AnalysisResult", width: int) -> str:
    inner = width - 2
    title = "  QueryLens BI Analysis"
    return "\n".join([
        "╔" + "═" * inner + "╗",
        "║" + title.ljust(inner) + "║",
        "╚" + "═" * inner + "╝",
        "",
        (
            f"📊 Issues Detected: {result.total_bottlenecks} "
            f"({result.critical_count} Critical, {result.warning_count} Warnings, "
            f"{result.info_count} Info)"
        ),
        f"⏱️  Estimated Runtime Impact: {result.total_impact_seconds:.1f} seconds",
        f"📈 Potential Improvement: {result.potential_improvement_percent:.0f}% faster",
    ])


def _text_summary(result: "AnalysisResult", width: int) -> str:
    lines = ["🎯 EXECUTIVE SUMMARY", "─" * width, ""]

    present = result.issue_type_counts()
    for issue_type, text in _SUMMARY_LINES:
        if issue_type in present:
            lines.append(f"⚠️  {text}")

    if not result.bottlenecks:
        lines.append("✅ No performance anti-patterns detected")

    return "\n".join(lines)


def _text_cost_breakdown(
    result: "AnalysisResult",
    width: int,
    min_percent: float,
) -> str:
    lines = [
        "📊 COST BREAKDOWN",
        "━" * width,
        f"{'Operation':<40} │ {'Cost %':>6} │ {'Time':>10} │ {'Category':>12}",
        "─" * width,
    ]

    for b in result.bottlenecks:
        if b.cost_percentage < min_percent:
            continue
        operation = truncate(b.operator_name or b.issue_type_description, 38)
        cost = f"{b.cost_percentage:.1f}%"
        time = f"{b.time_impact_seconds:.1f}s" if b.time_impact_seconds is not None else "N/A"
        category = truncate(b.issue_type_description, 12)
        lines.append(
            f"{b.severity_emoji} {operation:<37} │ {cost:>6} │ {time:>10} │ {category:>12}"
        )

    return "\n".join(lines)


def _text_details(
    result: "AnalysisResult",
    width: int,
    source_lines: list[str] | None,
) -> str:
    lines = ["🔍 DETAILED ANALYSIS", "━" * width]
    for number, bottleneck in enumerate(result.bottlenecks, 1):
        lines.append("")
        lines.append(_text_bottleneck(bottleneck, number, width, source_lines))
    return "\n".join(lines)


def _text_bottleneck(
    b: "Bottleneck",
    number: int,
    width: int,
    source_lines: list[str] | None,
) -> str:
    separator = "━" * width
    lines = [
        separator,
        (
            f"{b.severity_emoji} {b.severity.value} #{number}: "
            f"{b.issue_type_description} ({b.cost_percentage:.1f}% of runtime)"
        ),
        separator,
        "",
    ]

    line = b.line_number if b.line_number is not None else b.start_line
    if line is not None:
        if b.end_line is not None and b.end_line != line:
            lines.append(f"📍 Location: Lines {line}-{b.end_line}")
        else:
            lines.append(f"📍 Location: Line {line}")
    elif b.operator_name:
        lines.append(f"📍 Location: {b.operator_name}")

    fragment = b.query_fragment
    if fragment is None and line is not None and source_lines and line <= len(source_lines):
        fragment = source_lines[line - 1].strip()
    if fragment:
        lines.append(indent_code(fragment))
    lines.append("")

    lines.append("⚠️  Problem:")
    lines.append(f"   {b.problem_description}")
    lines.append("")

    if b.why_its_slow:
        lines.append("🐌 Why It's Slow:")
        lines.append(wrap_text(b.why_its_slow, indent=3, width=width))
        lines.append("")

    if b.time_impact_seconds:
        lines.append(
            f"💰 Impact: {b.time_impact_seconds:.1f} seconds "
            f"({b.cost_percentage:.1f}% of total)"
        )
        lines.append("")

    if b.execution_count > 0:
        lines.append(f"🔄 Executes: {format_number(b.execution_count)} times")
        lines.append("")

    if b.fixes:
        lines.append("✅ Recommended Fixes:")
        for i, fix in enumerate(b.fixes, 1):
            lines.append(f"   {i}. {fix}")
        lines.append("")

    if b.optimized_fragment:
        lines.append("✨ Optimized Code:")
        lines.append(indent_code(b.optimized_fragment))
        lines.append("")

    if b.fix_queries:
        lines.append("💾 Index Recommendations:")
        for query in b.fix_queries:
            lines.append(indent_code(query))
        lines.append("")

    if b.expected_improvement:
        lines.append("📈 Expected Improvement:")
        lines.append(f"   {b.expected_improvement}")

    return "\n".join(lines).rstrip("\n")


def _text_index_recommendations(result: "AnalysisResult", width: int) -> str:
    lines = ["💾 INDEX RECOMMENDATIONS SUMMARY", "━" * width, ""]

    statements = result.index_statements()
    if not statements:
        lines.append("   No index recommendations - query may already be well-indexed.")
    for i, statement in enumerate(statements, 1):
        lines.append(f"Index #{i}:")
        lines.append(indent_code(statement))
        lines.append("")

    return "\n".join(lines).rstrip("\n")


def _text_projection(result: "AnalysisResult", width: int) -> str:
    separator = "━" * width
    lines = [separator, "📊 PERFORMANCE PROJECTION", separator, ""]

    baseline = result.estimated_baseline_seconds
    if baseline > 0:
        improvement = result.potential_improvement_percent
        optimized = baseline - result.total_impact_seconds * improvement / 100.0
        lines.append(f"Baseline:   {baseline:.1f} seconds")
        lines.append(f"Optimized:  {optimized:.1f} seconds (estimated)")
        lines.append("")
        lines.append(f"Improvement: {improvement:.0f}% faster ⚡")
    else:
        lines.append("Run query with execution plan to see performance projection.")

    return "\n".join(lines)


# =============================================================================
# JSON renderer (uses schema models)
# =============================================================================


def render_json(result: "AnalysisResult", indent: int = 2) -> str:
    """
    Render analysis result as stable JSON schema.

    Uses Pydantic schema models for guaranteed consistency.
    Suitable for CI/CD integration and log aggregation.
    """
    schema = _result_to_schema(result)
    return json.dumps(schema.model_dump(mode="json"), indent=indent, default=str)


# =============================================================================
# Markdown renderer
# =============================================================================


def render_markdown(result: "AnalysisResult") -> str:
    """
    Render analysis result as Markdown.

    Suitable for pull request comments, tickets and wiki pages.
    """
    lines: list[str] = []

    lines.append("# QueryLens Analysis Report")
    lines.append("")

    if result.critical_count:
        lines.append("🔴 **Critical issues found**")
    elif result.warning_count:
        lines.append("🟡 **Warnings found**")
    elif result.bottlenecks:
        lines.append("🔵 **Informational findings only**")
    else:
        lines.append("✅ **No issues found**")
    lines.append("")

    lines.append("## Summary")
    lines.append("")
    lines.append("| Metric | Value |")
    lines.append("|--------|-------|")
    lines.append(f"| Total Findings | {result.total_bottlenecks} |")
    lines.append(f"| Critical | {result.critical_count} |")
    lines.append(f"| Warnings | {result.warning_count} |")
    lines.append(f"| Info | {result.info_count} |")
    lines.append(f"| Potential Improvement | {result.potential_improvement_percent:.0f}% |")
    lines.append("")

    if result.bottlenecks:
        lines.append("## Findings")
        lines.append("")
        lines.append("| # | Severity | Issue | Line | Cost |")
        lines.append("|---|----------|-------|------|------|")
        for i, b in enumerate(result.bottlenecks, 1):
            line = b.line_number if b.line_number is not None else b.start_line
            lines.append(
                f"| {i} | {b.severity_emoji} {b.severity.value} | "
                f"{b.issue_type_description} | {line if line is not None else '-'} | "
                f"{b.cost_percentage:.1f}% |"
            )
        lines.append("")

        for i, b in enumerate(result.bottlenecks, 1):
            lines.append(f"### {i}. {b.severity_emoji} {b.problem_description}")
            lines.append("")
            if b.why_its_slow:
                lines.append(b.why_its_slow)
                lines.append("")

            if b.fixes:
                lines.append("**Fixes:**")
                lines.append("")
                for fix in b.fixes:
                    lines.append(f"- {fix}")
                lines.append("")

            if b.optimized_fragment:
                lines.append("```sql")
                lines.append(b.optimized_fragment)
                lines.append("```")
                lines.append("")

            if b.expected_improvement:
                lines.append(f"**Expected improvement:** {b.expected_improvement}")
                lines.append("")

    statements = result.index_statements()
    if statements:
        lines.append("## Index Recommendations")
        lines.append("")
        lines.append("```sql")
        lines.append("\n\n".join(statements))
        lines.append("```")
        lines.append("")

    if result.detector_runs:
        lines.append("<details>")
        lines.append("<summary>Detector Execution Details</summary>")
        lines.append("")
        lines.append("| Detector | Status | Findings | Runtime |")
        lines.append("|----------|--------|----------|---------|")
        for run in result.detector_runs:
            status_icon = "✅" if run.status.value == "pass" else "❌"
            lines.append(
                f"| `{run.detector_id}` | {status_icon} {run.status.value} | "
                f"{run.findings_count} | {run.runtime_ms:.1f}ms |"
            )
        lines.append("")
        lines.append("</details>")

    return "\n".join(lines)
