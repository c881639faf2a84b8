"""
Output module - Separates rendering from analysis.

Provides multiple output formats:
- render_text: the one-page report for terminals and email
- render_json: Stable JSON schema for CI and dashboards
- render_markdown: Pull request and wiki friendly format

Usage:
    from querylens.output import render_text, render_json

    result = analyzer.analyze(sql, plan)
    print(render_text(result, sql))
"""

from querylens.output.renderers import (
    OutputFormat,
    render,
    render_json,
    render_markdown,
    render_text,
)
from querylens.output.schema import (
    AnalysisResultSchema,
    BottleneckSchema,
    get_json_schema,
)

__all__ = [
    "OutputFormat",
    "render",
    "render_text",
    "render_json",
    "render_markdown",
    "AnalysisResultSchema",
    "BottleneckSchema",
    "get_json_schema",
]
