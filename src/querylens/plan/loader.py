"""
Loader for execution-plan JSON files.

A plan file is a tree of operator objects:

    {
      "total_cost": 68000,
      "plan": {
        "operator_type": "SELECT",
        "actual_cost": 68000,
        "children": [
          {"operator_type": "Table Scan", "object_name": "SFDC.dbo.GIVING_DETAIL",
           "actual_cost": 49000, "actual_rows": 18200000, "elapsed_time_ms": 49000}
        ]
      }
    }

The top level may also be a bare node, or a list of root nodes. Nodes
accept "operator" and "object" as short forms of "operator_type" and
"object_name".

This module handles:
- Loading JSON from files, strings or already-parsed data
- Validating nodes against a typed schema (metrics must be non-negative)
- Enforcing resource limits before building the arena
- Deriving cost percentages once, so detectors only read

Error handling: every failure is a ParseError that says what is wrong and
where it was detected.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from querylens.exceptions import ParseError
from querylens.plan.config import DEFAULT_CONFIG, PlanLoaderConfig
from querylens.plan.models import ExecutionPlan, PlanNode

logger = logging.getLogger(__name__)

PlanSource = Union[str, Path, dict[str, Any], list[Any]]


class PlanNodeSpec(BaseModel):
    """Schema of one node in a plan file."""

    model_config = ConfigDict(extra="ignore")

    operator_type: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("operator_type", "operator"),
        description='Physical operator, e.g. "Table Scan"',
    )
    object_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("object_name", "object"),
        description="Table or index the operator reads",
    )

    estimated_cost: float = Field(default=0.0, ge=0)
    actual_cost: float = Field(default=0.0, ge=0)
    estimated_rows: int = Field(default=0, ge=0)
    actual_rows: int = Field(default=0, ge=0)
    elapsed_time_ms: float = Field(default=0.0, ge=0)
    cpu_time_ms: float = Field(default=0.0, ge=0)
    logical_reads: int = Field(default=0, ge=0)
    physical_reads: int = Field(default=0, ge=0)

    start_line: int | None = Field(default=None, ge=1)
    end_line: int | None = Field(default=None, ge=1)
    query_fragment: str | None = None

    children: list[PlanNodeSpec] = Field(default_factory=list)

    def to_node(self) -> PlanNode:
        return PlanNode(**self.model_dump(exclude={"children"}))


class PlanDocument(BaseModel):
    """Schema of a whole plan file after normalization."""

    model_config = ConfigDict(extra="ignore")

    total_cost: float | None = Field(default=None, ge=0)
    roots: list[PlanNodeSpec] = Field(..., min_length=1)


def load_plan(
    source: PlanSource,
    config: PlanLoaderConfig | None = None,
) -> ExecutionPlan:
    """
    Load an execution plan into a cost-annotated ExecutionPlan.

    Accepts multiple input formats for convenience:
    - File path (str or Path): Reads and parses the file
    - JSON string: Parses the string
    - Dict: A node, or {"total_cost": x, "plan": node}
    - List: Root nodes

    Args:
        source: Plan JSON in any of the supported formats
        config: Loader configuration with resource limits. If None,
            uses DEFAULT_CONFIG (10MB, 10K nodes, depth 100).

    Returns:
        ExecutionPlan with cost percentages calculated against total_cost,
        or the summed actual cost of the roots when total_cost is absent.

    Raises:
        ParseError: If input cannot be parsed, validated, or exceeds limits

    Example:
        >>> plan = load_plan("plan.json")
        >>> for node in plan:
        ...     print(node.description, node.cost_percentage)
    """
    config = config or DEFAULT_CONFIG

    _check_file_size(source, config)

    data = _load_source(source)
    total_cost, raw_roots = _normalize(data)

    _check_tree_size(raw_roots, config)

    document = _validate(total_cost, raw_roots)

    plan = ExecutionPlan()
    for spec in document.roots:
        _add_subtree(plan, None, spec)

    plan.calculate_cost_percentages(document.total_cost)

    logger.debug(
        "Loaded plan with %d nodes (%d roots)", len(plan), len(document.roots)
    )
    return plan


def load_plan_file(path: str | Path, config: PlanLoaderConfig | None = None) -> ExecutionPlan:
    """
    Load a plan from a file, with file-specific error messages.

    Raises:
        ParseError: If the file cannot be read or parsed
    """
    filepath = Path(path)

    if not filepath.exists():
        raise ParseError(f"File not found: {filepath}", source="file_read")

    if not filepath.is_file():
        raise ParseError(f"Path is not a file: {filepath}", source="file_read")

    return load_plan(filepath, config)


def _load_source(source: PlanSource) -> dict[str, Any] | list[Any]:
    """Load source into a Python dict/list."""
    if isinstance(source, (dict, list)):
        return source

    if isinstance(source, Path):
        return _load_json_file(source)

    if isinstance(source, str):
        stripped = source.strip()
        if stripped.startswith(("{", "[")):
            return _parse_json_string(stripped)
        return _load_json_file(Path(source))

    raise ParseError(
        f"Unsupported source type: {type(source).__name__}",
        detail="Expected file path, JSON string, dict, or list",
        source="type_check",
    )


def _load_json_file(path: Path) -> dict[str, Any] | list[Any]:
    if not path.exists():
        raise ParseError(f"File not found: {path}", source="file_read")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ParseError(
            f"Cannot read file: {path}",
            detail=str(e),
            source="file_read",
        ) from e

    if not content.strip():
        raise ParseError(f"File is empty: {path}", source="file_read")

    return _parse_json_string(content)


def _parse_json_string(content: str) -> dict[str, Any] | list[Any]:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ParseError(
            "Invalid JSON format",
            detail=f"Line {e.lineno}, column {e.colno}: {e.msg}",
            source="json_decode",
        ) from e

    if not isinstance(data, (dict, list)):
        raise ParseError(
            f"Expected JSON object or array, got {type(data).__name__}",
            source="json_decode",
        )

    return data


def _normalize(data: dict[str, Any] | list[Any]) -> tuple[Any, list[Any]]:
    """Split the three accepted top-level shapes into (total_cost, roots)."""
    if isinstance(data, list):
        roots: Any = data
        total_cost = None
    elif "plan" in data:
        total_cost = data.get("total_cost")
        roots = data["plan"]
        if isinstance(roots, dict):
            roots = [roots]
    else:
        total_cost = None
        roots = [data]

    if not isinstance(roots, list):
        raise ParseError(
            f"Expected 'plan' to be an object or array, got {type(roots).__name__}",
            source="structure",
        )

    if not roots:
        raise ParseError(
            "Empty plan - no operator nodes found",
            detail="A plan needs at least one root node",
            source="structure",
        )

    return total_cost, roots


def _check_file_size(source: PlanSource, config: PlanLoaderConfig) -> None:
    """Check file size before loading into memory."""
    path: Path | None = None

    if isinstance(source, Path):
        path = source
    elif isinstance(source, str) and not source.strip().startswith(("{", "[")):
        path = Path(source)

    if path is not None and path.exists() and path.is_file():
        size_mb = path.stat().st_size / (1024 * 1024)
        if size_mb > config.max_file_size_mb:
            raise ParseError(
                f"File too large: {size_mb:.1f}MB (max {config.max_file_size_mb}MB)",
                detail="Use a smaller plan file or increase max_file_size_mb in config",
                source="resource_limit",
            )


def _check_tree_size(roots: list[Any], config: PlanLoaderConfig) -> None:
    """
    Check node count and depth before validation.

    Walks the raw JSON iteratively so a pathological file cannot overflow
    the stack before the limit is reported.
    """
    count = 0
    max_depth = 0
    stack: list[tuple[Any, int]] = [(root, 1) for root in roots]

    while stack:
        node, depth = stack.pop()
        count += 1
        max_depth = max(max_depth, depth)

        if depth > config.max_depth:
            raise ParseError(
                f"Plan too deeply nested: depth {depth} (max {config.max_depth})",
                detail="This may indicate a pathological query or a corrupted plan file",
                source="resource_limit",
            )
        if count > config.max_nodes:
            raise ParseError(
                f"Plan too large: more than {config.max_nodes:,} nodes",
                detail="Consider analyzing a simpler query or increasing max_nodes in config",
                source="resource_limit",
            )

        if isinstance(node, dict):
            children = node.get("children", [])
            if isinstance(children, list):
                stack.extend((child, depth + 1) for child in children)


def _validate(total_cost: Any, roots: list[Any]) -> PlanDocument:
    """Validate against the node schema, converting errors into ParseErrors."""
    try:
        return PlanDocument.model_validate({"total_cost": total_cost, "roots": roots})
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = " -> ".join(str(x) for x in error["loc"])
            errors.append(f"  {loc}: {error['msg']}")

        raise ParseError(
            "Execution plan validation failed",
            detail="\n".join(errors),
            source="validation",
        ) from e


def _add_subtree(plan: ExecutionPlan, parent_id: int | None, spec: PlanNodeSpec) -> None:
    """Add spec and its children to plan in pre-order, iteratively."""
    stack: list[tuple[int | None, PlanNodeSpec]] = [(parent_id, spec)]
    while stack:
        parent, current = stack.pop()
        node = current.to_node()
        if parent is None:
            node_id = plan.add_root(node)
        else:
            node_id = plan.add_child(parent, node)
        stack.extend((node_id, child) for child in reversed(current.children))
