"""
Plan loader configuration with resource limits.

These limits stop pathological plan files from exhausting memory or
blowing the stack while the tree is built.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class PlanLoaderConfig(BaseModel):
    """
    Configuration for the plan loader with resource limits.

    Attributes:
        max_file_size_mb: Maximum file size to load.
        max_nodes: Maximum number of plan nodes in the tree.
        max_depth: Maximum tree depth (nesting level).

    Example:
        # Looser limits for known-large plans
        config = PlanLoaderConfig(max_nodes=50_000)
    """

    max_file_size_mb: float = Field(
        default=10.0,
        gt=0,
        description="Maximum file size in megabytes",
    )

    max_nodes: int = Field(
        default=10_000,
        gt=0,
        description="Maximum number of plan nodes",
    )

    max_depth: int = Field(
        default=100,
        gt=0,
        description="Maximum tree depth (nesting level)",
    )


DEFAULT_CONFIG = PlanLoaderConfig()
