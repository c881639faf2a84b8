"""
Execution plan module.

- models.py: PlanNode and the ExecutionPlan arena
- loader.py: JSON plan files into ExecutionPlan
- mock.py: Heuristic plan for queries analyzed without one
"""

from querylens.plan.config import DEFAULT_CONFIG, PlanLoaderConfig
from querylens.plan.loader import load_plan, load_plan_file
from querylens.plan.mock import create_mock_plan, estimate_query_time
from querylens.plan.models import (
    CostCategory,
    ExecutionPlan,
    PlanNode,
    as_node_list,
)

__all__ = [
    "CostCategory",
    "ExecutionPlan",
    "PlanNode",
    "as_node_list",
    "load_plan",
    "load_plan_file",
    "PlanLoaderConfig",
    "DEFAULT_CONFIG",
    "create_mock_plan",
    "estimate_query_time",
]
