"""
Execution plan model.

A plan is an arena of PlanNode objects addressed by integer id. Nodes keep
the ids of their parent and children instead of object references, so the
tree has no ownership cycles and a node can be shared with findings
without pulling the whole plan along.

Cost shares are derived once, upstream of the detectors:

    plan = ExecutionPlan()
    root = plan.add_root(PlanNode(operator_type="SELECT", actual_cost=15000))
    plan.add_child(root, PlanNode(operator_type="Table Scan", actual_cost=10500))
    plan.calculate_cost_percentages()

After that, detectors only read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Sequence

from querylens.formatting import format_number


CRITICAL_COST_THRESHOLD = 20.0
WARNING_COST_THRESHOLD = 10.0

SCAN_OPERATORS = ("Table Scan", "Clustered Index Scan", "Index Scan")
SEEK_OPERATORS = ("Index Seek", "Clustered Index Seek")


class CostCategory(str, Enum):
    """Bucket for a node's share of total query cost."""

    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    OK = "OK"

    @classmethod
    def from_percentage(cls, percentage: float) -> "CostCategory":
        if percentage >= CRITICAL_COST_THRESHOLD:
            return cls.CRITICAL
        if percentage >= WARNING_COST_THRESHOLD:
            return cls.WARNING
        return cls.OK


@dataclass(eq=False)
class PlanNode:
    """
    One physical operator in an execution plan.

    Operator text is free-form ("Table Scan", "Hash Match (Aggregate)"),
    so classification is by substring rather than by enum.

    The node_id, parent_id and child_ids fields are owned by the
    ExecutionPlan the node was added to; a detached node has node_id None.
    """

    operator_type: str
    object_name: str | None = None

    estimated_cost: float = 0.0
    actual_cost: float = 0.0
    estimated_rows: int = 0
    actual_rows: int = 0
    elapsed_time_ms: float = 0.0
    cpu_time_ms: float = 0.0
    logical_reads: int = 0
    physical_reads: int = 0

    start_line: int | None = None
    end_line: int | None = None
    query_fragment: str | None = None

    node_id: int | None = None
    parent_id: int | None = None
    child_ids: list[int] = field(default_factory=list)

    cost_percentage: float = 0.0
    cost_category: CostCategory | None = None

    def calculate_cost_percentage(self, total_cost: float) -> None:
        """
        Derive cost share and category from the query's total cost.

        No-op when total_cost <= 0, leaving the node uncategorized.
        """
        if total_cost <= 0:
            return
        self.cost_percentage = self.actual_cost / total_cost * 100
        self.cost_category = CostCategory.from_percentage(self.cost_percentage)

    @property
    def is_expensive(self) -> bool:
        return (
            self.cost_category is not None
            and self.cost_category != CostCategory.OK
        )

    @property
    def is_scan(self) -> bool:
        """Table Scan, Clustered Index Scan or Index Scan."""
        return any(op in self.operator_type for op in SCAN_OPERATORS)

    @property
    def is_seek(self) -> bool:
        """Index Seek or Clustered Index Seek."""
        return any(op in self.operator_type for op in SEEK_OPERATORS)

    @property
    def elapsed_seconds(self) -> float:
        return self.elapsed_time_ms / 1000.0

    @property
    def description(self) -> str:
        """Human-readable summary, e.g. "Table Scan on GIVING_DETAIL (12.3M rows)"."""
        parts = [self.operator_type]
        if self.object_name:
            parts.append(f" on {self.object_name}")
        if self.actual_rows > 0:
            parts.append(f" ({format_number(self.actual_rows)} rows)")
        return "".join(parts)

    def __repr__(self) -> str:
        return (
            f"PlanNode(id={self.node_id}, {self.description!r}, "
            f"cost={self.cost_percentage:.1f}%)"
        )


class ExecutionPlan:
    """
    Arena of plan nodes.

    Iterating a plan yields nodes in insertion order; that order is the
    plan-node list detectors consume.
    """

    def __init__(self) -> None:
        self._nodes: list[PlanNode] = []

    def _adopt(self, node: PlanNode, parent_id: int | None) -> int:
        if node.node_id is not None:
            raise ValueError(f"Node is already part of a plan: {node!r}")
        node.node_id = len(self._nodes)
        node.parent_id = parent_id
        self._nodes.append(node)
        return node.node_id

    def add_root(self, node: PlanNode) -> int:
        """Add a parentless node and return its id."""
        return self._adopt(node, None)

    def add_child(self, parent_id: int, node: PlanNode) -> int:
        """
        Append node as the last child of parent_id and return its id.

        Children are never removed or reordered.
        """
        parent = self.get(parent_id)
        child_id = self._adopt(node, parent_id)
        parent.child_ids.append(child_id)
        return child_id

    def get(self, node_id: int) -> PlanNode:
        if not 0 <= node_id < len(self._nodes):
            raise KeyError(f"No node with id {node_id}")
        return self._nodes[node_id]

    def children(self, node_id: int) -> list[PlanNode]:
        return [self._nodes[i] for i in self.get(node_id).child_ids]

    def parent(self, node_id: int) -> PlanNode | None:
        parent_id = self.get(node_id).parent_id
        return None if parent_id is None else self._nodes[parent_id]

    def descendants(self, node_id: int) -> Iterator[PlanNode]:
        """
        Lazy depth-first, pre-order walk of the subtree below node_id.

        The node itself is not included. Each call starts a new walk.
        """
        stack = list(reversed(self.get(node_id).child_ids))
        while stack:
            current = self._nodes[stack.pop()]
            yield current
            stack.extend(reversed(current.child_ids))

    @property
    def roots(self) -> list[PlanNode]:
        return [n for n in self._nodes if n.parent_id is None]

    @property
    def nodes(self) -> list[PlanNode]:
        return list(self._nodes)

    @property
    def total_actual_cost(self) -> float:
        return sum(n.actual_cost for n in self._nodes)

    def calculate_cost_percentages(self, total_cost: float | None = None) -> None:
        """
        Derive every node's cost share.

        Args:
            total_cost: Query total. Defaults to the summed actual cost of
                the root nodes.
        """
        if total_cost is None:
            total_cost = sum(n.actual_cost for n in self.roots)
        for node in self._nodes:
            node.calculate_cost_percentage(total_cost)

    def __iter__(self) -> Iterator[PlanNode]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __getitem__(self, node_id: int) -> PlanNode:
        return self.get(node_id)


def as_node_list(plan: ExecutionPlan | Sequence[PlanNode] | None) -> list[PlanNode]:
    """Normalize analyzer input into a plain node list."""
    if plan is None:
        return []
    return list(plan)
