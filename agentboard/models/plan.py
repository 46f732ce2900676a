"""Execution plan produced by the composition resolver.

The plan is an arena: a flat list of nodes where each node refers to its
parent and children by index. Index 0 is always the root. Building the
tree this way keeps cycle detection and ordering local to the resolver and
lets the dispatcher walk the plan without chasing registry references.
"""

from typing import Any

from pydantic import BaseModel

from agentboard.models.agent import Agent


class PlanNode(BaseModel):
    """one resolved agent and the indices of its children."""

    model_config = {"frozen": True}

    agent: Agent
    parent: int | None = None
    children: tuple[int, ...] = ()
    depth: int = 0

    @property
    def is_leaf(self) -> bool:
        return not self.children


class ExecutionPlan(BaseModel):
    """the resolved, ordered, cycle-free tree for one dispatch."""

    model_config = {"frozen": True}

    root_id: str
    nodes: tuple[PlanNode, ...]

    @property
    def root(self) -> PlanNode:
        return self.nodes[0]

    @property
    def size(self) -> int:
        return len(self.nodes)

    def node(self, index: int) -> PlanNode:
        return self.nodes[index]

    def children_of(self, index: int) -> list[int]:
        """Indices of the children of `index`, in resolved order."""
        return list(self.nodes[index].children)

    def agent_ids(self) -> list[str]:
        """Agent ids in plan (pre-)order."""
        return [node.agent.id for node in self.nodes]

    def to_tree(self) -> dict[str, Any]:
        """Nested `{agent, children}` view, for previews and the API."""
        views = [
            {"agent": node.agent.model_dump(mode="json"), "children": []}
            for node in self.nodes
        ]
        for node, view in zip(self.nodes, views):
            view["children"].extend(views[i] for i in node.children)
        return views[0]
