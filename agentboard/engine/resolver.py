"""Composition Resolver: agent records -> ExecutionPlan.

Walks the parent/child relation from a root agent with an explicit stack,
so deep or looping registries fail fast instead of overflowing. Children
are picked by the parent's own agent_type:

    simple        never has children
    multi         registry order
    sequential    execution_order ascending, unordered last, ties by id
    conditional   registry order; conditions are evaluated at dispatch

Disabled agents are pruned together with their subtrees.
"""

from loguru import logger

from agentboard.adapters.registry import AgentRegistry
from agentboard.errors import AgentNotFoundError, CompositionCycleError
from agentboard.models.agent import Agent, AgentType
from agentboard.models.plan import ExecutionPlan, PlanNode


def _execution_order_key(agent: Agent) -> tuple[bool, int, str]:
    order = getattr(agent, "execution_order", None)
    return (order is None, order or 0, agent.id)


class CompositionResolver:
    """Resolves execution plans against one registry."""

    def __init__(self, registry: AgentRegistry) -> None:
        self.registry = registry

    def children_for(self, agent: Agent) -> list[Agent]:
        """Enabled children of `agent`, in the order they will run."""
        if agent.agent_type == AgentType.simple:
            return []

        children = []
        for child in self.registry.get_children(agent.id):
            if child.enabled:
                children.append(child)
            else:
                logger.debug(f"pruning disabled agent {child.id} under {agent.id}")

        if agent.agent_type == AgentType.sequential:
            children.sort(key=_execution_order_key)
        return children

    def resolve(self, root_id: str) -> ExecutionPlan:
        """Build the plan rooted at `root_id`.

        Raises:
            AgentNotFoundError: the root does not exist or is disabled.
            CompositionCycleError: an agent is reachable from itself.
        """
        root = self.registry.get_by_id(root_id)
        if root is None:
            raise AgentNotFoundError(root_id)
        if not root.enabled:
            raise AgentNotFoundError(root_id, reason="disabled")

        agents: list[Agent] = []
        parents: list[int | None] = []
        depths: list[int] = []
        children: list[list[int]] = []
        visited = {root.id}

        # (agent, parent index); popped in pre-order
        stack: list[tuple[Agent, int | None]] = [(root, None)]
        while stack:
            agent, parent = stack.pop()
            index = len(agents)
            agents.append(agent)
            parents.append(parent)
            depths.append(0 if parent is None else depths[parent] + 1)
            children.append([])
            if parent is not None:
                children[parent].append(index)

            pending = []
            for child in self.children_for(agent):
                if child.id in visited:
                    raise CompositionCycleError(self._path(agents, parents, index) + [child.id])
                visited.add(child.id)
                pending.append((child, index))
            stack.extend(reversed(pending))

        nodes = tuple(
            PlanNode(agent=agent, parent=parent, children=tuple(kids), depth=depth)
            for agent, parent, kids, depth in zip(agents, parents, children, depths)
        )
        logger.debug(f"resolved {root_id}: {len(nodes)} node(s)")
        return ExecutionPlan(root_id=root_id, nodes=nodes)

    @staticmethod
    def _path(agents: list[Agent], parents: list[int | None], index: int | None) -> list[str]:
        path = []
        while index is not None:
            path.append(agents[index].id)
            index = parents[index]
        return list(reversed(path))


def resolve(registry: AgentRegistry, root_id: str) -> ExecutionPlan:
    """Resolve the plan rooted at `root_id` against `registry`."""
    return CompositionResolver(registry).resolve(root_id)
