"""Tests for composition resolution."""

import pytest

from agentboard.adapters.registry import InMemoryAgentRegistry
from agentboard.engine.resolver import CompositionResolver, resolve
from agentboard.errors import AgentNotFoundError, CompositionCycleError
from agentboard.models.agent import (
    ConditionalAgent,
    MultiAgent,
    SequentialAgent,
    SimpleAgent,
)


class _LyingRegistry(InMemoryAgentRegistry):
    """Returns a fixed child list for every parent."""

    def __init__(self, agents, children):
        super().__init__(agents)
        self._fixed_children = children

    def get_children(self, parent_id):
        return list(self._fixed_children)


class TestSimpleAgents:
    def test_simple_root_has_no_children(self):
        registry = InMemoryAgentRegistry([
            SimpleAgent(id="root"),
            MultiAgent(id="child", parent_agent_id="root"),
        ])
        plan = resolve(registry, "root")
        assert plan.size == 1
        assert plan.root.is_leaf

    def test_simple_ignores_registry_claims(self):
        """even a registry that reports children for a simple agent is ignored."""
        registry = _LyingRegistry([SimpleAgent(id="root")], [MultiAgent(id="x", parent_agent_id="root")])
        plan = resolve(registry, "root")
        assert plan.agent_ids() == ["root"]


class TestOrdering:
    def test_sequential_order(self):
        registry = InMemoryAgentRegistry([
            SequentialAgent(id="root"),
            SequentialAgent(id="c1", parent_agent_id="root", execution_order=2),
            SequentialAgent(id="c2", parent_agent_id="root", execution_order=1),
            SequentialAgent(id="c3", parent_agent_id="root"),
        ])
        plan = resolve(registry, "root")
        assert [plan.node(i).agent.id for i in plan.children_of(0)] == ["c2", "c1", "c3"]

    def test_sequential_ties_break_by_id(self):
        registry = InMemoryAgentRegistry([
            SequentialAgent(id="root"),
            SequentialAgent(id="b", parent_agent_id="root", execution_order=1),
            SequentialAgent(id="a", parent_agent_id="root", execution_order=1),
            SequentialAgent(id="z", parent_agent_id="root"),
            SequentialAgent(id="y", parent_agent_id="root"),
        ])
        plan = resolve(registry, "root")
        assert plan.agent_ids() == ["root", "a", "b", "y", "z"]

    def test_multi_keeps_registry_order(self):
        registry = InMemoryAgentRegistry([
            MultiAgent(id="root"),
            MultiAgent(id="second", parent_agent_id="root"),
            MultiAgent(id="first", parent_agent_id="root"),
        ])
        plan = resolve(registry, "root")
        assert plan.agent_ids() == ["root", "second", "first"]


class TestTreeShape:
    def _nested_registry(self) -> InMemoryAgentRegistry:
        return InMemoryAgentRegistry([
            MultiAgent(id="root"),
            SequentialAgent(id="chain", parent_agent_id="root"),
            SequentialAgent(id="step2", parent_agent_id="chain", execution_order=2),
            SequentialAgent(id="step1", parent_agent_id="chain", execution_order=1),
            ConditionalAgent(id="router", parent_agent_id="root"),
            ConditionalAgent(id="sales", parent_agent_id="router", condition="intent == 'buy'"),
        ])

    def test_preorder_arena(self):
        plan = resolve(self._nested_registry(), "root")
        assert plan.agent_ids() == ["root", "chain", "step1", "step2", "router", "sales"]
        chain = plan.agent_ids().index("chain")
        assert plan.node(chain).parent == 0
        assert plan.node(chain).depth == 1
        step1 = plan.agent_ids().index("step1")
        assert plan.node(step1).depth == 2

    def test_conditional_children_keep_conditions(self):
        plan = resolve(self._nested_registry(), "root")
        sales = plan.node(plan.agent_ids().index("sales"))
        assert sales.agent.condition == "intent == 'buy'"

    def test_composite_without_children_is_leaf(self):
        registry = InMemoryAgentRegistry([MultiAgent(id="root")])
        assert resolve(registry, "root").root.is_leaf

    def test_to_tree(self):
        tree = resolve(self._nested_registry(), "root").to_tree()
        assert tree["agent"]["id"] == "root"
        assert [c["agent"]["id"] for c in tree["children"]] == ["chain", "router"]
        assert [c["agent"]["id"] for c in tree["children"][0]["children"]] == ["step1", "step2"]

    def test_idempotent(self):
        registry = self._nested_registry()
        assert resolve(registry, "root") == resolve(registry, "root")


class TestPruningAndErrors:
    def test_missing_root(self):
        with pytest.raises(AgentNotFoundError) as exc_info:
            resolve(InMemoryAgentRegistry(), "nope")
        assert exc_info.value.agent_id == "nope"

    def test_disabled_root(self):
        registry = InMemoryAgentRegistry([SimpleAgent(id="root", enabled=False)])
        with pytest.raises(AgentNotFoundError) as exc_info:
            resolve(registry, "root")
        assert exc_info.value.reason == "disabled"

    def test_disabled_subtree_is_pruned(self):
        registry = InMemoryAgentRegistry([
            MultiAgent(id="root"),
            MultiAgent(id="off", parent_agent_id="root", enabled=False),
            MultiAgent(id="below-off", parent_agent_id="off"),
            MultiAgent(id="on", parent_agent_id="root"),
        ])
        assert resolve(registry, "root").agent_ids() == ["root", "on"]

    def test_direct_cycle(self):
        """root's parent is its own child."""
        registry = InMemoryAgentRegistry([
            MultiAgent(id="a", parent_agent_id="b"),
            MultiAgent(id="b", parent_agent_id="a"),
        ])
        with pytest.raises(CompositionCycleError) as exc_info:
            resolve(registry, "a")
        assert exc_info.value.path == ["a", "b", "a"]

    def test_transitive_cycle(self):
        registry = InMemoryAgentRegistry([
            SequentialAgent(id="a", parent_agent_id="c"),
            SequentialAgent(id="b", parent_agent_id="a", execution_order=1),
            MultiAgent(id="c", parent_agent_id="b"),
        ])
        with pytest.raises(CompositionCycleError) as exc_info:
            resolve(registry, "a")
        assert exc_info.value.path == ["a", "b", "c", "a"]
        assert "a -> b -> c -> a" in str(exc_info.value)

    def test_deep_chain_does_not_overflow(self):
        agents = [MultiAgent(id="n0")]
        agents += [MultiAgent(id=f"n{i}", parent_agent_id=f"n{i - 1}") for i in range(1, 1500)]
        plan = CompositionResolver(InMemoryAgentRegistry(agents)).resolve("n0")
        assert plan.size == 1500
        assert plan.node(1499).depth == 1499
