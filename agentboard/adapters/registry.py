"""Agent registry: read-only lookup of agent definitions.

The resolver only needs two queries, lookup by id and children of a
parent. Any store that answers them can back a dispatch; the in-memory
registry here doubles as the snapshot type other stores copy into.
"""

from typing import Any, Iterable, Mapping, Protocol

from agentboard.models.agent import Agent, normalize_agent_record


class AgentRegistry(Protocol):
    """Protocol for agent lookup."""

    def get_by_id(self, agent_id: str) -> Agent | None:
        """Return the agent, or None if it does not exist."""
        ...

    def get_children(self, parent_id: str) -> list[Agent]:
        """Return every agent whose parent_agent_id is `parent_id`."""
        ...


class InMemoryAgentRegistry:
    """Dict-backed registry. Children come back in insertion order."""

    def __init__(self, agents: Iterable[Agent] = ()) -> None:
        self._agents: dict[str, Agent] = {}
        for agent in agents:
            self.add(agent)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "InMemoryAgentRegistry":
        """Build a registry from raw records, applying the save contract."""
        return cls(normalize_agent_record(record) for record in records)

    def add(self, agent: Agent) -> None:
        """Insert or replace an agent."""
        self._agents[agent.id] = agent

    def remove(self, agent_id: str) -> None:
        self._agents.pop(agent_id, None)

    def get_by_id(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)

    def get_children(self, parent_id: str) -> list[Agent]:
        return [agent for agent in self._agents.values() if agent.parent_id == parent_id]

    def all(self) -> list[Agent]:
        return list(self._agents.values())

    def snapshot(self) -> "InMemoryAgentRegistry":
        """Independent copy; later writes to this registry do not affect it."""
        return InMemoryAgentRegistry(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents


def take_snapshot(registry: AgentRegistry) -> AgentRegistry:
    """Consistent read view of `registry` for the duration of one dispatch.

    Registries that can copy themselves (`snapshot()`) do so; others are
    read as-is, which is still consistent because resolution finishes
    before any model call starts and the plan holds frozen agents.
    """
    snapshot = getattr(registry, "snapshot", None)
    if callable(snapshot):
        return snapshot()
    return registry
