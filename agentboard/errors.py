"""Exceptions raised by the composition and dispatch layer.

Only registry-level failures (missing root, cycles) and, when configured,
condition failures escape `Dispatcher.dispatch()`. Everything else is
captured on the node that failed and reported in the response envelope.
"""


class AgentboardError(Exception):
    """Base class for all agentboard errors."""


class InvalidAgentError(AgentboardError, ValueError):
    """An agent record violates the save contract."""


class AgentNotFoundError(AgentboardError, LookupError):
    """The agent does not exist or is disabled."""

    def __init__(self, agent_id: str, reason: str = "not found") -> None:
        self.agent_id = agent_id
        self.reason = reason
        super().__init__(f"Agent {reason}: {agent_id}")


class CompositionCycleError(AgentboardError):
    """The parent/child relation loops back on itself."""

    def __init__(self, path: list[str]) -> None:
        self.path = list(path)
        super().__init__("Composition cycle detected: " + " -> ".join(self.path))


class ConditionError(AgentboardError):
    """A condition expression is malformed or failed while evaluating."""

    def __init__(self, condition: str, reason: str) -> None:
        self.condition = condition
        self.reason = reason
        super().__init__(f"Condition {condition!r} failed: {reason}")


class EvaluationTimeoutError(ConditionError):
    """User code exceeded its time budget."""

    def __init__(self, source: str, budget: float) -> None:
        self.budget = budget
        super().__init__(source, f"exceeded time budget of {budget:g}s")


class ModelCallError(AgentboardError):
    """The model-call collaborator failed for one agent."""

    def __init__(self, agent_id: str | None, message: str, transient: bool = False) -> None:
        self.agent_id = agent_id
        self.transient = transient
        super().__init__(message)
