"""agentboard - agent composition and dispatch for LLM-backed agents."""

from agentboard.config import ConditionPolicy, DispatchSettings, SequentialFold
from agentboard.engine.dispatcher import Dispatcher
from agentboard.engine.resolver import resolve
from agentboard.errors import (
    AgentboardError,
    AgentNotFoundError,
    CompositionCycleError,
    ConditionError,
    EvaluationTimeoutError,
    InvalidAgentError,
    ModelCallError,
)
from agentboard.models.agent import (
    Agent,
    AgentType,
    ConditionalAgent,
    MultiAgent,
    OutputParserKind,
    SequentialAgent,
    SimpleAgent,
    normalize_agent_record,
)
from agentboard.models.dispatch import DispatchContext, NodeResult, NodeStatus, ResponseEnvelope
from agentboard.models.plan import ExecutionPlan

__all__ = [
    "Agent",
    "AgentType",
    "SimpleAgent",
    "MultiAgent",
    "SequentialAgent",
    "ConditionalAgent",
    "OutputParserKind",
    "normalize_agent_record",
    "DispatchContext",
    "ExecutionPlan",
    "NodeResult",
    "NodeStatus",
    "ResponseEnvelope",
    "Dispatcher",
    "resolve",
    "DispatchSettings",
    "ConditionPolicy",
    "SequentialFold",
    "AgentboardError",
    "AgentNotFoundError",
    "CompositionCycleError",
    "ConditionError",
    "EvaluationTimeoutError",
    "InvalidAgentError",
    "ModelCallError",
]
