"""Core data models for agentboard."""

from agentboard.models.agent import (
    Agent,
    AgentAdapter,
    AgentType,
    ConditionalAgent,
    MultiAgent,
    OutputParserKind,
    SequentialAgent,
    SimpleAgent,
    normalize_agent_record,
)
from agentboard.models.dispatch import (
    DispatchContext,
    ErrorKind,
    NodeError,
    NodeResult,
    NodeStatus,
    ParsedResult,
    ParseFailure,
    ParseSuccess,
    ResponseEnvelope,
)
from agentboard.models.plan import ExecutionPlan, PlanNode
from agentboard.models.trace_event import DispatchEvent, EventType

__all__ = [
    # Agents
    "Agent",
    "AgentAdapter",
    "AgentType",
    "ConditionalAgent",
    "MultiAgent",
    "OutputParserKind",
    "SequentialAgent",
    "SimpleAgent",
    "normalize_agent_record",
    # Dispatch
    "DispatchContext",
    "ErrorKind",
    "NodeError",
    "NodeResult",
    "NodeStatus",
    "ParsedResult",
    "ParseFailure",
    "ParseSuccess",
    "ResponseEnvelope",
    # Plans
    "ExecutionPlan",
    "PlanNode",
    # Trace events
    "DispatchEvent",
    "EventType",
]
