"""Adapters for the collaborators the dispatcher depends on."""

from agentboard.adapters.model_call import ChatModelCaller, ModelCaller, get_chat_model
from agentboard.adapters.nlu import IntentDetector, NluResult, build_context
from agentboard.adapters.registry import AgentRegistry, InMemoryAgentRegistry, take_snapshot
from agentboard.adapters.sinks import DispatchEmitter, EventSink, FileSink, ListSink

__all__ = [
    "AgentRegistry",
    "InMemoryAgentRegistry",
    "take_snapshot",
    "ModelCaller",
    "ChatModelCaller",
    "get_chat_model",
    "IntentDetector",
    "NluResult",
    "build_context",
    "EventSink",
    "ListSink",
    "FileSink",
    "DispatchEmitter",
]
