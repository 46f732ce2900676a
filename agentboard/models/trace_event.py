"""
Trace event models for what happened during one dispatch.

Events are emitted by the dispatcher when an event sink is configured and
share the dispatch id, so a JSONL trace can be replayed per message.
"""

from enum import Enum
from typing import Any, Self

from pydantic import BaseModel, model_validator


class EventType(str, Enum):
    """Types of events in a dispatch trace."""

    dispatch_started = "dispatch_started"
    node_input = "node_input"
    node_output = "node_output"
    condition_evaluated = "condition_evaluated"
    node_error = "node_error"
    dispatch_completed = "dispatch_completed"


# valid error types for node_error events
ERROR_TYPES = {"model_call", "timeout", "condition", "internal"}


class DispatchEvent(BaseModel):
    """A structured event describing one step of a dispatch."""

    model_config = {"extra": "forbid"}

    event_id: str
    dispatch_id: str
    timestamp: str
    sequence: int | None = None  # monotonic ordering within a dispatch

    event_type: EventType
    agent_id: str

    payload: dict[str, Any]

    @model_validator(mode="after")
    def validate_payload_invariants(self) -> Self:
        """Validate payload structure based on event_type."""
        payload = self.payload
        event_type = self.event_type

        if event_type == EventType.node_input:
            self._require(payload, "message")
        elif event_type in (EventType.node_output, EventType.dispatch_completed):
            self._require(payload, "status")
        elif event_type == EventType.condition_evaluated:
            self._validate_condition_evaluated(payload)
        elif event_type == EventType.node_error:
            self._validate_error(payload)

        return self

    def _require(self, payload: dict, key: str) -> None:
        if key not in payload:
            raise ValueError(f"{self.event_type.value} payload must contain '{key}'")

    def _validate_condition_evaluated(self, payload: dict) -> None:
        """condition_evaluated requires the condition and a boolean outcome."""
        self._require(payload, "condition")
        self._require(payload, "matched")
        if not isinstance(payload["matched"], bool):
            raise ValueError("condition_evaluated 'matched' must be a bool")

    def _validate_error(self, payload: dict) -> None:
        """node_error requires error_type and message."""
        self._require(payload, "error_type")
        if payload["error_type"] not in ERROR_TYPES:
            raise ValueError(f"error_type must be one of {ERROR_TYPES}")
        self._require(payload, "message")
