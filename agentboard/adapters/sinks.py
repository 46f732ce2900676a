"""Event sinks and the dispatch event emitter."""

from pathlib import Path
from typing import Protocol

from agentboard.models.trace_event import DispatchEvent, EventType
from agentboard.utils.identifiers import generate_event_id, utc_timestamp


class EventSink(Protocol):
    """Protocol for receiving dispatch events."""

    def append(self, event: DispatchEvent) -> None:
        """Append an event to the sink."""
        ...


class ListSink:
    """Stores events in a list."""

    def __init__(self) -> None:
        self.events: list[DispatchEvent] = []

    def append(self, event: DispatchEvent) -> None:
        """Append an event to the list."""
        self.events.append(event)

    def clear(self) -> None:
        """Clear all events."""
        self.events.clear()

    def of_type(self, event_type: EventType) -> list[DispatchEvent]:
        return [e for e in self.events if e.event_type == event_type]


class FileSink:
    """Writes events to a JSONL file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, event: DispatchEvent) -> None:
        """Append an event to the file."""
        with open(self.path, "a") as f:
            f.write(event.model_dump_json() + "\n")


class DispatchEmitter:
    """Emits the events of a single dispatch into a sink.

    With no sink every emit_* call is a no-op returning None, so the
    dispatcher does not need to branch on whether tracing is enabled.
    """

    def __init__(self, dispatch_id: str, event_sink: EventSink | None = None) -> None:
        self.dispatch_id = dispatch_id
        self.event_sink = event_sink
        self._sequence = 0

    def _next_sequence(self) -> int:
        """Get the next sequence number."""
        seq = self._sequence
        self._sequence += 1
        return seq

    def emit(self, event_type: EventType, agent_id: str, payload: dict | None = None) -> DispatchEvent | None:
        """Emit a dispatch event with the given parameters."""
        if self.event_sink is None:
            return None
        event = DispatchEvent(
            event_id=generate_event_id(),
            dispatch_id=self.dispatch_id,
            timestamp=utc_timestamp(),
            sequence=self._next_sequence(),
            event_type=event_type,
            agent_id=agent_id,
            payload=payload or {},
        )
        self.event_sink.append(event)
        return event

    def emit_started(self, agent_id: str, plan_size: int, message: str) -> DispatchEvent | None:
        return self.emit(
            EventType.dispatch_started,
            agent_id,
            payload={"plan_size": plan_size, "message": message},
        )

    def emit_input(self, agent_id: str, message: str) -> DispatchEvent | None:
        """Emit a node_input event with the message the node sees."""
        return self.emit(EventType.node_input, agent_id, payload={"message": message})

    def emit_output(
        self,
        agent_id: str,
        status: str,
        raw: str | None = None,
        parse_status: str | None = None,
    ) -> DispatchEvent | None:
        """Emit a node_output event."""
        payload: dict = {"status": status}
        if raw is not None:
            payload["raw"] = raw
        if parse_status:
            payload["parse_status"] = parse_status
        return self.emit(EventType.node_output, agent_id, payload=payload)

    def emit_condition(
        self,
        agent_id: str,
        condition: str | None,
        matched: bool,
        error: str | None = None,
    ) -> DispatchEvent | None:
        """Emit a condition_evaluated event for a conditional branch."""
        payload: dict = {"condition": condition, "matched": matched}
        if error:
            payload["error"] = error
        return self.emit(EventType.condition_evaluated, agent_id, payload=payload)

    def emit_error(
        self,
        agent_id: str,
        error_type: str,
        message: str,
        transient: bool = False,
    ) -> DispatchEvent | None:
        """Emit a node_error event."""
        payload = {"error_type": error_type, "message": message, "transient": transient}
        return self.emit(EventType.node_error, agent_id, payload=payload)

    def emit_completed(self, agent_id: str, status: str, duration_ms: float) -> DispatchEvent | None:
        return self.emit(
            EventType.dispatch_completed,
            agent_id,
            payload={"status": status, "duration_ms": duration_ms},
        )
