"""Data models for dispatching a message through an agent composition.

A dispatch produces a tree of `NodeResult`s mirroring the execution plan,
wrapped in a `ResponseEnvelope` for the caller. Node-local failures are
values here, not exceptions, so a caller can always see which parts of the
topology answered.
"""

import json
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from agentboard.models.agent import AgentType, OutputParserKind


class DispatchContext(BaseModel):
    """One inbound message plus whatever the NLU layer extracted from it."""

    model_config = {"frozen": True}

    message: str
    intent: str | None = None
    entities: dict[str, Any] = Field(default_factory=dict)

    def with_message(self, message: str) -> "DispatchContext":
        """Copy of this context seeing a different message."""
        return self.model_copy(update={"message": message})


# parse results


class ParseSuccess(BaseModel):
    status: Literal["ok"] = "ok"
    kind: OutputParserKind
    value: Any = None


class ParseFailure(BaseModel):
    """explicit error marker; the raw text is always kept."""

    status: Literal["error"] = "error"
    kind: OutputParserKind
    raw: str
    error: str


ParsedResult = Annotated[Union[ParseSuccess, ParseFailure], Field(discriminator="status")]


# node results


class NodeStatus(str, Enum):
    """Outcome of one plan node."""

    succeeded = "succeeded"
    partial = "partial"  # composite: some children failed
    failed = "failed"
    skipped = "skipped"  # conditional branch whose condition did not match
    no_matching_branch = "no_matching_branch"


class ErrorKind(str, Enum):
    model_call = "model_call"
    timeout = "timeout"
    condition = "condition"
    internal = "internal"


class NodeError(BaseModel):
    kind: ErrorKind
    message: str
    transient: bool = False


class NodeResult(BaseModel):
    """Result of running one plan node (and, for composites, its children)."""

    agent_id: str
    agent_name: str = ""
    agent_type: AgentType
    status: NodeStatus
    input_message: str | None = None

    raw: str | None = None
    parsed: ParsedResult | None = None
    error: NodeError | None = None

    # set on branches of a conditional node
    condition: str | None = None
    condition_matched: bool | None = None

    children: list["NodeResult"] = Field(default_factory=list)
    duration_ms: float | None = None

    @property
    def succeeded(self) -> bool:
        return self.status in (NodeStatus.succeeded, NodeStatus.partial)

    @property
    def parse_failed(self) -> bool:
        return isinstance(self.parsed, ParseFailure)

    def output_text(self) -> str:
        """Text handed to the next step of a sequential chain.

        The parsed value when parsing produced a string, its JSON encoding
        when parsing produced structure, and the raw text otherwise.
        """
        if isinstance(self.parsed, ParseSuccess):
            value = self.parsed.value
            if isinstance(value, str):
                return value
            return json.dumps(value, ensure_ascii=False, default=str)
        return self.raw or ""

    def find(self, agent_id: str) -> "NodeResult | None":
        """Depth-first lookup of a descendant (or self) by agent id."""
        stack = [self]
        while stack:
            current = stack.pop()
            if current.agent_id == agent_id:
                return current
            stack.extend(reversed(current.children))
        return None


NodeResult.model_rebuild()


class ResponseEnvelope(BaseModel):
    """What a caller receives for one dispatch."""

    dispatch_id: str
    agent_id: str
    agent_type: AgentType
    status: NodeStatus

    raw: str = ""
    parsed: ParsedResult | None = None
    output_parser: OutputParserKind

    # per-child results for composite roots, empty for leaves
    results: list[NodeResult] = Field(default_factory=list)
    error: NodeError | None = None
    created_at: str

    @property
    def is_no_match(self) -> bool:
        return self.status == NodeStatus.no_matching_branch

    def result_for(self, agent_id: str) -> NodeResult | None:
        for result in self.results:
            found = result.find(agent_id)
            if found is not None:
                return found
        return None

    def failed_results(self) -> list[NodeResult]:
        """All failed nodes anywhere below the root."""
        failed: list[NodeResult] = []
        stack = list(reversed(self.results))
        while stack:
            current = stack.pop()
            if current.status == NodeStatus.failed and not current.children:
                failed.append(current)
            stack.extend(reversed(current.children))
        return failed
