"""Agent definitions as a tagged union.

An agent is a node in a composition tree. Its `agent_type` decides which
composition fields it may carry:

    simple       no parent, no order, no condition
    multi        parent_agent_id
    sequential   parent_agent_id, execution_order
    conditional  parent_agent_id, condition

Each variant only declares the fields valid for it and forbids extras, so a
sequential agent with a condition cannot be constructed. Records coming
from a form or a database row go through `normalize_agent_record()`, which
drops the fields the declared type does not use before validating.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Self, Union

from pydantic import BaseModel, Field, PositiveInt, TypeAdapter, ValidationError, model_validator

from agentboard.errors import InvalidAgentError


class AgentType(str, Enum):
    """Composition role of an agent."""

    simple = "simple"
    multi = "multi"
    sequential = "sequential"
    conditional = "conditional"


class OutputParserKind(str, Enum):
    """How a raw model response is turned into a structured value."""

    text = "text"
    json = "json"
    csv = "csv"
    custom = "custom"


class _AgentBase(BaseModel):
    """fields shared by every agent variant."""

    # frozen: dispatch works on immutable snapshots of agent records
    model_config = {"extra": "forbid", "frozen": True, "protected_namespaces": ()}

    id: str = Field(min_length=1)
    name: str = ""
    description: str = ""

    # forwarded opaquely to the model-call collaborator
    model: str = "gpt-3.5-turbo"
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    system_prompt: str = ""

    output_parser: OutputParserKind = OutputParserKind.text
    custom_parser_code: str | None = None

    enabled: bool = True
    created_at: str | None = None
    updated_at: str | None = None

    @model_validator(mode="after")
    def validate_parser_code(self) -> Self:
        """custom_parser_code is required for, and only valid with, the custom parser."""
        has_code = bool(self.custom_parser_code and self.custom_parser_code.strip())
        if self.output_parser == OutputParserKind.custom and not has_code:
            raise ValueError("custom_parser_code is required when output_parser is 'custom'")
        if self.output_parser != OutputParserKind.custom and self.custom_parser_code is not None:
            raise ValueError("custom_parser_code is only valid when output_parser is 'custom'")
        return self

    @property
    def parent_id(self) -> str | None:
        """Parent agent id, None for root/standalone agents."""
        return getattr(self, "parent_agent_id", None)

    @property
    def label(self) -> str:
        return self.name or self.id


class _ChildCapableAgent(_AgentBase):
    parent_agent_id: str | None = None

    @model_validator(mode="after")
    def validate_parent(self) -> Self:
        if self.parent_agent_id is not None and self.parent_agent_id == self.id:
            raise ValueError("an agent cannot be its own parent")
        return self


class SimpleAgent(_AgentBase):
    """Standalone agent; never has children."""

    agent_type: Literal["simple"] = "simple"


class MultiAgent(_ChildCapableAgent):
    """Fans a message out to all of its children."""

    agent_type: Literal["multi"] = "multi"


class SequentialAgent(_ChildCapableAgent):
    """Runs its children as an ordered chain."""

    agent_type: Literal["sequential"] = "sequential"
    execution_order: PositiveInt | None = None


class ConditionalAgent(_ChildCapableAgent):
    """Runs only the children whose condition matches the message."""

    agent_type: Literal["conditional"] = "conditional"
    condition: str | None = None


Agent = Annotated[
    Union[SimpleAgent, MultiAgent, SequentialAgent, ConditionalAgent],
    Field(discriminator="agent_type"),
]

AgentAdapter: TypeAdapter[Agent] = TypeAdapter(Agent)

AGENT_CLASSES: dict[AgentType, type[_AgentBase]] = {
    AgentType.simple: SimpleAgent,
    AgentType.multi: MultiAgent,
    AgentType.sequential: SequentialAgent,
    AgentType.conditional: ConditionalAgent,
}

# placeholder the dashboard's parent select uses for "no parent"
_NO_PARENT = {"", "none"}


def normalize_agent_record(record: Mapping[str, Any]) -> Agent:
    """Apply the save contract to a raw agent record and validate it.

    Fields that the declared `agent_type` does not use are dropped rather
    than rejected, as are columns unknown to the model (owner ids, avatars).
    `custom_parser_code` is dropped unless the parser is custom.

    Raises:
        InvalidAgentError: if the record is still invalid after normalization.
    """
    data = dict(record)

    raw_type = data.get("agent_type") or AgentType.simple.value
    try:
        agent_type = AgentType(raw_type)
    except ValueError:
        raise InvalidAgentError(f"unknown agent_type: {raw_type!r}") from None
    data["agent_type"] = agent_type.value

    parser = data.get("output_parser") or OutputParserKind.text.value
    try:
        parser_kind = OutputParserKind(parser)
    except ValueError:
        raise InvalidAgentError(f"unknown output_parser: {parser!r}") from None
    data["output_parser"] = parser_kind.value
    if parser_kind != OutputParserKind.custom:
        data["custom_parser_code"] = None

    if data.get("parent_agent_id") in _NO_PARENT:
        data["parent_agent_id"] = None
    condition = data.get("condition")
    if isinstance(condition, str) and not condition.strip():
        data["condition"] = None

    agent_cls = AGENT_CLASSES[agent_type]
    allowed = set(agent_cls.model_fields)
    data = {key: value for key, value in data.items() if key in allowed}

    try:
        return agent_cls.model_validate(data)
    except ValidationError as exc:
        raise InvalidAgentError(str(exc)) from exc
