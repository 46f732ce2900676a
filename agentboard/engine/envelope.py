"""Response Envelope Builder."""

from agentboard.models.agent import AgentType
from agentboard.models.dispatch import NodeResult, ResponseEnvelope
from agentboard.models.plan import ExecutionPlan
from agentboard.utils.identifiers import utc_timestamp


def summarize(agent_type: AgentType, children: list[NodeResult]) -> str:
    """Synthesize the top-level text of a composite node from its children.

    sequential: the output of the last child that succeeded.
    multi / conditional: raw texts of the succeeded children, separated by
    blank lines. Skipped and failed children contribute nothing.
    """
    succeeded = [child for child in children if child.succeeded]
    if not succeeded:
        return ""
    if agent_type == AgentType.sequential:
        return succeeded[-1].output_text()
    return "\n\n".join(child.raw or "" for child in succeeded)


def build_envelope(plan: ExecutionPlan, root_result: NodeResult, dispatch_id: str) -> ResponseEnvelope:
    root = plan.root.agent
    return ResponseEnvelope(
        dispatch_id=dispatch_id,
        agent_id=root.id,
        agent_type=root.agent_type,
        status=root_result.status,
        raw=root_result.raw or "",
        parsed=root_result.parsed,
        output_parser=root.output_parser,
        results=list(root_result.children),
        error=root_result.error,
        created_at=utc_timestamp(),
    )
