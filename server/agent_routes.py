"""API routes for saving and reading agent definitions."""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from agentboard.engine.evaluator import ExpressionEvaluator
from agentboard.engine.parser import compile_custom_parser
from agentboard.errors import ConditionError, InvalidAgentError
from agentboard.models.agent import Agent, normalize_agent_record
from agentboard.utils.identifiers import generate_agent_id, utc_timestamp
from server.agent_db import (
    delete_agent as db_delete_agent,
    get_agent as db_get_agent,
    list_agents as db_list_agents,
    upsert_agent as db_upsert_agent,
)

router = APIRouter()


class SaveAgentRequest(BaseModel):
    """request body for creating or updating an agent.

    Mirrors the dashboard form: every field is accepted, fields that the
    chosen agent_type does not use are dropped on save.
    """

    name: str = ""
    description: str = ""
    agent_type: str = "simple"
    model: str = "gpt-3.5-turbo"
    temperature: float = 0.7
    system_prompt: str = ""
    output_parser: str = "text"
    custom_parser_code: str | None = None
    parent_agent_id: str | None = None
    execution_order: int | None = None
    condition: str | None = None
    enabled: bool = True

    model_config = {"protected_namespaces": ()}


def _check_user_code(agent: Agent) -> None:
    """reject conditions and custom parsers that can never run."""
    condition = getattr(agent, "condition", None)
    if condition:
        try:
            ExpressionEvaluator().validate(condition)
        except ConditionError as e:
            raise HTTPException(status_code=422, detail=f"Invalid condition: {e.reason}") from None
    if agent.custom_parser_code:
        try:
            compile_custom_parser(agent.custom_parser_code)
        except SyntaxError as e:
            raise HTTPException(status_code=422, detail=f"Invalid custom parser code: {e}") from None


@router.get("/agents")
def list_agents() -> list[Agent]:
    """list all agents."""
    return db_list_agents()


@router.get("/agents/{agent_id}")
def get_agent(agent_id: str) -> Agent:
    """get a single agent."""
    agent = db_get_agent(agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail=f"Agent not found: {agent_id}")
    return agent


@router.post("/agents", status_code=201)
def create_agent(request: SaveAgentRequest) -> Agent:
    """create an agent under a generated id."""
    return save_agent(generate_agent_id(), request)


@router.put("/agents/{agent_id}")
def save_agent(agent_id: str, request: SaveAgentRequest) -> Agent:
    """create or update an agent, applying the save contract."""
    existing = db_get_agent(agent_id)
    now = utc_timestamp()

    record = request.model_dump()
    record["id"] = agent_id
    record["created_at"] = (existing.created_at if existing else None) or now
    record["updated_at"] = now
    try:
        agent = normalize_agent_record(record)
    except InvalidAgentError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None

    _check_user_code(agent)
    db_upsert_agent(agent)
    return agent


@router.delete("/agents/{agent_id}")
def delete_agent(agent_id: str) -> dict:
    """remove an agent. Its children are kept and become unreachable."""
    if not db_get_agent(agent_id):
        raise HTTPException(status_code=404, detail=f"Agent not found: {agent_id}")
    db_delete_agent(agent_id)
    return {"deleted": agent_id}
