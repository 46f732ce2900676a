"""API routes for previewing plans and dispatching messages.

Supports OpenAI and Anthropic (Claude) models through the chat model caller.
"""

import os
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from agentboard.adapters.model_call import ChatModelCaller, ModelCaller
from agentboard.adapters.sinks import FileSink
from agentboard.config import DispatchSettings
from agentboard.engine.dispatcher import Dispatcher
from agentboard.engine.resolver import resolve
from agentboard.errors import AgentNotFoundError, CompositionCycleError, ConditionError
from agentboard.models.dispatch import DispatchContext, ResponseEnvelope
from server.agent_db import SqliteAgentRegistry

router = APIRouter()

# model caller instance (lazily initialized)
_model_caller: ModelCaller | None = None


def get_model_caller() -> ModelCaller:
    """Get or create the chat model caller."""
    global _model_caller
    if _model_caller is None:
        _model_caller = ChatModelCaller()
    return _model_caller


def _event_sink() -> FileSink | None:
    trace_file = os.getenv("AGENTBOARD_TRACE_FILE")
    return FileSink(trace_file) if trace_file else None


class DispatchRequest(BaseModel):
    """request body for dispatching a message."""

    message: str
    intent: str | None = None
    entities: dict[str, Any] = Field(default_factory=dict)


def _resolution_error(e: Exception) -> HTTPException:
    if isinstance(e, AgentNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=409, detail=str(e))


@router.get("/agents/{agent_id}/plan")
def get_plan(agent_id: str) -> dict:
    """resolve the composition rooted at an agent without running it."""
    try:
        plan = resolve(SqliteAgentRegistry().snapshot(), agent_id)
    except (AgentNotFoundError, CompositionCycleError) as e:
        raise _resolution_error(e) from None
    return {
        "root_id": plan.root_id,
        "size": plan.size,
        "agent_ids": plan.agent_ids(),
        "tree": plan.to_tree(),
    }


@router.post("/agents/{agent_id}/dispatch")
async def dispatch(
    agent_id: str,
    request: DispatchRequest,
    model_caller: ModelCaller = Depends(get_model_caller),
) -> ResponseEnvelope:
    """route a message through the composition rooted at an agent."""
    dispatcher = Dispatcher(
        SqliteAgentRegistry(),
        model_caller,
        settings=DispatchSettings.from_env(),
        event_sink=_event_sink(),
    )
    context = DispatchContext(message=request.message, intent=request.intent, entities=request.entities)
    try:
        return await dispatcher.dispatch(agent_id, context)
    except (AgentNotFoundError, CompositionCycleError) as e:
        raise _resolution_error(e) from None
    except ConditionError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None


class ChatMessage(BaseModel):
    role: str = "user"
    content: str


class AgentChatRequest(BaseModel):
    """request body of the dashboard's chat endpoint."""

    agentId: str | None = None
    messages: list[ChatMessage] = Field(default_factory=list)
    conversationId: str | None = None


@router.post("/agent")
async def chat_with_agent(
    request: AgentChatRequest,
    model_caller: ModelCaller = Depends(get_model_caller),
) -> ResponseEnvelope:
    """dispatch the latest user message of a chat to an agent."""
    if not request.agentId:
        raise HTTPException(status_code=400, detail="agentId is required")
    user_messages = [m.content for m in request.messages if m.role == "user"]
    if not user_messages:
        raise HTTPException(status_code=400, detail="messages must contain a user message")

    return await dispatch(request.agentId, DispatchRequest(message=user_messages[-1]), model_caller)
