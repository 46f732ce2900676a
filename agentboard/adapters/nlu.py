"""NLU collaborator: optional intent/entity enrichment of the dispatch context."""

from typing import Any, Protocol

from loguru import logger
from pydantic import BaseModel, Field

from agentboard.models.dispatch import DispatchContext


class NluResult(BaseModel):
    """what an NLU service extracted from a message."""

    intent: str | None = None
    entities: dict[str, Any] = Field(default_factory=dict)


class IntentDetector(Protocol):
    """Protocol for an external NLU service."""

    async def detect(self, message: str) -> NluResult:
        ...


async def build_context(
    message: str,
    detector: IntentDetector | None = None,
    intent: str | None = None,
    entities: dict[str, Any] | None = None,
) -> DispatchContext:
    """Build the dispatch context for a message.

    Explicit `intent`/`entities` win over what the detector returns. A
    detector failure is logged and the context falls back to the message
    alone, since NLU only enriches conditions.
    """
    detected = NluResult()
    if detector is not None:
        try:
            detected = await detector.detect(message)
        except Exception as e:
            logger.warning(f"intent detection failed, continuing without it: {type(e).__name__}: {e}")

    return DispatchContext(
        message=message,
        intent=intent if intent is not None else detected.intent,
        entities=entities if entities is not None else detected.entities,
    )
