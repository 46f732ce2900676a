"""Model-call collaborator: turns (system prompt, model, temperature, message) into text.

The dispatcher only depends on the `ModelCaller` protocol. `ChatModelCaller`
is the production implementation on top of LangChain chat models; the
provider is picked from the agent's model name.
"""

import asyncio
from typing import Any, Callable, Protocol

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from loguru import logger

from agentboard.errors import ModelCallError


class ModelCaller(Protocol):
    """Protocol for invoking a model for one agent."""

    async def invoke(self, system_prompt: str, model: str, temperature: float, message: str) -> str:
        """Return the raw response text.

        Raises:
            ModelCallError: with `transient=True` when a retry may succeed.
        """
        ...


_TRANSIENT_MARKERS = (
    "timeout",
    "connection",
    "network",
    "ratelimit",
    "rate_limit",
    "overloaded",
    "unavailable",
    "internalserver",
    "apiconnection",
)


def is_transient_error(error: BaseException) -> bool:
    """Classify a provider exception as transient (worth retrying) or permanent."""
    if isinstance(error, ModelCallError):
        return error.transient
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    error_name = type(error).__name__.lower()
    return any(marker in error_name for marker in _TRANSIENT_MARKERS)


def get_chat_model(model: str, temperature: float = 0.7, **kwargs: Any) -> BaseChatModel:
    """Build a LangChain chat model for an agent's model name.

    - claude-*: Anthropic (ANTHROPIC_API_KEY)
    - gemini-*: Google Gemini (GOOGLE_API_KEY, needs the `google` extra)
    - anything else: OpenAI (OPENAI_API_KEY)
    """
    name = model.lower()
    if name.startswith("claude"):
        from langchain_anthropic import ChatAnthropic

        return ChatAnthropic(model_name=model, temperature=temperature, **kwargs)
    if name.startswith("gemini"):
        try:
            from langchain_google_genai import ChatGoogleGenerativeAI
        except ImportError:
            raise ModelCallError(
                None,
                "langchain-google-genai is required for Gemini models: pip install 'agentboard[google]'",
            ) from None

        return ChatGoogleGenerativeAI(model=model, temperature=temperature, **kwargs)

    from langchain_openai import ChatOpenAI

    return ChatOpenAI(model=model, temperature=temperature, **kwargs)


def _message_text(content: Any) -> str:
    """Flatten chat message content (a string or a list of content blocks)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return str(content)


class ChatModelCaller:
    """`ModelCaller` backed by LangChain chat models.

    Chat model clients are created lazily and cached per (model, temperature).
    """

    def __init__(
        self,
        model_factory: Callable[..., BaseChatModel] = get_chat_model,
        callbacks: list | None = None,
        **model_kwargs: Any,
    ) -> None:
        self._model_factory = model_factory
        self._callbacks = callbacks
        self._model_kwargs = model_kwargs
        self._models: dict[tuple[str, float], BaseChatModel] = {}

    def _chat_model(self, model: str, temperature: float) -> BaseChatModel:
        key = (model, temperature)
        if key not in self._models:
            logger.debug(f"creating chat model {model} (temperature={temperature})")
            self._models[key] = self._model_factory(model, temperature, **self._model_kwargs)
        return self._models[key]

    async def invoke(self, system_prompt: str, model: str, temperature: float, message: str) -> str:
        messages: list[BaseMessage] = []
        if system_prompt:
            messages.append(SystemMessage(content=system_prompt))
        messages.append(HumanMessage(content=message))

        config = {"callbacks": self._callbacks} if self._callbacks else None
        try:
            chat = self._chat_model(model, temperature)
            response = await chat.ainvoke(messages, config=config)
        except ModelCallError:
            raise
        except Exception as e:
            raise ModelCallError(
                None,
                f"{type(e).__name__}: {e}",
                transient=is_transient_error(e),
            ) from e

        return _message_text(response.content)
