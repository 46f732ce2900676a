"""Runtime settings, read from the environment (and a .env file if present)."""

import os
from dataclasses import dataclass, replace
from enum import Enum

from dotenv import load_dotenv

load_dotenv()


class ConditionPolicy(str, Enum):
    """What the dispatcher does when a condition cannot be evaluated."""

    fail_closed = "fail_closed"  # treat as "does not match"
    raise_error = "raise"  # abort the dispatch with ConditionError


class SequentialFold(str, Enum):
    """How a sequential child's output becomes the next child's message."""

    replace = "replace"  # next message is the previous output
    append = "append"  # next message is the previous message + output


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass(frozen=True)
class DispatchSettings:
    """Knobs for evaluation budgets, model calls and composition policies."""

    condition_timeout: float = 1.0
    parser_timeout: float = 2.0
    model_call_timeout: float = 60.0
    model_call_attempts: int = 3
    retry_wait_max: float = 8.0
    condition_policy: ConditionPolicy = ConditionPolicy.fail_closed
    sequential_fold: SequentialFold = SequentialFold.replace
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "DispatchSettings":
        """Build settings from AGENTBOARD_* environment variables."""
        defaults = cls()
        return cls(
            condition_timeout=_float_env("AGENTBOARD_CONDITION_TIMEOUT", defaults.condition_timeout),
            parser_timeout=_float_env("AGENTBOARD_PARSER_TIMEOUT", defaults.parser_timeout),
            model_call_timeout=_float_env("AGENTBOARD_MODEL_CALL_TIMEOUT", defaults.model_call_timeout),
            model_call_attempts=max(1, _int_env("AGENTBOARD_MODEL_CALL_ATTEMPTS", defaults.model_call_attempts)),
            retry_wait_max=_float_env("AGENTBOARD_RETRY_WAIT_MAX", defaults.retry_wait_max),
            condition_policy=ConditionPolicy(
                os.getenv("AGENTBOARD_CONDITION_POLICY", defaults.condition_policy.value)
            ),
            sequential_fold=SequentialFold(
                os.getenv("AGENTBOARD_SEQUENTIAL_FOLD", defaults.sequential_fold.value)
            ),
            log_level=os.getenv("AGENTBOARD_LOG_LEVEL", defaults.log_level),
        )

    def with_overrides(self, **changes) -> "DispatchSettings":
        return replace(self, **changes)
