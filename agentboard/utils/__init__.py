"""Utility functions for agentboard."""

from agentboard.utils.identifiers import (
    generate_agent_id,
    generate_dispatch_id,
    generate_event_id,
    utc_timestamp,
)
from agentboard.utils.logging import setup_logging

__all__ = [
    "generate_agent_id",
    "generate_dispatch_id",
    "generate_event_id",
    "utc_timestamp",
    "setup_logging",
]
