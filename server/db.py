"""database initialization helpers."""

from server.agent_db import init_db as init_agent_db


def init_all() -> None:
    """initialize all sqlite tables."""
    init_agent_db()
