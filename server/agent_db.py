"""SQLite storage for agent definitions."""

import os
import sqlite3
from pathlib import Path

from agentboard.adapters.registry import InMemoryAgentRegistry
from agentboard.models.agent import Agent, AgentAdapter

DEFAULT_DB_PATH = Path(__file__).parent / "data" / "agentboard.db"


def db_path() -> Path:
    return Path(os.getenv("AGENTBOARD_DB_PATH", str(DEFAULT_DB_PATH)))


def _connect() -> sqlite3.Connection:
    path = db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    with _connect() as conn:
        conn.execute(
            """
            create table if not exists agents (
                id text primary key,
                parent_agent_id text,
                agent_type text not null,
                agent_json text not null,
                updated_at text
            )
            """
        )
        conn.execute(
            "create index if not exists idx_agents_parent_agent_id on agents(parent_agent_id)"
        )
        conn.commit()


def upsert_agent(agent: Agent) -> None:
    """insert or update an agent. Updates keep the row's original position."""
    with _connect() as conn:
        conn.execute(
            """
            insert into agents (id, parent_agent_id, agent_type, agent_json, updated_at)
            values (?, ?, ?, ?, ?)
            on conflict(id) do update set
                parent_agent_id = excluded.parent_agent_id,
                agent_type = excluded.agent_type,
                agent_json = excluded.agent_json,
                updated_at = excluded.updated_at
            """,
            (
                agent.id,
                agent.parent_id,
                agent.agent_type,
                agent.model_dump_json(),
                agent.updated_at,
            ),
        )
        conn.commit()


def get_agent(agent_id: str) -> Agent | None:
    with _connect() as conn:
        row = conn.execute(
            "select agent_json from agents where id = ?",
            (agent_id,),
        ).fetchone()
    if not row:
        return None
    return AgentAdapter.validate_json(row["agent_json"])


def list_agents() -> list[Agent]:
    """all agents, in the order they were first saved."""
    with _connect() as conn:
        rows = conn.execute("select agent_json from agents order by rowid").fetchall()
    return [AgentAdapter.validate_json(row["agent_json"]) for row in rows]


def list_children(parent_id: str) -> list[Agent]:
    with _connect() as conn:
        rows = conn.execute(
            "select agent_json from agents where parent_agent_id = ? order by rowid",
            (parent_id,),
        ).fetchall()
    return [AgentAdapter.validate_json(row["agent_json"]) for row in rows]


def delete_agent(agent_id: str) -> None:
    with _connect() as conn:
        conn.execute("delete from agents where id = ?", (agent_id,))
        conn.commit()


class SqliteAgentRegistry:
    """Agent registry backed by the agents table."""

    def get_by_id(self, agent_id: str) -> Agent | None:
        return get_agent(agent_id)

    def get_children(self, parent_id: str) -> list[Agent]:
        return list_children(parent_id)

    def snapshot(self) -> InMemoryAgentRegistry:
        """Read the whole table once so a dispatch sees one consistent view."""
        return InMemoryAgentRegistry(list_agents())
