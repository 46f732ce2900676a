"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from agentboard.errors import ModelCallError
from server.app import app
from server.dispatch_routes import get_model_caller


class EchoModelCaller:
    """answers with the agent's system prompt and the message."""

    async def invoke(self, system_prompt, model, temperature, message):
        if system_prompt == "fail":
            raise ModelCallError(None, "boom")
        return f"{system_prompt}:{message}"


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("AGENTBOARD_DB_PATH", str(tmp_path / "agentboard.db"))
    monkeypatch.setenv("AGENTBOARD_MODEL_CALL_ATTEMPTS", "1")
    app.dependency_overrides[get_model_caller] = EchoModelCaller
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _save(client, agent_id, **fields):
    response = client.put(f"/api/agents/{agent_id}", json=fields)
    assert response.status_code == 200, response.text
    return response.json()


class TestAgentRoutes:
    def test_health(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_save_applies_contract(self, client):
        agent = _save(client, "a1", name="Agent", agent_type="simple", parent_agent_id="root", condition="true")
        assert agent["agent_type"] == "simple"
        assert "parent_agent_id" not in agent
        assert "condition" not in agent
        assert agent["created_at"]

    def test_get_and_list(self, client):
        _save(client, "a1", agent_type="multi")
        _save(client, "a2", agent_type="multi", parent_agent_id="a1")
        assert client.get("/api/agents/a2").json()["parent_agent_id"] == "a1"
        assert [a["id"] for a in client.get("/api/agents").json()] == ["a1", "a2"]

    def test_create_generates_id(self, client):
        response = client.post("/api/agents", json={"name": "new"})
        assert response.status_code == 201
        agent_id = response.json()["id"]
        assert client.get(f"/api/agents/{agent_id}").status_code == 200

    def test_update_keeps_created_at(self, client):
        first = _save(client, "a1", name="one")
        second = _save(client, "a1", name="two")
        assert second["name"] == "two"
        assert second["created_at"] == first["created_at"]

    def test_not_found(self, client):
        assert client.get("/api/agents/nope").status_code == 404
        assert client.delete("/api/agents/nope").status_code == 404

    def test_delete(self, client):
        _save(client, "a1")
        assert client.delete("/api/agents/a1").json() == {"deleted": "a1"}
        assert client.get("/api/agents/a1").status_code == 404

    @pytest.mark.parametrize(
        "fields",
        [
            {"agent_type": "unknown"},
            {"temperature": 3},
            {"output_parser": "custom"},
            {"agent_type": "conditional", "condition": "__import__('os')"},
            {"output_parser": "custom", "custom_parser_code": "return raw.__class__"},
        ],
    )
    def test_invalid_agents_rejected(self, client, fields):
        response = client.put("/api/agents/bad", json=fields)
        assert response.status_code == 422


class TestPlanAndDispatch:
    def _sequential(self, client):
        _save(client, "root", agent_type="sequential")
        _save(client, "b", agent_type="sequential", parent_agent_id="root", execution_order=2, system_prompt="b")
        _save(client, "a", agent_type="sequential", parent_agent_id="root", execution_order=1, system_prompt="a")

    def test_plan_preview(self, client):
        self._sequential(client)
        plan = client.get("/api/agents/root/plan").json()
        assert plan["agent_ids"] == ["root", "a", "b"]
        assert [c["agent"]["id"] for c in plan["tree"]["children"]] == ["a", "b"]

    def test_plan_errors(self, client):
        assert client.get("/api/agents/nope/plan").status_code == 404
        _save(client, "x", agent_type="multi", parent_agent_id="y")
        _save(client, "y", agent_type="multi", parent_agent_id="x")
        response = client.get("/api/agents/x/plan")
        assert response.status_code == 409
        assert "cycle" in response.json()["detail"]

    def test_dispatch_sequential(self, client):
        self._sequential(client)
        response = client.post("/api/agents/root/dispatch", json={"message": "hi"})
        assert response.status_code == 200
        envelope = response.json()
        assert envelope["status"] == "succeeded"
        assert envelope["raw"] == "b:a:hi"
        assert [r["agent_id"] for r in envelope["results"]] == ["a", "b"]

    def test_dispatch_conditional_no_match(self, client):
        _save(client, "router", agent_type="conditional")
        _save(client, "sales", agent_type="conditional", parent_agent_id="router", condition="intent === 'compra'")
        response = client.post("/api/agents/router/dispatch", json={"message": "oi", "intent": "outro"})
        assert response.status_code == 200
        assert response.json()["status"] == "no_matching_branch"

    def test_dispatch_condition_error_under_raise_policy(self, client, monkeypatch):
        monkeypatch.setenv("AGENTBOARD_CONDITION_POLICY", "raise")
        _save(client, "router", agent_type="conditional")
        _save(client, "c", agent_type="conditional", parent_agent_id="router", condition="entities['x'] == 1")
        response = client.post("/api/agents/router/dispatch", json={"message": "oi"})
        assert response.status_code == 422

    def test_dispatch_leaf_failure_is_a_result(self, client):
        _save(client, "bot", system_prompt="fail")
        response = client.post("/api/agents/bot/dispatch", json={"message": "hi"})
        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        assert response.json()["error"]["kind"] == "model_call"

    def test_dispatch_not_found(self, client):
        response = client.post("/api/agents/nope/dispatch", json={"message": "hi"})
        assert response.status_code == 404

    def test_chat_endpoint(self, client):
        _save(client, "bot", system_prompt="bot")
        response = client.post(
            "/api/agent",
            json={"agentId": "bot", "messages": [{"role": "user", "content": "first"}, {"role": "user", "content": "second"}]},
        )
        assert response.status_code == 200
        assert response.json()["raw"] == "bot:second"

    def test_chat_endpoint_validation(self, client):
        assert client.post("/api/agent", json={"messages": [{"content": "x"}]}).status_code == 400
        assert client.post("/api/agent", json={"agentId": "bot", "messages": []}).status_code == 400
