"""
Tests for the FastAPI endpoints.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport

from agentgraph.engine.graph import export_workflow
from agentgraph.main import app
from agentgraph.workflows.templates import get_template


# ============================================================
# Sync Test Client (for simple tests)
# ============================================================

client = TestClient(app)


def delay_workflow(seconds: float) -> dict:
    """Inline workflow that waits on a delay node."""
    return {
        "name": "Delay",
        "description": "Waits once, then finishes",
        "nodes": [
            {"id": "start", "type": "start"},
            {"id": "wait", "type": "delay", "data": {"label": "Wait", "delaySeconds": seconds}},
            {"id": "end", "type": "end"},
        ],
        "edges": [
            {"id": "e1", "source": "start", "target": "wait"},
            {"id": "e2", "source": "wait", "target": "end"},
        ],
    }


class TestRootEndpoints:
    """Tests for root endpoints."""

    def test_root(self):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["name"] == "AgentGraph"
        assert "version" in data
        assert "runs" in data["endpoints"]

    def test_health(self):
        """Test health endpoint."""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["agents_count"] >= 5


class TestWorkflowEndpoints:
    """Tests for template, validation and import endpoints."""

    def test_list_templates(self):
        """Test listing templates."""
        response = client.get("/workflows/templates")
        assert response.status_code == 200

        data = response.json()
        assert data["total"] == 5
        ids = [t["id"] for t in data["templates"]]
        assert "with-review" in ids

    def test_get_template(self):
        """Test getting a template with its diagram."""
        response = client.get("/workflows/templates/auto-fix")
        assert response.status_code == 200

        data = response.json()
        assert data["workflow"]["id"] == "template-autofix"
        assert data["mermaid_diagram"].startswith("graph TD")
        assert data["validation"]["valid"] is True

    def test_get_missing_template(self):
        """Test getting a template that doesn't exist."""
        response = client.get("/workflows/templates/nonexistent")
        assert response.status_code == 404

    def test_validate(self):
        """Test validating a graph."""
        response = client.post("/workflows/validate", json={
            "name": "Broken",
            "nodes": [{"id": "a", "type": "agent", "data": {"label": "A"}}],
            "edges": [],
        })
        assert response.status_code == 200

        data = response.json()
        assert data["valid"] is False
        assert "Workflow has no start node" in data["errors"]
        assert "Agent node 'A' has no agent id" in data["errors"]

    def test_validate_rejects_unknown_node_type(self):
        """Test that malformed graphs fail request validation."""
        response = client.post("/workflows/validate", json={
            "nodes": [{"id": "x", "type": "teleport"}],
            "edges": [],
        })
        assert response.status_code == 422

    def test_import(self):
        """Test importing an exported workflow."""
        content = export_workflow(get_template("with-review"))
        response = client.post("/workflows/import", json={"content": content})
        assert response.status_code == 200

        data = response.json()
        assert data["workflow"]["name"] == "With Review Decision"
        assert data["validation"]["valid"] is True

    def test_import_invalid(self):
        """Test importing malformed JSON."""
        response = client.post("/workflows/import", json={"content": "{oops"})
        assert response.status_code == 400
        assert "JSON parse error" in response.json()["detail"]


class TestAgentEndpoints:
    """Tests for agent endpoints."""

    def test_list_agents(self):
        """Test listing agents."""
        response = client.get("/agents")
        assert response.status_code == 200

        data = response.json()
        ids = [a["id"] for a in data["agents"]]
        for agent_id in ("planner", "coder", "reviewer", "security", "documenter"):
            assert agent_id in ids

    def test_get_agent(self):
        """Test getting a specific agent."""
        response = client.get("/agents/reviewer")
        assert response.status_code == 200
        assert response.json()["name"] == "Reviewer"

    def test_get_missing_agent(self):
        """Test getting an agent that doesn't exist."""
        response = client.get("/agents/nonexistent")
        assert response.status_code == 404


# ============================================================
# Async Tests (for run endpoints)
# ============================================================

async def wait_for_status(ac: AsyncClient, run_id: str, *statuses: str, timeout: float = 5.0) -> dict:
    """Poll a run until it reaches one of the given statuses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        response = await ac.get(f"/runs/{run_id}")
        assert response.status_code == 200
        data = response.json()
        if data["status"] in statuses:
            return data
        if loop.time() > deadline:
            raise AssertionError(f"Run {run_id} stuck in status {data['status']}")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_run_with_review_decision():
    """Test a template run through its human decision."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post("/runs", json={"template_id": "with-review"})
        assert response.status_code == 201

        data = response.json()
        run_id = data["run_id"]
        assert data["template_id"] == "with-review"
        assert data["workflow_id"] != "template-review"

        data = await wait_for_status(ac, run_id, "waiting-human")
        assert data["pending_decision"]["node_id"] == "decision"
        assert [o["id"] for o in data["pending_decision"]["options"]] == ["yes", "no"]

        response = await ac.post(f"/runs/{run_id}/decision", json={"option_id": "yes"})
        assert response.status_code == 200

        data = await wait_for_status(ac, run_id, "completed")
        assert data["state"]["visited_nodes"] == [
            "start", "planner", "coder", "decision", "reviewer", "end",
        ]
        assert data["state"]["node_outputs"]["reviewer"].startswith("REVIEW: changes requested")
        assert data["pending_decision"] is None

        response = await ac.get(f"/runs/{run_id}/log")
        assert response.status_code == 200
        log = response.json()
        assert len(log["steps"]) == 6
        assert all(step["result"] == "success" for step in log["steps"])
        assert any(m["message"] == "Workflow completed" for m in log["messages"])

        response = await ac.get(f"/runs/{run_id}/statistics")
        assert response.status_code == 200
        stats = response.json()
        assert stats["executed_nodes"] == 6
        assert stats["current_progress"] == 100.0

        response = await ac.get(f"/runs/{run_id}/agents")
        assert response.status_code == 200
        agents = {a["agent_id"]: a for a in response.json()["agents"]}
        assert set(agents) == {"planner", "coder", "reviewer"}
        assert agents["reviewer"]["execution_count"] == 1
        assert agents["reviewer"]["success_rate"] == 100.0

        response = await ac.post(f"/runs/{run_id}/decision", json={"option_id": "yes"})
        assert response.status_code == 409

        response = await ac.get("/runs")
        assert run_id in [r["run_id"] for r in response.json()["runs"]]


@pytest.mark.asyncio
async def test_decision_with_unknown_option():
    """Test that an unknown option is rejected and the run keeps waiting."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post("/runs", json={"template_id": "with-review"})
        run_id = response.json()["run_id"]
        await wait_for_status(ac, run_id, "waiting-human")

        response = await ac.post(f"/runs/{run_id}/decision", json={"option_id": "maybe"})
        assert response.status_code == 400

        response = await ac.get(f"/runs/{run_id}")
        assert response.json()["status"] == "waiting-human"

        response = await ac.post(f"/runs/{run_id}/stop")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "idle"
        assert data["state"]["human_decision_pending"] is None


@pytest.mark.asyncio
async def test_run_not_found():
    """Test endpoints for a run that doesn't exist."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        assert (await ac.get("/runs/nonexistent")).status_code == 404
        assert (await ac.get("/runs/nonexistent/log")).status_code == 404
        assert (await ac.get("/runs/nonexistent/agents")).status_code == 404
        assert (await ac.post("/runs/nonexistent/pause")).status_code == 404
        response = await ac.post("/runs/nonexistent/decision", json={"option_id": "yes"})
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_create_run_errors():
    """Test rejected run requests."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post("/runs", json={"template_id": "nonexistent"})
        assert response.status_code == 404

        response = await ac.post("/runs", json={})
        assert response.status_code == 400

        response = await ac.post("/runs", json={
            "template_id": "simple-linear",
            "workflow": delay_workflow(0),
        })
        assert response.status_code == 400

        response = await ac.post("/runs", json={
            "workflow": {"nodes": [{"id": "end", "type": "end"}], "edges": []},
        })
        assert response.status_code == 400
        assert "no start node" in response.json()["detail"]


@pytest.mark.asyncio
async def test_pause_and_resume_inline_workflow():
    """Test pausing a run during a delay and resuming it."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post("/runs", json={"workflow": delay_workflow(0.3)})
        assert response.status_code == 201
        run_id = response.json()["run_id"]
        assert response.json()["template_id"] is None

        await wait_for_status(ac, run_id, "running")
        response = await ac.post(f"/runs/{run_id}/pause")
        assert response.json()["status"] == "paused"

        loop = asyncio.get_running_loop()
        deadline = loop.time() + 5
        while (await ac.get(f"/runs/{run_id}")).json()["state"]["next_node_id"] != "end":
            assert loop.time() < deadline
            await asyncio.sleep(0.02)

        response = await ac.post(f"/runs/{run_id}/resume")
        assert response.status_code == 200

        data = await wait_for_status(ac, run_id, "completed")
        assert data["state"]["visited_nodes"] == ["start", "wait", "end"]


@pytest.mark.asyncio
async def test_stop_cancels_delay():
    """Test that stopping a run cancels its delay."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post("/runs", json={"workflow": delay_workflow(5)})
        run_id = response.json()["run_id"]

        data = await wait_for_status(ac, run_id, "running")
        while data["state"]["awaiting"] is None:
            await asyncio.sleep(0.01)
            data = (await ac.get(f"/runs/{run_id}")).json()
        assert data["state"]["awaiting"]["kind"] == "delay"

        response = await ac.post(f"/runs/{run_id}/stop")
        assert response.json()["status"] == "idle"

        response = await ac.get(f"/runs/{run_id}/log")
        steps = response.json()["steps"]
        assert steps[-1]["node_id"] == "wait"
        assert steps[-1]["result"] == "cancelled"


# ============================================================
# WebSocket Tests
# ============================================================

class TestRunWebSocket:
    """Tests for the run state stream."""

    def test_stream_until_finished(self):
        """Test that a subscriber sees the run through to the end."""
        with TestClient(app) as ws_client:
            response = ws_client.post("/runs", json={"template_id": "simple-linear"})
            run_id = response.json()["run_id"]

            with ws_client.websocket_connect(f"/ws/runs/{run_id}") as ws:
                messages = []
                while True:
                    message = ws.receive_json()
                    messages.append(message)
                    if message["type"] == "finished":
                        break

        assert messages[0]["type"] == "state"
        assert messages[-1]["status"] == "completed"
        assert messages[-1]["error"] is None
        assert messages[-2]["state"]["visited_nodes"] == ["start", "planner", "coder", "end"]

    def test_unknown_run_is_closed(self):
        """Test that subscribing to an unknown run closes the socket."""
        from starlette.websockets import WebSocketDisconnect

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/runs/nonexistent") as ws:
                ws.receive_json()
        assert exc_info.value.code == 4004
