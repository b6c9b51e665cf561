import threading
import time

import pytest
from fastapi.testclient import TestClient

from src.api.main import app
from src.api.routes import workflows

SIMPLE = {
    "steps": [
        {"step_number": 1, "title": "Collect requirements"},
        {"step_number": 2, "title": "Confirm", "action_type": "user_input", "dependencies": [1]},
        {"step_number": 3, "title": "Record", "action_type": "tool_call", "tool_needed": "echo", "dependencies": [2]},
    ],
}


@pytest.fixture
def client(runner, monkeypatch):
    monkeypatch.setattr(workflows, "_runner", runner)
    with TestClient(app) as test_client:
        yield test_client


def _start(client, payload=SIMPLE):
    response = client.post("/v1/workflows", json={"decomposition": payload, "context_data": {"who": "qa"}})
    assert response.status_code == 200, response.text
    return response.json()


def test_health(client):
    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["templates_loaded"] == 5
    assert body["runner_initialized"] is True


def test_list_and_get_templates(client):
    listed = client.get("/v1/templates").json()
    assert {t["template_key"] for t in listed} >= {"event_planning", "generic"}

    travel = client.get("/v1/templates", params={"category": "travel"}).json()
    assert [t["template_key"] for t in travel] == ["travel_planning"]

    assert client.get("/v1/templates/event_planning").json()["template_name"] == "Event Planning"
    assert client.get("/v1/templates/nope").status_code == 404


def test_instantiate_template(client):
    response = client.post(
        "/v1/templates/event_planning/instantiate",
        json={"parameters": {"event_name": "Launch Party"}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["plan"]["name"] == "Event Planning - Launch Party"
    assert body["validation"]["phases"][0]["execution_order"] == [1, 2, 3]
    assert client.post("/v1/templates/nope/instantiate").status_code == 404


def test_validate_plan_reports_order(client):
    response = client.post("/v1/plans/validate", json={"phases": [{"phase_number": 1, "name": "P", "steps": [
        {"step_number": 1, "title": "A", "estimated_time_minutes": 5},
        {"step_number": 2, "title": "B", "dependencies": [1], "estimated_time_minutes": 5},
    ]}]})

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is True
    assert body["critical_path"] == [1, 2]
    assert body["assessment"]["complexity_rating"] == "low"


def test_validate_plan_reports_cycle(client):
    response = client.post("/v1/plans/validate", json={"steps": [
        {"step_number": 1, "title": "A", "dependencies": [2]},
        {"step_number": 2, "title": "B", "dependencies": [1]},
    ]})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["cycle"] == [1, 2, 1]
    assert detail["phase_id"] == 1


def test_validate_plan_rejects_empty_decomposition(client):
    response = client.post("/v1/plans/validate", json={"phases": []})

    assert response.status_code == 422
    assert "no phases" in response.json()["detail"]["error"]


def test_start_suspend_resume_round_trip(client, tools):
    started = _start(client)

    assert started["status"] == "in_progress"
    assert started["awaiting_input"]["step_id"] == 2
    workflow_id = started["workflow_id"]

    status = client.get(f"/v1/workflows/{workflow_id}").json()
    assert status["progress"]["completed_steps"] == 1
    assert [s["step_id"] for s in status["next_steps"]] == [2, 3]
    assert status["next_steps"][1]["status"] == "blocked"
    assert status["next_steps"][1]["blocked_by"] == ["Confirm"]

    resumed = client.post(f"/v1/workflows/{workflow_id}/resume", json={"response": "yes"})
    assert resumed.status_code == 200
    assert resumed.json()["status"] == "completed"
    assert resumed.json()["completed_steps"] == 3
    assert tools.calls[0]["context"] == {"who": "qa"}

    again = client.post(f"/v1/workflows/{workflow_id}/resume")
    assert again.status_code == 409


def test_resume_without_input_conflicts(client):
    workflow_id = _start(client)["workflow_id"]

    response = client.post(f"/v1/workflows/{workflow_id}/resume")

    assert response.status_code == 409
    assert "waiting for input" in response.json()["detail"]["error"]


def test_start_from_planner_response(client):
    fenced = '```json\n{"steps": [{"step_number": 1, "title": "Only"}]}\n```'

    response = client.post("/v1/workflows", json={"planner_response": fenced})

    assert response.status_code == 200
    assert response.json()["status"] == "completed"


def test_start_requires_some_input(client):
    response = client.post("/v1/workflows", json={})

    assert response.status_code == 422
    assert "Provide either" in response.json()["detail"]["error"]


def test_start_with_dangling_reference(client):
    payload = {"steps": [{"step_number": 5, "title": "Orphan", "dependencies": [99]}]}

    response = client.post("/v1/workflows", json={"decomposition": payload})

    assert response.status_code == 422
    assert response.json()["detail"]["missing_id"] == 99


def test_adapt_and_error_mapping(client):
    workflow_id = _start(client)["workflow_id"]

    bad = client.post(f"/v1/workflows/{workflow_id}/adapt", json={
        "adaptation_type": "skip_phase", "phase_id": 1,
    })
    assert bad.status_code == 422

    missing_phase = client.post(f"/v1/workflows/{workflow_id}/adapt", json={
        "adaptation_type": "add_steps", "phase_id": 4, "payload": {"steps": [{"step_number": 9, "title": "x"}]},
    })
    assert missing_phase.status_code == 422

    added = client.post(f"/v1/workflows/{workflow_id}/adapt", json={
        "adaptation_type": "add_steps", "phase_id": 1,
        "payload": {"steps": [{"step_number": 4, "title": "Wrap up", "dependencies": [3]}]},
    })
    assert added.status_code == 200
    assert len(added.json()["adaptive_changes"]) == 1


def test_unknown_workflow_is_404(client):
    assert client.get("/v1/workflows/wf-missing").status_code == 404
    assert client.post("/v1/workflows/wf-missing/resume").status_code == 404


def test_step_guidance(client):
    workflow_id = _start(client)["workflow_id"]

    body = client.get(f"/v1/workflows/{workflow_id}/steps/1/3/guidance").json()

    assert body["tool_needed"] == "echo"
    assert body["guidance"].startswith("Use the echo tool")
    assert client.get(f"/v1/workflows/{workflow_id}/steps/1/42/guidance").status_code == 404


def test_runner_missing_is_503(monkeypatch):
    monkeypatch.setattr(workflows, "_runner", None)
    monkeypatch.setattr(workflows, "init_runner", lambda runner: None)

    with TestClient(app) as test_client:
        assert test_client.get("/v1/workflows/wf-any").status_code == 503


def test_slow_tool_does_not_stall_other_requests(client, tools):
    started = threading.Event()

    def slow(args):
        started.set()
        time.sleep(1.0)
        return {"success": True, "result": "done"}

    tools.register("slow", slow)
    payload = {"steps": [{"step_number": 1, "title": "Wait", "action_type": "tool_call", "tool_needed": "slow"}]}
    responses = []
    worker = threading.Thread(
        target=lambda: responses.append(client.post("/v1/workflows", json={"decomposition": payload})),
    )
    worker.start()
    assert started.wait(timeout=5)

    began = time.monotonic()
    health = client.get("/health")
    elapsed = time.monotonic() - began
    worker.join(timeout=5)

    assert health.status_code == 200
    assert elapsed < 0.5
    assert responses[0].status_code == 200
    assert responses[0].json()["success"] is True
