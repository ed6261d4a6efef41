"""Tests for the Flask API - orchestrator agents are mocked."""

from unittest.mock import MagicMock

import pytest

import server
from core.errors import LlmError, SynthesisError
from core.state import (
    DependencyFile,
    FileImplementation,
    FolderNode,
    IntegrationResult,
    SpecialistVision,
)

ROOT = FolderNode(name="root", description="d", purpose="p")


def _vision(reqs, role, index, total):
    return SpecialistVision(role=role, expertise="x", vision_text="v", proposed_tree=ROOT)


@pytest.fixture
def client(monkeypatch, tmp_path):
    specialist = MagicMock()
    specialist.generate_vision.side_effect = _vision
    integrator = MagicMock()
    integrator.integrate.return_value = IntegrationResult(
        "merged", [], ROOT, [DependencyFile(name="a.py", path="a.py")])
    synthesizer = MagicMock()
    synthesizer.synthesize_all.return_value = [
        FileImplementation("a.py", "a.py", "module", "", "", (), "python", "x = 1\n"),
    ]
    monkeypatch.setattr(server.orchestrator, "specialist", specialist)
    monkeypatch.setattr(server.orchestrator, "integrator", integrator)
    monkeypatch.setattr(server.orchestrator, "synthesizer", synthesizer)
    monkeypatch.setattr(server, "get_output_dir", lambda reqs: str(tmp_path / "out"))

    server._jobs.clear()
    server.app.config["TESTING"] = True
    with server.app.test_client() as c:
        yield c
    server._jobs.clear()


def _start(client, requirements=("Build a todo app with a database",)):
    resp = client.post("/api/runs", json={"requirements": list(requirements)})
    return resp, resp.get_json()


def test_roles_endpoint(client):
    resp = client.post("/api/roles", json={"requirements": ["A mobile app with login"]})
    assert resp.status_code == 200
    assert resp.get_json()["roles"] == [
        "Backend Developer", "Frontend Developer", "Security Specialist",
        "Mobile Developer", "Chief Technology Officer",
    ]


def test_roles_requires_array(client):
    resp = client.post("/api/roles", json={"requirements": 42})
    assert resp.status_code == 400


def test_start_runs_stage1(client):
    resp, data = _start(client)
    assert resp.status_code == 200
    assert data["stage"] == "Stage1"
    assert len(data["visions"]) == 3
    assert data["visions"][0]["visionText"] == "v"
    assert data["specialistProgress"] == [3, 3]
    assert data["error"] is None
    assert data["runId"] in server._jobs


def test_start_rejects_blank_requirements(client):
    resp = client.post("/api/runs", json={"requirements": ["  "]})
    assert resp.status_code == 400
    assert resp.get_json()["missing"] == ["requirements"]


def test_advance_through_to_export(client, tmp_path):
    _, data = _start(client)
    run_id = data["runId"]

    data = client.post(f"/api/runs/{run_id}/advance").get_json()
    assert data["stage"] == "Stage2"
    assert data["integration"]["integratedVision"] == "merged"

    data = client.post(f"/api/runs/{run_id}/advance").get_json()
    assert data["stage"] == "Stage3"
    assert data["done"] is True
    assert data["implementations"][0]["code"] == "x = 1\n"

    resp = client.post(f"/api/runs/{run_id}/export")
    assert resp.status_code == 200
    assert resp.get_json()["writtenFiles"] == ["a.py"]
    assert (tmp_path / "out" / "a.py").read_text() == "x = 1\n"


def test_stage_failure_reports_502_and_keeps_state(client):
    server.orchestrator.integrator.integrate.side_effect = LlmError("Claude API error: 500")
    _, data = _start(client)

    resp = client.post(f"/api/runs/{data['runId']}/advance")
    assert resp.status_code == 502
    body = resp.get_json()
    assert body["stage"] == "Stage1"
    assert body["error"] == {"stage": "Stage2", "message": "Claude API error: 500",
                             "type": "LlmError", "file": None}
    assert len(body["visions"]) == 3


def test_advance_past_done_is_400(client):
    _, data = _start(client)
    run_id = data["runId"]
    client.post(f"/api/runs/{run_id}/advance")
    client.post(f"/api/runs/{run_id}/advance")
    resp = client.post(f"/api/runs/{run_id}/advance")
    assert resp.status_code == 400


def test_export_before_done_is_400(client):
    _, data = _start(client)
    resp = client.post(f"/api/runs/{data['runId']}/export")
    assert resp.status_code == 400


def test_reset_returns_to_idle(client):
    _, data = _start(client)
    data = client.post(f"/api/runs/{data['runId']}/reset").get_json()
    assert data["stage"] == "Idle"
    assert data["visions"] == []


def test_in_flight_run_rejected(client):
    _, data = _start(client)
    run = server._jobs[data["runId"]]["run"]
    run.in_flight = run.stage
    resp = client.post(f"/api/runs/{data['runId']}/advance")
    assert resp.status_code == 409


def test_unknown_run_is_404(client):
    assert client.get("/api/runs/nope").status_code == 404
    assert client.post("/api/runs/nope/advance").status_code == 404
    assert client.post("/api/runs/nope/export").status_code == 404


def test_status_endpoint(client):
    _, data = _start(client)
    resp = client.get(f"/api/runs/{data['runId']}")
    assert resp.status_code == 200
    assert resp.get_json()["runId"] == data["runId"]


def test_cancel_with_nothing_in_progress_is_409(client):
    _, data = _start(client)
    run_id = data["runId"]
    assert client.post(f"/api/runs/{run_id}/cancel").status_code == 409
    assert server._jobs[run_id]["run"].cancelled is False


def test_cancel_in_flight_then_retry(client):
    _, data = _start(client)
    run_id = data["runId"]
    job = server._jobs[run_id]

    job["busy"] = True
    assert client.post(f"/api/runs/{run_id}/cancel").status_code == 200
    assert job["run"].cancelled is True
    job["busy"] = False

    body = client.post(f"/api/runs/{run_id}/advance").get_json()
    assert body["error"]["type"] == "PipelineCancelled"

    resp = client.post(f"/api/runs/{run_id}/retry")
    assert resp.status_code == 200
    assert resp.get_json()["stage"] == "Stage2"


def test_busy_run_rejected_and_claim_released(client):
    _, data = _start(client)
    run_id = data["runId"]
    job = server._jobs[run_id]

    job["busy"] = True
    assert client.post(f"/api/runs/{run_id}/advance").status_code == 409
    server.orchestrator.integrator.integrate.assert_not_called()

    job["busy"] = False
    assert client.post(f"/api/runs/{run_id}/advance").status_code == 200
    assert job["busy"] is False


def test_stage3_failure_names_file_and_underlying_error(client):
    cause = LlmError("Claude API error: 529 overloaded", status=529)
    failure = SynthesisError("Failed to synthesize a.py: boom", failed_file="a.py")
    failure.__cause__ = cause
    server.orchestrator.synthesizer.synthesize_all.side_effect = failure

    _, data = _start(client)
    run_id = data["runId"]
    client.post(f"/api/runs/{run_id}/advance")
    resp = client.post(f"/api/runs/{run_id}/advance")
    assert resp.status_code == 502
    assert resp.get_json()["error"] == {
        "stage": "Stage3", "message": "Claude API error: 529 overloaded",
        "type": "LlmError", "file": "a.py",
    }
