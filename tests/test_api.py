import pytest
from fastapi.testclient import TestClient

from hostsurvey.api.routes import ArtifactResponse, SurveyRunResponse
from hostsurvey.collectors.survey import CollectedFile, SurveyResult
from hostsurvey.models.schemas import CollectedArtifact
from hostsurvey.services import survey_runner

from main import app


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as client:
        yield client


@pytest.fixture
def fake_runner(monkeypatch):
    calls = []

    async def runner(ssh_config, config):
        calls.append((ssh_config, config))
        return SurveyResult(
            tag=ssh_config.address,
            collected=[CollectedFile(remote_path="/etc/passwd", local_path="/tmp/x/etc/passwd",
                                     size=12, sha256="ab" * 32)],
            not_found=["/etc/sudoers"],
            posture={"/proc/sys/kernel/tainted": "Kernel not tainted"},
        )

    monkeypatch.setattr(survey_runner, "run_survey", runner)
    return calls


@pytest.fixture
def failing_runner(monkeypatch):
    async def runner(ssh_config, config):
        raise ConnectionError("Connection failed: Connection refused")

    monkeypatch.setattr(survey_runner, "run_survey", runner)


def test_create_survey_runs_in_background(client, fake_runner, tmp_path):
    response = client.post("/api/surveys", json={
        "host": "10.0.0.5", "username": "audit", "preset": "fast", "output_dir": str(tmp_path),
    })

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "pending"
    assert body["tag"] == "10.0.0.5:22"

    (ssh_config, config), = fake_runner
    assert ssh_config.username == "audit"
    assert config.output_dir == str(tmp_path)
    assert config.preset == survey_runner.SurveyPreset.FAST

    detail = client.get(f"/api/surveys/{body['id']}").json()
    assert detail["status"] == "completed"
    assert detail["collected_count"] == 1
    assert detail["not_found_count"] == 1
    assert detail["posture"] == {"/proc/sys/kernel/tainted": "Kernel not tainted"}
    assert detail["artifacts"][0]["remote_path"] == "/etc/passwd"


def test_failed_survey_records_error(client, failing_runner):
    run_id = client.post("/api/surveys", json={"host": "10.0.0.9"}).json()["id"]

    detail = client.get(f"/api/surveys/{run_id}").json()
    assert detail["status"] == "failed"
    assert "Connection refused" in detail["errors"][0]
    assert detail["artifacts"] == []


def test_unknown_preset_rejected(client):
    response = client.post("/api/surveys", json={"host": "10.0.0.5", "preset": "turbo"})
    assert response.status_code == 422


def test_unknown_auth_method_rejected(client):
    response = client.post("/api/surveys", json={"host": "10.0.0.5", "auth_method": "kerberos"})
    assert response.status_code == 422


def test_unknown_run_is_404(client):
    assert client.get("/api/surveys/999999").status_code == 404


def test_list_filter_and_delete(client, fake_runner, tmp_path):
    run_id = client.post("/api/surveys", json={"host": "10.0.0.77", "output_dir": str(tmp_path)}).json()["id"]

    runs = client.get("/api/surveys", params={"host": "10.0.0.77"}).json()
    assert [run["id"] for run in runs] == [run_id]
    assert runs[0]["artifacts"] is None

    assert client.delete(f"/api/surveys/{run_id}").json() == {"deleted": run_id}
    assert client.get(f"/api/surveys/{run_id}").status_code == 404
    assert client.get("/api/surveys", params={"host": "10.0.0.77"}).json() == []


def test_response_models_read_orm_objects():
    artifact = CollectedArtifact(remote_path="/etc/passwd", local_path="/mirror/etc/passwd",
                                 size=12, sha256="ab" * 32)

    response = ArtifactResponse.model_validate(artifact)

    assert response.remote_path == "/etc/passwd" and response.size == 12
    assert ArtifactResponse.model_config["from_attributes"] is True
    assert SurveyRunResponse.model_config["from_attributes"] is True
