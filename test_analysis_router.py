"""
HTTP tests for the analysis routes
"""
import pytest
from fastapi.testclient import TestClient

from auth.jwt_handler import create_access_token
from conftest import FakeLLM
from main import app
from services.analysis_service import AnalysisService
from services.analysis_store import MemoryAnalysisStore
from services.factory import build_analysis_service, get_analysis_service
from services.guardian_service import GuardianService
from services.synthesis_service import SynthesisService
from services.usage_tracker import MemoryUsageBackend, UsageTracker


@pytest.fixture
def service():
    llm = FakeLLM()
    usage_backend = MemoryUsageBackend()
    usage_backend.register_user("u1")
    usage_backend.register_user("u2")
    return AnalysisService(
        store=MemoryAnalysisStore(),
        usage=UsageTracker(usage_backend, free_daily_limit=2),
        guardians=GuardianService(llm=llm),
        synthesis=SynthesisService(llm=llm),
    )


@pytest.fixture
def client(service):
    app.dependency_overrides[get_analysis_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth(user_id):
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def test_health_reports_storage_backend(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["storage"] in ("memory", "database")


def test_run_anonymous_analysis(client):
    response = client.post("/api/guardians", json={"query": "Should we launch in Q3?"})

    assert response.status_code == 200
    data = response.json()
    assert data["query"] == "Should we launch in Q3?"
    assert len(data["responses"]) == 9
    assert data["responses"][0]["guardian"]["id"] == "optimist"
    assert 0 <= data["summary"]["guardianScores"]["overallScore"] <= 10
    assert data["user_id"] is None

    fetched = client.get(f"/api/analysis/{data['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["status"] == "completed"


def test_empty_query_is_bad_request(client):
    response = client.post("/api/guardians", json={"query": "  "})
    assert response.status_code == 400
    assert response.json() == {"error": "Query is required"}


def test_quota_exceeded_is_429(client):
    for _ in range(2):
        assert client.post("/api/guardians", json={"query": "Q"}, headers=_auth("u1")).status_code == 200

    response = client.post("/api/guardians", json={"query": "Q"}, headers=_auth("u1"))

    assert response.status_code == 429
    body = response.json()
    assert body["error"] == "Daily limit exceeded"
    assert body["upgrade_required"] is True
    assert body["usage"]["remaining"] == 0


def test_invalid_token_is_treated_as_anonymous(client):
    response = client.post(
        "/api/guardians",
        json={"query": "Q"},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 200
    assert response.json()["user_id"] is None


def test_other_users_analysis_is_not_found(client):
    created = client.post("/api/guardians", json={"query": "Mine"}, headers=_auth("u1")).json()

    assert client.get(f"/api/analysis/{created['id']}", headers=_auth("u1")).status_code == 200
    assert client.get(f"/api/analysis/{created['id']}", headers=_auth("u2")).status_code == 404
    assert client.get(f"/api/analysis/{created['id']}").status_code == 404
    assert client.get("/api/analysis/missing").status_code == 404


def test_claim_requires_authentication(client):
    response = client.post("/api/analysis/claim", json={"analysisId": "anything"})
    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


def test_claim_then_conflict(client):
    created = client.post("/api/guardians", json={"query": "Claim me"}).json()

    first = client.post("/api/analysis/claim", json={"analysisId": created["id"]}, headers=_auth("u1"))
    second = client.post("/api/analysis/claim", json={"analysisId": created["id"]}, headers=_auth("u2"))
    missing = client.post("/api/analysis/claim", json={"analysisId": "missing"}, headers=_auth("u1"))
    no_id = client.post("/api/analysis/claim", json={}, headers=_auth("u1"))

    assert first.status_code == 200
    assert first.json() == {"success": True}
    assert second.status_code == 409
    assert missing.status_code == 404
    assert no_id.status_code == 400


def test_usage_and_upgrade(client):
    client.post("/api/guardians", json={"query": "Q"}, headers=_auth("u1"))

    usage = client.get("/api/usage", headers=_auth("u1"))
    assert usage.status_code == 200
    assert usage.json()["usage"]["current_usage"] == 1
    assert usage.json()["user"]["plan"] == "free"

    declined = client.post("/api/upgrade", json={"payment_method": "card"}, headers=_auth("u1"))
    assert declined.status_code == 400
    assert declined.json() == {"error": "Invalid payment method"}

    upgraded = client.post("/api/upgrade", json={"payment_method": "demo_success"}, headers=_auth("u1"))
    assert upgraded.status_code == 200
    assert upgraded.json()["user"]["plan"] == "pro"
    assert upgraded.json()["usage"]["is_exceeded"] is False


def test_usage_requires_authentication(client):
    assert client.get("/api/usage").status_code == 401
    assert client.post("/api/upgrade", json={"payment_method": "demo_success"}).status_code == 401


def test_unknown_user_is_not_found_on_database_backend(session_factory, monkeypatch):
    service = build_analysis_service(session_factory)
    llm = FakeLLM()
    monkeypatch.setattr(service.guardians, "llm", llm)
    monkeypatch.setattr(service.synthesis, "llm", llm)
    app.dependency_overrides[get_analysis_service] = lambda: service
    try:
        client = TestClient(app)
        created = client.post("/api/guardians", json={"query": "Anonymous"}).json()

        assert client.get("/api/usage", headers=_auth("ghost")).status_code == 404
        assert client.post("/api/guardians", json={"query": "Q"}, headers=_auth("ghost")).status_code == 404
        claim = client.post("/api/analysis/claim", json={"analysisId": created["id"]}, headers=_auth("ghost"))
        assert claim.status_code == 404
        assert claim.json() == {"error": "User ghost not found"}
    finally:
        app.dependency_overrides.clear()


def test_signed_in_user_works_with_default_in_memory_wiring(monkeypatch):
    service = build_analysis_service(None)
    llm = FakeLLM()
    monkeypatch.setattr(service.guardians, "llm", llm)
    monkeypatch.setattr(service.synthesis, "llm", llm)
    app.dependency_overrides[get_analysis_service] = lambda: service
    try:
        client = TestClient(app)
        headers = _auth("alice")

        run = client.post("/api/guardians", json={"query": "Should we launch in Q3?"}, headers=headers)
        assert run.status_code == 200
        assert run.json()["user_id"] == "alice"

        usage = client.get("/api/usage", headers=headers)
        assert usage.status_code == 200
        assert usage.json()["usage"]["current_usage"] == 1
        assert usage.json()["user"]["plan"] == "free"

        upgraded = client.post("/api/upgrade", json={"payment_method": "demo_success"}, headers=headers)
        assert upgraded.status_code == 200
        assert upgraded.json()["user"]["plan"] == "pro"
    finally:
        app.dependency_overrides.clear()
