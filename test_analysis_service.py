"""
End-to-end tests for the analysis pipeline
"""
import asyncio
from unittest.mock import MagicMock

import pytest

from conftest import FakeLLM
from schemas import DEFAULT_INSIGHT_SUMMARY
from services.analysis_service import AnalysisService
from services.analysis_store import MemoryAnalysisStore, SqlAnalysisStore
from services.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    QuotaExceededError,
    ValidationError,
)
from services.guardian_service import GuardianService
from services.personas import PERSONAS
from services.synthesis_service import SynthesisService
from services.usage_tracker import MemoryUsageBackend, SqlUsageBackend, UsageTracker


def _build(store, usage_backend, llm=None):
    llm = llm or FakeLLM()
    return AnalysisService(
        store=store,
        usage=UsageTracker(usage_backend, free_daily_limit=10),
        guardians=GuardianService(llm=llm),
        synthesis=SynthesisService(llm=llm),
    )


@pytest.fixture(params=["memory", "database"])
def service(request, session_factory):
    if request.param == "memory":
        store, usage_backend = MemoryAnalysisStore(), MemoryUsageBackend()
    else:
        store, usage_backend = SqlAnalysisStore(session_factory), SqlUsageBackend(session_factory)
    usage_backend.register_user("u1")
    usage_backend.register_user("u2")
    return _build(store, usage_backend)


@pytest.mark.asyncio
async def test_full_run_returns_nine_answers_and_a_summary(service):
    record = await service.run_analysis("Should we launch in Q3?", requester_id="u1")

    assert record.status == "completed"
    assert len(record.responses) == 9
    assert [r.persona.id for r in record.responses] == [p.id for p in PERSONAS]
    assert 0 <= record.summary.guardian_scores.overall_score <= 10

    stored = service.load_analysis(record.id, requester_id="u1")
    assert stored.status == "completed"
    assert stored.summary == record.summary
    assert service.get_usage("u1")["usage"]["current_usage"] == 1


@pytest.mark.asyncio
async def test_query_is_trimmed_and_required(service):
    with pytest.raises(ValidationError):
        await service.run_analysis("   ")

    record = await service.run_analysis("  Expand to Berlin?  ")
    assert record.query == "Expand to Berlin?"


@pytest.mark.asyncio
async def test_anonymous_run_skips_quota(service):
    record = await service.run_analysis("Anonymous question")

    assert record.owner_id is None
    assert service.load_analysis(record.id).status == "completed"


@pytest.mark.asyncio
async def test_quota_exceeded_blocks_before_any_call():
    llm = FakeLLM()
    usage_backend = MemoryUsageBackend()
    usage_backend.register_user("u1")
    store = MemoryAnalysisStore()
    service = _build(store, usage_backend, llm)
    for _ in range(10):
        service.usage.increment("u1")

    with pytest.raises(QuotaExceededError) as exc_info:
        await service.run_analysis("One more?", requester_id="u1")

    assert exc_info.value.usage.is_exceeded is True
    assert exc_info.value.usage.remaining == 0
    assert llm.calls == []
    assert store.events == []


@pytest.mark.asyncio
async def test_unknown_requester_is_not_found_in_database(session_factory):
    service = _build(SqlAnalysisStore(session_factory), SqlUsageBackend(session_factory))

    with pytest.raises(NotFoundError):
        await service.run_analysis("Who am I?", requester_id="ghost")


@pytest.mark.asyncio
async def test_unknown_requester_cannot_claim_in_database(session_factory):
    store = SqlAnalysisStore(session_factory)
    service = _build(store, SqlUsageBackend(session_factory))
    record = await service.run_analysis("Anonymous question")

    with pytest.raises(NotFoundError):
        service.claim_analysis(record.id, "ghost")
    assert store.load(record.id).owner_id is None


@pytest.mark.asyncio
async def test_unregistered_requester_runs_in_memory():
    service = _build(MemoryAnalysisStore(), MemoryUsageBackend())

    record = await service.run_analysis("Signed in, never registered", requester_id="alice")

    assert record.owner_id == "alice"
    assert service.get_usage("alice")["usage"]["current_usage"] == 1
    service.claim_analysis((await service.run_analysis("Anonymous")).id, "alice")


@pytest.mark.asyncio
async def test_returned_record_matches_stored_record(service):
    record = await service.run_analysis("Timestamps?", requester_id="u1")

    stored = service.load_analysis(record.id, requester_id="u1")

    assert record.created_at == stored.created_at
    assert record.updated_at == stored.updated_at
    assert record.status == stored.status == "completed"


@pytest.mark.asyncio
async def test_synthesis_failure_still_completes_with_default_summary():
    usage_backend = MemoryUsageBackend()
    service = _build(MemoryAnalysisStore(), usage_backend, FakeLLM(summary_text="garbage"))

    record = await service.run_analysis("Launch?")

    assert record.status == "completed"
    assert record.summary == DEFAULT_INSIGHT_SUMMARY


@pytest.mark.asyncio
async def test_persistence_failure_marks_analysis_failed():
    store = MemoryAnalysisStore()
    store.save_summary = MagicMock(side_effect=RuntimeError("disk full"))
    usage_backend = MemoryUsageBackend()
    usage_backend.register_user("u1")
    service = _build(store, usage_backend)

    with pytest.raises(PersistenceError):
        await service.run_analysis("Launch?", requester_id="u1")

    (analysis_id,) = list(store._analyses)
    assert store.load(analysis_id).status == "failed"
    assert service.usage.check("u1").current_usage == 0


@pytest.mark.asyncio
async def test_create_failure_is_persistence_error():
    store = MemoryAnalysisStore()
    store.create = MagicMock(side_effect=RuntimeError("db down"))
    service = _build(store, MemoryUsageBackend())

    with pytest.raises(PersistenceError):
        await service.run_analysis("Launch?")


@pytest.mark.asyncio
async def test_cancellation_marks_analysis_failed():
    store = MemoryAnalysisStore()
    service = _build(store, MemoryUsageBackend(), FakeLLM(delays={p.id: 5 for p in PERSONAS}))

    task = asyncio.ensure_future(service.run_analysis("Slow question"))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    (analysis_id,) = list(store._analyses)
    assert store.load(analysis_id).status == "failed"


@pytest.mark.asyncio
async def test_usage_increment_failure_does_not_fail_the_run():
    usage_backend = MemoryUsageBackend()
    usage_backend.register_user("u1")
    usage_backend.increment = MagicMock(side_effect=RuntimeError("counter down"))
    service = _build(MemoryAnalysisStore(), usage_backend)

    record = await service.run_analysis("Launch?", requester_id="u1")

    assert record.status == "completed"


@pytest.mark.asyncio
async def test_quota_check_failure_denies_request():
    usage_backend = MemoryUsageBackend()
    usage_backend.register_user("u1")
    usage_backend.get_count = MagicMock(side_effect=RuntimeError("db down"))
    service = _build(MemoryAnalysisStore(), usage_backend)

    with pytest.raises(PersistenceError):
        await service.run_analysis("Launch?", requester_id="u1")


@pytest.mark.asyncio
async def test_events_recorded_for_submit_and_view():
    store = MemoryAnalysisStore()
    service = _build(store, MemoryUsageBackend())

    record = await service.run_analysis("Launch?")
    service.load_analysis(record.id)

    assert [e["event_type"] for e in store.events] == ["query_submitted", "analysis_viewed"]
    assert store.events[0]["metadata"] == {"query_length": 7, "guardians_count": 9}


@pytest.mark.asyncio
async def test_read_access_is_enforced(service):
    owned = await service.run_analysis("Owned", requester_id="u1")
    anonymous = await service.run_analysis("Anonymous")

    with pytest.raises(NotFoundError):
        service.load_analysis(owned.id, requester_id="u2")
    with pytest.raises(NotFoundError):
        service.load_analysis(owned.id)
    with pytest.raises(NotFoundError):
        service.load_analysis(anonymous.id, requester_id="u1")


@pytest.mark.asyncio
async def test_claim_flow(service):
    record = await service.run_analysis("Claim me")

    service.claim_analysis(record.id, "u1")

    assert service.load_analysis(record.id, requester_id="u1").owner_id == "u1"
    with pytest.raises(ConflictError):
        service.claim_analysis(record.id, "u2")
    with pytest.raises(NotFoundError):
        service.claim_analysis("missing", "u1")
    with pytest.raises(ValidationError):
        service.claim_analysis(record.id, None)


def test_upgrade_requires_demo_token(service):
    with pytest.raises(ValidationError):
        service.upgrade_plan("u1", "card_declined")
    with pytest.raises(ValidationError):
        service.upgrade_plan("u1", None)

    result = service.upgrade_plan("u1", "demo_success")

    assert result["success"] is True
    assert result["user"]["plan"] == "pro"
    assert result["user"]["plan_expires_at"] is not None
    assert result["usage"]["daily_limit"] == -1


def test_get_usage_shape(service):
    service.usage.increment("u1")

    result = service.get_usage("u1")

    assert result["user"] == {"id": "u1", "plan": "free", "plan_expires_at": None}
    assert result["usage"] == {
        "daily_limit": 10,
        "current_usage": 1,
        "remaining": 9,
        "is_exceeded": False,
        "plan": "free",
    }
    assert result["history"][0]["query_count"] == 1
