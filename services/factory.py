"""
Service wiring
Backends are chosen once per process: database when it is available, in-memory otherwise.
"""
from typing import Optional
import logging

import database
from services.analysis_service import AnalysisService
from services.analysis_store import MemoryAnalysisStore, SqlAnalysisStore
from services.guardian_service import guardian_service
from services.synthesis_service import synthesis_service
from services.usage_tracker import MemoryUsageBackend, SqlUsageBackend, UsageTracker

logger = logging.getLogger(__name__)

_analysis_service: Optional[AnalysisService] = None


def build_analysis_service(session_factory=None) -> AnalysisService:
    """Build the pipeline on the SQL backends when a session factory is given, in-memory otherwise"""
    if session_factory is not None:
        store = SqlAnalysisStore(session_factory)
        usage_backend = SqlUsageBackend(session_factory)
    else:
        store = MemoryAnalysisStore()
        usage_backend = MemoryUsageBackend()

    logger.info(f"Analysis storage backend: {store.backend_name}")
    return AnalysisService(
        store=store,
        usage=UsageTracker(usage_backend),
        guardians=guardian_service,
        synthesis=synthesis_service,
    )


def get_analysis_service() -> AnalysisService:
    """Process-wide service (FastAPI dependency)"""
    global _analysis_service
    if _analysis_service is None:
        session_factory = database.SessionLocal if database.DATABASE_AVAILABLE else None
        _analysis_service = build_analysis_service(session_factory)
    return _analysis_service
