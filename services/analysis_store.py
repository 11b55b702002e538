"""
Analysis storage
Two backends with one contract: SQL (durable) and in-memory (process lifetime only).
The backend is picked once when services are built; the two never sync.
"""
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional
import copy
import logging
import threading
import uuid

from sqlalchemy.orm import Session

from models import Analysis, AnalysisStatus, AnalyticsEvent, InsightSummaryRecord, PersonaResponse, utcnow
from schemas import AgentResponse, AnalysisRecord, InsightSummary, Persona
from services.errors import ConflictError, NotFoundError
from services.personas import get_persona

logger = logging.getLogger(__name__)


ANALYSIS_STATUSES = tuple(s.value for s in AnalysisStatus)


class AnalysisStore(ABC):
    """Storage contract shared by both backends"""

    backend_name = "abstract"

    @abstractmethod
    def create(
        self,
        query: str,
        owner_id: Optional[str] = None,
        user_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> str:
        """Allocate an id and insert the analysis in 'processing' status"""

    @abstractmethod
    def set_status(self, analysis_id: str, status: str) -> None:
        ...

    @abstractmethod
    def save_responses(self, analysis_id: str, responses: List[AgentResponse]) -> None:
        """Persist the persona answers once per run, in the given order"""

    @abstractmethod
    def save_summary(self, analysis_id: str, summary: InsightSummary) -> None:
        """Persist the insight summary once per run"""

    @abstractmethod
    def load(self, analysis_id: str) -> AnalysisRecord:
        """
        Raises:
            NotFoundError: if no analysis has this id
        """

    @abstractmethod
    def claim(self, analysis_id: str, user_id: str) -> None:
        """
        Give an anonymous analysis an owner. Atomic check-and-set.

        Raises:
            NotFoundError: if no analysis has this id
            ConflictError: if the analysis already has an owner
        """

    @abstractmethod
    def record_event(self, event_type: str, analysis_id: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Best-effort analytics event"""

    @staticmethod
    def _check_status(status: str) -> None:
        if status not in ANALYSIS_STATUSES:
            raise ValueError(f"Unknown analysis status: {status}")


# =============================================================================
# SQL BACKEND
# =============================================================================

class SqlAnalysisStore(AnalysisStore):
    """Durable backend on SQLAlchemy (PostgreSQL or SQLite)"""

    backend_name = "database"

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def create(self, query, owner_id=None, user_ip=None, user_agent=None) -> str:
        analysis_id = str(uuid.uuid4())
        now = utcnow()
        db = self.session_factory()
        try:
            db.add(Analysis(
                id=analysis_id,
                user_id=owner_id,
                query=query,
                status="processing",
                user_ip=user_ip,
                user_agent=user_agent,
                created_at=now,
                updated_at=now,
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        return analysis_id

    def set_status(self, analysis_id: str, status: str) -> None:
        self._check_status(status)
        db = self.session_factory()
        try:
            updated = db.query(Analysis).filter(Analysis.id == analysis_id).update(
                {Analysis.status: status, Analysis.updated_at: utcnow()},
                synchronize_session=False,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        if not updated:
            raise NotFoundError(f"Analysis {analysis_id} not found")

    def save_responses(self, analysis_id: str, responses: List[AgentResponse]) -> None:
        db = self.session_factory()
        try:
            for position, r in enumerate(responses):
                db.add(PersonaResponse(
                    analysis_id=analysis_id,
                    position=position,
                    persona_id=r.persona.id,
                    persona_name=r.persona.name,
                    persona_avatar=r.persona.avatar,
                    persona_personality=r.persona.personality,
                    persona_perspective=r.persona.perspective,
                    response=r.response,
                    created_at=r.timestamp,
                ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def save_summary(self, analysis_id: str, summary: InsightSummary) -> None:
        data = summary.to_dict()
        scores = data.get("guardianScores")
        db = self.session_factory()
        try:
            db.add(InsightSummaryRecord(
                analysis_id=analysis_id,
                main_themes=data["mainThemes"],
                consensus=data["consensus"],
                divergent_views=data["divergentViews"],
                action_items=data["actionItems"],
                overall_sentiment=data["overallSentiment"],
                sentiment_details=data["sentimentDetail"],
                guardian_scores=scores,
                overall_score=scores["overallScore"] if scores else None,
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _to_agent_response(row: PersonaResponse) -> AgentResponse:
        # Registry persona when still known, otherwise rebuild from the stored display fields
        persona = get_persona(row.persona_id) or Persona(
            id=row.persona_id,
            name=row.persona_name,
            avatar=row.persona_avatar or "",
            personality=row.persona_personality or "",
            perspective=row.persona_perspective or "",
            system_prompt="",
        )
        return AgentResponse(persona=persona, response=row.response, timestamp=row.created_at)

    @staticmethod
    def _to_summary(row: InsightSummaryRecord) -> InsightSummary:
        return InsightSummary.model_validate({
            "mainThemes": row.main_themes or [],
            "consensus": row.consensus or "",
            "divergentViews": row.divergent_views or [],
            "actionItems": row.action_items or [],
            "overallSentiment": row.overall_sentiment,
            "sentimentDetail": row.sentiment_details,
            "guardianScores": row.guardian_scores,
        })

    def load(self, analysis_id: str) -> AnalysisRecord:
        db = self.session_factory()
        try:
            analysis = db.query(Analysis).filter(Analysis.id == analysis_id).first()
            if not analysis:
                raise NotFoundError(f"Analysis {analysis_id} not found")

            rows = db.query(PersonaResponse).filter(
                PersonaResponse.analysis_id == analysis_id
            ).order_by(PersonaResponse.position).all()
            summary_row = db.query(InsightSummaryRecord).filter(
                InsightSummaryRecord.analysis_id == analysis_id
            ).first()

            return AnalysisRecord(
                id=analysis.id,
                query=analysis.query,
                status=analysis.status,
                created_at=analysis.created_at,
                updated_at=analysis.updated_at,
                owner_id=analysis.user_id,
                responses=[self._to_agent_response(r) for r in rows],
                summary=self._to_summary(summary_row) if summary_row else None,
            )
        finally:
            db.close()

    def claim(self, analysis_id: str, user_id: str) -> None:
        db = self.session_factory()
        try:
            # Conditional UPDATE: only one concurrent claimer can match "user_id IS NULL"
            updated = db.query(Analysis).filter(
                Analysis.id == analysis_id,
                Analysis.user_id.is_(None),
            ).update(
                {Analysis.user_id: user_id, Analysis.updated_at: utcnow()},
                synchronize_session=False,
            )
            db.commit()
            if updated:
                return
            exists = db.query(Analysis.id).filter(Analysis.id == analysis_id).first()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if not exists:
            raise NotFoundError(f"Analysis {analysis_id} not found")
        raise ConflictError(f"Analysis {analysis_id} is already claimed")

    def record_event(self, event_type, analysis_id=None, metadata=None) -> None:
        db = self.session_factory()
        try:
            db.add(AnalyticsEvent(event_type=event_type, analysis_id=analysis_id, meta_json=metadata))
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to record analytics event {event_type}: {e}", exc_info=True)
        finally:
            db.close()


# =============================================================================
# IN-MEMORY BACKEND
# =============================================================================

class MemoryAnalysisStore(AnalysisStore):
    """In-process backend; everything is lost on restart"""

    backend_name = "memory"

    def __init__(self):
        self._analyses: Dict[str, AnalysisRecord] = {}
        self._events: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def _get(self, analysis_id: str) -> AnalysisRecord:
        record = self._analyses.get(analysis_id)
        if record is None:
            raise NotFoundError(f"Analysis {analysis_id} not found")
        return record

    def create(self, query, owner_id=None, user_ip=None, user_agent=None) -> str:
        analysis_id = str(uuid.uuid4())
        now = utcnow()
        with self._lock:
            self._analyses[analysis_id] = AnalysisRecord(
                id=analysis_id,
                query=query,
                status="processing",
                created_at=now,
                updated_at=now,
                owner_id=owner_id,
            )
        return analysis_id

    def set_status(self, analysis_id: str, status: str) -> None:
        self._check_status(status)
        with self._lock:
            record = self._get(analysis_id)
            record.status = status
            record.updated_at = utcnow()

    def save_responses(self, analysis_id: str, responses: List[AgentResponse]) -> None:
        with self._lock:
            self._get(analysis_id).responses = list(responses)

    def save_summary(self, analysis_id: str, summary: InsightSummary) -> None:
        with self._lock:
            self._get(analysis_id).summary = summary

    def load(self, analysis_id: str) -> AnalysisRecord:
        with self._lock:
            record = self._get(analysis_id)
            # Snapshot so callers cannot mutate stored state
            return replace(record, responses=list(record.responses))

    def claim(self, analysis_id: str, user_id: str) -> None:
        with self._lock:
            record = self._get(analysis_id)
            if record.owner_id is not None:
                raise ConflictError(f"Analysis {analysis_id} is already claimed")
            record.owner_id = user_id
            record.updated_at = utcnow()

    def record_event(self, event_type, analysis_id=None, metadata=None) -> None:
        with self._lock:
            self._events.append({
                "event_type": event_type,
                "analysis_id": analysis_id,
                "metadata": copy.deepcopy(metadata),
                "created_at": utcnow(),
            })
        logger.debug(f"[ANALYTICS] {event_type} analysis={analysis_id}")

    @property
    def events(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._events)
