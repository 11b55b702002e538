"""
Analysis pipeline
quota check -> create (processing) -> guardian fan-out -> synthesis -> persist (completed) -> usage increment
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from config import settings
from models import utcnow
from schemas import AnalysisRecord, UsageState
from auth.permissions import can_read
from services.analysis_store import AnalysisStore
from services.errors import (
    NotFoundError,
    PersistenceError,
    QuotaExceededError,
    ValidationError,
)
from services.guardian_service import GuardianService
from services.synthesis_service import SynthesisService
from services.usage_tracker import UsageTracker

logger = logging.getLogger(__name__)


class AnalysisService:
    """Runs, loads and claims analyses; exposes usage and plan operations"""

    def __init__(
        self,
        store: AnalysisStore,
        usage: UsageTracker,
        guardians: GuardianService,
        synthesis: SynthesisService,
    ):
        self.store = store
        self.usage = usage
        self.guardians = guardians
        self.synthesis = synthesis

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def _check_quota(self, requester_id: str) -> UsageState:
        """Any failure here denies the request"""
        try:
            usage = self.usage.check(requester_id)
        except NotFoundError:
            raise
        except Exception as e:
            logger.error(f"Error checking usage limits for {requester_id}: {e}", exc_info=True)
            raise PersistenceError("Usage check failed") from e

        if usage.is_exceeded:
            logger.info(f"Daily limit exceeded for {requester_id} ({usage.current_usage}/{usage.daily_limit})")
            raise QuotaExceededError(usage)
        return usage

    def _mark_failed(self, analysis_id: str) -> None:
        try:
            self.store.set_status(analysis_id, "failed")
        except Exception as e:
            logger.error(f"Could not mark analysis {analysis_id} as failed: {e}", exc_info=True)

    def _record_event(self, event_type: str, analysis_id: Optional[str], metadata: Dict[str, Any]) -> None:
        try:
            self.store.record_event(event_type, analysis_id, metadata)
        except Exception as e:
            logger.warning(f"Analytics event {event_type} dropped: {e}")

    def _count_usage(self, requester_id: str) -> None:
        """Best effort: the result is already computed and must reach the caller"""
        try:
            self.usage.increment(requester_id)
        except Exception as e:
            logger.error(f"Error incrementing usage for {requester_id}: {e}", exc_info=True)

    async def run_analysis(
        self,
        query: str,
        requester_id: Optional[str] = None,
        user_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AnalysisRecord:
        """
        Run the full pipeline for one query.

        Raises:
            ValidationError: empty query
            QuotaExceededError: authenticated requester over the daily limit
            NotFoundError: authenticated requester unknown to the usage store
            PersistenceError: the analysis could not be created or saved
        """
        query = query.strip() if isinstance(query, str) else ""
        if not query:
            raise ValidationError("Query is required")

        if requester_id:
            self._check_quota(requester_id)

        try:
            analysis_id = self.store.create(query, owner_id=requester_id, user_ip=user_ip, user_agent=user_agent)
        except Exception as e:
            logger.error(f"Error creating analysis: {e}", exc_info=True)
            raise PersistenceError("Could not create analysis") from e

        self._record_event("query_submitted", analysis_id, {
            "query_length": len(query),
            "guardians_count": len(self.guardians.personas),
        })
        logger.info(f"Analysis {analysis_id} started ({self.store.backend_name} store)")

        try:
            responses = await self.guardians.run_all(query)
            summary = await self.synthesis.summarize(responses, query)

            self.store.save_responses(analysis_id, responses)
            self.store.save_summary(analysis_id, summary)
            self.store.set_status(analysis_id, "completed")
        except asyncio.CancelledError:
            logger.warning(f"Analysis {analysis_id} cancelled, marking as failed")
            self._mark_failed(analysis_id)
            raise
        except Exception as e:
            logger.error(f"Analysis {analysis_id} failed: {e}", exc_info=True)
            self._mark_failed(analysis_id)
            raise PersistenceError("Could not save analysis") from e

        if requester_id:
            self._count_usage(requester_id)

        logger.info(f"Analysis {analysis_id} completed")
        try:
            return self.store.load(analysis_id)
        except Exception as e:
            logger.error(f"Error reloading analysis {analysis_id}: {e}", exc_info=True)
            raise PersistenceError("Could not load saved analysis") from e

    # -------------------------------------------------------------------------
    # Retrieval
    # -------------------------------------------------------------------------

    def load_analysis(self, analysis_id: str, requester_id: Optional[str] = None) -> AnalysisRecord:
        """
        Raises:
            NotFoundError: missing analysis, or the requester may not read it
        """
        analysis = self.store.load(analysis_id)
        if not can_read(analysis, requester_id):
            raise NotFoundError(f"Analysis {analysis_id} not found")

        self._record_event("analysis_viewed", analysis_id, {"timestamp": utcnow().isoformat()})
        return analysis

    def claim_analysis(self, analysis_id: str, requester_id: str) -> None:
        """
        Raises:
            ValidationError: no authenticated requester
            NotFoundError: missing analysis, or requester unknown to the usage store
            ConflictError: analysis already owned
        """
        if not requester_id:
            raise ValidationError("Authentication required to claim an analysis")
        # The owner column references users; resolve the requester before writing it
        self.usage.plan_state(requester_id)
        self.store.claim(analysis_id, requester_id)
        logger.info(f"Analysis {analysis_id} claimed by {requester_id}")

    # -------------------------------------------------------------------------
    # Usage / plan
    # -------------------------------------------------------------------------

    def _user_payload(self, requester_id: str) -> Dict[str, Any]:
        state = self.usage.plan_state(requester_id)
        return {
            "id": state.user_id,
            "plan": state.plan,
            "plan_expires_at": state.plan_expires_at.isoformat() if state.plan_expires_at else None,
        }

    def get_usage(self, requester_id: str, history_days: int = 30) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: unknown user
        """
        usage = self.usage.check(requester_id)
        history = self.usage.history(requester_id, history_days)
        return {
            "user": self._user_payload(requester_id),
            "usage": usage.to_dict(),
            "history": [
                {"usage_date": entry.usage_date.isoformat(), "query_count": entry.query_count}
                for entry in history
            ],
        }

    def upgrade_plan(self, requester_id: str, payment_token: Optional[str]) -> Dict[str, Any]:
        """
        Apply a PRO upgrade once payment is asserted valid (stubbed by a fixed demo token).

        Raises:
            ValidationError: payment token missing or not accepted
            NotFoundError: unknown user
        """
        if not payment_token or payment_token != settings.DEMO_PAYMENT_TOKEN:
            raise ValidationError("Invalid payment method")

        usage = self.usage.upgrade(requester_id)
        return {
            "success": True,
            "message": "Successfully upgraded to PRO plan",
            "user": self._user_payload(requester_id),
            "usage": usage.to_dict(),
        }
