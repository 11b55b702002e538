"""
Analysis API endpoints
Guardian fan-out, stored analyses, usage and plan upgrade
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
import logging

from auth.dependencies import get_current_user_id, get_current_user_id_optional
from models import utcnow
from services.analysis_service import AnalysisService
from services.errors import (
    ConflictError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from services.factory import get_analysis_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["analysis"])


class GuardiansRequest(BaseModel):
    query: Optional[str] = None


class ClaimRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    analysis_id: Optional[str] = Field(default=None, alias="analysisId")


class UpgradeRequest(BaseModel):
    payment_method: Optional[str] = None


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("/guardians")
async def run_guardians(
    request: Request,
    body: GuardiansRequest,
    user_id: Optional[str] = Depends(get_current_user_id_optional),
    service: AnalysisService = Depends(get_analysis_service),
):
    """Ask every guardian persona and synthesize their answers"""
    try:
        record = await service.run_analysis(
            body.query or "",
            requester_id=user_id,
            user_ip=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except ValidationError as e:
        return _error(400, str(e))
    except QuotaExceededError as e:
        return _error(429, str(e), usage=e.usage.to_dict(), upgrade_required=True)
    except NotFoundError as e:
        return _error(404, str(e))
    except Exception as e:
        logger.error(f"Error in guardians API: {e}", exc_info=True)
        return _error(500, "Internal server error")

    payload = record.to_dict()
    payload["timestamp"] = utcnow().isoformat()
    return payload


@router.get("/analysis/{analysis_id}")
def get_analysis(
    analysis_id: str,
    user_id: Optional[str] = Depends(get_current_user_id_optional),
    service: AnalysisService = Depends(get_analysis_service),
):
    """Fetch a stored analysis the requester may read"""
    try:
        record = service.load_analysis(analysis_id, requester_id=user_id)
    except NotFoundError:
        return _error(404, "Analysis not found")
    except Exception as e:
        logger.error(f"Error fetching analysis {analysis_id}: {e}", exc_info=True)
        return _error(500, "Internal server error")
    return record.to_dict()


@router.post("/analysis/claim")
def claim_analysis(
    body: ClaimRequest,
    user_id: str = Depends(get_current_user_id),
    service: AnalysisService = Depends(get_analysis_service),
):
    """Attach an anonymous analysis to the signed-in user"""
    if not body.analysis_id:
        return _error(400, "Analysis ID is required")

    try:
        service.claim_analysis(body.analysis_id, user_id)
    except ValidationError as e:
        return _error(400, str(e))
    except NotFoundError as e:
        return _error(404, str(e))
    except ConflictError:
        return _error(409, "Analysis already claimed")
    except Exception as e:
        logger.error(f"Claim analysis error: {e}", exc_info=True)
        return _error(500, "Internal server error")
    return {"success": True}


@router.get("/usage")
def get_usage(
    user_id: str = Depends(get_current_user_id),
    service: AnalysisService = Depends(get_analysis_service),
):
    """Current plan, today's usage and recent history"""
    try:
        return service.get_usage(user_id)
    except NotFoundError:
        return _error(404, "User not found")
    except Exception as e:
        logger.error(f"Usage API error: {e}", exc_info=True)
        return _error(500, "Internal server error")


@router.post("/upgrade")
def upgrade(
    body: UpgradeRequest,
    user_id: str = Depends(get_current_user_id),
    service: AnalysisService = Depends(get_analysis_service),
):
    """Upgrade to PRO (payment stubbed)"""
    try:
        return service.upgrade_plan(user_id, body.payment_method)
    except ValidationError as e:
        return _error(400, str(e))
    except NotFoundError:
        return _error(404, "User not found")
    except Exception as e:
        logger.error(f"Upgrade error: {e}", exc_info=True)
        return _error(500, "Internal server error")
