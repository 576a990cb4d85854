# app/api/v1/admin.py
from fastapi import APIRouter, Depends, Query
from typing import Optional

from app.core.dependencies import get_claim_service, get_app_settings
from app.core.config import Settings
from app.core.logging import get_logger
from app.models.claim import ClaimListResponse
from app.services.claim_service import ClaimService

logger = get_logger(__name__)
router = APIRouter()


@router.get("/claims", response_model=ClaimListResponse)
async def list_all_claims(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    severity: Optional[str] = None,
    service: ClaimService = Depends(get_claim_service)
):
    """All claims across users, filterable by status and severity."""
    return service.list_all_claims(page=page, limit=limit, status=status, severity=severity)


@router.get("/statistics")
async def get_statistics(service: ClaimService = Depends(get_claim_service)):
    """Counts and amounts by status, severity and month."""
    return service.get_statistics()


@router.get("/health")
async def health_check(config: Settings = Depends(get_app_settings)):
    """Detailed health check."""
    return {
        "status": "healthy",
        "version": config.APP_VERSION,
        "object_store": config.OBJECT_STORE_BACKEND,
        "image_analyzer": config.IMAGE_ANALYZER,
        "notifier": config.NOTIFIER,
        "debug_mode": config.DEBUG
    }
