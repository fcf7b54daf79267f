# API Router for Health Checks
from fastapi import APIRouter, Depends
import logging

from csr_request_service.infrastructure.store.connection import get_request_store
from csr_request_service.infrastructure.store.request_store import RequestStore
from csr_request_service.app.config import settings

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/health", tags=["Monitoring"])
async def health_check(request_store: RequestStore = Depends(get_request_store)):
    return {
        "status": "ok",
        "components": {"request_store": {"status": "available", "requests": len(request_store)}},
        "service_name": settings.SERVICE_NAME_API,
    }
