# API Router for the operator notification feed
from fastapi import APIRouter, Depends, Query
from typing import List

from csr_request_service.app.dependencies.services import get_notification_publisher
from csr_request_service.app.service.notifications import Notification, NotificationPublisher

router = APIRouter()

@router.get("/notifications", response_model=List[Notification], tags=["Notifications"])
async def list_notifications(
    limit: int = Query(default=20, ge=1, le=100),
    notifier: NotificationPublisher = Depends(get_notification_publisher)
):
    return notifier.recent(limit=limit)
