import logging
from typing import Optional

import httpx
from fastapi import Depends, Request

from csr_request_service.app.service.auth import CaptchaRegistry
from csr_request_service.app.service.interfaces.provider_gateway import AbstractProviderGateway
from csr_request_service.app.service.notifications import NotificationPublisher
from csr_request_service.app.service.operations import OperationGuard
from csr_request_service.infrastructure.kafka.producer import get_notification_producer
from csr_request_service.infrastructure.provider_gateway_client import build_provider_gateway

logger = logging.getLogger(__name__)

_operation_guard_instance: Optional[OperationGuard] = None
_notification_publisher_instance: Optional[NotificationPublisher] = None
_captcha_registry_instance: Optional[CaptchaRegistry] = None


async def get_http_client(request: Request) -> Optional[httpx.AsyncClient]:
    """
    The shared httpx.AsyncClient created at startup, or None when the app
    was not started (e.g. a TestClient used without its context manager).
    """
    return getattr(request.app.state, "http_client", None)


def get_operation_guard() -> OperationGuard:
    global _operation_guard_instance
    if _operation_guard_instance is None:
        _operation_guard_instance = OperationGuard()
    return _operation_guard_instance


def get_notification_publisher() -> NotificationPublisher:
    global _notification_publisher_instance
    if _notification_publisher_instance is None:
        _notification_publisher_instance = NotificationPublisher(producer=get_notification_producer())
        logger.info("NotificationPublisher initialized.")
    return _notification_publisher_instance


def get_captcha_registry() -> CaptchaRegistry:
    global _captcha_registry_instance
    if _captcha_registry_instance is None:
        _captcha_registry_instance = CaptchaRegistry()
    return _captcha_registry_instance


async def get_provider_gateway(http_client: Optional[httpx.AsyncClient] = Depends(get_http_client)) -> AbstractProviderGateway:
    return build_provider_gateway(http_client)
