# API Router for the provider dashboard
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from csr_request_service.app.dependencies.services import (
    get_notification_publisher, get_operation_guard, get_provider_gateway
)
from csr_request_service.app.service.commands.models import DispatchToProviderCommand, DispatchToProviderResult
from csr_request_service.app.service.commands.handlers import handle_dispatch_to_provider_command
from csr_request_service.app.service.dashboard import count_pending, group_by_provider
from csr_request_service.app.service.exceptions import (
    ConcurrencyConflictError, KafkaProducerError, OperationInProgressError, ProviderUnreachableError
)
from csr_request_service.app.service.interfaces.provider_gateway import AbstractProviderGateway
from csr_request_service.app.service.models import CSRRequest, ServiceProvider
from csr_request_service.app.service.notifications import NotificationPublisher
from csr_request_service.app.service.operations import OperationGuard
from csr_request_service.infrastructure.store.connection import get_event_store, get_request_store
from csr_request_service.infrastructure.store.event_store import InMemoryEventStore
from csr_request_service.infrastructure.store.request_store import RequestStore

logger = logging.getLogger(__name__)
router = APIRouter()


class ProviderGroupView(BaseModel):
    provider: ServiceProvider
    pending_count: int
    requests: List[CSRRequest] = Field(default_factory=list)
    is_dispatching: bool = False


class DashboardView(BaseModel):
    total_pending: int
    providers: List[ProviderGroupView] = Field(default_factory=list)


@router.get("/dashboard", response_model=DashboardView, tags=["Dashboard"])
async def get_dashboard(
    request_store: RequestStore = Depends(get_request_store),
    guard: OperationGuard = Depends(get_operation_guard)
):
    requests = request_store.snapshot()
    providers = [
        ProviderGroupView(
            provider=stats.provider,
            pending_count=stats.pending_count,
            requests=stats.requests,
            is_dispatching=guard.is_dispatching(stats.provider)
        )
        for stats in group_by_provider(requests)
    ]
    return DashboardView(total_pending=count_pending(requests), providers=providers)


@router.post("/dashboard/providers/{provider}/dispatch", response_model=DispatchToProviderResult, tags=["Dashboard"])
async def dispatch_to_provider_api(
    provider: ServiceProvider,
    request_store: RequestStore = Depends(get_request_store),
    event_store: InMemoryEventStore = Depends(get_event_store),
    gateway: AbstractProviderGateway = Depends(get_provider_gateway),
    notifier: NotificationPublisher = Depends(get_notification_publisher),
    guard: OperationGuard = Depends(get_operation_guard)
):
    """
    Sends every request currently pending for ``provider`` in one batch.
    Nothing pending is not an error: the result simply lists no ids.
    """
    try:
        result = await handle_dispatch_to_provider_command(
            request_store=request_store,
            event_store=event_store,
            command=DispatchToProviderCommand(provider=provider),
            gateway=gateway,
            notifier=notifier,
            guard=guard
        )
        return result
    except OperationInProgressError as oipe:
        logger.info(f"Dispatch to {provider.value} rejected: {oipe}")
        raise HTTPException(status_code=409, detail=str(oipe))
    except ConcurrencyConflictError as cce:
        logger.warning(f"Concurrency conflict dispatching to {provider.value}: {cce}")
        raise HTTPException(status_code=409, detail=str(cce))
    except ProviderUnreachableError as pue:
        raise HTTPException(status_code=502, detail=str(pue))
    except KafkaProducerError as kpe:
        logger.error(f"Kafka producer error after dispatch to {provider.value}: {kpe}", exc_info=True)
        raise HTTPException(status_code=502, detail=f"Failed to publish notification event: {kpe}")
    except Exception as e:
        logger.error(f"Unexpected error dispatching to {provider.value}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="An unexpected error occurred while dispatching requests.")
