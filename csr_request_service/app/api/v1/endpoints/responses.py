# API Router for reviewing and forwarding provider responses
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from csr_request_service.app.dependencies.services import (
    get_notification_publisher, get_operation_guard, get_provider_gateway
)
from csr_request_service.app.service.commands.models import ForwardResponseCommand, ForwardResponseResult
from csr_request_service.app.service.commands.handlers import handle_forward_response_command
from csr_request_service.app.service.exceptions import (
    ConcurrencyConflictError, ForwardFailedError, InvalidRequestStateError,
    KafkaProducerError, OperationInProgressError, RequestNotFoundError
)
from csr_request_service.app.service.interfaces.provider_gateway import AbstractProviderGateway
from csr_request_service.app.service.models import RequestStatus, ServiceProvider
from csr_request_service.app.service.notifications import NotificationPublisher
from csr_request_service.app.service.operations import OperationGuard
from csr_request_service.app.service.reviewer import format_timestamp, list_awaiting_review
from csr_request_service.infrastructure.store.connection import get_event_store, get_request_store
from csr_request_service.infrastructure.store.event_store import InMemoryEventStore
from csr_request_service.infrastructure.store.request_store import RequestStore

logger = logging.getLogger(__name__)
router = APIRouter()


class AwaitingResponseRow(BaseModel):
    id: str
    police_station_name: str
    police_station_email: str
    mobile_number: str
    service_provider: ServiceProvider
    reference_id: str
    response_received: Optional[str] = None # Display-formatted
    is_forwarding: bool = False


class ResponseDetail(BaseModel):
    id: str
    reference_id: str
    police_station_name: str
    service_provider: ServiceProvider
    provider_response: str


@router.get("/responses", response_model=List[AwaitingResponseRow], tags=["Responses"])
async def list_responses(
    request_store: RequestStore = Depends(get_request_store),
    guard: OperationGuard = Depends(get_operation_guard)
):
    return [
        AwaitingResponseRow(
            id=request.id,
            police_station_name=request.police_station_name,
            police_station_email=request.police_station_email,
            mobile_number=request.mobile_number,
            service_provider=request.service_provider,
            reference_id=request.reference_id,
            response_received=format_timestamp(request.timestamps.response_received),
            is_forwarding=guard.is_forwarding(request.id)
        )
        for request in list_awaiting_review(request_store.snapshot())
    ]


@router.get("/responses/{request_id}", response_model=ResponseDetail, tags=["Responses"])
async def get_response_detail(request_id: str, request_store: RequestStore = Depends(get_request_store)):
    request = request_store.get(request_id)
    if request is None:
        raise HTTPException(status_code=404, detail=str(RequestNotFoundError(request_id)))
    if request.status != RequestStatus.RESPONSE_RECEIVED:
        raise HTTPException(
            status_code=409,
            detail=str(InvalidRequestStateError(request_id, request.status.value, "view the provider response"))
        )
    return ResponseDetail(
        id=request.id,
        reference_id=request.reference_id,
        police_station_name=request.police_station_name,
        service_provider=request.service_provider,
        provider_response=request.provider_response
    )


@router.post("/responses/{request_id}/forward", response_model=ForwardResponseResult, tags=["Responses"])
async def forward_response_api(
    request_id: str,
    request_store: RequestStore = Depends(get_request_store),
    event_store: InMemoryEventStore = Depends(get_event_store),
    gateway: AbstractProviderGateway = Depends(get_provider_gateway),
    notifier: NotificationPublisher = Depends(get_notification_publisher),
    guard: OperationGuard = Depends(get_operation_guard)
):
    try:
        return await handle_forward_response_command(
            request_store=request_store,
            event_store=event_store,
            command=ForwardResponseCommand(request_id=request_id),
            gateway=gateway,
            notifier=notifier,
            guard=guard
        )
    except RequestNotFoundError as rnfe:
        raise HTTPException(status_code=404, detail=str(rnfe))
    except (OperationInProgressError, InvalidRequestStateError) as e:
        logger.info(f"Forward of request {request_id} rejected: {e}")
        raise HTTPException(status_code=409, detail=str(e))
    except ConcurrencyConflictError as cce:
        logger.warning(f"Concurrency conflict forwarding request {request_id}: {cce}")
        raise HTTPException(status_code=409, detail=str(cce))
    except ForwardFailedError as ffe:
        raise HTTPException(status_code=502, detail=str(ffe))
    except KafkaProducerError as kpe:
        logger.error(f"Kafka producer error after forwarding request {request_id}: {kpe}", exc_info=True)
        raise HTTPException(status_code=502, detail=f"Failed to publish notification event: {kpe}")
    except Exception as e:
        logger.error(f"Unexpected error forwarding request {request_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="An unexpected error occurred while forwarding the response.")
