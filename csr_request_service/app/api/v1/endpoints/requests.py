# API Router for the CSR request intake and store
import datetime
import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationError

from csr_request_service.app.service.commands.models import (
    SubmitRequestCommand, SubmitRequestResult, RecordProviderResponseCommand
)
from csr_request_service.app.service.commands.handlers import (
    handle_submit_request_command, handle_record_provider_response_command
)
from csr_request_service.app.service.exceptions import (
    ConcurrencyConflictError, DuplicateRequestError, InvalidRequestStateError, RequestNotFoundError
)
from csr_request_service.app.service.models import CSRRequest, RequestStatus, ServiceProvider
from csr_request_service.infrastructure.store.connection import get_event_store, get_request_store
from csr_request_service.infrastructure.store.event_store import InMemoryEventStore
from csr_request_service.infrastructure.store.request_store import RequestStore

logger = logging.getLogger(__name__)
router = APIRouter()


class ProviderResponseInput(BaseModel):
    response_text: str = Field(min_length=1)
    received_at: Optional[datetime.datetime] = None


@router.post("/requests", status_code=201, response_model=SubmitRequestResult, tags=["Requests"])
async def submit_request_api(
    request_data: SubmitRequestCommand = Body(...),
    request_store: RequestStore = Depends(get_request_store),
    event_store: InMemoryEventStore = Depends(get_event_store)
):
    """
    Ingests a new CSR request in 'Request Received'.
    """
    try:
        return await handle_submit_request_command(request_store, event_store, request_data)
    except DuplicateRequestError as dre:
        raise HTTPException(status_code=409, detail=str(dre))
    except ConcurrencyConflictError as cce:
        logger.warning(f"Concurrency conflict during submission from {request_data.police_station_name}: {cce}")
        raise HTTPException(status_code=409, detail=str(cce))
    except ValidationError as ve:
        # The command parsed but the resulting request is invalid
        logger.warning(f"Validation error submitting request: {ve}")
        raise HTTPException(status_code=422, detail=ve.errors(include_url=False, include_context=False))
    except Exception as e:
        logger.error(f"Unexpected error submitting request: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="An unexpected error occurred while submitting the request.")


@router.get("/requests", response_model=List[CSRRequest], tags=["Requests"])
async def list_requests(
    status: Optional[RequestStatus] = None,
    provider: Optional[ServiceProvider] = None,
    request_store: RequestStore = Depends(get_request_store)
):
    requests = request_store.snapshot()
    if status is not None:
        requests = [r for r in requests if r.status == status]
    if provider is not None:
        requests = [r for r in requests if r.service_provider == provider]
    return requests


@router.get("/requests/{request_id}", response_model=CSRRequest, tags=["Requests"])
async def get_request(request_id: str, request_store: RequestStore = Depends(get_request_store)):
    request = request_store.get(request_id)
    if request is None:
        raise HTTPException(status_code=404, detail=str(RequestNotFoundError(request_id)))
    return request


@router.post("/requests/{request_id}/provider-response", response_model=CSRRequest, tags=["Requests"])
async def record_provider_response_api(
    request_id: str,
    response_data: ProviderResponseInput = Body(...),
    request_store: RequestStore = Depends(get_request_store),
    event_store: InMemoryEventStore = Depends(get_event_store)
):
    """
    Records a telecom provider's reply for a request that was sent to it.
    """
    try:
        command = RecordProviderResponseCommand(
            request_id=request_id,
            response_text=response_data.response_text,
            received_at=response_data.received_at
        )
        return await handle_record_provider_response_command(request_store, event_store, command)
    except RequestNotFoundError as rnfe:
        raise HTTPException(status_code=404, detail=str(rnfe))
    except (InvalidRequestStateError, ConcurrencyConflictError) as e:
        logger.info(f"Provider response for request {request_id} rejected: {e}")
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Unexpected error recording provider response for {request_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="An unexpected error occurred while recording the provider response.")
