# Pydantic models for Commands
from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Optional
import datetime
import uuid

from csr_request_service.app.service.models import CSRRequest, RequestStatus, ServiceProvider, normalize_mobile_number
from csr_request_service.app.service.notifications import Notification

class BaseCommand(BaseModel):
    command_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    correlation_id: Optional[str] = None

class SubmitRequestCommand(BaseCommand):
    # Fields supplied by the intake source; the rest are generated
    police_station_name: str
    police_station_email: Optional[str] = None # Derived from the station name when omitted
    mobile_number: str
    service_provider: ServiceProvider
    request_id: Optional[str] = None
    reference_id: Optional[str] = None
    received_at: Optional[datetime.datetime] = None

    @field_validator("mobile_number", mode="before")
    @classmethod
    def mobile_number_must_have_ten_digits(cls, v: Any) -> str:
        return normalize_mobile_number(v)

class SubmitRequestResult(BaseModel):
    request_id: str
    reference_id: str
    status: RequestStatus

class DispatchToProviderCommand(BaseCommand):
    provider: ServiceProvider

class DispatchToProviderResult(BaseModel):
    provider: ServiceProvider
    dispatch_batch_id: Optional[str] = None # None when there was nothing to send
    dispatched_request_ids: List[str] = Field(default_factory=list)
    notification: Optional[Notification] = None

class RecordProviderResponseCommand(BaseCommand):
    request_id: str
    response_text: str = Field(min_length=1)
    received_at: Optional[datetime.datetime] = None

class ForwardResponseCommand(BaseCommand):
    request_id: str

class ForwardResponseResult(BaseModel):
    request: CSRRequest
    notification: Optional[Notification] = None
