# Pydantic models for Domain Events
from pydantic import BaseModel, Field
from typing import Optional
import datetime
import uuid

from csr_request_service.app.service.models import CSRRequest, ServiceProvider

class EventMetaData(BaseModel):
    correlation_id: Optional[str] = None
    causation_id: Optional[str] = None # Usually the command_id that produced the event

class BaseEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str
    aggregate_id: str # The CSR request id
    timestamp: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.UTC))
    version: int = 1
    payload: BaseModel
    metadata: EventMetaData = Field(default_factory=EventMetaData)

# --- Intake ---
class RequestReceivedEventPayload(BaseModel):
    request: CSRRequest

class RequestReceivedEvent(BaseEvent):
    event_type: str = "RequestReceived"
    payload: RequestReceivedEventPayload

# --- Dispatch ---
class RequestSentToProviderEventPayload(BaseModel):
    provider: ServiceProvider
    dispatch_batch_id: str # Shared by every request sent in the same dispatch
    sent_at: datetime.datetime

class RequestSentToProviderEvent(BaseEvent):
    event_type: str = "RequestSentToProvider"
    payload: RequestSentToProviderEventPayload

# --- Provider reply ---
class ProviderResponseRecordedEventPayload(BaseModel):
    response_text: str
    received_at: datetime.datetime

class ProviderResponseRecordedEvent(BaseEvent):
    event_type: str = "ProviderResponseRecorded"
    payload: ProviderResponseRecordedEventPayload

# --- Forward ---
class ResponseForwardedEventPayload(BaseModel):
    police_station_email: str
    forwarded_at: datetime.datetime

class ResponseForwardedEvent(BaseEvent):
    event_type: str = "ResponseForwarded"
    payload: ResponseForwardedEventPayload
