# Pydantic models for Kafka intake message structures
from pydantic import BaseModel, Field, field_validator
from typing import Any, Literal, Optional, Union
import datetime

from csr_request_service.app.service.models import ServiceProvider, normalize_mobile_number

class CSRIntakeMessage(BaseModel):
    message_type: Literal["CSR_REQUEST"] = "CSR_REQUEST"
    police_station_name: str = Field(min_length=1)
    police_station_email: Optional[str] = None
    mobile_number: str
    service_provider: ServiceProvider
    request_id: Optional[str] = None # Lets the upstream system pin the id
    reference_id: Optional[str] = None
    received_at: Optional[datetime.datetime] = None

    @field_validator("mobile_number", mode="before")
    @classmethod
    def mobile_number_must_be_ten_digits(cls, v: Any) -> str:
        return normalize_mobile_number(v)

class ProviderResponseMessage(BaseModel):
    message_type: Literal["PROVIDER_RESPONSE"] = "PROVIDER_RESPONSE"
    request_id: str
    response_text: str = Field(min_length=1)
    received_at: Optional[datetime.datetime] = None

IntakeMessage = Union[CSRIntakeMessage, ProviderResponseMessage]
