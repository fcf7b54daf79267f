# Pydantic models for the CSR domain
import datetime
import random
import re
import string
import uuid
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from csr_request_service.app.config import settings


class ServiceProvider(str, Enum):
    JIO = "Jio"
    AIRTEL = "Airtel"
    VI = "VI"
    BSNL = "BSNL"


class RequestStatus(str, Enum):
    REQUEST_RECEIVED = "Request Received"
    SENT_TO_PROVIDER = "Sent to Provider"
    RESPONSE_RECEIVED = "Response Received"
    COMPLETED = "Completed"


# Lifecycle order; a request only ever moves one step to the right.
STATUS_ORDER: List[RequestStatus] = [
    RequestStatus.REQUEST_RECEIVED,
    RequestStatus.SENT_TO_PROVIDER,
    RequestStatus.RESPONSE_RECEIVED,
    RequestStatus.COMPLETED,
]

# Optional timestamp stamped when a request enters each status.
TIMESTAMP_FIELD_BY_STATUS = {
    RequestStatus.SENT_TO_PROVIDER: "sent_to_provider",
    RequestStatus.RESPONSE_RECEIVED: "response_received",
    RequestStatus.COMPLETED: "forwarded",
}


MOBILE_NUMBER_PATTERN = re.compile(r"[0-9]{10}")


def normalize_mobile_number(value: Any) -> str:
    """Trims surrounding whitespace; the result must be exactly ten ASCII digits."""
    if isinstance(value, str):
        value = value.strip()
        if MOBILE_NUMBER_PATTERN.fullmatch(value):
            return value
    raise ValueError("mobile_number must be a 10-digit numeric string")


def generate_request_id() -> str:
    return f"CSR-{uuid.uuid4().hex[:12].upper()}"


def generate_reference_id(rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return "REF-" + "".join(rng.choices(string.ascii_uppercase + string.digits, k=9))


def derive_station_email(station_name: str, domain: Optional[str] = None) -> str:
    """'Chennai Central Police Station' -> 'chennai.central.police.station@tnpolice.gov.in'"""
    local_part = ".".join(station_name.lower().split())
    return f"{local_part}@{domain or settings.STATION_EMAIL_DOMAIN}"


class RequestTimestamps(BaseModel):
    received: datetime.datetime
    sent_to_provider: Optional[datetime.datetime] = None
    response_received: Optional[datetime.datetime] = None
    forwarded: Optional[datetime.datetime] = None


class CSRRequest(BaseModel):
    id: str = Field(default_factory=generate_request_id)
    police_station_email: str
    police_station_name: str = Field(min_length=1)
    mobile_number: str
    service_provider: ServiceProvider
    status: RequestStatus = RequestStatus.REQUEST_RECEIVED
    timestamps: RequestTimestamps
    reference_id: str = Field(default_factory=generate_reference_id)
    provider_response: Optional[str] = None
    version: int = 1 # Number of domain events applied to this aggregate

    @field_validator("mobile_number", mode="before")
    @classmethod
    def mobile_number_must_have_ten_digits(cls, v: Any) -> str:
        return normalize_mobile_number(v)

    @model_validator(mode="after")
    def timestamps_match_status(self) -> "CSRRequest":
        reached = STATUS_ORDER.index(self.status)
        for status, field_name in TIMESTAMP_FIELD_BY_STATUS.items():
            stamped = getattr(self.timestamps, field_name) is not None
            expected = STATUS_ORDER.index(status) <= reached
            if stamped != expected:
                state = "requires" if expected else "must not have"
                raise ValueError(f"status '{self.status.value}' {state} timestamp '{field_name}'")
        return self


class ProviderStats(BaseModel):
    provider: ServiceProvider
    pending_count: int
    requests: List[CSRRequest] = Field(default_factory=list)
