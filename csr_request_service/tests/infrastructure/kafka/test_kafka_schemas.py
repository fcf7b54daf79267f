# Unit Tests for Kafka intake message schemas
import datetime
import pytest
from pydantic import ValidationError

from csr_request_service.infrastructure.kafka import schemas as kafka_schemas
from csr_request_service.app.service.models import ServiceProvider


def test_csr_intake_message_valid():
    msg = kafka_schemas.CSRIntakeMessage(
        police_station_name="Madurai South Police Station",
        mobile_number=" 9123456780 ",
        service_provider="Airtel",
    )
    assert msg.message_type == "CSR_REQUEST"
    assert msg.mobile_number == "9123456780"
    assert msg.service_provider == ServiceProvider.AIRTEL
    assert msg.police_station_email is None
    assert msg.request_id is None

def test_csr_intake_message_with_pinned_id_and_time():
    msg = kafka_schemas.CSRIntakeMessage(
        police_station_name="Coimbatore Police Station",
        mobile_number="7654321098",
        service_provider="VI",
        request_id="CSR-EXT-1",
        received_at="2024-01-15T10:30:00Z",
    )
    assert msg.request_id == "CSR-EXT-1"
    assert msg.received_at == datetime.datetime(2024, 1, 15, 10, 30, tzinfo=datetime.timezone.utc)

@pytest.mark.parametrize("mobile_number", [
    "12345", "98765432100", "98765abcde", "", "\u0661\u0662\u0663\u0664\u0665\u0666\u0667\u0668\u0669\u0660", "98765432\u00b2\u00b3",
])
def test_csr_intake_message_rejects_bad_mobile_number(mobile_number):
    with pytest.raises(ValidationError):
        kafka_schemas.CSRIntakeMessage(
            police_station_name="Salem Police Station",
            mobile_number=mobile_number,
            service_provider="Jio",
        )

def test_csr_intake_message_rejects_unknown_provider():
    with pytest.raises(ValidationError):
        kafka_schemas.CSRIntakeMessage(
            police_station_name="Salem Police Station",
            mobile_number="9876543210",
            service_provider="Vodafone",
        )

def test_csr_intake_message_rejects_empty_station_name():
    with pytest.raises(ValidationError):
        kafka_schemas.CSRIntakeMessage(police_station_name="", mobile_number="9876543210", service_provider="Jio")

def test_provider_response_message_valid():
    msg = kafka_schemas.ProviderResponseMessage(request_id="CSR-001", response_text="Subscriber: Rajesh Kumar")
    assert msg.message_type == "PROVIDER_RESPONSE"
    assert msg.received_at is None

def test_provider_response_message_requires_text():
    with pytest.raises(ValidationError):
        kafka_schemas.ProviderResponseMessage(request_id="CSR-001", response_text="")
    with pytest.raises(ValidationError):
        kafka_schemas.ProviderResponseMessage(response_text="Subscriber: Rajesh Kumar")
