# Unit Tests for the Kafka Intake Consumer
import asyncio
import json
import pytest
from unittest.mock import patch, AsyncMock, MagicMock
from confluent_kafka import Message, KafkaError
from pydantic import ValidationError

from csr_request_service.infrastructure.kafka import consumer as kafka_consumer_module
from csr_request_service.infrastructure.kafka.schemas import CSRIntakeMessage, ProviderResponseMessage
from csr_request_service.app.service.models import RequestStatus, ServiceProvider


def make_kafka_message(payload, topic="csr_intake_events", offset=7, error=None) -> MagicMock:
    message = MagicMock(spec=Message)
    message.value.return_value = payload if isinstance(payload, bytes) else json.dumps(payload).encode('utf-8')
    message.error.return_value = error
    message.topic.return_value = topic
    message.partition.return_value = 0
    message.offset.return_value = offset
    message.headers.return_value = None
    message.key.return_value = None
    return message


def consumer_yielding(stop_event: asyncio.Event, *messages) -> MagicMock:
    """A mock Consumer whose poll returns ``messages`` and then asks the loop to stop."""
    queue = list(messages)
    consumer = MagicMock()

    def poll(timeout):
        if queue:
            return queue.pop(0)
        stop_event.set()
        return None
    consumer.poll.side_effect = poll
    return consumer


CSR_PAYLOAD = {
    "message_type": "CSR_REQUEST",
    "police_station_name": "Salem South Police Station",
    "mobile_number": "9988776655",
    "service_provider": "BSNL",
    "request_id": "CSR-KAFKA-1",
}


def test_parse_intake_message_discriminates_types():
    assert isinstance(kafka_consumer_module.parse_intake_message(CSR_PAYLOAD), CSRIntakeMessage)
    response = kafka_consumer_module.parse_intake_message(
        {"message_type": "PROVIDER_RESPONSE", "request_id": "CSR-1", "response_text": "Name: X"}
    )
    assert isinstance(response, ProviderResponseMessage)

    with pytest.raises(ValidationError):
        kafka_consumer_module.parse_intake_message({**CSR_PAYLOAD, "mobile_number": "123"})
    with pytest.raises(ValidationError):
        kafka_consumer_module.parse_intake_message({"message_type": "SOMETHING_ELSE"})


@pytest.mark.asyncio
async def test_dispatch_intake_message_submits_request(request_store, event_store):
    request_id = await kafka_consumer_module.dispatch_intake_message(
        CSRIntakeMessage(**CSR_PAYLOAD), request_store, event_store
    )
    assert request_id == "CSR-KAFKA-1"
    stored = request_store.get("CSR-KAFKA-1")
    assert stored.service_provider == ServiceProvider.BSNL
    assert stored.status == RequestStatus.REQUEST_RECEIVED


@pytest.mark.asyncio
async def test_dispatch_intake_message_records_response(request_store, event_store, request_factory, seed_requests):
    await seed_requests(request_factory("CSR-1", status=RequestStatus.SENT_TO_PROVIDER))
    await kafka_consumer_module.dispatch_intake_message(
        ProviderResponseMessage(request_id="CSR-1", response_text="Name: Priya Sharma"), request_store, event_store
    )
    assert request_store.get("CSR-1").status == RequestStatus.RESPONSE_RECEIVED


@pytest.mark.asyncio
@patch('csr_request_service.infrastructure.kafka.consumer.kafka_messages_consumed_counter')
async def test_consume_intake_events_success_path(mock_metrics_counter, request_store, event_store):
    stop_event = asyncio.Event()
    kafka_message = make_kafka_message(CSR_PAYLOAD)
    consumer = consumer_yielding(stop_event, kafka_message)

    await kafka_consumer_module.consume_intake_events(request_store, event_store, stop_event, consumer=consumer)

    consumer.subscribe.assert_called_once_with([kafka_consumer_module.settings.KAFKA_INTAKE_TOPIC])
    assert "CSR-KAFKA-1" in request_store
    mock_metrics_counter.add.assert_called_once_with(1, {"topic": "csr_intake_events", "kafka_partition": "0"})
    consumer.commit.assert_called_once_with(message=kafka_message, asynchronous=False)
    consumer.close.assert_called_once()


@pytest.mark.asyncio
async def test_consume_intake_events_skips_invalid_messages(request_store, event_store):
    stop_event = asyncio.Event()
    bad_json = make_kafka_message(b"{not json", offset=1)
    bad_schema = make_kafka_message({**CSR_PAYLOAD, "service_provider": "Vodafone"}, offset=2)
    unknown_request = make_kafka_message(
        {"message_type": "PROVIDER_RESPONSE", "request_id": "CSR-404", "response_text": "x"}, offset=3
    )
    consumer = consumer_yielding(stop_event, bad_json, bad_schema, unknown_request)

    await kafka_consumer_module.consume_intake_events(request_store, event_store, stop_event, consumer=consumer)

    assert len(request_store) == 0
    # Every message is committed so the consumer moves past it
    assert consumer.commit.call_count == 3
    consumer.close.assert_called_once()


@pytest.mark.asyncio
async def test_consume_intake_events_commits_kafka_errors(request_store, event_store):
    stop_event = asyncio.Event()
    eof_error = MagicMock()
    eof_error.code.return_value = KafkaError._PARTITION_EOF
    other_error = MagicMock()
    other_error.code.return_value = KafkaError._MSG_TIMED_OUT
    eof = make_kafka_message(b"", error=eof_error)
    broken = make_kafka_message(b"", error=other_error)
    consumer = consumer_yielding(stop_event, eof, broken)

    await kafka_consumer_module.consume_intake_events(request_store, event_store, stop_event, consumer=consumer)

    consumer.commit.assert_called_once_with(message=broken, asynchronous=False)


@pytest.mark.asyncio
@patch('csr_request_service.infrastructure.kafka.consumer.Consumer')
async def test_consumer_built_from_settings(mock_consumer_cls, request_store, event_store):
    stop_event = asyncio.Event()
    stop_event.set()

    await kafka_consumer_module.consume_intake_events(request_store, event_store, stop_event)

    config = mock_consumer_cls.call_args.args[0]
    assert config['group.id'] == kafka_consumer_module.settings.KAFKA_CONSUMER_GROUP_ID
    assert config['enable.auto.commit'] is False
    mock_consumer_cls.return_value.close.assert_called_once()
