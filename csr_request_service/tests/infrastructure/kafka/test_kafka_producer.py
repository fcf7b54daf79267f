# Unit Tests for the Kafka notification producer
import pytest
from unittest.mock import patch, MagicMock

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider as SDKTracerProvider

from csr_request_service.infrastructure.kafka import producer as producer_module
from csr_request_service.infrastructure.kafka.producer import NotificationProducer
from csr_request_service.app.observability import extract_trace_context_from_kafka_headers
from csr_request_service.app.service.notifications import Notification
from csr_request_service.app import config as app_config


@pytest.fixture(autouse=True)
def manage_kafka_producer_settings():
    original_kafka_bootstrap_servers = app_config.settings.KAFKA_BOOTSTRAP_SERVERS
    producer_module._notification_producer_instance = None
    yield
    app_config.settings.KAFKA_BOOTSTRAP_SERVERS = original_kafka_bootstrap_servers
    producer_module._notification_producer_instance = None

@pytest.fixture
def dispatch_notification():
    return Notification(title="Requests Sent", description="All pending requests have been consolidated and sent to Jio")

@patch('csr_request_service.infrastructure.kafka.producer.Producer')
def test_get_notification_producer_is_singleton(MockConfluentProducer):
    app_config.settings.KAFKA_BOOTSTRAP_SERVERS = "fake_server:9092"

    producer = producer_module.get_notification_producer()

    assert isinstance(producer, NotificationProducer)
    assert producer.topic == app_config.settings.NOTIFICATION_KAFKA_TOPIC
    MockConfluentProducer.assert_called_once_with({
        'bootstrap.servers': "fake_server:9092",
        'client.id': app_config.settings.SERVICE_NAME_API,
    })
    assert producer_module.get_notification_producer() is producer

def test_get_notification_producer_none_without_servers():
    app_config.settings.KAFKA_BOOTSTRAP_SERVERS = None
    assert producer_module.get_notification_producer() is None

@patch('csr_request_service.infrastructure.kafka.producer.Producer')
def test_send_keys_notification_and_carries_trace_context(MockConfluentProducer, dispatch_notification):
    mock_confluent_producer = MagicMock()
    MockConfluentProducer.return_value = mock_confluent_producer
    producer = NotificationProducer(bootstrap_servers="fake_server:9092", topic="csr_notifications_test")
    outer_tracer = SDKTracerProvider().get_tracer("dispatch-test")

    with outer_tracer.start_as_current_span("dispatch") as outer_span:
        producer.send(dispatch_notification, key="Jio")
        outer_trace_id = outer_span.get_span_context().trace_id

    mock_confluent_producer.produce.assert_called_once()
    args, kwargs = mock_confluent_producer.produce.call_args
    assert args == ("csr_notifications_test",)
    assert kwargs["key"] == b"Jio"
    assert kwargs["value"] == dispatch_notification.model_dump_json().encode('utf-8')
    assert kwargs["on_delivery"] == producer._on_delivery
    assert ("message_type", b"CSR_NOTIFICATION") in kwargs["headers"]

    context = extract_trace_context_from_kafka_headers(kwargs["headers"])
    assert trace.get_current_span(context).get_span_context().trace_id == outer_trace_id

@patch('csr_request_service.infrastructure.kafka.producer.Producer')
def test_send_without_key(MockConfluentProducer, dispatch_notification):
    producer = NotificationProducer(bootstrap_servers="fake_server:9092")

    producer.send(dispatch_notification)

    assert MockConfluentProducer.return_value.produce.call_args.kwargs["key"] is None

@patch('csr_request_service.infrastructure.kafka.producer.Producer')
def test_send_buffer_error_propagates(MockConfluentProducer, dispatch_notification):
    MockConfluentProducer.return_value.produce.side_effect = BufferError("queue full")
    producer = NotificationProducer(bootstrap_servers="fake_server:9092")

    with pytest.raises(BufferError):
        producer.send(dispatch_notification, key="VI")

@pytest.mark.asyncio
@patch('csr_request_service.infrastructure.kafka.producer.Producer')
async def test_startup_and_shutdown(MockConfluentProducer, dispatch_notification):
    app_config.settings.KAFKA_BOOTSTRAP_SERVERS = "fake_server:9092"
    MockConfluentProducer.return_value.flush.return_value = 0

    await producer_module.startup_notification_producer()
    producer = producer_module._notification_producer_instance
    assert producer._delivery_task is not None

    await producer_module.shutdown_notification_producer()
    MockConfluentProducer.return_value.flush.assert_called_once()
    assert producer._delivery_task is None
    assert producer_module._notification_producer_instance is None

    # A stopped producer drops further notifications instead of enqueueing them
    producer.send(dispatch_notification, key="Jio")
    MockConfluentProducer.return_value.produce.assert_not_called()

@pytest.mark.asyncio
async def test_startup_skipped_without_servers():
    app_config.settings.KAFKA_BOOTSTRAP_SERVERS = None
    await producer_module.startup_notification_producer()
    await producer_module.shutdown_notification_producer()
    assert producer_module._notification_producer_instance is None
