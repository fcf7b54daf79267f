# Kafka Intake Consumer Implementation
import asyncio
import json
import logging
from typing import Optional

from confluent_kafka import Consumer, KafkaError, KafkaException
from pydantic import TypeAdapter

from opentelemetry.trace import SpanKind
from opentelemetry.trace.status import StatusCode, Status

from csr_request_service.app.config import settings
from .schemas import CSRIntakeMessage, IntakeMessage, ProviderResponseMessage
from csr_request_service.app.service.commands.models import SubmitRequestCommand, RecordProviderResponseCommand
from csr_request_service.app.service.commands.handlers import (
    handle_submit_request_command, handle_record_provider_response_command
)
from csr_request_service.app.observability import (
    tracer,
    kafka_messages_consumed_counter,
    extract_trace_context_from_kafka_headers,
)
from csr_request_service.infrastructure.store.request_store import RequestStore
from csr_request_service.infrastructure.store.event_store import InMemoryEventStore

logger = logging.getLogger(__name__)

_intake_message_adapter = TypeAdapter(IntakeMessage)


def parse_intake_message(message_data: dict) -> IntakeMessage:
    """Validates a decoded message as either a CSR request or a provider response."""
    return _intake_message_adapter.validate_python(message_data)


async def dispatch_intake_message(
    validated_message: IntakeMessage,
    request_store: RequestStore,
    event_store: InMemoryEventStore,
) -> str:
    """Runs the command for ``validated_message`` and returns the affected request id."""
    with tracer.start_as_current_span("dispatch_command_from_kafka", kind=SpanKind.INTERNAL) as cmd_span:
        cmd_span.set_attribute("messaging.system", "kafka")
        cmd_span.set_attribute("intake.message_type", validated_message.message_type)

        if isinstance(validated_message, CSRIntakeMessage):
            command = SubmitRequestCommand(
                police_station_name=validated_message.police_station_name,
                police_station_email=validated_message.police_station_email,
                mobile_number=validated_message.mobile_number,
                service_provider=validated_message.service_provider,
                request_id=validated_message.request_id,
                reference_id=validated_message.reference_id,
                received_at=validated_message.received_at,
            )
            result = await handle_submit_request_command(request_store, event_store, command)
            request_id = result.request_id
        elif isinstance(validated_message, ProviderResponseMessage):
            command = RecordProviderResponseCommand(
                request_id=validated_message.request_id,
                response_text=validated_message.response_text,
                received_at=validated_message.received_at,
            )
            updated = await handle_record_provider_response_command(request_store, event_store, command)
            request_id = updated.id
        else:
            raise ValueError(f"Unsupported intake message type: {type(validated_message).__name__}")

        cmd_span.set_attribute("request.id", request_id)
        cmd_span.add_event("CommandHandlerInvoked", {"command.id": command.command_id, "request.id": request_id})
        logger.info(f"Intake message {validated_message.message_type} dispatched as command {command.command_id} for request {request_id}.")
        return request_id


async def process_message(msg, consumer: Consumer, request_store: RequestStore, event_store: InMemoryEventStore) -> None:
    parent_context = extract_trace_context_from_kafka_headers(msg.headers())
    with tracer.start_as_current_span("kafka_message_received", kind=SpanKind.CONSUMER, context=parent_context) as consume_span:
        msg_topic = msg.topic()
        msg_partition = msg.partition()
        msg_offset = msg.offset()

        consume_span.set_attribute("messaging.system", "kafka")
        consume_span.set_attribute("messaging.destination.name", msg_topic)
        consume_span.set_attribute("messaging.kafka.partition", msg_partition)
        consume_span.set_attribute("messaging.kafka.message.offset", msg_offset)
        if msg.key():
            consume_span.set_attribute("messaging.kafka.message.key", msg.key().decode(errors='ignore'))

        try:
            message_data_str = msg.value().decode('utf-8')
            consume_span.set_attribute("messaging.message.payload_size_bytes", len(message_data_str))
            kafka_messages_consumed_counter.add(1, {"topic": msg_topic, "kafka_partition": str(msg_partition)})
            logger.info(f"Consumed message from {msg_topic}/{msg_partition}/{msg_offset}")

            message_data = json.loads(message_data_str)
            consume_span.add_event("MessageDecodedSuccessfully")

            validated_message = parse_intake_message(message_data)
            consume_span.add_event("MessageValidated", {"message_type": validated_message.message_type})

            await dispatch_intake_message(validated_message, request_store, event_store)
            consume_span.set_status(Status(StatusCode.OK))
        except json.JSONDecodeError as e:
            logger.error(f"JSON Decode Error for message at {msg_topic}/{msg_partition}/{msg_offset}: {e}", exc_info=True)
            consume_span.record_exception(e)
            consume_span.set_status(Status(StatusCode.ERROR, description=f"JSON Decode Error: {type(e).__name__}"))
        except Exception as e:
            logger.error(f"Error processing message at {msg_topic}/{msg_partition}/{msg_offset}: {e}", exc_info=True)
            consume_span.record_exception(e)
            consume_span.set_status(Status(StatusCode.ERROR, description=f"Processing Error: {type(e).__name__}"))
        finally:
            # Invalid messages are skipped, not retried.
            consumer.commit(message=msg, asynchronous=False)
            consume_span.add_event("OffsetCommitted")


def build_consumer() -> Consumer:
    conf = {
        'bootstrap.servers': settings.KAFKA_BOOTSTRAP_SERVERS,
        'group.id': settings.KAFKA_CONSUMER_GROUP_ID,
        'auto.offset.reset': 'earliest',
        'enable.auto.commit': False
    }
    return Consumer(conf)


async def consume_intake_events(
    request_store: RequestStore,
    event_store: InMemoryEventStore,
    stop_event: asyncio.Event,
    consumer: Optional[Consumer] = None,
):
    logger.info("Initializing Kafka intake consumer...")
    consumer = consumer or build_consumer()
    try:
        consumer.subscribe([settings.KAFKA_INTAKE_TOPIC])
        logger.info(f"Kafka consumer subscribed to {settings.KAFKA_INTAKE_TOPIC} with group {settings.KAFKA_CONSUMER_GROUP_ID}. Waiting for messages...")

        while not stop_event.is_set():
            # poll blocks, so it runs off the event loop
            msg = await asyncio.to_thread(consumer.poll, 1.0)
            if msg is None:
                continue

            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    continue
                logger.error(f"Kafka error: {msg.error()}. Committing offset for msg at {msg.topic()}/{msg.partition()}/{msg.offset()} and skipping.")
                consumer.commit(message=msg, asynchronous=False)
                continue

            await process_message(msg, consumer, request_store, event_store)
    except KafkaException as ke:
        logger.critical(f"Critical KafkaException in consumer: {ke}", exc_info=True)
    finally:
        logger.info("Closing Kafka intake consumer...")
        consumer.close()
        logger.info("Kafka intake consumer closed.")
