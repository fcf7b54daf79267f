# Kafka producer for operator notifications ("Requests Sent", "Response Forwarded")
import asyncio
import logging
from typing import Optional

from confluent_kafka import Producer
from opentelemetry import trace
from pydantic import BaseModel

from csr_request_service.app.config import settings
from csr_request_service.app.observability import inject_trace_context_into_kafka_headers

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

NOTIFICATION_MESSAGE_TYPE = b"CSR_NOTIFICATION"


class NotificationProducer:
    """
    Produces notifications to the notification topic. Messages are keyed by
    provider for dispatches and by request id for forwards, so consumers see
    each partition's notifications in order. The current trace context travels
    in the message headers.
    """

    def __init__(self, bootstrap_servers: str, topic: Optional[str] = None):
        self.topic = topic or settings.NOTIFICATION_KAFKA_TOPIC
        self.producer = Producer({
            'bootstrap.servers': bootstrap_servers,
            'client.id': settings.SERVICE_NAME_API,
        })
        self._stopped = False
        self._delivery_task: Optional[asyncio.Task] = None
        logger.info(f"NotificationProducer initialized for topic {self.topic} with servers: {bootstrap_servers}")

    def _on_delivery(self, err, msg):
        if err is not None:
            logger.error(f"Notification delivery failed (key {msg.key()}): {err}")
        else:
            logger.debug(f"Notification delivered (key {msg.key()}) to partition [{msg.partition()}] @ offset {msg.offset()}")

    async def _serve_delivery_reports(self):
        while not self._stopped:
            await asyncio.to_thread(self.producer.poll, 0.1)
        logger.info("NotificationProducer delivery reports stopped.")

    def send(self, notification: BaseModel, key: Optional[str] = None) -> None:
        """Enqueues one notification. Queue and serialization errors propagate to the caller."""
        if self._stopped:
            logger.warning(f"NotificationProducer is stopped; notification for key {key} not produced.")
            return

        with tracer.start_as_current_span(f"{self.topic} send", kind=trace.SpanKind.PRODUCER) as span:
            span.set_attribute("messaging.system", "kafka")
            span.set_attribute("messaging.destination.name", self.topic)
            if key:
                span.set_attribute("messaging.kafka.message.key", key)

            headers = inject_trace_context_into_kafka_headers()
            headers.append(("message_type", NOTIFICATION_MESSAGE_TYPE))
            self.producer.produce(
                self.topic,
                value=notification.model_dump_json().encode('utf-8'),
                key=key.encode('utf-8') if key else None,
                headers=headers,
                on_delivery=self._on_delivery,
            )
        logger.debug(f"Notification enqueued to {self.topic} (key: {key}).")

    def start(self):
        if self._delivery_task is None or self._delivery_task.done():
            self._stopped = False
            self._delivery_task = asyncio.create_task(self._serve_delivery_reports())

    async def close(self, timeout: float = 10.0) -> int:
        """Flushes pending notifications and stops serving delivery reports. Returns the number left undelivered."""
        remaining = self.producer.flush(timeout)
        if remaining > 0:
            logger.warning(f"{remaining} notifications still queued after flush timeout.")
        self._stopped = True
        if self._delivery_task is not None:
            await self._delivery_task
            self._delivery_task = None
        return remaining


_notification_producer_instance: Optional[NotificationProducer] = None

def get_notification_producer() -> Optional[NotificationProducer]:
    """The shared producer, or None when Kafka is not configured."""
    global _notification_producer_instance
    if _notification_producer_instance is None:
        if not settings.KAFKA_BOOTSTRAP_SERVERS:
            logger.debug("KAFKA_BOOTSTRAP_SERVERS not configured. Notifications stay in-process only.")
            return None
        _notification_producer_instance = NotificationProducer(settings.KAFKA_BOOTSTRAP_SERVERS)
    return _notification_producer_instance

async def startup_notification_producer():
    producer = get_notification_producer()
    if producer is None:
        logger.info("Kafka not configured, notification producer not started.")
        return
    producer.start()
    logger.info("NotificationProducer started.")

async def shutdown_notification_producer():
    global _notification_producer_instance
    if _notification_producer_instance is None:
        return
    await _notification_producer_instance.close()
    _notification_producer_instance = None
    logger.info("NotificationProducer shut down.")
