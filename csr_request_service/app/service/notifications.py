# User-facing notification channel (the audit trail for dispatch/forward)
import datetime
import logging
import uuid
from collections import deque
from typing import Deque, List, Optional

from pydantic import BaseModel, Field

from csr_request_service.app.config import settings
from csr_request_service.app.service.exceptions import KafkaProducerError
from csr_request_service.infrastructure.kafka.producer import NotificationProducer

logger = logging.getLogger(__name__)


class Notification(BaseModel):
    notification_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    description: str
    variant: str = "default" # "default" or "destructive"
    created_at: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.UTC))


class NotificationPublisher:
    """
    Keeps a bounded feed of recent notifications and, when a Kafka producer is
    available, also sends each one to the notification topic.
    """

    def __init__(
        self,
        producer: Optional[NotificationProducer] = None,
        history_size: Optional[int] = None,
    ):
        self.producer = producer
        self._history: Deque[Notification] = deque(maxlen=history_size or settings.NOTIFICATION_HISTORY_SIZE)

    def publish(self, title: str, description: str, variant: str = "default", key: Optional[str] = None) -> Notification:
        notification = Notification(title=title, description=description, variant=variant)
        self._history.append(notification)
        logger.info(f"Notification '{title}': {description}")

        if self.producer is not None:
            try:
                self.producer.send(notification, key=key)
            except Exception as e:
                logger.error(f"Failed to publish notification {notification.notification_id} to Kafka: {e}", exc_info=True)
                raise KafkaProducerError(f"Failed to publish notification '{title}' due to: {e}")
        return notification

    def recent(self, limit: int = 20) -> List[Notification]:
        """Most recent first."""
        return list(reversed(self._history))[:limit]
