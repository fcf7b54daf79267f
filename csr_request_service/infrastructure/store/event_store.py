# Event Store Logic (Saving and Retrieving Domain Events)
import logging
from typing import Dict, List

from csr_request_service.app.service.events.models import BaseEvent
from csr_request_service.app.service.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)


class InMemoryEventStore:
    """Append-only log of domain events, versioned per aggregate."""

    def __init__(self):
        self._events: List[BaseEvent] = []
        self._latest_versions: Dict[str, int] = {}

    def latest_version(self, aggregate_id: str) -> int:
        return self._latest_versions.get(aggregate_id, 0)

    def _check_version(self, event_data: BaseEvent, latest_version: int) -> None:
        if event_data.version != latest_version + 1:
            error_msg = (
                f"Concurrency conflict for aggregate {event_data.aggregate_id}. "
                f"Attempted event version {event_data.version}, but latest version is {latest_version}."
            )
            logger.error(error_msg)
            raise ConcurrencyConflictError(
                aggregate_id=event_data.aggregate_id,
                expected_version=latest_version + 1,
                actual_version=event_data.version
            )

    async def save_event(self, event_data: BaseEvent) -> BaseEvent:
        return (await self.save_events([event_data]))[0]

    def ensure_appendable(self, events: List[BaseEvent]) -> Dict[str, int]:
        """
        Raises ConcurrencyConflictError unless every event continues its
        aggregate's version sequence. Returns the resulting latest versions.
        """
        pending_versions: Dict[str, int] = {}
        for event_data in events:
            latest_version = pending_versions.get(event_data.aggregate_id, self.latest_version(event_data.aggregate_id))
            self._check_version(event_data, latest_version)
            pending_versions[event_data.aggregate_id] = event_data.version
        return pending_versions

    async def save_events(self, events: List[BaseEvent]) -> List[BaseEvent]:
        """Appends all events or none of them."""
        pending_versions = self.ensure_appendable(events)
        self._events.extend(events)
        self._latest_versions.update(pending_versions)
        for event_data in events:
            logger.info(f"Event '{event_data.event_type}' (ID: {event_data.event_id}) saved for aggregate {event_data.aggregate_id} with version {event_data.version}.")
        return events

    async def get_events_for_aggregate(self, aggregate_id: str) -> List[BaseEvent]:
        events = sorted((e for e in self._events if e.aggregate_id == aggregate_id), key=lambda e: e.version)
        logger.debug(f"Retrieved {len(events)} events for aggregate {aggregate_id}.")
        return events

    async def list_events(self, event_type: str = None, limit: int = 100) -> List[BaseEvent]:
        events = [e for e in self._events if event_type is None or e.event_type == event_type]
        return events[-limit:]

    def __len__(self) -> int:
        return len(self._events)
