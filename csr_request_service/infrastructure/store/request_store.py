"""
In-memory request store: the single source of truth for CSR request state.

Reads return the collection in insertion order. Writes go through
``mutate``, which reads the current collection, lets the caller compute the
next one, and replaces it whole under a lock. A mutator that raises leaves
the collection untouched. Subscribers are told about every committed
replacement.
"""
import asyncio
import logging
from typing import Callable, Dict, List, Optional

from csr_request_service.app.service.models import CSRRequest

logger = logging.getLogger(__name__)

Mutator = Callable[[List[CSRRequest]], List[CSRRequest]]
Subscriber = Callable[[List[CSRRequest]], None]


class RequestStore:
    def __init__(self, requests: Optional[List[CSRRequest]] = None):
        self._requests: Dict[str, CSRRequest] = {request.id: request for request in (requests or [])}
        self._lock = asyncio.Lock()
        self._subscribers: List[Subscriber] = []

    def snapshot(self) -> List[CSRRequest]:
        return list(self._requests.values())

    def get(self, request_id: str) -> Optional[CSRRequest]:
        return self._requests.get(request_id)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._requests

    def __len__(self) -> int:
        return len(self._requests)

    async def mutate(self, mutator: Mutator) -> List[CSRRequest]:
        async with self._lock:
            updated = mutator(self.snapshot())
            replacement = {}
            for request in updated:
                if request.id in replacement:
                    raise ValueError(f"Mutation produced duplicate request id '{request.id}'.")
                replacement[request.id] = request
            self._requests = replacement
            committed = self.snapshot()
        logger.debug(f"Request store replaced; {len(committed)} requests held.")
        self._notify(committed)
        return committed

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Registers ``subscriber`` and returns a callable that unregisters it."""
        self._subscribers.append(subscriber)

        def unsubscribe():
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)
        return unsubscribe

    def _notify(self, committed: List[CSRRequest]) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(committed)
            except Exception as e:
                logger.error(f"Request store subscriber {getattr(subscriber, '__name__', subscriber)} failed: {e}", exc_info=True)
