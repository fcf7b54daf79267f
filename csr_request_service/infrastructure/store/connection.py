import logging
from typing import Optional

from csr_request_service.infrastructure.store.request_store import RequestStore
from csr_request_service.infrastructure.store.event_store import InMemoryEventStore

logger = logging.getLogger(__name__)

# Process-wide stores, managed by init/close functions
request_store: Optional[RequestStore] = None
event_store: Optional[InMemoryEventStore] = None

def init_stores():
    global request_store, event_store
    if request_store is not None and event_store is not None:
        logger.info("Request and event stores already initialized.")
        return
    request_store = RequestStore()
    event_store = InMemoryEventStore()
    logger.info("In-memory request and event stores initialized.")

def close_stores():
    global request_store, event_store
    if request_store is not None:
        logger.info(f"Discarding request store with {len(request_store)} requests and event store with {len(event_store)} events.")
    request_store = None
    event_store = None

def get_request_store() -> RequestStore:
    if request_store is None:
        logger.warning("Request store not initialized. Initializing via get_request_store().")
        init_stores()
    return request_store

def get_event_store() -> InMemoryEventStore:
    if event_store is None:
        logger.warning("Event store not initialized. Initializing via get_event_store().")
        init_stores()
    return event_store
