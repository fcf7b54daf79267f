"""
Demo intake: generates CSR requests in place of a live intake pipeline.

Generated requests go through the same ingestion interface as any other
source. ``seed_fixture_data`` additionally replays a few sample requests
through dispatch and provider response so the review queue is not empty.
"""
import datetime
import logging
import random
from typing import List, Optional

from csr_request_service.app.service.commands.models import SubmitRequestCommand, RecordProviderResponseCommand
from csr_request_service.app.service.commands.handlers import (
    handle_submit_request_command, handle_record_provider_response_command
)
from csr_request_service.app.service.events import models as domain_event_models
from csr_request_service.app.service.events.projectors import dispatch_events_to_projectors
from csr_request_service.app.service.models import ServiceProvider
from csr_request_service.infrastructure.store.request_store import RequestStore
from csr_request_service.infrastructure.store.event_store import InMemoryEventStore

logger = logging.getLogger(__name__)

STATIONS = [
    "Chennai Central Police Station",
    "Coimbatore North Police Station",
    "Madurai East Police Station",
    "Trichy West Police Station",
    "Salem South Police Station",
]

PROVIDERS = list(ServiceProvider)

SAMPLE_RESPONSES = [
    {
        "request_id": "CSR-001",
        "police_station_name": "Chennai Central Police Station",
        "mobile_number": "9876543210",
        "service_provider": ServiceProvider.JIO,
        "reference_id": "REF-JIO-001",
        "received": "2024-01-15T09:00:00+00:00",
        "sent_to_provider": "2024-01-15T10:30:00+00:00",
        "response_received": "2024-01-15T14:45:00+00:00",
        "provider_response": (
            "Subscriber Details:\nName: Rajesh Kumar\nAddress: No. 45, Anna Nagar, Chennai - 600040\n"
            "Connection Date: 15-Mar-2023\nLast Activity: 14-Jan-2024 18:30 hrs\n"
            "Tower Location: Anna Nagar East\nCall Records: Available for last 6 months\nStatus: Active"
        ),
    },
    {
        "request_id": "CSR-002",
        "police_station_name": "Coimbatore North Police Station",
        "mobile_number": "8765432109",
        "service_provider": ServiceProvider.AIRTEL,
        "reference_id": "REF-AIR-002",
        "received": "2024-01-15T11:15:00+00:00",
        "sent_to_provider": "2024-01-15T12:00:00+00:00",
        "response_received": "2024-01-15T16:20:00+00:00",
        "provider_response": (
            "Subscriber Information:\nName: Priya Sharma\nAddress: Plot 23, RS Puram, Coimbatore - 641002\n"
            "Activation: 28-Aug-2022\nLast Location: Race Course Road Tower\nData Usage: 2.5 GB (Last 24 hrs)\n"
            "Call Summary: 45 calls in last week\nAccount Status: Active - Postpaid"
        ),
    },
    {
        "request_id": "CSR-003",
        "police_station_name": "Madurai East Police Station",
        "mobile_number": "7654321098",
        "service_provider": ServiceProvider.VI,
        "reference_id": "REF-VI-003",
        "received": "2024-01-14T15:30:00+00:00",
        "sent_to_provider": "2024-01-14T16:15:00+00:00",
        "response_received": "2024-01-15T10:45:00+00:00",
        "provider_response": (
            "Customer Data:\nName: Mohammed Ali\nAddress: 12/A, Meenakshi Nagar, Madurai - 625001\n"
            "SIM Issue Date: 05-Dec-2023\nLast Known Location: Madurai Junction\n"
            "Recent Activity: Voice calls - 12, SMS - 5 (Last 24 hrs)\nNetwork Type: 4G\nSubscription: Prepaid Plan ₹199"
        ),
    },
]


def generate_mobile_number(rng: random.Random) -> str:
    # Three-digit prefix in [100, 999] followed by seven digits in [1000000, 9999999]
    return f"{rng.randint(100, 999)}{rng.randint(1000000, 9999999)}"


def generate_mock_requests(
    count: int,
    rng: Optional[random.Random] = None,
    now: Optional[datetime.datetime] = None,
) -> List[SubmitRequestCommand]:
    rng = rng or random.Random()
    now = now or datetime.datetime.now(datetime.UTC)
    commands = []
    for _ in range(count):
        commands.append(SubmitRequestCommand(
            police_station_name=rng.choice(STATIONS),
            mobile_number=generate_mobile_number(rng),
            service_provider=rng.choice(PROVIDERS),
            received_at=now - datetime.timedelta(seconds=rng.uniform(0, 24 * 60 * 60)),
        ))
    return commands


async def replay_sample_response(request_store: RequestStore, event_store: InMemoryEventStore, sample: dict) -> None:
    await handle_submit_request_command(request_store, event_store, SubmitRequestCommand(
        request_id=sample["request_id"],
        reference_id=sample["reference_id"],
        police_station_name=sample["police_station_name"],
        mobile_number=sample["mobile_number"],
        service_provider=sample["service_provider"],
        received_at=datetime.datetime.fromisoformat(sample["received"]),
    ))
    # Replayed history: the dispatch happened outside this process, so it is
    # recorded directly instead of going through the provider gateway.
    sent_event = domain_event_models.RequestSentToProviderEvent(
        aggregate_id=sample["request_id"],
        payload=domain_event_models.RequestSentToProviderEventPayload(
            provider=sample["service_provider"],
            dispatch_batch_id=f"fixture-{sample['request_id']}",
            sent_at=datetime.datetime.fromisoformat(sample["sent_to_provider"]),
        ),
        version=2,
    )
    event_store.ensure_appendable([sent_event])
    await dispatch_events_to_projectors(request_store, [sent_event])
    await event_store.save_events([sent_event])
    await handle_record_provider_response_command(request_store, event_store, RecordProviderResponseCommand(
        request_id=sample["request_id"],
        response_text=sample["provider_response"],
        received_at=datetime.datetime.fromisoformat(sample["response_received"]),
    ))


async def seed_fixture_data(
    request_store: RequestStore,
    event_store: InMemoryEventStore,
    count: int = 15,
    rng: Optional[random.Random] = None,
) -> int:
    """Seeds ``count`` fresh requests plus the sample responses. Returns the number of requests added."""
    held_before = len(request_store)
    for command in generate_mock_requests(count, rng=rng):
        await handle_submit_request_command(request_store, event_store, command)
    for sample in SAMPLE_RESPONSES:
        if sample["request_id"] in request_store:
            continue
        await replay_sample_response(request_store, event_store, sample)
    added = len(request_store) - held_before
    logger.info(f"Seeded {added} fixture requests; {len(request_store)} requests held.")
    return added
