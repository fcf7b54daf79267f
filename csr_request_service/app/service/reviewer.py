# Response review projections over the request store
import datetime
from typing import Iterable, List, Optional

from csr_request_service.app.service.models import CSRRequest, RequestStatus


def list_awaiting_review(requests: Iterable[CSRRequest]) -> List[CSRRequest]:
    """Requests with a provider response waiting to be forwarded, in collection order."""
    return [request for request in requests if request.status == RequestStatus.RESPONSE_RECEIVED]


def format_timestamp(value: Optional[datetime.datetime]) -> Optional[str]:
    # en-IN short form, e.g. "15 Jan 2024, 02:45 pm"
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc)
    return value.strftime("%d %b %Y, %I:%M ") + value.strftime("%p").lower()
