# Forward-only state transitions for CSR requests
import datetime
from typing import Any, Optional

from csr_request_service.app.service.models import (
    CSRRequest, RequestStatus, STATUS_ORDER, TIMESTAMP_FIELD_BY_STATUS
)
from csr_request_service.app.service.exceptions import InvalidRequestStateError

ACTION_BY_TARGET_STATUS = {
    RequestStatus.SENT_TO_PROVIDER: "send to provider",
    RequestStatus.RESPONSE_RECEIVED: "record provider response",
    RequestStatus.COMPLETED: "forward response",
}


def next_status(status: RequestStatus) -> Optional[RequestStatus]:
    position = STATUS_ORDER.index(status)
    if position + 1 < len(STATUS_ORDER):
        return STATUS_ORDER[position + 1]
    return None


def ensure_can_advance(request: CSRRequest, target: RequestStatus) -> None:
    if next_status(request.status) != target:
        raise InvalidRequestStateError(
            request_id=request.id,
            current_state=request.status.value,
            attempted_action=ACTION_BY_TARGET_STATUS.get(target, f"move to '{target.value}'"),
        )


def advance(request: CSRRequest, target: RequestStatus, at: datetime.datetime, **changes: Any) -> CSRRequest:
    """
    Returns a copy of ``request`` moved to ``target``, with the matching
    timestamp stamped at ``at``. The input record is left unmodified.
    """
    ensure_can_advance(request, target)
    timestamps = request.timestamps.model_copy(update={TIMESTAMP_FIELD_BY_STATUS[target]: at})
    return request.model_copy(update={"status": target, "timestamps": timestamps, **changes})
