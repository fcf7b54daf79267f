# Dashboard projections over the request store
from typing import Dict, Iterable, List

from csr_request_service.app.service.models import CSRRequest, ProviderStats, RequestStatus


def group_by_provider(requests: Iterable[CSRRequest]) -> List[ProviderStats]:
    """
    Groups requests in 'Request Received' by service provider.

    Providers appear in the order their first pending request appears in
    ``requests``; each group keeps its requests in collection order. Requests
    in any other status belong to no group.
    """
    groups: Dict[str, ProviderStats] = {}
    for request in requests:
        if request.status != RequestStatus.REQUEST_RECEIVED:
            continue
        stats = groups.get(request.service_provider)
        if stats is None:
            stats = ProviderStats(provider=request.service_provider, pending_count=0)
            groups[request.service_provider] = stats
        stats.requests.append(request)
        stats.pending_count += 1
    return list(groups.values())


def count_pending(requests: Iterable[CSRRequest]) -> int:
    return sum(1 for request in requests if request.status == RequestStatus.REQUEST_RECEIVED)


def pending_by_provider(requests: Iterable[CSRRequest]) -> Dict[str, int]:
    return {stats.provider.value: stats.pending_count for stats in group_by_provider(requests)}
