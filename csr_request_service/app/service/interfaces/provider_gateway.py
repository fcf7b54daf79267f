from abc import ABC, abstractmethod
from typing import List

from csr_request_service.app.service.models import CSRRequest, ServiceProvider


class AbstractProviderGateway(ABC):
    @abstractmethod
    async def send_requests(self, provider: ServiceProvider, requests: List[CSRRequest]) -> None:
        """
        Sends a consolidated batch of CSR requests to a telecom provider.

        Args:
            provider: The provider every request in the batch targets.
            requests: The pending requests to send, in collection order.

        Raises:
            ProviderUnreachableError: if the provider endpoint cannot be reached.
        """
        pass

    @abstractmethod
    async def forward_response(self, request: CSRRequest) -> None:
        """
        Forwards a reviewed provider response back to the requesting police station.

        Raises:
            ForwardFailedError: if the station endpoint cannot be reached.
        """
        pass
