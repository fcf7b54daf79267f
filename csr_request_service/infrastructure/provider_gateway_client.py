# Clients for the telecom provider boundary
import asyncio
import logging
from typing import Iterable, List, Optional

import httpx

from csr_request_service.app.config import settings
from csr_request_service.app.service.interfaces.provider_gateway import AbstractProviderGateway
from csr_request_service.app.service.models import CSRRequest, ServiceProvider
from csr_request_service.app.service.exceptions import ForwardFailedError, ProviderUnreachableError

logger = logging.getLogger(__name__)


class SimulatedProviderGateway(AbstractProviderGateway):
    """
    Stands in for the provider and station endpoints: waits out an artificial
    latency window and succeeds, except for providers listed as unreachable.
    """

    def __init__(
        self,
        dispatch_latency: Optional[float] = None,
        forward_latency: Optional[float] = None,
        unreachable_providers: Optional[Iterable[str]] = None,
    ):
        self.dispatch_latency = settings.DISPATCH_LATENCY_SECONDS if dispatch_latency is None else dispatch_latency
        self.forward_latency = settings.FORWARD_LATENCY_SECONDS if forward_latency is None else forward_latency
        if unreachable_providers is None:
            unreachable_providers = settings.SIMULATED_UNREACHABLE_PROVIDERS
        self.unreachable_providers = {ServiceProvider(p) for p in unreachable_providers}

    async def send_requests(self, provider: ServiceProvider, requests: List[CSRRequest]) -> None:
        logger.debug(f"Simulating dispatch of {len(requests)} requests to {provider.value} ({self.dispatch_latency}s).")
        await asyncio.sleep(self.dispatch_latency)
        if provider in self.unreachable_providers:
            raise ProviderUnreachableError(provider.value)
        logger.info(f"Simulated provider {provider.value} accepted {len(requests)} requests.")

    async def forward_response(self, request: CSRRequest) -> None:
        logger.debug(f"Simulating forward of request {request.id} to {request.police_station_email} ({self.forward_latency}s).")
        await asyncio.sleep(self.forward_latency)
        logger.info(f"Simulated forward of request {request.id} to {request.police_station_email} delivered.")


class HttpProviderGateway(AbstractProviderGateway):
    def __init__(self, http_client: httpx.AsyncClient, base_url: str):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")

    async def send_requests(self, provider: ServiceProvider, requests: List[CSRRequest]) -> None:
        request_url = f"{self.base_url}/providers/{provider.value}/requests"
        payload = {
            "provider": provider.value,
            "requests": [
                {
                    "id": r.id,
                    "reference_id": r.reference_id,
                    "mobile_number": r.mobile_number,
                    "police_station_email": r.police_station_email,
                }
                for r in requests
            ],
        }
        logger.debug(f"Posting {len(requests)} requests to provider gateway: {request_url}")
        try:
            response = await self.http_client.post(request_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error calling provider gateway for {provider.value}: {e.response.status_code} - {e.response.text}", exc_info=True)
            raise ProviderUnreachableError(provider.value, reason=f"HTTP {e.response.status_code}")
        except httpx.RequestError as e:
            logger.error(f"Request error calling provider gateway for {provider.value}: {e}", exc_info=True)
            raise ProviderUnreachableError(provider.value, reason=str(e) or type(e).__name__)
        logger.info(f"Provider gateway accepted {len(requests)} requests for {provider.value}.")

    async def forward_response(self, request: CSRRequest) -> None:
        request_url = f"{self.base_url}/stations/forward"
        payload = {
            "request_id": request.id,
            "reference_id": request.reference_id,
            "police_station_email": request.police_station_email,
            "provider_response": request.provider_response,
        }
        try:
            response = await self.http_client.post(request_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error forwarding request {request.id}: {e.response.status_code} - {e.response.text}", exc_info=True)
            raise ForwardFailedError(request.id, reason=f"HTTP {e.response.status_code}")
        except httpx.RequestError as e:
            logger.error(f"Request error forwarding request {request.id}: {e}", exc_info=True)
            raise ForwardFailedError(request.id, reason=str(e) or type(e).__name__)
        logger.info(f"Response for request {request.id} forwarded to {request.police_station_email}.")


_simulated_gateway_instance: Optional[SimulatedProviderGateway] = None

def build_provider_gateway(http_client: Optional[httpx.AsyncClient]) -> AbstractProviderGateway:
    """HTTP gateway when PROVIDER_GATEWAY_URL is configured, otherwise the shared simulated one."""
    global _simulated_gateway_instance
    if settings.PROVIDER_GATEWAY_URL and http_client is not None:
        return HttpProviderGateway(http_client=http_client, base_url=settings.PROVIDER_GATEWAY_URL)
    if settings.PROVIDER_GATEWAY_URL:
        logger.warning("PROVIDER_GATEWAY_URL set but no HTTP client available. Falling back to simulated gateway.")
    if _simulated_gateway_instance is None:
        _simulated_gateway_instance = SimulatedProviderGateway()
    return _simulated_gateway_instance
