# Application Configuration using Pydantic BaseSettings
from pydantic_settings import BaseSettings
from typing import List, Optional

class AppSettings(BaseSettings):
    # Observability
    LOG_LEVEL: str = "INFO"
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: Optional[str] = None
    OTEL_EXPORTER_OTLP_METRICS_ENDPOINT: Optional[str] = None
    SERVICE_NAME_API: str = "csr-request-api"

    # Outbound HTTP (provider gateway)
    DEFAULT_HTTP_TIMEOUT: float = 10.0
    PROVIDER_GATEWAY_URL: Optional[str] = None # e.g., http://provider-bridge:8081/api/v1

    # Simulated latency windows, in seconds
    DISPATCH_LATENCY_SECONDS: float = 2.0
    FORWARD_LATENCY_SECONDS: float = 1.5
    LOGIN_LATENCY_SECONDS: float = 1.0
    # Providers the simulated gateway treats as unreachable, e.g. ["BSNL"]
    SIMULATED_UNREACHABLE_PROVIDERS: List[str] = []

    # Domain
    STATION_EMAIL_DOMAIN: str = "tnpolice.gov.in"
    NOTIFICATION_HISTORY_SIZE: int = 100
    # Outstanding CAPTCHA challenges kept; the oldest is evicted past this
    CAPTCHA_REGISTRY_SIZE: int = 100

    # Demo data
    SEED_FIXTURES: bool = True
    FIXTURE_REQUEST_COUNT: int = 15

    # Kafka (optional; disabled while KAFKA_BOOTSTRAP_SERVERS is unset)
    KAFKA_BOOTSTRAP_SERVERS: Optional[str] = None
    KAFKA_INTAKE_TOPIC: str = "csr_intake_events"
    KAFKA_CONSUMER_GROUP_ID: str = "csr_request_service_intake"
    NOTIFICATION_KAFKA_TOPIC: str = "csr_notifications"
    INTAKE_CONSUMER_ENABLED: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

# Instantiate settings to be imported by other modules
settings = AppSettings()

import logging
logger = logging.getLogger(__name__)
logger.info("Application settings module initialized.")
