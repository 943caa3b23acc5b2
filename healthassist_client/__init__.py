"""Client for the health assistant gateway HTTP API."""

from .api_client import HealthAssistantAPIClient
from .config import ClientConfig, config

__all__ = [
    "ClientConfig",
    "HealthAssistantAPIClient",
    "config",
]
