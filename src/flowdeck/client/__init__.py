"""Clients for the orchestration server's REST API."""

from flowdeck.client.factory import create_client
from flowdeck.client.http import AirflowClient
from flowdeck.client.protocol import OrchestrationClient

__all__ = [
    "AirflowClient",
    "OrchestrationClient",
    "create_client",
]
