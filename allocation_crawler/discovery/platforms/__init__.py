"""ATS integrations"""

from typing import Optional

import httpx

from .ashby import AshbyClient
from .base import BaseATSClient, RawJob
from .greenhouse import GreenhouseClient
from .lever import LeverClient

ATS_CLIENTS: dict[str, type[BaseATSClient]] = {
    "greenhouse": GreenhouseClient,
    "lever": LeverClient,
    "ashby": AshbyClient,
}


def get_ats_client(
    ats: str,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[BaseATSClient]:
    """Client for ``ats``, or None if the provider is not supported"""
    client_cls = ATS_CLIENTS.get(ats.lower())
    return client_cls(client=client) if client_cls else None


__all__ = [
    "ATS_CLIENTS",
    "AshbyClient",
    "BaseATSClient",
    "GreenhouseClient",
    "LeverClient",
    "RawJob",
    "get_ats_client",
]
