"""Job discovery from public ATS boards"""

from .crawler import BoardCrawler, CrawlReport
from .platforms import (
    ATS_CLIENTS,
    AshbyClient,
    BaseATSClient,
    GreenhouseClient,
    LeverClient,
    RawJob,
    get_ats_client,
)

__all__ = [
    "ATS_CLIENTS",
    "AshbyClient",
    "BaseATSClient",
    "BoardCrawler",
    "CrawlReport",
    "GreenhouseClient",
    "LeverClient",
    "RawJob",
    "get_ats_client",
]
