"""
Base ATS Client - Common interface for public job-board APIs
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx
import structlog

from config import settings

logger = structlog.get_logger(__name__)


@dataclass
class RawJob:
    """
    Raw posting from an applicant-tracking system.
    Standardized format for all ATS providers.
    """

    job_id: str
    title: str
    url: str
    location: str = "Unknown"
    department: str = "General"


class BaseATSClient(ABC):
    """
    Abstract base class for ATS integrations.

    Each provider implements:
    - ats_name: identifier stored on the board record
    - board_url(): public listing endpoint for a board token
    - parse_jobs(): map the provider payload to RawJob records

    Fetches are attempted once. A non-2xx answer or transport error yields
    an empty list and a warning.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self._client = client
        self.timeout = timeout or settings.crawler.request_timeout

    @property
    @abstractmethod
    def ats_name(self) -> str:
        """Return the ATS identifier"""
        pass

    @abstractmethod
    def board_url(self, token: str) -> str:
        """Listing endpoint for ``token``"""
        pass

    @abstractmethod
    def parse_jobs(self, payload: Any) -> list[RawJob]:
        """Convert a decoded response body to RawJob records"""
        pass

    async def fetch_jobs(self, token: str) -> list[RawJob]:
        """Fetch every open posting on a board"""
        url = self.board_url(token)
        try:
            if self._client is not None:
                response = await self._get(self._client, url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._get(client, url)
        except httpx.HTTPError as e:
            logger.warning("ATS fetch failed", ats=self.ats_name, token=token, error=str(e))
            return []

        if not response.is_success:
            logger.warning(
                "ATS returned an error status",
                ats=self.ats_name,
                token=token,
                status_code=response.status_code,
            )
            return []

        try:
            jobs = self.parse_jobs(response.json())
        except ValueError as e:
            logger.warning("ATS returned malformed JSON", ats=self.ats_name, token=token, error=str(e))
            return []

        logger.info("ATS fetch complete", ats=self.ats_name, token=token, jobs_found=len(jobs))
        return jobs

    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        return await client.get(
            url,
            headers={
                "Accept": "application/json",
                "User-Agent": settings.crawler.user_agent,
            },
            timeout=self.timeout,
        )
