"""Greenhouse job-board API client"""

from typing import Any

from .base import BaseATSClient, RawJob


class GreenhouseClient(BaseATSClient):
    """Greenhouse public board listings"""

    API_URL = "https://boards-api.greenhouse.io/v1/boards"

    @property
    def ats_name(self) -> str:
        return "greenhouse"

    def board_url(self, token: str) -> str:
        return f"{self.API_URL}/{token}/jobs"

    def parse_jobs(self, payload: Any) -> list[RawJob]:
        jobs = []
        for item in (payload or {}).get("jobs") or []:
            departments = item.get("departments") or []
            jobs.append(RawJob(
                job_id=str(item["id"]),
                title=item.get("title") or "",
                url=item.get("absolute_url") or "",
                location=(item.get("location") or {}).get("name") or "Unknown",
                department=(departments[0].get("name") if departments else None) or "General",
            ))
        return jobs
