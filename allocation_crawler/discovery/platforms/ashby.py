"""Ashby posting API client"""

from typing import Any

from .base import BaseATSClient, RawJob


class AshbyClient(BaseATSClient):
    """Ashby public job board"""

    API_URL = "https://api.ashbyhq.com/posting-api/job-board"

    @property
    def ats_name(self) -> str:
        return "ashby"

    def board_url(self, token: str) -> str:
        return f"{self.API_URL}/{token}"

    def parse_jobs(self, payload: Any) -> list[RawJob]:
        jobs = []
        for item in (payload or {}).get("jobs") or []:
            jobs.append(RawJob(
                job_id=str(item["id"]),
                title=item.get("title") or "",
                url=item.get("jobUrl") or "",
                location=item.get("location") or "Unknown",
                department=item.get("department") or item.get("team") or "General",
            ))
        return jobs
