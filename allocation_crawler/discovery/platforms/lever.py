"""Lever postings API client"""

from typing import Any

from .base import BaseATSClient, RawJob


class LeverClient(BaseATSClient):
    """Lever public postings"""

    API_URL = "https://api.lever.co/v0/postings"

    @property
    def ats_name(self) -> str:
        return "lever"

    def board_url(self, token: str) -> str:
        return f"{self.API_URL}/{token}"

    def parse_jobs(self, payload: Any) -> list[RawJob]:
        jobs = []
        for item in payload or []:
            categories = item.get("categories") or {}
            jobs.append(RawJob(
                job_id=str(item["id"]),
                title=item.get("text") or "",
                url=item.get("hostedUrl") or "",
                location=categories.get("location") or "Unknown",
                department=categories.get("department") or categories.get("team") or "General",
            ))
        return jobs
