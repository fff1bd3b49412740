"""
Query Layer - Read-only composition over entity and run listings
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from allocation_crawler.applications.coordinator import ApplicationCoordinator
from allocation_crawler.applications.models import JobRun
from allocation_crawler.core.store import KeyValueStore
from allocation_crawler.entities.models import Job, JobStatus
from allocation_crawler.entities.store import EntityStore


@dataclass
class JobDetail:
    """A job with its runs and the current apply-lock holder"""

    job: Job
    runs: list[JobRun] = field(default_factory=list)
    lock_holder: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.job.to_dict(),
            "runs": [run.to_dict() for run in self.runs],
            "lock_holder": self.lock_holder,
        }


class QueryService:
    """Filtered listings of jobs and runs; holds no state of its own"""

    def __init__(
        self,
        store: KeyValueStore,
        entities: Optional[EntityStore] = None,
        coordinator: Optional[ApplicationCoordinator] = None,
    ):
        self.entities = entities or EntityStore(store)
        self.coordinator = coordinator or ApplicationCoordinator(store, self.entities)

    async def jobs(
        self,
        board: Optional[str] = None,
        status: Optional[JobStatus] = None,
        tag: Optional[str] = None,
    ) -> list[Job]:
        return await self.entities.list_jobs(board=board, status=status, tag=tag)

    async def jobs_for_user(
        self,
        user_id: str,
        board: Optional[str] = None,
        status: Optional[JobStatus] = None,
    ) -> list[Job]:
        return await self.entities.list_jobs_for_user(
            user_id, board=board, status=status or JobStatus.DISCOVERED
        )

    async def runs(
        self,
        job_id: Optional[str] = None,
        board: Optional[str] = None,
    ) -> list[JobRun]:
        return await self.coordinator.list_runs(job_id=job_id, board=board)

    async def job_detail(self, board: str, job_id: str) -> Optional[JobDetail]:
        job = await self.entities.get_job(board, job_id)
        if job is None:
            return None
        return JobDetail(
            job=job,
            runs=await self.coordinator.list_runs(job_id=job_id, board=board),
            lock_holder=await self.coordinator.lock_holder(board, job_id),
        )
