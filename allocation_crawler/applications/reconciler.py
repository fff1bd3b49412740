"""
Lock Reconciler - Recovers jobs stranded in ``queued``

An apply lock expires after its TTL even if the agent holding it crashed
before reporting an outcome. The job then stays ``queued`` with no lock
holder. A sweep finds those jobs and settles them through the normal
run-update path.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

import structlog

from config import settings
from allocation_crawler.core.serialization import utcnow
from allocation_crawler.entities.models import Job, JobStatus
from .coordinator import ApplicationCoordinator
from .models import RunStatus

logger = structlog.get_logger(__name__)

LOCK_EXPIRED_ERROR = "lock expired"


@dataclass
class ReconcileReport:
    """Outcome of one sweep"""

    examined: int = 0
    locked: int = 0
    reverted_jobs: list[str] = field(default_factory=list)
    expired_runs: list[str] = field(default_factory=list)
    waiting: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "examined": self.examined,
            "locked": self.locked,
            "reverted_jobs": self.reverted_jobs,
            "expired_runs": self.expired_runs,
            "waiting": self.waiting,
            "skipped": self.skipped,
            "dry_run": self.dry_run,
        }


class LockReconciler:
    """
    Sweeps ``queued`` jobs that no longer hold an apply lock.

    - No active run: the job is reverted to ``discovered``.
    - Active runs older than the lock TTL (plus grace): each is marked
      ``failed`` with error "lock expired", which reverts the job once no
      active run remains.
    - Active runs younger than that are left alone and reported as waiting.
    - Lock and status are read again before each write; a job claimed or
      settled mid-sweep is skipped.
    """

    def __init__(
        self,
        coordinator: ApplicationCoordinator,
        stale_after_seconds: Optional[int] = None,
    ):
        self.coordinator = coordinator
        self.entities = coordinator.entities
        if stale_after_seconds is None:
            stale_after_seconds = (
                coordinator.lock_ttl_seconds
                + settings.coordinator.stale_run_grace_seconds
            )
        self.stale_after = timedelta(seconds=stale_after_seconds)

    def _is_stale(self, started_at: Optional[datetime], now: datetime) -> bool:
        return started_at is None or now - started_at >= self.stale_after

    async def _still_stranded(self, job: Job) -> bool:
        """Re-read right before a write: still queued and still unlocked"""
        if await self.coordinator.lock_holder(job.board, job.job_id):
            return False
        current = await self.entities.get_job(job.board, job.job_id)
        return current is not None and current.status is JobStatus.QUEUED

    async def sweep(self, dry_run: bool = False) -> ReconcileReport:
        report = ReconcileReport(dry_run=dry_run)
        now = utcnow()

        for job in await self.entities.list_jobs(status=JobStatus.QUEUED):
            report.examined += 1
            if await self.coordinator.lock_holder(job.board, job.job_id):
                report.locked += 1
                continue

            runs = await self.coordinator.list_runs(job_id=job.job_id, board=job.board)
            active = [run for run in runs if run.is_active]

            if not active:
                if dry_run:
                    report.reverted_jobs.append(job.composite_key)
                elif await self._still_stranded(job):
                    report.reverted_jobs.append(job.composite_key)
                    await self.entities.update_job_status(
                        job.board, job.job_id, JobStatus.DISCOVERED
                    )
                else:
                    report.skipped.append(job.composite_key)
                continue

            stale = [run for run in active if self._is_stale(run.started_at, now)]
            if len(stale) < len(active):
                report.waiting.append(job.composite_key)
            for run in stale:
                if not dry_run:
                    # A claim landing mid-sweep owns the lock a failure would release
                    if not await self._still_stranded(job):
                        report.skipped.append(job.composite_key)
                        break
                    await self.coordinator.update_run(
                        run.run_id, RunStatus.FAILED, error=LOCK_EXPIRED_ERROR
                    )
                report.expired_runs.append(run.run_id)

        logger.info("Lock reconciliation finished", **report.to_dict())
        return report
