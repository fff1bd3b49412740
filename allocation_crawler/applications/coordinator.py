"""
Application Coordinator - Lock-protected job/run state machine
Guarantees at most one in-flight application per job across agents
"""

from typing import Optional

import structlog

from config import settings
from allocation_crawler.core.serialization import encode_json, encode_timestamp, utcnow
from allocation_crawler.core.store import KeyValueStore
from allocation_crawler.entities.models import JobStatus
from allocation_crawler.entities.store import EntityStore
from .models import (
    CreateRunOutcome,
    CreateRunResult,
    JobRun,
    RunArtifacts,
    RunStatus,
    TERMINAL_RUN_STATUSES,
    merge_artifacts,
)

logger = structlog.get_logger(__name__)


class ApplicationCoordinator:
    """
    Coordinates application runs against jobs.

    Job:  discovered --create_run--> queued
          queued --update_run(success)--> applied
          queued --update_run(failed, no other active run)--> discovered
    Run:  pending --> submitted --> success | failed

    The apply lock (``SET NX EX``) is the only point of mutual exclusion:
    everything after a successful acquisition is plain read-then-write,
    which is safe because only the lock holder gets past the first step
    for a given job.
    """

    def __init__(
        self,
        store: KeyValueStore,
        entities: Optional[EntityStore] = None,
        lock_ttl_seconds: Optional[int] = None,
    ):
        self.store = store
        self.keys = store.keys
        self.entities = entities or EntityStore(store)
        self.lock_ttl_seconds = lock_ttl_seconds or settings.coordinator.lock_ttl_seconds

    # ==================================================================
    # Apply lock
    # ==================================================================

    async def lock_holder(self, board: str, job_id: str) -> Optional[str]:
        """Run id currently holding the apply lock, if any"""
        return await self.store.get(self.keys.apply_lock(board, job_id))

    async def release_lock(
        self,
        board: str,
        job_id: str,
        run_id: Optional[str] = None,
    ) -> bool:
        """
        Release the apply lock for a job.

        Without ``run_id`` the lock is deleted whoever holds it; with
        ``run_id`` it is only deleted while that run holds it.
        """
        lock_key = self.keys.apply_lock(board, job_id)
        if run_id is None:
            released = bool(await self.store.delete(lock_key))
        else:
            released = await self.store.delete_if_equals(lock_key, run_id)

        if released:
            logger.debug("Apply lock released", board=board, job_id=job_id, run_id=run_id)
        return released

    # ==================================================================
    # Runs
    # ==================================================================

    async def create_run(
        self,
        run_id: str,
        job_id: str,
        board: str,
        variant_id: str,
        artifacts: Optional[RunArtifacts] = None,
    ) -> CreateRunResult:
        """
        Claim a job for an application run.

        Steps:
            1. Acquire the apply lock, or report a conflict
            2. Verify the job exists and is discovered/queued
            3. Write the run and its index entries
            4. Move a discovered job to queued
        """
        lock_key = self.keys.apply_lock(board, job_id)

        if not await self.store.set_if_absent(lock_key, run_id, self.lock_ttl_seconds):
            holder = await self.store.get(lock_key)
            logger.info(
                "Apply lock already held",
                board=board,
                job_id=job_id,
                run_id=run_id,
                holder=holder,
            )
            return CreateRunResult(
                outcome=CreateRunOutcome.CONFLICT,
                board=board,
                job_id=job_id,
                lock_holder=holder,
            )

        job = await self.entities.get_job(board, job_id)
        if job is None:
            await self.store.delete(lock_key)
            logger.info("Run rejected, job not found", board=board, job_id=job_id)
            return CreateRunResult(
                outcome=CreateRunOutcome.NOT_FOUND,
                board=board,
                job_id=job_id,
            )

        # Holding the lock does not mean the job may still be applied to
        if not job.is_applicable:
            await self.store.delete(lock_key)
            logger.info(
                "Run rejected, job not applicable",
                board=board,
                job_id=job_id,
                status=job.status.value,
            )
            return CreateRunResult(
                outcome=CreateRunOutcome.INVALID_STATE,
                board=board,
                job_id=job_id,
                job_status=job.status.value,
            )

        run = JobRun(
            run_id=run_id,
            job_id=job_id,
            board=board,
            variant_id=variant_id,
            status=RunStatus.PENDING,
            started_at=utcnow(),
            artifacts=merge_artifacts(None, artifacts),
        )
        async with self.store.batch() as batch:
            batch.hset(self.keys.run(run_id), run.to_hash())
            batch.sadd(self.keys.job_runs_index(job_id), run_id)
            batch.sadd(self.keys.runs_index(), run_id)

        if job.status is JobStatus.DISCOVERED:
            await self.entities.update_job_status(board, job_id, JobStatus.QUEUED)

        logger.info(
            "Run created",
            board=board,
            job_id=job_id,
            run_id=run_id,
            variant_id=variant_id,
        )
        return CreateRunResult(
            outcome=CreateRunOutcome.CREATED,
            board=board,
            job_id=job_id,
            run=run,
            lock_holder=run_id,
        )

    async def update_run(
        self,
        run_id: str,
        status: RunStatus,
        error: Optional[str] = None,
        artifacts: Optional[RunArtifacts] = None,
    ) -> Optional[JobRun]:
        """
        Record run progress or outcome and apply its job-level effects.

        On success: job -> applied, lock released.
        On failure: a queued job -> discovered unless another run of the
        job is still active. The lock is released unconditionally either
        way, so a new claim is possible once the job status permits it.
        Returns None if the run does not exist.
        """
        key = self.keys.run(run_id)
        run = JobRun.from_hash(await self.store.hgetall(key))
        if run is None:
            return None

        status = RunStatus(status)
        fields = {"status": status.value}
        if status in TERMINAL_RUN_STATUSES:
            fields["completed_at"] = encode_timestamp(utcnow())
        if error:
            fields["error"] = error
        if artifacts:
            fields["artifacts"] = encode_json(merge_artifacts(run.artifacts, artifacts))

        await self.store.hset(key, fields)

        if status is RunStatus.SUCCESS:
            await self._on_success(run)
        elif status is RunStatus.FAILED:
            await self._on_failure(run, error)

        logger.info("Run updated", run_id=run_id, status=status.value)
        return JobRun.from_hash(await self.store.hgetall(key))

    async def _on_success(self, run: JobRun) -> None:
        job = await self.entities.update_job_status(run.board, run.job_id, JobStatus.APPLIED)
        if job is None:
            logger.warning(
                "Run succeeded for a job that no longer exists",
                board=run.board,
                job_id=run.job_id,
                run_id=run.run_id,
            )
        await self.release_lock(run.board, run.job_id)

    async def _on_failure(self, run: JobRun, error: Optional[str]) -> None:
        siblings = await self.list_runs(job_id=run.job_id, board=run.board)
        has_active_sibling = any(
            sibling.run_id != run.run_id and sibling.is_active for sibling in siblings
        )

        if has_active_sibling:
            logger.info(
                "Run failed, job kept queued for active sibling run",
                board=run.board,
                job_id=run.job_id,
                run_id=run.run_id,
            )
        else:
            job = await self.entities.get_job(run.board, run.job_id)
            # Only a queued job becomes claimable again
            if job is not None and job.status is JobStatus.QUEUED:
                await self.entities.update_job_status(
                    run.board, run.job_id, JobStatus.DISCOVERED
                )
            logger.info(
                "Run failed",
                board=run.board,
                job_id=run.job_id,
                run_id=run.run_id,
                error=error,
            )

        await self.release_lock(run.board, run.job_id)

    async def get_run(self, run_id: str) -> Optional[JobRun]:
        return JobRun.from_hash(await self.store.hgetall(self.keys.run(run_id)))

    async def list_runs(
        self,
        job_id: Optional[str] = None,
        board: Optional[str] = None,
    ) -> list[JobRun]:
        """
        Runs for a job (optionally narrowed to one board), or every run.

        Index entries whose hash has vanished are dropped.
        """
        index = self.keys.job_runs_index(job_id) if job_id else self.keys.runs_index()
        run_ids = sorted(await self.store.smembers(index))
        hashes = await self.store.hgetall_many([self.keys.run(r) for r in run_ids])

        runs = [run for run in map(JobRun.from_hash, hashes) if run is not None]
        if board:
            runs = [run for run in runs if run.board == board]
        return sorted(runs, key=lambda run: (run.started_at is None, run.started_at, run.run_id))
