"""
Entity Store - Boards, jobs and users over the key-value store
Keeps every secondary index consistent with its authoritative hash
"""

from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional, Sequence

import structlog

from allocation_crawler.core.exceptions import InvalidInputError
from allocation_crawler.core.keys import composite_key, split_composite_key
from allocation_crawler.core.serialization import encode_timestamp, utcnow
from allocation_crawler.core.store import Batch, KeyValueStore
from .indexes import job_index_delta
from .models import Board, Job, JobStatus, NewJob, User
from .tags import TagClassifier, extract_tags

logger = structlog.get_logger(__name__)


class EntityStore:
    """
    CRUD and index maintenance for boards, jobs and users.

    Nothing is cached between calls: every operation reads fresh state,
    mutates it and writes it back in one batch.
    """

    def __init__(
        self,
        store: KeyValueStore,
        classifier: TagClassifier = extract_tags,
    ):
        self.store = store
        self.keys = store.keys
        self.classifier = classifier

    # ==================================================================
    # Boards
    # ==================================================================

    async def add_board(self, board_id: str, company: str, ats: str) -> Board:
        """Register a board, overwriting any previous record"""
        board = Board(id=board_id, company=company, ats=ats, created_at=utcnow())
        async with self.store.batch() as batch:
            batch.hset(self.keys.board(board_id), board.to_hash())
            batch.sadd(self.keys.boards_index(), board_id)

        logger.info("Board registered", board=board_id, ats=ats)
        return board

    async def get_board(self, board_id: str) -> Optional[Board]:
        return Board.from_hash(await self.store.hgetall(self.keys.board(board_id)))

    async def list_boards(self) -> list[Board]:
        board_ids = sorted(await self.store.smembers(self.keys.boards_index()))
        hashes = await self.store.hgetall_many([self.keys.board(b) for b in board_ids])
        return [board for board in map(Board.from_hash, hashes) if board is not None]

    async def remove_board(self, board_id: str) -> bool:
        """
        Delete a board and cascade to its jobs, their index memberships,
        their runs and their apply locks.

        Returns False if the board does not exist.
        """
        if not await self.store.exists(self.keys.board(board_id)):
            return False

        job_ids = sorted(await self.store.smembers(self.keys.board_jobs_index(board_id)))
        jobs = await self._load_jobs([(board_id, job_id) for job_id in job_ids])
        run_ids = {
            job_id: await self._run_ids_for_job(board_id, job_id) for job_id in job_ids
        }

        async with self.store.batch() as batch:
            for job_id, job in zip(job_ids, jobs):
                self._queue_job_removal(batch, board_id, job_id, job, run_ids[job_id])
            batch.delete(self.keys.board_jobs_index(board_id), self.keys.board(board_id))
            batch.srem(self.keys.boards_index(), board_id)

        logger.info("Board removed", board=board_id, jobs_removed=len(job_ids))
        return True

    # ==================================================================
    # Jobs
    # ==================================================================

    def _build_job(self, new_job: NewJob, now: datetime) -> Job:
        if not new_job.job_id or not new_job.board:
            raise InvalidInputError("job_id and board are required")
        return Job(
            job_id=new_job.job_id,
            board=new_job.board,
            title=new_job.title or "",
            url=new_job.url or "",
            location=new_job.location or "",
            department=new_job.department or "",
            tags=self.classifier(new_job.title or "", new_job.department or ""),
            status=JobStatus.DISCOVERED,
            discovered_at=now,
            updated_at=now,
        )

    def _queue_job_insert(self, batch: Batch, job: Job) -> None:
        batch.hset(self.keys.job(job.board, job.job_id), job.to_hash())
        job_index_delta(self.keys, None, job).apply(batch)

    async def add_job(self, new_job: NewJob) -> Job:
        """
        Store a job as ``discovered`` and index it.

        Not idempotent: an existing record is overwritten, resetting its
        status and tags. Use add_jobs_bulk to skip existing jobs.
        """
        job = self._build_job(new_job, utcnow())
        previous = await self.get_job(job.board, job.job_id)

        async with self.store.batch() as batch:
            batch.hset(self.keys.job(job.board, job.job_id), job.to_hash())
            # An overwritten record may leave stale status and tag memberships
            job_index_delta(self.keys, previous, job).apply(batch)

        logger.info("Job added", board=job.board, job_id=job.job_id, tags=sorted(job.tags))
        return job

    async def add_jobs_bulk(self, new_jobs: Iterable[NewJob]) -> list[Job]:
        """
        Insert only jobs that do not exist yet; existing jobs keep their
        status and history. Returns the inserted jobs.
        """
        unique: dict[str, NewJob] = {}
        for new_job in new_jobs:
            unique.setdefault(new_job.composite_key, new_job)
        if not unique:
            return []

        candidates = list(unique.values())
        exists = await self.store.exists_many(
            [self.keys.job(j.board, j.job_id) for j in candidates]
        )
        fresh = [j for j, found in zip(candidates, exists) if not found]

        skipped = len(candidates) - len(fresh)
        if skipped:
            logger.debug("Skipping existing jobs", count=skipped)
        if not fresh:
            return []

        now = utcnow()
        inserted = [self._build_job(j, now) for j in fresh]
        async with self.store.batch() as batch:
            for job in inserted:
                self._queue_job_insert(batch, job)

        logger.info("Jobs bulk added", inserted=len(inserted), skipped=skipped)
        return inserted

    async def get_job(self, board: str, job_id: str) -> Optional[Job]:
        return Job.from_hash(await self.store.hgetall(self.keys.job(board, job_id)))

    async def remove_job(self, board: str, job_id: str) -> bool:
        """Delete a job, its index memberships, runs and apply lock"""
        job = await self.get_job(board, job_id)
        if job is None:
            return False

        run_ids = await self._run_ids_for_job(board, job_id)
        async with self.store.batch() as batch:
            self._queue_job_removal(batch, board, job_id, job, run_ids)

        logger.info("Job removed", board=board, job_id=job_id)
        return True

    async def update_job_status(
        self,
        board: str,
        job_id: str,
        status: JobStatus,
    ) -> Optional[Job]:
        """
        Move a job to ``status``, reassigning its status-index membership.

        Transition legality is the caller's concern.
        """
        job = await self.get_job(board, job_id)
        if job is None:
            return None

        status = JobStatus(status)
        updated = replace(job, status=status, updated_at=utcnow())

        async with self.store.batch() as batch:
            batch.hset(
                self.keys.job(board, job_id),
                {"status": status.value, "updated_at": encode_timestamp(updated.updated_at)},
            )
            job_index_delta(self.keys, job, updated).apply(batch)

        logger.info(
            "Job status updated",
            board=board,
            job_id=job_id,
            old_status=job.status.value,
            new_status=status.value,
        )
        return updated

    async def list_jobs(
        self,
        board: Optional[str] = None,
        status: Optional[JobStatus] = None,
        tag: Optional[str] = None,
    ) -> list[Job]:
        """
        List jobs matching every given filter.

        Entries whose hash has vanished are dropped rather than reported.
        """
        filter_sets: list[str] = []
        if status:
            filter_sets.append(self.keys.job_status_index(JobStatus(status)))
        if tag:
            filter_sets.append(self.keys.tag_index(tag))

        if board:
            job_ids = await self.store.smembers(self.keys.board_jobs_index(board))
            members = {composite_key(board, job_id) for job_id in job_ids}
            if filter_sets:
                members &= await self.store.sinter(filter_sets)
        elif filter_sets:
            members = await self.store.sinter(filter_sets)
        else:
            members = set()
            for board_id in await self.store.smembers(self.keys.boards_index()):
                job_ids = await self.store.smembers(self.keys.board_jobs_index(board_id))
                members.update(composite_key(board_id, job_id) for job_id in job_ids)

        return await self._hydrate_jobs(members)

    async def list_jobs_for_user(
        self,
        user_id: str,
        board: Optional[str] = None,
        status: JobStatus = JobStatus.DISCOVERED,
    ) -> list[Job]:
        """
        Jobs sharing at least one tag with the user, in ``status``.

        A user without tags matches nothing.
        """
        user = await self.get_user(user_id)
        if user is None or not user.tags:
            return []

        candidates = await self.store.sunion(
            [self.keys.tag_index(tag) for tag in sorted(user.tags)]
        )
        candidates &= await self.store.smembers(
            self.keys.job_status_index(JobStatus(status))
        )
        if board:
            prefix = f"{board}:"
            candidates = {member for member in candidates if member.startswith(prefix)}

        return await self._hydrate_jobs(candidates)

    async def _hydrate_jobs(self, members: Iterable[str]) -> list[Job]:
        pairs = [split_composite_key(member) for member in sorted(members)]
        return [job for job in await self._load_jobs(pairs) if job is not None]

    async def _load_jobs(self, pairs: Sequence[tuple[str, str]]) -> list[Optional[Job]]:
        hashes = await self.store.hgetall_many(
            [self.keys.job(board, job_id) for board, job_id in pairs]
        )
        return [Job.from_hash(data) for data in hashes]

    async def _run_ids_for_job(self, board: str, job_id: str) -> list[str]:
        """Runs indexed under ``job_id`` that belong to ``board``"""
        run_ids = sorted(await self.store.smembers(self.keys.job_runs_index(job_id)))
        hashes = await self.store.hgetall_many([self.keys.run(r) for r in run_ids])
        # Runs index is keyed by bare job id, so skip other boards' runs
        return [
            run_id
            for run_id, data in zip(run_ids, hashes)
            if not data or data.get("board") == board
        ]

    def _queue_job_removal(
        self,
        batch: Batch,
        board: str,
        job_id: str,
        job: Optional[Job],
        run_ids: Sequence[str],
    ) -> None:
        if job is not None:
            job_index_delta(self.keys, job, None).apply(batch)
        else:
            batch.srem(self.keys.board_jobs_index(board), job_id)
        batch.delete(self.keys.job(board, job_id), self.keys.apply_lock(board, job_id))
        if run_ids:
            batch.delete(*[self.keys.run(run_id) for run_id in run_ids])
            batch.srem(self.keys.job_runs_index(job_id), *run_ids)
            batch.srem(self.keys.runs_index(), *run_ids)

    # ==================================================================
    # Users
    # ==================================================================

    async def upsert_user(
        self,
        user_id: str,
        resumes: Sequence[str] = (),
        answers: Optional[dict[str, str]] = None,
        tags: Iterable[str] = (),
    ) -> User:
        user = User(
            id=user_id,
            resumes=list(resumes),
            answers=dict(answers or {}),
            tags=frozenset(tags),
            updated_at=utcnow(),
        )
        async with self.store.batch() as batch:
            batch.hset(self.keys.user(user_id), user.to_hash())
            batch.sadd(self.keys.users_index(), user_id)

        logger.info("User saved", user_id=user_id, tags=sorted(user.tags))
        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        return User.from_hash(await self.store.hgetall(self.keys.user(user_id)))

    async def list_users(self) -> list[User]:
        user_ids = sorted(await self.store.smembers(self.keys.users_index()))
        hashes = await self.store.hgetall_many([self.keys.user(u) for u in user_ids])
        return [user for user in map(User.from_hash, hashes) if user is not None]
