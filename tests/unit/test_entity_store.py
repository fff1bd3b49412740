"""Unit tests for the Entity Store"""

import pytest
import pytest_asyncio

from allocation_crawler.core.exceptions import InvalidInputError
from allocation_crawler.entities.models import JobStatus, NewJob


async def status_memberships(redis_client, member: str) -> list[str]:
    """Every status index set containing ``member``"""
    found = []
    for status in JobStatus:
        if await redis_client.sismember(f"idx:job_status:{status.value}", member):
            found.append(status.value)
    return found


@pytest.mark.unit
class TestBoards:
    """Tests for board CRUD"""

    @pytest.mark.asyncio
    async def test_add_and_get(self, entities):
        board = await entities.add_board("ramp", "Ramp", "ashby")
        assert board.created_at is not None

        stored = await entities.get_board("ramp")
        assert stored.company == "Ramp"
        assert stored.ats == "ashby"

    @pytest.mark.asyncio
    async def test_list_boards_sorted(self, entities):
        await entities.add_board("vercel", "Vercel", "greenhouse")
        await entities.add_board("coinbase", "Coinbase", "greenhouse")
        assert [b.id for b in await entities.list_boards()] == ["coinbase", "vercel"]

    @pytest.mark.asyncio
    async def test_remove_missing_board(self, entities):
        assert await entities.remove_board("nope") is False


@pytest.mark.unit
class TestAddJob:
    """Tests for single job insertion"""

    @pytest.mark.asyncio
    async def test_new_job_is_discovered_and_tagged(self, entities, make_job, redis_client):
        job = await entities.add_job(make_job())

        assert job.status is JobStatus.DISCOVERED
        assert "quant" in job.tags
        assert job.discovered_at == job.updated_at
        assert await redis_client.sismember("idx:board_jobs:ramp", "42")
        assert await redis_client.sismember("idx:tag:quant", "ramp:42")
        assert await status_memberships(redis_client, "ramp:42") == ["discovered"]

    @pytest.mark.asyncio
    async def test_overwrite_resets_status_and_reindexes(self, entities, make_job, redis_client):
        """add_job is not idempotent; stale memberships are removed"""
        await entities.add_job(make_job())
        await entities.update_job_status("ramp", "42", JobStatus.APPLIED)

        job = await entities.add_job(make_job(title="Product Designer", department="Design"))

        assert job.status is JobStatus.DISCOVERED
        assert job.tags == frozenset()
        assert not await redis_client.sismember("idx:tag:quant", "ramp:42")
        assert await status_memberships(redis_client, "ramp:42") == ["discovered"]

    @pytest.mark.asyncio
    async def test_requires_identifiers(self, entities):
        with pytest.raises(InvalidInputError):
            await entities.add_job(NewJob(job_id="", board="ramp"))


@pytest.mark.unit
class TestAddJobsBulk:
    """Tests for bulk insertion"""

    @pytest.mark.asyncio
    async def test_inserts_new_jobs(self, entities, make_job):
        inserted = await entities.add_jobs_bulk([make_job("1"), make_job("2")])
        assert sorted(job.job_id for job in inserted) == ["1", "2"]
        assert len(await entities.list_jobs(board="ramp")) == 2

    @pytest.mark.asyncio
    async def test_skips_existing(self, entities, make_job):
        """An existing job keeps its status and tags"""
        await entities.add_job(make_job())
        await entities.update_job_status("ramp", "42", JobStatus.APPLIED)

        inserted = await entities.add_jobs_bulk([
            make_job(title="Office Manager", department="General"),
            make_job("43"),
        ])

        assert [job.job_id for job in inserted] == ["43"]
        existing = await entities.get_job("ramp", "42")
        assert existing.status is JobStatus.APPLIED
        assert existing.title == "Quant Trader"
        assert existing.tags == frozenset({"quant"})

    @pytest.mark.asyncio
    async def test_duplicates_in_input_inserted_once(self, entities, make_job):
        inserted = await entities.add_jobs_bulk([make_job(), make_job(title="Other")])
        assert len(inserted) == 1
        assert inserted[0].title == "Quant Trader"

    @pytest.mark.asyncio
    async def test_empty(self, entities):
        assert await entities.add_jobs_bulk([]) == []


@pytest.mark.unit
class TestUpdateJobStatus:
    """Tests for status transitions and status-index consistency"""

    @pytest.mark.asyncio
    async def test_moves_status_membership(self, entities, make_job, redis_client):
        await entities.add_job(make_job())

        for status in (JobStatus.QUEUED, JobStatus.APPLIED, JobStatus.FOUND, JobStatus.DISCOVERED):
            job = await entities.update_job_status("ramp", "42", status)
            assert job.status is status
            assert await status_memberships(redis_client, "ramp:42") == [status.value]
            assert (await entities.get_job("ramp", "42")).status is status

    @pytest.mark.asyncio
    async def test_accepts_plain_string(self, entities, make_job):
        await entities.add_job(make_job())
        job = await entities.update_job_status("ramp", "42", "rejected")
        assert job.status is JobStatus.REJECTED

    @pytest.mark.asyncio
    async def test_missing_job(self, entities):
        assert await entities.update_job_status("ramp", "nope", JobStatus.QUEUED) is None

    @pytest.mark.asyncio
    async def test_stamps_updated_at(self, entities, make_job):
        job = await entities.add_job(make_job())
        updated = await entities.update_job_status("ramp", "42", JobStatus.QUEUED)
        assert updated.updated_at >= job.updated_at
        assert updated.discovered_at == job.discovered_at


@pytest.mark.unit
class TestListJobs:
    """Tests for filtered listings"""

    @pytest_asyncio.fixture
    async def seeded(self, entities, make_job):
        await entities.add_board("ramp", "Ramp", "ashby")
        await entities.add_board("vercel", "Vercel", "greenhouse")
        await entities.add_jobs_bulk([
            make_job("1", "ramp", title="Quant Trader", department="Trading"),
            make_job("2", "ramp", title="Software Engineer", department="Platform"),
            make_job("3", "vercel", title="Senior Software Engineer", department="Engineering"),
        ])
        await entities.update_job_status("ramp", "2", JobStatus.APPLIED)
        return entities

    @pytest.mark.asyncio
    async def test_no_filters_lists_every_board(self, seeded):
        keys = [job.composite_key for job in await seeded.list_jobs()]
        assert keys == ["ramp:1", "ramp:2", "vercel:3"]

    @pytest.mark.asyncio
    async def test_board_filter(self, seeded):
        assert [j.job_id for j in await seeded.list_jobs(board="ramp")] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_status_filter(self, seeded):
        jobs = await seeded.list_jobs(status=JobStatus.DISCOVERED)
        assert [j.composite_key for j in jobs] == ["ramp:1", "vercel:3"]

    @pytest.mark.asyncio
    async def test_tag_filter(self, seeded):
        jobs = await seeded.list_jobs(tag="engineering")
        assert [j.composite_key for j in jobs] == ["ramp:2", "vercel:3"]

    @pytest.mark.asyncio
    async def test_combined_filters(self, seeded):
        jobs = await seeded.list_jobs(board="ramp", status=JobStatus.DISCOVERED, tag="quant")
        assert [j.composite_key for j in jobs] == ["ramp:1"]
        assert await seeded.list_jobs(board="vercel", tag="quant") == []

    @pytest.mark.asyncio
    async def test_vanished_hash_dropped(self, seeded, redis_client):
        """An index entry without a hash is silently skipped"""
        await redis_client.delete("job:ramp:1")
        assert [j.job_id for j in await seeded.list_jobs(board="ramp")] == ["2"]


@pytest.mark.unit
class TestRemoval:
    """Tests for job and board removal cascades"""

    @pytest.mark.asyncio
    async def test_remove_job(self, entities, make_job, redis_client):
        await entities.add_job(make_job())
        await redis_client.set("lock:apply:ramp:42", "r1")

        assert await entities.remove_job("ramp", "42") is True
        assert await entities.get_job("ramp", "42") is None
        assert await status_memberships(redis_client, "ramp:42") == []
        assert not await redis_client.sismember("idx:tag:quant", "ramp:42")
        assert not await redis_client.sismember("idx:board_jobs:ramp", "42")
        assert await redis_client.exists("lock:apply:ramp:42") == 0
        assert await entities.remove_job("ramp", "42") is False

    @pytest.mark.asyncio
    async def test_remove_board_cascades(self, entities, coordinator, make_job, redis_client):
        """No trace of the board's jobs remains in any index"""
        await entities.add_board("ramp", "Ramp", "ashby")
        await entities.add_board("vercel", "Vercel", "greenhouse")
        await entities.add_jobs_bulk([
            make_job("1", "ramp"),
            make_job("2", "ramp", title="Senior Engineer", department="Platform"),
            make_job("1", "vercel"),
        ])
        await entities.update_job_status("ramp", "2", JobStatus.APPLIED)
        await coordinator.create_run("r1", "1", "ramp", "v1")
        await coordinator.create_run("r2", "1", "vercel", "v1")

        assert await entities.remove_board("ramp") is True

        assert await entities.list_jobs(board="ramp") == []
        assert await entities.get_board("ramp") is None
        assert await redis_client.exists("idx:board_jobs:ramp") == 0
        assert not await redis_client.sismember("idx:boards", "ramp")
        for status in JobStatus:
            members = await redis_client.smembers(f"idx:job_status:{status.value}")
            assert not any(m.startswith("ramp:") for m in members)
        for tag_key in await redis_client.keys("idx:tag:*"):
            assert not any(m.startswith("ramp:") for m in await redis_client.smembers(tag_key))

        # Runs and locks of the removed board go too; the other board is untouched
        assert await redis_client.exists("run:r1", "lock:apply:ramp:1") == 0
        assert await redis_client.smembers("idx:job_runs:1") == {"r2"}
        assert await redis_client.smembers("idx:runs") == {"r2"}
        assert [j.composite_key for j in await entities.list_jobs()] == ["vercel:1"]


@pytest.mark.unit
class TestUsers:
    """Tests for user profiles and user-filtered retrieval"""

    @pytest.mark.asyncio
    async def test_upsert_and_get(self, entities):
        await entities.upsert_user("u1", resumes=["r.pdf"], answers={"visa": "no"}, tags=["quant"])
        user = await entities.get_user("u1")
        assert user.resumes == ["r.pdf"]
        assert user.answers == {"visa": "no"}
        assert user.tags == frozenset({"quant"})

    @pytest.mark.asyncio
    async def test_upsert_replaces(self, entities):
        await entities.upsert_user("u1", tags=["quant"])
        await entities.upsert_user("u1", tags=["ml"])
        assert (await entities.get_user("u1")).tags == frozenset({"ml"})
        assert [u.id for u in await entities.list_users()] == ["u1"]

    @pytest.mark.asyncio
    async def test_jobs_for_user(self, entities, make_job):
        await entities.add_jobs_bulk([
            make_job("1", "ramp", title="Quant Trader", department="Trading"),
            make_job("2", "ramp", title="ML Researcher", department="Research"),
            make_job("3", "vercel", title="Quant Developer", department="Trading"),
            make_job("4", "ramp", title="Office Manager", department="General"),
        ])
        await entities.update_job_status("ramp", "1", JobStatus.APPLIED)
        await entities.upsert_user("u1", tags=["quant", "research"])

        jobs = await entities.list_jobs_for_user("u1")
        assert [j.composite_key for j in jobs] == ["ramp:2", "vercel:3"]

        jobs = await entities.list_jobs_for_user("u1", board="ramp")
        assert [j.composite_key for j in jobs] == ["ramp:2"]

        jobs = await entities.list_jobs_for_user("u1", status=JobStatus.APPLIED)
        assert [j.composite_key for j in jobs] == ["ramp:1"]

    @pytest.mark.asyncio
    async def test_user_without_tags_matches_nothing(self, entities, make_job):
        await entities.add_job(make_job())
        await entities.upsert_user("u1")
        assert await entities.list_jobs_for_user("u1") == []
        assert await entities.list_jobs_for_user("missing") == []


@pytest.mark.unit
class TestStoredRecordsMatchReturned:
    """Objects handed back by writes equal what a later read returns"""

    @pytest.mark.asyncio
    async def test_add_job(self, entities, make_job):
        job = await entities.add_job(make_job())
        assert await entities.get_job("ramp", "42") == job

    @pytest.mark.asyncio
    async def test_add_jobs_bulk(self, entities, make_job):
        inserted = await entities.add_jobs_bulk([make_job("1"), make_job("2")])
        for job in inserted:
            assert await entities.get_job("ramp", job.job_id) == job

    @pytest.mark.asyncio
    async def test_add_board(self, entities):
        board = await entities.add_board("ramp", "Ramp", "ashby")
        assert await entities.get_board("ramp") == board

    @pytest.mark.asyncio
    async def test_upsert_user(self, entities):
        user = await entities.upsert_user("alice", tags=["quant"])
        assert await entities.get_user("alice") == user
