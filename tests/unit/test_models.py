"""Unit tests for entity and run models"""

from datetime import datetime, timezone

import pytest

from allocation_crawler.applications.models import (
    CreateRunOutcome,
    CreateRunResult,
    JobRun,
    RunStatus,
    merge_artifacts,
)
from allocation_crawler.core.exceptions import (
    ApplyLockConflictError,
    InvalidJobStateError,
    JobNotFoundError,
)
from allocation_crawler.entities.models import Board, Job, JobStatus, User


@pytest.mark.unit
class TestJobModel:
    """Tests for Job hash encoding"""

    def test_hash_roundtrip(self):
        """A job survives encoding to a Redis hash"""
        now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        job = Job(
            job_id="42",
            board="ramp",
            title="Quant Trader",
            tags=frozenset({"quant"}),
            status=JobStatus.QUEUED,
            discovered_at=now,
            updated_at=now,
        )
        assert Job.from_hash(job.to_hash()) == job

    def test_hash_fields_are_strings(self):
        """Every hash field is a string"""
        data = Job(job_id="42", board="ramp").to_hash()
        assert all(isinstance(value, str) for value in data.values())
        assert data["status"] == "discovered"
        assert data["tags"] == "[]"

    def test_empty_hash_is_none(self):
        """A vanished record hydrates to None"""
        assert Job.from_hash({}) is None

    def test_to_dict_materializes_tags(self):
        """Tags leave the boundary as a sorted list"""
        job = Job(job_id="42", board="ramp", tags=frozenset({"senior", "quant"}))
        assert job.to_dict()["tags"] == ["quant", "senior"]

    def test_is_applicable(self):
        """Only discovered and queued jobs may be claimed"""
        assert Job(job_id="1", board="b", status=JobStatus.DISCOVERED).is_applicable
        assert Job(job_id="1", board="b", status=JobStatus.QUEUED).is_applicable
        for status in (JobStatus.APPLIED, JobStatus.FOUND, JobStatus.REJECTED, JobStatus.EXPIRED):
            assert not Job(job_id="1", board="b", status=status).is_applicable


@pytest.mark.unit
class TestBoardAndUserModels:
    """Tests for Board and User encodings"""

    def test_board_roundtrip(self):
        board = Board(id="ramp", company="Ramp", ats="ashby")
        assert Board.from_hash(board.to_hash()) == board

    def test_user_containers(self):
        """Resumes, answers and tags come back as containers"""
        user = User(
            id="u1",
            resumes=["s3://resumes/u1.pdf"],
            answers={"visa": "no"},
            tags=frozenset({"quant", "ml"}),
        )
        restored = User.from_hash(user.to_hash())
        assert restored.resumes == ["s3://resumes/u1.pdf"]
        assert restored.answers == {"visa": "no"}
        assert restored.tags == frozenset({"quant", "ml"})
        assert restored.to_dict()["tags"] == ["ml", "quant"]


@pytest.mark.unit
class TestJobRunModel:
    """Tests for JobRun"""

    def test_roundtrip_with_artifacts(self):
        run = JobRun(
            run_id="r1",
            job_id="42",
            board="ramp",
            variant_id="v1",
            started_at=datetime(2024, 1, 15, tzinfo=timezone.utc),
            artifacts={"resume_url": "a", "answers": {"x": "1"}},
        )
        assert JobRun.from_hash(run.to_hash()) == run

    def test_absent_optionals(self):
        """Empty error and artifacts fields decode to None"""
        run = JobRun.from_hash(JobRun(run_id="r1", job_id="42", board="ramp", variant_id="v1").to_hash())
        assert run.error is None
        assert run.artifacts is None
        assert run.completed_at is None

    def test_active(self):
        def run(status):
            return JobRun(run_id="r", job_id="j", board="b", variant_id="v", status=status)

        assert run(RunStatus.PENDING).is_active
        assert run(RunStatus.SUBMITTED).is_active
        assert not run(RunStatus.FAILED).is_active


@pytest.mark.unit
class TestMergeArtifacts:
    """Tests for field-wise artifact merging"""

    def test_adds_fields(self):
        """New fields are added without dropping old ones"""
        assert merge_artifacts({"resume_url": "a"}, {"notes": "b"}) == {
            "resume_url": "a",
            "notes": "b",
        }

    def test_answers_merged_key_wise(self):
        """Nested answers accumulate across updates"""
        merged = merge_artifacts({"answers": {"x": "1"}}, {"answers": {"y": "2"}})
        assert merged == {"answers": {"x": "1", "y": "2"}}

    def test_later_value_wins(self):
        merged = merge_artifacts({"notes": "old", "answers": {"x": "1"}}, {"notes": "new", "answers": {"x": "2"}})
        assert merged == {"notes": "new", "answers": {"x": "2"}}

    def test_none_never_erases(self):
        """None in an update leaves the stored field alone"""
        assert merge_artifacts({"resume_url": "a"}, {"resume_url": None}) == {"resume_url": "a"}

    def test_empty_update_keeps_existing(self):
        assert merge_artifacts({"resume_url": "a"}, None) == {"resume_url": "a"}
        assert merge_artifacts(None, {}) is None

    def test_unknown_keys_kept(self):
        assert merge_artifacts(None, {"screenshot": "s3://x.png"}) == {"screenshot": "s3://x.png"}


@pytest.mark.unit
class TestCreateRunResult:
    """Tests for typed claim outcomes"""

    def test_created(self):
        run = JobRun(run_id="r1", job_id="42", board="ramp", variant_id="v1")
        result = CreateRunResult(CreateRunOutcome.CREATED, "ramp", "42", run=run)
        assert result.ok
        assert result.raise_for_outcome() is run

    def test_conflict_raises(self):
        result = CreateRunResult(CreateRunOutcome.CONFLICT, "ramp", "42", lock_holder="r1")
        assert not result.ok
        with pytest.raises(ApplyLockConflictError) as exc_info:
            result.raise_for_outcome()
        assert exc_info.value.holder == "r1"

    def test_not_found_raises(self):
        result = CreateRunResult(CreateRunOutcome.NOT_FOUND, "ramp", "42")
        with pytest.raises(JobNotFoundError):
            result.raise_for_outcome()

    def test_invalid_state_raises(self):
        result = CreateRunResult(CreateRunOutcome.INVALID_STATE, "ramp", "42", job_status="applied")
        with pytest.raises(InvalidJobStateError) as exc_info:
            result.raise_for_outcome()
        assert exc_info.value.status == "applied"

    def test_to_dict(self):
        result = CreateRunResult(CreateRunOutcome.CONFLICT, "ramp", "42", lock_holder="r1")
        assert result.to_dict() == {
            "outcome": "conflict",
            "board": "ramp",
            "job_id": "42",
            "run": None,
            "lock_holder": "r1",
            "job_status": None,
        }
