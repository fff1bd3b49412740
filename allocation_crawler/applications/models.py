"""
Application Run Models
Job runs, their artifacts, and typed outcomes of run creation
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, TypedDict

from allocation_crawler.core.exceptions import (
    ApplyLockConflictError,
    InvalidJobStateError,
    JobNotFoundError,
)
from allocation_crawler.core.serialization import (
    decode_json,
    decode_timestamp,
    encode_json,
    encode_timestamp,
)


class RunStatus(str, enum.Enum):
    """Application run status"""

    PENDING = "pending"
    SUBMITTED = "submitted"
    SUCCESS = "success"
    FAILED = "failed"


ACTIVE_RUN_STATUSES = frozenset({RunStatus.PENDING, RunStatus.SUBMITTED})
TERMINAL_RUN_STATUSES = frozenset({RunStatus.SUCCESS, RunStatus.FAILED})


class RunArtifacts(TypedDict, total=False):
    """Evidence gathered while applying; unknown keys are kept as-is"""

    resume_url: str
    cover_letter: str
    answers: dict[str, str]
    confirmation_url: str
    notes: str


def merge_artifacts(
    existing: Optional[RunArtifacts],
    update: Optional[RunArtifacts],
) -> Optional[RunArtifacts]:
    """
    Field-wise merge of a partial artifact update into stored artifacts.

    Later values win per field, ``None`` values never erase a stored field,
    and the nested ``answers`` map is merged key by key.
    """
    if not update:
        return existing
    incoming = {key: value for key, value in update.items() if value is not None}
    merged = {**(existing or {}), **incoming}

    old_answers = (existing or {}).get("answers")
    new_answers = incoming.get("answers")
    if isinstance(old_answers, dict) and isinstance(new_answers, dict):
        merged["answers"] = {**old_answers, **new_answers}
    return merged


@dataclass
class JobRun:
    """One attempt by an agent to apply to a job"""

    run_id: str
    job_id: str
    board: str
    variant_id: str
    status: RunStatus = RunStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    artifacts: Optional[RunArtifacts] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_RUN_STATUSES

    def to_hash(self) -> dict[str, str]:
        return {
            "run_id": self.run_id,
            "job_id": self.job_id,
            "board": self.board,
            "variant_id": self.variant_id,
            "status": self.status.value,
            "started_at": encode_timestamp(self.started_at),
            "completed_at": encode_timestamp(self.completed_at),
            "error": self.error or "",
            "artifacts": encode_json(self.artifacts),
        }

    @classmethod
    def from_hash(cls, data: dict[str, str]) -> Optional["JobRun"]:
        if not data.get("run_id"):
            return None
        return cls(
            run_id=data["run_id"],
            job_id=data.get("job_id", ""),
            board=data.get("board", ""),
            variant_id=data.get("variant_id", ""),
            status=RunStatus(data.get("status") or RunStatus.PENDING.value),
            started_at=decode_timestamp(data.get("started_at")),
            completed_at=decode_timestamp(data.get("completed_at")),
            error=data.get("error") or None,
            artifacts=decode_json(data.get("artifacts")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "job_id": self.job_id,
            "board": self.board,
            "variant_id": self.variant_id,
            "status": self.status.value,
            "started_at": encode_timestamp(self.started_at),
            "completed_at": encode_timestamp(self.completed_at) or None,
            "error": self.error,
            "artifacts": self.artifacts,
        }


class CreateRunOutcome(str, enum.Enum):
    """Why a run was or was not created"""

    CREATED = "created"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"


@dataclass
class CreateRunResult:
    """
    Result of claiming a job for an application run.

    Conflict, not-found and invalid-state are expected outcomes, so they
    are returned rather than raised. ``raise_for_outcome()`` converts them
    to exceptions for callers that prefer that style.
    """

    outcome: CreateRunOutcome
    board: str
    job_id: str
    run: Optional[JobRun] = None
    lock_holder: Optional[str] = None
    job_status: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is CreateRunOutcome.CREATED

    def raise_for_outcome(self) -> JobRun:
        if self.outcome is CreateRunOutcome.CONFLICT:
            raise ApplyLockConflictError(self.board, self.job_id, self.lock_holder)
        if self.outcome is CreateRunOutcome.NOT_FOUND:
            raise JobNotFoundError(self.board, self.job_id)
        if self.outcome is CreateRunOutcome.INVALID_STATE:
            raise InvalidJobStateError(self.board, self.job_id, self.job_status or "")
        return self.run

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "board": self.board,
            "job_id": self.job_id,
            "run": self.run.to_dict() if self.run else None,
            "lock_holder": self.lock_holder,
            "job_status": self.job_status,
        }
