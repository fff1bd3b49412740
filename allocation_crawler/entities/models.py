"""
Entity Models
Boards, jobs and users as plain records with explicit hash encodings
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from allocation_crawler.core.keys import composite_key
from allocation_crawler.core.serialization import (
    decode_json,
    decode_tags,
    decode_timestamp,
    encode_json,
    encode_tags,
    encode_timestamp,
)


class JobStatus(str, enum.Enum):
    """Job lifecycle status"""

    DISCOVERED = "discovered"
    QUEUED = "queued"
    APPLIED = "applied"
    FOUND = "found"
    REJECTED = "rejected"
    EXPIRED = "expired"


# Only these statuses may be claimed by an application run
APPLICABLE_STATUSES = frozenset({JobStatus.DISCOVERED, JobStatus.QUEUED})


@dataclass
class Board:
    """A registered source of job postings (a company's ATS board)"""

    id: str
    company: str
    ats: str
    created_at: Optional[datetime] = None

    def to_hash(self) -> dict[str, str]:
        return {
            "id": self.id,
            "company": self.company,
            "ats": self.ats,
            "created_at": encode_timestamp(self.created_at),
        }

    @classmethod
    def from_hash(cls, data: dict[str, str]) -> Optional["Board"]:
        if not data.get("id"):
            return None
        return cls(
            id=data["id"],
            company=data.get("company", ""),
            ats=data.get("ats", ""),
            created_at=decode_timestamp(data.get("created_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "company": self.company,
            "ats": self.ats,
            "created_at": encode_timestamp(self.created_at),
        }


@dataclass
class NewJob:
    """Job fields supplied by a caller or crawler, before the store stamps it"""

    job_id: str
    board: str
    title: str = ""
    url: str = ""
    location: str = ""
    department: str = ""

    @property
    def composite_key(self) -> str:
        return composite_key(self.board, self.job_id)


@dataclass
class Job:
    """
    One posting tracked through its application lifecycle.

    ``tags`` is derived from title and department when the job is first
    stored and never recomputed afterwards.
    """

    job_id: str
    board: str
    title: str = ""
    url: str = ""
    location: str = ""
    department: str = ""
    tags: frozenset[str] = field(default_factory=frozenset)
    status: JobStatus = JobStatus.DISCOVERED
    discovered_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def composite_key(self) -> str:
        return composite_key(self.board, self.job_id)

    @property
    def is_applicable(self) -> bool:
        return self.status in APPLICABLE_STATUSES

    def to_hash(self) -> dict[str, str]:
        return {
            "job_id": self.job_id,
            "board": self.board,
            "title": self.title,
            "url": self.url,
            "location": self.location,
            "department": self.department,
            "tags": encode_tags(self.tags),
            "status": self.status.value,
            "discovered_at": encode_timestamp(self.discovered_at),
            "updated_at": encode_timestamp(self.updated_at),
        }

    @classmethod
    def from_hash(cls, data: dict[str, str]) -> Optional["Job"]:
        # A hash without job_id is a vanished or half-written record
        if not data.get("job_id"):
            return None
        return cls(
            job_id=data["job_id"],
            board=data.get("board", ""),
            title=data.get("title", ""),
            url=data.get("url", ""),
            location=data.get("location", ""),
            department=data.get("department", ""),
            tags=decode_tags(data.get("tags")),
            status=JobStatus(data.get("status") or JobStatus.DISCOVERED.value),
            discovered_at=decode_timestamp(data.get("discovered_at")),
            updated_at=decode_timestamp(data.get("updated_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "board": self.board,
            "title": self.title,
            "url": self.url,
            "location": self.location,
            "department": self.department,
            "tags": sorted(self.tags),
            "status": self.status.value,
            "discovered_at": encode_timestamp(self.discovered_at),
            "updated_at": encode_timestamp(self.updated_at),
        }


@dataclass
class User:
    """Interest profile used to filter job retrieval"""

    id: str
    resumes: list[str] = field(default_factory=list)
    answers: dict[str, str] = field(default_factory=dict)
    tags: frozenset[str] = field(default_factory=frozenset)
    updated_at: Optional[datetime] = None

    def to_hash(self) -> dict[str, str]:
        return {
            "id": self.id,
            "resumes": encode_json(list(self.resumes)),
            "answers": encode_json(dict(self.answers)),
            "tags": encode_tags(self.tags),
            "updated_at": encode_timestamp(self.updated_at),
        }

    @classmethod
    def from_hash(cls, data: dict[str, str]) -> Optional["User"]:
        if not data.get("id"):
            return None
        return cls(
            id=data["id"],
            resumes=list(decode_json(data.get("resumes"), [])),
            answers=dict(decode_json(data.get("answers"), {})),
            tags=decode_tags(data.get("tags")),
            updated_at=decode_timestamp(data.get("updated_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "resumes": list(self.resumes),
            "answers": dict(self.answers),
            "tags": sorted(self.tags),
            "updated_at": encode_timestamp(self.updated_at),
        }
