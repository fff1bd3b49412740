"""Entity Module - Boards, jobs and users"""

from .indexes import IndexDelta, job_index_delta
from .models import APPLICABLE_STATUSES, Board, Job, JobStatus, NewJob, User
from .store import EntityStore
from .tags import TAG_KEYWORDS, extract_tags

__all__ = [
    "APPLICABLE_STATUSES",
    "Board",
    "EntityStore",
    "IndexDelta",
    "Job",
    "JobStatus",
    "NewJob",
    "TAG_KEYWORDS",
    "User",
    "extract_tags",
    "job_index_delta",
]
