"""
Redis key layout

Every key the service touches is built here. Job index sets hold composite
keys (``board:job_id``) except the per-board index, which holds bare job ids.
"""

from enum import Enum
from typing import Union

Status = Union[str, Enum]


def _value(status: Status) -> str:
    # str-mixin enums format as "Class.MEMBER" on 3.11+, so always use .value
    return status.value if isinstance(status, Enum) else status


def composite_key(board: str, job_id: str) -> str:
    """Index-set member identifying a job"""
    return f"{board}:{job_id}"


def split_composite_key(key: str) -> tuple[str, str]:
    """Inverse of composite_key; job ids may themselves contain ':'"""
    board, _, job_id = key.partition(":")
    return board, job_id


class KeySpace:
    """Builds namespaced key names"""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix
        self._head = f"{prefix}:" if prefix else ""

    def _make_key(self, *parts: str) -> str:
        return self._head + ":".join(parts)

    # Boards
    def board(self, board: str) -> str:
        return self._make_key("board", board)

    def boards_index(self) -> str:
        return self._make_key("idx", "boards")

    # Jobs
    def job(self, board: str, job_id: str) -> str:
        return self._make_key("job", board, job_id)

    def board_jobs_index(self, board: str) -> str:
        return self._make_key("idx", "board_jobs", board)

    def job_status_index(self, status: Status) -> str:
        return self._make_key("idx", "job_status", _value(status))

    def tag_index(self, tag: str) -> str:
        return self._make_key("idx", "tag", tag)

    # Runs
    def run(self, run_id: str) -> str:
        return self._make_key("run", run_id)

    def job_runs_index(self, job_id: str) -> str:
        return self._make_key("idx", "job_runs", job_id)

    def runs_index(self) -> str:
        return self._make_key("idx", "runs")

    def apply_lock(self, board: str, job_id: str) -> str:
        return self._make_key("lock", "apply", board, job_id)

    # Users
    def user(self, user_id: str) -> str:
        return self._make_key("user", user_id)

    def users_index(self) -> str:
        return self._make_key("idx", "users")
