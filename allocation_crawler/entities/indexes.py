"""
Secondary index maintenance

Every job mutation computes its index changes here, so inserts, status
moves and deletes all add and remove set memberships the same way.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional

from allocation_crawler.core.keys import KeySpace
from allocation_crawler.core.store import Batch
from .models import Job

Membership = tuple[str, str]  # (index key, member)


@dataclass
class IndexDelta:
    """Set additions and removals to apply alongside a hash write"""

    additions: dict[str, set[str]] = field(default_factory=lambda: defaultdict(set))
    removals: dict[str, set[str]] = field(default_factory=lambda: defaultdict(set))

    def add(self, index_key: str, member: str) -> None:
        self.additions[index_key].add(member)

    def remove(self, index_key: str, member: str) -> None:
        self.removals[index_key].add(member)

    def apply(self, batch: Batch) -> None:
        """Queue removals before additions"""
        for index_key in sorted(self.removals):
            batch.srem(index_key, *sorted(self.removals[index_key]))
        for index_key in sorted(self.additions):
            batch.sadd(index_key, *sorted(self.additions[index_key]))


def job_memberships(keys: KeySpace, job: Optional[Job]) -> set[Membership]:
    """All index memberships a job in this state must have"""
    if job is None:
        return set()
    member = job.composite_key
    memberships = {
        # The per-board index holds bare job ids
        (keys.board_jobs_index(job.board), job.job_id),
        (keys.job_status_index(job.status), member),
    }
    memberships.update((keys.tag_index(tag), member) for tag in job.tags)
    return memberships


def job_index_delta(
    keys: KeySpace,
    before: Optional[Job],
    after: Optional[Job],
) -> IndexDelta:
    """
    Index changes that take a job from ``before`` to ``after``.

    ``before=None`` is an insert, ``after=None`` is a delete.
    """
    old = job_memberships(keys, before)
    new = job_memberships(keys, after)

    delta = IndexDelta()
    for index_key, member in old - new:
        delta.remove(index_key, member)
    for index_key, member in new - old:
        delta.add(index_key, member)
    return delta
