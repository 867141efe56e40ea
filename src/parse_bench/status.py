"""Closed status set shared by the runner, poller, and history store."""

from __future__ import annotations

from enum import Enum


class JobStatus(str, Enum):
    UPLOAD_PENDING = "upload_pending"
    INDEXING_PENDING = "indexing_pending"
    INDEXING_COMPLETED = "indexing_completed"
    INDEXING_FAILED = "indexing_failed"
    UPLOAD_FAILED = "upload_failed"
    TIMEOUT = "timeout"


PENDING_STATUSES = frozenset({JobStatus.UPLOAD_PENDING, JobStatus.INDEXING_PENDING})
TERMINAL_STATUSES = frozenset(
    {
        JobStatus.INDEXING_COMPLETED,
        JobStatus.INDEXING_FAILED,
        JobStatus.UPLOAD_FAILED,
        JobStatus.TIMEOUT,
    }
)
FAILURE_STATUSES = frozenset({JobStatus.INDEXING_FAILED, JobStatus.UPLOAD_FAILED})

# Remote states that mean "still in flight" without being part of the closed set.
_REMOTE_ALIASES = {"upload_completed": JobStatus.INDEXING_PENDING}


def is_terminal(status: JobStatus | str) -> bool:
    return JobStatus(status) in TERMINAL_STATUSES


def is_pending(status: JobStatus | str) -> bool:
    return JobStatus(status) in PENDING_STATUSES


def can_transition(current: JobStatus | str, new: JobStatus | str) -> bool:
    """Return whether moving from `current` to `new` keeps the machine monotonic.

    Pending states only move forward (upload -> indexing) or into a terminal
    state. Terminal states accept only a repeat of themselves.
    """

    current, new = JobStatus(current), JobStatus(new)
    if current in TERMINAL_STATUSES:
        return new == current
    if current == JobStatus.INDEXING_PENDING and new == JobStatus.UPLOAD_PENDING:
        return False
    return True


def parse_remote_status(value: str) -> JobStatus:
    """Map a status string reported by the files API onto `JobStatus`."""

    if value in _REMOTE_ALIASES:
        return _REMOTE_ALIASES[value]
    return JobStatus(value)
