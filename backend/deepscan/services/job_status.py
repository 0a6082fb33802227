from __future__ import annotations

from typing import Dict, FrozenSet

from ..exceptions import InvalidJobStateError
from ..schemas import JobStatus


TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

_ALLOWED_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def is_terminal(status: JobStatus) -> bool:
    return JobStatus(status) in TERMINAL_STATUSES


def can_transition(current: JobStatus, new: JobStatus) -> bool:
    """
    Return True if a job may move from `current` to `new`.

    Rules:
    - pending -> processing
    - processing -> completed | failed
    - completed and failed are terminal.
    - Re-entering the current status is a rejected transition, not a no-op.
    """
    return JobStatus(new) in _ALLOWED_TRANSITIONS[JobStatus(current)]


def check_transition(job_id: int, current: JobStatus, new: JobStatus) -> None:
    """Raise InvalidJobStateError unless `current -> new` is a forward transition."""
    if can_transition(current, new):
        return

    expected = [s.value for s in JobStatus if can_transition(s, new)]
    raise InvalidJobStateError(
        job_id,
        JobStatus(current).value,
        " or ".join(expected) if expected else "no prior state",
    )
