import pytest

from deepscan.exceptions import InvalidJobStateError
from deepscan.schemas import JobStatus
from deepscan.services.job_status import can_transition, check_transition, is_terminal


def test_forward_transitions_are_allowed():
    assert can_transition(JobStatus.PENDING, JobStatus.PROCESSING)
    assert can_transition(JobStatus.PROCESSING, JobStatus.COMPLETED)
    assert can_transition(JobStatus.PROCESSING, JobStatus.FAILED)


def test_skipping_processing_is_rejected():
    assert not can_transition(JobStatus.PENDING, JobStatus.COMPLETED)
    assert not can_transition(JobStatus.PENDING, JobStatus.FAILED)


def test_backward_and_repeated_transitions_are_rejected():
    assert not can_transition(JobStatus.PROCESSING, JobStatus.PENDING)
    assert not can_transition(JobStatus.PROCESSING, JobStatus.PROCESSING)
    assert not can_transition(JobStatus.PENDING, JobStatus.PENDING)


@pytest.mark.parametrize("terminal", [JobStatus.COMPLETED, JobStatus.FAILED])
def test_terminal_statuses_never_move(terminal):
    assert is_terminal(terminal)
    for status in JobStatus:
        assert not can_transition(terminal, status)


def test_check_transition_accepts_plain_strings():
    check_transition(1, "pending", "processing")


def test_check_transition_reports_expected_state():
    with pytest.raises(InvalidJobStateError) as exc_info:
        check_transition(7, JobStatus.COMPLETED, JobStatus.FAILED)

    err = exc_info.value
    assert err.status_code == 409
    assert err.current_state == "completed"
    assert "expected 'processing'" in err.message
