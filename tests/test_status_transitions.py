import pytest

from app.issuetracker.constants import ALLOWED_STATUS_TRANSITIONS, ISSUE_STATUSES
from app.issuetracker.modules.issues.service import get_allowed_next_statuses, is_valid_status_transition


def test_every_status_has_transitions():
    assert set(ALLOWED_STATUS_TRANSITIONS) == set(ISSUE_STATUSES)
    for targets in ALLOWED_STATUS_TRANSITIONS.values():
        assert set(targets) <= set(ISSUE_STATUSES)


@pytest.mark.parametrize("status", ISSUE_STATUSES)
def test_same_status_is_always_valid(status):
    assert is_valid_status_transition(status, status)


@pytest.mark.parametrize(
    "current,new,ok",
    [
        ("NEW", "ASSIGNED", True),
        ("NEW", "FIXED", False),
        ("ASSIGNED", "PENDING", True),
        ("IN_PROGRESS", "NEEDS_REVIEW", True),
        ("NEEDS_REVIEW", "PENDING", False),
        ("FIXED", "IN_PROGRESS", True),
        ("CLOSED", "NEW", False),
        ("CLOSED", "IN_PROGRESS", True),
        ("WONT_FIX", "CLOSED", False),
    ],
)
def test_transition_table(current, new, ok):
    assert is_valid_status_transition(current, new) is ok


def test_allowed_next_statuses():
    assert get_allowed_next_statuses("CLOSED") == ["IN_PROGRESS"]
    assert get_allowed_next_statuses("NEW") == ["ASSIGNED", "IN_PROGRESS", "CLOSED", "WONT_FIX"]
    assert get_allowed_next_statuses("BOGUS") == []
    assert not is_valid_status_transition("BOGUS", "NEW")
