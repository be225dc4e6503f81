"""Tests for stay range, status transition, and solver config validation."""

from __future__ import annotations

from datetime import date

import pytest

from stayboard.domain.constraints import (
    ALLOWED_TRANSITIONS,
    AssignmentConfig,
    IllegalStatusTransition,
    InvalidRange,
    TERMINAL_STATUSES,
    can_transition,
    validate_assignment_config,
    validate_candidate_stay,
    validate_initial_status,
    validate_status_transition,
)
from stayboard.domain.models import BookingStatus


def valid_config(**overrides) -> AssignmentConfig:
    """Return a valid baseline AssignmentConfig, optionally overriding fields."""
    defaults = {
        "solver_max_time_seconds": 10,
        "solver_random_seed": 42,
        "cp_sat_workers": 2,
    }
    defaults.update(overrides)
    return AssignmentConfig(**defaults)


# --- Stay range ---

def test_one_night_stay_is_valid() -> None:
    validate_candidate_stay(date(2024, 3, 1), date(2024, 3, 2))


def test_zero_night_stay_raises() -> None:
    with pytest.raises(InvalidRange) as exc_info:
        validate_candidate_stay(date(2024, 3, 1), date(2024, 3, 1))
    assert exc_info.value.check_in == date(2024, 3, 1)


def test_invalid_range_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        validate_candidate_stay(date(2024, 3, 2), date(2024, 3, 1))


# --- Status machine ---

@pytest.mark.parametrize(
    ("current", "target"),
    [
        (BookingStatus.TENTATIVE, BookingStatus.RESERVED),
        (BookingStatus.TENTATIVE, BookingStatus.CANCELLED),
        (BookingStatus.RESERVED, BookingStatus.CHECKED_IN),
        (BookingStatus.RESERVED, BookingStatus.CANCELLED),
        (BookingStatus.CHECKED_IN, BookingStatus.CHECKED_OUT),
    ],
)
def test_allowed_transitions_pass(current, target) -> None:
    validate_status_transition(current, target)


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (BookingStatus.CHECKED_OUT, BookingStatus.TENTATIVE),
        (BookingStatus.CANCELLED, BookingStatus.RESERVED),
        (BookingStatus.TENTATIVE, BookingStatus.CHECKED_IN),
        (BookingStatus.CHECKED_IN, BookingStatus.CANCELLED),
        (BookingStatus.RESERVED, BookingStatus.TENTATIVE),
    ],
)
def test_illegal_transitions_raise(current, target) -> None:
    with pytest.raises(IllegalStatusTransition) as exc_info:
        validate_status_transition(current, target)
    assert exc_info.value.current == current
    assert exc_info.value.target == target


def test_same_status_is_a_no_op() -> None:
    for status in BookingStatus:
        assert can_transition(status, status)


def test_terminal_statuses() -> None:
    assert TERMINAL_STATUSES == {BookingStatus.CHECKED_OUT, BookingStatus.CANCELLED}
    assert set(ALLOWED_TRANSITIONS) == set(BookingStatus)


def test_new_bookings_cannot_start_terminal() -> None:
    validate_initial_status(BookingStatus.TENTATIVE)
    with pytest.raises(ValueError):
        validate_initial_status(BookingStatus.CANCELLED)
    with pytest.raises(ValueError):
        validate_initial_status(BookingStatus.CHECKED_OUT)


# --- Solver config ---

def test_valid_config_passes() -> None:
    validate_assignment_config(valid_config())


def test_solver_max_time_seconds_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_assignment_config(valid_config(solver_max_time_seconds=0))


def test_solver_random_seed_negative_raises() -> None:
    with pytest.raises(ValueError):
        validate_assignment_config(valid_config(solver_random_seed=-1))


def test_solver_random_seed_zero_passes() -> None:
    """Seed of zero is valid (not negative)."""
    validate_assignment_config(valid_config(solver_random_seed=0))


def test_cp_sat_workers_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_assignment_config(valid_config(cp_sat_workers=0))
