"""Domain-level validation rules: stay ranges, status transitions, solver config."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from types import MappingProxyType
from typing import Mapping

from stayboard.domain.models import BookingStatus


class InvalidRange(ValueError):
    """Raised when a stay does not end strictly after it starts."""

    def __init__(self, check_in: date, check_out: date) -> None:
        self.check_in = check_in
        self.check_out = check_out
        super().__init__(
            f"check_out ({check_out.isoformat()}) must be after check_in ({check_in.isoformat()})"
        )


class IllegalStatusTransition(ValueError):
    """Raised when a booking status change is not in the transition table."""

    def __init__(self, current: BookingStatus, target: BookingStatus) -> None:
        self.current = current
        self.target = target
        super().__init__(
            f"Booking status cannot change from {current.value} to {target.value}"
        )


ALLOWED_TRANSITIONS: Mapping[BookingStatus, frozenset[BookingStatus]] = MappingProxyType(
    {
        BookingStatus.TENTATIVE: frozenset({BookingStatus.RESERVED, BookingStatus.CANCELLED}),
        BookingStatus.RESERVED: frozenset({BookingStatus.CHECKED_IN, BookingStatus.CANCELLED}),
        BookingStatus.CHECKED_IN: frozenset({BookingStatus.CHECKED_OUT}),
        BookingStatus.CHECKED_OUT: frozenset(),
        BookingStatus.CANCELLED: frozenset(),
    }
)

INITIAL_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.TENTATIVE, BookingStatus.RESERVED, BookingStatus.CHECKED_IN}
)

TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

# Statuses that count toward occupancy figures.
OCCUPYING_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.RESERVED, BookingStatus.CHECKED_IN}
)


def validate_candidate_stay(check_in: date, check_out: date) -> None:
    if check_out <= check_in:
        raise InvalidRange(check_in, check_out)


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return current == target or target in ALLOWED_TRANSITIONS[current]


def validate_status_transition(current: BookingStatus, target: BookingStatus) -> None:
    """Reject any change not listed in ALLOWED_TRANSITIONS; same-status is a no-op."""
    if not can_transition(current, target):
        raise IllegalStatusTransition(current, target)


def validate_initial_status(status: BookingStatus) -> None:
    if status not in INITIAL_STATUSES:
        allowed = ", ".join(sorted(item.value for item in INITIAL_STATUSES))
        raise ValueError(f"New bookings must start as one of: {allowed}")


@dataclass(frozen=True)
class AssignmentConfig:
    solver_max_time_seconds: int
    solver_random_seed: int
    cp_sat_workers: int


def validate_assignment_config(config: AssignmentConfig) -> None:
    if config.solver_max_time_seconds <= 0:
        raise ValueError("solver_max_time_seconds must be > 0")
    if config.solver_random_seed < 0:
        raise ValueError("solver_random_seed must be >= 0")
    if config.cp_sat_workers <= 0:
        raise ValueError("cp_sat_workers must be > 0")
