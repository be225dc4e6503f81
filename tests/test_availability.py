"""Tests for conflict detection, group checks, and hold expiry."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from stayboard.domain.constraints import InvalidRange
from stayboard.domain.models import Booking, BookingStatus
from stayboard.services.availability_service import (
    ConflictDetected,
    GroupConflict,
    assign_multi_room,
    ensure_no_conflicts,
    find_conflicts,
    find_expired_holds,
)


R1 = 1
R2 = 2


def make_booking(
    booking_id: int,
    room_id: int | None,
    check_in: date,
    check_out: date,
    status: BookingStatus = BookingStatus.RESERVED,
    auto_release_at: datetime | None = None,
) -> Booking:
    return Booking(
        booking_id=booking_id,
        property_id=1,
        room_id=room_id,
        guest_name=f"Guest {booking_id}",
        check_in=check_in,
        check_out=check_out,
        status=status,
        auto_release_at=auto_release_at,
    )


# --- Example scenarios ---

def test_adjacent_stay_does_not_conflict() -> None:
    existing = [make_booking(1, R1, date(2024, 3, 10), date(2024, 3, 15))]
    assert find_conflicts(R1, date(2024, 3, 15), date(2024, 3, 18), existing) == ()


def test_overlapping_stay_lists_blocking_booking() -> None:
    blocking = make_booking(1, R1, date(2024, 3, 10), date(2024, 3, 15))
    conflicts = find_conflicts(R1, date(2024, 3, 14), date(2024, 3, 16), [blocking])
    assert conflicts == (blocking,)


def test_group_ignores_cancelled_bookings() -> None:
    existing = {
        R2: [
            make_booking(
                7,
                R2,
                date(2024, 3, 30),
                date(2024, 4, 2),
                status=BookingStatus.CANCELLED,
            )
        ]
    }
    cleared = assign_multi_room([R1, R2], date(2024, 4, 1), date(2024, 4, 3), existing)
    assert cleared == (R1, R2)


def test_group_conflict_names_only_blocking_room() -> None:
    blocking = make_booking(8, R2, date(2024, 4, 2), date(2024, 4, 5))
    with pytest.raises(GroupConflict) as exc_info:
        assign_multi_room([R1, R2], date(2024, 4, 1), date(2024, 4, 3), {R2: [blocking]})

    error = exc_info.value
    assert list(error.conflicts) == [R2]
    assert error.conflicts[R2] == (blocking,)
    assert error.clear_room_ids == (R1,)


def test_hold_expired_one_second_after_deadline() -> None:
    hold = make_booking(
        3,
        R1,
        date(2024, 1, 5),
        date(2024, 1, 6),
        status=BookingStatus.TENTATIVE,
        auto_release_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    now = datetime(2024, 1, 1, 0, 0, 1, tzinfo=timezone.utc)
    assert find_expired_holds([hold], now) == [hold]


# --- Conflict properties ---

@pytest.mark.parametrize(
    ("first", "second"),
    [
        ((date(2024, 5, 1), date(2024, 5, 5)), (date(2024, 5, 4), date(2024, 5, 8))),
        ((date(2024, 5, 1), date(2024, 5, 10)), (date(2024, 5, 3), date(2024, 5, 4))),
        ((date(2024, 5, 1), date(2024, 5, 2)), (date(2024, 5, 1), date(2024, 5, 2))),
    ],
)
def test_overlap_is_detected_in_both_directions(first, second) -> None:
    a = make_booking(1, R1, *first)
    b = make_booking(2, R1, *second)
    assert find_conflicts(R1, b.check_in, b.check_out, [a]) == (a,)
    assert find_conflicts(R1, a.check_in, a.check_out, [b]) == (b,)


def test_adjacent_is_free_in_both_directions() -> None:
    a = make_booking(1, R1, date(2024, 5, 1), date(2024, 5, 4))
    b = make_booking(2, R1, date(2024, 5, 4), date(2024, 5, 6))
    assert find_conflicts(R1, b.check_in, b.check_out, [a]) == ()
    assert find_conflicts(R1, a.check_in, a.check_out, [b]) == ()


def test_equal_dates_raise_invalid_range_even_with_no_bookings() -> None:
    with pytest.raises(InvalidRange):
        find_conflicts(R1, date(2024, 5, 1), date(2024, 5, 1), [])


def test_reversed_dates_raise_invalid_range() -> None:
    with pytest.raises(InvalidRange):
        find_conflicts(R1, date(2024, 5, 3), date(2024, 5, 1), [])


def test_other_rooms_and_cancelled_bookings_are_ignored() -> None:
    existing = [
        make_booking(1, R2, date(2024, 6, 1), date(2024, 6, 5)),
        make_booking(2, R1, date(2024, 6, 1), date(2024, 6, 5), status=BookingStatus.CANCELLED),
        make_booking(3, None, date(2024, 6, 1), date(2024, 6, 5)),
    ]
    assert find_conflicts(R1, date(2024, 6, 2), date(2024, 6, 3), existing) == ()


def test_checked_out_booking_still_blocks_its_own_nights() -> None:
    stay = make_booking(1, R1, date(2024, 6, 1), date(2024, 6, 5), status=BookingStatus.CHECKED_OUT)
    assert find_conflicts(R1, date(2024, 6, 4), date(2024, 6, 6), [stay]) == (stay,)
    assert find_conflicts(R1, date(2024, 6, 5), date(2024, 6, 6), [stay]) == ()


def test_results_are_sorted_and_repeatable() -> None:
    existing = [
        make_booking(9, R1, date(2024, 7, 5), date(2024, 7, 7)),
        make_booking(4, R1, date(2024, 7, 1), date(2024, 7, 3)),
        make_booking(2, R1, date(2024, 7, 5), date(2024, 7, 6)),
    ]
    first = find_conflicts(R1, date(2024, 7, 1), date(2024, 7, 10), existing)
    second = find_conflicts(R1, date(2024, 7, 1), date(2024, 7, 10), list(reversed(existing)))
    assert [booking.booking_id for booking in first] == [4, 2, 9]
    assert first == second


def test_edit_excludes_the_booking_itself() -> None:
    current = make_booking(5, R1, date(2024, 8, 1), date(2024, 8, 4))
    assert find_conflicts(
        R1,
        date(2024, 8, 2),
        date(2024, 8, 6),
        [current],
        exclude_booking_id=5,
    ) == ()


def test_ensure_no_conflicts_raises_with_conflict_list() -> None:
    blocking = make_booking(1, R1, date(2024, 9, 1), date(2024, 9, 3))
    with pytest.raises(ConflictDetected) as exc_info:
        ensure_no_conflicts(R1, date(2024, 9, 2), date(2024, 9, 4), [blocking])
    assert exc_info.value.room_id == R1
    assert exc_info.value.conflicts == (blocking,)


def test_group_reports_every_conflicting_room() -> None:
    existing = {
        R1: [make_booking(1, R1, date(2024, 4, 1), date(2024, 4, 2))],
        R2: [make_booking(2, R2, date(2024, 4, 2), date(2024, 4, 3))],
    }
    with pytest.raises(GroupConflict) as exc_info:
        assign_multi_room([R1, R2, 3], date(2024, 4, 1), date(2024, 4, 3), existing)
    assert set(exc_info.value.conflicts) == {R1, R2}
    assert exc_info.value.clear_room_ids == (3,)


def test_group_deduplicates_room_ids() -> None:
    assert assign_multi_room([R1, R1, R2], date(2024, 4, 1), date(2024, 4, 3), {}) == (R1, R2)


def test_group_rejects_invalid_range() -> None:
    with pytest.raises(InvalidRange):
        assign_multi_room([R1], date(2024, 4, 3), date(2024, 4, 3), {})


# --- Hold expiry ---

def _hold(booking_id: int, auto_release_at: datetime | None, status=BookingStatus.TENTATIVE) -> Booking:
    return make_booking(
        booking_id,
        R1,
        date(2024, 2, 1),
        date(2024, 2, 2),
        status=status,
        auto_release_at=auto_release_at,
    )


def test_expiry_boundaries() -> None:
    now = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
    past = _hold(1, now - timedelta(seconds=1))
    future = _hold(2, now + timedelta(seconds=1))
    exact = _hold(3, now)
    far_future = _hold(4, now + timedelta(days=3))

    assert find_expired_holds([past, future, exact, far_future], now) == [past]


def test_expiry_skips_non_tentative_and_open_ended_holds() -> None:
    now = datetime(2024, 1, 10, tzinfo=timezone.utc)
    deadline = now - timedelta(hours=1)
    reserved = _hold(1, deadline, status=BookingStatus.RESERVED)
    no_deadline = _hold(2, None)
    expired = _hold(3, deadline)

    assert find_expired_holds([reserved, no_deadline, expired], now) == [expired]


def test_expiry_treats_naive_timestamps_as_utc() -> None:
    hold = _hold(1, datetime(2024, 1, 1, 0, 0))
    now = datetime(2024, 1, 1, 1, 0, 1, tzinfo=timezone(timedelta(hours=1)))
    assert find_expired_holds([hold], now) == [hold]


def test_expired_hold_stops_blocking_once_now_is_given() -> None:
    now = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
    lapsed = make_booking(
        1,
        R1,
        date(2024, 2, 1),
        date(2024, 2, 4),
        status=BookingStatus.TENTATIVE,
        auto_release_at=now - timedelta(minutes=1),
    )
    live = make_booking(
        2,
        R2,
        date(2024, 2, 1),
        date(2024, 2, 4),
        status=BookingStatus.TENTATIVE,
        auto_release_at=now + timedelta(minutes=1),
    )

    assert find_conflicts(R1, date(2024, 2, 2), date(2024, 2, 3), [lapsed]) == (lapsed,)
    assert find_conflicts(R1, date(2024, 2, 2), date(2024, 2, 3), [lapsed], now=now) == ()
    with pytest.raises(GroupConflict) as exc_info:
        assign_multi_room(
            [R1, R2],
            date(2024, 2, 2),
            date(2024, 2, 3),
            {R1: [lapsed], R2: [live]},
            now=now,
        )
    assert list(exc_info.value.conflicts) == [R2]
