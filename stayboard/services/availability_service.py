"""Booking conflict detection, hold expiry, and occupancy aggregation.

The module-level functions form the availability engine. They operate on
snapshots handed in by the caller, never touch storage or the clock, and are
safe to call from concurrent request handlers. ``AvailabilityService`` wires
them to repository snapshots for the HTTP layer.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from stayboard.domain.constraints import (
    OCCUPYING_STATUSES,
    InvalidRange,
    validate_candidate_stay,
)
from stayboard.domain.models import (
    Booking,
    BookingStatus,
    CalendarSegment,
    OccupancySnapshot,
    Room,
    RoomCalendarRow,
)
from stayboard.repository.data_repository import DataRepository
from stayboard.services.inventory_service import PropertyNotFoundError, RoomNotFoundError
from stayboard.utils.config import Settings, get_settings
from stayboard.utils.logger import get_logger


logger = get_logger(__name__)

__all__ = [
    "AvailabilityService",
    "AvailabilityValidationError",
    "ConflictDetected",
    "GroupConflict",
    "InvalidRange",
    "OccupancySeries",
    "assign_multi_room",
    "average_occupancy",
    "build_room_calendar",
    "compute_occupancy",
    "count_arrivals",
    "count_departures",
    "ensure_no_conflicts",
    "find_conflicts",
    "find_expired_holds",
    "occupancy_series",
    "validate_candidate_stay",
]


class AvailabilityValidationError(Exception):
    """Raised when a calendar or occupancy window is invalid."""


class ConflictDetected(Exception):
    """Raised when a room already holds bookings overlapping the requested stay."""

    def __init__(self, room_id: int, conflicts: Sequence[Booking]) -> None:
        self.room_id = room_id
        self.conflicts = tuple(conflicts)
        super().__init__(
            f"Room {room_id} already has {len(self.conflicts)} booking(s) overlapping those dates"
        )


class GroupConflict(Exception):
    """Raised when any room of a multi-room request conflicts.

    ``conflicts`` maps each conflicting room id to its blocking bookings;
    ``clear_room_ids`` lists the rooms that could have been booked, so the
    caller may retry with a reduced room set.
    """

    def __init__(
        self,
        conflicts: Mapping[int, Sequence[Booking]],
        clear_room_ids: Sequence[int],
    ) -> None:
        self.conflicts = {room_id: tuple(items) for room_id, items in conflicts.items()}
        self.clear_room_ids = tuple(clear_room_ids)
        rooms = ", ".join(str(room_id) for room_id in self.conflicts)
        super().__init__(f"Rooms with overlapping bookings: {rooms}")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _is_expired_hold(booking: Booking, now: datetime) -> bool:
    return (
        booking.status == BookingStatus.TENTATIVE
        and booking.auto_release_at is not None
        and _as_utc(booking.auto_release_at) < _as_utc(now)
    )


def find_conflicts(
    room_id: int,
    check_in: date,
    check_out: date,
    existing_bookings: Iterable[Booking],
    exclude_booking_id: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
) -> tuple[Booking, ...]:
    """Return every non-cancelled booking in ``room_id`` overlapping [check_in, check_out).

    When ``now`` is given, tentative holds whose deadline passed before it no
    longer block the room. Results are ordered by check-in, then booking id.
    An empty tuple means the room is free for the whole stay.
    """
    validate_candidate_stay(check_in, check_out)
    conflicts = [
        booking
        for booking in existing_bookings
        if booking.room_id == room_id
        and booking.status != BookingStatus.CANCELLED
        and (exclude_booking_id is None or booking.booking_id != exclude_booking_id)
        and not (now is not None and _is_expired_hold(booking, now))
        and booking.overlaps(check_in, check_out)
    ]
    conflicts.sort(key=lambda booking: (booking.check_in, booking.booking_id))
    return tuple(conflicts)


def ensure_no_conflicts(
    room_id: int,
    check_in: date,
    check_out: date,
    existing_bookings: Iterable[Booking],
    exclude_booking_id: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
) -> None:
    conflicts = find_conflicts(
        room_id,
        check_in,
        check_out,
        existing_bookings,
        exclude_booking_id=exclude_booking_id,
        now=now,
    )
    if conflicts:
        logger.info(
            "Room conflict detected | room_id=%s | check_in=%s | check_out=%s | conflicting_ids=%s",
            room_id,
            check_in.isoformat(),
            check_out.isoformat(),
            [booking.booking_id for booking in conflicts],
        )
        raise ConflictDetected(room_id, conflicts)


def assign_multi_room(
    room_ids: Sequence[int],
    check_in: date,
    check_out: date,
    existing_bookings_by_room: Mapping[int, Iterable[Booking]],
    *,
    now: Optional[datetime] = None,
) -> tuple[int, ...]:
    """Clear a group stay across several rooms, all or nothing.

    Every room is checked even after a conflict is found so the error lists
    all blocking rooms. Duplicate room ids are checked once.
    """
    validate_candidate_stay(check_in, check_out)
    unique_room_ids = tuple(dict.fromkeys(room_ids))

    conflicts: dict[int, tuple[Booking, ...]] = {}
    clear: list[int] = []
    for room_id in unique_room_ids:
        room_conflicts = find_conflicts(
            room_id,
            check_in,
            check_out,
            existing_bookings_by_room.get(room_id, ()),
            now=now,
        )
        if room_conflicts:
            conflicts[room_id] = room_conflicts
        else:
            clear.append(room_id)

    if conflicts:
        logger.info(
            "Group request rejected | rooms=%s | conflicting_rooms=%s",
            list(unique_room_ids),
            sorted(conflicts),
        )
        raise GroupConflict(conflicts=conflicts, clear_room_ids=clear)
    return unique_room_ids


def compute_occupancy(
    day: date,
    rooms: Iterable[Room],
    bookings: Iterable[Booking],
) -> OccupancySnapshot:
    """Count roster rooms held by a reserved or checked-in booking on ``day``."""
    roster = {room.room_id for room in rooms}
    occupied = {
        booking.room_id
        for booking in bookings
        if booking.room_id in roster
        and booking.status in OCCUPYING_STATUSES
        and booking.contains(day)
    }
    return OccupancySnapshot(day=day, occupied_rooms=len(occupied), total_rooms=len(roster))


class OccupancySeries:
    """Per-day occupancy snapshots, computed on iteration.

    Inputs are captured at construction so the series can be iterated any
    number of times with identical results.
    """

    def __init__(
        self,
        days: Iterable[date],
        rooms: Iterable[Room],
        bookings: Iterable[Booking],
    ) -> None:
        self._days = tuple(days)
        self._rooms = tuple(rooms)
        self._bookings = tuple(bookings)

    def __iter__(self) -> Iterator[OccupancySnapshot]:
        for day in self._days:
            yield compute_occupancy(day, self._rooms, self._bookings)

    def __len__(self) -> int:
        return len(self._days)

    @property
    def days(self) -> tuple[date, ...]:
        return self._days


def occupancy_series(
    days: Iterable[date],
    rooms: Iterable[Room],
    bookings: Iterable[Booking],
) -> OccupancySeries:
    return OccupancySeries(days, rooms, bookings)


def average_occupancy(snapshots: Iterable[OccupancySnapshot]) -> float:
    """Occupied room-nights over available room-nights."""
    occupied = 0
    available = 0
    for snapshot in snapshots:
        occupied += snapshot.occupied_rooms
        available += snapshot.total_rooms
    if available == 0:
        return 0.0
    return occupied / available


def find_expired_holds(bookings: Iterable[Booking], now: datetime) -> list[Booking]:
    """Select tentative bookings whose auto-release deadline is strictly before ``now``."""
    return [booking for booking in bookings if _is_expired_hold(booking, now)]


def count_arrivals(bookings: Iterable[Booking], day: date) -> int:
    return sum(
        1
        for booking in bookings
        if booking.status != BookingStatus.CANCELLED and booking.check_in == day
    )


def count_departures(bookings: Iterable[Booking], day: date) -> int:
    return sum(
        1
        for booking in bookings
        if booking.status != BookingStatus.CANCELLED and booking.check_out == day
    )


def build_room_calendar(
    rooms: Sequence[Room],
    bookings: Iterable[Booking],
    start: date,
    days: int,
) -> list[RoomCalendarRow]:
    """Lay non-cancelled bookings out on a ``days``-wide grid starting at ``start``.

    Segments are clipped to the window: a stay that began before ``start``
    opens at index 0, one that ends after the window is cut at its edge.
    """
    if days <= 0:
        raise AvailabilityValidationError("days must be > 0")
    window_end = start + timedelta(days=days)
    by_room: dict[int, list[CalendarSegment]] = {room.room_id: [] for room in rooms}
    ordered = sorted(bookings, key=lambda booking: (booking.check_in, booking.booking_id))
    for booking in ordered:
        if booking.room_id not in by_room or booking.status == BookingStatus.CANCELLED:
            continue
        if not booking.overlaps(start, window_end):
            continue
        segment_start = max(booking.check_in, start)
        segment_end = min(booking.check_out, window_end)
        by_room[booking.room_id].append(
            CalendarSegment(
                booking=booking,
                start_index=(segment_start - start).days,
                span=(segment_end - segment_start).days,
            )
        )
    return [RoomCalendarRow(room=room, segments=by_room[room.room_id]) for room in rooms]


def _date_range(start: date, days: int) -> list[date]:
    return [start + timedelta(days=offset) for offset in range(days)]


@dataclass(frozen=True)
class RoomAvailability:
    room_id: int
    conflicts: tuple[Booking, ...]

    @property
    def available(self) -> bool:
        return not self.conflicts


class AvailabilityService:
    """Loads property snapshots and runs the availability engine over them."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def _validate_window(self, days: int) -> None:
        if days <= 0:
            raise AvailabilityValidationError("days must be > 0")
        if days > self._settings.calendar_max_days:
            raise AvailabilityValidationError(
                f"days must be <= {self._settings.calendar_max_days}"
            )

    def _require_property(self, property_id: int) -> None:
        if self._repository.get_property(property_id) is None:
            raise PropertyNotFoundError(f"Property {property_id} was not found")

    def check_rooms(
        self,
        *,
        property_id: int,
        room_ids: Sequence[int],
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[RoomAvailability]:
        """Advisory pre-flight check; writes re-check inside their own transaction."""
        validate_candidate_stay(check_in, check_out)
        self._require_property(property_id)
        unique_room_ids = list(dict.fromkeys(room_ids))
        rooms_by_id = {room.room_id: room for room in self._repository.list_rooms(property_id)}
        missing = [room_id for room_id in unique_room_ids if room_id not in rooms_by_id]
        if missing:
            raise RoomNotFoundError(f"Rooms {missing} do not belong to property {property_id}")

        existing = self._repository.list_room_bookings(
            room_ids=unique_room_ids,
            start=check_in,
            end=check_out,
        )
        return [
            RoomAvailability(
                room_id=room_id,
                conflicts=find_conflicts(
                    room_id,
                    check_in,
                    check_out,
                    existing,
                    exclude_booking_id=exclude_booking_id,
                    now=now,
                ),
            )
            for room_id in unique_room_ids
        ]

    def calendar(self, *, property_id: int, start: date, days: int) -> list[RoomCalendarRow]:
        self._validate_window(days)
        self._require_property(property_id)
        rooms = self._repository.list_rooms(property_id)
        bookings = self._repository.list_property_bookings(
            property_id=property_id,
            start=start,
            end=start + timedelta(days=days),
        )
        return build_room_calendar(rooms, bookings, start, days)

    def occupancy(self, *, property_id: int, start: date, days: int) -> OccupancySeries:
        self._validate_window(days)
        self._require_property(property_id)
        rooms = self._repository.list_rooms(property_id)
        bookings = self._repository.list_property_bookings(
            property_id=property_id,
            start=start,
            end=start + timedelta(days=days),
        )
        return occupancy_series(_date_range(start, days), rooms, bookings)
