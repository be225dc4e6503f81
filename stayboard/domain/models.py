"""Domain models for properties, rooms, bookings, and occupancy results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional


class RoomStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    DIRTY = "dirty"
    OUT_OF_SERVICE = "out_of_service"


class BookingStatus(str, Enum):
    TENTATIVE = "tentative"
    RESERVED = "reserved"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"


class BookingLogAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Property:
    property_id: int
    owner_id: str
    name: str
    code: Optional[str] = None
    address: Optional[str] = None
    timezone: str = "UTC"
    created_at: Optional[str] = None


@dataclass(frozen=True)
class RoomCategory:
    category_id: int
    property_id: int
    name: str
    description: Optional[str] = None
    base_rate: Optional[float] = None
    capacity: int = 1


@dataclass(frozen=True)
class Room:
    room_id: int
    property_id: int
    number: str
    category_id: Optional[int] = None
    floor: Optional[str] = None
    status: RoomStatus = RoomStatus.AVAILABLE
    notes: Optional[str] = None


@dataclass(frozen=True)
class GuestDetails:
    guest_name: str
    guest_email: Optional[str] = None
    guest_passport: Optional[str] = None
    second_guest_name: Optional[str] = None
    second_guest_email: Optional[str] = None
    second_guest_passport: Optional[str] = None

    @property
    def adults(self) -> int:
        second_guest_fields = (
            self.second_guest_name,
            self.second_guest_email,
            self.second_guest_passport,
        )
        return 2 if any(value and value.strip() for value in second_guest_fields) else 1


@dataclass(frozen=True)
class Booking:
    """A reservation over the half-open stay interval [check_in, check_out)."""

    booking_id: int
    property_id: int
    room_id: Optional[int]
    guest_name: str
    check_in: date
    check_out: date
    status: BookingStatus = BookingStatus.RESERVED
    auto_release_at: Optional[datetime] = None
    guest_email: Optional[str] = None
    guest_passport: Optional[str] = None
    second_guest_name: Optional[str] = None
    second_guest_email: Optional[str] = None
    second_guest_passport: Optional[str] = None
    adults: int = 1
    total: Optional[float] = None
    reference_code: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    def contains(self, day: date) -> bool:
        return self.check_in <= day < self.check_out

    def overlaps(self, check_in: date, check_out: date) -> bool:
        return self.check_in < check_out and self.check_out > check_in


@dataclass(frozen=True)
class BookingLog:
    log_id: int
    booking_id: Optional[int]
    property_id: Optional[int]
    action: BookingLogAction
    performed_by: Optional[str]
    performed_at: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OccupancySnapshot:
    day: date
    occupied_rooms: int
    total_rooms: int

    @property
    def rate(self) -> float:
        # 0.0 for an empty roster; read total_rooms before calling it vacant.
        if self.total_rooms == 0:
            return 0.0
        return self.occupied_rooms / self.total_rooms


@dataclass(frozen=True)
class CalendarSegment:
    booking: Booking
    start_index: int
    span: int


@dataclass(frozen=True)
class RoomCalendarRow:
    room: Room
    segments: list[CalendarSegment]


@dataclass(frozen=True)
class AssignmentDecision:
    booking_id: int
    room_id: int
    nights: int


@dataclass(frozen=True)
class AssignmentResult:
    assignments: list[AssignmentDecision]
    objective_value: float
    unassigned_booking_ids: list[int]
    solver_status: str
