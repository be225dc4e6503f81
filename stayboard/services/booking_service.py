"""Booking lifecycle: create, edit, status changes, deletion, and hold release.

Each write runs the availability engine against the room snapshot read inside
the same ``write_transaction`` that stores the result.
"""

from __future__ import annotations

import sqlite3
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Mapping, Optional, Sequence

from stayboard.domain.constraints import (
    validate_candidate_stay,
    validate_initial_status,
    validate_status_transition,
)
from stayboard.domain.models import (
    Booking,
    BookingLog,
    BookingLogAction,
    BookingStatus,
    GuestDetails,
)
from stayboard.repository.data_repository import DataRepository, month_window
from stayboard.services.availability_service import (
    assign_multi_room,
    ensure_no_conflicts,
    find_expired_holds,
)
from stayboard.services.inventory_service import (
    NotFoundError,
    PropertyNotFoundError,
    RoomNotFoundError,
)
from stayboard.utils.config import Settings, get_settings
from stayboard.utils.logger import get_logger


logger = get_logger(__name__)

SYSTEM_ACTOR = "system"

GUEST_FIELDS = (
    "guest_name",
    "guest_email",
    "guest_passport",
    "second_guest_name",
    "second_guest_email",
    "second_guest_passport",
)
EDITABLE_FIELDS = frozenset(
    {
        *GUEST_FIELDS,
        "room_id",
        "check_in",
        "check_out",
        "status",
        "auto_release_at",
        "total",
        "notes",
    }
)


class BookingValidationError(Exception):
    """Raised when booking inputs are incomplete or inconsistent."""


class BookingNotFoundError(NotFoundError):
    """Raised when a booking id does not exist."""


@dataclass(frozen=True)
class BookingDraft:
    guest: GuestDetails
    check_in: date
    check_out: date
    status: BookingStatus = BookingStatus.RESERVED
    auto_release_at: Optional[datetime] = None
    total: Optional[float] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class BookingPage:
    items: list[Booking]
    total: int
    page: int
    page_size: int


@dataclass(frozen=True)
class HoldView:
    booking: Booking
    expired: bool


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _clean_guest(guest: GuestDetails) -> GuestDetails:
    guest_name = _clean(guest.guest_name)
    if guest_name is None:
        raise BookingValidationError("Guest name is required")
    return GuestDetails(
        guest_name=guest_name,
        guest_email=_clean(guest.guest_email),
        guest_passport=_clean(guest.guest_passport),
        second_guest_name=_clean(guest.second_guest_name),
        second_guest_email=_clean(guest.second_guest_email),
        second_guest_passport=_clean(guest.second_guest_passport),
    )


def _log_details(booking: Booking, room_numbers: Mapping[int, str]) -> dict[str, Any]:
    if booking.room_id is None:
        room_number = "Unassigned"
    else:
        room_number = room_numbers.get(booking.room_id, "Unknown")
    return {
        "guest_name": booking.guest_name,
        "room_number": room_number,
        "check_in": booking.check_in.isoformat(),
        "check_out": booking.check_out.isoformat(),
        "status": booking.status.value,
        "amount": booking.total,
    }


class BookingService:
    """Business rules for booking writes on top of the availability engine."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def _room_numbers(
        self,
        property_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> dict[int, str]:
        return {
            room.room_id: room.number
            for room in self._repository.list_rooms(property_id, conn=conn)
        }

    def cancel_expired_holds(
        self,
        expired: Sequence[Booking],
        performed_by: Optional[str],
        conn: sqlite3.Connection,
    ) -> list[Booking]:
        """Cancel the given holds if still tentative and log each one as ``hold_expired``."""
        if not expired:
            return []
        released_ids = set(
            self._repository.cancel_tentative_bookings(
                [booking.booking_id for booking in expired],
                conn=conn,
            )
        )
        released = [
            replace(booking, status=BookingStatus.CANCELLED)
            for booking in expired
            if booking.booking_id in released_ids
        ]
        room_numbers_by_property: dict[int, dict[int, str]] = {}
        log_entries = []
        for booking in released:
            if booking.property_id not in room_numbers_by_property:
                room_numbers_by_property[booking.property_id] = self._room_numbers(
                    booking.property_id,
                    conn=conn,
                )
            details = _log_details(booking, room_numbers_by_property[booking.property_id])
            details["reason"] = "hold_expired"
            log_entries.append(
                {
                    "booking_id": booking.booking_id,
                    "property_id": booking.property_id,
                    "action": BookingLogAction.UPDATE,
                    "performed_by": performed_by,
                    "details": details,
                }
            )
        self._repository.insert_booking_logs(log_entries, conn=conn)
        return released

    def get_booking(self, booking_id: int) -> Booking:
        booking = self._repository.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} was not found")
        return booking

    def create_bookings(
        self,
        *,
        property_id: int,
        room_ids: Sequence[int],
        draft: BookingDraft,
        performed_by: Optional[str],
        now: Optional[datetime] = None,
    ) -> list[Booking]:
        """Create one booking per room, or one unassigned booking when no room is given.

        A single room that overlaps raises ``ConflictDetected``; a multi-room
        request raises ``GroupConflict`` and creates nothing. With ``now`` set,
        expired holds in the way are cancelled instead of blocking.
        """
        guest = _clean_guest(draft.guest)
        validate_candidate_stay(draft.check_in, draft.check_out)
        try:
            validate_initial_status(draft.status)
        except ValueError as exc:
            raise BookingValidationError(str(exc)) from exc
        if draft.total is not None and draft.total < 0:
            raise BookingValidationError("total must be >= 0")
        if self._repository.get_property(property_id) is None:
            raise PropertyNotFoundError(f"Property {property_id} was not found")

        requested_rooms = list(dict.fromkeys(room_ids))
        auto_release_at = (
            draft.auto_release_at if draft.status == BookingStatus.TENTATIVE else None
        )

        with self._repository.write_transaction() as conn:
            room_numbers = self._room_numbers(property_id, conn=conn)
            foreign = [room_id for room_id in requested_rooms if room_id not in room_numbers]
            if foreign:
                raise RoomNotFoundError(
                    f"Rooms {foreign} do not belong to property {property_id}"
                )

            existing = self._repository.list_room_bookings(
                room_ids=requested_rooms,
                start=draft.check_in,
                end=draft.check_out,
                conn=conn,
            )
            if len(requested_rooms) == 1:
                ensure_no_conflicts(
                    requested_rooms[0],
                    draft.check_in,
                    draft.check_out,
                    existing,
                    now=now,
                )
            elif requested_rooms:
                existing_by_room: dict[int, list[Booking]] = defaultdict(list)
                for booking in existing:
                    existing_by_room[booking.room_id].append(booking)
                assign_multi_room(
                    requested_rooms,
                    draft.check_in,
                    draft.check_out,
                    existing_by_room,
                    now=now,
                )
            if now is not None:
                self.cancel_expired_holds(find_expired_holds(existing, now), SYSTEM_ACTOR, conn)

            base_row = {
                "property_id": property_id,
                "guest_name": guest.guest_name,
                "guest_email": guest.guest_email,
                "guest_passport": guest.guest_passport,
                "second_guest_name": guest.second_guest_name,
                "second_guest_email": guest.second_guest_email,
                "second_guest_passport": guest.second_guest_passport,
                "adults": guest.adults,
                "check_in": draft.check_in,
                "check_out": draft.check_out,
                "status": draft.status,
                "auto_release_at": auto_release_at,
                "total": draft.total,
                "notes": _clean(draft.notes),
                "created_by": performed_by,
            }
            targets: list[Optional[int]] = list(requested_rooms) or [None]
            created = self._repository.insert_bookings(
                [{**base_row, "room_id": room_id} for room_id in targets],
                conn=conn,
            )
            self._repository.insert_booking_logs(
                [
                    {
                        "booking_id": booking.booking_id,
                        "property_id": property_id,
                        "action": BookingLogAction.CREATE,
                        "performed_by": performed_by,
                        "details": _log_details(booking, room_numbers),
                    }
                    for booking in created
                ],
                conn=conn,
            )

        logger.info(
            "Bookings created | property_id=%s | booking_ids=%s | rooms=%s | status=%s",
            property_id,
            [booking.booking_id for booking in created],
            requested_rooms or "unassigned",
            draft.status.value,
        )
        return created

    def update_booking(
        self,
        *,
        booking_id: int,
        changes: Mapping[str, Any],
        performed_by: Optional[str],
        now: Optional[datetime] = None,
    ) -> Booking:
        """Apply a partial edit, re-checking overlap against every other booking in the room."""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise BookingValidationError(f"Fields cannot be edited: {sorted(unknown)}")

        with self._repository.write_transaction() as conn:
            current = self._repository.get_booking(booking_id, conn=conn)
            if current is None:
                raise BookingNotFoundError(f"Booking {booking_id} was not found")

            updates: dict[str, Any] = dict(changes)
            for field_name in GUEST_FIELDS:
                if field_name in updates:
                    updates[field_name] = _clean(updates[field_name])
            if "guest_name" in updates and updates["guest_name"] is None:
                raise BookingValidationError("Guest name is required")
            if "notes" in updates:
                updates["notes"] = _clean(updates["notes"])
            if updates.get("total") is not None and updates["total"] < 0:
                raise BookingValidationError("total must be >= 0")

            candidate = replace(current, **updates)
            validate_candidate_stay(candidate.check_in, candidate.check_out)
            validate_status_transition(current.status, candidate.status)
            if (
                now is not None
                and candidate.status not in (BookingStatus.TENTATIVE, BookingStatus.CANCELLED)
                and find_expired_holds([current], now)
            ):
                raise BookingValidationError(
                    f"Hold {booking_id} expired and can no longer be confirmed"
                )

            room_numbers = self._room_numbers(current.property_id, conn=conn)
            if candidate.room_id is not None and candidate.room_id not in room_numbers:
                raise RoomNotFoundError(
                    f"Room {candidate.room_id} does not belong to property {current.property_id}"
                )

            if candidate.room_id is not None and candidate.status != BookingStatus.CANCELLED:
                existing = self._repository.list_room_bookings(
                    room_ids=[candidate.room_id],
                    start=candidate.check_in,
                    end=candidate.check_out,
                    conn=conn,
                )
                ensure_no_conflicts(
                    candidate.room_id,
                    candidate.check_in,
                    candidate.check_out,
                    existing,
                    exclude_booking_id=booking_id,
                    now=now,
                )
                if now is not None:
                    self.cancel_expired_holds(
                        [
                            booking
                            for booking in find_expired_holds(existing, now)
                            if booking.booking_id != booking_id
                        ],
                        SYSTEM_ACTOR,
                        conn,
                    )

            if candidate.status != BookingStatus.TENTATIVE:
                updates["auto_release_at"] = None
            if any(field_name in updates for field_name in GUEST_FIELDS):
                updates["adults"] = GuestDetails(
                    guest_name=candidate.guest_name,
                    second_guest_name=candidate.second_guest_name,
                    second_guest_email=candidate.second_guest_email,
                    second_guest_passport=candidate.second_guest_passport,
                ).adults

            updated = self._repository.update_booking(booking_id, updates, conn=conn)
            if updated is None:
                raise BookingNotFoundError(f"Booking {booking_id} was not found")
            self._repository.insert_booking_logs(
                [
                    {
                        "booking_id": booking_id,
                        "property_id": updated.property_id,
                        "action": BookingLogAction.UPDATE,
                        "performed_by": performed_by,
                        "details": _log_details(updated, room_numbers),
                    }
                ],
                conn=conn,
            )

        logger.info(
            "Booking updated | booking_id=%s | fields=%s",
            booking_id,
            sorted(changes),
        )
        return updated

    def change_status(
        self,
        *,
        booking_id: int,
        status: BookingStatus,
        performed_by: Optional[str],
        now: Optional[datetime] = None,
    ) -> Booking:
        return self.update_booking(
            booking_id=booking_id,
            changes={"status": status},
            performed_by=performed_by,
            now=now,
        )

    def delete_booking(self, *, booking_id: int, performed_by: Optional[str]) -> Booking:
        with self._repository.write_transaction() as conn:
            booking = self._repository.get_booking(booking_id, conn=conn)
            if booking is None:
                raise BookingNotFoundError(f"Booking {booking_id} was not found")
            room_numbers = self._room_numbers(booking.property_id, conn=conn)
            self._repository.delete_booking(booking_id, conn=conn)
            self._repository.insert_booking_logs(
                [
                    {
                        "booking_id": booking_id,
                        "property_id": booking.property_id,
                        "action": BookingLogAction.DELETE,
                        "performed_by": performed_by,
                        "details": _log_details(booking, room_numbers),
                    }
                ],
                conn=conn,
            )
        logger.info("Booking deleted | booking_id=%s", booking_id)
        return booking

    def list_bookings(
        self,
        *,
        property_id: int,
        status: Optional[BookingStatus] = None,
        search: Optional[str] = None,
        sort: str = "check_in",
        month: Optional[date] = None,
        page: int = 1,
    ) -> BookingPage:
        if page < 1:
            raise BookingValidationError("page must be >= 1")
        if self._repository.get_property(property_id) is None:
            raise PropertyNotFoundError(f"Property {property_id} was not found")
        check_in_from: Optional[date] = None
        check_in_before: Optional[date] = None
        if month is not None:
            check_in_from, check_in_before = month_window(month)
        page_size = self._settings.bookings_page_size
        try:
            items, total = self._repository.search_bookings(
                property_id=property_id,
                status=status,
                search=search,
                sort=sort,
                check_in_from=check_in_from,
                check_in_before=check_in_before,
                limit=page_size,
                offset=(page - 1) * page_size,
            )
        except ValueError as exc:
            raise BookingValidationError(str(exc)) from exc
        return BookingPage(items=items, total=total, page=page, page_size=page_size)

    def list_holds(self, *, property_id: int, now: datetime) -> list[HoldView]:
        """Tentative holds with an ``expired`` flag, soonest deadline first."""
        holds = self._repository.list_tentative_holds(property_id=property_id)
        expired_ids = {booking.booking_id for booking in find_expired_holds(holds, now)}
        return [
            HoldView(booking=booking, expired=booking.booking_id in expired_ids)
            for booking in holds
        ]

    def release_expired_holds(
        self,
        *,
        now: datetime,
        property_id: Optional[int] = None,
        performed_by: str = SYSTEM_ACTOR,
    ) -> list[Booking]:
        """Cancel tentative holds whose deadline passed before ``now``.

        Only rows still tentative at write time are cancelled, so a hold
        promoted to ``reserved`` concurrently is left alone.
        """
        with self._repository.write_transaction() as conn:
            holds = self._repository.list_tentative_holds(property_id=property_id, conn=conn)
            released = self.cancel_expired_holds(find_expired_holds(holds, now), performed_by, conn)

        if released:
            logger.info(
                "Expired holds released | count=%s | booking_ids=%s",
                len(released),
                [booking.booking_id for booking in released],
            )
        return released

    def list_activity(
        self,
        *,
        property_id: Optional[int] = None,
        property_ids: Optional[Sequence[int]] = None,
        limit: Optional[int] = None,
    ) -> list[BookingLog]:
        return self._repository.list_booking_logs(
            property_id=property_id,
            property_ids=property_ids,
            limit=limit or self._settings.activity_log_limit,
        )
