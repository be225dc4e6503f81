"""Room assignment for unassigned bookings using CP-SAT."""

from __future__ import annotations

import sqlite3
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from threading import RLock
from typing import Any, Optional

from ortools.sat.python import cp_model

from stayboard.domain.constraints import (
    AssignmentConfig,
    validate_assignment_config,
    validate_candidate_stay,
)
from stayboard.domain.models import (
    AssignmentDecision,
    AssignmentResult,
    Booking,
    BookingLogAction,
    Room,
    RoomStatus,
)
from stayboard.repository.data_repository import DataRepository
from stayboard.services.availability_service import (
    ensure_no_conflicts,
    find_conflicts,
    find_expired_holds,
)
from stayboard.services.booking_service import SYSTEM_ACTOR, BookingService
from stayboard.services.inventory_service import PropertyNotFoundError
from stayboard.utils.config import Settings, get_settings
from stayboard.utils.logger import get_logger


logger = get_logger(__name__)


class AssignmentValidationError(Exception):
    """Raised when an assignment window is invalid."""


class AssignmentDraftNotFoundError(AssignmentValidationError):
    """Raised when approve is called before a preview for the property."""


class AssignmentSolveError(Exception):
    """Raised when CP-SAT ends without a usable solution."""


@dataclass(frozen=True)
class BuildArtifacts:
    model: Any
    variables: dict[tuple[int, int], Any]
    objective_coefficients: dict[tuple[int, int], int]


@dataclass(frozen=True)
class AssignmentDraft:
    property_id: int
    start: date
    end: date
    result: AssignmentResult


def eligible_rooms(rooms: list[Room]) -> list[Room]:
    return [room for room in rooms if room.status != RoomStatus.OUT_OF_SERVICE]


def build_model(
    *,
    rooms: list[Room],
    bookings: list[Booking],
    existing_by_room: dict[int, list[Booking]],
    now: Optional[datetime] = None,
) -> BuildArtifacts:
    """Build the assignment model.

    One boolean per (booking, room) pair where the room is free for the
    whole stay. Every check-in date yields a clique constraint per room, which
    keeps overlapping bookings out of the same room. With ``now`` set, expired
    holds already in a room do not make it busy.
    """
    model = cp_model.CpModel()
    variables: dict[tuple[int, int], cp_model.IntVar] = {}
    objective_coefficients: dict[tuple[int, int], int] = {}

    for room in rooms:
        existing = existing_by_room.get(room.room_id, [])
        for booking in bookings:
            if find_conflicts(room.room_id, booking.check_in, booking.check_out, existing, now=now):
                continue
            pair = (booking.booking_id, room.room_id)
            variables[pair] = model.NewBoolVar(f"x_booking_{booking.booking_id}_room_{room.room_id}")
            objective_coefficients[pair] = booking.nights

    for booking in bookings:
        booking_vars = [
            var
            for (booking_id, _), var in variables.items()
            if booking_id == booking.booking_id
        ]
        if booking_vars:
            model.Add(sum(booking_vars) <= 1)

    start_days = sorted({booking.check_in for booking in bookings})
    for room in rooms:
        for day in start_days:
            day_vars = [
                variables[(booking.booking_id, room.room_id)]
                for booking in bookings
                if booking.contains(day) and (booking.booking_id, room.room_id) in variables
            ]
            if len(day_vars) > 1:
                model.Add(sum(day_vars) <= 1)

    if variables:
        model.Maximize(
            sum(objective_coefficients[pair] * var for pair, var in variables.items())
        )
    else:
        model.Maximize(0)

    return BuildArtifacts(
        model=model,
        variables=variables,
        objective_coefficients=objective_coefficients,
    )


def solve_model(
    *,
    artifacts: BuildArtifacts,
    bookings: list[Booking],
    config: AssignmentConfig,
) -> AssignmentResult:
    """Solve the model and return assignments plus the bookings left unplaced."""
    if not bookings:
        return AssignmentResult(
            assignments=[],
            objective_value=0.0,
            unassigned_booking_ids=[],
            solver_status="EMPTY",
        )

    solver = cp_model.CpSolver()
    solver.parameters.max_time_in_seconds = float(config.solver_max_time_seconds)
    solver.parameters.num_search_workers = config.cp_sat_workers
    solver.parameters.random_seed = config.solver_random_seed

    status = solver.Solve(artifacts.model)
    status_name = solver.StatusName(status)
    if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        logger.warning("Assignment solve failed | status=%s", status_name)
        raise AssignmentSolveError(f"Room assignment solver ended with status {status_name}")

    assignments: list[AssignmentDecision] = []
    for (booking_id, room_id), var in sorted(artifacts.variables.items()):
        if solver.Value(var) != 1:
            continue
        assignments.append(
            AssignmentDecision(
                booking_id=booking_id,
                room_id=room_id,
                nights=artifacts.objective_coefficients[(booking_id, room_id)],
            )
        )

    assigned_ids = {decision.booking_id for decision in assignments}
    unassigned = [
        booking.booking_id
        for booking in bookings
        if booking.booking_id not in assigned_ids
    ]
    objective_value = float(solver.ObjectiveValue())
    logger.info(
        "Assignment solve completed | status=%s | room_nights=%.0f | assigned=%s | unassigned=%s",
        status_name,
        objective_value,
        len(assignments),
        len(unassigned),
    )
    return AssignmentResult(
        assignments=assignments,
        objective_value=objective_value,
        unassigned_booking_ids=unassigned,
        solver_status=status_name,
    )


class AssignmentService:
    """Preview and approve room assignments for unassigned bookings."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        booking_service: Optional[BookingService] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._booking_service = booking_service or BookingService(
            repository=self._repository,
            settings=self._settings,
        )
        self._lock = RLock()
        self._drafts: dict[int, AssignmentDraft] = {}

    def _config(self) -> AssignmentConfig:
        config = AssignmentConfig(
            solver_max_time_seconds=self._settings.assignment_solver_max_time_seconds,
            solver_random_seed=self._settings.assignment_solver_random_seed,
            cp_sat_workers=self._settings.assignment_cp_sat_workers,
        )
        try:
            validate_assignment_config(config)
        except ValueError as exc:
            raise AssignmentValidationError(str(exc)) from exc
        return config

    def _validate_window(self, property_id: int, start: date, end: date) -> None:
        validate_candidate_stay(start, end)
        if (end - start).days > self._settings.calendar_max_days:
            raise AssignmentValidationError(
                f"Assignment window must be at most {self._settings.calendar_max_days} days"
            )
        if self._repository.get_property(property_id) is None:
            raise PropertyNotFoundError(f"Property {property_id} was not found")

    def _solve(
        self,
        *,
        property_id: int,
        start: date,
        end: date,
        now: Optional[datetime] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> tuple[AssignmentResult, dict[int, list[Booking]], list[Booking]]:
        """Solve one window and return the result, room occupancy and expired holds seen."""
        config = self._config()
        rooms = eligible_rooms(self._repository.list_rooms(property_id, conn=conn))
        bookings = self._repository.list_unassigned_bookings(
            property_id=property_id,
            start=start,
            end=end,
            conn=conn,
        )
        expired: list[Booking] = []
        if now is not None:
            expired = find_expired_holds(bookings, now)
            expired_ids = {booking.booking_id for booking in expired}
            bookings = [booking for booking in bookings if booking.booking_id not in expired_ids]

        existing_by_room: dict[int, list[Booking]] = defaultdict(list)
        if rooms and bookings:
            span_start = min(booking.check_in for booking in bookings)
            span_end = max(booking.check_out for booking in bookings)
            for booking in self._repository.list_room_bookings(
                room_ids=[room.room_id for room in rooms],
                start=span_start,
                end=span_end,
                conn=conn,
            ):
                existing_by_room[booking.room_id].append(booking)
            if now is not None:
                for room_bookings in existing_by_room.values():
                    expired.extend(find_expired_holds(room_bookings, now))

        if not rooms or not bookings:
            logger.info(
                "Assignment skipped due to empty inputs | property_id=%s | rooms=%s | bookings=%s",
                property_id,
                len(rooms),
                len(bookings),
            )
            return (
                AssignmentResult(
                    assignments=[],
                    objective_value=0.0,
                    unassigned_booking_ids=[booking.booking_id for booking in bookings],
                    solver_status="EMPTY",
                ),
                existing_by_room,
                expired,
            )

        artifacts = build_model(
            rooms=rooms,
            bookings=bookings,
            existing_by_room=existing_by_room,
            now=now,
        )
        result = solve_model(artifacts=artifacts, bookings=bookings, config=config)
        return result, existing_by_room, expired

    def preview(
        self,
        *,
        property_id: int,
        start: date,
        end: date,
        now: Optional[datetime] = None,
    ) -> AssignmentResult:
        """Solve the window without writing anything and keep it as the property's draft.

        With ``now`` set, expired holds neither receive a room nor block one.
        """
        self._validate_window(property_id, start, end)
        result, _, _ = self._solve(property_id=property_id, start=start, end=end, now=now)
        with self._lock:
            self._drafts[property_id] = AssignmentDraft(
                property_id=property_id,
                start=start,
                end=end,
                result=result,
            )
        return result

    def approve(
        self,
        *,
        property_id: int,
        performed_by: Optional[str],
        now: Optional[datetime] = None,
    ) -> AssignmentResult:
        """Re-solve the previewed window and store the room ids atomically.

        Expired holds found while solving are cancelled in the same transaction.
        """
        with self._lock:
            draft = self._drafts.get(property_id)
        if draft is None:
            raise AssignmentDraftNotFoundError(
                "No assignment preview for this property. Run preview first."
            )

        with self._repository.write_transaction() as conn:
            result, existing_by_room, expired = self._solve(
                property_id=property_id,
                start=draft.start,
                end=draft.end,
                now=now,
                conn=conn,
            )
            room_numbers = {
                room.room_id: room.number
                for room in self._repository.list_rooms(property_id, conn=conn)
            }
            log_entries = []
            for decision in result.assignments:
                booking = self._repository.get_booking(decision.booking_id, conn=conn)
                if booking is None:
                    continue
                ensure_no_conflicts(
                    decision.room_id,
                    booking.check_in,
                    booking.check_out,
                    existing_by_room[decision.room_id],
                    now=now,
                )
                updated = self._repository.update_booking(
                    decision.booking_id,
                    {"room_id": decision.room_id},
                    conn=conn,
                )
                if updated is None:
                    continue
                existing_by_room[decision.room_id].append(updated)
                log_entries.append(
                    {
                        "booking_id": updated.booking_id,
                        "property_id": property_id,
                        "action": BookingLogAction.UPDATE,
                        "performed_by": performed_by,
                        "details": {
                            "guest_name": updated.guest_name,
                            "room_number": room_numbers.get(decision.room_id, "Unknown"),
                            "check_in": updated.check_in.isoformat(),
                            "check_out": updated.check_out.isoformat(),
                            "status": updated.status.value,
                            "reason": "room_assigned",
                        },
                    }
                )
            self._repository.insert_booking_logs(log_entries, conn=conn)
            released = self._booking_service.cancel_expired_holds(expired, SYSTEM_ACTOR, conn)

        with self._lock:
            self._drafts.pop(property_id, None)
        logger.info(
            "Assignment approved | property_id=%s | assigned=%s | unassigned=%s | released=%s",
            property_id,
            len(result.assignments),
            len(result.unassigned_booking_ids),
            len(released),
        )
        return result
