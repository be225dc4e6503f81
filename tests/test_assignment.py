from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone

import pytest

pytest.importorskip("ortools")

from stayboard.domain.constraints import AssignmentConfig, InvalidRange
from stayboard.domain.models import Booking, BookingLogAction, BookingStatus, GuestDetails, Room, RoomStatus
from stayboard.repository.data_repository import DataRepository
from stayboard.services.assignment_service import (
    AssignmentDraftNotFoundError,
    AssignmentService,
    AssignmentValidationError,
    build_model,
    eligible_rooms,
    solve_model,
)
from stayboard.services.booking_service import BookingDraft, BookingService
from stayboard.utils.config import get_settings


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
LAPSED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _build_services(tmp_path, keep_rooms: int):
    get_settings.cache_clear()
    settings = replace(
        get_settings(),
        database_path=tmp_path / "assignment.db",
        admin_token=None,
        operator_tokens={},
        assignment_solver_max_time_seconds=5,
        assignment_cp_sat_workers=1,
        assignment_solver_random_seed=42,
    )
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.seed_demo_data(owner_id="admin")
    property_id = repository.list_properties()[0].property_id
    rooms = repository.list_rooms(property_id)
    for room in rooms[keep_rooms:]:
        repository.update_room(room.room_id, {"status": RoomStatus.OUT_OF_SERVICE})
    booking_service = BookingService(repository=repository, settings=settings)
    assignment_service = AssignmentService(
        repository=repository,
        settings=settings,
        booking_service=booking_service,
    )
    return repository, booking_service, assignment_service, property_id, [room.room_id for room in rooms]


def _book(service: BookingService, property_id: int, room_ids, check_in: date, check_out: date, name: str):
    return service.create_bookings(
        property_id=property_id,
        room_ids=room_ids,
        draft=BookingDraft(guest=GuestDetails(guest_name=name), check_in=check_in, check_out=check_out),
        performed_by="admin",
    )[0]


def _hold(service: BookingService, property_id: int, room_ids, check_in: date, check_out: date, deadline: datetime):
    return service.create_bookings(
        property_id=property_id,
        room_ids=room_ids,
        draft=BookingDraft(
            guest=GuestDetails(guest_name="Hold"),
            check_in=check_in,
            check_out=check_out,
            status=BookingStatus.TENTATIVE,
            auto_release_at=deadline,
        ),
        performed_by="admin",
    )[0]


def test_preview_maximises_room_nights_in_a_single_room(tmp_path):
    _, bookings, assignments, property_id, room_ids = _build_services(tmp_path, keep_rooms=1)
    long_stay = _book(bookings, property_id, [], date(2024, 3, 1), date(2024, 3, 5), "Long")
    short_stay = _book(bookings, property_id, [], date(2024, 3, 3), date(2024, 3, 4), "Short")
    follow_on = _book(bookings, property_id, [], date(2024, 3, 5), date(2024, 3, 7), "Follow On")

    result = assignments.preview(property_id=property_id, start=date(2024, 3, 1), end=date(2024, 3, 31))

    assert result.solver_status == "OPTIMAL"
    assert {decision.booking_id for decision in result.assignments} == {
        long_stay.booking_id,
        follow_on.booking_id,
    }
    assert all(decision.room_id == room_ids[0] for decision in result.assignments)
    assert result.unassigned_booking_ids == [short_stay.booking_id]
    assert result.objective_value == 6.0


def test_assigned_bookings_keep_their_rooms_blocked(tmp_path):
    _, bookings, assignments, property_id, room_ids = _build_services(tmp_path, keep_rooms=2)
    _book(bookings, property_id, [room_ids[0]], date(2024, 3, 1), date(2024, 3, 10), "Resident")
    pending = _book(bookings, property_id, [], date(2024, 3, 2), date(2024, 3, 4), "Pending")

    result = assignments.preview(property_id=property_id, start=date(2024, 3, 1), end=date(2024, 3, 15))

    assert [(decision.booking_id, decision.room_id) for decision in result.assignments] == [
        (pending.booking_id, room_ids[1])
    ]


def test_approve_writes_rooms_and_logs_once(tmp_path):
    repository, bookings, assignments, property_id, room_ids = _build_services(tmp_path, keep_rooms=2)
    first = _book(bookings, property_id, [], date(2024, 4, 1), date(2024, 4, 3), "First")
    second = _book(bookings, property_id, [], date(2024, 4, 2), date(2024, 4, 4), "Second")

    with pytest.raises(AssignmentDraftNotFoundError):
        assignments.approve(property_id=property_id, performed_by="admin")

    assignments.preview(property_id=property_id, start=date(2024, 4, 1), end=date(2024, 4, 30))
    result = assignments.approve(property_id=property_id, performed_by="admin")

    assert len(result.assignments) == 2
    stored = {
        booking_id: repository.get_booking(booking_id).room_id
        for booking_id in (first.booking_id, second.booking_id)
    }
    assert set(stored.values()) == {room_ids[0], room_ids[1]}

    logs = repository.list_booking_logs(property_id=property_id)
    assigned_logs = [log for log in logs if log.details.get("reason") == "room_assigned"]
    assert len(assigned_logs) == 2
    assert all(log.action == BookingLogAction.UPDATE for log in assigned_logs)

    with pytest.raises(AssignmentDraftNotFoundError):
        assignments.approve(property_id=property_id, performed_by="admin")


def test_preview_rejects_bad_windows(tmp_path):
    _, _, assignments, property_id, _ = _build_services(tmp_path, keep_rooms=6)

    with pytest.raises(InvalidRange):
        assignments.preview(property_id=property_id, start=date(2024, 3, 5), end=date(2024, 3, 5))
    with pytest.raises(AssignmentValidationError):
        assignments.preview(property_id=property_id, start=date(2024, 1, 1), end=date(2024, 12, 31))


def test_preview_with_nothing_to_place_is_empty(tmp_path):
    _, _, assignments, property_id, _ = _build_services(tmp_path, keep_rooms=6)
    result = assignments.preview(property_id=property_id, start=date(2024, 3, 1), end=date(2024, 3, 8))
    assert result.solver_status == "EMPTY"
    assert result.assignments == []


def test_model_skips_out_of_service_and_fully_blocked_rooms():
    rooms = [
        Room(room_id=1, property_id=1, number="101"),
        Room(room_id=2, property_id=1, number="102", status=RoomStatus.OUT_OF_SERVICE),
    ]
    pending = Booking(
        booking_id=10,
        property_id=1,
        room_id=None,
        guest_name="Pending",
        check_in=date(2024, 5, 1),
        check_out=date(2024, 5, 3),
        status=BookingStatus.RESERVED,
    )
    blocker = replace(pending, booking_id=11, room_id=1, guest_name="Blocker")

    usable = eligible_rooms(rooms)
    assert [room.room_id for room in usable] == [1]

    artifacts = build_model(rooms=usable, bookings=[pending], existing_by_room={1: [blocker]})
    assert artifacts.variables == {}

    result = solve_model(
        artifacts=artifacts,
        bookings=[pending],
        config=AssignmentConfig(solver_max_time_seconds=5, solver_random_seed=0, cp_sat_workers=1),
    )
    assert result.assignments == []
    assert result.unassigned_booking_ids == [10]


def test_expired_hold_does_not_block_its_room(tmp_path):
    repository, bookings, assignments, property_id, room_ids = _build_services(tmp_path, keep_rooms=1)
    hold = _hold(bookings, property_id, [room_ids[0]], date(2030, 3, 1), date(2030, 3, 5), LAPSED)
    pending = _book(bookings, property_id, [], date(2030, 3, 2), date(2030, 3, 4), "Pending")

    result = assignments.preview(
        property_id=property_id,
        start=date(2030, 3, 1),
        end=date(2030, 3, 31),
        now=NOW,
    )
    assert [(decision.booking_id, decision.room_id) for decision in result.assignments] == [
        (pending.booking_id, room_ids[0])
    ]
    assert result.unassigned_booking_ids == []

    assignments.approve(property_id=property_id, performed_by="admin", now=NOW)

    assert repository.get_booking(pending.booking_id).room_id == room_ids[0]
    assert repository.get_booking(hold.booking_id).status == BookingStatus.CANCELLED
    released_logs = [
        log
        for log in repository.list_booking_logs(property_id=property_id)
        if log.details.get("reason") == "hold_expired"
    ]
    assert [log.booking_id for log in released_logs] == [hold.booking_id]
    assert released_logs[0].performed_by == "system"


def test_live_hold_still_blocks_its_room(tmp_path):
    _, bookings, assignments, property_id, room_ids = _build_services(tmp_path, keep_rooms=1)
    _hold(
        bookings,
        property_id,
        [room_ids[0]],
        date(2030, 3, 1),
        date(2030, 3, 5),
        datetime(2030, 1, 1, tzinfo=timezone.utc),
    )
    pending = _book(bookings, property_id, [], date(2030, 3, 2), date(2030, 3, 4), "Pending")

    result = assignments.preview(
        property_id=property_id,
        start=date(2030, 3, 1),
        end=date(2030, 3, 31),
        now=NOW,
    )
    assert result.assignments == []
    assert result.unassigned_booking_ids == [pending.booking_id]


def test_expired_unassigned_hold_is_not_given_a_room(tmp_path):
    repository, bookings, assignments, property_id, _ = _build_services(tmp_path, keep_rooms=1)
    hold = _hold(bookings, property_id, [], date(2030, 4, 1), date(2030, 4, 3), LAPSED)

    result = assignments.preview(
        property_id=property_id,
        start=date(2030, 4, 1),
        end=date(2030, 4, 30),
        now=NOW,
    )
    assert result.solver_status == "EMPTY"
    assert result.assignments == []
    assert result.unassigned_booking_ids == []

    assignments.approve(property_id=property_id, performed_by="admin", now=NOW)

    stored = repository.get_booking(hold.booking_id)
    assert stored.room_id is None
    assert stored.status == BookingStatus.CANCELLED
