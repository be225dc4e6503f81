from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest

from stayboard.domain.constraints import IllegalStatusTransition, InvalidRange
from stayboard.domain.models import BookingLogAction, BookingStatus, GuestDetails
from stayboard.repository.data_repository import DataRepository
from stayboard.services.availability_service import ConflictDetected, GroupConflict
from stayboard.services.booking_service import (
    BookingDraft,
    BookingNotFoundError,
    BookingService,
    BookingValidationError,
)
from stayboard.services.inventory_service import InventoryService, RoomNotFoundError
from stayboard.utils.config import get_settings


NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _build_services(tmp_path):
    get_settings.cache_clear()
    settings = replace(
        get_settings(),
        database_path=tmp_path / "bookings.db",
        admin_token=None,
        operator_tokens={},
        bookings_page_size=2,
    )
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.seed_demo_data(owner_id="admin")
    booking_service = BookingService(repository=repository, settings=settings)
    inventory_service = InventoryService(repository=repository, settings=settings)
    property_id = repository.list_properties()[0].property_id
    room_ids = [room.room_id for room in repository.list_rooms(property_id)]
    return repository, booking_service, inventory_service, property_id, room_ids


def _draft(check_in: date, check_out: date, **overrides) -> BookingDraft:
    guest = overrides.pop("guest", GuestDetails(guest_name="Ada Lovelace", guest_email="ada@example.com"))
    return BookingDraft(guest=guest, check_in=check_in, check_out=check_out, **overrides)


def test_single_room_overlap_raises_and_writes_nothing(tmp_path):
    repository, service, _, property_id, room_ids = _build_services(tmp_path)
    service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[0]],
        draft=_draft(date(2024, 3, 10), date(2024, 3, 15)),
        performed_by="admin",
    )

    adjacent = service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[0]],
        draft=_draft(date(2024, 3, 15), date(2024, 3, 18)),
        performed_by="admin",
    )
    assert len(adjacent) == 1

    with pytest.raises(ConflictDetected) as exc_info:
        service.create_bookings(
            property_id=property_id,
            room_ids=[room_ids[0]],
            draft=_draft(date(2024, 3, 14), date(2024, 3, 16)),
            performed_by="admin",
        )
    assert {booking.check_in for booking in exc_info.value.conflicts} == {
        date(2024, 3, 10),
        date(2024, 3, 15),
    }
    assert repository.count_bookings(property_id) == 2


def test_group_booking_skips_cancelled_and_creates_every_room(tmp_path):
    repository, service, _, property_id, room_ids = _build_services(tmp_path)
    r1, r2 = room_ids[0], room_ids[1]
    old = service.create_bookings(
        property_id=property_id,
        room_ids=[r2],
        draft=_draft(date(2024, 3, 30), date(2024, 4, 2)),
        performed_by="admin",
    )[0]
    service.change_status(booking_id=old.booking_id, status=BookingStatus.CANCELLED, performed_by="admin")

    created = service.create_bookings(
        property_id=property_id,
        room_ids=[r1, r2],
        draft=_draft(date(2024, 4, 1), date(2024, 4, 3)),
        performed_by="admin",
    )
    assert [booking.room_id for booking in created] == [r1, r2]
    assert len({booking.reference_code for booking in created}) == 2


def test_group_conflict_is_all_or_nothing(tmp_path):
    repository, service, _, property_id, room_ids = _build_services(tmp_path)
    r1, r2 = room_ids[0], room_ids[1]
    service.create_bookings(
        property_id=property_id,
        room_ids=[r2],
        draft=_draft(date(2024, 4, 2), date(2024, 4, 4)),
        performed_by="admin",
    )
    before = repository.count_bookings(property_id)
    before_logs = repository.count_booking_logs()

    with pytest.raises(GroupConflict) as exc_info:
        service.create_bookings(
            property_id=property_id,
            room_ids=[r1, r2],
            draft=_draft(date(2024, 4, 1), date(2024, 4, 3)),
            performed_by="admin",
        )
    assert list(exc_info.value.conflicts) == [r2]
    assert exc_info.value.clear_room_ids == (r1,)
    assert repository.count_bookings(property_id) == before
    assert repository.count_booking_logs() == before_logs


def test_booking_without_rooms_is_unassigned(tmp_path):
    _, service, _, property_id, _ = _build_services(tmp_path)
    created = service.create_bookings(
        property_id=property_id,
        room_ids=[],
        draft=_draft(date(2024, 5, 1), date(2024, 5, 3)),
        performed_by="admin",
    )
    assert len(created) == 1
    assert created[0].room_id is None
    assert created[0].nights == 2


def test_second_guest_sets_two_adults_and_hold_deadline_only_for_tentative(tmp_path):
    _, service, _, property_id, room_ids = _build_services(tmp_path)
    deadline = NOW + timedelta(hours=6)
    reserved = service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[0]],
        draft=_draft(
            date(2024, 5, 1),
            date(2024, 5, 3),
            guest=GuestDetails(guest_name="Ada", second_guest_name="Charles"),
            auto_release_at=deadline,
        ),
        performed_by="admin",
    )[0]
    assert reserved.adults == 2
    assert reserved.auto_release_at is None

    tentative = service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[1]],
        draft=_draft(
            date(2024, 5, 1),
            date(2024, 5, 3),
            status=BookingStatus.TENTATIVE,
            auto_release_at=deadline,
        ),
        performed_by="admin",
    )[0]
    assert tentative.adults == 1
    assert tentative.auto_release_at == deadline


def test_create_rejects_bad_inputs(tmp_path):
    repository, service, inventory, property_id, room_ids = _build_services(tmp_path)

    with pytest.raises(BookingValidationError):
        service.create_bookings(
            property_id=property_id,
            room_ids=[room_ids[0]],
            draft=_draft(date(2024, 5, 1), date(2024, 5, 2), guest=GuestDetails(guest_name="   ")),
            performed_by="admin",
        )
    with pytest.raises(InvalidRange):
        service.create_bookings(
            property_id=property_id,
            room_ids=[room_ids[0]],
            draft=_draft(date(2024, 5, 2), date(2024, 5, 2)),
            performed_by="admin",
        )
    with pytest.raises(BookingValidationError):
        service.create_bookings(
            property_id=property_id,
            room_ids=[room_ids[0]],
            draft=_draft(date(2024, 5, 1), date(2024, 5, 2), status=BookingStatus.CHECKED_OUT),
            performed_by="admin",
        )

    other = inventory.create_property(owner_id="someone", name="Other Inn")
    foreign_room = inventory.create_room(property_id=other.property_id, number="1")
    with pytest.raises(RoomNotFoundError):
        service.create_bookings(
            property_id=property_id,
            room_ids=[foreign_room.room_id],
            draft=_draft(date(2024, 5, 1), date(2024, 5, 2)),
            performed_by="admin",
        )
    assert repository.count_bookings(property_id) == 0


def test_edit_excludes_itself_but_not_neighbours(tmp_path):
    _, service, _, property_id, room_ids = _build_services(tmp_path)
    booking = service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[0]],
        draft=_draft(date(2024, 6, 1), date(2024, 6, 4)),
        performed_by="admin",
    )[0]
    service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[0]],
        draft=_draft(date(2024, 6, 10), date(2024, 6, 12)),
        performed_by="admin",
    )

    extended = service.update_booking(
        booking_id=booking.booking_id,
        changes={"check_out": date(2024, 6, 10), "second_guest_email": "bob@example.com"},
        performed_by="admin",
    )
    assert extended.check_out == date(2024, 6, 10)
    assert extended.adults == 2

    with pytest.raises(ConflictDetected):
        service.update_booking(
            booking_id=booking.booking_id,
            changes={"check_out": date(2024, 6, 11)},
            performed_by="admin",
        )

    moved = service.update_booking(
        booking_id=booking.booking_id,
        changes={"room_id": room_ids[1], "check_out": date(2024, 6, 11)},
        performed_by="admin",
    )
    assert moved.room_id == room_ids[1]


def test_status_machine_is_enforced_on_edits(tmp_path):
    _, service, _, property_id, room_ids = _build_services(tmp_path)
    booking = service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[0]],
        draft=_draft(date(2024, 6, 1), date(2024, 6, 2), status=BookingStatus.CHECKED_IN),
        performed_by="admin",
    )[0]
    done = service.change_status(
        booking_id=booking.booking_id,
        status=BookingStatus.CHECKED_OUT,
        performed_by="admin",
    )
    assert done.status == BookingStatus.CHECKED_OUT

    with pytest.raises(IllegalStatusTransition):
        service.update_booking(
            booking_id=booking.booking_id,
            changes={"status": BookingStatus.TENTATIVE},
            performed_by="admin",
        )
    with pytest.raises(BookingValidationError):
        service.update_booking(
            booking_id=booking.booking_id,
            changes={"reference_code": "ABCDEF"},
            performed_by="admin",
        )


def test_promoting_a_hold_clears_its_deadline(tmp_path):
    _, service, _, property_id, room_ids = _build_services(tmp_path)
    hold = service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[0]],
        draft=_draft(
            date(2024, 6, 1),
            date(2024, 6, 2),
            status=BookingStatus.TENTATIVE,
            auto_release_at=NOW,
        ),
        performed_by="admin",
    )[0]
    promoted = service.change_status(
        booking_id=hold.booking_id,
        status=BookingStatus.RESERVED,
        performed_by="admin",
    )
    assert promoted.status == BookingStatus.RESERVED
    assert promoted.auto_release_at is None


def test_expired_hold_cannot_be_promoted(tmp_path):
    repository, service, _, property_id, room_ids = _build_services(tmp_path)
    hold = service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[0]],
        draft=_draft(
            date(2024, 6, 1),
            date(2024, 6, 2),
            status=BookingStatus.TENTATIVE,
            auto_release_at=NOW - timedelta(seconds=1),
        ),
        performed_by="admin",
    )[0]

    with pytest.raises(BookingValidationError):
        service.change_status(
            booking_id=hold.booking_id,
            status=BookingStatus.RESERVED,
            performed_by="admin",
            now=NOW,
        )
    assert repository.get_booking(hold.booking_id).status == BookingStatus.TENTATIVE

    cancelled = service.change_status(
        booking_id=hold.booking_id,
        status=BookingStatus.CANCELLED,
        performed_by="admin",
        now=NOW,
    )
    assert cancelled.status == BookingStatus.CANCELLED


def test_release_expired_holds_cancels_only_expired(tmp_path):
    repository, service, _, property_id, room_ids = _build_services(tmp_path)
    expired = service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[0]],
        draft=_draft(
            date(2024, 2, 1),
            date(2024, 2, 3),
            status=BookingStatus.TENTATIVE,
            auto_release_at=NOW - timedelta(seconds=1),
        ),
        performed_by="admin",
    )[0]
    pending = service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[1]],
        draft=_draft(
            date(2024, 2, 1),
            date(2024, 2, 3),
            status=BookingStatus.TENTATIVE,
            auto_release_at=NOW + timedelta(seconds=1),
        ),
        performed_by="admin",
    )[0]

    holds = service.list_holds(property_id=property_id, now=NOW)
    assert [(hold.booking.booking_id, hold.expired) for hold in holds] == [
        (expired.booking_id, True),
        (pending.booking_id, False),
    ]

    released = service.release_expired_holds(now=NOW)
    assert [booking.booking_id for booking in released] == [expired.booking_id]
    assert repository.get_booking(expired.booking_id).status == BookingStatus.CANCELLED
    assert repository.get_booking(pending.booking_id).status == BookingStatus.TENTATIVE
    assert service.release_expired_holds(now=NOW) == []

    latest_log = service.list_activity(property_id=property_id, limit=1)[0]
    assert latest_log.booking_id == expired.booking_id
    assert latest_log.performed_by == "system"
    assert latest_log.details["reason"] == "hold_expired"

    # the released room is free again
    service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[0]],
        draft=_draft(date(2024, 2, 1), date(2024, 2, 3)),
        performed_by="admin",
    )


def test_booking_over_an_expired_hold_cancels_it(tmp_path):
    repository, service, _, property_id, room_ids = _build_services(tmp_path)
    lapsed = service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[0]],
        draft=_draft(
            date(2024, 2, 10),
            date(2024, 2, 12),
            status=BookingStatus.TENTATIVE,
            auto_release_at=NOW - timedelta(minutes=10),
        ),
        performed_by="admin",
    )[0]

    with pytest.raises(ConflictDetected):
        service.create_bookings(
            property_id=property_id,
            room_ids=[room_ids[0]],
            draft=_draft(date(2024, 2, 11), date(2024, 2, 13)),
            performed_by="admin",
        )

    created = service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[0]],
        draft=_draft(date(2024, 2, 11), date(2024, 2, 13)),
        performed_by="admin",
        now=NOW,
    )
    assert len(created) == 1
    assert repository.get_booking(lapsed.booking_id).status == BookingStatus.CANCELLED
    reasons = [log.details.get("reason") for log in service.list_activity(property_id=property_id)]
    assert "hold_expired" in reasons


def test_delete_writes_activity_entry(tmp_path):
    _, service, _, property_id, room_ids = _build_services(tmp_path)
    booking = service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[0]],
        draft=_draft(date(2024, 7, 1), date(2024, 7, 2)),
        performed_by="operator-1",
    )[0]
    service.delete_booking(booking_id=booking.booking_id, performed_by="operator-1")

    with pytest.raises(BookingNotFoundError):
        service.get_booking(booking.booking_id)
    actions = [log.action for log in service.list_activity(property_id=property_id)]
    assert actions == [BookingLogAction.DELETE, BookingLogAction.CREATE]
    assert service.list_activity(property_id=property_id)[0].details["room_number"] == "101"


def test_list_bookings_filters_and_paginates(tmp_path):
    _, service, _, property_id, room_ids = _build_services(tmp_path)
    for index, guest in enumerate(["Zoe", "Adam", "Mia"]):
        service.create_bookings(
            property_id=property_id,
            room_ids=[room_ids[index]],
            draft=_draft(date(2024, 8, 1 + index), date(2024, 8, 5), guest=GuestDetails(guest_name=guest)),
            performed_by="admin",
        )
    service.create_bookings(
        property_id=property_id,
        room_ids=[room_ids[0]],
        draft=_draft(date(2024, 9, 1), date(2024, 9, 2), guest=GuestDetails(guest_name="September")),
        performed_by="admin",
    )

    august = service.list_bookings(property_id=property_id, month=date(2024, 8, 17), sort="guest")
    assert august.total == 3
    assert august.page_size == 2
    assert [booking.guest_name for booking in august.items] == ["Adam", "Mia"]

    second_page = service.list_bookings(
        property_id=property_id,
        month=date(2024, 8, 1),
        sort="guest",
        page=2,
    )
    assert [booking.guest_name for booking in second_page.items] == ["Zoe"]

    searched = service.list_bookings(property_id=property_id, search="sept")
    assert [booking.guest_name for booking in searched.items] == ["September"]

    with pytest.raises(BookingValidationError):
        service.list_bookings(property_id=property_id, sort="price")
