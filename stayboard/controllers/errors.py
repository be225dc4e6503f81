"""Translation of service-layer errors into HTTP responses."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status

from stayboard.domain.constraints import IllegalStatusTransition, InvalidRange
from stayboard.domain.models import Booking
from stayboard.services.assignment_service import (
    AssignmentSolveError,
    AssignmentValidationError,
)
from stayboard.services.auth_service import PropertyAccessDenied
from stayboard.services.availability_service import (
    AvailabilityValidationError,
    ConflictDetected,
    GroupConflict,
)
from stayboard.services.booking_service import BookingValidationError
from stayboard.services.inventory_service import InventoryValidationError, NotFoundError


DOMAIN_ERRORS: tuple[type[Exception], ...] = (
    InvalidRange,
    IllegalStatusTransition,
    ConflictDetected,
    GroupConflict,
    NotFoundError,
    PropertyAccessDenied,
    InventoryValidationError,
    BookingValidationError,
    AvailabilityValidationError,
    AssignmentValidationError,
    AssignmentSolveError,
)


def _conflict_summary(booking: Booking) -> dict[str, Any]:
    return {
        "booking_id": booking.booking_id,
        "room_id": booking.room_id,
        "check_in": booking.check_in.isoformat(),
        "check_out": booking.check_out.isoformat(),
        "status": booking.status.value,
        "reference_code": booking.reference_code,
    }


def to_http_exception(exc: Exception) -> HTTPException:
    if isinstance(exc, ConflictDetected):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(exc),
                "room_id": exc.room_id,
                "conflicts": [_conflict_summary(booking) for booking in exc.conflicts],
            },
        )
    if isinstance(exc, GroupConflict):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(exc),
                "conflicts": {
                    str(room_id): [_conflict_summary(booking) for booking in bookings]
                    for room_id, bookings in exc.conflicts.items()
                },
                "clear_room_ids": list(exc.clear_room_ids),
            },
        )
    if isinstance(exc, IllegalStatusTransition):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PropertyAccessDenied):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, AssignmentSolveError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
