"""HTTP controller layer for availability checks, the room calendar, and occupancy."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from stayboard.controllers.dependencies import (
    get_availability_service,
    get_now,
    require_property_access,
)
from stayboard.controllers.errors import DOMAIN_ERRORS, to_http_exception
from stayboard.controllers.schemas import BookingResponse, OccupancyPoint, RoomResponse
from stayboard.domain.models import Property
from stayboard.services.availability_service import AvailabilityService, average_occupancy
from stayboard.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["availability"])


class AvailabilityCheckRequest(BaseModel):
    room_ids: list[int] = Field(min_length=1)
    check_in: date
    check_out: date
    exclude_booking_id: Optional[int] = Field(default=None, gt=0)

    @field_validator("room_ids")
    @classmethod
    def validate_room_ids(cls, value: list[int]) -> list[int]:
        for room_id in value:
            if room_id <= 0:
                raise ValueError("room_ids values must be positive integers")
        return value


class RoomAvailabilityRow(BaseModel):
    room_id: int = Field(gt=0)
    available: bool
    conflicts: list[BookingResponse]


class AvailabilityCheckResponse(BaseModel):
    all_available: bool
    rooms: list[RoomAvailabilityRow]


class CalendarSegmentResponse(BaseModel):
    booking: BookingResponse
    start_index: int = Field(ge=0)
    span: int = Field(gt=0)


class CalendarRowResponse(BaseModel):
    room: RoomResponse
    segments: list[CalendarSegmentResponse]


class CalendarResponse(BaseModel):
    start: date
    days: list[date]
    rows: list[CalendarRowResponse]


class OccupancyResponse(BaseModel):
    start: date
    days: int = Field(gt=0)
    average_rate: float = Field(ge=0.0, le=1.0)
    series: list[OccupancyPoint]


def _internal_error(message: str) -> HTTPException:
    logger.exception(message)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=message,
    )


@router.post(
    "/properties/{property_id}/availability/check",
    response_model=AvailabilityCheckResponse,
)
async def check_availability(
    payload: AvailabilityCheckRequest,
    prop: Property = Depends(require_property_access),
    now: datetime = Depends(get_now),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityCheckResponse:
    try:
        results = availability_service.check_rooms(
            property_id=prop.property_id,
            room_ids=payload.room_ids,
            check_in=payload.check_in,
            check_out=payload.check_out,
            exclude_booking_id=payload.exclude_booking_id,
            now=now,
        )
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to check availability") from exc
    rows = [
        RoomAvailabilityRow(
            room_id=result.room_id,
            available=result.available,
            conflicts=[BookingResponse.model_validate(booking) for booking in result.conflicts],
        )
        for result in results
    ]
    return AvailabilityCheckResponse(
        all_available=all(row.available for row in rows),
        rooms=rows,
    )


@router.get("/properties/{property_id}/calendar", response_model=CalendarResponse)
async def room_calendar(
    start: date,
    days: int = Query(default=14, gt=0),
    prop: Property = Depends(require_property_access),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> CalendarResponse:
    try:
        rows = availability_service.calendar(
            property_id=prop.property_id,
            start=start,
            days=days,
        )
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to build calendar") from exc
    return CalendarResponse(
        start=start,
        days=[start + timedelta(days=offset) for offset in range(days)],
        rows=[
            CalendarRowResponse(
                room=RoomResponse.model_validate(row.room),
                segments=[
                    CalendarSegmentResponse(
                        booking=BookingResponse.model_validate(segment.booking),
                        start_index=segment.start_index,
                        span=segment.span,
                    )
                    for segment in row.segments
                ],
            )
            for row in rows
        ],
    )


@router.get("/properties/{property_id}/occupancy", response_model=OccupancyResponse)
async def occupancy(
    start: date,
    days: int = Query(default=7, gt=0),
    prop: Property = Depends(require_property_access),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> OccupancyResponse:
    try:
        series = availability_service.occupancy(
            property_id=prop.property_id,
            start=start,
            days=days,
        )
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to compute occupancy") from exc
    snapshots = list(series)
    return OccupancyResponse(
        start=start,
        days=days,
        average_rate=average_occupancy(snapshots),
        series=[OccupancyPoint.model_validate(snapshot) for snapshot in snapshots],
    )
