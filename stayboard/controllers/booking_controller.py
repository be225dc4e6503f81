"""HTTP controller layer for bookings, tentative holds, and the activity log."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from stayboard.controllers.dependencies import (
    authorize_property,
    get_access_policy,
    get_booking_service,
    get_current_principal,
    get_inventory_service,
    get_now,
    require_booking_access,
    require_property_access,
)
from stayboard.controllers.errors import DOMAIN_ERRORS, to_http_exception
from stayboard.controllers.schemas import BookingLogResponse, BookingResponse
from stayboard.domain.models import Booking, BookingStatus, GuestDetails, Property
from stayboard.services.auth_service import Principal, PropertyAccessPolicy
from stayboard.services.booking_service import BookingDraft, BookingService
from stayboard.services.inventory_service import InventoryService
from stayboard.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["bookings"])


class BookingCreateRequest(BaseModel):
    room_ids: list[int] = Field(default_factory=list)
    guest_name: str = Field(min_length=1, max_length=200)
    guest_email: Optional[str] = None
    guest_passport: Optional[str] = None
    second_guest_name: Optional[str] = None
    second_guest_email: Optional[str] = None
    second_guest_passport: Optional[str] = None
    check_in: date
    check_out: date
    status: BookingStatus = BookingStatus.RESERVED
    auto_release_at: Optional[datetime] = None
    total: Optional[float] = Field(default=None, ge=0.0)
    notes: Optional[str] = None

    @field_validator("room_ids")
    @classmethod
    def validate_room_ids(cls, value: list[int]) -> list[int]:
        for room_id in value:
            if room_id <= 0:
                raise ValueError("room_ids values must be positive integers")
        return value


class BookingUpdateRequest(BaseModel):
    room_id: Optional[int] = Field(default=None, gt=0)
    guest_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    guest_email: Optional[str] = None
    guest_passport: Optional[str] = None
    second_guest_name: Optional[str] = None
    second_guest_email: Optional[str] = None
    second_guest_passport: Optional[str] = None
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    status: Optional[BookingStatus] = None
    auto_release_at: Optional[datetime] = None
    total: Optional[float] = Field(default=None, ge=0.0)
    notes: Optional[str] = None


class StatusChangeRequest(BaseModel):
    status: BookingStatus


class BookingPageResponse(BaseModel):
    items: list[BookingResponse]
    total: int = Field(ge=0)
    page: int = Field(ge=1)
    page_size: int = Field(gt=0)


class HoldResponse(BaseModel):
    booking: BookingResponse
    expired: bool


class ReleaseHoldsRequest(BaseModel):
    property_id: Optional[int] = Field(default=None, gt=0)


class ReleaseHoldsResponse(BaseModel):
    released_count: int = Field(ge=0)
    released: list[BookingResponse]


def _internal_error(message: str) -> HTTPException:
    logger.exception(message)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=message,
    )


@router.get("/properties/{property_id}/bookings", response_model=BookingPageResponse)
async def list_bookings(
    prop: Property = Depends(require_property_access),
    booking_status: Optional[BookingStatus] = Query(default=None, alias="status"),
    search: Optional[str] = Query(default=None, max_length=200),
    sort: str = Query(default="check_in", pattern="^(check_in|guest|room)$"),
    month: Optional[date] = Query(default=None, description="Any day inside the month to show"),
    page: int = Query(default=1, ge=1),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingPageResponse:
    try:
        result = booking_service.list_bookings(
            property_id=prop.property_id,
            status=booking_status,
            search=search,
            sort=sort,
            month=month,
            page=page,
        )
        return BookingPageResponse(
            items=[BookingResponse.model_validate(item) for item in result.items],
            total=result.total,
            page=result.page,
            page_size=result.page_size,
        )
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to list bookings") from exc


@router.post(
    "/properties/{property_id}/bookings",
    response_model=list[BookingResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_bookings(
    payload: BookingCreateRequest,
    prop: Property = Depends(require_property_access),
    principal: Principal = Depends(get_current_principal),
    now: datetime = Depends(get_now),
    booking_service: BookingService = Depends(get_booking_service),
) -> list[BookingResponse]:
    draft = BookingDraft(
        guest=GuestDetails(
            guest_name=payload.guest_name,
            guest_email=payload.guest_email,
            guest_passport=payload.guest_passport,
            second_guest_name=payload.second_guest_name,
            second_guest_email=payload.second_guest_email,
            second_guest_passport=payload.second_guest_passport,
        ),
        check_in=payload.check_in,
        check_out=payload.check_out,
        status=payload.status,
        auto_release_at=payload.auto_release_at,
        total=payload.total,
        notes=payload.notes,
    )
    try:
        created = booking_service.create_bookings(
            property_id=prop.property_id,
            room_ids=payload.room_ids,
            draft=draft,
            performed_by=principal.user_id,
            now=now,
        )
        return [BookingResponse.model_validate(booking) for booking in created]
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to create booking") from exc


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(booking: Booking = Depends(require_booking_access)) -> BookingResponse:
    return BookingResponse.model_validate(booking)


@router.patch("/bookings/{booking_id}", response_model=BookingResponse)
async def update_booking(
    payload: BookingUpdateRequest,
    booking: Booking = Depends(require_booking_access),
    principal: Principal = Depends(get_current_principal),
    now: datetime = Depends(get_now),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    changes = payload.model_dump(exclude_unset=True)
    for field_name in ("guest_name", "check_in", "check_out", "status"):
        if field_name in changes and changes[field_name] is None:
            changes.pop(field_name)
    try:
        updated = booking_service.update_booking(
            booking_id=booking.booking_id,
            changes=changes,
            performed_by=principal.user_id,
            now=now,
        )
        return BookingResponse.model_validate(updated)
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to update booking") from exc


@router.post("/bookings/{booking_id}/status", response_model=BookingResponse)
async def change_booking_status(
    payload: StatusChangeRequest,
    booking: Booking = Depends(require_booking_access),
    principal: Principal = Depends(get_current_principal),
    now: datetime = Depends(get_now),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        updated = booking_service.change_status(
            booking_id=booking.booking_id,
            status=payload.status,
            performed_by=principal.user_id,
            now=now,
        )
        return BookingResponse.model_validate(updated)
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to change booking status") from exc


@router.delete("/bookings/{booking_id}", response_model=BookingResponse)
async def delete_booking(
    booking: Booking = Depends(require_booking_access),
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        deleted = booking_service.delete_booking(
            booking_id=booking.booking_id,
            performed_by=principal.user_id,
        )
        return BookingResponse.model_validate(deleted)
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc


@router.get("/properties/{property_id}/holds", response_model=list[HoldResponse])
async def list_holds(
    prop: Property = Depends(require_property_access),
    now: datetime = Depends(get_now),
    booking_service: BookingService = Depends(get_booking_service),
) -> list[HoldResponse]:
    holds = booking_service.list_holds(property_id=prop.property_id, now=now)
    return [
        HoldResponse(booking=BookingResponse.model_validate(hold.booking), expired=hold.expired)
        for hold in holds
    ]


@router.post("/holds/release", response_model=ReleaseHoldsResponse)
async def release_holds(
    payload: ReleaseHoldsRequest,
    principal: Principal = Depends(get_current_principal),
    now: datetime = Depends(get_now),
    booking_service: BookingService = Depends(get_booking_service),
    inventory_service: InventoryService = Depends(get_inventory_service),
    policy: PropertyAccessPolicy = Depends(get_access_policy),
) -> ReleaseHoldsResponse:
    if payload.property_id is not None:
        authorize_property(payload.property_id, principal, inventory_service, policy)
    elif not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins may release holds across all properties",
        )
    try:
        released = booking_service.release_expired_holds(
            now=now,
            property_id=payload.property_id,
            performed_by=principal.user_id,
        )
        return ReleaseHoldsResponse(
            released_count=len(released),
            released=[BookingResponse.model_validate(booking) for booking in released],
        )
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to release expired holds") from exc


@router.get("/activity", response_model=list[BookingLogResponse])
async def list_activity(
    property_id: Optional[int] = Query(default=None, gt=0),
    limit: Optional[int] = Query(default=None, gt=0, le=200),
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
    inventory_service: InventoryService = Depends(get_inventory_service),
    policy: PropertyAccessPolicy = Depends(get_access_policy),
) -> list[BookingLogResponse]:
    property_ids: Optional[list[int]] = None
    if property_id is not None:
        authorize_property(property_id, principal, inventory_service, policy)
    elif not principal.is_admin:
        property_ids = [
            prop.property_id
            for prop in inventory_service.list_properties(owner_id=principal.user_id)
        ]
    logs = booking_service.list_activity(
        property_id=property_id,
        property_ids=property_ids,
        limit=limit,
    )
    return [BookingLogResponse.model_validate(log) for log in logs]
