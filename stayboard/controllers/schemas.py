"""Response DTOs shared by several routers."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from stayboard.domain.models import BookingLogAction, BookingStatus, RoomStatus


class PropertyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    property_id: int = Field(gt=0)
    owner_id: str
    name: str
    code: Optional[str] = None
    address: Optional[str] = None
    timezone: str
    created_at: Optional[str] = None


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category_id: int = Field(gt=0)
    property_id: int = Field(gt=0)
    name: str
    description: Optional[str] = None
    base_rate: Optional[float] = None
    capacity: int = Field(gt=0)


class RoomResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    room_id: int = Field(gt=0)
    property_id: int = Field(gt=0)
    number: str
    category_id: Optional[int] = None
    floor: Optional[str] = None
    status: RoomStatus
    notes: Optional[str] = None


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    booking_id: int = Field(gt=0)
    property_id: int = Field(gt=0)
    room_id: Optional[int] = None
    reference_code: Optional[str] = None
    guest_name: str
    guest_email: Optional[str] = None
    guest_passport: Optional[str] = None
    second_guest_name: Optional[str] = None
    second_guest_email: Optional[str] = None
    second_guest_passport: Optional[str] = None
    adults: int = Field(ge=1)
    check_in: date
    check_out: date
    nights: int = Field(gt=0)
    status: BookingStatus
    auto_release_at: Optional[datetime] = None
    total: Optional[float] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None


class BookingLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    log_id: int
    booking_id: Optional[int] = None
    property_id: Optional[int] = None
    action: BookingLogAction
    performed_by: Optional[str] = None
    performed_at: str
    details: dict[str, Any]


class OccupancyPoint(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day: date
    occupied_rooms: int = Field(ge=0)
    total_rooms: int = Field(ge=0)
    rate: float = Field(ge=0.0, le=1.0)
