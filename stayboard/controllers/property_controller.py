"""HTTP controller layer for properties, room categories, and rooms."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from stayboard.controllers.dependencies import (
    authorize_property,
    get_access_policy,
    get_current_principal,
    get_inventory_service,
    require_property_access,
)
from stayboard.controllers.errors import DOMAIN_ERRORS, to_http_exception
from stayboard.controllers.schemas import CategoryResponse, PropertyResponse, RoomResponse
from stayboard.domain.models import Property, Room, RoomCategory, RoomStatus
from stayboard.services.auth_service import Principal, PropertyAccessPolicy
from stayboard.services.inventory_service import (
    CategoryNotFoundError,
    InventoryService,
    RoomNotFoundError,
)
from stayboard.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["inventory"])


class PropertyCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    code: Optional[str] = Field(default=None, max_length=20)
    address: Optional[str] = None
    timezone: Optional[str] = None
    owner_id: Optional[str] = Field(
        default=None,
        description="Admins may create properties on behalf of an operator.",
    )


class PropertyUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    code: Optional[str] = Field(default=None, max_length=20)
    address: Optional[str] = None
    timezone: Optional[str] = None


class CategoryCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    base_rate: Optional[float] = Field(default=None, ge=0.0)
    capacity: Optional[int] = Field(default=None, gt=0)


class CategoryUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    base_rate: Optional[float] = Field(default=None, ge=0.0)
    capacity: Optional[int] = Field(default=None, gt=0)


class RoomCreateRequest(BaseModel):
    number: str = Field(min_length=1, max_length=20)
    category_id: Optional[int] = Field(default=None, gt=0)
    floor: Optional[str] = None
    status: RoomStatus = RoomStatus.AVAILABLE
    notes: Optional[str] = None


class RoomUpdateRequest(BaseModel):
    number: Optional[str] = Field(default=None, min_length=1, max_length=20)
    category_id: Optional[int] = Field(default=None, gt=0)
    floor: Optional[str] = None
    status: Optional[RoomStatus] = None
    notes: Optional[str] = None


def _internal_error(message: str) -> HTTPException:
    logger.exception(message)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=message,
    )


async def require_category_access(
    category_id: int,
    principal: Principal = Depends(get_current_principal),
    inventory_service: InventoryService = Depends(get_inventory_service),
    policy: PropertyAccessPolicy = Depends(get_access_policy),
) -> RoomCategory:
    try:
        category = inventory_service.get_category(category_id)
    except CategoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    authorize_property(category.property_id, principal, inventory_service, policy)
    return category


async def require_room_access(
    room_id: int,
    principal: Principal = Depends(get_current_principal),
    inventory_service: InventoryService = Depends(get_inventory_service),
    policy: PropertyAccessPolicy = Depends(get_access_policy),
) -> Room:
    try:
        room = inventory_service.get_room(room_id)
    except RoomNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    authorize_property(room.property_id, principal, inventory_service, policy)
    return room


# --- Properties -------------------------------------------------------------


@router.get("/properties", response_model=list[PropertyResponse])
async def list_properties(
    principal: Principal = Depends(get_current_principal),
    inventory_service: InventoryService = Depends(get_inventory_service),
) -> list[PropertyResponse]:
    owner_id = None if principal.is_admin else principal.user_id
    properties = inventory_service.list_properties(owner_id=owner_id)
    return [PropertyResponse.model_validate(prop) for prop in properties]


@router.post(
    "/properties",
    response_model=PropertyResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_property(
    payload: PropertyCreateRequest,
    principal: Principal = Depends(get_current_principal),
    inventory_service: InventoryService = Depends(get_inventory_service),
) -> PropertyResponse:
    owner_id = principal.user_id
    if payload.owner_id and payload.owner_id != principal.user_id:
        if not principal.is_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only admins may create properties for another owner",
            )
        owner_id = payload.owner_id
    try:
        prop = inventory_service.create_property(
            owner_id=owner_id,
            name=payload.name,
            code=payload.code,
            address=payload.address,
            timezone_name=payload.timezone,
        )
        return PropertyResponse.model_validate(prop)
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to create property") from exc


@router.get("/properties/{property_id}", response_model=PropertyResponse)
async def get_property(prop: Property = Depends(require_property_access)) -> PropertyResponse:
    return PropertyResponse.model_validate(prop)


@router.patch("/properties/{property_id}", response_model=PropertyResponse)
async def update_property(
    payload: PropertyUpdateRequest,
    prop: Property = Depends(require_property_access),
    inventory_service: InventoryService = Depends(get_inventory_service),
) -> PropertyResponse:
    try:
        updated = inventory_service.update_property(
            prop.property_id,
            payload.model_dump(exclude_unset=True),
        )
        return PropertyResponse.model_validate(updated)
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to update property") from exc


@router.delete("/properties/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_property(
    prop: Property = Depends(require_property_access),
    inventory_service: InventoryService = Depends(get_inventory_service),
) -> Response:
    try:
        inventory_service.delete_property(prop.property_id)
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Categories -------------------------------------------------------------


@router.get("/properties/{property_id}/categories", response_model=list[CategoryResponse])
async def list_categories(
    prop: Property = Depends(require_property_access),
    inventory_service: InventoryService = Depends(get_inventory_service),
) -> list[CategoryResponse]:
    categories = inventory_service.list_categories(prop.property_id)
    return [CategoryResponse.model_validate(category) for category in categories]


@router.post(
    "/properties/{property_id}/categories",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_category(
    payload: CategoryCreateRequest,
    prop: Property = Depends(require_property_access),
    inventory_service: InventoryService = Depends(get_inventory_service),
) -> CategoryResponse:
    try:
        category = inventory_service.create_category(
            property_id=prop.property_id,
            name=payload.name,
            description=payload.description,
            base_rate=payload.base_rate,
            capacity=payload.capacity,
        )
        return CategoryResponse.model_validate(category)
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to create room category") from exc


@router.patch("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    payload: CategoryUpdateRequest,
    category: RoomCategory = Depends(require_category_access),
    inventory_service: InventoryService = Depends(get_inventory_service),
) -> CategoryResponse:
    try:
        updated = inventory_service.update_category(
            category.category_id,
            payload.model_dump(exclude_unset=True),
        )
        return CategoryResponse.model_validate(updated)
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category: RoomCategory = Depends(require_category_access),
    inventory_service: InventoryService = Depends(get_inventory_service),
) -> Response:
    try:
        inventory_service.delete_category(category.category_id)
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Rooms ------------------------------------------------------------------


@router.get("/properties/{property_id}/rooms", response_model=list[RoomResponse])
async def list_rooms(
    prop: Property = Depends(require_property_access),
    inventory_service: InventoryService = Depends(get_inventory_service),
) -> list[RoomResponse]:
    return [RoomResponse.model_validate(room) for room in inventory_service.list_rooms(prop.property_id)]


@router.post(
    "/properties/{property_id}/rooms",
    response_model=RoomResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_room(
    payload: RoomCreateRequest,
    prop: Property = Depends(require_property_access),
    inventory_service: InventoryService = Depends(get_inventory_service),
) -> RoomResponse:
    try:
        room = inventory_service.create_room(
            property_id=prop.property_id,
            number=payload.number,
            category_id=payload.category_id,
            floor=payload.floor,
            status=payload.status,
            notes=payload.notes,
        )
        return RoomResponse.model_validate(room)
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to create room") from exc


@router.patch("/rooms/{room_id}", response_model=RoomResponse)
async def update_room(
    payload: RoomUpdateRequest,
    room: Room = Depends(require_room_access),
    inventory_service: InventoryService = Depends(get_inventory_service),
) -> RoomResponse:
    changes = payload.model_dump(exclude_unset=True)
    if "status" in changes and changes["status"] is None:
        changes.pop("status")
    try:
        updated = inventory_service.update_room(room.room_id, changes)
        return RoomResponse.model_validate(updated)
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc


@router.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_room(
    room: Room = Depends(require_room_access),
    inventory_service: InventoryService = Depends(get_inventory_service),
) -> Response:
    try:
        inventory_service.delete_room(room.room_id)
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
