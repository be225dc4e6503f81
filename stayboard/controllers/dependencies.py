"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from stayboard.domain.models import Booking, Property
from stayboard.services.assignment_service import AssignmentService
from stayboard.services.auth_service import (
    AuthService,
    InvalidTokenError,
    Principal,
    PropertyAccessDenied,
    PropertyAccessPolicy,
)
from stayboard.services.availability_service import AvailabilityService
from stayboard.services.booking_service import BookingNotFoundError, BookingService
from stayboard.services.dashboard_service import DashboardService
from stayboard.services.inventory_service import InventoryService, PropertyNotFoundError


bearer_scheme = HTTPBearer(auto_error=False)


def _state_service(request: Request, attribute: str, label: str) -> Any:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_auth_service(request: Request) -> AuthService:
    return _state_service(request, "auth_service", "Auth service")


def get_access_policy(request: Request) -> PropertyAccessPolicy:
    policy = getattr(request.app.state, "access_policy", None)
    if policy is None:
        policy = PropertyAccessPolicy()
        request.app.state.access_policy = policy
    return policy


def get_inventory_service(request: Request) -> InventoryService:
    return _state_service(request, "inventory_service", "Inventory service")


def get_booking_service(request: Request) -> BookingService:
    return _state_service(request, "booking_service", "Booking service")


def get_availability_service(request: Request) -> AvailabilityService:
    return _state_service(request, "availability_service", "Availability service")


def get_dashboard_service(request: Request) -> DashboardService:
    return _state_service(request, "dashboard_service", "Dashboard service")


def get_assignment_service(request: Request) -> AssignmentService:
    return _state_service(request, "assignment_service", "Assignment service")


def get_now() -> datetime:
    """Request clock; tests override this dependency."""
    return datetime.now(timezone.utc)


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> Principal:
    bearer = credentials.credentials if credentials is not None else None
    try:
        return auth_service.resolve(bearer)
    except InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


def authorize_property(
    property_id: int,
    principal: Principal,
    inventory_service: InventoryService,
    policy: PropertyAccessPolicy,
) -> Property:
    try:
        prop = inventory_service.get_property(property_id)
        policy.ensure_access(principal, prop)
    except PropertyNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PropertyAccessDenied as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    return prop


async def require_property_access(
    property_id: int,
    principal: Principal = Depends(get_current_principal),
    inventory_service: InventoryService = Depends(get_inventory_service),
    policy: PropertyAccessPolicy = Depends(get_access_policy),
) -> Property:
    """Resolve the ``property_id`` path parameter for a caller allowed to act on it."""
    return authorize_property(property_id, principal, inventory_service, policy)


async def require_booking_access(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
    inventory_service: InventoryService = Depends(get_inventory_service),
    policy: PropertyAccessPolicy = Depends(get_access_policy),
) -> Booking:
    try:
        booking = booking_service.get_booking(booking_id)
    except BookingNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    authorize_property(booking.property_id, principal, inventory_service, policy)
    return booking
