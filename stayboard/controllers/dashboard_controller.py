"""Controller layer for login, health, dashboard figures, and room assignment."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, Field

from stayboard.controllers.dependencies import (
    bearer_scheme,
    get_assignment_service,
    get_auth_service,
    get_current_principal,
    get_dashboard_service,
    get_now,
    require_property_access,
)
from stayboard.controllers.errors import DOMAIN_ERRORS, to_http_exception
from stayboard.controllers.schemas import BookingResponse, OccupancyPoint
from stayboard.domain.models import AssignmentResult, Property
from stayboard.services.assignment_service import AssignmentService
from stayboard.services.auth_service import (
    AuthNotConfiguredError,
    AuthService,
    InvalidTokenError,
    Principal,
)
from stayboard.services.dashboard_service import DashboardService
from stayboard.utils.config import get_settings
from stayboard.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["dashboard"])


class LoginRequest(BaseModel):
    token: str = Field(min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    role: str


class HealthResponse(BaseModel):
    status: str
    app_name: str
    version: str
    auth_enabled: bool


class DashboardResponse(BaseModel):
    property_id: int = Field(gt=0)
    today: date
    total_revenue: float = Field(ge=0.0)
    total_bookings: int = Field(ge=0)
    revenue_change_pct: Optional[float] = None
    bookings_change_pct: Optional[float] = None
    active_stays: int = Field(ge=0)
    total_rooms: int = Field(ge=0)
    occupancy_rate: float = Field(ge=0.0, le=1.0)
    vacant_rooms: int = Field(ge=0)
    arrivals_today: int = Field(ge=0)
    departures_today: int = Field(ge=0)
    in_house: int = Field(ge=0)
    monthly_average_occupancy: float = Field(ge=0.0, le=1.0)
    occupancy_trend: list[OccupancyPoint]
    recent_bookings: list[BookingResponse]


class AssignmentWindowRequest(BaseModel):
    start: date
    end: date


class AssignmentRow(BaseModel):
    booking_id: int = Field(gt=0)
    room_id: int = Field(gt=0)
    nights: int = Field(gt=0)


class AssignmentResponse(BaseModel):
    assignments: list[AssignmentRow]
    objective_value: float = Field(ge=0.0)
    unassigned_booking_ids: list[int]
    solver_status: str


def _internal_error(message: str) -> HTTPException:
    logger.exception(message)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=message,
    )


def _assignment_response(result: AssignmentResult) -> AssignmentResponse:
    return AssignmentResponse(
        assignments=[
            AssignmentRow(
                booking_id=decision.booking_id,
                room_id=decision.room_id,
                nights=decision.nights,
            )
            for decision in result.assignments
        ],
        objective_value=result.objective_value,
        unassigned_booking_ids=result.unassigned_booking_ids,
        solver_status=result.solver_status,
    )


@router.get("/health", response_model=HealthResponse)
async def health(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> HealthResponse:
    settings = getattr(request.app.state, "settings", None) or get_settings()
    return HealthResponse(
        status="ok",
        app_name=settings.app_name,
        version=settings.app_version,
        auth_enabled=auth_service.auth_enabled,
    )


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    try:
        bearer, principal = auth_service.login(payload.token)
        return LoginResponse(access_token=bearer, user_id=principal.user_id, role=principal.role)
    except (AuthNotConfiguredError, InvalidTokenError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to login") from exc


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> Response:
    if credentials is not None:
        auth_service.logout(credentials.credentials)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/properties/{property_id}/dashboard", response_model=DashboardResponse)
async def property_dashboard(
    today: Optional[date] = Query(default=None),
    prop: Property = Depends(require_property_access),
    now: datetime = Depends(get_now),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> DashboardResponse:
    try:
        summary = dashboard_service.summary(
            property_id=prop.property_id,
            today=today or now.date(),
        )
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to build dashboard") from exc
    return DashboardResponse(
        property_id=summary.property_id,
        today=summary.today,
        total_revenue=summary.total_revenue,
        total_bookings=summary.total_bookings,
        revenue_change_pct=summary.revenue_change_pct,
        bookings_change_pct=summary.bookings_change_pct,
        active_stays=summary.active_stays,
        total_rooms=summary.total_rooms,
        occupancy_rate=summary.occupancy_rate,
        vacant_rooms=summary.vacant_rooms,
        arrivals_today=summary.arrivals_today,
        departures_today=summary.departures_today,
        in_house=summary.in_house,
        monthly_average_occupancy=summary.monthly_average_occupancy,
        occupancy_trend=[OccupancyPoint.model_validate(point) for point in summary.occupancy_trend],
        recent_bookings=[
            BookingResponse.model_validate(booking) for booking in summary.recent_bookings
        ],
    )


@router.post(
    "/properties/{property_id}/assignments/preview",
    response_model=AssignmentResponse,
)
async def preview_assignments(
    payload: AssignmentWindowRequest,
    prop: Property = Depends(require_property_access),
    assignment_service: AssignmentService = Depends(get_assignment_service),
    now: datetime = Depends(get_now),
) -> AssignmentResponse:
    try:
        result = assignment_service.preview(
            property_id=prop.property_id,
            start=payload.start,
            end=payload.end,
            now=now,
        )
        return _assignment_response(result)
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to preview room assignment") from exc


@router.post(
    "/properties/{property_id}/assignments/approve",
    response_model=AssignmentResponse,
)
async def approve_assignments(
    prop: Property = Depends(require_property_access),
    principal: Principal = Depends(get_current_principal),
    assignment_service: AssignmentService = Depends(get_assignment_service),
    now: datetime = Depends(get_now),
) -> AssignmentResponse:
    try:
        result = assignment_service.approve(
            property_id=prop.property_id,
            performed_by=principal.user_id,
            now=now,
        )
        return _assignment_response(result)
    except DOMAIN_ERRORS as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to approve room assignment") from exc
