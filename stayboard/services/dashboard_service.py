"""Per-property dashboard figures built on the availability engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from stayboard.domain.models import Booking, BookingStatus, OccupancySnapshot
from stayboard.repository.data_repository import DataRepository, month_window
from stayboard.services.availability_service import (
    average_occupancy,
    compute_occupancy,
    count_arrivals,
    count_departures,
    occupancy_series,
)
from stayboard.services.inventory_service import PropertyNotFoundError
from stayboard.utils.config import Settings, get_settings
from stayboard.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class DashboardSummary:
    property_id: int
    today: date
    total_revenue: float
    total_bookings: int
    revenue_change_pct: Optional[float]
    bookings_change_pct: Optional[float]
    active_stays: int
    total_rooms: int
    occupancy_rate: float
    vacant_rooms: int
    arrivals_today: int
    departures_today: int
    in_house: int
    monthly_average_occupancy: float
    occupancy_trend: list[OccupancySnapshot]
    recent_bookings: list[Booking]


def percent_change(current: float, previous: float) -> Optional[float]:
    """Relative change in percent; None when there is no baseline."""
    if previous == 0:
        return None
    return (current - previous) / previous * 100.0


def _revenue(bookings: list[Booking]) -> float:
    return float(sum(booking.total or 0.0 for booking in bookings))


class DashboardService:
    """Aggregates revenue, occupancy, and movement figures for one property."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def summary(self, *, property_id: int, today: date) -> DashboardSummary:
        if self._repository.get_property(property_id) is None:
            raise PropertyNotFoundError(f"Property {property_id} was not found")

        revenue_window = timedelta(days=self._settings.dashboard_revenue_window_days)
        current_end = today + timedelta(days=1)
        current_start = current_end - revenue_window
        previous_start = current_start - revenue_window
        current_bookings = self._repository.list_bookings_checking_in_between(
            property_id=property_id,
            start=current_start,
            end=current_end,
        )
        previous_bookings = self._repository.list_bookings_checking_in_between(
            property_id=property_id,
            start=previous_start,
            end=current_start,
        )
        total_revenue = _revenue(current_bookings)
        revenue_change = (
            percent_change(total_revenue, _revenue(previous_bookings))
            if previous_bookings
            else None
        )
        bookings_change = percent_change(len(current_bookings), len(previous_bookings))

        trend_days = [
            today - timedelta(days=offset)
            for offset in reversed(range(self._settings.dashboard_occupancy_window_days))
        ]
        month_start, month_end = month_window(today)
        month_days = [
            month_start + timedelta(days=offset)
            for offset in range((month_end - month_start).days)
        ]
        yesterday = today - timedelta(days=1)
        window_start = min(month_start, trend_days[0] if trend_days else today, yesterday)
        window_end = max(month_end, current_end)

        rooms = self._repository.list_rooms(property_id)
        bookings = self._repository.list_property_bookings(
            property_id=property_id,
            start=window_start,
            end=window_end,
        )

        today_snapshot = compute_occupancy(today, rooms, bookings)
        in_house = sum(
            1
            for booking in bookings
            if booking.status == BookingStatus.CHECKED_IN and booking.contains(today)
        )

        return DashboardSummary(
            property_id=property_id,
            today=today,
            total_revenue=total_revenue,
            total_bookings=len(current_bookings),
            revenue_change_pct=revenue_change,
            bookings_change_pct=bookings_change,
            active_stays=today_snapshot.occupied_rooms,
            total_rooms=today_snapshot.total_rooms,
            occupancy_rate=today_snapshot.rate,
            vacant_rooms=today_snapshot.total_rooms - today_snapshot.occupied_rooms,
            arrivals_today=count_arrivals(bookings, today),
            departures_today=count_departures(bookings, today),
            in_house=in_house,
            monthly_average_occupancy=average_occupancy(
                occupancy_series(month_days, rooms, bookings)
            ),
            occupancy_trend=list(occupancy_series(trend_days, rooms, bookings)),
            recent_bookings=self._repository.list_recent_bookings(
                property_id,
                self._settings.dashboard_recent_bookings,
            ),
        )
