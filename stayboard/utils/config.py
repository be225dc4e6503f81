"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Mapping


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def parse_operator_tokens(raw: str | None) -> dict[str, str]:
    """Parse ``name=token`` pairs separated by commas.

    Blank entries are ignored. An entry without ``=`` or with an empty name or
    token is a configuration error.
    """
    tokens: dict[str, str] = {}
    if not raw:
        return tokens
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        name, separator, token = entry.partition("=")
        name, token = name.strip(), token.strip()
        if not separator or not name or not token:
            raise ValueError(f"OPERATOR_TOKENS entry {entry!r} must look like name=token")
        tokens[name] = token
    return tokens


@dataclass(frozen=True)
class Settings:
    app_name: str = "StayBoard"
    app_version: str = "1.0.0"
    database_path: Path = PROJECT_ROOT / "data" / "stayboard.db"
    log_level: str = "INFO"
    log_format: str = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

    admin_token: str | None = None
    operator_tokens: Mapping[str, str] = field(default_factory=dict)

    seed_demo_data: bool = True
    hold_sweep_interval_seconds: int = 300

    bookings_page_size: int = 25
    activity_log_limit: int = 20
    calendar_max_days: int = 62
    dashboard_occupancy_window_days: int = 7
    dashboard_revenue_window_days: int = 30
    dashboard_recent_bookings: int = 6

    assignment_solver_max_time_seconds: int = 10
    assignment_solver_random_seed: int = 42
    assignment_cp_sat_workers: int = 4


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings from the environment once per process."""
    defaults = Settings()
    return Settings(
        app_name=_env_str("APP_NAME", defaults.app_name),
        app_version=_env_str("APP_VERSION", defaults.app_version),
        database_path=Path(_env_str("DATABASE_PATH", str(defaults.database_path))),
        log_level=_env_str("LOG_LEVEL", defaults.log_level),
        log_format=_env_str("LOG_FORMAT", defaults.log_format),
        admin_token=os.getenv("ADMIN_TOKEN") or None,
        operator_tokens=parse_operator_tokens(os.getenv("OPERATOR_TOKENS")),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", defaults.seed_demo_data),
        hold_sweep_interval_seconds=_env_int(
            "HOLD_SWEEP_INTERVAL_SECONDS",
            defaults.hold_sweep_interval_seconds,
        ),
        bookings_page_size=_env_int("BOOKINGS_PAGE_SIZE", defaults.bookings_page_size),
        activity_log_limit=_env_int("ACTIVITY_LOG_LIMIT", defaults.activity_log_limit),
        calendar_max_days=_env_int("CALENDAR_MAX_DAYS", defaults.calendar_max_days),
        dashboard_occupancy_window_days=_env_int(
            "DASHBOARD_OCCUPANCY_WINDOW_DAYS",
            defaults.dashboard_occupancy_window_days,
        ),
        dashboard_revenue_window_days=_env_int(
            "DASHBOARD_REVENUE_WINDOW_DAYS",
            defaults.dashboard_revenue_window_days,
        ),
        dashboard_recent_bookings=_env_int(
            "DASHBOARD_RECENT_BOOKINGS",
            defaults.dashboard_recent_bookings,
        ),
        assignment_solver_max_time_seconds=_env_int(
            "ASSIGNMENT_SOLVER_MAX_TIME_SECONDS",
            defaults.assignment_solver_max_time_seconds,
        ),
        assignment_solver_random_seed=_env_int(
            "ASSIGNMENT_SOLVER_RANDOM_SEED",
            defaults.assignment_solver_random_seed,
        ),
        assignment_cp_sat_workers=_env_int(
            "ASSIGNMENT_CP_SAT_WORKERS",
            defaults.assignment_cp_sat_workers,
        ),
    )
