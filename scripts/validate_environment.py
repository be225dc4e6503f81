#!/usr/bin/env python3
"""Validate local StayBoard environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import date
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from stayboard.domain.models import GuestDetails
from stayboard.repository.data_repository import DataRepository
from stayboard.services.assignment_service import AssignmentService
from stayboard.services.availability_service import ConflictDetected
from stayboard.services.booking_service import BookingDraft, BookingService
from stayboard.utils.config import get_settings

SEPARATOR_LINE = "=" * 44
DEMO_ROOM_COUNT = 6


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="stayboard-env-")

    # CHECK 1 — Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2 — Required packages importable
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("pandas", "pandas"),
        ("ortools", "ortools"),
        ("requests", "requests"),
        ("streamlit", "streamlit"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except (ImportError, PackageNotFoundError) as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "stayboard_validation.db",
            assignment_solver_max_time_seconds=5,
        )
        repository = DataRepository(validation_settings)

        # CHECK 3 — Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except RuntimeError as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4 — Demo property seeding
        property_id = None
        try:
            repository.seed_demo_data()
            prop = repository.list_properties()[0]
            property_id = prop.property_id
            room_count = len(repository.list_rooms(property_id))
            if room_count != DEMO_ROOM_COUNT:
                raise RuntimeError(f"expected {DEMO_ROOM_COUNT} rooms, got {room_count}")
            ok, line = _print_result("Demo property", True, f": {prop.name}, {room_count} rooms")
        except (RuntimeError, IndexError) as exc:
            ok, line = _print_result("Demo property", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5 — Booking write path rejects an overlapping stay
        if property_id is not None:
            booking_service = BookingService(repository=repository, settings=validation_settings)
            room_id = repository.list_rooms(property_id)[0].room_id
            draft = BookingDraft(
                guest=GuestDetails(guest_name="Validation Guest"),
                check_in=date(2030, 1, 10),
                check_out=date(2030, 1, 12),
            )
            try:
                booking_service.create_bookings(
                    property_id=property_id,
                    room_ids=[room_id],
                    draft=draft,
                    performed_by="validator",
                )
                try:
                    booking_service.create_bookings(
                        property_id=property_id,
                        room_ids=[room_id],
                        draft=draft,
                        performed_by="validator",
                    )
                    ok, line = _print_result("Conflict detection", False, "overlap was accepted")
                except ConflictDetected:
                    ok, line = _print_result("Conflict detection", True)
            except Exception as exc:
                ok, line = _print_result("Conflict detection", False, str(exc))
            results.append(line)
            all_passed = all_passed and ok

            # CHECK 6 — CP-SAT assignment solve
            try:
                booking_service.create_bookings(
                    property_id=property_id,
                    room_ids=[],
                    draft=draft,
                    performed_by="validator",
                )
                result = AssignmentService(
                    repository=repository,
                    settings=validation_settings,
                ).preview(
                    property_id=property_id,
                    start=date(2030, 1, 1),
                    end=date(2030, 2, 1),
                )
                if len(result.assignments) != 1:
                    raise RuntimeError(f"expected 1 assignment, got {len(result.assignments)}")
                ok, line = _print_result("Room assignment solve", True, f": {result.solver_status}")
            except Exception as exc:
                ok, line = _print_result("Room assignment solve", False, str(exc))
            results.append(line)
            all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" StayBoard Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
