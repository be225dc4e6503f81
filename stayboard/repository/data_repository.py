"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import secrets
import sqlite3
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from stayboard.domain.models import (
    Booking,
    BookingLog,
    BookingLogAction,
    BookingStatus,
    Property,
    Room,
    RoomCategory,
    RoomStatus,
)
from stayboard.utils.config import Settings, get_settings
from stayboard.utils.logger import get_logger


logger = get_logger(__name__)


PROPERTY_COLUMNS = ("name", "code", "address", "timezone")
CATEGORY_COLUMNS = ("name", "description", "base_rate", "capacity")
ROOM_COLUMNS = ("category_id", "number", "floor", "status", "notes")
BOOKING_COLUMNS = (
    "property_id",
    "room_id",
    "guest_name",
    "guest_email",
    "guest_passport",
    "second_guest_name",
    "second_guest_email",
    "second_guest_passport",
    "adults",
    "check_in",
    "check_out",
    "status",
    "auto_release_at",
    "total",
    "reference_code",
    "notes",
    "created_by",
)
BOOKING_SEARCH_COLUMNS = (
    "guest_name",
    "guest_email",
    "guest_passport",
    "second_guest_name",
    "second_guest_email",
    "second_guest_passport",
    "reference_code",
)
BOOKING_SORT_COLUMNS = {
    "check_in": "check_in",
    "guest": "guest_name",
    "room": "room_id",
}


def generate_reference_code() -> str:
    return secrets.token_hex(3).upper()


def _to_db_value(value: Any) -> Any:
    if isinstance(value, (RoomStatus, BookingStatus, BookingLogAction)):
        return value.value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _row_to_property(row: sqlite3.Row) -> Property:
    return Property(
        property_id=int(row["id"]),
        owner_id=str(row["owner_id"]),
        name=str(row["name"]),
        code=row["code"],
        address=row["address"],
        timezone=str(row["timezone"] or "UTC"),
        created_at=row["created_at"],
    )


def _row_to_category(row: sqlite3.Row) -> RoomCategory:
    return RoomCategory(
        category_id=int(row["id"]),
        property_id=int(row["property_id"]),
        name=str(row["name"]),
        description=row["description"],
        base_rate=float(row["base_rate"]) if row["base_rate"] is not None else None,
        capacity=int(row["capacity"] if row["capacity"] is not None else 1),
    )


def _row_to_room(row: sqlite3.Row) -> Room:
    return Room(
        room_id=int(row["id"]),
        property_id=int(row["property_id"]),
        number=str(row["number"]),
        category_id=int(row["category_id"]) if row["category_id"] is not None else None,
        floor=row["floor"],
        status=RoomStatus(row["status"]),
        notes=row["notes"],
    )


def _row_to_booking(row: sqlite3.Row) -> Booking:
    return Booking(
        booking_id=int(row["id"]),
        property_id=int(row["property_id"]),
        room_id=int(row["room_id"]) if row["room_id"] is not None else None,
        guest_name=str(row["guest_name"]),
        check_in=date.fromisoformat(row["check_in"]),
        check_out=date.fromisoformat(row["check_out"]),
        status=BookingStatus(row["status"]),
        auto_release_at=_parse_timestamp(row["auto_release_at"]),
        guest_email=row["guest_email"],
        guest_passport=row["guest_passport"],
        second_guest_name=row["second_guest_name"],
        second_guest_email=row["second_guest_email"],
        second_guest_passport=row["second_guest_passport"],
        adults=int(row["adults"] if row["adults"] is not None else 1),
        total=float(row["total"]) if row["total"] is not None else None,
        reference_code=row["reference_code"],
        notes=row["notes"],
        created_by=row["created_by"],
        created_at=row["created_at"],
    )


def _row_to_log(row: sqlite3.Row) -> BookingLog:
    return BookingLog(
        log_id=int(row["id"]),
        booking_id=int(row["booking_id"]) if row["booking_id"] is not None else None,
        property_id=int(row["property_id"]) if row["property_id"] is not None else None,
        action=BookingLogAction(row["action"]),
        performed_by=row["performed_by"],
        performed_at=str(row["performed_at"]),
        details=json.loads(row["details"]) if row["details"] else {},
    )


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic.

    Methods that take ``conn`` join the caller's transaction when one is
    given, otherwise they open and commit their own connection.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path, timeout=10.0)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _session(self, conn: Optional[sqlite3.Connection] = None) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
            return
        connection = self._connect()
        try:
            with connection:
                yield connection
        finally:
            connection.close()

    @contextmanager
    def write_transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialise a read-check-write sequence against other writers.

        ``BEGIN IMMEDIATE`` takes the database write lock up front, so a
        conflict check and the insert it guards cannot interleave with another
        booking write.
        """
        connection = self._connect()
        connection.isolation_level = None
        try:
            connection.execute("BEGIN IMMEDIATE;")
            try:
                yield connection
            except BaseException:
                connection.execute("ROLLBACK;")
                raise
            connection.execute("COMMIT;")
        finally:
            connection.close()

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._session() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Properties (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        owner_id TEXT NOT NULL,
                        name TEXT NOT NULL,
                        code TEXT UNIQUE,
                        address TEXT,
                        timezone TEXT NOT NULL DEFAULT 'UTC',
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS RoomCategories (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        property_id INTEGER NOT NULL,
                        name TEXT NOT NULL,
                        description TEXT,
                        base_rate REAL,
                        capacity INTEGER NOT NULL DEFAULT 1 CHECK (capacity > 0),
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (property_id) REFERENCES Properties(id) ON DELETE CASCADE
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Rooms (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        property_id INTEGER NOT NULL,
                        category_id INTEGER,
                        number TEXT NOT NULL,
                        floor TEXT,
                        status TEXT NOT NULL DEFAULT 'available'
                            CHECK (status IN ('available', 'occupied', 'dirty', 'out_of_service')),
                        notes TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        UNIQUE (property_id, number),
                        FOREIGN KEY (property_id) REFERENCES Properties(id) ON DELETE CASCADE,
                        FOREIGN KEY (category_id) REFERENCES RoomCategories(id) ON DELETE SET NULL
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Bookings (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        property_id INTEGER NOT NULL,
                        room_id INTEGER,
                        guest_name TEXT NOT NULL,
                        guest_email TEXT,
                        guest_passport TEXT,
                        second_guest_name TEXT,
                        second_guest_email TEXT,
                        second_guest_passport TEXT,
                        adults INTEGER NOT NULL DEFAULT 1,
                        check_in TEXT NOT NULL,
                        check_out TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'reserved'
                            CHECK (status IN ('tentative', 'reserved', 'checked_in', 'checked_out', 'cancelled')),
                        auto_release_at TEXT,
                        total REAL,
                        reference_code TEXT,
                        notes TEXT,
                        created_by TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        CHECK (check_out > check_in),
                        FOREIGN KEY (property_id) REFERENCES Properties(id) ON DELETE CASCADE,
                        FOREIGN KEY (room_id) REFERENCES Rooms(id) ON DELETE SET NULL
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS BookingLogs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        booking_id INTEGER,
                        property_id INTEGER,
                        action TEXT NOT NULL CHECK (action IN ('create', 'delete', 'update')),
                        performed_by TEXT,
                        performed_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        details TEXT,
                        FOREIGN KEY (property_id) REFERENCES Properties(id) ON DELETE CASCADE
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_property_dates
                    ON Bookings(property_id, check_in, check_out);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_room_dates
                    ON Bookings(room_id, check_in, check_out);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_status_release
                    ON Bookings(status, auto_release_at);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_booking_logs_property
                    ON BookingLogs(property_id, performed_at);
                    """
                )
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self, owner_id: str = "admin") -> bool:
        """Seed one demo property with categories and rooms when no property exists."""
        try:
            with self._session() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM Properties;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Properties already present; skipping demo seed")
                    return False

                cursor.execute(
                    """
                    INSERT INTO Properties (owner_id, name, code, address, timezone)
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    (owner_id, "Harbour View Hotel", "HVH", "1 Quay Street", "UTC"),
                )
                property_id = int(cursor.lastrowid)

                category_ids: dict[str, int] = {}
                for name, rate, capacity in (
                    ("Standard Double", 95.0, 2),
                    ("Deluxe King", 140.0, 2),
                    ("Family Suite", 210.0, 4),
                ):
                    cursor.execute(
                        """
                        INSERT INTO RoomCategories (property_id, name, base_rate, capacity)
                        VALUES (?, ?, ?, ?);
                        """,
                        (property_id, name, rate, capacity),
                    )
                    category_ids[name] = int(cursor.lastrowid)

                rooms = [
                    ("101", "Standard Double", "1"),
                    ("102", "Standard Double", "1"),
                    ("103", "Standard Double", "1"),
                    ("201", "Deluxe King", "2"),
                    ("202", "Deluxe King", "2"),
                    ("301", "Family Suite", "3"),
                ]
                cursor.executemany(
                    """
                    INSERT INTO Rooms (property_id, category_id, number, floor)
                    VALUES (?, ?, ?, ?);
                    """,
                    [
                        (property_id, category_ids[category], number, floor)
                        for number, category, floor in rooms
                    ],
                )
            logger.info("Demo property seeded with %s rooms", len(rooms))
            return True
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo data seeding failed: {exc}") from exc

    # --- Properties -------------------------------------------------------

    def create_property(
        self,
        *,
        owner_id: str,
        name: str,
        code: Optional[str] = None,
        address: Optional[str] = None,
        timezone_name: str = "UTC",
    ) -> Property:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Properties (owner_id, name, code, address, timezone)
                VALUES (?, ?, ?, ?, ?);
                """,
                (owner_id, name, code, address, timezone_name),
            )
            property_id = int(cursor.lastrowid)
            cursor.execute("SELECT * FROM Properties WHERE id = ?;", (property_id,))
            return _row_to_property(cursor.fetchone())

    def get_property(self, property_id: int) -> Optional[Property]:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Properties WHERE id = ?;", (property_id,))
            row = cursor.fetchone()
            return _row_to_property(row) if row is not None else None

    def list_properties(self, owner_id: Optional[str] = None) -> list[Property]:
        with self._session() as conn:
            cursor = conn.cursor()
            if owner_id is None:
                cursor.execute("SELECT * FROM Properties ORDER BY name ASC, id ASC;")
            else:
                cursor.execute(
                    "SELECT * FROM Properties WHERE owner_id = ? ORDER BY name ASC, id ASC;",
                    (owner_id,),
                )
            return [_row_to_property(row) for row in cursor.fetchall()]

    def update_property(self, property_id: int, changes: Mapping[str, Any]) -> Optional[Property]:
        self._update_row("Properties", PROPERTY_COLUMNS, property_id, changes)
        return self.get_property(property_id)

    def delete_property(self, property_id: int) -> bool:
        return self._delete_row("Properties", property_id)

    # --- Room categories --------------------------------------------------

    def create_category(
        self,
        *,
        property_id: int,
        name: str,
        description: Optional[str] = None,
        base_rate: Optional[float] = None,
        capacity: int = 1,
    ) -> RoomCategory:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO RoomCategories (property_id, name, description, base_rate, capacity)
                VALUES (?, ?, ?, ?, ?);
                """,
                (property_id, name, description, base_rate, capacity),
            )
            category_id = int(cursor.lastrowid)
            cursor.execute("SELECT * FROM RoomCategories WHERE id = ?;", (category_id,))
            return _row_to_category(cursor.fetchone())

    def get_category(self, category_id: int) -> Optional[RoomCategory]:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM RoomCategories WHERE id = ?;", (category_id,))
            row = cursor.fetchone()
            return _row_to_category(row) if row is not None else None

    def list_categories(self, property_id: int) -> list[RoomCategory]:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM RoomCategories WHERE property_id = ? ORDER BY name ASC, id ASC;",
                (property_id,),
            )
            return [_row_to_category(row) for row in cursor.fetchall()]

    def update_category(
        self,
        category_id: int,
        changes: Mapping[str, Any],
    ) -> Optional[RoomCategory]:
        self._update_row("RoomCategories", CATEGORY_COLUMNS, category_id, changes)
        return self.get_category(category_id)

    def delete_category(self, category_id: int) -> bool:
        return self._delete_row("RoomCategories", category_id)

    # --- Rooms ------------------------------------------------------------

    def create_room(
        self,
        *,
        property_id: int,
        number: str,
        category_id: Optional[int] = None,
        floor: Optional[str] = None,
        status: RoomStatus = RoomStatus.AVAILABLE,
        notes: Optional[str] = None,
    ) -> Room:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Rooms (property_id, category_id, number, floor, status, notes)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (property_id, category_id, number, floor, status.value, notes),
            )
            room_id = int(cursor.lastrowid)
            cursor.execute("SELECT * FROM Rooms WHERE id = ?;", (room_id,))
            return _row_to_room(cursor.fetchone())

    def get_room(self, room_id: int) -> Optional[Room]:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Rooms WHERE id = ?;", (room_id,))
            row = cursor.fetchone()
            return _row_to_room(row) if row is not None else None

    def list_rooms(
        self,
        property_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Room]:
        """Return the property's room roster ordered by room number."""
        with self._session(conn) as session:
            cursor = session.cursor()
            cursor.execute(
                "SELECT * FROM Rooms WHERE property_id = ? ORDER BY number ASC, id ASC;",
                (property_id,),
            )
            return [_row_to_room(row) for row in cursor.fetchall()]

    def update_room(self, room_id: int, changes: Mapping[str, Any]) -> Optional[Room]:
        self._update_row("Rooms", ROOM_COLUMNS, room_id, changes)
        return self.get_room(room_id)

    def delete_room(self, room_id: int) -> bool:
        return self._delete_row("Rooms", room_id)

    # --- Bookings ---------------------------------------------------------

    def insert_bookings(
        self,
        rows: Sequence[Mapping[str, Any]],
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Booking]:
        """Insert booking rows and return them as stored."""
        created: list[Booking] = []
        with self._session(conn) as session:
            cursor = session.cursor()
            for row in rows:
                values = {column: row.get(column) for column in BOOKING_COLUMNS}
                if not values["reference_code"]:
                    values["reference_code"] = generate_reference_code()
                columns = ", ".join(values)
                placeholders = ", ".join("?" for _ in values)
                cursor.execute(
                    f"INSERT INTO Bookings ({columns}) VALUES ({placeholders});",
                    tuple(_to_db_value(value) for value in values.values()),
                )
                cursor.execute("SELECT * FROM Bookings WHERE id = ?;", (int(cursor.lastrowid),))
                created.append(_row_to_booking(cursor.fetchone()))
        return created

    def get_booking(
        self,
        booking_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Booking]:
        with self._session(conn) as session:
            cursor = session.cursor()
            cursor.execute("SELECT * FROM Bookings WHERE id = ?;", (booking_id,))
            row = cursor.fetchone()
            return _row_to_booking(row) if row is not None else None

    def update_booking(
        self,
        booking_id: int,
        changes: Mapping[str, Any],
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Booking]:
        self._update_row("Bookings", BOOKING_COLUMNS, booking_id, changes, conn=conn)
        return self.get_booking(booking_id, conn=conn)

    def delete_booking(
        self,
        booking_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        return self._delete_row("Bookings", booking_id, conn=conn)

    def list_room_bookings(
        self,
        *,
        room_ids: Sequence[int],
        start: date,
        end: date,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Booking]:
        """Return non-cancelled bookings in ``room_ids`` overlapping [start, end)."""
        if not room_ids:
            return []
        placeholders = ",".join("?" for _ in room_ids)
        with self._session(conn) as session:
            cursor = session.cursor()
            cursor.execute(
                f"""
                SELECT *
                FROM Bookings
                WHERE room_id IN ({placeholders})
                  AND status != 'cancelled'
                  AND check_in < ?
                  AND check_out > ?
                ORDER BY check_in ASC, id ASC;
                """,
                (*room_ids, end.isoformat(), start.isoformat()),
            )
            return [_row_to_booking(row) for row in cursor.fetchall()]

    def list_property_bookings(
        self,
        *,
        property_id: int,
        start: date,
        end: date,
        include_cancelled: bool = False,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Booking]:
        """Return property bookings whose stay overlaps [start, end)."""
        status_clause = "" if include_cancelled else "AND status != 'cancelled'"
        with self._session(conn) as session:
            cursor = session.cursor()
            cursor.execute(
                f"""
                SELECT *
                FROM Bookings
                WHERE property_id = ?
                  AND check_in < ?
                  AND check_out > ?
                  {status_clause}
                ORDER BY check_in ASC, id ASC;
                """,
                (property_id, end.isoformat(), start.isoformat()),
            )
            return [_row_to_booking(row) for row in cursor.fetchall()]

    def list_bookings_checking_in_between(
        self,
        *,
        property_id: int,
        start: date,
        end: date,
    ) -> list[Booking]:
        """Return non-cancelled bookings whose check-in falls in [start, end)."""
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT *
                FROM Bookings
                WHERE property_id = ?
                  AND status != 'cancelled'
                  AND check_in >= ?
                  AND check_in < ?
                ORDER BY check_in ASC, id ASC;
                """,
                (property_id, start.isoformat(), end.isoformat()),
            )
            return [_row_to_booking(row) for row in cursor.fetchall()]

    def list_recent_bookings(self, property_id: int, limit: int) -> list[Booking]:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT *
                FROM Bookings
                WHERE property_id = ?
                  AND status != 'cancelled'
                ORDER BY created_at DESC, id DESC
                LIMIT ?;
                """,
                (property_id, limit),
            )
            return [_row_to_booking(row) for row in cursor.fetchall()]

    def search_bookings(
        self,
        *,
        property_id: int,
        status: Optional[BookingStatus] = None,
        search: Optional[str] = None,
        sort: str = "check_in",
        check_in_from: Optional[date] = None,
        check_in_before: Optional[date] = None,
        limit: int = 25,
        offset: int = 0,
    ) -> tuple[list[Booking], int]:
        """Filter, sort, and paginate bookings; returns the page and the total count."""
        if sort not in BOOKING_SORT_COLUMNS:
            raise ValueError(f"Unsupported sort key: {sort}")
        conditions = ["property_id = ?"]
        params: list[Any] = [property_id]
        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)
        if check_in_from is not None:
            conditions.append("check_in >= ?")
            params.append(check_in_from.isoformat())
        if check_in_before is not None:
            conditions.append("check_in < ?")
            params.append(check_in_before.isoformat())
        if search and search.strip():
            like_term = f"%{search.strip()}%"
            conditions.append(
                "(" + " OR ".join(f"{column} LIKE ?" for column in BOOKING_SEARCH_COLUMNS) + ")"
            )
            params.extend(like_term for _ in BOOKING_SEARCH_COLUMNS)

        where = " AND ".join(conditions)
        order_column = BOOKING_SORT_COLUMNS[sort]
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT COUNT(*) AS count FROM Bookings WHERE {where};", params)
            total = int(cursor.fetchone()["count"])
            cursor.execute(
                f"""
                SELECT *
                FROM Bookings
                WHERE {where}
                ORDER BY {order_column} IS NOT NULL, {order_column} ASC, id ASC
                LIMIT ? OFFSET ?;
                """,
                (*params, limit, offset),
            )
            return [_row_to_booking(row) for row in cursor.fetchall()], total

    def list_tentative_holds(
        self,
        property_id: Optional[int] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Booking]:
        """Return tentative bookings, with or without a release deadline."""
        with self._session(conn) as session:
            cursor = session.cursor()
            if property_id is None:
                cursor.execute(
                    """
                    SELECT * FROM Bookings
                    WHERE status = 'tentative'
                    ORDER BY auto_release_at IS NULL, auto_release_at ASC, id ASC;
                    """
                )
            else:
                cursor.execute(
                    """
                    SELECT * FROM Bookings
                    WHERE status = 'tentative' AND property_id = ?
                    ORDER BY auto_release_at IS NULL, auto_release_at ASC, id ASC;
                    """,
                    (property_id,),
                )
            return [_row_to_booking(row) for row in cursor.fetchall()]

    def cancel_tentative_bookings(
        self,
        booking_ids: Sequence[int],
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[int]:
        """Cancel the given bookings that are still tentative; returns the ids changed."""
        if not booking_ids:
            return []
        placeholders = ",".join("?" for _ in booking_ids)
        with self._session(conn) as session:
            cursor = session.cursor()
            cursor.execute(
                f"""
                SELECT id FROM Bookings
                WHERE id IN ({placeholders}) AND status = 'tentative'
                ORDER BY id ASC;
                """,
                tuple(booking_ids),
            )
            still_tentative = [int(row["id"]) for row in cursor.fetchall()]
            if not still_tentative:
                return []
            update_placeholders = ",".join("?" for _ in still_tentative)
            cursor.execute(
                f"""
                UPDATE Bookings
                SET status = 'cancelled'
                WHERE id IN ({update_placeholders}) AND status = 'tentative';
                """,
                tuple(still_tentative),
            )
            return still_tentative

    def list_unassigned_bookings(
        self,
        *,
        property_id: int,
        start: date,
        end: date,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Booking]:
        with self._session(conn) as session:
            cursor = session.cursor()
            cursor.execute(
                """
                SELECT *
                FROM Bookings
                WHERE property_id = ?
                  AND room_id IS NULL
                  AND status NOT IN ('cancelled', 'checked_out')
                  AND check_in < ?
                  AND check_out > ?
                ORDER BY check_in ASC, id ASC;
                """,
                (property_id, end.isoformat(), start.isoformat()),
            )
            return [_row_to_booking(row) for row in cursor.fetchall()]

    def count_bookings(self, property_id: Optional[int] = None) -> int:
        with self._session() as conn:
            cursor = conn.cursor()
            if property_id is None:
                cursor.execute("SELECT COUNT(*) AS count FROM Bookings;")
            else:
                cursor.execute(
                    "SELECT COUNT(*) AS count FROM Bookings WHERE property_id = ?;",
                    (property_id,),
                )
            return int(cursor.fetchone()["count"])

    # --- Booking activity log ---------------------------------------------

    def insert_booking_logs(
        self,
        entries: Iterable[Mapping[str, Any]],
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        """Persist booking activity for the audit trail."""
        rows = [
            (
                entry.get("booking_id"),
                entry.get("property_id"),
                _to_db_value(entry["action"]),
                entry.get("performed_by"),
                json.dumps(entry.get("details") or {}, default=str),
            )
            for entry in entries
        ]
        if not rows:
            return
        with self._session(conn) as session:
            session.executemany(
                """
                INSERT INTO BookingLogs (booking_id, property_id, action, performed_by, details)
                VALUES (?, ?, ?, ?, ?);
                """,
                rows,
            )

    def list_booking_logs(
        self,
        *,
        property_id: Optional[int] = None,
        property_ids: Optional[Sequence[int]] = None,
        limit: int = 20,
    ) -> list[BookingLog]:
        """Return the newest log entries, optionally narrowed to properties."""
        conditions: list[str] = []
        params: list[Any] = []
        if property_id is not None:
            conditions.append("property_id = ?")
            params.append(property_id)
        if property_ids is not None:
            if not property_ids:
                return []
            conditions.append(f"property_id IN ({','.join('?' for _ in property_ids)})")
            params.extend(property_ids)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT *
                FROM BookingLogs
                {where}
                ORDER BY performed_at DESC, id DESC
                LIMIT ?;
                """,
                (*params, limit),
            )
            return [_row_to_log(row) for row in cursor.fetchall()]

    def count_booking_logs(self) -> int:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM BookingLogs;")
            return int(cursor.fetchone()["count"])

    # --- Helpers ----------------------------------------------------------

    def _update_row(
        self,
        table: str,
        allowed_columns: Sequence[str],
        row_id: int,
        changes: Mapping[str, Any],
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        unknown = set(changes) - set(allowed_columns)
        if unknown:
            raise ValueError(f"Unknown {table} columns: {sorted(unknown)}")
        if not changes:
            return
        assignments = ", ".join(f"{column} = ?" for column in changes)
        with self._session(conn) as session:
            session.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ?;",
                (*(_to_db_value(value) for value in changes.values()), row_id),
            )

    def _delete_row(
        self,
        table: str,
        row_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        with self._session(conn) as session:
            cursor = session.execute(f"DELETE FROM {table} WHERE id = ?;", (row_id,))
            return cursor.rowcount > 0


def month_window(month: date) -> tuple[date, date]:
    """Return [first day of month, first day of next month)."""
    start = month.replace(day=1)
    next_month = (start + timedelta(days=32)).replace(day=1)
    return start, next_month
