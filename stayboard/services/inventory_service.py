"""Property, room category, and room management."""

from __future__ import annotations

import sqlite3
from typing import Any, Mapping, Optional

from stayboard.domain.models import Property, Room, RoomCategory, RoomStatus
from stayboard.repository.data_repository import DataRepository
from stayboard.utils.config import Settings, get_settings
from stayboard.utils.logger import get_logger


logger = get_logger(__name__)


class NotFoundError(Exception):
    """Base class for missing records."""


class PropertyNotFoundError(NotFoundError):
    """Raised when a property id does not exist."""


class CategoryNotFoundError(NotFoundError):
    """Raised when a room category id does not exist."""


class RoomNotFoundError(NotFoundError):
    """Raised when a room id does not exist or belongs to another property."""


class InventoryValidationError(Exception):
    """Raised when inventory inputs violate a uniqueness or ownership rule."""


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _require_text(value: Optional[str], field_name: str) -> str:
    cleaned = _clean(value)
    if cleaned is None:
        raise InventoryValidationError(f"{field_name} is required")
    return cleaned


class InventoryService:
    """CRUD for the property -> category -> room hierarchy."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    # --- Properties -------------------------------------------------------

    def get_property(self, property_id: int) -> Property:
        prop = self._repository.get_property(property_id)
        if prop is None:
            raise PropertyNotFoundError(f"Property {property_id} was not found")
        return prop

    def list_properties(self, owner_id: Optional[str] = None) -> list[Property]:
        return self._repository.list_properties(owner_id=owner_id)

    def create_property(
        self,
        *,
        owner_id: str,
        name: str,
        code: Optional[str] = None,
        address: Optional[str] = None,
        timezone_name: Optional[str] = None,
    ) -> Property:
        try:
            prop = self._repository.create_property(
                owner_id=owner_id,
                name=_require_text(name, "name"),
                code=_clean(code),
                address=_clean(address),
                timezone_name=_clean(timezone_name) or "UTC",
            )
        except sqlite3.IntegrityError as exc:
            raise InventoryValidationError(f"Property code {code!r} is already in use") from exc
        logger.info("Property created | property_id=%s | owner_id=%s", prop.property_id, owner_id)
        return prop

    def update_property(self, property_id: int, changes: Mapping[str, Any]) -> Property:
        self.get_property(property_id)
        cleaned: dict[str, Any] = {}
        for key, value in changes.items():
            if key == "name":
                cleaned["name"] = _require_text(value, "name")
            elif key == "timezone":
                cleaned["timezone"] = _clean(value) or "UTC"
            else:
                cleaned[key] = _clean(value)
        try:
            updated = self._repository.update_property(property_id, cleaned)
        except sqlite3.IntegrityError as exc:
            raise InventoryValidationError("Property code is already in use") from exc
        if updated is None:
            raise NotFoundError("Record was removed during the update")
        return updated

    def delete_property(self, property_id: int) -> None:
        if not self._repository.delete_property(property_id):
            raise PropertyNotFoundError(f"Property {property_id} was not found")
        logger.info("Property deleted | property_id=%s", property_id)

    # --- Categories -------------------------------------------------------

    def get_category(self, category_id: int) -> RoomCategory:
        category = self._repository.get_category(category_id)
        if category is None:
            raise CategoryNotFoundError(f"Room category {category_id} was not found")
        return category

    def list_categories(self, property_id: int) -> list[RoomCategory]:
        self.get_property(property_id)
        return self._repository.list_categories(property_id)

    def create_category(
        self,
        *,
        property_id: int,
        name: str,
        description: Optional[str] = None,
        base_rate: Optional[float] = None,
        capacity: Optional[int] = None,
    ) -> RoomCategory:
        self.get_property(property_id)
        if base_rate is not None and base_rate < 0:
            raise InventoryValidationError("base_rate must be >= 0")
        if capacity is not None and capacity <= 0:
            raise InventoryValidationError("capacity must be > 0")
        return self._repository.create_category(
            property_id=property_id,
            name=_require_text(name, "name"),
            description=_clean(description),
            base_rate=base_rate,
            capacity=capacity or 1,
        )

    def update_category(self, category_id: int, changes: Mapping[str, Any]) -> RoomCategory:
        self.get_category(category_id)
        cleaned: dict[str, Any] = dict(changes)
        if "name" in cleaned:
            cleaned["name"] = _require_text(cleaned["name"], "name")
        if "description" in cleaned:
            cleaned["description"] = _clean(cleaned["description"])
        if cleaned.get("base_rate") is not None and cleaned["base_rate"] < 0:
            raise InventoryValidationError("base_rate must be >= 0")
        if "capacity" in cleaned:
            if cleaned["capacity"] is None:
                cleaned["capacity"] = 1
            elif cleaned["capacity"] <= 0:
                raise InventoryValidationError("capacity must be > 0")
        updated = self._repository.update_category(category_id, cleaned)
        if updated is None:
            raise NotFoundError("Record was removed during the update")
        return updated

    def delete_category(self, category_id: int) -> None:
        if not self._repository.delete_category(category_id):
            raise CategoryNotFoundError(f"Room category {category_id} was not found")

    # --- Rooms ------------------------------------------------------------

    def get_room(self, room_id: int) -> Room:
        room = self._repository.get_room(room_id)
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} was not found")
        return room

    def list_rooms(self, property_id: int) -> list[Room]:
        self.get_property(property_id)
        return self._repository.list_rooms(property_id)

    def _validate_category_for_property(self, category_id: Optional[int], property_id: int) -> None:
        if category_id is None:
            return
        category = self.get_category(category_id)
        if category.property_id != property_id:
            raise InventoryValidationError(
                f"Room category {category_id} belongs to another property"
            )

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
        self.get_property(property_id)
        self._validate_category_for_property(category_id, property_id)
        room_number = _require_text(number, "number")
        try:
            room = self._repository.create_room(
                property_id=property_id,
                number=room_number,
                category_id=category_id,
                floor=_clean(floor),
                status=status,
                notes=_clean(notes),
            )
        except sqlite3.IntegrityError as exc:
            raise InventoryValidationError(
                f"Room number {room_number!r} already exists in this property"
            ) from exc
        logger.info("Room created | room_id=%s | property_id=%s", room.room_id, property_id)
        return room

    def update_room(self, room_id: int, changes: Mapping[str, Any]) -> Room:
        room = self.get_room(room_id)
        cleaned: dict[str, Any] = {}
        for key, value in changes.items():
            if key == "number":
                cleaned["number"] = _require_text(value, "number")
            elif key == "category_id":
                self._validate_category_for_property(value, room.property_id)
                cleaned["category_id"] = value
            elif key == "status":
                cleaned["status"] = RoomStatus(value)
            else:
                cleaned[key] = _clean(value)
        try:
            updated = self._repository.update_room(room_id, cleaned)
        except sqlite3.IntegrityError as exc:
            raise InventoryValidationError(
                "Room number already exists in this property"
            ) from exc
        if updated is None:
            raise NotFoundError("Record was removed during the update")
        return updated

    def delete_room(self, room_id: int) -> None:
        if not self._repository.delete_room(room_id):
            raise RoomNotFoundError(f"Room {room_id} was not found")
        logger.info("Room deleted | room_id=%s", room_id)
