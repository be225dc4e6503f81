"""Token authentication and the property access policy."""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from typing import Optional

from stayboard.domain.models import Property
from stayboard.utils.config import Settings, get_settings
from stayboard.utils.logger import get_logger


logger = get_logger(__name__)

ROLE_ADMIN = "admin"
ROLE_OPERATOR = "operator"


class AuthenticationError(Exception):
    """Base authentication failure."""


class AuthNotConfiguredError(AuthenticationError):
    """Raised when login is attempted while no tokens are configured."""


class InvalidTokenError(AuthenticationError):
    """Raised when a login token or bearer token is invalid."""


class PropertyAccessDenied(Exception):
    """Raised when a principal may not act on a property."""

    def __init__(self, user_id: str, property_id: int) -> None:
        self.user_id = user_id
        self.property_id = property_id
        super().__init__(f"User {user_id!r} may not access property {property_id}")


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


IMPLICIT_ADMIN = Principal(user_id="admin", role=ROLE_ADMIN)


class AuthService:
    """Exchanges configured tokens for session tokens and resolves bearers."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._sessions: dict[str, Principal] = {}
        self._lock = threading.RLock()

    @property
    def auth_enabled(self) -> bool:
        return bool(self._settings.admin_token or self._settings.operator_tokens)

    def _match_login_token(self, provided_token: str) -> Optional[Principal]:
        admin_token = self._settings.admin_token
        if admin_token and secrets.compare_digest(provided_token, admin_token):
            return Principal(user_id="admin", role=ROLE_ADMIN)
        for user_id, token in self._settings.operator_tokens.items():
            if secrets.compare_digest(provided_token, token):
                return Principal(user_id=user_id, role=ROLE_OPERATOR)
        return None

    def login(self, provided_token: str) -> tuple[str, Principal]:
        if not self.auth_enabled:
            raise AuthNotConfiguredError(
                "No login tokens are configured. Set ADMIN_TOKEN or OPERATOR_TOKENS."
            )
        principal = self._match_login_token(provided_token)
        if principal is None:
            logger.warning("Login rejected")
            raise InvalidTokenError("Invalid login token")
        session_token = secrets.token_urlsafe(32)
        with self._lock:
            self._sessions[session_token] = principal
        logger.info("Login succeeded | user_id=%s | role=%s", principal.user_id, principal.role)
        return session_token, principal

    def logout(self, bearer_token: str) -> None:
        with self._lock:
            self._sessions.pop(bearer_token, None)

    def resolve(self, bearer_token: Optional[str]) -> Principal:
        """Return the principal behind a bearer token.

        With auth disabled every caller acts as the implicit admin.
        """
        if not self.auth_enabled:
            return IMPLICIT_ADMIN
        if not bearer_token:
            raise InvalidTokenError("Authorization header with Bearer token is required")
        with self._lock:
            for session_token, principal in self._sessions.items():
                if secrets.compare_digest(bearer_token, session_token):
                    return principal
        raise InvalidTokenError("Invalid bearer token")


class PropertyAccessPolicy:
    """Admins act on any property; operators only on properties they own."""

    def can_access(self, principal: Principal, prop: Property) -> bool:
        return principal.is_admin or prop.owner_id == principal.user_id

    def ensure_access(self, principal: Principal, prop: Property) -> None:
        if not self.can_access(principal, prop):
            logger.warning(
                "Property access denied | user_id=%s | property_id=%s",
                principal.user_id,
                prop.property_id,
            )
            raise PropertyAccessDenied(principal.user_id, prop.property_id)
