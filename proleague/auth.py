"""Identity gate: who is calling and what they may touch."""
from __future__ import annotations

import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from .errors import AuthorizationError, ValidationError
from .models import ADMIN_OWNER, Fixture, now_ms

if TYPE_CHECKING:
    from . import storage

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_NONE = "none"


@dataclass(frozen=True)
class Caller:
    role: str = ROLE_NONE
    club_id: Optional[str] = None

    @classmethod
    def admin(cls) -> "Caller":
        return cls(role=ROLE_ADMIN)

    @classmethod
    def manager(cls, club_id: str) -> "Caller":
        return cls(role=ROLE_MANAGER, club_id=str(club_id))

    @classmethod
    def anonymous(cls) -> "Caller":
        return cls()

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == ROLE_MANAGER and bool(self.club_id)

    @property
    def owner_tag(self) -> str:
        """Key used when the caller writes a vote, proposal or lineup."""
        if self.is_admin:
            return ADMIN_OWNER
        return str(self.club_id)

    def manages(self, club_id: str) -> bool:
        return self.is_manager and self.club_id == str(club_id)

    def can_act_for_fixture(self, fixture: Fixture) -> bool:
        return self.is_admin or (self.is_manager and self.club_id in fixture.teams)

    def to_dict(self) -> dict:
        return {"role": self.role, "club_id": self.club_id}


def require_admin(caller: Caller) -> None:
    if not caller.is_admin:
        raise AuthorizationError("Admin only")


def require_fixture_party(caller: Caller, fixture: Fixture) -> None:
    if not caller.can_act_for_fixture(fixture):
        raise AuthorizationError("Managers of these clubs only (or admin)")


def require_manager_of(caller: Caller, club_id: str) -> None:
    if not caller.manages(club_id):
        raise AuthorizationError("Manager of this club only")


class ManagerCodes:
    """Per-club claim codes, stored only as salted hashes."""

    collection = "manager_codes"

    def __init__(self, store: "storage.Storage", *, clock: Callable[[], int] = now_ms) -> None:
        self.store = store
        self.clock = clock

    def rotate(self, caller: Caller, club_id: str, code: Optional[str] = None) -> str:
        """Set a new code for the club and return it in clear text, once."""
        require_admin(caller)
        club = str(club_id or "").strip()
        if not club:
            raise ValidationError("club id required")
        clear = str(code).strip() if code else secrets.token_urlsafe(8)
        if len(clear) < 4:
            raise ValidationError("code must be at least 4 characters")
        self.store.put(self.collection, club, {"club_id": club, "hash": generate_password_hash(clear), "rotated_at": self.clock()})
        logger.info("Rotated manager code for %s", club)
        return clear

    def claim(self, club_id: str, code: Any) -> Caller:
        record = self.store.get(self.collection, str(club_id))
        if record is None or not code or not check_password_hash(record["hash"], str(code)):
            raise AuthorizationError("Invalid club code")
        return Caller.manager(str(club_id))


def check_admin_password(configured: str, supplied: Any) -> bool:
    """Constant-time comparison; an unset password never matches."""
    if not configured:
        return False
    return hmac.compare_digest(configured.encode("utf-8"), str(supplied or "").encode("utf-8"))
