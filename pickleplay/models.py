"""Data models for the pickleplay client."""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timedelta
from typing import Any, Optional

from .constants import GameType, PlayerLevel
from .errors import ErrorKind


@dataclass(frozen=True)
class GameDraft:
    """In-progress game record assembled by the create-game wizard."""
    game_type: Optional[GameType] = None
    court_id: Optional[str] = None
    player_level: Optional[PlayerLevel] = None
    scheduled_time: Optional[str] = None  # ISO-8601
    partner_name: Optional[str] = None  # doubles only
    partner_id: Optional[str] = None  # doubles only
    notes: Optional[str] = None
    phone_number: Optional[str] = None

    def merge(self, **changes: Any) -> 'GameDraft':
        """Return a copy with the non-None ``changes`` applied; set fields are never cleared."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise TypeError(f'Unknown draft fields: {", ".join(sorted(unknown))}')
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def with_partner(self, partner_name: str, partner_id: Optional[str] = None) -> 'GameDraft':
        """Return a copy naming a new partner; name and id are replaced together."""
        return replace(self, partner_name=partner_name, partner_id=partner_id)

    @property
    def has_partner(self) -> bool:
        return bool(self.partner_name)


@dataclass(frozen=True)
class AuthUser:
    """Signed-in user as known to the auth service."""
    id: str
    email: str = ''


@dataclass(frozen=True)
class UserLocation:
    """A device position, stamped with when it was read."""
    latitude: float
    longitude: float
    captured_at: datetime = field(default_factory=datetime.now)

    def is_stale(self, max_age: timedelta, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return now - self.captured_at > max_age


@dataclass
class LocationResult:
    """Outcome of asking the device for its position."""
    success: bool
    location: Optional[UserLocation] = None
    error_code: Optional[str] = None  # PERMISSION_DENIED / LOCATION_ERROR
    error: Optional[str] = None


@dataclass
class OperationResult:
    """Outcome of a backend mutation, normalized for display."""
    success: bool
    value: Any = None  # e.g. the new row id
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, value: Any = None) -> 'OperationResult':
        return cls(success=True, value=value)

    @classmethod
    def failed(cls, error: str, kind: ErrorKind = ErrorKind.EXTERNAL) -> 'OperationResult':
        return cls(success=False, error=error, kind=kind)

    @property
    def session_expired(self) -> bool:
        return self.kind == ErrorKind.SESSION_EXPIRED
