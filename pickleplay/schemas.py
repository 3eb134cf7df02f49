"""Pydantic schemas for backend records, filters and configuration."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .constants import (
    AVATARS_BUCKET,
    CLEANUP_INTERVAL_SECONDS,
    DEFAULT_CITY,
    DEFAULT_RADIUS,
    LEVELS,
    NOTES_MAX_LENGTH,
    PICKER_TIMEOUT_SECONDS,
    GameStatus,
    GameType,
    PlayerLevel,
)


class Court(BaseModel):
    """Court row, optionally enriched with a distance from the user."""

    id: str
    name: str
    address: str = ''
    city: str = ''
    state: str = ''
    is_free: bool = True
    latitude: float | None = None
    longitude: float | None = None
    created_at: str | None = None
    # Computed in memory, never written back
    distance: str | None = None
    distance_value: float | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    class Config:
        extra = 'ignore'


class Game(BaseModel):
    """Game row as listed on the schedules and search screens."""

    id: str
    creator_id: str
    game_type: GameType
    skill_level: str
    scheduled_date: str = Field(..., pattern=r'^\d{4}-\d{2}-\d{2}$')
    scheduled_time: str = Field(..., pattern=r'^\d{2}:\d{2}(:\d{2})?$')
    venue_name: str = ''
    venue_address: str = ''
    city: str = ''
    court_id: str | None = None
    status: GameStatus = GameStatus.OPEN
    notes: str | None = None
    phone_number: str | None = None
    creator_name: str | None = None
    creator_level: str | None = None
    partner_name: str | None = None
    partner_id: str | None = None
    max_players: int = 2
    current_players: int = 1
    created_at: str | None = None
    updated_at: str | None = None
    distance_value: float | None = None

    def scheduled_at(self) -> datetime:
        """Combined local date and time of the game."""
        time_part = self.scheduled_time if len(self.scheduled_time) > 5 else f'{self.scheduled_time}:00'
        return datetime.fromisoformat(f'{self.scheduled_date}T{time_part}')

    class Config:
        extra = 'ignore'


class GamePlayer(BaseModel):
    """A user attached to a game through the game_users table."""

    user_id: str
    role: str = Field(default='player', pattern=r'^(creator|player)$')
    status: str = Field(default='pending', pattern=r'^(pending|confirmed|cancelled)$')
    team: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    pickleball_level: str | None = None

    @property
    def display_name(self) -> str:
        return f'{self.first_name or ""} {self.last_name or ""}'.strip() or 'Player'

    class Config:
        extra = 'ignore'


class GameWithPlayers(Game):
    """Game row together with its joined players."""

    players: list[GamePlayer] = Field(default_factory=list)


class NewGame(BaseModel):
    """Record handed to the backend when a game is created."""

    creator_id: str = Field(..., min_length=1)
    game_type: GameType
    skill_level: PlayerLevel
    court_id: str = Field(..., min_length=1)
    venue_name: str
    venue_address: str = ''
    city: str = ''
    scheduled_date: str = Field(..., pattern=r'^\d{4}-\d{2}-\d{2}$')
    scheduled_time: str = Field(..., pattern=r'^\d{2}:\d{2}$')
    notes: str | None = Field(default=None, max_length=NOTES_MAX_LENGTH)
    phone_number: str
    partner_name: str | None = None
    partner_id: str | None = None
    status: GameStatus = GameStatus.OPEN
    max_players: int = Field(default=2, ge=2, le=4)
    current_players: int = Field(default=1, ge=1, le=4)

    class Config:
        extra = 'forbid'


class Partner(BaseModel):
    """Saved doubles partner."""

    id: str
    user_id: str
    partner_name: str
    partner_level: PlayerLevel
    partner_email: str | None = None
    partner_phone: str | None = None
    avatar_url: str | None = None
    is_registered: bool = False
    registered_user_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    class Config:
        extra = 'ignore'


class NewPartner(BaseModel):
    """Partner fields supplied by the create-partner form."""

    partner_name: str = Field(..., min_length=1)
    partner_level: PlayerLevel
    partner_email: str | None = None
    partner_phone: str | None = None
    avatar_url: str | None = None

    @field_validator('partner_name')
    @classmethod
    def name_cleaned(cls, v):
        if not v.strip():
            raise ValueError('Partner name cannot be blank')
        return v.strip()

    class Config:
        extra = 'forbid'


class Profile(BaseModel):
    """User profile."""

    id: str
    email: str = ''
    first_name: str | None = None
    last_name: str | None = None
    full_name: str | None = None
    pickleball_level: str | None = None
    city: str | None = None
    avatar_url: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        return f'{self.first_name or "User"} {self.last_name or ""}'.strip()

    class Config:
        extra = 'ignore'


class GameTypeFacet(BaseModel):
    singles: bool = True
    doubles: bool = True
    all: bool = True


class SkillLevelFacet(BaseModel):
    beginner: bool = True
    intermediate: bool = True
    advanced: bool = True
    expert: bool = True
    all: bool = True

    def selected(self) -> set[str]:
        """Individually selected level names."""
        return {level for level in LEVELS if getattr(self, level)}


class TimeWindowFacet(BaseModel):
    soon: bool = True
    today: bool = True
    this_week: bool = Field(default=True, alias='thisWeek')
    all: bool = True

    class Config:
        populate_by_name = True


class GameFilters(BaseModel):
    """
    Facet selections chosen on the filter screen.

    A group whose ``all`` flag is set imposes no restriction regardless of
    its individual flags. ``radius`` is in miles; None disables it.
    """

    game_types: GameTypeFacet = Field(default_factory=GameTypeFacet)
    skill_levels: SkillLevelFacet = Field(default_factory=SkillLevelFacet)
    time_windows: TimeWindowFacet = Field(default_factory=TimeWindowFacet)
    radius: float | None = Field(default=DEFAULT_RADIUS, gt=0)


class NotificationSettings(BaseModel):
    """Notification preferences kept in the on-device store."""

    game_accepted: bool = Field(default=True, alias='gameAccepted')
    game_expired: bool = Field(default=True, alias='gameExpired')
    game_cancelled: bool = Field(default=True, alias='gameCancelled')
    game_starting_soon: bool = Field(default=True, alias='gameStartingSoon')

    class Config:
        populate_by_name = True
        extra = 'ignore'


class AppConfig(BaseModel):
    """Client configuration settings."""

    supabase_url: str = ''
    supabase_anon_key: str = ''
    default_city: str = DEFAULT_CITY
    avatars_bucket: str = AVATARS_BUCKET
    store_path: str = '.pickleplay/store.json'
    request_timeout_seconds: float = Field(default=15.0, gt=0)
    cleanup_interval_seconds: int = Field(default=CLEANUP_INTERVAL_SECONDS, ge=1)
    picker_timeout_seconds: float = Field(default=PICKER_TIMEOUT_SECONDS, gt=0)

    @field_validator('supabase_url')
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip('/')

    class Config:
        extra = 'forbid'
