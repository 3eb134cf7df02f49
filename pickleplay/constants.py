"""Constants and enumerations for the pickleplay client."""

from enum import Enum


class GameType(str, Enum):
    SINGLES = 'singles'
    DOUBLES = 'doubles'


class PlayerLevel(str, Enum):
    BEGINNER = 'beginner'
    INTERMEDIATE = 'intermediate'
    ADVANCED = 'advanced'
    EXPERT = 'expert'


class GameStatus(str, Enum):
    OPEN = 'open'
    FULL = 'full'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class TimeWindow(str, Enum):
    SOON = 'soon'
    TODAY = 'today'
    THIS_WEEK = 'thisWeek'


# Ordered level names, used by facet toggles and form dropdowns
LEVELS = [level.value for level in PlayerLevel]

# Display labels for levels
LEVEL_LABELS = {
    'beginner': 'Beginner',
    'intermediate': 'Intermediate',
    'advanced': 'Advanced',
    'expert': 'Expert',
}

# Great-circle distance
EARTH_RADIUS_MILES = 3959
NO_DISTANCE_SENTINEL = 999
MIN_DISPLAY_DISTANCE = 0.1

# Search radius choices offered by the filter screen (miles)
RADIUS_OPTIONS = [5, 10, 15, 25]
DEFAULT_RADIUS = 10

# Time windows relative to "now" / local midnight (hours)
SOON_WINDOW_START_HOURS = 1
SOON_WINDOW_END_HOURS = 2
THIS_WEEK_DAYS = 7

# Courts are open 06:00 - 23:59
COURT_OPEN_HOUR = 6
COURT_CLOSE_HOUR = 23

# Review step
NOTES_MAX_LENGTH = 120

# Background housekeeping
CLEANUP_INTERVAL_SECONDS = 5 * 60
PICKER_TIMEOUT_SECONDS = 10

# Local key-value store keys
NOTIFICATION_SETTINGS_KEY = 'notificationSettings'
SESSION_KEY = 'supabase_session'
USER_KEY = 'supabase_user'

# Backend tables
GAMES_TABLE = 'games'
GAME_USERS_TABLE = 'game_users'
COURTS_TABLE = 'courts'
PARTNERS_TABLE = 'double_partners'
PROFILES_TABLE = 'profiles'
CITY_REQUESTS_TABLE = 'city_requests'

AVATARS_BUCKET = 'avatars'
DEFAULT_CITY = 'Denver'

# PostgREST / Postgres error codes
JWT_EXPIRED_CODE = 'PGRST301'
NO_ROWS_CODE = 'PGRST116'
UNIQUE_VIOLATION_CODE = '23505'

# Message fragments the backend uses for an expired session
SESSION_EXPIRED_MARKERS = ('Session expired', 'JWT expired')
