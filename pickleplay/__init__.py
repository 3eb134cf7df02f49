import logging

from .logging_config import get_logger, setup_logging
from .models import GameDraft, AuthUser, UserLocation, LocationResult, OperationResult
from .errors import (
    ErrorKind,
    PickleplayError,
    DraftValidationError,
    InvalidTransitionError,
    BackendError,
    SessionExpiredError,
    PickerTimeoutError,
    classify_backend_error,
)
from .wizard import (
    WizardStep,
    WizardState,
    CreateGameWizard,
    SubmissionOutcome,
    next_step,
    transition,
)
from .filters import (
    annotate_court_distances,
    annotate_game_distances,
    apply_filters,
    filter_and_sort_games,
    sort_by_schedule,
    toggle_game_type,
    toggle_skill_level,
    toggle_time_window,
    select_radius,
)
from .location import LocationService, calculate_distance, format_distance
from .backend import BackendClient
from .auth import AuthService
from .games import GameService, format_game_datetime, get_game_type_display, get_user_initials
from .courts import CourtsService, format_court_display_info
from .partners import PartnersService
from .storage import AvatarUploader, generate_avatar_filename, pick_image_with_timeout
from .notifications import NotificationPreferences
from .local_store import LocalStore
from .listings import SchedulesBoard, GameSearch, CourtFinder

get_logger().addHandler(logging.NullHandler())

__all__ = [
    # Models
    'GameDraft',
    'AuthUser',
    'UserLocation',
    'LocationResult',
    'OperationResult',
    # Errors
    'ErrorKind',
    'PickleplayError',
    'DraftValidationError',
    'InvalidTransitionError',
    'BackendError',
    'SessionExpiredError',
    'PickerTimeoutError',
    'classify_backend_error',
    # Create-game wizard
    'WizardStep',
    'WizardState',
    'CreateGameWizard',
    'SubmissionOutcome',
    'next_step',
    'transition',
    # Filtering and sorting
    'annotate_court_distances',
    'annotate_game_distances',
    'apply_filters',
    'filter_and_sort_games',
    'sort_by_schedule',
    'toggle_game_type',
    'toggle_skill_level',
    'toggle_time_window',
    'select_radius',
    # Location
    'LocationService',
    'calculate_distance',
    'format_distance',
    # Backend services
    'BackendClient',
    'AuthService',
    'GameService',
    'format_game_datetime',
    'get_game_type_display',
    'get_user_initials',
    'CourtsService',
    'format_court_display_info',
    'PartnersService',
    'AvatarUploader',
    'generate_avatar_filename',
    'pick_image_with_timeout',
    # Local state
    'NotificationPreferences',
    'LocalStore',
    # Listing screens
    'SchedulesBoard',
    'GameSearch',
    'CourtFinder',
    # Logging
    'setup_logging',
    'get_logger',
]
