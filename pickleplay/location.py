"""Device location and great-circle distance helpers."""

import math
from datetime import datetime
from typing import Callable, Optional, Protocol

from .constants import EARTH_RADIUS_MILES, MIN_DISPLAY_DISTANCE
from .logging_config import get_logger
from .models import LocationResult, UserLocation

logger = get_logger(__name__)

PERMISSION_DENIED = 'PERMISSION_DENIED'
LOCATION_ERROR = 'LOCATION_ERROR'


class LocationProvider(Protocol):
    """Platform GPS access (permission prompt + position read)."""

    def request_permission(self) -> bool: ...

    def current_position(self) -> tuple[float, float]: ...


def calculate_distance(user_lat: float, user_lon: float, target_lat: float, target_lon: float) -> float:
    """
    Great-circle distance between two points using the Haversine formula.

    Args:
        user_lat: Latitude of the user (degrees)
        user_lon: Longitude of the user (degrees)
        target_lat: Latitude of the target (degrees)
        target_lon: Longitude of the target (degrees)

    Returns:
        Distance in miles, rounded to one decimal place
    """
    d_lat = math.radians(target_lat - user_lat)
    d_lon = math.radians(target_lon - user_lon)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(user_lat)) * math.cos(math.radians(target_lat)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return round(EARTH_RADIUS_MILES * c, 1)


def format_distance(distance: float) -> str:
    """Format a distance in miles for display ('< 0.1 mi' for very close courts)."""
    if distance < MIN_DISPLAY_DISTANCE:
        return f'< {MIN_DISPLAY_DISTANCE} mi'
    return f'{distance} mi'


class LocationService:
    """
    Wraps the platform location provider.

    Positions are returned to the caller stamped with the time they were
    read; the service keeps no copy, so staleness is the caller's decision.
    """

    def __init__(self, provider: LocationProvider, clock: Callable[[], datetime] = datetime.now):
        self.provider = provider
        self.clock = clock

    def get_current_location(self) -> LocationResult:
        """
        Request permission and read the current position.

        Returns:
            LocationResult; on failure ``error_code`` is PERMISSION_DENIED
            or LOCATION_ERROR and ``error`` holds a user-facing message
        """
        try:
            if not self.provider.request_permission():
                logger.info('Location permission denied')
                return LocationResult(
                    success=False,
                    error_code=PERMISSION_DENIED,
                    error=(
                        'Location permission was denied. Please enable location access '
                        'in settings to see distances to courts.'
                    ),
                )

            latitude, longitude = self.provider.current_position()
        except Exception as e:
            logger.error(f'Error getting location: {e}')
            return LocationResult(
                success=False,
                error_code=LOCATION_ERROR,
                error='Unable to get your current location. Please check your GPS settings.',
            )

        location = UserLocation(latitude=latitude, longitude=longitude, captured_at=self.clock())
        logger.debug(f'Location obtained: ({latitude:.4f}, {longitude:.4f})')
        return LocationResult(success=True, location=location)

    def locate(self, previous: Optional[UserLocation] = None, max_age=None) -> Optional[UserLocation]:
        """
        Return ``previous`` if it is still fresh, otherwise read a new position.

        Args:
            previous: Location the caller obtained earlier, if any
            max_age: timedelta after which ``previous`` is re-read (None: always re-read)

        Returns:
            UserLocation, or None when the device cannot supply one
        """
        if previous is not None and max_age is not None and not previous.is_stale(max_age, self.clock()):
            return previous

        result = self.get_current_location()
        return result.location if result.success else None
