"""Court listings and requests for new cities."""

from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from .backend import BackendClient
from .constants import CITY_REQUESTS_TABLE, COURTS_TABLE, DEFAULT_CITY
from .errors import BackendError
from .filters import annotate_court_distances
from .location import LocationService
from .logging_config import get_logger
from .models import OperationResult, UserLocation
from .schemas import Court

logger = get_logger(__name__)


def _parse_courts(rows: list[dict]) -> list[Court]:
    courts = []
    for row in rows:
        try:
            courts.append(Court.model_validate(row))
        except ValidationError as e:
            logger.warning(f'Skipping malformed court row {row.get("id")}: {e.error_count()} errors')
    return courts


class CourtsService:
    """
    Court rows from the backend, optionally ordered by distance from the user.

    Args:
        backend: Backend client
        location_service: Used to read the device position when a caller
            asks for distances without supplying a location
    """

    def __init__(self, backend: BackendClient, location_service: Optional[LocationService] = None):
        self.backend = backend
        self.location_service = location_service

    def get_courts_by_city(
        self,
        city: str = DEFAULT_CITY,
        include_distance: bool = False,
        location: Optional[UserLocation] = None,
    ) -> list[Court]:
        """
        Courts in ``city`` ordered by name, or by distance when requested.

        If no position can be obtained the courts are returned in name
        order without distances.
        """
        rows = self.backend.query(COURTS_TABLE, filters={'city': city}, order_by='name.asc')
        courts = _parse_courts(rows)
        logger.info(f'Found {len(courts)} courts in {city}')

        if not include_distance:
            return courts

        if location is None and self.location_service is not None:
            location = self.location_service.locate()
        if location is None:
            logger.warning('Location unavailable; listing courts without distances')
            return courts

        return annotate_court_distances(courts, location)

    def get_all_courts(self) -> list[Court]:
        rows = self.backend.query(COURTS_TABLE, order_by='city.asc,name.asc')
        return _parse_courts(rows)

    def get_courts_by_type(self, city: str = DEFAULT_CITY, is_free: Optional[bool] = None) -> list[Court]:
        """Courts in ``city``, optionally only free (True) or only paid (False) ones."""
        filters = {'city': city}
        if is_free is not None:
            filters['is_free'] = is_free
        rows = self.backend.query(COURTS_TABLE, filters=filters, order_by='name.asc')
        return _parse_courts(rows)

    def get_court_by_id(self, court_id: str) -> Optional[Court]:
        try:
            row = self.backend.query(COURTS_TABLE, filters={'id': court_id}, single=True)
        except BackendError as e:
            logger.error(f'Error getting court {court_id}: {e.message}')
            return None
        if not row:
            return None
        courts = _parse_courts([row])
        return courts[0] if courts else None

    def save_city_request(
        self,
        city_name: str,
        user_email: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> OperationResult:
        """Record that someone asked for courts in a city not yet covered."""
        if not city_name or not city_name.strip():
            return OperationResult.failed('City name is required')

        try:
            self.backend.insert(CITY_REQUESTS_TABLE, {
                'city_name': city_name.strip(),
                'requested_by': user_id,
                'user_email': user_email,
                'created_at': datetime.now().isoformat(),
            })
        except BackendError as e:
            logger.error(f'Error saving city request: {e.message}')
            return OperationResult.failed('Failed to save city request', e.kind)

        logger.info(f'City request saved: {city_name.strip()}')
        return OperationResult.ok()

    def get_city_request_counts(self) -> dict[str, int]:
        """Number of requests per city, keyed by lower-cased city name."""
        try:
            rows = self.backend.query(CITY_REQUESTS_TABLE, order_by='created_at.desc')
        except BackendError as e:
            logger.error(f'Error fetching city requests: {e.message}')
            return {}

        counts: dict[str, int] = {}
        for row in rows:
            name = (row.get('city_name') or '').lower()
            if name:
                counts[name] = counts.get(name, 0) + 1
        return counts


def format_court_display_info(court: Court) -> dict:
    return {
        'title': court.name,
        'subtitle': court.address,
        'payment_status': 'Free' if court.is_free else 'Paid',
        'is_paid': not court.is_free,
    }
