"""Controllers behind the schedules, search and court listing screens.

Each controller keeps a generation counter. Starting a load or closing the
screen bumps it, and a response that comes back under an older generation is
dropped instead of being applied.
"""

import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from .constants import CLEANUP_INTERVAL_SECONDS, DEFAULT_CITY
from .courts import CourtsService
from .errors import BackendError
from .filters import annotate_game_distances, filter_and_sort_games, sort_by_schedule
from .games import GameService
from .location import LocationService
from .logging_config import get_logger
from .models import OperationResult, UserLocation
from .schemas import Court, Game, GameFilters, GameWithPlayers

logger = get_logger(__name__)

LOCATION_MAX_AGE = timedelta(minutes=5)


class ListingController:
    """Generation bookkeeping shared by the listing controllers."""

    def __init__(self):
        self._generation = 0
        self._lock = threading.Lock()
        self.error: Optional[str] = None
        self.loading = False

    def _begin(self) -> int:
        with self._lock:
            self._generation += 1
            self.loading = True
            self.error = None
            return self._generation

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _finish(self, generation: int, error: Optional[str] = None) -> bool:
        """Mark a load as done; returns False if the result is stale and was dropped."""
        with self._lock:
            if generation != self._generation:
                logger.info(f'{type(self).__name__}: dropping stale response')
                return False
            self.loading = False
            self.error = error
            return True

    def close(self) -> None:
        """Forget any load still in flight."""
        with self._lock:
            self._generation += 1
            self.loading = False


class SchedulesBoard(ListingController):
    """
    The signed-in user's own scheduled games.

    Expired games are cleaned up before the first load and then every
    ``cleanup_interval`` seconds while auto-cleanup is running.
    """

    def __init__(self, auth, games: GameService, cleanup_interval: float = CLEANUP_INTERVAL_SECONDS):
        super().__init__()
        self.auth = auth
        self.games = games
        self.cleanup_interval = cleanup_interval
        self.schedules: list[Game] = []
        self._stop_event = threading.Event()
        self._cleanup_thread: Optional[threading.Thread] = None

    def load(self) -> bool:
        """Initial load: clean up expired games, then fetch schedules."""
        self._cleanup()
        return self.reload()

    def reload(self) -> bool:
        generation = self._begin()
        try:
            user = self.auth.get_current_user()
            schedules = self.games.get_user_schedules(user.id) if user else []
        except BackendError as e:
            logger.error(f'Error loading user schedules: {e.message}')
            self._finish(generation, 'Failed to load schedules')
            return False

        if not self._finish(generation):
            return False
        self.schedules = sort_by_schedule(schedules)
        return True

    def _cleanup(self) -> None:
        try:
            self.games.cleanup_expired_games()
        except BackendError as e:
            logger.warning(f'Cleanup of expired games failed: {e.message}')

    def delete(self, schedule_id: str) -> OperationResult:
        """
        Remove a schedule from the list immediately, then delete it remotely.

        If the remote delete fails the list is reloaded to restore it.
        """
        user = self.auth.get_current_user()
        if user is None:
            return OperationResult.failed('Please log in again.')

        self.schedules = [s for s in self.schedules if s.id != schedule_id]
        result = self.games.delete_schedule(schedule_id, user.id)
        if not result.success:
            logger.error(f'Failed to delete schedule {schedule_id}: {result.error}')
            self.reload()
        return result

    def start_auto_cleanup(self) -> None:
        if self._cleanup_thread and self._cleanup_thread.is_alive():
            logger.warning('Auto-cleanup already running')
            return

        self._stop_event.clear()
        self._cleanup_thread = threading.Thread(
            target=self._cleanup_loop,
            daemon=True,
            name='SchedulesCleanup',
        )
        self._cleanup_thread.start()
        logger.info(f'Auto-cleanup every {self.cleanup_interval} seconds')

    def _cleanup_loop(self) -> None:
        while not self._stop_event.wait(self.cleanup_interval):
            try:
                logger.info('Running automatic cleanup of expired schedules')
                self._cleanup()
                self.reload()
            except Exception as e:
                logger.error(f'Error during automatic cleanup: {e}')

    def stop(self) -> None:
        self._stop_event.set()
        if self._cleanup_thread:
            self._cleanup_thread.join(timeout=5)
            self._cleanup_thread = None

    def close(self) -> None:
        self.stop()
        super().close()


class GameSearch(ListingController):
    """Open games from other players, narrowed by the filter screen's selections."""

    def __init__(
        self,
        auth,
        games: GameService,
        filters: Optional[GameFilters] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        super().__init__()
        self.auth = auth
        self.games = games
        self.filters = filters or GameFilters()
        self.clock = clock
        self.available: list[GameWithPlayers] = []

    def load(self, courts: Optional[list[Court]] = None) -> bool:
        """
        Fetch available games.

        Args:
            courts: Courts annotated with distances; when given, games take
                their court's distance so the radius facet can apply
        """
        generation = self._begin()
        try:
            user = self.auth.get_current_user()
            if user is None:
                self._finish(generation, 'Please log in to see available games.')
                return False
            games = self.games.get_available_games_with_details(user.id)
        except BackendError as e:
            logger.error(f'Error loading available games: {e.message}')
            self._finish(generation, 'Failed to load games')
            return False

        if not self._finish(generation):
            return False
        self.available = annotate_game_distances(games, courts) if courts else games
        return True

    def set_filters(self, filters: GameFilters) -> None:
        self.filters = filters

    @property
    def results(self) -> list[GameWithPlayers]:
        return filter_and_sort_games(self.available, self.filters, self.clock())


class CourtFinder(ListingController):
    """Courts in the user's city, nearest first when a position is available."""

    def __init__(
        self,
        courts: CourtsService,
        location_service: Optional[LocationService] = None,
        city: str = DEFAULT_CITY,
    ):
        super().__init__()
        self.courts_service = courts
        self.location_service = location_service
        self.city = city
        self.location: Optional[UserLocation] = None
        self.courts: list[Court] = []

    def load(self, include_distance: bool = True) -> bool:
        generation = self._begin()

        if include_distance and self.location_service is not None:
            self.location = self.location_service.locate(self.location, LOCATION_MAX_AGE)

        try:
            courts = self.courts_service.get_courts_by_city(
                self.city,
                include_distance=include_distance and self.location is not None,
                location=self.location,
            )
        except BackendError as e:
            logger.error(f'Error loading courts for {self.city}: {e.message}')
            self._finish(generation, 'Failed to load courts')
            return False

        if not self._finish(generation):
            return False
        self.courts = courts
        return True
