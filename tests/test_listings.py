"""Tests for the listing screen controllers."""

import threading
from datetime import datetime
from unittest.mock import Mock

import pytest

from pickleplay.errors import BackendError
from pickleplay.listings import CourtFinder, GameSearch, SchedulesBoard
from pickleplay.models import AuthUser, OperationResult, UserLocation
from pickleplay.schemas import Court, Game, GameFilters, GameTypeFacet, GameWithPlayers

NOW = datetime(2026, 10, 16, 12, 0)


def make_game(game_id, scheduled_date='2026-10-17', scheduled_time='18:00', model=Game, **extra):
    return model(
        id=game_id,
        creator_id='user-1',
        game_type=extra.pop('game_type', 'singles'),
        skill_level='beginner',
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        **extra,
    )


@pytest.fixture
def auth():
    service = Mock()
    service.get_current_user.return_value = AuthUser(id='user-1')
    return service


@pytest.fixture
def games():
    service = Mock()
    service.cleanup_expired_games.return_value = 0
    service.get_user_schedules.return_value = [
        make_game('late', scheduled_time='23:00'),
        make_game('early', scheduled_time='09:00'),
        make_game('noon', scheduled_time='14:00'),
    ]
    return service


class TestSchedulesBoard:
    """Tests for the user's schedules list."""

    def test_load_cleans_up_first_and_sorts(self, auth, games):
        board = SchedulesBoard(auth, games)

        assert board.load()

        called = [name for name, _, _ in games.method_calls]
        assert called == ['cleanup_expired_games', 'get_user_schedules']
        assert [s.id for s in board.schedules] == ['early', 'noon', 'late']
        assert not board.loading
        assert board.error is None

    def test_cleanup_failure_does_not_block_load(self, auth, games):
        games.cleanup_expired_games.side_effect = BackendError('boom')
        board = SchedulesBoard(auth, games)
        assert board.load()
        assert len(board.schedules) == 3

    def test_load_failure_sets_error(self, auth, games):
        games.get_user_schedules.side_effect = BackendError('unreachable')
        board = SchedulesBoard(auth, games)
        assert not board.reload()
        assert board.error == 'Failed to load schedules'
        assert board.schedules == []

    def test_signed_out_user_has_no_schedules(self, auth, games):
        auth.get_current_user.return_value = None
        board = SchedulesBoard(auth, games)
        assert board.reload()
        assert board.schedules == []
        games.get_user_schedules.assert_not_called()

    def test_optimistic_delete(self, auth, games):
        games.delete_schedule.return_value = OperationResult.ok('noon')
        board = SchedulesBoard(auth, games)
        board.load()

        result = board.delete('noon')

        assert result.success
        assert [s.id for s in board.schedules] == ['early', 'late']
        assert games.get_user_schedules.call_count == 1

    def test_failed_delete_reloads(self, auth, games):
        games.delete_schedule.return_value = OperationResult.failed('nope')
        board = SchedulesBoard(auth, games)
        board.load()

        result = board.delete('noon')

        assert not result.success
        assert games.get_user_schedules.call_count == 2
        assert [s.id for s in board.schedules] == ['early', 'noon', 'late']

    def test_response_after_close_is_dropped(self, auth, games):
        board = SchedulesBoard(auth, games)

        def close_then_return(user_id):
            board.close()
            return [make_game('ghost')]

        games.get_user_schedules.side_effect = close_then_return

        assert not board.reload()
        assert board.schedules == []

    def test_auto_cleanup_runs_periodically(self, auth, games):
        ticks = threading.Event()
        counter = {'n': 0}

        def cleanup():
            counter['n'] += 1
            if counter['n'] >= 2:
                ticks.set()
            return 0

        games.cleanup_expired_games.side_effect = cleanup
        board = SchedulesBoard(auth, games, cleanup_interval=0.01)

        board.start_auto_cleanup()
        try:
            assert ticks.wait(2)
        finally:
            board.stop()

        assert games.get_user_schedules.call_count >= 2
        assert board._cleanup_thread is None


class TestGameSearch:
    """Tests for the search screen controller."""

    @pytest.fixture
    def search_games(self):
        service = Mock()
        service.get_available_games_with_details.return_value = [
            make_game('far', '2026-10-16', '15:00', model=GameWithPlayers, court_id='c-far', game_type='doubles'),
            make_game('near', '2026-10-16', '13:30', model=GameWithPlayers, court_id='c-near'),
            make_game('unknown', '2026-10-16', '12:30', model=GameWithPlayers),
        ]
        return service

    def test_results_filtered_and_sorted(self, auth, search_games):
        search = GameSearch(auth, search_games, clock=lambda: NOW)
        courts = [
            Court(id='c-near', name='Near', distance_value=3.0),
            Court(id='c-far', name='Far', distance_value=18.0),
        ]

        assert search.load(courts)

        assert [g.id for g in search.results] == ['unknown', 'near']

        search.set_filters(GameFilters(radius=None))
        assert [g.id for g in search.results] == ['unknown', 'near', 'far']

        search.set_filters(GameFilters(radius=None, game_types=GameTypeFacet(singles=False, doubles=True, all=False)))
        assert [g.id for g in search.results] == ['far']

    def test_requires_sign_in(self, auth, search_games):
        auth.get_current_user.return_value = None
        search = GameSearch(auth, search_games)
        assert not search.load()
        assert search.error == 'Please log in to see available games.'

    def test_backend_failure(self, auth, search_games):
        search_games.get_available_games_with_details.side_effect = BackendError('down')
        search = GameSearch(auth, search_games)
        assert not search.load()
        assert search.error == 'Failed to load games'
        assert search.available == []


class TestCourtFinder:
    """Tests for the court list controller."""

    def test_location_passed_to_service_and_kept(self):
        courts_service = Mock()
        courts_service.get_courts_by_city.return_value = [Court(id='c1', name='A')]
        location = UserLocation(39.7, -104.9, NOW)
        location_service = Mock()
        location_service.locate.return_value = location

        finder = CourtFinder(courts_service, location_service, city='Denver')
        assert finder.load()
        assert finder.load()

        courts_service.get_courts_by_city.assert_called_with('Denver', include_distance=True, location=location)
        second_previous = location_service.locate.call_args_list[1][0][0]
        assert second_previous is location
        assert [c.id for c in finder.courts] == ['c1']

    def test_no_location_lists_without_distance(self):
        courts_service = Mock()
        courts_service.get_courts_by_city.return_value = []
        location_service = Mock()
        location_service.locate.return_value = None

        CourtFinder(courts_service, location_service).load()

        courts_service.get_courts_by_city.assert_called_once_with('Denver', include_distance=False, location=None)

    def test_backend_failure(self):
        courts_service = Mock()
        courts_service.get_courts_by_city.side_effect = BackendError('down')
        finder = CourtFinder(courts_service)
        assert not finder.load(include_distance=False)
        assert finder.error == 'Failed to load courts'
