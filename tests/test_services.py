"""Tests for the auth, game, court, partner, notification and storage services."""

import threading
from datetime import date, datetime
from unittest.mock import Mock

import pytest

from pickleplay.auth import AuthService, friendly_sign_in_error
from pickleplay.backend import BackendClient
from pickleplay.constants import GameType, PlayerLevel
from pickleplay.courts import CourtsService, format_court_display_info
from pickleplay.errors import BackendError, ErrorKind, PickerTimeoutError, SessionExpiredError
from pickleplay.games import (
    GameService,
    format_game_datetime,
    get_game_type_display,
    get_user_initials,
)
from pickleplay.local_store import LocalStore
from pickleplay.models import AuthUser, UserLocation
from pickleplay.notifications import NotificationPreferences
from pickleplay.partners import DUPLICATE_PARTNER_MESSAGE, PartnersService
from pickleplay.schemas import Court, Game, NewGame, NewPartner
from pickleplay.storage import (
    BUCKET_MISSING_HINT,
    AvatarUploader,
    generate_avatar_filename,
    pick_image_with_timeout,
)

COURT_ROWS = [
    {'id': 'c1', 'name': 'Aardvark Courts', 'address': '1 A St', 'city': 'Denver', 'is_free': True},
    {'id': 'c2', 'name': 'Zeta Park', 'address': '2 Z St', 'city': 'Denver', 'is_free': False,
     'latitude': 39.7392, 'longitude': -104.9903},
]


@pytest.fixture
def backend():
    return Mock(spec=BackendClient)


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / 'store.json')


def game_row(game_id='g1', **extra):
    row = {
        'id': game_id,
        'creator_id': 'other',
        'game_type': 'singles',
        'skill_level': 'beginner',
        'scheduled_date': '2026-10-17',
        'scheduled_time': '18:00:00',
        'venue_name': 'Zeta Park',
        'status': 'open',
    }
    row.update(extra)
    return row


class TestAuthService:
    """Tests for sign-in and profile lookup."""

    def test_friendly_messages(self):
        assert friendly_sign_in_error('Invalid login credentials').startswith('Invalid email or password')
        assert 'confirm your account' in friendly_sign_in_error('Email not confirmed')
        assert 'Too many login attempts' in friendly_sign_in_error('Too many requests, slow down')
        assert friendly_sign_in_error('Something else') == 'Something else'

    def test_sign_in_failure_is_translated(self, backend):
        backend.sign_in.side_effect = BackendError('Invalid login credentials', status_code=400)
        result = AuthService(backend).sign_in('a@b.co', 'wrong')
        assert not result.success
        assert result.error.startswith('Invalid email or password')

    def test_sign_in_returns_profile_from_metadata(self, backend):
        backend.get_user.return_value = AuthUser(id='user-1', email='a@b.co')
        backend.get_user_record.return_value = {
            'id': 'user-1',
            'email': 'a@b.co',
            'user_metadata': {'first_name': 'Pat', 'last_name': 'Lee', 'pickleball_level': 'advanced'},
        }

        result = AuthService(backend).sign_in('a@b.co', 'secret')

        assert result.success
        assert result.profile.display_name == 'Pat Lee'
        assert result.profile.pickleball_level == 'advanced'
        backend.query.assert_not_called()

    def test_profile_read_from_table(self, backend):
        backend.get_user_record.return_value = None
        backend.query.return_value = {'id': 'user-2', 'email': 'x@y.co', 'first_name': 'Kim'}

        profile = AuthService(backend).get_profile('user-2')

        assert profile.first_name == 'Kim'
        backend.query.assert_called_once_with('profiles', filters={'id': 'user-2'}, single=True)

    def test_missing_profile(self, backend):
        backend.get_user_record.return_value = None
        backend.query.return_value = None
        assert AuthService(backend).get_profile('user-3') is None

    def test_sign_up_creates_missing_profile(self, backend):
        backend.sign_up.return_value = {'user': {'id': 'user-4', 'email': 'new@b.co'}}
        backend.get_user_record.return_value = None
        backend.query.return_value = None

        result = AuthService(backend).sign_up('new@b.co', 'secret1', 'Ana', 'Ruiz', 'Beginner', city='Denver')

        assert result.success
        assert result.profile.full_name == 'Ana Ruiz'
        table, values = backend.insert.call_args[0]
        assert table == 'profiles'
        assert values['pickleball_level'] == 'beginner'
        metadata = backend.sign_up.call_args[0][2]
        assert metadata == {'first_name': 'Ana', 'last_name': 'Ruiz', 'pickleball_level': 'beginner', 'city': 'Denver'}

    def test_update_password_too_short(self, backend):
        result = AuthService(backend).update_password('abc')
        assert result.kind == ErrorKind.VALIDATION
        backend.update_user.assert_not_called()

    def test_update_password_session_expired(self, backend):
        backend.update_user.side_effect = SessionExpiredError()
        result = AuthService(backend).update_password('longenough')
        assert result.session_expired


class TestGameService:
    """Tests for game reads and writes."""

    def test_create_game_links_creator(self, backend):
        backend.insert.side_effect = [[{'id': 'g9'}], [{'id': 'link'}]]
        game = NewGame(
            creator_id='user-1',
            game_type=GameType.SINGLES,
            skill_level=PlayerLevel.BEGINNER,
            court_id='c1',
            venue_name='Aardvark Courts',
            scheduled_date='2026-10-17',
            scheduled_time='18:00',
            phone_number='5551234567',
        )

        result = GameService(backend).create_game(game)

        assert result.success
        assert result.value == 'g9'
        game_insert, link_insert = backend.insert.call_args_list
        assert game_insert[0][0] == 'games'
        assert game_insert[0][1]['game_type'] == 'singles'
        assert 'partner_name' not in game_insert[0][1]
        assert link_insert[0][1] == {
            'game_id': 'g9',
            'user_id': 'user-1',
            'role': 'creator',
            'status': 'confirmed',
            'team': 'A',
        }

    def test_create_game_failure(self, backend):
        backend.insert.side_effect = SessionExpiredError('JWT expired', code='PGRST301')
        game = NewGame(
            creator_id='user-1',
            game_type='doubles',
            skill_level='expert',
            court_id='c1',
            venue_name='Aardvark Courts',
            scheduled_date='2026-10-17',
            scheduled_time='18:00',
            phone_number='5551234567',
        )
        result = GameService(backend).create_game(game)
        assert not result.success
        assert result.session_expired

    def test_available_games_exclude_joined(self, backend):
        backend.query.return_value = [
            game_row('g1', game_users=[{
                'user_id': 'other', 'role': 'creator', 'status': 'confirmed',
                'profiles': {'first_name': 'Alex', 'last_name': 'Rodriguez'},
            }]),
            game_row('g2', game_users=[{'user_id': 'user-1', 'role': 'player', 'status': 'pending'}]),
        ]

        games = GameService(backend).get_available_games_with_details('user-1')

        assert [g.id for g in games] == ['g1']
        assert games[0].players[0].display_name == 'Alex Rodriguez'
        filters = backend.query.call_args[1]['filters']
        assert filters == {'status': 'open', 'creator_id': ('neq', 'user-1')}

    def test_malformed_rows_skipped(self, backend):
        backend.query.return_value = [game_row('g1'), game_row('bad', scheduled_date='tomorrow')]
        schedules = GameService(backend).get_user_schedules('user-1')
        assert [g.id for g in schedules] == ['g1']

    def test_delete_schedule_scoped_to_creator(self, backend):
        backend.delete.return_value = [{'id': 'g1'}]
        assert GameService(backend).delete_schedule('g1', 'user-1').success
        backend.delete.assert_called_once_with('games', {'id': 'g1', 'creator_id': 'user-1'})

    def test_delete_schedule_not_found(self, backend):
        backend.delete.return_value = []
        result = GameService(backend).delete_schedule('g1', 'user-1')
        assert not result.success
        assert result.error == 'Schedule not found'

    def test_cleanup_removes_only_past_games(self, backend):
        backend.query.return_value = [
            game_row('past', scheduled_date='2026-10-16', scheduled_time='09:00:00'),
            game_row('later', scheduled_date='2026-10-16', scheduled_time='20:00:00'),
            game_row('yesterday', scheduled_date='2026-10-15', scheduled_time='21:00:00'),
        ]

        removed = GameService(backend).cleanup_expired_games(now=datetime(2026, 10, 16, 12, 0))

        assert removed == 2
        deleted = [c[0][1]['id'] for c in backend.delete.call_args_list]
        assert deleted == ['past', 'yesterday']
        assert backend.query.call_args[1]['filters']['scheduled_date'] == ('lte', '2026-10-16')


class TestGameDisplay:
    """Tests for game display helpers."""

    TODAY = date(2026, 10, 16)

    def test_today(self):
        assert format_game_datetime('2026-10-16', '18:00', today=self.TODAY) == 'Today at 6:00 PM'

    def test_tomorrow(self):
        assert format_game_datetime('2026-10-17', '09:30:00', today=self.TODAY) == 'Tomorrow at 9:30 AM'

    def test_later_date(self):
        assert format_game_datetime('2026-10-18', '18:00', today=self.TODAY) == 'Oct 18 at 6:00 PM'

    def test_unparseable(self):
        assert format_game_datetime('soon', 'later', today=self.TODAY) == 'soon at later'

    def test_game_type_display(self):
        singles = Game.model_validate(game_row(creator_name='Alex'))
        doubles = Game.model_validate(game_row(game_type='doubles', creator_name='John', partner_name='Jane'))
        open_doubles = Game.model_validate(game_row(game_type='doubles', creator_name='Sarah'))
        assert get_game_type_display(singles) == 'Singles vs Alex'
        assert get_game_type_display(doubles) == 'Doubles vs John & Jane'
        assert get_game_type_display(open_doubles) == 'Doubles with Sarah (need partner)'

    @pytest.mark.parametrize('name,expected', [
        ('Alex Rodriguez', 'AR'),
        ('mary jo smith', 'MS'),
        ('Cher', 'C'),
        ('', 'U'),
        (None, 'U'),
    ])
    def test_initials(self, name, expected):
        assert get_user_initials(name) == expected


class TestCourtsService:
    """Tests for court listings and city requests."""

    def test_courts_by_city_with_distance(self, backend):
        backend.query.return_value = COURT_ROWS
        location = UserLocation(39.7392, -104.9903)

        courts = CourtsService(backend).get_courts_by_city('Denver', include_distance=True, location=location)

        assert [c.id for c in courts] == ['c2', 'c1']
        assert courts[0].distance == '< 0.1 mi'

    def test_location_unavailable_is_soft_failure(self, backend):
        backend.query.return_value = COURT_ROWS
        location_service = Mock()
        location_service.locate.return_value = None

        courts = CourtsService(backend, location_service).get_courts_by_city('Denver', include_distance=True)

        assert [c.id for c in courts] == ['c1', 'c2']
        assert all(c.distance is None for c in courts)

    def test_malformed_court_rows_skipped(self, backend):
        backend.query.return_value = [{'id': 'broken', 'latitude': 'north'}] + COURT_ROWS
        courts = CourtsService(backend).get_courts_by_city('Denver')
        assert [c.id for c in courts] == ['c1', 'c2']

    def test_malformed_court_by_id_returns_none(self, backend):
        backend.query.return_value = {'id': 'c1'}
        assert CourtsService(backend).get_court_by_id('c1') is None

    def test_courts_by_type(self, backend):
        backend.query.return_value = []
        CourtsService(backend).get_courts_by_type('Boulder', is_free=False)
        assert backend.query.call_args[1]['filters'] == {'city': 'Boulder', 'is_free': False}

    def test_court_by_id_error_returns_none(self, backend):
        backend.query.side_effect = BackendError('boom')
        assert CourtsService(backend).get_court_by_id('c1') is None

    def test_display_info(self):
        info = format_court_display_info(Court.model_validate(COURT_ROWS[1]))
        assert info == {'title': 'Zeta Park', 'subtitle': '2 Z St', 'payment_status': 'Paid', 'is_paid': True}

    def test_city_request_counts_case_insensitive(self, backend):
        backend.query.return_value = [
            {'city_name': 'Austin'},
            {'city_name': 'austin'},
            {'city_name': 'Boise'},
        ]
        assert CourtsService(backend).get_city_request_counts() == {'austin': 2, 'boise': 1}

    def test_save_city_request(self, backend):
        result = CourtsService(backend).save_city_request('  Austin ', user_email='a@b.co')
        assert result.success
        values = backend.insert.call_args[0][1]
        assert values['city_name'] == 'Austin'
        assert values['requested_by'] is None

    def test_blank_city_request_rejected(self, backend):
        assert not CourtsService(backend).save_city_request('  ').success
        backend.insert.assert_not_called()


class TestPartnersService:
    """Tests for saved partners."""

    def test_create_partner(self, backend):
        backend.insert.return_value = [{'id': 'p1'}]
        result = PartnersService(backend).create_partner('user-1', NewPartner(partner_name=' Sam Lee ', partner_level='advanced'))
        assert result.value == 'p1'
        values = backend.insert.call_args[0][1]
        assert values == {'user_id': 'user-1', 'is_registered': False, 'partner_name': 'Sam Lee', 'partner_level': 'advanced'}

    def test_duplicate_name(self, backend):
        backend.insert.side_effect = BackendError('duplicate key', code='23505', status_code=409)
        result = PartnersService(backend).create_partner('user-1', NewPartner(partner_name='Sam', partner_level='beginner'))
        assert not result.success
        assert result.error == DUPLICATE_PARTNER_MESSAGE

    def test_session_refreshed_and_retried_once(self, backend):
        backend.insert.side_effect = [SessionExpiredError('JWT expired'), [{'id': 'p2'}]]
        backend.refresh_session.return_value = {'access_token': 'new'}

        result = PartnersService(backend).create_partner('user-1', NewPartner(partner_name='Sam', partner_level='beginner'))

        assert result.value == 'p2'
        assert backend.insert.call_count == 2

    def test_refresh_failure_reports_session_expired(self, backend):
        backend.update.side_effect = SessionExpiredError('JWT expired')
        backend.refresh_session.return_value = None

        result = PartnersService(backend).update_partner('p1', {'partner_level': PlayerLevel.EXPERT})

        assert result.session_expired
        assert 'could not be refreshed' in result.error
        assert backend.update.call_count == 1

    def test_update_partner_normalizes_level(self, backend):
        PartnersService(backend).update_partner('p1', {'partner_level': PlayerLevel.EXPERT})
        table, values, filters = backend.update.call_args[0]
        assert values['partner_level'] == 'expert'
        assert 'updated_at' in values
        assert filters == {'id': 'p1'}

    def test_get_partners(self, backend):
        backend.query.return_value = [
            {'id': 'p1', 'user_id': 'user-1', 'partner_name': 'Sam', 'partner_level': 'beginner'},
        ]
        partners = PartnersService(backend).get_partners('user-1')
        assert partners[0].partner_level == PlayerLevel.BEGINNER

    def test_delete_partner_failure(self, backend):
        backend.delete.side_effect = BackendError('not allowed', status_code=403)
        result = PartnersService(backend).delete_partner('p1')
        assert not result.success
        assert result.error == 'not allowed'


class TestNotificationPreferences:
    """Tests for notification toggles."""

    def test_defaults_all_on(self, store):
        prefs = NotificationPreferences(store)
        for kind in ('gameAccepted', 'gameExpired', 'gameCancelled', 'gameStartingSoon'):
            assert prefs.is_enabled(kind)

    def test_toggle_persists_under_fixed_key(self, store):
        NotificationPreferences(store).toggle('gameExpired')

        assert store.get_item('notificationSettings') == {
            'gameAccepted': True,
            'gameExpired': False,
            'gameCancelled': True,
            'gameStartingSoon': True,
        }
        assert not NotificationPreferences(store).is_enabled('game_expired')

    def test_invalid_stored_value_falls_back_to_defaults(self, store):
        store.set_item('notificationSettings', {'gameAccepted': 'sometimes'})
        assert NotificationPreferences(store).get_settings().game_accepted is True

    def test_unknown_type_rejected(self, store):
        with pytest.raises(ValueError):
            NotificationPreferences(store).toggle('gameWon')


class TestAvatarUpload:
    """Tests for avatar upload and the picker timeout."""

    @pytest.fixture
    def image(self, tmp_path):
        path = tmp_path / 'me.png'
        path.write_bytes(b'\x89PNG')
        return path

    def test_filename(self):
        assert generate_avatar_filename('/tmp/photo.PNG', now=1700000000.5) == 'avatar_1700000000500.png'
        assert generate_avatar_filename('photo', now=1.0) == 'avatar_1000.jpg'

    def test_uploads_with_user_token(self, backend, image):
        backend.access_token.return_value = 'user-token'
        backend.upload.return_value = 'https://cdn/avatars/a.png'

        result = AvatarUploader(backend).upload_avatar(image, filename='a.png')

        assert result.value == 'https://cdn/avatars/a.png'
        backend.upload.assert_called_once_with('avatars', 'a.png', b'\x89PNG', 'image/png', token='user-token')

    def test_falls_back_to_anonymous_key(self, backend, image):
        backend.access_token.return_value = 'user-token'
        backend.upload.side_effect = [BackendError('new row violates policy', status_code=403), 'https://cdn/a.png']

        result = AvatarUploader(backend).upload_avatar(image, filename='a.png')

        assert result.success
        assert backend.upload.call_args_list[1][1]['token'] is None

    def test_no_session_uses_anonymous_key(self, backend, image):
        backend.access_token.side_effect = SessionExpiredError()
        backend.upload.return_value = 'https://cdn/a.png'

        assert AvatarUploader(backend).upload_avatar(image).success
        assert backend.upload.call_args[1]['token'] is None

    def test_missing_bucket_hint(self, backend, image):
        backend.access_token.return_value = 'user-token'
        backend.upload.side_effect = BackendError('Bucket not found', status_code=404)

        result = AvatarUploader(backend).upload_avatar(image)

        assert not result.success
        assert result.error == BUCKET_MISSING_HINT
        assert backend.upload.call_count == 1

    def test_unreadable_image(self, backend, tmp_path):
        result = AvatarUploader(backend).upload_avatar(tmp_path / 'missing.jpg')
        assert result.kind == ErrorKind.VALIDATION
        backend.upload.assert_not_called()

    def test_picker_result_returned(self):
        assert pick_image_with_timeout(lambda: 'file:///photo.jpg', timeout=1) == 'file:///photo.jpg'

    def test_picker_timeout(self):
        release = threading.Event()
        with pytest.raises(PickerTimeoutError) as exc_info:
            pick_image_with_timeout(lambda: release.wait(5), timeout=0.05)
        release.set()
        assert exc_info.value.kind == ErrorKind.TIMEOUT
