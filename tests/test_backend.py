"""Tests for the backend REST client and error classification."""

import time
from unittest.mock import MagicMock, Mock

import pytest
import requests

from pickleplay.backend import BackendClient
from pickleplay.constants import SESSION_KEY, USER_KEY
from pickleplay.errors import (
    BackendError,
    ErrorKind,
    SessionExpiredError,
    classify_backend_error,
)
from pickleplay.local_store import LocalStore

BASE_URL = 'https://example.supabase.co'


def make_response(status=200, payload=None):
    response = Mock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.content = b'' if payload is None else b'{}'
    response.json.return_value = payload
    response.text = str(payload)
    return response


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / 'store.json')


@pytest.fixture
def http():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(store, http):
    return BackendClient(BASE_URL + '/', 'anon-key', store, http=http)


@pytest.fixture
def signed_in(store):
    store.set_item(SESSION_KEY, {
        'access_token': 'user-token',
        'refresh_token': 'refresh-1',
        'expires_at': int(time.time()) + 3600,
    })
    store.set_item(USER_KEY, {'id': 'user-1', 'email': 'player@example.com'})
    return store


class TestErrorClassification:
    """Tests for turning backend payloads into typed errors."""

    def test_jwt_expired_code(self):
        error = classify_backend_error(401, {'code': 'PGRST301', 'message': 'JWT expired'})
        assert isinstance(error, SessionExpiredError)
        assert error.kind == ErrorKind.SESSION_EXPIRED

    def test_session_message_without_code(self):
        error = classify_backend_error(400, {'message': 'Session expired. Please log in again.'})
        assert error.kind == ErrorKind.SESSION_EXPIRED

    def test_unique_violation_is_external(self):
        error = classify_backend_error(409, {'code': '23505', 'message': 'duplicate key value'})
        assert error.kind == ErrorKind.EXTERNAL
        assert error.code == '23505'
        assert error.status_code == 409

    def test_auth_error_description(self):
        error = classify_backend_error(400, {'error': 'invalid_grant', 'error_description': 'Invalid login credentials'})
        assert error.message == 'Invalid login credentials'

    def test_plain_text_body(self):
        error = classify_backend_error(500, 'Internal Server Error')
        assert error.message == 'Internal Server Error'

    def test_empty_body(self):
        assert classify_backend_error(502, None).message == 'HTTP 502'


class TestQueries:
    """Tests for table reads."""

    def test_query_builds_filters(self, client, http):
        http.request.return_value = make_response(payload=[{'id': 'c1'}])

        rows = client.query(
            'courts',
            filters={'city': 'Denver', 'is_free': True, 'creator_id': ('neq', 'user-1'), 'skipped': None},
            order_by='name.asc',
            limit=20,
        )

        assert rows == [{'id': 'c1'}]
        method, url = http.request.call_args[0]
        kwargs = http.request.call_args[1]
        assert method == 'GET'
        assert url == f'{BASE_URL}/rest/v1/courts'
        assert kwargs['params'] == {
            'select': '*',
            'city': 'eq.Denver',
            'is_free': 'eq.true',
            'creator_id': 'neq.user-1',
            'order': 'name.asc',
            'limit': '20',
        }
        assert kwargs['headers']['apikey'] == 'anon-key'
        assert kwargs['headers']['Authorization'] == 'Bearer anon-key'

    def test_in_filter(self, client, http):
        http.request.return_value = make_response(payload=[])
        client.query('games', filters={'id': ('in', ['g1', 'g2'])})
        assert http.request.call_args[1]['params']['id'] == 'in.(g1,g2)'

    def test_single_returns_first_row_or_none(self, client, http):
        http.request.return_value = make_response(payload=[{'id': 'c1'}])
        assert client.query('courts', filters={'id': 'c1'}, single=True) == {'id': 'c1'}

        http.request.return_value = make_response(payload=[])
        assert client.query('courts', filters={'id': 'nope'}, single=True) is None

    def test_error_response_raises(self, client, http):
        http.request.return_value = make_response(500, {'message': 'boom'})
        with pytest.raises(BackendError, match='boom'):
            client.query('courts')

    def test_network_error_raises_backend_error(self, client, http):
        http.request.side_effect = requests.ConnectionError('unreachable')
        with pytest.raises(BackendError) as exc_info:
            client.query('courts')
        assert exc_info.value.code == 'NETWORK_ERROR'
        assert exc_info.value.kind == ErrorKind.EXTERNAL


class TestWrites:
    """Tests for authenticated writes."""

    def test_insert_requires_session(self, client, http):
        with pytest.raises(SessionExpiredError):
            client.insert('games', {'notes': 'hi'})
        http.request.assert_not_called()

    def test_insert_uses_user_token(self, client, http, signed_in):
        http.request.return_value = make_response(201, [{'id': 'g1'}])

        rows = client.insert('games', {'notes': 'hi'})

        assert rows == [{'id': 'g1'}]
        headers = http.request.call_args[1]['headers']
        assert headers['Authorization'] == 'Bearer user-token'
        assert headers['Prefer'] == 'return=representation'

    def test_jwt_expired_response(self, client, http, signed_in):
        http.request.return_value = make_response(401, {'code': 'PGRST301', 'message': 'JWT expired'})
        with pytest.raises(SessionExpiredError):
            client.insert('games', {'notes': 'hi'})

    def test_delete_sends_all_filters(self, client, http, signed_in):
        http.request.return_value = make_response(200, [{'id': 'g1'}])

        deleted = client.delete('games', {'id': 'g1', 'creator_id': 'user-1'})

        assert deleted == [{'id': 'g1'}]
        assert http.request.call_args[0][0] == 'DELETE'
        assert http.request.call_args[1]['params'] == {'id': 'eq.g1', 'creator_id': 'eq.user-1'}

    def test_unfiltered_update_and_delete_refused(self, client, signed_in):
        with pytest.raises(ValueError):
            client.update('games', {'status': 'cancelled'}, {})
        with pytest.raises(ValueError):
            client.delete('games', {})

    def test_expired_token_refreshed_before_write(self, client, http, store):
        store.set_item(SESSION_KEY, {'access_token': 'old', 'refresh_token': 'r1', 'expires_at': 1})
        http.request.side_effect = [
            make_response(200, {'access_token': 'new', 'refresh_token': 'r2', 'expires_in': 3600}),
            make_response(201, [{'id': 'p1'}]),
        ]

        client.insert('double_partners', {'partner_name': 'Sam'})

        refresh_call, insert_call = http.request.call_args_list
        assert refresh_call[1]['params'] == {'grant_type': 'refresh_token'}
        assert refresh_call[1]['json'] == {'refresh_token': 'r1'}
        assert insert_call[1]['headers']['Authorization'] == 'Bearer new'
        assert store.get_item(SESSION_KEY)['refresh_token'] == 'r2'


class TestSession:
    """Tests for sign-in state."""

    def test_sign_in_saves_session_and_user(self, client, http, store):
        http.request.return_value = make_response(200, {
            'access_token': 'tok',
            'refresh_token': 'ref',
            'expires_in': 3600,
            'user': {'id': 'user-1', 'email': 'player@example.com'},
        })

        client.sign_in('player@example.com', 'secret')

        assert http.request.call_args[1]['params'] == {'grant_type': 'password'}
        assert store.get_item(SESSION_KEY)['access_token'] == 'tok'
        user = client.get_user()
        assert user.id == 'user-1'
        assert user.email == 'player@example.com'

    def test_no_user_without_session(self, client, store):
        store.set_item(USER_KEY, {'id': 'user-1'})
        assert client.get_user() is None

    def test_sign_out_clears_store(self, client, signed_in):
        client.sign_out()
        assert client.get_user() is None
        assert signed_in.get_item(SESSION_KEY) is None

    def test_failed_refresh_signs_out(self, client, http, signed_in):
        http.request.return_value = make_response(400, {'error_description': 'Invalid Refresh Token'})
        assert client.refresh_session() is None
        assert client.get_user() is None

    def test_refresh_without_token(self, client, http):
        assert client.refresh_session() is None
        http.request.assert_not_called()

    def test_upload_returns_public_url(self, client, http):
        http.request.return_value = make_response(200, {'Key': 'avatars/a.jpg'})
        url = client.upload('avatars', 'a.jpg', b'data')
        assert url == f'{BASE_URL}/storage/v1/object/public/avatars/a.jpg'
        assert http.request.call_args[1]['data'] == b'data'
        assert http.request.call_args[1]['headers']['Content-Type'] == 'image/jpeg'
