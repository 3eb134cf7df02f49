"""HTTP client for the hosted backend (auth, REST tables, file storage)."""

import time
from typing import Any, Optional

import requests

from .constants import SESSION_KEY, USER_KEY
from .errors import BackendError, SessionExpiredError, classify_backend_error
from .local_store import LocalStore
from .logging_config import get_logger
from .models import AuthUser

logger = get_logger(__name__)


def _format_filter(value: Any) -> str:
    """PostgREST filter operand: plain values mean equality, (op, value) pairs pick the operator."""
    if isinstance(value, tuple):
        op, operand = value
        return f'{op}.{_format_scalar(operand)}'
    return f'eq.{_format_scalar(value)}'


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (list, set)):
        return '(' + ','.join(str(v) for v in value) + ')'
    return str(value)


class BackendClient:
    """
    Thin wrapper over the backend's REST endpoints.

    Reads use the anonymous key; writes use the signed-in user's access
    token, which is kept with the user record in the local store. All
    failures surface as ``BackendError`` (``SessionExpiredError`` when the
    session is missing or rejected).
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        store: LocalStore,
        http: Optional[requests.Session] = None,
        timeout: float = 15.0,
    ):
        if not base_url:
            raise ValueError('Backend URL is required (set SUPABASE_URL)')
        self.base_url = base_url.rstrip('/')
        self.anon_key = anon_key
        self.store = store
        self.http = http or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_config(cls, config, http: Optional[requests.Session] = None) -> 'BackendClient':
        if not config.supabase_url:
            raise ValueError('Backend URL is not configured (set SUPABASE_URL)')
        return cls(
            config.supabase_url,
            config.supabase_anon_key,
            LocalStore(config.store_path),
            http=http,
            timeout=config.request_timeout_seconds,
        )

    def _headers(self, token: Optional[str] = None, **extra: str) -> dict[str, str]:
        headers = {
            'apikey': self.anon_key,
            'Authorization': f'Bearer {token or self.anon_key}',
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }
        headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str],
        params: Optional[dict] = None,
        json: Any = None,
        data: Optional[bytes] = None,
    ) -> Any:
        url = f'{self.base_url}{path}'
        logger.debug(f'{method} {url} params={params}')
        try:
            response = self.http.request(
                method, url, headers=headers, params=params, json=json, data=data, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f'Network error calling {path}: {e}')
            raise BackendError(f'Network error: {e}', code='NETWORK_ERROR') from e

        try:
            payload = response.json() if response.content else None
        except ValueError:
            payload = response.text

        if not response.ok:
            error = classify_backend_error(response.status_code, payload)
            logger.error(f'{method} {path} failed with status {response.status_code}: {error.message}')
            raise error

        return payload

    # Session

    def get_session(self) -> Optional[dict]:
        return self.store.get_item(SESSION_KEY)

    def get_user(self) -> Optional[AuthUser]:
        user = self.store.get_item(USER_KEY)
        if not user or not user.get('id') or not self.get_session():
            return None
        return AuthUser(id=user['id'], email=user.get('email') or '')

    def get_user_record(self) -> Optional[dict]:
        """Raw user record (including ``user_metadata``) saved at sign-in."""
        return self.store.get_item(USER_KEY)

    def _save_session(self, data: dict) -> dict:
        expires_in = data.get('expires_in') or 3600
        session = {
            'access_token': data['access_token'],
            'refresh_token': data.get('refresh_token'),
            'expires_at': data.get('expires_at') or int(time.time()) + expires_in,
            'token_type': data.get('token_type', 'bearer'),
        }
        self.store.set_item(SESSION_KEY, session)
        if data.get('user'):
            self.store.set_item(USER_KEY, data['user'])
        return session

    def access_token(self) -> str:
        """
        Token for authenticated requests, refreshed once if it has expired.

        Raises:
            SessionExpiredError: If there is no usable session
        """
        session = self.get_session()
        if not session or not session.get('access_token'):
            raise SessionExpiredError('No valid session found. Please log in again.')

        if session.get('expires_at') and time.time() > session['expires_at']:
            logger.info('Access token expired; refreshing session')
            session = self.refresh_session()
            if session is None:
                raise SessionExpiredError()

        return session['access_token']

    def sign_up(self, email: str, password: str, metadata: Optional[dict] = None) -> dict:
        payload = self._request(
            'POST',
            '/auth/v1/signup',
            headers=self._headers(),
            json={'email': email, 'password': password, 'data': metadata or {}},
        )
        if payload and payload.get('access_token'):
            self._save_session(payload)
        return payload or {}

    def sign_in(self, email: str, password: str) -> dict:
        payload = self._request(
            'POST',
            '/auth/v1/token',
            headers=self._headers(),
            params={'grant_type': 'password'},
            json={'email': email, 'password': password},
        )
        if not payload or not payload.get('access_token'):
            raise BackendError('Unexpected response from server', code='UNEXPECTED_RESPONSE')
        return self._save_session(payload)

    def refresh_session(self) -> Optional[dict]:
        """Exchange the refresh token for a new session; None if that is not possible."""
        session = self.get_session() or {}
        refresh_token = session.get('refresh_token')
        if not refresh_token:
            return None

        try:
            payload = self._request(
                'POST',
                '/auth/v1/token',
                headers=self._headers(),
                params={'grant_type': 'refresh_token'},
                json={'refresh_token': refresh_token},
            )
        except BackendError as e:
            logger.warning(f'Failed to refresh session: {e.message}')
            if e.status_code is not None:
                self.sign_out()
            return None

        if not payload or not payload.get('access_token'):
            return None
        payload.setdefault('refresh_token', refresh_token)
        return self._save_session(payload)

    def sign_out(self) -> None:
        self.store.remove_item(USER_KEY)
        self.store.remove_item(SESSION_KEY)

    def update_user(self, attributes: dict) -> dict:
        return self._request(
            'PUT', '/auth/v1/user', headers=self._headers(self.access_token()), json=attributes
        )

    # Tables

    def query(
        self,
        table: str,
        select: str = '*',
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        single: bool = False,
    ) -> Any:
        """
        Read rows from a table.

        Args:
            table: Table name
            select: Column list / embedded resources
            filters: Column -> value (equality) or (operator, value)
            order_by: e.g. 'name.asc' or 'city.asc,name.asc'
            limit: Maximum rows
            single: Return the first row (or None) instead of a list

        Returns:
            List of row dicts, or one row dict / None when ``single``
        """
        params = {'select': select}
        for column, value in (filters or {}).items():
            if value is not None:
                params[column] = _format_filter(value)
        if order_by:
            params['order'] = order_by
        if single:
            limit = 1
        if limit:
            params['limit'] = str(limit)

        rows = self._request('GET', f'/rest/v1/{table}', headers=self._headers(), params=params) or []
        if single:
            return rows[0] if rows else None
        return rows

    def insert(self, table: str, values: dict | list[dict]) -> list[dict]:
        rows = self._request(
            'POST',
            f'/rest/v1/{table}',
            headers=self._headers(self.access_token(), Prefer='return=representation'),
            json=values,
        )
        if not rows:
            logger.warning(f'Insert into {table} returned no rows; check row-level security')
            return []
        return rows if isinstance(rows, list) else [rows]

    def update(self, table: str, values: dict, filters: dict[str, Any]) -> list[dict]:
        if not filters:
            raise ValueError('Refusing to update every row; pass at least one filter')
        rows = self._request(
            'PATCH',
            f'/rest/v1/{table}',
            headers=self._headers(self.access_token(), Prefer='return=representation'),
            params={column: _format_filter(value) for column, value in filters.items()},
            json=values,
        )
        return rows or []

    def delete(self, table: str, filters: dict[str, Any]) -> list[dict]:
        if not filters:
            raise ValueError('Refusing to delete every row; pass at least one filter')
        rows = self._request(
            'DELETE',
            f'/rest/v1/{table}',
            headers=self._headers(self.access_token(), Prefer='return=representation'),
            params={column: _format_filter(value) for column, value in filters.items()},
        )
        return rows or []

    # Storage

    def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str = 'image/jpeg',
        token: Optional[str] = None,
    ) -> str:
        """Upload a file and return its public URL."""
        self._request(
            'POST',
            f'/storage/v1/object/{bucket}/{path}',
            headers=self._headers(token, **{'Content-Type': content_type, 'x-upsert': 'true'}),
            data=content,
        )
        return self.public_url(bucket, path)

    def public_url(self, bucket: str, path: str) -> str:
        return f'{self.base_url}/storage/v1/object/public/{bucket}/{path}'
