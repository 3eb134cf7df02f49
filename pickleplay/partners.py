"""Saved doubles partners."""

from datetime import datetime
from typing import Callable

from .backend import BackendClient
from .constants import PARTNERS_TABLE, UNIQUE_VIOLATION_CODE
from .errors import BackendError, ErrorKind
from .logging_config import get_logger
from .models import OperationResult
from .schemas import NewPartner, Partner

logger = get_logger(__name__)

DUPLICATE_PARTNER_MESSAGE = 'You already have a partner with this name'
REFRESH_FAILED_MESSAGE = 'Session expired and could not be refreshed. Please log in again.'


def _failure(error: BackendError, default: str) -> OperationResult:
    if error.code == UNIQUE_VIOLATION_CODE:
        return OperationResult.failed(DUPLICATE_PARTNER_MESSAGE, ErrorKind.VALIDATION)
    return OperationResult.failed(error.message or default, error.kind)


class PartnersService:
    """
    CRUD for the ``double_partners`` table.

    Writes that fail because the session expired refresh the session and are
    retried once.
    """

    def __init__(self, backend: BackendClient):
        self.backend = backend

    def _with_refresh(self, action: Callable[[], list[dict]]) -> list[dict]:
        try:
            return action()
        except BackendError as e:
            if e.kind != ErrorKind.SESSION_EXPIRED:
                raise
            logger.info('Session expired; refreshing and retrying')
            if self.backend.refresh_session() is None:
                raise BackendError(REFRESH_FAILED_MESSAGE, code=e.code, kind=ErrorKind.SESSION_EXPIRED) from e
            return action()

    def get_partners(self, user_id: str) -> list[Partner]:
        """Partners saved by ``user_id``, newest first."""
        rows = self.backend.query(PARTNERS_TABLE, filters={'user_id': user_id}, order_by='created_at.desc')
        partners = [Partner.model_validate(row) for row in rows]
        logger.debug(f'Found {len(partners)} partners for {user_id}')
        return partners

    def create_partner(self, user_id: str, partner: NewPartner) -> OperationResult:
        """
        Save a new partner.

        Returns:
            OperationResult whose ``value`` is the new partner id
        """
        values = {'user_id': user_id, 'is_registered': False, **partner.model_dump(mode='json', exclude_none=True)}

        try:
            rows = self._with_refresh(lambda: self.backend.insert(PARTNERS_TABLE, values))
        except BackendError as e:
            logger.error(f'Error creating partner: {e.message}')
            return _failure(e, 'Failed to create partner')

        if not rows:
            return OperationResult.failed('No data returned after insert')

        logger.info(f'Partner created: {rows[0]["id"]}')
        return OperationResult.ok(rows[0]['id'])

    def update_partner(self, partner_id: str, updates: dict) -> OperationResult:
        values = {**updates, 'updated_at': datetime.now().isoformat()}
        if 'partner_level' in values and values['partner_level'] is not None:
            values['partner_level'] = str(getattr(values['partner_level'], 'value', values['partner_level'])).lower()

        try:
            self._with_refresh(lambda: self.backend.update(PARTNERS_TABLE, values, {'id': partner_id}))
        except BackendError as e:
            logger.error(f'Error updating partner {partner_id}: {e.message}')
            return _failure(e, 'Failed to update partner')
        return OperationResult.ok(partner_id)

    def delete_partner(self, partner_id: str) -> OperationResult:
        try:
            self.backend.delete(PARTNERS_TABLE, {'id': partner_id})
        except BackendError as e:
            logger.error(f'Error deleting partner {partner_id}: {e.message}')
            return OperationResult.failed(e.message or 'Failed to delete partner', e.kind)
        return OperationResult.ok()
