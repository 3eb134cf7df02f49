"""Notification preferences kept in the on-device store."""

from pydantic import ValidationError

from .constants import NOTIFICATION_SETTINGS_KEY
from .local_store import LocalStore
from .logging_config import get_logger
from .schemas import NotificationSettings

logger = get_logger(__name__)

# Stored (camelCase) name -> NotificationSettings field
NOTIFICATION_TYPES = {
    info.alias: name for name, info in NotificationSettings.model_fields.items()
}


def _field_for(notification_type: str) -> str:
    if notification_type in NOTIFICATION_TYPES:
        return NOTIFICATION_TYPES[notification_type]
    if notification_type in NotificationSettings.model_fields:
        return notification_type
    raise ValueError(f'Unknown notification type: {notification_type}')


class NotificationPreferences:
    """Four on/off toggles, all on until the user changes them."""

    def __init__(self, store: LocalStore):
        self.store = store

    def get_settings(self) -> NotificationSettings:
        raw = self.store.get_item(NOTIFICATION_SETTINGS_KEY)
        if not raw:
            return NotificationSettings()
        try:
            return NotificationSettings.model_validate(raw)
        except ValidationError as e:
            logger.warning(f'Ignoring invalid notification settings: {e.error_count()} errors')
            return NotificationSettings()

    def save_settings(self, settings: NotificationSettings) -> None:
        self.store.set_item(NOTIFICATION_SETTINGS_KEY, settings.model_dump(by_alias=True))

    def toggle(self, notification_type: str) -> NotificationSettings:
        """Flip one toggle (camelCase or snake_case name) and persist the result."""
        field_name = _field_for(notification_type)
        settings = self.get_settings()
        updated = settings.model_copy(update={field_name: not getattr(settings, field_name)})
        self.save_settings(updated)
        logger.debug(f'{notification_type} notifications {"on" if getattr(updated, field_name) else "off"}')
        return updated

    def is_enabled(self, notification_type: str) -> bool:
        return getattr(self.get_settings(), _field_for(notification_type))
