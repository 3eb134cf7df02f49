"""On-device key-value storage backed by a single JSON file."""

import threading
from pathlib import Path
from typing import Any

from .logging_config import get_logger
from .utils import load_json_safe, save_json

logger = get_logger(__name__)


class LocalStore:
    """
    Small persistent key-value store.

    Values must be JSON-serializable. Every write rewrites the file, which is
    fine for the handful of keys the client keeps (session, user,
    notification preferences).
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict:
        data = load_json_safe(self.path, default={})
        if not isinstance(data, dict):
            logger.warning(f'Ignoring malformed store file: {self.path}')
            return {}
        return data

    def get_item(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read().get(key, default)

    def set_item(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            save_json(self.path, data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                save_json(self.path, data)
