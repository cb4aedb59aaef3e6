from __future__ import annotations
"""Small JSON key-value store for client-side state.

Values are opaque JSON blobs under fixed string keys, all kept in one file.
Writes go to a temp file that replaces the original, so a crash mid-write
leaves the previous content intact.
"""
import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

OFFLINE_QUEUE_KEY = 'offline_queue'
PREFERENCES_KEY = 'user_preferences'

DEFAULT_PREFERENCES: Dict[str, Any] = {
    'notifications': True,
    'dark_mode': False,
    'language': 'en',
}


class JsonKeyValueStore:
    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, 'r', encoding='utf-8') as fh:
            try:
                data = json.load(fh)
            except json.JSONDecodeError:
                logger.warning('kv store %s is corrupt; starting empty', self.path)
                return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, Any]):
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory, prefix='.kv-', suffix='.json')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                json.dump(data, fh)
            os.replace(tmp, self.path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read_all().get(key, default)

    def set(self, key: str, value: Any):
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def delete(self, key: str) -> bool:
        with self._lock:
            data = self._read_all()
            if key not in data:
                return False
            del data[key]
            self._write_all(data)
            return True

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._read_all().keys())


def load_preferences(store: JsonKeyValueStore) -> Dict[str, Any]:
    stored = store.get(PREFERENCES_KEY) or {}
    prefs = dict(DEFAULT_PREFERENCES)
    prefs.update({k: v for k, v in stored.items() if k in DEFAULT_PREFERENCES})
    return prefs


def save_preferences(store: JsonKeyValueStore, updates: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(updates) - set(DEFAULT_PREFERENCES)
    if unknown:
        raise KeyError(f"unknown preference(s): {', '.join(sorted(unknown))}")
    prefs = load_preferences(store)
    prefs.update(updates)
    store.set(PREFERENCES_KEY, prefs)
    return prefs

__all__ = ['JsonKeyValueStore', 'OFFLINE_QUEUE_KEY', 'PREFERENCES_KEY', 'DEFAULT_PREFERENCES', 'load_preferences', 'save_preferences']
