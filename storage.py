"""
storage.py
Local cache: connection settings and the per-path content sha, kept in a key/value store.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import db
from models import Settings

logger = logging.getLogger("gymhq.storage")

SETTINGS_KEY = "gymhq.settings.v1"
SHA_KEY = "gymhq.sha.v1"


class Storage:
    """Key/value storage port. Values are strings; a missing key reads as None."""

    def get_item(self, key: str) -> str | None:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(Storage):
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


class SQLiteStorage(Storage):
    """Persistent storage in the local SQLite file (survives app restarts)."""

    def __init__(self, db_file: Path | str | None = None) -> None:
        self.db_file = db_file
        db.init_db(db_file)

    def get_item(self, key: str) -> str | None:
        return db.get_item(key, db_file=self.db_file)

    def set_item(self, key: str, value: str) -> None:
        db.set_item(key, value, db_file=self.db_file)

    def remove_item(self, key: str) -> None:
        db.remove_item(key, db_file=self.db_file)


class SettingsStore:
    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def load(self) -> Settings:
        """
        Return the saved settings merged over the defaults.
        A missing or unreadable entry gives the defaults instead of an error.
        """
        raw = self.storage.get_item(SETTINGS_KEY)
        if not raw:
            return Settings()
        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            logger.warning("Failed to parse stored settings, using defaults: %s", exc)
            return Settings()
        if not isinstance(parsed, dict):
            logger.warning("Stored settings are not an object, using defaults")
            return Settings()
        return Settings.from_dict(parsed)

    def save(self, settings: Settings) -> None:
        self.storage.set_item(SETTINGS_KEY, json.dumps(settings.to_dict()))


class ShaStore:
    """Last known content sha per data path."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def _load_map(self) -> dict[str, str]:
        raw = self.storage.get_item(SHA_KEY)
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            logger.warning("Failed to parse stored sha map, starting empty: %s", exc)
            return {}
        if not isinstance(parsed, dict):
            return {}
        return {str(k): v for k, v in parsed.items() if isinstance(v, str) and v}

    def _save_map(self, shas: dict[str, str]) -> None:
        self.storage.set_item(SHA_KEY, json.dumps(shas))

    def remember(self, path: str, sha: str) -> None:
        shas = self._load_map()
        shas[path] = sha
        self._save_map(shas)

    def get(self, path: str) -> str | None:
        return self._load_map().get(path)

    def clear(self, path: str) -> None:
        shas = self._load_map()
        shas.pop(path, None)
        self._save_map(shas)
