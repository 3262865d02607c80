"""
Durable key-value storage for the store's collections.

Each collection is one JSON string under a fixed key. Backends:
  - MemoryStorage:   dict, for tests and throwaway runs
  - JsonFileStorage: one ``<key>.json`` file per key under STORAGE_DIR
  - SqlStorage:      StorageBlob rows through Flask-SQLAlchemy
  - NullStorage:     forgets everything (every load falls back to seed data)

``build_storage(app)`` picks one from STORAGE_BACKEND.
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod

from qatrack.models import db
from qatrack.models.storage import StorageBlob

logger = logging.getLogger(__name__)

STORAGE_BACKENDS = {"sql", "file", "memory", "null"}


class StorageError(Exception):
    """Raised when a backend cannot persist a value."""


class KeyValueStorage(ABC):
    """Minimal string-to-string persistence interface."""

    name = "abstract"

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored string or None when nothing was saved."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Persist ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Forget ``key``; missing keys are ignored."""

    def ping(self) -> bool:
        return True


class MemoryStorage(KeyValueStorage):
    """Dict-backed storage for dev/testing."""

    name = "memory"

    def __init__(self, initial: dict | None = None):
        self._data = dict(initial or {})

    def get(self, key):
        return self._data.get(key)

    def set(self, key, value):
        self._data[key] = value

    def delete(self, key):
        self._data.pop(key, None)

    def keys(self):
        return list(self._data)


class NullStorage(KeyValueStorage):
    """Storage that keeps nothing."""

    name = "null"

    def get(self, key):
        return None

    def set(self, key, value):
        return None

    def delete(self, key):
        return None


class JsonFileStorage(KeyValueStorage):
    """One file per key; writes go through a temp file and ``os.replace``."""

    name = "file"

    def __init__(self, directory: str):
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def _path(self, key: str) -> str:
        safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in key)
        return os.path.join(self.directory, f"{safe}.json")

    def get(self, key):
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, encoding="utf-8") as fh:
            return fh.read()

    def set(self, key, value):
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
            os.replace(tmp_path, self._path(key))
        except OSError as exc:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            logger.error("Could not write storage file for key=%s: %s", key, exc)
            raise StorageError(f"Could not persist {key}") from exc

    def delete(self, key):
        path = self._path(key)
        if os.path.exists(path):
            os.unlink(path)

    def ping(self):
        return os.access(self.directory, os.W_OK)


class SqlStorage(KeyValueStorage):
    """StorageBlob rows through the Flask-SQLAlchemy session.

    Requires an application context, like every other ``db.session`` user.
    """

    name = "sql"

    def get(self, key):
        blob = db.session.get(StorageBlob, key)
        return blob.value if blob else None

    def set(self, key, value):
        from sqlalchemy.exc import SQLAlchemyError

        blob = db.session.get(StorageBlob, key)
        if blob is None:
            blob = StorageBlob(key=key, value=value)
            db.session.add(blob)
        else:
            blob.value = value
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Database error persisting key=%s", key)
            raise StorageError(f"Could not persist {key}") from exc

    def delete(self, key):
        blob = db.session.get(StorageBlob, key)
        if blob is not None:
            db.session.delete(blob)
            db.session.commit()

    def ping(self):
        from sqlalchemy import text
        from sqlalchemy.exc import SQLAlchemyError

        try:
            db.session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.warning("Storage ping failed", exc_info=True)
            return False


def build_storage(app) -> KeyValueStorage:
    """Instantiate the backend named by ``STORAGE_BACKEND``."""
    backend = (app.config.get("STORAGE_BACKEND") or "sql").lower()
    if backend not in STORAGE_BACKENDS:
        raise RuntimeError(
            f"Unknown STORAGE_BACKEND {backend!r}; expected one of {sorted(STORAGE_BACKENDS)}"
        )
    if backend == "sql":
        return SqlStorage()
    if backend == "file":
        return JsonFileStorage(app.config["STORAGE_DIR"])
    if backend == "null":
        return NullStorage()
    return MemoryStorage()
