"""
KeyValueStore capability.

Every stateful component (recommendation cache, action store, tracker,
provider configuration) depends only on this interface. Values are
JSON-serialisable documents; callers own (de)serialisation of their
domain objects.

Backends:
    InMemoryKeyValueStore  — process-local dict, used in tests and dev
    SQLKeyValueStore       — ``kv_entries`` table via Flask-SQLAlchemy

Usage:
    store = InMemoryKeyValueStore()
    store.set("ai_actions:act-1", action.to_dict())
    store.get("ai_actions:act-1")
    store.keys("ai_actions:")
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any

from compliance_engine.models import db
from compliance_engine.models.kv_store import KeyValueEntry

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal document store keyed by string."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the stored value or None."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Insert or replace ``key``."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``; return True if it existed."""

    @abstractmethod
    def keys(self, prefix: str = "") -> list[str]:
        """Return all keys starting with ``prefix``, sorted."""

    def values(self, prefix: str = "") -> list[Any]:
        out = []
        for key in self.keys(prefix):
            value = self.get(key)
            if value is not None:
                out.append(value)
        return out


class InMemoryKeyValueStore(KeyValueStore):
    """Thread-safe dict store. Values are deep-copied in and out."""

    def __init__(self):
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            value = self._data.get(key)
            return copy.deepcopy(value) if value is not None else None

    def set(self, key, value):
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def delete(self, key):
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self, prefix=""):
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


class SQLKeyValueStore(KeyValueStore):
    """Store backed by the ``kv_entries`` table.

    Must be used inside a Flask application context. Each call commits
    its own transaction.
    """

    def get(self, key):
        row = db.session.get(KeyValueEntry, key)
        if row is None:
            return None
        return json.loads(row.value_json)

    def set(self, key, value):
        payload = json.dumps(value, default=str)
        row = db.session.get(KeyValueEntry, key)
        if row is None:
            db.session.add(KeyValueEntry(key=key, value_json=payload))
        else:
            row.value_json = payload
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("kv_store: failed to persist key=%s", key)
            raise

    def delete(self, key):
        row = db.session.get(KeyValueEntry, key)
        if row is None:
            return False
        db.session.delete(row)
        db.session.commit()
        return True

    def keys(self, prefix=""):
        query = db.session.query(KeyValueEntry.key)
        if prefix:
            query = query.filter(KeyValueEntry.key.startswith(prefix, autoescape=True))
        return sorted(k for (k,) in query.all())


def create_kv_store(backend: str) -> KeyValueStore:
    """Build the store named by the ``KV_STORE_BACKEND`` setting."""
    if backend == "memory":
        return InMemoryKeyValueStore()
    if backend == "sql":
        return SQLKeyValueStore()
    raise ValueError(f"Unknown KV_STORE_BACKEND: {backend!r}")
