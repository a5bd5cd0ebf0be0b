"""Key-value data access layer.

The version store and the reflection prompt cache persist JSON documents
through this interface so they can run against SQL storage in production
and a plain dict in tests.
"""
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Generator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from shared.models.entities import KeyValueEntry
from shared.utils.exceptions import DatabaseException

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """String key-value storage with prefix listing."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Create or overwrite a value."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key. Returns False if it did not exist."""

    @abstractmethod
    def list_by_prefix(self, prefix: str) -> List[str]:
        """Return all keys starting with prefix, sorted."""


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store, thread-safe."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def list_by_prefix(self, prefix: str) -> List[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


class SqlKeyValueStore(KeyValueStore):
    """
    Repository over the kv_entries table.

    Each call runs in its own transaction. SQLAlchemy errors are wrapped
    in DatabaseException so callers handle one failure type.
    """

    def __init__(self, session_factory: Callable[[], DBSession]):
        self._session_factory = session_factory

    @contextmanager
    def _scope(self, operation: str) -> Generator[DBSession, None, None]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"kv_store {operation} failed: {e}")
            raise DatabaseException(operation, e) from e
        finally:
            session.close()

    def get(self, key: str) -> Optional[str]:
        with self._scope("get") as session:
            entry = session.get(KeyValueEntry, key)
            return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        """
        Upsert a value.

        Args:
            key: Storage key
            value: Serialized document
        """
        with self._scope("set") as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
                entry.updated_at = datetime.utcnow()

    def delete(self, key: str) -> bool:
        with self._scope("delete") as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                return False
            session.delete(entry)
            return True

    def list_by_prefix(self, prefix: str) -> List[str]:
        with self._scope("list") as session:
            rows = (
                session.query(KeyValueEntry.key)
                .filter(KeyValueEntry.key.startswith(prefix, autoescape=True))
                .order_by(KeyValueEntry.key)
                .all()
            )
            return [row[0] for row in rows]
