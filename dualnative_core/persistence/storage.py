"""
Dual-Native key-value storage backends

The catalog persists its whole backing map as one value of a ``Storage``.
Writing methods return ``False`` when the backend failed, they never raise
for backend errors, so that the catalog can roll back its in-memory state.
"""

import abc
import copy
import logging
import threading
from typing import Any, Callable, Dict, Optional

import sqlalchemy.exc
from sqlalchemy.orm import Session

from . import database, models


class Storage(abc.ABC):
    """
    Interface of a simple key-value storage for JSON-compatible values
    """

    @abc.abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abc.abstractmethod
    def set(self, key: str, value: Any) -> bool:
        pass

    @abc.abstractmethod
    def delete(self, key: str) -> bool:
        pass

    @abc.abstractmethod
    def has(self, key: str) -> bool:
        pass


class InMemoryStorage(Storage):
    """
    Storage keeping deep copies of all values in process memory
    """

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> bool:
        with self._lock:
            self._data[key] = copy.deepcopy(value)
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            self._data.pop(key, None)
        return True

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def clear(self) -> bool:
        with self._lock:
            self._data.clear()
        return True

    def all(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._data)


class SQLStorage(Storage):
    """
    Storage using the ``storage`` table of the configured database
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._make_session = session_factory or database.get_new_session
        self.logger = logging.getLogger(__name__)

    def get(self, key: str, default: Any = None) -> Any:
        with self._make_session() as session:
            try:
                item = session.get(models.StorageItem, key)
            except sqlalchemy.exc.SQLAlchemyError as exc:
                self.logger.exception(f"{type(exc).__name__}: {str(exc)}")
                return default
            if item is None:
                return default
            return item.value

    def set(self, key: str, value: Any) -> bool:
        with self._make_session() as session:
            try:
                item = session.get(models.StorageItem, key)
                if item is None:
                    session.add(models.StorageItem(key=key, value=value))
                else:
                    item.value = copy.deepcopy(value)
                session.commit()
            except sqlalchemy.exc.SQLAlchemyError as exc:
                self.logger.exception(f"{type(exc).__name__}: {str(exc)}")
                session.rollback()
                return False
        return True

    def delete(self, key: str) -> bool:
        with self._make_session() as session:
            try:
                item = session.get(models.StorageItem, key)
                if item is not None:
                    session.delete(item)
                    session.commit()
            except sqlalchemy.exc.SQLAlchemyError as exc:
                self.logger.exception(f"{type(exc).__name__}: {str(exc)}")
                session.rollback()
                return False
        return True

    def has(self, key: str) -> bool:
        with self._make_session() as session:
            try:
                return session.get(models.StorageItem, key) is not None
            except sqlalchemy.exc.SQLAlchemyError as exc:
                self.logger.exception(f"{type(exc).__name__}: {str(exc)}")
                return False
