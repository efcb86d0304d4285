"""
Dual-Native resource providers supplying the live machine representations
"""

import abc
import copy
import logging
import threading
from typing import Any, Callable, Dict, Optional

import requests
import sqlalchemy.exc
from sqlalchemy.orm import Session

from . import database, models
from .. import err


class ResourceProvider(abc.ABC):
    """
    Interface of a source of live resource snapshots
    """

    @abc.abstractmethod
    def fetch(self, rid: str) -> Optional[Dict[str, Any]]:
        """
        Return the current machine representation of the resource or None if it's unknown

        :raises ResourceUnreachable: if the provider failed to look up the resource
        """


class WritableResourceProvider(ResourceProvider):
    """
    Interface of resource providers which also store new snapshots
    """

    @abc.abstractmethod
    def store(self, rid: str, content: Dict[str, Any], hr: Optional[str] = None, metadata: Optional[dict] = None):
        """
        Store the full machine representation of the resource, replacing any older one

        :raises StorageFailure: if the snapshot couldn't be stored
        """

    @abc.abstractmethod
    def delete(self, rid: str) -> bool:
        """
        Delete the resource and return whether it existed

        :raises StorageFailure: if the resource couldn't be deleted
        """


class MappingResourceProvider(WritableResourceProvider):
    """
    Resource provider keeping deep copies of all snapshots in process memory
    """

    def __init__(self, resources: Optional[Dict[str, Dict[str, Any]]] = None):
        self._resources: Dict[str, Dict[str, Any]] = copy.deepcopy(resources or {})
        self._lock = threading.Lock()

    def fetch(self, rid: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            content = self._resources.get(rid)
            return None if content is None else copy.deepcopy(content)

    def store(self, rid: str, content: Dict[str, Any], hr: Optional[str] = None, metadata: Optional[dict] = None):
        with self._lock:
            self._resources[rid] = copy.deepcopy(content)

    def delete(self, rid: str) -> bool:
        with self._lock:
            return self._resources.pop(rid, None) is not None


class SQLResourceProvider(WritableResourceProvider):
    """
    Resource provider using the ``resources`` table of the configured database
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._make_session = session_factory or database.get_new_session
        self.logger = logging.getLogger(__name__)

    def fetch(self, rid: str) -> Optional[Dict[str, Any]]:
        with self._make_session() as session:
            try:
                resource = session.get(models.Resource, rid)
            except sqlalchemy.exc.SQLAlchemyError as exc:
                self.logger.exception(f"{type(exc).__name__}: {str(exc)}")
                raise err.ResourceUnreachable(rid, str(exc)) from exc
            return None if resource is None else copy.deepcopy(resource.content)

    def store(self, rid: str, content: Dict[str, Any], hr: Optional[str] = None, metadata: Optional[dict] = None):
        with self._make_session() as session:
            try:
                resource = session.get(models.Resource, rid)
                if resource is None:
                    resource = models.Resource(rid=rid, content={}, resource_metadata={})
                    session.add(resource)
                resource.content = copy.deepcopy(content)
                if hr is not None:
                    resource.hr = hr
                if metadata is not None:
                    resource.resource_metadata = copy.deepcopy(metadata)
                session.commit()
            except sqlalchemy.exc.SQLAlchemyError as exc:
                self.logger.exception(f"{type(exc).__name__}: {str(exc)}")
                session.rollback()
                raise err.StorageFailure(f"Failed to store resource {rid!r}") from exc

    def delete(self, rid: str) -> bool:
        with self._make_session() as session:
            try:
                resource = session.get(models.Resource, rid)
                if resource is None:
                    return False
                session.delete(resource)
                session.commit()
            except sqlalchemy.exc.SQLAlchemyError as exc:
                self.logger.exception(f"{type(exc).__name__}: {str(exc)}")
                session.rollback()
                raise err.StorageFailure(f"Failed to delete resource {rid!r}") from exc
        return True


class HTTPResourceProvider(ResourceProvider):
    """
    Resource provider fetching the machine representation from its public URL

    The URL of a resource is determined by the ``resolve`` callable,
    usually a lookup of the ``mr`` URL in the catalog. Unknown
    resources and ``404`` responses yield None, any other
    non-``200`` response or transport error is unreachable.
    """

    def __init__(
            self,
            resolve: Callable[[str], Optional[str]],
            timeout: float = 30,
            session: Optional[requests.Session] = None
    ):
        self.resolve = resolve
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logging.getLogger(__name__)

    def fetch(self, rid: str) -> Optional[Dict[str, Any]]:
        url = self.resolve(rid)
        if url is None:
            return None
        try:
            response = self.session.get(url, headers={"Accept": "application/json"}, timeout=self.timeout)
        except requests.RequestException as exc:
            self.logger.info(f"{type(exc).__name__} while fetching {url!r} of resource {rid!r}")
            raise err.ResourceUnreachable(rid, str(exc)) from exc
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise err.ResourceUnreachable(rid, f"'GET {url}' returned {response.status_code}")
        try:
            content = response.json()
        except ValueError as exc:
            raise err.ResourceUnreachable(rid, f"'GET {url}' returned no valid JSON") from exc
        if not isinstance(content, dict):
            raise err.ResourceUnreachable(rid, f"'GET {url}' returned no JSON object")
        return content
