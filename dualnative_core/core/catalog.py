"""
Thread-safe catalog of all known resources and their content identities

The catalog keeps an insertion-ordered map of resource identifiers to their
``CatalogEntry`` in memory, guarded by one re-entrant lock. Every mutation is
written through to the injected ``Storage`` as a whole under the key
``CATALOG_STORAGE_KEY``. A failed write is reported as ``False`` and
the in-memory state is rolled back, so both never diverge.
"""

import hmac
import logging
import datetime
import threading
import contextlib
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import pydantic

from .identity import ContentIdentityComputer
from .. import err, schemas
from ..misc import timestamps
from ..misc.events import EventSink, NullEventSink
from ..persistence.providers import ResourceProvider
from ..persistence.storage import InMemoryStorage, Storage


logger = logging.getLogger(__name__)

CATALOG_STORAGE_KEY = "dual_native_catalog"
CATALOG_VERSION = 1
DEFAULT_HTTP_PROFILE = "tct-1"

Timestamp = Union[str, datetime.datetime]


def _entry_matches(entry: schemas.CatalogEntry, key: str, expected: Any) -> bool:
    try:
        value = entry.lookup(key)
    except KeyError:
        return False
    if isinstance(expected, (list, tuple, set, frozenset)):
        return any(value == e for e in expected)
    return value == expected


def _latest_update(entries: Iterable[schemas.CatalogEntry]) -> str:
    moments = [m for m in (timestamps.parse_timestamp(e.updated_at) for e in entries) if m is not None]
    if not moments:
        return timestamps.utc_now_iso()
    return timestamps.to_iso(max(moments))


class CatalogStore:
    """
    Registry of resources with their URLs, content identities, timestamps and metadata

    One instance should be created per process and shared by reference
    between all request handlers. All operations are serialized by a
    single lock. Callers that need to check a precondition and write
    the entry atomically can hold the lock via ``exclusive()``.

    :param storage: backend to persist the catalog (in-memory by default)
    :param events: event sink to observe and adjust catalog operations
    :param profile: HTTP profile name recorded in every entry and catalog
    :param provider: resource provider used by ``validate``
    :param identity: identity computer used by ``validate``
    """

    def __init__(
            self,
            storage: Optional[Storage] = None,
            events: Optional[EventSink] = None,
            profile: str = DEFAULT_HTTP_PROFILE,
            provider: Optional[ResourceProvider] = None,
            identity: Optional[ContentIdentityComputer] = None
    ):
        self.storage = storage if storage is not None else InMemoryStorage()
        self.events = events or NullEventSink()
        self.profile = profile
        self.provider = provider
        self.identity = identity or ContentIdentityComputer(events=self.events)
        self._lock = threading.RLock()
        self._entries: Dict[str, schemas.CatalogEntry] = self._load()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, rid: object) -> bool:
        with self._lock:
            return rid in self._entries

    def _load(self) -> Dict[str, schemas.CatalogEntry]:
        raw = self.storage.get(CATALOG_STORAGE_KEY, {})
        if not isinstance(raw, Mapping):
            logger.error(f"Stored catalog has unexpected type {type(raw)!r}, starting with an empty catalog")
            return {}
        entries = {}
        for rid, value in raw.items():
            try:
                entries[rid] = schemas.CatalogEntry.model_validate(value)
            except pydantic.ValidationError as exc:
                logger.warning(f"Skipping invalid stored catalog entry {rid!r}: {exc}")
        logger.debug(f"Loaded {len(entries)} catalog entries from storage")
        return entries

    def _persist(self) -> bool:
        data = {rid: entry.model_dump(by_alias=True) for rid, entry in self._entries.items()}
        try:
            return bool(self.storage.set(CATALOG_STORAGE_KEY, data))
        except Exception as exc:
            logger.exception(f"Storage failed to persist the catalog: {exc}")
            return False

    @contextlib.contextmanager
    def exclusive(self) -> Iterator["CatalogStore"]:
        """
        Hold the catalog lock for a sequence of operations (e.g. check-then-write)
        """

        with self._lock:
            yield self

    def upsert(
            self,
            rid: str,
            hr: str,
            mr: str,
            cid: str,
            updated_at: Optional[Timestamp] = None,
            metadata: Optional[Mapping[str, Any]] = None
    ) -> bool:
        """
        Create or replace the catalog entry of a resource as a whole

        :param rid: resource identifier
        :param hr: URL of the human representation
        :param mr: URL of the machine representation
        :param cid: content identity of the machine representation
        :param updated_at: timestamp of the update (now if omitted)
        :param metadata: arbitrary metadata of the resource
        :return: whether the entry has been stored persistently
        """

        if updated_at is None:
            updated_at = timestamps.utc_now_iso()
        elif isinstance(updated_at, datetime.datetime):
            updated_at = timestamps.to_iso(updated_at)
        entry = schemas.CatalogEntry(
            rid=rid,
            hr=hr,
            mr=mr,
            content_id=cid,
            updated_at=updated_at,
            profile=self.profile,
            metadata=dict(metadata or {})
        ).model_copy(deep=True)
        entry = self.events.filter(schemas.FilterHook.CATALOG_ENTRY, entry, rid)

        with self._lock:
            snapshot = dict(self._entries)
            self._entries[rid] = entry
            success = self._persist()
            if not success:
                self._entries = snapshot
                logger.error(f"Catalog update of {rid!r} failed, the previous entry has been restored")

        result = self.events.filter(schemas.FilterHook.CATALOG_UPDATE_RESULT, success, rid, entry)
        if success:
            self.events.notify(schemas.EventType.CATALOG_UPDATED, {"rid": rid, "cid": entry.content_id})
        return result

    def add_resource(
            self,
            resource_type: str,
            rid: str,
            hr: str,
            mr: str,
            cid: str,
            updated_at: Optional[Timestamp] = None,
            metadata: Optional[Mapping[str, Any]] = None
    ) -> bool:
        """
        Upsert the entry of a resource of the given type (stored as ``type`` in its metadata)
        """

        metadata = dict(metadata or {})
        metadata["type"] = resource_type
        return self.upsert(rid, hr, mr, cid, updated_at, metadata)

    def get(self, rid: str) -> Optional[schemas.CatalogEntry]:
        with self._lock:
            entry = self._entries.get(rid)
            entry = entry and entry.model_copy(deep=True)
        return self.events.filter(schemas.FilterHook.CATALOG_GET_ENTRY, entry, rid)

    def batches(self, size: int) -> Iterator[List[schemas.CatalogEntry]]:
        """
        Iterate over copies of all current entries in lists of at most ``size`` entries

        The entries are taken from a snapshot, so concurrent writes don't affect the iteration.
        """

        if size < 1:
            raise ValueError(f"Batch size must be positive, got {size}")
        with self._lock:
            entries = [entry.model_copy(deep=True) for entry in self._entries.values()]
        for start in range(0, len(entries), size):
            yield entries[start:start + size]

    def remove(self, rid: str) -> bool:
        """
        Remove the entry of a resource, which is a no-op for unknown resources

        :return: ``False`` only if the storage failed to persist the removal
        """

        with self._lock:
            if rid not in self._entries:
                success = True
            else:
                snapshot = dict(self._entries)
                del self._entries[rid]
                success = self._persist()
                if not success:
                    self._entries = snapshot
                    logger.error(f"Catalog removal of {rid!r} failed, the entry has been restored")
                else:
                    self.events.notify(schemas.EventType.CATALOG_ENTRY_REMOVED, {"rid": rid})
        return self.events.filter(schemas.FilterHook.CATALOG_REMOVE_RESULT, success, rid)

    def query(
            self,
            since: Optional[str] = None,
            filters: Optional[Mapping[str, Any]] = None,
            limit: int = 0,
            offset: int = 0
    ) -> schemas.Catalog:
        """
        Query the catalog with optional ``since``, equality filters and pagination

        The steps are applied in order: entries not updated strictly after
        ``since`` are dropped (string comparison), then every filter drops
        the entries missing its key or having another value (a sequence
        of values means "any of"). Keys are looked up in the top-level
        fields first, then in the metadata. Finally, a positive ``limit``
        selects the page ``[offset, offset + limit)``, otherwise
        everything from ``offset`` is returned.

        The ``updatedAt`` value and the ``pagination.total`` count of
        the catalog refer to all filtered entries, not just the page.

        :param since: optional ISO-8601 timestamp
        :param filters: optional mapping of keys to the expected value(s)
        :param limit: maximum number of entries (0 means no limit)
        :param offset: number of entries to skip
        :return: computed catalog
        """

        with self._lock:
            entries = [entry.model_copy(deep=True) for entry in self._entries.values()]

        if since:
            entries = [entry for entry in entries if entry.updated_at > since]
        for key, expected in (filters or {}).items():
            entries = [entry for entry in entries if _entry_matches(entry, key, expected)]

        limit = max(0, limit)
        offset = max(0, offset)
        page = entries[offset:offset + limit] if limit > 0 else entries[offset:]
        catalog = schemas.Catalog(
            version=CATALOG_VERSION,
            profile=self.profile,
            updated_at=_latest_update(entries),
            since=since or None,
            items=page,
            pagination=schemas.Pagination(limit=limit, offset=offset, total=len(entries))
        )
        return self.events.filter(schemas.FilterHook.CATALOG, catalog, since, filters)

    def query_for_type(
            self,
            resource_type: str,
            since: Optional[str] = None,
            filters: Optional[Mapping[str, Any]] = None,
            limit: int = 0,
            offset: int = 0
    ) -> schemas.Catalog:
        filters = dict(filters or {})
        filters["type"] = resource_type
        return self.query(since, filters, limit, offset)

    def validate(self, entries: Optional[Iterable[schemas.CatalogEntry]] = None) -> List[schemas.Inconsistency]:
        """
        Compare the stored content identities with the live resources

        Every entry is checked, unreachable resources are reported
        and don't abort the whole validation. This check is advisory,
        the catalog isn't changed by it.

        :param entries: optional entries to check (all entries by default)
        :return: list of detected inconsistencies (empty if everything matched)
        :raises RuntimeError: if no resource provider has been configured
        """

        if self.provider is None:
            raise RuntimeError("Catalog validation requires a resource provider")
        if entries is None:
            with self._lock:
                entries = [entry.model_copy(deep=True) for entry in self._entries.values()]
        else:
            entries = list(entries)

        inconsistencies = []
        for entry in entries:
            try:
                content = self.provider.fetch(entry.rid)
            except err.ResourceUnreachable as exc:
                inconsistencies.append(schemas.Inconsistency(
                    rid=entry.rid,
                    status=schemas.InconsistencyStatus.MR_NOT_ACCESSIBLE,
                    catalog_cid=entry.content_id,
                    reason=exc.reason or str(exc)
                ))
                continue
            if content is None:
                inconsistencies.append(schemas.Inconsistency(
                    rid=entry.rid,
                    status=schemas.InconsistencyStatus.MR_NOT_ACCESSIBLE,
                    catalog_cid=entry.content_id,
                    reason="resource not found"
                ))
                continue
            live_cid = self.identity.compute(content)
            if not hmac.compare_digest(live_cid.encode("utf-8"), entry.content_id.encode("utf-8", "surrogatepass")):
                inconsistencies.append(schemas.Inconsistency(
                    rid=entry.rid,
                    status=schemas.InconsistencyStatus.CID_MISMATCH,
                    catalog_cid=entry.content_id,
                    live_cid=live_cid
                ))

        logger.debug(f"Validated {len(entries)} catalog entries, found {len(inconsistencies)} inconsistencies")
        return self.events.filter(schemas.FilterHook.CATALOG_VALIDATION, inconsistencies, entries)

    def purge(self) -> bool:
        """
        Remove all entries and the persisted catalog
        """

        with self._lock:
            snapshot = dict(self._entries)
            self._entries = {}
            try:
                success = True
                if self.storage.has(CATALOG_STORAGE_KEY):
                    success = bool(self.storage.delete(CATALOG_STORAGE_KEY))
            except Exception as exc:
                logger.exception(f"Storage failed to purge the catalog: {exc}")
                success = False
            if not success:
                self._entries = snapshot
                logger.error("Purging the catalog failed, all entries have been restored")
        if success:
            self.events.notify(schemas.EventType.CATALOG_PURGED, {"removed": len(snapshot)})
        return success
