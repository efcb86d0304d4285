"""
Orchestration of all components of the dual-native engine

The ``DualNativeSystem`` wires the identity computer, the validator
matcher, the catalog and the helpers together and implements the
resource lifecycle on top of them, especially the safe-write protocol:

 1. a write without ``If-Match`` validator is rejected (``MissingPrecondition``)
 2. the current snapshot is fetched from the resource provider (``ResourceNotFound``)
 3. the validators must match the current identity (``PreconditionMismatch``)
 4. the new snapshot is stored and the catalog entry is replaced

Steps 2 to 4 run while holding the catalog lock by default, which makes
the check-then-write sequence atomic with respect to other writers of
the same process. Callers doing the check and the write in separate
calls (e.g. ``validators.check_precondition`` followed by ``upsert``)
don't get this guarantee.
"""

import copy
import logging
import contextlib
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import blocks as _blocks
from .catalog import CatalogStore
from .conformance import ConformanceChecker, system_capabilities
from .equivalence import EquivalenceValidator
from .identity import ContentIdentityComputer
from .links import LinkManager
from .validators import PreconditionReason, ValidatorMatcher, check_precondition
from .. import err, schemas
from ..misc import timestamps
from ..misc.events import EventSink, NullEventSink
from ..persistence.providers import MappingResourceProvider, ResourceProvider, WritableResourceProvider
from ..persistence.storage import Storage, InMemoryStorage
from ..schemas.config import ProfileConfig
from ..version import PROTOCOL_VERSION


logger = logging.getLogger(__name__)

DERIVED_FIELDS = ("cid", "links")
CATALOG_METADATA_FIELDS = ("status", "type")


class DualNativeSystem:
    """
    Facade of the dual-native engine, one instance should be shared per process

    :param config: profile configuration (exclude fields, profile names, ...)
    :param events: event sink to observe and adjust the engine
    :param storage: storage backend of the catalog
    :param provider: resource provider holding the machine representations
    """

    def __init__(
            self,
            config: Optional[ProfileConfig] = None,
            events: Optional[EventSink] = None,
            storage: Optional[Storage] = None,
            provider: Optional[ResourceProvider] = None
    ):
        self.config = config or ProfileConfig()
        self.events = events or NullEventSink()
        self.storage = storage if storage is not None else InMemoryStorage()
        self.provider = provider if provider is not None else MappingResourceProvider()

        self.identity = ContentIdentityComputer(self.config.exclude_fields, self.events)
        self.validators = ValidatorMatcher(self.identity)
        self.catalog = CatalogStore(self.storage, self.events, self.config.http_profile, self.provider, self.identity)
        self.links = LinkManager(self.events)
        self.conformance = ConformanceChecker(self.events)
        self.equivalence = EquivalenceValidator(self.events, self.conformance)

        logger.debug(f"Dual-native system initialized with {len(self.catalog)} catalog entries")
        self.events.notify(schemas.EventType.SYSTEM_INITIALIZED, {
            "version": PROTOCOL_VERSION,
            "profile": self.config.profile
        })

    @property
    def _writable_provider(self) -> WritableResourceProvider:
        if not isinstance(self.provider, WritableResourceProvider):
            raise TypeError(f"Resource provider {type(self.provider).__name__} doesn't support writes")
        return self.provider

    @staticmethod
    def _strip_derived(content: Mapping[str, Any]) -> Dict[str, Any]:
        return {k: copy.deepcopy(v) for k, v in content.items() if k not in DERIVED_FIELDS}

    @staticmethod
    def _catalog_metadata(content: Mapping[str, Any], metadata: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        result = dict(metadata or {})
        for key in CATALOG_METADATA_FIELDS:
            if key in content and key not in result:
                result[key] = content[key]
        return result

    def compute_cid(self, content: Any, exclude_keys: Optional[Iterable[str]] = None) -> str:
        return self.identity.compute(content, exclude_keys)

    def validate_cid(self, content: Any, expected_cid: str, exclude_keys: Optional[Iterable[str]] = None) -> bool:
        return self.identity.validate(content, expected_cid, exclude_keys)

    def get_resource(self, rid: str) -> Optional[Dict[str, Any]]:
        """
        Return the machine representation document of a resource (or None if it's unknown)

        The document contains the stored content together with its
        current ``cid`` and its ``links``, as far as they are known
        from the catalog. Both fields are excluded from the identity.
        """

        content = self.provider.fetch(rid)
        if content is None:
            return None
        document = self._strip_derived(content)
        entry = self.catalog.get(rid)
        if entry is not None:
            document["links"] = self.links.mr_links(entry.hr, entry.mr)
        document["cid"] = self.identity.compute(content)
        return document

    def create_resource(
            self,
            rid: str,
            hr_url: str,
            mr_url: str,
            content: Mapping[str, Any],
            metadata: Optional[Mapping[str, Any]] = None
    ) -> schemas.WriteResult:
        """
        Register a new resource by storing its snapshot and adding its catalog entry

        :raises ResourceExists: if the resource identifier is already in use
        :raises StorageFailure: if the catalog entry couldn't be stored
        """

        provider = self._writable_provider
        content = self._strip_derived(content)
        with self.catalog.exclusive():
            if rid in self.catalog or provider.fetch(rid) is not None:
                raise err.ResourceExists(rid)
            provider.store(rid, content, hr_url, metadata)
            cid = self.identity.compute(content)
            updated_at = timestamps.utc_now_iso()
            if not self.catalog.upsert(rid, hr_url, mr_url, cid, updated_at, self._catalog_metadata(content, metadata)):
                provider.delete(rid)
                raise err.StorageFailure(f"Failed to add {rid!r} to the catalog")

        logger.info(f"Created resource {rid!r} with identity {cid}")
        self.events.notify(schemas.EventType.RESOURCE_CREATED, {"rid": rid, "cid": cid})
        return schemas.WriteResult(rid=rid, cid=cid, previous_cid=None, updated_at=updated_at)

    def _safe_write(
            self,
            rid: str,
            if_match: Optional[str],
            transform: Callable[[Dict[str, Any]], Dict[str, Any]],
            hr_url: Optional[str],
            mr_url: Optional[str],
            metadata: Optional[Mapping[str, Any]],
            atomic: bool
    ) -> schemas.WriteResult:
        provider = self._writable_provider
        if if_match is None or if_match.strip() == "":
            raise err.MissingPrecondition(rid)

        with self.catalog.exclusive() if atomic else contextlib.nullcontext():
            current = provider.fetch(rid)
            if current is None:
                raise err.ResourceNotFound(rid)
            current_cid = self.identity.compute(current)
            result = check_precondition(if_match, current_cid)
            if not result.ok:
                if result.reason == PreconditionReason.MISSING_HEADER:
                    raise err.MissingPrecondition(rid, current_cid)
                raise err.PreconditionMismatch(rid, current_cid)

            content = self._strip_derived(transform(copy.deepcopy(current)))
            entry = self.catalog.get(rid)
            hr_url = hr_url or (entry and entry.hr)
            mr_url = mr_url or (entry and entry.mr)
            if not hr_url or not mr_url:
                raise err.ResourceNotFound(rid)
            if metadata is None and entry is not None:
                metadata = entry.metadata

            provider.store(rid, content, hr_url, metadata)
            cid = self.identity.compute(content)
            updated_at = timestamps.utc_now_iso()
            if not self.catalog.upsert(rid, hr_url, mr_url, cid, updated_at, self._catalog_metadata(content, metadata)):
                provider.store(rid, current)
                raise err.StorageFailure(f"Failed to update the catalog entry of {rid!r}")

        logger.info(f"Updated resource {rid!r} from {current_cid} to {cid}")
        self.events.notify(schemas.EventType.RESOURCE_UPDATED, {"rid": rid, "cid": cid, "previous_cid": current_cid})
        return schemas.WriteResult(rid=rid, cid=cid, previous_cid=current_cid, updated_at=updated_at)

    def update_resource(
            self,
            rid: str,
            content: Mapping[str, Any],
            if_match: Optional[str],
            hr_url: Optional[str] = None,
            mr_url: Optional[str] = None,
            metadata: Optional[Mapping[str, Any]] = None,
            atomic: bool = True
    ) -> schemas.WriteResult:
        """
        Replace the machine representation of a resource using the safe-write protocol

        :param rid: resource identifier
        :param content: new content of the machine representation
        :param if_match: raw ``If-Match`` header value of the client
        :param hr_url: optional new URL of the human representation
        :param mr_url: optional new URL of the machine representation
        :param metadata: optional new catalog metadata (kept otherwise)
        :param atomic: switch to hold the catalog lock from the check until the write
        :return: result of the write with the new content identity
        :raises MissingPrecondition: if no ``If-Match`` validator was given
        :raises ResourceNotFound: if the resource is unknown
        :raises PreconditionMismatch: if no validator matched the current identity
        :raises StorageFailure: if the catalog entry couldn't be stored
        """

        return self._safe_write(rid, if_match, lambda _: dict(content), hr_url, mr_url, metadata, atomic)

    def insert_blocks(
            self,
            rid: str,
            new_blocks: Sequence[Mapping[str, Any]],
            if_match: Optional[str],
            where: schemas.InsertPosition = schemas.InsertPosition.APPEND,
            index: Optional[int] = None
    ) -> Tuple[schemas.WriteResult, _blocks.Insertion]:
        """
        Insert blocks into the ``blocks`` list of a resource using the safe-write protocol

        The ``word_count`` field of the resource is refreshed if it's present. The
        preconditions are checked before the blocks, see ``update_resource``.

        :raises ValueError: if there are no blocks to insert
        """

        insertion: List[_blocks.Insertion] = []

        def transform(content: Dict[str, Any]) -> Dict[str, Any]:
            content["blocks"], info = _blocks.insert_blocks(content.get("blocks"), new_blocks, where, index)
            if "word_count" in content:
                content["word_count"] = _blocks.word_count(_blocks.flatten_text(content["blocks"]))
            insertion.append(info)
            return content

        result = self._safe_write(rid, if_match, transform, None, None, None, True)
        return result, insertion[0]

    def delete_resource(self, rid: str, if_match: Optional[str]) -> bool:
        """
        Delete a resource and its catalog entry using the safe-write protocol

        :raises MissingPrecondition: if no ``If-Match`` validator was given
        :raises ResourceNotFound: if the resource is unknown
        :raises PreconditionMismatch: if no validator matched the current identity
        :raises StorageFailure: if the resource or its catalog entry couldn't be removed
        """

        provider = self._writable_provider
        if if_match is None or if_match.strip() == "":
            raise err.MissingPrecondition(rid)
        with self.catalog.exclusive():
            current = provider.fetch(rid)
            if current is None:
                raise err.ResourceNotFound(rid)
            current_cid = self.identity.compute(current)
            if not check_precondition(if_match, current_cid).ok:
                raise err.PreconditionMismatch(rid, current_cid)
            entry = self.catalog.get(rid)
            provider.delete(rid)
            if not self.catalog.remove(rid):
                provider.store(rid, current, entry and entry.hr, entry and entry.metadata)
                raise err.StorageFailure(f"Failed to remove {rid!r} from the catalog")

        logger.info(f"Deleted resource {rid!r}")
        self.events.notify(schemas.EventType.RESOURCE_DELETED, {"rid": rid, "cid": current_cid})
        return True

    def get_catalog(
            self,
            since: Optional[str] = None,
            filters: Optional[Mapping[str, Any]] = None,
            limit: int = 0,
            offset: int = 0
    ) -> schemas.Catalog:
        return self.catalog.query(since, filters, limit, offset)

    def validate_catalog(self) -> schemas.CatalogValidation:
        """
        Validate all catalog entries against the live resources in batches of the configured size
        """

        checked = 0
        inconsistencies = []
        for batch in self.catalog.batches(self.config.catalog_batch_size):
            inconsistencies.extend(self.catalog.validate(batch))
            checked += len(batch)
            logger.debug(f"Validated {checked} catalog entries so far")
        return schemas.CatalogValidation(
            valid=not inconsistencies,
            checked=checked,
            inconsistencies=inconsistencies
        )

    def validate_conformance(self, flags: Optional[Mapping[str, Any]] = None) -> schemas.ConformanceResult:
        return self.conformance.check(system_capabilities() if flags is None else flags)

    def validate_equivalence(
            self,
            hr: Any,
            mr: Any,
            scope: Optional[Iterable[str]] = None
    ) -> schemas.EquivalenceResult:
        return self.equivalence.validate(hr, mr, scope)

    def comprehensive_validation(self, data: Mapping[str, Any]) -> schemas.ValidationReport:
        return self.equivalence.comprehensive(data)

    def generate_links(self, rid: str, hr_url: str, mr_url: str) -> schemas.ResourceLinks:
        return self.links.bidirectional_links(rid, hr_url, mr_url)

    def health_check(self) -> schemas.Health:
        """
        Report the state of the components, ``degraded`` if any of them failed its probe
        """

        components = {"identity": "ok", "validators": "ok", "catalog": "ok"}
        try:
            self.storage.has("health_check")
            components["storage"] = "ok"
        except Exception as exc:
            logger.exception(f"Storage health check failed: {exc}")
            components["storage"] = "error"
        try:
            self.provider.fetch("health_check")
            components["provider"] = "ok"
        except err.ResourceUnreachable as exc:
            logger.warning(f"Resource provider health check failed: {exc}")
            components["provider"] = "error"

        health = schemas.Health(
            status="healthy" if all(state == "ok" for state in components.values()) else "degraded",
            timestamp=timestamps.utc_now_iso(),
            version=PROTOCOL_VERSION,
            profile=self.config.profile,
            components=components
        )
        return self.events.filter(schemas.FilterHook.HEALTH_CHECK, health)
