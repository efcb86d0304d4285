"""
Dual-Native schemas for the event publishing system

This module contains a schema for the event model, an enum of the
different known notifications and an enum of the filter hooks that
allow an event sink to adjust intermediate values of the engine.
"""

import enum
from typing import List

import pydantic


@enum.unique
class EventType(str, enum.Enum):
    SERVER_STARTED = "server_started"
    SYSTEM_INITIALIZED = "system_initialized"
    RESOURCE_CREATED = "resource_created"
    RESOURCE_UPDATED = "resource_updated"
    RESOURCE_DELETED = "resource_deleted"
    CATALOG_UPDATED = "catalog_updated"
    CATALOG_ENTRY_REMOVED = "catalog_entry_removed"
    CATALOG_PURGED = "catalog_purged"


@enum.unique
class FilterHook(str, enum.Enum):
    CID_EXCLUDE_KEYS = "cid_exclude_keys"
    COMPUTED_CID = "computed_cid"
    CID_VALIDATION = "cid_validation"
    CATALOG_ENTRY = "catalog_entry"
    CATALOG_UPDATE_RESULT = "catalog_update_result"
    CATALOG_GET_ENTRY = "catalog_get_entry"
    CATALOG_REMOVE_RESULT = "catalog_remove_result"
    CATALOG = "catalog"
    CATALOG_VALIDATION = "catalog_validation"
    CONFORMANCE_VALIDATION = "conformance_validation"
    SEMANTIC_EQUIVALENCE = "semantic_equivalence"
    COMPREHENSIVE_VALIDATION = "comprehensive_validation"
    BIDIRECTIONAL_LINKS = "bidirectional_links"
    LINK_HEADER = "link_header"
    MR_LINKS = "mr_links"
    HR_LINKS = "hr_links"
    STANDARD_HEADERS = "standard_headers"
    HEALTH_CHECK = "health_check"


class Event(pydantic.BaseModel):
    event: EventType
    timestamp: pydantic.NonNegativeInt
    data: dict


class EventsNotification(pydantic.BaseModel):
    number: pydantic.NonNegativeInt
    events: List[Event]
