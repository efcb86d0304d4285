"""
Dual-Native catalog schemas
"""

import enum
from typing import Any, Dict, List, Optional

import pydantic


class CatalogEntry(pydantic.BaseModel):
    """
    Catalog record of one resource, always replaced as a whole

    The field `content_id` holds the content identity of the machine
    representation at the time of the last write, `updatedAt` is the
    ISO-8601 timestamp of that write. Arbitrary extra information
    about the resource (e.g. its `type` or `status`) lives in `metadata`.
    """

    model_config = pydantic.ConfigDict(populate_by_name=True)

    rid: str
    hr: str
    mr: str
    content_id: str
    updated_at: str = pydantic.Field(alias="updatedAt")
    profile: str
    metadata: Dict[str, Any] = {}

    def lookup(self, key: str) -> Any:
        """
        Return the value of a top-level field or a metadata key, raising KeyError if neither exists
        """

        if key in ("updatedAt", "updated_at"):
            return self.updated_at
        if key in ("rid", "hr", "mr", "content_id", "profile"):
            return getattr(self, key)
        return self.metadata[key]


class Pagination(pydantic.BaseModel):
    limit: pydantic.NonNegativeInt
    offset: pydantic.NonNegativeInt
    total: pydantic.NonNegativeInt


class Catalog(pydantic.BaseModel):
    """
    Catalog of known resources, computed on read and never persisted

    The `updatedAt` timestamp is the latest one of all entries that
    matched the filters, before pagination was applied. The same
    applies to `pagination.total`.
    """

    model_config = pydantic.ConfigDict(populate_by_name=True)

    version: pydantic.PositiveInt = 1
    profile: str
    updated_at: str = pydantic.Field(alias="updatedAt")
    since: Optional[str] = None
    items: List[CatalogEntry]
    pagination: Pagination


@enum.unique
class InconsistencyStatus(str, enum.Enum):
    CID_MISMATCH = "cid_mismatch"
    MR_NOT_ACCESSIBLE = "mr_not_accessible"


class Inconsistency(pydantic.BaseModel):
    rid: str
    status: InconsistencyStatus
    catalog_cid: Optional[str] = None
    live_cid: Optional[str] = None
    reason: Optional[str] = None


class CatalogValidation(pydantic.BaseModel):
    valid: bool
    checked: pydantic.NonNegativeInt
    inconsistencies: List[Inconsistency]
