"""
Dual-Native schemas for resources and their modification requests
"""

import enum
from typing import Any, Dict, List, Optional

import pydantic


class ResourceLink(pydantic.BaseModel):
    url: str
    rel: str
    type: str


class ResourceLinks(pydantic.BaseModel):
    hr: ResourceLink
    mr: ResourceLink


class ResourceCreation(pydantic.BaseModel):
    """
    Request body to register a new resource

    The `hr` URL is mandatory. The `mr` URL defaults to the
    location of the resource in this API if it's omitted.
    """

    rid: pydantic.constr(min_length=1, max_length=255)
    hr: str
    mr: Optional[str] = None
    content: Dict[str, Any]
    metadata: Dict[str, Any] = {}


class ResourceUpdate(pydantic.BaseModel):
    """
    Request body to replace the machine representation of a resource as a whole
    """

    content: Dict[str, Any]
    hr: Optional[str] = None
    mr: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@enum.unique
class InsertPosition(str, enum.Enum):
    APPEND = "append"
    PREPEND = "prepend"
    INDEX = "index"


class BlockInsertion(pydantic.BaseModel):
    """
    Request body to insert one or more blocks into the `blocks` list of a resource

    Either `blocks` or the single `block` must be given. With `insert`
    set to `index`, the blocks are inserted before the position `index`
    (clamped into the valid range of the current block list).
    """

    insert: InsertPosition = InsertPosition.APPEND
    index: Optional[int] = None
    block: Optional[Dict[str, Any]] = None
    blocks: Optional[List[Dict[str, Any]]] = None


class WriteResult(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(populate_by_name=True)

    rid: str
    cid: str
    previous_cid: Optional[str] = None
    updated_at: str = pydantic.Field(alias="updatedAt")
