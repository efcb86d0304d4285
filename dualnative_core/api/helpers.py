"""
Generic helper library for the core REST API
"""

import logging
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import Response

from .base import NotFound
from .dependency import LocalRequestData
from .etag import ETag
from ..core import identity


logger = logging.getLogger(__name__)


def media_type(profile: Optional[str] = None) -> str:
    if profile:
        return f'application/json; profile="{profile}"'
    return "application/json"


def make_json_response(
        payload: Any,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
        profile: Optional[str] = None
) -> Response:
    """
    Create a JSON response whose ``Content-Digest`` covers the exact body bytes

    :param payload: any JSON-compatible object or pydantic model
    :param status_code: HTTP status code of the response
    :param headers: additional headers of the response
    :param profile: optional profile name added to the ``Content-Type`` header
    :return: finished response object
    """

    body = identity.encode_body(jsonable_encoder(payload, by_alias=True, exclude_none=True))
    all_headers = dict(headers or {})
    all_headers["Content-Digest"] = identity.content_digest(body)
    return Response(content=body, status_code=status_code, headers=all_headers, media_type=media_type(profile))


async def return_document(rid: str, local: LocalRequestData) -> Dict[str, Any]:
    """
    Return the machine representation document of a resource

    :param rid: resource identifier
    :param local: contextual local data
    :return: document including its ``cid`` and ``links``
    :raises NotFound: when the resource is unknown
    """

    document = local.system.get_resource(rid)
    if document is None:
        raise NotFound(f"Resource {rid}")
    return document


async def conditional_json_response(
        payload: Any,
        local: LocalRequestData,
        cid: Optional[str] = None,
        last_modified: Optional[str] = None,
        extra_headers: Optional[Dict[str, str]] = None,
        max_age: Optional[int] = None
) -> Response:
    """
    Create the response of a conditional ``GET`` request for any JSON document

    The ETag is the content identity of the payload (unless ``cid`` is given).
    A matching ``If-None-Match`` header of the client yields ``304`` instead.
    A positive ``max_age`` allows caches to reuse the payload for that many seconds.

    :raises NotModified: if the client already has the current version of the payload
    """

    payload = jsonable_encoder(payload, by_alias=True, exclude_none=True)
    etag = ETag(local.request, local.system)
    cid = cid or local.system.compute_cid(payload)
    headers = etag.make_headers(payload, cid, last_modified, max_age)
    etag.compare(cid, headers)
    headers.update(extra_headers or {})
    return make_json_response(payload, headers=headers, profile=local.profile)
