"""
Dual-Native router module for the machine representations of resources
"""

import logging
from typing import Optional

from fastapi import Depends, Header, Response
from fastapi.encoders import jsonable_encoder

from ._router import router
from ..base import BadRequest
from ..dependency import LocalRequestData
from .. import helpers, versioning
from ... import schemas


logger = logging.getLogger(__name__)

_ERRORS = {
    304: {"description": "Not Modified"},
    404: {"model": schemas.APIError}
}
_WRITE_ERRORS = {
    404: {"model": schemas.APIError},
    412: {"model": schemas.APIError},
    428: {"model": schemas.APIError}
}


def _write_headers(local: LocalRequestData, result: schemas.WriteResult) -> dict:
    entry = local.system.catalog.get(result.rid)
    headers = {"ETag": f'"{result.cid}"'}
    if entry is not None:
        headers["Link"] = local.system.links.link_header(entry.hr, entry.mr)
    return headers


@router.get("/resources/{rid}", tags=["Resources"], responses=_ERRORS)
@versioning.versions(minimal=1)
async def get_resource(rid: str, local: LocalRequestData = Depends(LocalRequestData)):
    """
    Return the machine representation of a resource with its content identity as `ETag`

    A request with `If-None-Match` header matching the current identity (or `*`)
    will receive a `304` response without body, repeating the `ETag` header.
    A 404 error will be returned if the resource is unknown.
    """

    document = await helpers.return_document(rid, local)
    entry = local.system.catalog.get(rid)
    extra = {}
    if entry is not None:
        extra["Link"] = local.system.links.link_header(entry.hr, entry.mr)
    return await helpers.conditional_json_response(document, local, cid=document["cid"], extra_headers=extra)


@router.post(
    "/resources",
    tags=["Resources"],
    status_code=201,
    response_model=schemas.WriteResult,
    responses={409: {"model": schemas.APIError}}
)
@versioning.versions(minimal=2)
async def create_resource(body: schemas.ResourceCreation, local: LocalRequestData = Depends(LocalRequestData)):
    """
    Register a new resource, adding it to the catalog

    The `mr` URL defaults to the location of the resource in this API.
    A 409 error will be returned if the resource identifier is taken already.
    """

    mr = body.mr
    if not mr:
        location = local.request.url_for("get_resource", rid=body.rid)
        base_url = local.config.server.public_base_url
        mr = f"{str(base_url).rstrip('/')}{location.path}" if base_url else str(location)
    result = local.system.create_resource(body.rid, body.hr, mr, body.content, body.metadata)
    return helpers.make_json_response(result, status_code=201, headers=_write_headers(local, result))


@router.put("/resources/{rid}", tags=["Resources"], response_model=schemas.WriteResult, responses=_WRITE_ERRORS)
@versioning.versions(minimal=2)
async def update_resource(
        rid: str,
        body: schemas.ResourceUpdate,
        if_match: Optional[str] = Header(None),
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Replace the machine representation of a resource as a whole (safe write)

    The `If-Match` header is mandatory and must contain the current content
    identity of the resource (or `*`). A missing header yields `428`, a
    header that doesn't match yields `412` with the `current_cid`.
    A 404 error will be returned if the resource is unknown.
    """

    result = local.system.update_resource(rid, body.content, if_match, body.hr, body.mr, body.metadata)
    return helpers.make_json_response(result, headers=_write_headers(local, result))


@router.post(
    "/resources/{rid}/blocks",
    tags=["Resources"],
    response_model=schemas.WriteResult,
    responses={400: {"model": schemas.APIError}, **_WRITE_ERRORS}
)
@versioning.versions(minimal=1)
async def insert_blocks(
        rid: str,
        body: schemas.BlockInsertion,
        if_match: Optional[str] = Header(None),
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Insert blocks into the block list of a resource (safe write)

    The blocks are appended by default. They may be prepended or inserted
    before the position `index` instead. The block count before the insertion,
    the insertion position and the new block count are returned in the headers
    `X-Blocks-Count-Before`, `X-Blocks-Inserted-At` and `X-Blocks-Count`.
    The preconditions work like for `PUT /resources/{rid}`.
    A 400 error will be returned if there are no blocks to insert.
    """

    new_blocks = list(body.blocks or [])
    if body.block:
        new_blocks.append(body.block)
    try:
        result, insertion = local.system.insert_blocks(rid, new_blocks, if_match, body.insert, body.index)
    except ValueError as exc:
        raise BadRequest("No blocks to insert.", str(exc)) from exc

    headers = _write_headers(local, result)
    headers.update({
        "X-Blocks-Count-Before": str(insertion.count_before),
        "X-Blocks-Inserted-At": str(insertion.inserted_at),
        "X-Blocks-Count": str(insertion.count_after)
    })
    logger.debug(f"Inserted {len(new_blocks)} blocks into {rid!r}: {jsonable_encoder(insertion._asdict())}")
    return helpers.make_json_response(result, headers=headers)


@router.delete("/resources/{rid}", tags=["Resources"], status_code=204, responses=_WRITE_ERRORS)
@versioning.versions(minimal=2)
async def delete_resource(
        rid: str,
        if_match: Optional[str] = Header(None),
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Delete a resource and its catalog entry (safe write)

    The preconditions work like for `PUT /resources/{rid}`.
    """

    local.system.delete_resource(rid, if_match)
    return Response(status_code=204)
