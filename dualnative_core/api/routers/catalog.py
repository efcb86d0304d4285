"""
Dual-Native router module for the resource catalog
"""

from typing import Any, Dict, Optional

import pydantic
from fastapi import Depends

from ._router import router
from ..dependency import LocalRequestData
from .. import helpers, versioning
from ... import schemas
from ...misc import timestamps


_RESPONSES = {304: {"description": "Not Modified"}}


def _make_filters(**values: Optional[Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


async def _respond_with_catalog(
        local: LocalRequestData,
        since: Optional[str],
        filters: Dict[str, Any],
        limit: int,
        offset: int
):
    if since:
        since = timestamps.normalize(since) or since
    catalog = local.system.get_catalog(since, filters, limit, offset)
    return await helpers.conditional_json_response(
        catalog,
        local,
        last_modified=catalog.updated_at,
        max_age=local.system.config.cache_ttl
    )


@router.get("/catalog", tags=["Catalog"], response_model=schemas.Catalog, responses=_RESPONSES)
@versioning.versions(minimal=1)
async def get_catalog(
        since: Optional[str] = None,
        status: Optional[str] = None,
        type: Optional[str] = None,  # noqa
        limit: pydantic.NonNegativeInt = 0,
        offset: pydantic.NonNegativeInt = 0,
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Return the catalog of all resources that fulfill *all* constraints given as query parameters

    Only resources updated strictly after the ISO-8601 timestamp `since` are
    included, if it's given. A `limit` of 0 disables the pagination. The
    `updatedAt` field and `pagination.total` count refer to all matching
    resources, not just the returned page. The `ETag` of the response is
    the content identity of the catalog, which allows conditional requests.
    Caches may reuse the catalog for `cache_ttl` seconds of the profile config.
    """

    return await _respond_with_catalog(local, since, _make_filters(status=status, type=type), limit, offset)


@router.get("/public-catalog", tags=["Catalog"], response_model=schemas.Catalog, responses=_RESPONSES)
@versioning.versions(minimal=1)
async def get_public_catalog(
        since: Optional[str] = None,
        status: str = "publish",
        type: Optional[str] = None,  # noqa
        limit: pydantic.NonNegativeInt = 0,
        offset: pydantic.NonNegativeInt = 0,
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Return the catalog of the published resources

    This endpoint works like `GET /catalog`, but the `status` defaults to `publish`.
    """

    return await _respond_with_catalog(local, since, _make_filters(status=status, type=type), limit, offset)


@router.get("/catalog/validation", tags=["Catalog"], response_model=schemas.CatalogValidation)
@versioning.versions(minimal=2)
async def validate_catalog(local: LocalRequestData = Depends(LocalRequestData)):
    """
    Compare the content identities in the catalog with the live resources

    This check is advisory. Mismatching identities and unreachable
    resources are reported, but the catalog won't be changed.
    """

    return helpers.make_json_response(local.system.validate_catalog())
