"""
Dual-Native router module generic functionalities
"""

import time
import datetime

from fastapi import Depends

from ._router import router
from ..dependency import LocalRequestData, MinimalRequestData
from .. import base, versioning
from ... import schemas
from ...schemas import config
from ...version import PROJECT_VERSION_INFO


@router.get("/health", tags=["Generic"], response_model=schemas.Health)
@versioning.versions(minimal=1)
async def check_health(local: LocalRequestData = Depends(LocalRequestData)):
    """
    Return the health of the engine and its components

    The `status` is `healthy` if all components work properly and `degraded` otherwise.
    """

    return local.system.health_check()


@router.get("/status", tags=["Generic"], response_model=schemas.Status)
@versioning.versions(minimal=1)
async def get_status(_: MinimalRequestData = Depends(MinimalRequestData)):
    """
    Return some information about the current status of the server
    """

    return schemas.Status(
        startup=int(base.startup),
        api_version=2,
        project_version=schemas.VersionInfo(**PROJECT_VERSION_INFO._asdict()),
        localtime=datetime.datetime.now(),
        timestamp=int(time.time())
    )


@router.get("/settings", tags=["Generic"], response_model=config.ProfileConfig)
@versioning.versions(minimal=2)
async def get_settings(local: LocalRequestData = Depends(LocalRequestData)):
    """
    Return the profile settings which directly affect the content identities and the catalog
    """

    return local.config.profile
