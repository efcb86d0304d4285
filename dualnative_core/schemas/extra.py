"""
Dual-Native extra schemas

This module contains the special schemas for versions and the status.
"""

import time
import datetime
from typing import Dict, List

import pydantic


class Versions(pydantic.BaseModel):
    class Version(pydantic.BaseModel):
        version: pydantic.PositiveInt
        prefix: pydantic.constr(min_length=2)

    latest: pydantic.PositiveInt
    versions: List[Version]


class VersionInfo(pydantic.BaseModel):
    major: pydantic.NonNegativeInt
    minor: pydantic.NonNegativeInt
    micro: pydantic.NonNegativeInt


class Status(pydantic.BaseModel):
    startup: pydantic.NonNegativeInt = int(datetime.datetime.now().timestamp())
    api_version: pydantic.PositiveInt
    project_version: VersionInfo
    timezone: str = time.localtime().tm_zone
    localtime: datetime.datetime
    timestamp: pydantic.NonNegativeInt


class Health(pydantic.BaseModel):
    status: str
    timestamp: str
    version: str
    profile: str
    components: Dict[str, str]
