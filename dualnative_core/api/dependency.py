"""
Dual-Native API dependency library
"""

import fastapi.datastructures
from fastapi import Request, Response

from ..core.system import DualNativeSystem
from ..settings import Settings


class MinimalRequestData:
    """
    Collection of minimal dependencies used only for internal functionalities
    """

    def __init__(self, request: Request, response: Response):
        self.request = request
        self.response = response
        self.headers: fastapi.datastructures.Headers = request.headers

    @property
    def config(self) -> Settings:
        return self.request.app.state.settings


class LocalRequestData(MinimalRequestData):
    """
    Collection of core dependencies used by all path operations

    This class stores references to various important objects that
    will almost certainly be used by request handlers (path operations),
    especially the ``DualNativeSystem`` shared by all requests. Note
    that any dependency added here will be added to the OpenAPI
    definition, if it refers to a Query, Header, Path or Cookie.
    """

    def __init__(self, request: Request, response: Response):
        super().__init__(request, response)
        self.system: DualNativeSystem = request.app.state.system

    @property
    def profile(self) -> str:
        return self.system.config.http_profile
