"""
Dual-Native API library to provide multiple versions of the API endpoints
"""

import logging
from typing import Any, Callable, Dict, Iterable, Optional

import fastapi

from .. import schemas


VERSION_ANNOTATION_NAME = "_api_versions"
MAXIMAL_VERSION_ANNOTATION_NAME = "_maximal_api_version"
MINIMAL_VERSION_ANNOTATION_NAME = "_minimal_api_version"


def versions(
        *annotations: int,
        minimal: Optional[int] = None,
        maximal: Optional[int] = None
) -> Callable[[Callable], Callable]:
    """
    Decorate a path operation function with the version(s) of the API that should support it

    :param annotations: any number of explicit API versions that should include the decorated
        path operation (which can't be below or above the minimal and maximal values respectively)
    :param minimal: minimal version of APIs that should include the decorated path operation
    :param maximal: maximal version of APIs that should include the decorated path operation
    :return: decorator to use on a path operation function
    """

    if not all(map(lambda x: isinstance(x, int), annotations)):
        raise TypeError(f"Not all annotations are integers: {annotations!r}")
    for name, bound in (("minimal", minimal), ("maximal", maximal)):
        if bound is not None and not isinstance(bound, int):
            raise TypeError(f"Expected int for {name} version, got {type(bound)!r}")
    if minimal and any(map(lambda x: x < minimal, annotations)):
        raise ValueError("Can't accept annotations smaller than the minimal version")
    if maximal and any(map(lambda x: x > maximal, annotations)):
        raise ValueError("Can't accept annotations bigger than the maximal version")

    def decorator(func: Callable) -> Callable:
        for name in (VERSION_ANNOTATION_NAME, MINIMAL_VERSION_ANNOTATION_NAME, MAXIMAL_VERSION_ANNOTATION_NAME):
            assert not hasattr(func, name), "'versions' can't be used twice"
        if annotations:
            setattr(func, VERSION_ANNOTATION_NAME, annotations)
        if minimal:
            setattr(func, MINIMAL_VERSION_ANNOTATION_NAME, minimal)
        if maximal:
            setattr(func, MAXIMAL_VERSION_ANNOTATION_NAME, maximal)
        return func

    return decorator


class VersionedFastAPI(fastapi.FastAPI):
    """
    Specialized FastAPI adding support for multiple versioned sub-APIs

    The sub-APIs are mounted below their version prefix (e.g. ``/v1``).
    Use ``add_router`` instead of ``include_router`` to add the path
    operations of a router to all sub-APIs its endpoints are annotated
    for (see ``versions``). After adding all routers, call ``finish``
    once to mount the sub-APIs. Since every sub-API is an application
    of its own, shared objects have to be distributed with ``share_state``.

    .. code-block::

        app = VersionedFastAPI(
            title="API",
            apis={
                1: FastAPI(title="API v1"),
                2: FastAPI(title="API v2")
            }
        )
        app.add_router(...)
        app.share_state(system=...)
        app.finish()
    """

    def __init__(
            self,
            apis: Dict[int, fastapi.FastAPI],
            *args,
            version_format: str = "/v{}",
            logger: Optional[logging.Logger] = None,
            absolute_minimal_version: int = 0,
            absolute_maximal_version: Optional[int] = None,
            **kwargs
    ):
        assert version_format.count("{}") == 1, "Version format string must contain '{}' once"
        super().__init__(*args, **kwargs)
        self._apis = apis
        self._version_format = version_format
        self._logger = logger or logging.getLogger(__name__)
        self._abs_min = absolute_minimal_version
        self._abs_max = absolute_maximal_version or max(apis.keys())
        self._finished = False

    @property
    def apis(self) -> Dict[int, fastapi.FastAPI]:
        return dict(self._apis)

    def share_state(self, **values: Any):
        """
        Set the given values on the state of this application and all of its sub-APIs
        """

        for application in [self, *self._apis.values()]:
            for key, value in values.items():
                setattr(application.state, key, value)

    def finish(self, versions_endpoint: bool = True):
        """
        Complete the registration of new routers and build the relevant API routes once

        :param versions_endpoint: switch to enable the special ``/versions`` endpoint
        """

        if self._finished:
            return

        for api_version in self._apis:
            prefix = self._version_format.format(api_version)
            self.mount(prefix, self._apis[api_version])

        if versions_endpoint:
            @self.get("/versions", response_model=schemas.Versions, tags=["Miscellaneous"])
            async def get_version_info():
                return schemas.Versions(
                    latest=max(self._apis.keys()),
                    versions=[
                        {"version": v, "prefix": self._version_format.format(v)}
                        for v in self._apis.keys()
                    ]
                )

        self._finished = True

    def _is_included(self, route: fastapi.routing.APIRoute, api_version: int) -> bool:
        endpoint = route.endpoint
        min_version = getattr(endpoint, MINIMAL_VERSION_ANNOTATION_NAME, self._abs_min)
        if not isinstance(min_version, int):
            raise TypeError(f"Min version annotation {min_version!r} is no integer!")
        max_version = getattr(endpoint, MAXIMAL_VERSION_ANNOTATION_NAME, self._abs_max)
        if not isinstance(max_version, int):
            raise TypeError(f"Max version annotation {max_version!r} is no integer!")

        explicit_versions = getattr(endpoint, VERSION_ANNOTATION_NAME, [])
        if not isinstance(explicit_versions, Iterable):
            raise TypeError(f"Version annotation {explicit_versions!r} is not iterable!")
        if not all(map(lambda v: isinstance(v, int), explicit_versions)):
            raise TypeError(f"Not all versions in {explicit_versions!r} are integers!")

        if min_version <= api_version <= max_version:
            return not explicit_versions or api_version in explicit_versions
        return False

    def add_router(self, router: fastapi.APIRouter, **kwargs):
        """
        Add the routes of the router to the set of sub-APIs which fulfill their requirements

        :param router: APIRouter carrying all routes that should be filtered and added
        :param kwargs: optional keyword arguments for the ``include_router`` method of the
            ``FastAPI`` instances which were supplied via the constructor's ``apis`` argument
        :raises TypeError: when there are problems with the annotated values of the endpoints
        """

        if self._finished:
            raise RuntimeError("Can't add new routers after the API has been finally built")

        routes = []
        for route in router.routes:
            if not isinstance(route, fastapi.routing.APIRoute):
                self._logger.error(f"Route {route!r} (type {type(route)!r}) is no 'APIRoute' instance! Skipping.")
                continue
            if not any(hasattr(route.endpoint, name) for name in (
                    VERSION_ANNOTATION_NAME, MINIMAL_VERSION_ANNOTATION_NAME, MAXIMAL_VERSION_ANNOTATION_NAME
            )):
                self._logger.warning(
                    f"Route {route!r} has no supported annotated version! It will "
                    f"therefore only be supported on API version {self._abs_max} by default."
                )
            routes.append(route)

        kwargs.pop("prefix", None)
        for api_version in self._apis:
            self._apis[api_version].include_router(
                fastapi.APIRouter(
                    prefix="",
                    default_response_class=router.default_response_class,
                    routes=[route for route in routes if self._is_included(route, api_version)]
                ),
                prefix="",
                **kwargs
            )
