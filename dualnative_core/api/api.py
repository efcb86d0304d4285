"""
Combined Dual-Native core REST API definitions

This API may provide multiple versions of certain endpoints.
Take a look into the different API definitions to see which
functionality they provide. Version 1 is read-mostly (resources,
catalogs and block insertion), version 2 adds the management of
resources, the catalog validation and the conformance reports.
"""

import logging.config
import contextlib
from typing import Any, Callable, Dict, Optional, Type, Union

import fastapi
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import base, versioning
from .routers import router
from .. import err, schemas, __version__
from ..core.system import DualNativeSystem
from ..misc.events import CallbackEventSink, CompositeEventSink, EventSink, LoggingEventSink
from ..persistence import database
from ..persistence.providers import MappingResourceProvider, SQLResourceProvider
from ..persistence.storage import InMemoryStorage, SQLStorage
from ..settings import Settings


DEFAULT_EXCEPTION_HANDLERS = {
    StarletteHTTPException: base.APIException.handle,
    RequestValidationError: base.handle_request_validation_error,
    err.DualNativeError: base.handle_engine_error,
    Exception: base.handle_generic_exception
}

LICENSE_INFO = {
    "name": "MIT License",
    "url": "https://opensource.org/licenses/MIT"
}


API_DOC = """Dual-Native core REST API definition version {version}

Every resource is exposed as machine representation (MR), a JSON document
linked to its human representation (HR). The `ETag` of a MR is its content
identity (CID), the SHA-256 hash of the canonical form of the document
(`sha256-<hex>`), which ignores the fields `modified`, `links`, `cid`
and `etag` by default. The `Content-Digest` header additionally
covers the exact bytes of every JSON response body.

Conditional requests are used in two ways:

1. Reading with `If-None-Match` containing the CID known to the client
   (or `*`) yields `304` (Not Modified) without body if nothing changed.
   This works for resources as well as for the catalogs.
2. Modifying a resource requires the `If-Match` header containing the
   current CID of the resource ("safe write"). Omitting it yields
   `428` (Precondition Required), a CID that doesn't match yields
   `412` (Precondition Failed) with the `current_cid` in the body.
   The client should re-read the resource and retry in that case.

All error responses use the schema of the `APIError`. The `404` (Not Found)
response is returned for unknown resources, `405` (Method Not Allowed) for
unsupported methods of a known path. The catalogs list the locations and
CIDs of all resources and support the filters `since`, `status` and `type`
as well as pagination with `limit` and `offset`.
"""


def _make_app(
        title: str,
        version: str,
        description: str,
        license_info: Optional[Dict[str, str]] = None,
        exception_handlers: Optional[Dict[Any, Callable]] = None,
        root_redirect: bool = True,
        responses: Optional[Dict[Union[int, str], Dict[str, Any]]] = None,
        api_class: Optional[Type[fastapi.FastAPI]] = None,
        **kwargs
) -> fastapi.FastAPI:
    if api_class is None:
        api_class = fastapi.FastAPI
    app = api_class(
        title=title,
        version=version,
        description=description,
        license_info=license_info or LICENSE_INFO,
        responses=responses or {400: {"model": schemas.APIError}},
        **kwargs
    )

    handlers = exception_handlers or DEFAULT_EXCEPTION_HANDLERS
    for exc in handlers:
        app.add_exception_handler(exc, handlers[exc])

    if root_redirect:
        @app.get("/", include_in_schema=False)
        async def redirect_root():
            return fastapi.responses.RedirectResponse("./docs")

    return app


def create_event_sink(settings: Settings) -> EventSink:
    """
    Create the event sink of the engine, which logs all events and publishes them to the callbacks
    """

    sinks = [LoggingEventSink(logging.getLogger("dualnative_core.events"))]
    if settings.callbacks.urls:
        sinks.append(CallbackEventSink(
            settings.callbacks.urls,
            settings.callbacks.timeout,
            settings.callbacks.shared_secret
        ))
    return CompositeEventSink(sinks)


def create_system(settings: Settings, events: Optional[EventSink] = None) -> DualNativeSystem:
    """
    Create the engine with the storage and resource provider selected by the profile settings

    The database must be initialized before if any of them uses the database.
    """

    profile = settings.profile
    storage = SQLStorage() if profile.storage == "database" else InMemoryStorage()
    provider = SQLResourceProvider() if profile.provider == "database" else MappingResourceProvider()
    return DualNativeSystem(profile, events or create_event_sink(settings), storage, provider)


def create_app(
        settings: Optional[Settings] = None,
        configure_logging: bool = True,
        configure_database: bool = True,
        system: Optional[DualNativeSystem] = None
) -> fastapi.FastAPI:
    """
    Create a new ``FastAPI`` instance using the specified settings and switches

    This function is conveniently used to allow overwriting the settings
    before launching the application as well as to allow multiple ``FastAPI``
    instances in one program, which in turn makes unit testing much easier.

    :param settings: optional Settings instance (would be created if not present)
    :param configure_logging: switch whether to configure logging
    :param configure_database: switch whether to configure the database
    :param system: optional engine instance (would be created from the settings if not present)
    :return: new ``FastAPI`` instance
    """

    if settings is None:
        settings = Settings()

    if configure_logging:
        logging.config.dictConfig(settings.logging.model_dump())
    logger = logging.getLogger(__name__)
    logger.debug("Starting application...")

    if configure_database:
        database.init(settings.database.connection, settings.database.debug_sql)

    if system is None:
        system = create_system(settings)

    @contextlib.asynccontextmanager
    async def lifespan(_: fastapi.FastAPI):
        logger.info("Starting API...")
        system.events.notify(schemas.EventType.SERVER_STARTED, {
            "base_url": settings.server.public_base_url and str(settings.server.public_base_url)
        })
        yield
        logger.info("Shutting down...")
        sinks = getattr(system.events, "sinks", [system.events])
        for sink in sinks:
            if isinstance(sink, CallbackEventSink):
                sink.shutdown()

    apis = {
        version: _make_app(
            title=f"Dual-Native core REST API v{version}",
            version=__version__,
            description=API_DOC.format(version=version),
            api_class=base.APIWithoutValidationError,
            responses={400: {"model": schemas.APIError}, 404: {"model": schemas.APIError}}
        )
        for version in (1, 2)
    }

    app = _make_app(
        title="Dual-Native core REST API",
        version=__version__,
        description=__doc__,
        apis=apis,
        logger=logger,
        license_info=LICENSE_INFO,
        responses={400: {"model": schemas.APIError}},
        lifespan=lifespan,
        api_class=versioning.VersionedFastAPI
    )

    assert isinstance(app, versioning.VersionedFastAPI), "'VersionedFastAPI' instance required"
    app.add_router(router)
    app.share_state(system=system, settings=settings)

    app.finish()
    return app


class APIWrapper:
    """
    Wrapper class around the FastAPI main object, accessible via the ``app`` property

    There should be only one global instance of this object, which should only
    export its functionality to hold the ``app`` property. This wrapper can be
    used to allow easy command-line usage via ``uvicorn`` calls. Example:

    .. code-block::

        uvicorn dualnative_core.api:api.app
    """

    def __init__(self):
        self._app: Optional[fastapi.FastAPI] = None

    def get_app(self) -> fastapi.FastAPI:
        return self.app

    def set_app(self, application: fastapi.FastAPI):
        if not isinstance(application, fastapi.FastAPI):
            raise TypeError
        self._app = application

    @property
    def app(self) -> fastapi.FastAPI:
        """
        Return the ``app`` instance (or create it with default settings if it doesn't exist)
        """

        if self._app is not None:
            return self._app
        self._app = create_app()
        return self._app


api = APIWrapper()
