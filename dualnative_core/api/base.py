"""
Dual-Native REST API base library
"""

import time
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import err, schemas


logger = logging.getLogger(__name__)

startup = time.time()


class APIWithoutValidationError(FastAPI):
    """
    FastAPI class that excludes 422 validation error responses in OpenAPI schema
    """

    def openapi(self) -> Dict[str, Any]:
        if not self.openapi_schema:
            self.openapi_schema = get_openapi(
                title=self.title,
                version=self.version,
                openapi_version=self.openapi_version,
                description=self.description,
                terms_of_service=self.terms_of_service,
                contact=self.contact,
                license_info=self.license_info,
                routes=self.routes,
                tags=self.openapi_tags,
                servers=self.servers,
            )
            for path, operations in self.openapi_schema["paths"].items():
                for method, metadata in operations.items():
                    metadata["responses"].pop("422", None)
        return self.openapi_schema


async def handle_generic_exception(request: Request, _: Exception):
    logger.exception("Unhandled exception caught in base exception handler!")
    status_code = 500
    msg = "Unexpected server error. The requested action wasn't completed successfully."

    return JSONResponse(jsonable_encoder(schemas.APIError(
        status=status_code,
        method=request.method,
        request=request.url.path,
        repeat=False,
        message=msg,
        details=""
    )), status_code=status_code)


async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    status_code = 400
    msgs = "\n".join(["\t" + error["msg"] for error in exc.errors()])
    message = f"Failed to process the request:\n{msgs}"

    return JSONResponse(jsonable_encoder(schemas.APIError(
        status=status_code,
        method=request.method,
        request=request.url.path,
        repeat=False,
        message=message,
        details=str(exc.errors())
    )), status_code=status_code)


async def handle_engine_error(request: Request, exc: err.DualNativeError) -> Response:
    """
    Translate the errors of the engine into the equivalent API exceptions and handle them
    """

    if isinstance(exc, err.MissingPrecondition):
        api_exc = PreconditionRequired(request.url.path)
    elif isinstance(exc, err.PreconditionMismatch):
        api_exc = PreconditionFailed(request.url.path, exc.current_cid)
    elif isinstance(exc, err.ResourceNotFound):
        api_exc = NotFound(f"Resource {exc.rid}")
    elif isinstance(exc, err.ResourceExists):
        api_exc = Conflict(f"Resource {exc.rid!r} already exists.", str(exc))
    elif isinstance(exc, err.MalformedIdentity):
        api_exc = BadRequest("Malformed content identity.", str(exc))
    elif isinstance(exc, err.ResourceUnreachable):
        api_exc = APIException(status_code=502, detail=str(exc), repeat=True, message="Resource is unreachable.")
    else:
        logger.error(f"{type(exc).__name__} during '{request.method} {request.url.path}': {exc}")
        api_exc = InternalServerException("The requested action couldn't be stored.", str(exc), repeat=True)
    return await APIException.handle(request, api_exc)


class APIException(HTTPException):
    """
    Base class for any kind of generic API exception
    """

    def __init__(
            self,
            status_code: int,
            detail: Optional[str],
            repeat: bool = False,
            message: Optional[str] = None,
            headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.repeat = repeat
        self.message = message

    @classmethod
    async def handle(cls, request: Request, exc: StarletteHTTPException) -> Response:
        """
        Handle exceptions in a generic way to produce APIError models

        Responses with status codes that must not have a body
        (e.g. ``304``) only carry the headers of the exception.
        """

        status_code = getattr(exc, "status_code", 500)
        repeat = getattr(exc, "repeat", False)
        message = getattr(exc, "message", None) or exc.__class__.__name__

        if not isinstance(exc, StarletteHTTPException):
            logger.error("Invalid exception class for base handler")

        logger.debug(
            f"{type(exc).__name__}: {message} @ '{request.method} "
            f"{request.url.path}' (details: {exc.detail})"
        )
        if status_code == 304:
            return Response(status_code=status_code, headers=getattr(exc, "headers", None))
        return JSONResponse(jsonable_encoder(schemas.APIError(
            status=status_code,
            method=request.method,
            request=request.url.path,
            repeat=repeat,
            message=message,
            details=str(exc.detail),
            current_cid=getattr(exc, "current_cid", None)
        ), exclude_none=True), status_code=status_code, headers=getattr(exc, "headers", None))


class NotModified(APIException):
    """
    Exception when the user agent already has the current version of a resource

    The headers (``ETag``, ``Cache-Control``, ...) will be
    repeated in the ``304`` response, which has no body.
    """

    def __init__(self, resource: str, headers: Optional[Dict[str, str]] = None):
        super().__init__(
            status_code=304,
            detail=resource,
            repeat=False,
            message="Not modified.",
            headers=headers
        )


class BadRequest(APIException):
    """
    Exception when the user probably messed something up

    The `message` field must be user-friendly and not too informative!
    """

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(
            status_code=400,
            detail=detail,
            repeat=True,
            message=message
        )


class NotFound(APIException):
    """
    Exception when a requested resource was not found in the system
    """

    def __init__(self, resource: str, detail: Optional[str] = None):
        super().__init__(
            status_code=404,
            detail=detail,
            repeat=False,
            message=f"{str(resource)!r} was not found."
        )


class Conflict(APIException):
    """
    Exception for invalid states, concurrent manipulations or other data clashes
    """

    def __init__(self, message: str, detail: Optional[str] = None, repeat: bool = False):
        super().__init__(
            status_code=409,
            detail=detail,
            repeat=repeat,
            message=message
        )


class PreconditionFailed(APIException):
    """
    Exception when none of the ``If-Match`` validators matched the current content identity

    The current identity is returned in the body (``current_cid``) and
    as ``ETag`` header, so the client may re-read and retry the write.
    """

    def __init__(self, resource: str, current_cid: str):
        super().__init__(
            status_code=412,
            detail=resource,
            repeat=True,
            message="Precondition failed: the resource has been modified in the meantime.",
            headers={"ETag": f'"{current_cid}"'}
        )
        self.current_cid = current_cid


class PreconditionRequired(APIException):
    """
    Exception when a modifying request lacks the ``If-Match`` header
    """

    def __init__(self, resource: str):
        super().__init__(
            status_code=428,
            detail=resource,
            repeat=False,
            message="If-Match header required for safe write."
        )


class InternalServerException(APIException):
    """
    Exception for problems within the server implementation
    """

    def __init__(self, message: str, detail: Optional[str] = None, repeat: bool = False):
        super().__init__(
            status_code=500,
            detail=detail,
            repeat=repeat,
            message=message
        )
