"""
Dual-Native core exception types

Every error raised by the engine itself derives from ``DualNativeError``.
The REST API maps those exceptions to the status codes of its conditional
request handling (see ``api.base``), library users may catch them directly.
"""

from typing import Optional


class DualNativeError(Exception):
    """
    Base class for all errors raised by the engine
    """


class MalformedIdentity(DualNativeError, ValueError):
    """
    A stored or supplied content identity doesn't have the ``<algorithm>-<digest>`` shape
    """

    def __init__(self, cid: object):
        super().__init__(f"Malformed content identity: {cid!r}")
        self.cid = cid


class MissingPrecondition(DualNativeError):
    """
    A write was requested without any ``If-Match`` validator
    """

    def __init__(self, rid: str, current_cid: Optional[str] = None):
        super().__init__(f"Missing precondition for writing {rid!r}")
        self.rid = rid
        self.current_cid = current_cid


class PreconditionMismatch(DualNativeError):
    """
    None of the supplied validators matched the current content identity
    """

    def __init__(self, rid: str, current_cid: str):
        super().__init__(f"Precondition failed for {rid!r}, current identity is {current_cid}")
        self.rid = rid
        self.current_cid = current_cid


class ResourceNotFound(DualNativeError, KeyError):
    """
    The resource provider or the catalog doesn't know the requested resource
    """

    def __init__(self, rid: str):
        super().__init__(rid)
        self.rid = rid

    def __str__(self) -> str:
        return f"Resource {self.rid!r} not found"


class ResourceExists(DualNativeError):
    """
    A resource should be created but its identifier is already taken
    """

    def __init__(self, rid: str):
        super().__init__(f"Resource {rid!r} already exists")
        self.rid = rid


class StorageFailure(DualNativeError):
    """
    The injected storage backend rejected or failed a write
    """


class ResourceUnreachable(DualNativeError):
    """
    The live machine representation of a resource could not be fetched
    """

    def __init__(self, rid: str, reason: str = ""):
        super().__init__(f"Resource {rid!r} is unreachable" + (f": {reason}" if reason else ""))
        self.rid = rid
        self.reason = reason
