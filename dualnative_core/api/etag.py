"""
ETag helper library for the conditional requests of the REST API
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Request

from . import base
from ..core import validators
from ..core.system import DualNativeSystem
from ..misc import timestamps


logger = logging.getLogger(__name__)


class ETag:
    """
    Helper class providing methods to create ETags, compare them and build related headers

    The entity tag of a response is always the content identity of the
    returned document, quoted as strong validator: ``ETag: "<CID>"``.
    """

    request: Request
    system: DualNativeSystem

    def __init__(self, request: Request, system: DualNativeSystem):
        self.request = request
        self.system = system

        for field in ["If-Modified-Since", "If-Unmodified-Since", "If-Range"]:
            if request.headers.get(field):
                logger.debug(f"'{field}' header not supported, value: {request.headers.get(field)!r}")

    def make_headers(
            self,
            content: Any,
            cid: Optional[str] = None,
            last_modified: Optional[str] = None,
            max_age: Optional[int] = None
    ) -> Dict[str, str]:
        """
        Create the validator headers of a document, which are repeated by ``304`` responses

        :param content: document which will be returned to the client
        :param cid: already known content identity of the document
        :param last_modified: optional timestamp overriding the ``modified`` field of the document
        :param max_age: optional number of seconds shared caches may reuse the document without revalidation
        :return: dictionary of the ``ETag``, ``Cache-Control`` and ``Last-Modified`` headers
        """

        headers = self.system.validators.standard_headers(content, cid=cid)
        if last_modified:
            http_date = timestamps.http_date(last_modified)
            if http_date:
                headers["Last-Modified"] = http_date
        if max_age:
            headers["Cache-Control"] = f"public, max-age={max_age}, must-revalidate"
        return headers

    def compare(self, cid: str, headers: Optional[Dict[str, str]] = None) -> bool:
        """
        Compare the current content identity with the client's ``If-None-Match`` header

        :param cid: current content identity of the requested document
        :param headers: headers to repeat in a ``304`` response
        :return: ``True`` if the document must be sent to the client
        :raises NotModified: if the user agent already has the most recent version
        """

        if len(self.request.headers.getlist("If-None-Match")) > 1:
            logger.warning(f"More than one 'If-None-Match' header: {self.request.headers.items()}")
        header = self.request.headers.get("If-None-Match")
        if header and validators.matches_any(header, cid):
            raise base.NotModified(self.request.url.path, headers)
        return True

