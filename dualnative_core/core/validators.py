"""
Evaluation of conditional request headers against content identities

``If-None-Match`` is evaluated with ``matches_any`` (conditional reads), while
``If-Match`` is evaluated with ``check_precondition`` (safe writes). A safe
write without any validator is rejected (``428``), a write whose validators
don't match the current identity fails (``412``). A conditional read with a
matching validator yields ``304`` without a body.
"""

import enum
import hmac
import logging
from typing import Any, Collection, Dict, List, Mapping, NamedTuple, Optional

from .identity import ContentIdentityComputer, content_digest
from .. import schemas
from ..misc import timestamps


logger = logging.getLogger(__name__)

WILDCARD = "*"
WEAK_PREFIX = 'W/"'


@enum.unique
class PreconditionReason(str, enum.Enum):
    MISSING_HEADER = "missing_header"
    MISMATCH = "mismatch"


class Validator(NamedTuple):
    tag: str
    weak: bool = False
    wildcard: bool = False


class PreconditionResult(NamedTuple):
    ok: bool
    reason: Optional[PreconditionReason]
    current_cid: Optional[str]


def parse_validators(header: Optional[str]) -> List[Validator]:
    """
    Parse the comma-separated list of entity tags of a conditional request header

    Tokens are trimmed, a weak prefix ``W/"`` is detected case-insensitively and
    surrounding quotes are stripped. Only an unquoted ``*`` is the wildcard,
    a quoted one is an ordinary entity tag. Empty tokens are dropped. Malformed tokens
    are kept as they are, since they simply won't match any identity later.
    """

    if not header:
        return []
    result = []
    for token in map(str.strip, header.split(",")):
        if token == WILDCARD:
            result.append(Validator(WILDCARD, wildcard=True))
            continue
        weak = token[:3].upper() == WEAK_PREFIX
        if weak:
            token = token[2:]
        token = token.strip('"')
        if token:
            result.append(Validator(token, weak))
    return result


def matches_any(header: Optional[str], expected: Optional[str]) -> bool:
    """
    Determine whether any validator of the header matches the expected identity

    Weak and strong validators are compared the same way. The wildcard ``*``
    matches every non-empty identity. Comparisons run in constant time.

    :param header: raw header value, e.g. of ``If-None-Match``
    :param expected: current content identity of the resource
    :return: whether at least one validator matched
    """

    if not expected or not isinstance(expected, str):
        return False
    expected_bytes = expected.encode("utf-8", "surrogatepass")
    for validator in parse_validators(header):
        if validator.wildcard:
            return True
        if hmac.compare_digest(validator.tag.encode("utf-8", "surrogatepass"), expected_bytes):
            return True
    return False


def check_precondition(header: Optional[str], expected: str) -> PreconditionResult:
    """
    Evaluate the ``If-Match`` precondition of a safe write

    An absent or empty header yields ``MISSING_HEADER``, a header without
    any matching validator yields ``MISMATCH``. The current identity is
    always returned to allow clients to retry with a fresh validator.
    """

    if header is None or header.strip() == "":
        return PreconditionResult(False, PreconditionReason.MISSING_HEADER, expected)
    if matches_any(header, expected):
        return PreconditionResult(True, None, expected)
    return PreconditionResult(False, PreconditionReason.MISMATCH, expected)


def get_header(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    """
    Look up a header in any mapping case-insensitively
    """

    if not headers:
        return None
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


class ValidatorMatcher:
    """
    Content-aware evaluation of conditional requests and the matching response headers
    """

    def __init__(self, identity: ContentIdentityComputer):
        self.identity = identity
        self.events = identity.events

    def if_none_match(
            self,
            headers: Optional[Mapping[str, str]],
            content: Any,
            exclude_keys: Optional[Collection[str]] = None
    ) -> bool:
        """
        Determine whether the client already has the current version of the content (i.e. ``304``)
        """

        header = get_header(headers, "If-None-Match")
        if not header:
            return False
        return matches_any(header, self.identity.compute(content, exclude_keys))

    def if_match(
            self,
            headers: Optional[Mapping[str, str]],
            content: Any,
            exclude_keys: Optional[Collection[str]] = None
    ) -> PreconditionResult:
        return check_precondition(get_header(headers, "If-Match"), self.identity.compute(content, exclude_keys))

    def standard_headers(
            self,
            content: Any,
            body: Optional[bytes] = None,
            exclude_keys: Optional[Collection[str]] = None,
            cid: Optional[str] = None
    ) -> Dict[str, str]:
        """
        Create the standard response headers of a machine representation

        :param content: content value of the resource (its ``modified`` field
            is used for the ``Last-Modified`` header, if it's present)
        :param body: optional serialized response body, which enables the
            ``Content-Digest`` and ``Content-Length`` headers
        :param exclude_keys: optional keys to exclude instead of the profile's exclude fields
        :param cid: already known content identity (computed otherwise)
        :return: dictionary of header names and values
        """

        cid = cid or self.identity.compute(content, exclude_keys)
        headers = {
            "ETag": f'"{cid}"',
            "Cache-Control": "no-cache"
        }
        if isinstance(content, Mapping):
            last_modified = timestamps.http_date(content.get("modified"))
            if last_modified:
                headers["Last-Modified"] = last_modified
        if body is not None:
            headers["Content-Digest"] = content_digest(body)
            headers["Content-Length"] = str(len(body))
        return self.events.filter(schemas.FilterHook.STANDARD_HEADERS, headers, content)
