"""
Content identities (CIDs) and integrity digests of response bodies
"""

import re
import hmac
import json
import base64
import hashlib
import logging
from typing import Any, Collection, Iterable, Optional, Tuple, Union

from . import canonical
from .. import err, schemas
from ..misc.events import EventSink, NullEventSink


logger = logging.getLogger(__name__)

CID_ALGORITHM = "sha256"
DEFAULT_EXCLUDE_FIELDS: Tuple[str, ...] = ("modified", "links", "cid", "etag")

_CID_PATTERN = re.compile(r"^sha256-[0-9a-f]{64}$")


def encode_body(value: Any) -> bytes:
    """
    Serialize a JSON response body compactly, the bytes are the input of ``content_digest``
    """

    return json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8", "surrogatepass")


def content_digest(body: Union[bytes, str]) -> str:
    """
    Create the ``Content-Digest`` header value (RFC 9530) of the exact response body bytes

    The digest is independent of the content identity, since the
    latter is computed over the canonical form of the content only.
    """

    if isinstance(body, str):
        body = body.encode("utf-8", "surrogatepass")
    digest = base64.b64encode(hashlib.sha256(body).digest()).decode("ascii")
    return f"sha-256=:{digest}:"


def parse_cid(cid: str) -> Tuple[str, str]:
    """
    Split a content identity into its algorithm and digest parts

    :raises MalformedIdentity: when the value has no ``<algorithm>-<digest>`` shape
    """

    if not isinstance(cid, str):
        raise err.MalformedIdentity(cid)
    algorithm, sep, digest = cid.partition("-")
    if not sep or not algorithm or not digest:
        raise err.MalformedIdentity(cid)
    return algorithm, digest


def is_well_formed(cid: Any) -> bool:
    return isinstance(cid, str) and _CID_PATTERN.match(cid) is not None


def _string_form(content: Any) -> str:
    try:
        return str(content)
    except (RecursionError, ValueError, TypeError) as exc:
        logger.warning(f"String form of content not available ({type(exc).__name__}), hashing its type tag")
        return f"<{type(content).__module__}.{type(content).__qualname__}>"


class ContentIdentityComputer:
    """
    Compute and verify content identities of arbitrary content values

    The identity is the SHA-256 hash of the canonical form of the content,
    after the exclude fields have been removed at every nesting level.
    Computing an identity never fails: if the content can't be brought
    into its canonical form, the string form of the content is hashed,
    and if even that fails, the name of the content type is hashed.
    """

    def __init__(self, exclude_fields: Optional[Iterable[str]] = None, events: Optional[EventSink] = None):
        if exclude_fields is None:
            exclude_fields = DEFAULT_EXCLUDE_FIELDS
        self.exclude_fields = list(exclude_fields)
        self.events = events or NullEventSink()

    def compute(self, content: Any, exclude_keys: Optional[Collection[str]] = None) -> str:
        """
        Compute the content identity ``sha256-<hex>`` of some content value

        :param content: any content value (mappings, sequences and scalars)
        :param exclude_keys: optional keys to exclude instead of the profile's exclude fields
        :return: content identity string
        """

        keys = self.exclude_fields if exclude_keys is None else list(exclude_keys)
        keys = self.events.filter(schemas.FilterHook.CID_EXCLUDE_KEYS, keys, content)
        try:
            serialized = canonical.canonical_form(content, keys)
        except (TypeError, ValueError, RecursionError) as exc:
            logger.warning(f"Content not serializable ({type(exc).__name__}: {exc}), hashing its string form")
            serialized = _string_form(content)
        digest = hashlib.sha256(serialized.encode("utf-8", "surrogatepass")).hexdigest()
        cid = f"{CID_ALGORITHM}-{digest}"
        return self.events.filter(schemas.FilterHook.COMPUTED_CID, cid, content, keys)

    def validate(self, content: Any, expected_cid: str, exclude_keys: Optional[Collection[str]] = None) -> bool:
        """
        Verify in constant time that the content has the expected identity
        """

        if not isinstance(expected_cid, str):
            return False
        computed = self.compute(content, exclude_keys)
        result = hmac.compare_digest(computed.encode("utf-8"), expected_cid.encode("utf-8", "surrogatepass"))
        return self.events.filter(schemas.FilterHook.CID_VALIDATION, result, content, expected_cid)
