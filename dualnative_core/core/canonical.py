"""
Canonical form of content values used to derive their content identity
"""

import json
from typing import Any, Collection, Mapping


def deep_exclude(value: Any, exclude_keys: Collection[str]) -> Any:
    """
    Remove all mapping entries with a key in ``exclude_keys`` at every nesting level

    Sequences keep all their elements, but every element is recursed into.
    The input value isn't modified, a new structure is returned instead.

    :param value: arbitrary content value (mappings, sequences and scalars)
    :param exclude_keys: keys to be removed from every mapping
    :return: copy of the content value without the excluded keys
    """

    excluded = frozenset(exclude_keys)

    def _exclude(obj: Any) -> Any:
        if isinstance(obj, Mapping):
            return {k: _exclude(v) for k, v in obj.items() if k not in excluded}
        if isinstance(obj, (list, tuple)):
            return [_exclude(v) for v in obj]
        return obj

    return _exclude(value)


def canonicalize(value: Any) -> Any:
    """
    Recursively sort all mapping keys by code point, keeping the order of sequences

    Keys are coerced to strings first (just like JSON would do),
    so that the ordering is total for mixed key types, too.

    :raises TypeError: when two distinct keys have the same string form, e.g. ``1`` and ``"1"``
    """

    if isinstance(value, Mapping):
        items = {}
        for k, v in value.items():
            key = str(k)
            if key in items:
                raise TypeError(f"Mapping keys {k!r} and {key!r} collide in their string form")
            items[key] = canonicalize(v)
        return dict(sorted(items.items(), key=lambda item: item[0]))
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    return value


def serialize(value: Any) -> str:
    """
    Serialize an already canonicalized value deterministically

    Non-ASCII characters and slashes stay unescaped. Values that can't be
    expressed in JSON (e.g. NaN, sets or arbitrary objects) raise errors.

    :raises TypeError: for objects that can't be serialized at all
    :raises ValueError: for out-of-range floats and circular references
    """

    return json.dumps(value, ensure_ascii=False, indent=4, allow_nan=False)


def canonical_form(value: Any, exclude_keys: Collection[str]) -> str:
    return serialize(canonicalize(deep_exclude(value, exclude_keys)))
