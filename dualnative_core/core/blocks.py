"""
Structured content blocks of machine representations

Machine representations may carry an ordered ``blocks`` list. Blocks are
plain mappings with a ``type`` and type-specific fields, e.g. paragraphs
(``content``), headings (``level`` and ``content``) or lists (``ordered``
and ``items``). Parsing any block markup is left to the content host.
"""

import re
import html
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from .. import schemas


PARAGRAPH = "core/paragraph"
HEADING = "core/heading"
LIST = "core/list"

DEFAULT_HEADING_LEVEL = 2

_WHITESPACE = re.compile(r"\s+")


class Insertion(NamedTuple):
    count_before: int
    inserted_at: int
    count_after: int


def normalize_block(block: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Bring a client-supplied block into the normal form of its type

    Blocks without type are paragraphs. Heading levels are clamped
    into the range 1 to 6, list items are converted to strings.
    Blocks of other types keep their type, content and attributes.
    """

    block_type = block.get("type") or PARAGRAPH
    content = block.get("content")
    content = "" if content is None else str(content)

    if block_type == PARAGRAPH:
        return {"type": PARAGRAPH, "content": content}
    if block_type == HEADING:
        try:
            level = int(block.get("level", DEFAULT_HEADING_LEVEL))
        except (TypeError, ValueError):
            level = DEFAULT_HEADING_LEVEL
        return {"type": HEADING, "level": max(1, min(6, level)), "content": content}
    if block_type == LIST:
        items = block.get("items") or []
        if not isinstance(items, (list, tuple)):
            items = [items]
        return {"type": LIST, "ordered": bool(block.get("ordered")), "items": [str(item) for item in items]}

    result = {"type": str(block_type), "content": content}
    if isinstance(block.get("attrs"), Mapping):
        result["attrs"] = dict(block["attrs"])
    return result


def insert_blocks(
        existing: Optional[Sequence[Any]],
        new: Sequence[Mapping[str, Any]],
        where: schemas.InsertPosition = schemas.InsertPosition.APPEND,
        index: Optional[int] = None
) -> Tuple[List[Any], Insertion]:
    """
    Insert normalized blocks into a copy of the existing top-level block list

    :param existing: current list of blocks (None is treated like an empty list)
    :param new: blocks to be inserted in their given order
    :param where: insert position, ``index`` requires the ``index`` parameter
        and falls back to appending without it
    :param index: position to insert the blocks before (clamped into the list)
    :return: tuple of the new block list and the insertion information
    :raises ValueError: if there are no blocks to insert
    """

    if not new:
        raise ValueError("No blocks to insert")
    blocks = list(existing or [])
    count_before = len(blocks)

    position = count_before
    if where == schemas.InsertPosition.PREPEND:
        position = 0
    elif where == schemas.InsertPosition.INDEX and index is not None:
        position = max(0, min(int(index), count_before))

    normalized = [normalize_block(block) for block in new]
    blocks[position:position] = normalized
    return blocks, Insertion(count_before, position, len(blocks))


def flatten_text(blocks: Optional[Sequence[Any]]) -> str:
    """
    Concatenate the text of all blocks, e.g. for word counts or search
    """

    parts = []
    for block in blocks or []:
        if not isinstance(block, Mapping):
            continue
        content = block.get("content")
        if isinstance(content, str) and content:
            parts.append(content)
        items = block.get("items")
        if isinstance(items, (list, tuple)) and items:
            parts.append(" ".join(map(str, items)))
    return _WHITESPACE.sub(" ", html.unescape(" ".join(parts))).strip()


def word_count(text: str) -> int:
    return len(text.split())
