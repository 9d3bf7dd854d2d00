"""Ordering of board items and local files.

Three orderings are offered:

* by trailing number in the title (natural order for numbered scans),
* by the color code embedded in the title (see :mod:`board_tools.color_code`),
* by geometry, the row-major fallback that never fails.

Every comparison ends with the original input index so the result is a
total, deterministic order.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, TypeVar

from .color_code import parse_title
from .config import GRAY_THRESHOLD
from .host import BoardItem

logger = logging.getLogger("board_tools.ordering")

_LAST_DIGITS_RE = re.compile(r"([0-9]+)(?!.*[0-9])", re.DOTALL)

T = TypeVar("T")


def extract_trailing_number(text: str) -> Optional[int]:
    """Return the last maximal run of digits in ``text`` as an integer.

    ``"tile_0003.png"`` gives 3, ``"my-tile-10 (copy)"`` gives 10 and a string
    without digits gives ``None``.
    """
    if not text:
        return None
    match = _LAST_DIGITS_RE.search(text)
    if not match:
        return None
    return int(match.group(1), 10)


def _title(item: BoardItem) -> str:
    return str(item.title or "")


def _number_sort_key(index: int, name: str, number: Optional[int]):
    if number is None:
        return (1, 0, name.lower(), index)
    return (0, number, name.lower(), index)


def _sorted_by_number(entries: Sequence[T], names: Sequence[str]) -> List[T]:
    keyed = []
    for index, (entry, name) in enumerate(zip(entries, names)):
        number = extract_trailing_number(name)
        logger.debug("number key: %r => %s", name, number)
        keyed.append((_number_sort_key(index, name, number), entry))
    keyed.sort(key=lambda pair: pair[0])
    return [entry for _, entry in keyed]


def order_by_geometry(items: Sequence[BoardItem]) -> List[BoardItem]:
    """Strict reading order: ``y`` ascending, then ``x`` ascending."""
    return sorted(items, key=lambda item: (item.y, item.x))


def geometry_rows(items: Sequence[BoardItem]) -> List[List[BoardItem]]:
    """Group items into visual rows.

    Two items share a row when their centers are closer vertically than
    half the shorter item's height.  Rows are ordered top to bottom and
    items inside a row left to right.
    """
    rows: List[List[BoardItem]] = []
    for item in sorted(items, key=lambda it: (it.y, it.x)):
        if rows:
            anchor = rows[-1][0]
            tolerance = min(anchor.height, item.height) / 2
            if abs(item.y - anchor.y) <= tolerance:
                rows[-1].append(item)
                continue
        rows.append([item])
    for row in rows:
        row.sort(key=lambda it: it.x)
    return rows


async def assign_geometry_names(items: Sequence[BoardItem]) -> List[BoardItem]:
    """Title every item ``"1"``, ``"2"``... in visual reading order and persist."""
    ordered = [item for row in geometry_rows(items) for item in row]
    for counter, item in enumerate(ordered, start=1):
        item.title = str(counter)
    await asyncio.gather(*(item.sync() for item in ordered))
    logger.info("Assigned sequential titles to %d untitled selection", len(ordered))
    return ordered


async def order_by_number(items: Sequence[BoardItem]) -> List[BoardItem]:
    """Order items by the trailing number in their title.

    When any item has no title, every item is first renamed by geometry
    order so that each one has a number to sort by.
    """
    items = list(items)
    if any(not _title(item) for item in items):
        items = await assign_geometry_names(items)
    return _sorted_by_number(items, [_title(item) for item in items])


@dataclass(frozen=True, slots=True)
class _ColorEntry:
    index: int
    item: BoardItem
    group: int
    brightness: int
    saturation: int


def order_by_color(
    items: Sequence[BoardItem], gray_threshold: int = GRAY_THRESHOLD
) -> List[BoardItem]:
    """Order items by the color code prefix of their title.

    Gray-like items come before chromatic ones, lighter before darker and
    paler before more saturated.  Items without a code keep their relative
    order after the coded ones.  Without any code the geometry order is
    returned.
    """
    coded: List[_ColorEntry] = []
    uncoded: List[BoardItem] = []
    for index, item in enumerate(items):
        code = parse_title(_title(item))
        if code is None:
            uncoded.append(item)
            logger.debug("color key: %r => no-code", _title(item))
            continue
        logger.debug(
            "color key: %r => sat=%d, bri=%d", _title(item), code.saturation, code.brightness
        )
        coded.append(
            _ColorEntry(
                index=index,
                item=item,
                group=code.group(gray_threshold),
                brightness=code.brightness,
                saturation=code.saturation,
            )
        )

    if not coded:
        logger.warning("No color codes found in titles; falling back to geometry sort.")
        return order_by_geometry(items)

    coded.sort(key=lambda e: (e.group, e.brightness, e.saturation, e.index))
    return [e.item for e in coded] + uncoded


def order_files_by_name(
    names: Sequence[T],
    *,
    name_of: Callable[[T], str] = str,
    rng: Optional[random.Random] = None,
) -> List[T]:
    """Order local files for import.

    Files are sorted with the trailing-number rules when at least one name
    carries a number.  When none does the order carries no meaning, and the
    files are shuffled so repeated imports do not always cluster the same way.
    """
    entries = list(names)
    labels = [name_of(entry) for entry in entries]
    if any(extract_trailing_number(label) is not None for label in labels):
        return _sorted_by_number(entries, labels)
    (rng or random.Random()).shuffle(entries)
    return entries


__all__ = [
    "assign_geometry_names",
    "extract_trailing_number",
    "geometry_rows",
    "order_by_color",
    "order_by_geometry",
    "order_by_number",
    "order_files_by_name",
]
