"""Lossy encoding under byte budgets.

Each tile is encoded as JPEG.  A short list of high qualities is tried
against a soft target; the lowest of them is accepted even above the
target, and only a result above the hard cap keeps lowering the quality,
down to a floor.  The floor result is returned even when it is still over
the cap: some output is better than none.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import List, Optional

from PIL import Image

from board_tools.config import SliceSettings

from .image_operations import flatten_alpha
from .slicer import SlicePlan

JPEG_MIME = "image/jpeg"


@dataclass(frozen=True, slots=True)
class EncodedTile:
    data: bytes
    quality: int
    width: int
    height: int
    over_cap: bool = False
    content_type: str = JPEG_MIME

    @property
    def size(self) -> int:
        return len(self.data)


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


def encode_under_budget(
    image: Image.Image,
    target_bytes: int,
    hard_cap_bytes: int,
    settings: Optional[SliceSettings] = None,
) -> EncodedTile:
    """Encode ``image`` trying to stay under ``target_bytes``.

    Returns the first listed quality that fits the target, otherwise the
    lowest listed quality, lowered further in fixed steps while the result
    exceeds ``hard_cap_bytes``.
    """
    settings = settings or SliceSettings()
    rgb = flatten_alpha(image)
    qualities = sorted(settings.qualities, reverse=True)

    data = b""
    quality = qualities[-1]
    for quality in qualities:
        data = encode_jpeg(rgb, quality)
        if len(data) <= target_bytes:
            return EncodedTile(data, quality, rgb.width, rgb.height)

    while len(data) > hard_cap_bytes and quality > settings.quality_floor:
        quality = max(settings.quality_floor, quality - settings.quality_step)
        data = encode_jpeg(rgb, quality)

    over_cap = len(data) > hard_cap_bytes
    if over_cap:
        logging.warning(
            "Tile %dx%d is %d bytes at floor quality %d, above the %d byte cap",
            rgb.width, rgb.height, len(data), quality, hard_cap_bytes,
        )
    return EncodedTile(data, quality, rgb.width, rgb.height, over_cap=over_cap)


def slice_and_encode(
    image: Image.Image,
    plan: SlicePlan,
    settings: Optional[SliceSettings] = None,
    *,
    target_bytes: Optional[int] = None,
    hard_cap_bytes: Optional[int] = None,
) -> List[List[Optional[EncodedTile]]]:
    """Cut ``image`` along ``plan`` and encode every tile.

    The result is indexed ``[row][column]``.  A tile whose encoder raises is
    logged and left as ``None``; the remaining tiles are still produced.
    """
    settings = settings or SliceSettings()
    target = settings.target_bytes if target_bytes is None else target_bytes
    hard_cap = settings.hard_cap_bytes if hard_cap_bytes is None else hard_cap_bytes
    if image.size != (plan.source_width, plan.source_height):
        raise ValueError(
            f"Plan is for {plan.source_width}x{plan.source_height}, image is "
            f"{image.width}x{image.height}"
        )

    grid: List[List[Optional[EncodedTile]]] = [
        [None] * plan.tiles_x for _ in range(plan.tiles_y)
    ]
    for tile in plan.tiles():
        encoded: Optional[EncodedTile] = None
        try:
            encoded = encode_under_budget(image.crop(tile.box), target, hard_cap, settings)
        except (OSError, ValueError) as exc:
            logging.error("Failed to encode tile (%d, %d): %s", tile.column, tile.row, exc)
        grid[tile.row][tile.column] = encoded
    return grid


__all__ = [
    "EncodedTile",
    "JPEG_MIME",
    "encode_jpeg",
    "encode_under_budget",
    "slice_and_encode",
]
