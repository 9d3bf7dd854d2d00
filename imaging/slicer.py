"""Slice planning for images larger than a board widget may be.

A :class:`SlicePlan` partitions a source into a grid of tiles no larger than
the tile edge.  Tiles in the last column and row hold the remainder and are
never padded, so the union of all tiles is exactly the source rectangle.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from itertools import accumulate
from typing import Callable, Iterator, List, Optional, Tuple

import psutil

from board_tools.config import SliceSettings

logger = logging.getLogger("board_tools.imaging.slicer")


class ImageTooLargeError(ValueError):
    """Raised for sources that cannot be handled at any tile size."""


@dataclass(frozen=True, slots=True)
class TileRect:
    column: int
    row: int
    left: int
    top: int
    width: int
    height: int

    @property
    def box(self) -> Tuple[int, int, int, int]:
        """Pillow crop box ``(left, upper, right, lower)``."""
        return self.left, self.top, self.left + self.width, self.top + self.height


@dataclass(frozen=True, slots=True)
class TilePlacement:
    column: int
    row: int
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class SlicePlan:
    source_width: int
    source_height: int
    tile_edge: int
    tiles_x: int
    tiles_y: int
    col_widths: Tuple[int, ...]
    row_heights: Tuple[int, ...]

    @property
    def tile_count(self) -> int:
        return self.tiles_x * self.tiles_y

    def col_offsets(self) -> List[int]:
        return [0, *accumulate(self.col_widths)][:-1]

    def row_offsets(self) -> List[int]:
        return [0, *accumulate(self.row_heights)][:-1]

    def tiles(self) -> Iterator[TileRect]:
        """Yield tiles row by row, left to right."""
        col_offsets = self.col_offsets()
        for row, (top, height) in enumerate(zip(self.row_offsets(), self.row_heights)):
            for col, (left, width) in enumerate(zip(col_offsets, self.col_widths)):
                yield TileRect(col, row, left, top, width, height)


def needs_slicing(width: int, height: int, settings: SliceSettings) -> bool:
    """Each axis has its own threshold; exceeding either one slices."""
    return width > settings.width_threshold or height > settings.height_threshold


def resolve_tile_edge(
    settings: SliceSettings, probe: Optional[Callable[[], int]] = None
) -> int:
    """Tile edge bounded by the platform's maximum texture edge.

    ``probe`` reports that maximum; when it is missing or fails the
    conservative fallback applies.
    """
    limit = settings.fallback_max_edge
    if probe is not None:
        try:
            probed = int(probe())
        except (OSError, RuntimeError, ValueError, TypeError) as exc:
            logger.warning("Texture size probe failed, using %d: %s", limit, exc)
        else:
            if probed > 0:
                limit = probed
    return max(1, min(settings.tile_edge, limit))


def check_source_size(width: int, height: int, settings: SliceSettings) -> None:
    if width <= 0 or height <= 0:
        raise ImageTooLargeError(f"Image has no pixels ({width}x{height})")
    if max(width, height) > settings.max_source_edge:
        raise ImageTooLargeError(
            f"Image is {width}x{height} px; the largest supported edge is "
            f"{settings.max_source_edge} px"
        )


def check_memory_budget(
    width: int, height: int, settings: SliceSettings, available: Optional[int] = None
) -> None:
    """Refuse to decode a source whose bitmap would crowd out the process."""
    if available is None:
        available = psutil.virtual_memory().available
    needed = width * height * 4
    budget = int(available * settings.memory_headroom)
    if needed > budget:
        raise ImageTooLargeError(
            f"Decoding {width}x{height} px needs about {needed >> 20} MB; "
            f"only {budget >> 20} MB can be spared"
        )


def _split(length: int, edge: int) -> Tuple[int, ...]:
    count = math.ceil(length / edge)
    return tuple([edge] * (count - 1) + [length - (count - 1) * edge])


def plan_slice(width: int, height: int, tile_edge: int) -> SlicePlan:
    if width <= 0 or height <= 0:
        raise ValueError("Source dimensions must be positive")
    if tile_edge <= 0:
        raise ValueError("Tile edge must be positive")
    col_widths = _split(width, tile_edge)
    row_heights = _split(height, tile_edge)
    return SlicePlan(
        source_width=width,
        source_height=height,
        tile_edge=tile_edge,
        tiles_x=len(col_widths),
        tiles_y=len(row_heights),
        col_widths=col_widths,
        row_heights=row_heights,
    )


def plan_mosaic_placement(
    plan: SlicePlan, center: Tuple[float, float], scale: float = 1.0
) -> List[TilePlacement]:
    """Centers of all tiles placed edge to edge around ``center``."""
    cx, cy = center
    left = cx - plan.source_width * scale / 2
    top = cy - plan.source_height * scale / 2
    placements = []
    for tile in plan.tiles():
        w = tile.width * scale
        h = tile.height * scale
        placements.append(
            TilePlacement(
                column=tile.column,
                row=tile.row,
                x=left + tile.left * scale + w / 2,
                y=top + tile.top * scale + h / 2,
                width=w,
                height=h,
            )
        )
    return placements


__all__ = [
    "ImageTooLargeError",
    "SlicePlan",
    "TilePlacement",
    "TileRect",
    "check_memory_budget",
    "check_source_size",
    "needs_slicing",
    "plan_mosaic_placement",
    "plan_slice",
    "resolve_tile_edge",
]
