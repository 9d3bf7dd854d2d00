"""Grid layout computation for board items.

This module is a pure-Python description of how an ordered sequence of
rectangles is packed into a grid.  It supports uniform cells (every cell as
large as the largest item) and variable cells (each row as tall as its
tallest item, items packed left to right), and four anchor corners.  It does
not talk to the board, so it can be unit tested without a host.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from .config import AnchorCorner, CellMode, SizeMode

Size = Tuple[float, float]


@dataclass(frozen=True, slots=True)
class LayoutConfig:
    """Parameters of one layout pass."""

    columns: int
    horizontal_gap: float = 0.0
    vertical_gap: float = 0.0
    size_mode: SizeMode = SizeMode.NONE
    anchor_corner: AnchorCorner = AnchorCorner.TOP_LEFT
    cell_mode: CellMode = CellMode.VARIABLE


@dataclass(frozen=True, slots=True)
class Bounds:
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @classmethod
    def around(cls, x: float, y: float) -> "Bounds":
        """Zero-size box at a point, used when placing new items."""
        return cls(x, y, x, y)

    @classmethod
    def of_items(cls, items: Iterable) -> "Bounds":
        """Bounding box of objects exposing center ``x``/``y`` and size."""
        boxes = [
            (
                item.x - item.width / 2,
                item.y - item.height / 2,
                item.x + item.width / 2,
                item.y + item.height / 2,
            )
            for item in items
        ]
        if not boxes:
            raise ValueError("Cannot compute bounds of an empty selection")
        return cls(
            min(b[0] for b in boxes),
            min(b[1] for b in boxes),
            max(b[2] for b in boxes),
            max(b[3] for b in boxes),
        )


@dataclass(frozen=True, slots=True)
class LayoutSlot:
    """Target slot of the item at ``index`` in the ordered input."""

    index: int
    column: int
    row: int
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class GridGeometry:
    """Canonical (top-left anchored) geometry before mirroring."""

    width: float
    height: float
    rows: int
    centers: Tuple[Tuple[float, float], ...]


def normalized_sizes(sizes: Sequence[Size], mode: SizeMode) -> List[Size]:
    """Return sizes scaled to a common width or height, keeping aspect ratio."""
    sizes = [(float(w), float(h)) for w, h in sizes]
    if not sizes or mode == SizeMode.NONE:
        return sizes
    if mode == SizeMode.WIDTH:
        target = min(w for w, _ in sizes)
        return [(target, h * target / w if w else h) for w, h in sizes]
    target = min(h for _, h in sizes)
    return [(w * target / h if h else w, target) for w, h in sizes]


class GridLayout:
    """Compute target centers for an ordered sequence of sizes."""

    def __init__(self, config: LayoutConfig):
        self.config = config
        # Last-resort clamp; invalid values are rejected by the settings validators.
        self.columns = max(1, int(config.columns))

    def _rows_of(self, count: int) -> int:
        return math.ceil(count / self.columns)

    def _uniform(self, sizes: Sequence[Size]) -> GridGeometry:
        cols = self.columns
        rows = self._rows_of(len(sizes))
        cell_w = max(w for w, _ in sizes)
        cell_h = max(h for _, h in sizes)
        hgap, vgap = self.config.horizontal_gap, self.config.vertical_gap
        width = cols * cell_w + (cols - 1) * hgap
        height = rows * cell_h + (rows - 1) * vgap
        flip_x, flip_y = self._flips()
        centers = []
        for i in range(len(sizes)):
            row, col = divmod(i, cols)
            # Uniform cells: mirroring the index equals mirroring the coordinate.
            if flip_x:
                col = cols - 1 - col
            if flip_y:
                row = rows - 1 - row
            centers.append(
                (col * (cell_w + hgap) + cell_w / 2, row * (cell_h + vgap) + cell_h / 2)
            )
        return GridGeometry(width, height, rows, tuple(centers))

    def _variable(self, sizes: Sequence[Size]) -> GridGeometry:
        cols = self.columns
        rows = self._rows_of(len(sizes))
        hgap, vgap = self.config.horizontal_gap, self.config.vertical_gap
        row_heights = [0.0] * rows
        row_widths = [0.0] * rows
        for i, (w, h) in enumerate(sizes):
            r = i // cols
            row_heights[r] = max(row_heights[r], h)
            if row_widths[r] > 0:
                row_widths[r] += hgap
            row_widths[r] += w

        width = max(row_widths) if row_widths else 0.0
        height = sum(row_heights) + vgap * max(0, rows - 1)

        row_top = [0.0] * rows
        for r in range(1, rows):
            row_top[r] = row_top[r - 1] + row_heights[r - 1] + vgap

        flip_x, flip_y = self._flips()
        cursor = [0.0] * rows
        centers = []
        for i, (w, _h) in enumerate(sizes):
            r = i // cols
            x0 = cursor[r] + w / 2
            y0 = row_top[r] + row_heights[r] / 2
            cursor[r] += w + hgap
            # Variable cells must mirror coordinates about the grid bounds.
            if flip_x:
                x0 = width - x0
            if flip_y:
                y0 = height - y0
            centers.append((x0, y0))
        return GridGeometry(width, height, rows, tuple(centers))

    def _flips(self) -> Tuple[bool, bool]:
        corner = AnchorCorner(self.config.anchor_corner)
        flip_x = corner in (AnchorCorner.TOP_RIGHT, AnchorCorner.BOTTOM_RIGHT)
        flip_y = corner in (AnchorCorner.BOTTOM_LEFT, AnchorCorner.BOTTOM_RIGHT)
        return flip_x, flip_y

    def geometry(self, sizes: Sequence[Size]) -> GridGeometry:
        if not sizes:
            return GridGeometry(0.0, 0.0, 0, ())
        if CellMode(self.config.cell_mode) == CellMode.UNIFORM:
            return self._uniform(sizes)
        return self._variable(sizes)

    def compute(self, sizes: Sequence[Size], anchor: Bounds) -> List[LayoutSlot]:
        """Return one slot per size, positioned relative to ``anchor``.

        ``sizes`` must already be normalized.  The grid is attached to the
        configured corner of ``anchor`` and grows away from it.
        """
        geometry = self.geometry(sizes)
        if not geometry.centers:
            return []
        flip_x, flip_y = self._flips()
        origin_left = anchor.right - geometry.width if flip_x else anchor.left
        origin_top = anchor.bottom - geometry.height if flip_y else anchor.top
        slots = []
        for i, (x0, y0) in enumerate(geometry.centers):
            row, col = divmod(i, self.columns)
            if flip_x:
                col = self.columns - 1 - col
            if flip_y:
                row = geometry.rows - 1 - row
            slots.append(LayoutSlot(i, col, row, origin_left + x0, origin_top + y0))
        return slots


def compute_layout(sizes: Sequence[Size], config: LayoutConfig, anchor: Bounds) -> List[LayoutSlot]:
    """Normalize ``sizes`` per ``config.size_mode`` and lay them out."""
    return GridLayout(config).compute(normalized_sizes(sizes, config.size_mode), anchor)


__all__ = [
    "Bounds",
    "GridGeometry",
    "GridLayout",
    "LayoutConfig",
    "LayoutSlot",
    "compute_layout",
    "normalized_sizes",
]
