"""Sorting: order the selected images and align them into a grid."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..config import SizeMode, SortMode, SortSettings, ToolSettings, validate_sort_settings
from ..grid_layout import Bounds, GridLayout, LayoutConfig, LayoutSlot, normalized_sizes
from ..host import Board, BoardItem
from ..ordering import order_by_color, order_by_number
from .common import OperationResult, UserInputError, notify, plural, run_guarded

logger = logging.getLogger("board_tools.controllers.sorting")

FAILURE_TEXT = "Something went wrong while aligning images. Please check the log."


@dataclass
class SortReport:
    items: List[BoardItem]
    slots: List[LayoutSlot]
    mode: SortMode


def layout_config_for(settings: SortSettings) -> LayoutConfig:
    return LayoutConfig(
        columns=settings.columns,
        horizontal_gap=settings.horizontal_gap,
        vertical_gap=settings.vertical_gap,
        size_mode=settings.size_mode,
        anchor_corner=settings.anchor_corner,
        cell_mode=settings.cell_mode,
    )


async def align_items(items: Sequence[BoardItem], config: LayoutConfig) -> List[LayoutSlot]:
    """Resize (optionally) and move ``items`` into grid slots, in order.

    New sizes are synced before positions are computed from them.  The grid
    is anchored on the bounding box of the items where they currently are.
    """
    items = list(items)
    if not items:
        return []

    mode = SizeMode(config.size_mode)
    sizes = normalized_sizes([(item.width, item.height) for item in items], mode)
    if mode != SizeMode.NONE:
        for item, (width, height) in zip(items, sizes):
            item.width, item.height = width, height
        await asyncio.gather(*(item.sync() for item in items))

    anchor = Bounds.of_items(items)
    slots = GridLayout(config).compute(sizes, anchor)
    for item, slot in zip(items, slots):
        item.x, item.y = slot.x, slot.y
    await asyncio.gather(*(item.sync() for item in items))
    return slots


class SortingController:
    """Runs the Sorting tab against a board."""

    def __init__(self, board: Board, settings: Optional[ToolSettings] = None):
        self.board = board
        self.settings = settings or ToolSettings()

    async def sort_and_align(self, sort_settings: SortSettings) -> SortReport:
        selection = await self.board.get_selection()
        images = [item for item in selection if getattr(item, "type", "image") == "image"]
        if not images:
            raise UserInputError("Select at least one image on the board.", informational=True)
        validate_sort_settings(sort_settings)

        mode = SortMode(sort_settings.sort_mode)
        if mode == SortMode.COLOR:
            await notify(self.board, "Sorting by color…")
            ordered = order_by_color(images, self.settings.color.gray_threshold)
        else:
            ordered = await order_by_number(images)

        slots = await align_items(ordered, layout_config_for(sort_settings))
        logger.info("Aligned %d images by %s", len(ordered), mode.value)
        return SortReport(ordered, slots, mode)

    async def run(self, sort_settings: SortSettings) -> OperationResult:
        async def operation():
            report = await self.sort_and_align(sort_settings)
            return f"Done: aligned {plural(len(report.items), 'image')}.", report

        return await run_guarded(self.board, operation, FAILURE_TEXT)


__all__ = ["SortReport", "SortingController", "align_items", "layout_config_for"]
