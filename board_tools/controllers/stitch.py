"""Stitch: import local images, color-code them and lay them out on the board.

Each source is checked, decoded and classified one at a time.  Oversized
sources are cut into tiles while their pixels are in memory, so at most one
full bitmap is held at once.  Widgets are created by the upload scheduler
after the whole grid is known.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from imaging.color_analysis import ColorClass, classify_color
from imaging.encoding import EncodedTile, encode_under_budget, slice_and_encode
from imaging.image_operations import ImageDecodeError, decode_image, mime_type, open_image
from imaging.slicer import (
    ImageTooLargeError,
    SlicePlan,
    check_memory_budget,
    check_source_size,
    needs_slicing,
    plan_mosaic_placement,
    plan_slice,
    resolve_tile_edge,
)

from ..color_code import encode_title
from ..config import SizeMode, StitchSettings, ToolSettings, validate_stitch_settings
from ..grid_layout import Bounds, GridLayout, LayoutConfig, LayoutSlot
from ..host import Board, ImagePayload
from ..ordering import order_files_by_name
from ..scheduler import ProgressSink, ProgressThrottle, ProgressUpdate, UploadReport, UploadScheduler
from .common import OperationResult, UserInputError, notify, plural, run_guarded

logger = logging.getLogger("board_tools.controllers.stitch")

FAILURE_TEXT = "Something went wrong while importing images. Please check the log."

# Formats the board accepts as uploaded; anything else is re-encoded.
PASSTHROUGH_FORMATS = frozenset({"PNG", "JPEG", "GIF", "WEBP"})


@dataclass(frozen=True)
class SourceFile:
    name: str
    data: bytes

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "SourceFile":
        path = Path(path)
        return cls(path.name, path.read_bytes())


@dataclass
class PreparedSource:
    """A decoded and classified source, ready to be placed."""

    name: str
    title: str
    width: int
    height: int
    color: ColorClass
    data: bytes = b""
    content_type: str = "image/png"
    plan: Optional[SlicePlan] = None
    tiles: List[List[Optional[EncodedTile]]] = field(default_factory=list)

    @property
    def sliced(self) -> bool:
        return self.plan is not None

    @property
    def missing_tiles(self) -> int:
        return sum(1 for row in self.tiles for tile in row if tile is None)


@dataclass
class Rejection:
    name: str
    reason: str


@dataclass
class StitchReport:
    placed: List[PreparedSource] = field(default_factory=list)
    rejected: List[Rejection] = field(default_factory=list)
    upload: Optional[UploadReport] = None

    @property
    def created(self) -> List[Any]:
        return self.upload.created if self.upload else []

    def summary(self) -> str:
        message = f"Imported and stitched {plural(len(self.placed), 'image')}."
        if self.rejected:
            message += f" Skipped {plural(len(self.rejected), 'file')}."
        failed = len(self.upload.failed) if self.upload else 0
        if failed:
            message += f" {plural(failed, 'widget')} could not be created."
        return message


def stitch_layout_config(settings: StitchSettings) -> LayoutConfig:
    """Grid for imported images; they keep their natural size."""
    return LayoutConfig(
        columns=settings.columns,
        horizontal_gap=settings.horizontal_gap,
        vertical_gap=settings.vertical_gap,
        size_mode=SizeMode.NONE,
        anchor_corner=settings.anchor_corner,
        cell_mode=settings.cell_mode,
    )


class StitchController:
    """Runs the Stitch tab against a board."""

    def __init__(
        self,
        board: Board,
        settings: Optional[ToolSettings] = None,
        *,
        progress: Optional[ProgressSink] = None,
        rng: Optional[random.Random] = None,
        texture_probe: Optional[Callable[[], int]] = None,
        memory_available: Optional[Callable[[], int]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.board = board
        self.settings = settings or ToolSettings()
        self.progress = progress
        self.rng = rng
        self.texture_probe = texture_probe
        self.memory_available = memory_available
        self.clock = clock
        self.sleep = sleep
        self._analysis_progress = (
            ProgressThrottle(progress, self.settings.eta.throttle_secs, clock=clock)
            if progress is not None
            else None
        )

    def _emit(self, completed: int, total: int, text: str) -> None:
        if self._analysis_progress is not None:
            self._analysis_progress(ProgressUpdate(completed, total, text))

    # ------------------------------------------------------------------
    # Source preparation
    # ------------------------------------------------------------------
    def prepare(self, source: SourceFile, tile_edge: int) -> PreparedSource:
        """Check, decode, classify and (if needed) slice one source.

        Raises :class:`ImageDecodeError` or :class:`ImageTooLargeError` when
        the source has to be rejected.
        """
        slicing = self.settings.slicing
        header = open_image(source.data)
        width, height = header.size
        check_source_size(width, height, slicing)
        available = self.memory_available() if self.memory_available else None
        check_memory_budget(width, height, slicing, available)

        source_format = header.format
        image = decode_image(header)
        color = classify_color(image, self.settings.color)
        title = encode_title(source.name, color.saturation_code, color.brightness_code)
        logger.debug("%s: %dx%d %s -> %s", source.name, image.width, image.height, source_format, title)

        prepared = PreparedSource(
            name=source.name,
            title=title,
            width=image.width,
            height=image.height,
            color=color,
        )
        if needs_slicing(image.width, image.height, slicing):
            prepared.plan = plan_slice(image.width, image.height, tile_edge)
            prepared.tiles = slice_and_encode(image, prepared.plan, slicing)
            logger.info(
                "%s sliced into %d tiles of at most %d px",
                source.name, prepared.plan.tile_count, tile_edge,
            )
        elif source_format in PASSTHROUGH_FORMATS and len(source.data) <= slicing.hard_cap_bytes:
            prepared.data = source.data
            prepared.content_type = mime_type(header)
        else:
            encoded = encode_under_budget(image, slicing.target_bytes, slicing.hard_cap_bytes, slicing)
            prepared.data = encoded.data
            prepared.content_type = encoded.content_type
        image.close()
        return prepared

    async def load_sources(
        self, sources: Sequence[SourceFile], settings: StitchSettings
    ) -> Tuple[List[PreparedSource], List[Rejection]]:
        tile_edge = resolve_tile_edge(self.settings.slicing, self.texture_probe)
        prepared: List[PreparedSource] = []
        rejected: List[Rejection] = []
        total = len(sources)
        for position, source in enumerate(sources, start=1):
            self._emit(position - 1, total, f"Analyzing {position} / {total}…")
            try:
                item = self.prepare(source, tile_edge)
            except (ImageDecodeError, ImageTooLargeError) as exc:
                logger.warning("Rejected %s: %s", source.name, exc)
                rejected.append(Rejection(source.name, str(exc)))
                await notify(self.board, f"Skipped {source.name}: {exc}", error=True)
            else:
                if item.missing_tiles and not settings.skip_missing_tiles:
                    reason = f"{item.missing_tiles} tile(s) could not be encoded"
                    logger.warning("Rejected %s: %s", source.name, reason)
                    rejected.append(Rejection(source.name, reason))
                    await notify(self.board, f"Skipped {source.name}: {reason}", error=True)
                else:
                    prepared.append(item)
            # Decoding and encoding block; let other tasks run between sources.
            await asyncio.sleep(0)
        if self._analysis_progress is not None:
            self._analysis_progress.flush()
        return prepared, rejected

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------
    async def _view_center(self) -> Tuple[float, float]:
        try:
            viewport = await self.board.get_viewport()
        except Exception as exc:
            logger.warning("Viewport unavailable, placing at the origin: %s", exc)
            return 0.0, 0.0
        return viewport.center

    def _metadata(self, source: PreparedSource) -> Dict[str, Any]:
        return {
            "source": source.name,
            "brightness": source.color.brightness_code,
            "saturation": source.color.saturation_code,
        }

    def build_payloads(
        self, sources: Sequence[PreparedSource], slots: Sequence[LayoutSlot]
    ) -> List[ImagePayload]:
        payloads: List[ImagePayload] = []
        for source, slot in zip(sources, slots):
            if not source.sliced:
                payloads.append(
                    ImagePayload(
                        data=source.data,
                        x=slot.x,
                        y=slot.y,
                        width=source.width,
                        height=source.height,
                        title=source.title,
                        content_type=source.content_type,
                        metadata=self._metadata(source),
                    )
                )
                continue
            plan = source.plan
            for placement in plan_mosaic_placement(plan, (slot.x, slot.y)):
                tile = source.tiles[placement.row][placement.column]
                if tile is None:
                    continue
                metadata = self._metadata(source)
                metadata["tile"] = {
                    "column": placement.column,
                    "row": placement.row,
                    "columns": plan.tiles_x,
                    "rows": plan.tiles_y,
                }
                payloads.append(
                    ImagePayload(
                        data=tile.data,
                        x=placement.x,
                        y=placement.y,
                        width=placement.width,
                        height=placement.height,
                        title=f"{source.title} [{placement.row + 1},{placement.column + 1}]",
                        content_type=tile.content_type,
                        metadata=metadata,
                    )
                )
        return payloads

    # ------------------------------------------------------------------
    # Operation
    # ------------------------------------------------------------------
    async def stitch(self, sources: Sequence[SourceFile], settings: StitchSettings) -> StitchReport:
        if not sources:
            raise UserInputError("Please choose one or more image files.")
        validate_stitch_settings(settings)

        center = await self._view_center()
        ordered = order_files_by_name(sources, name_of=lambda s: s.name, rng=self.rng)
        prepared, rejected = await self.load_sources(ordered, settings)
        report = StitchReport(placed=prepared, rejected=rejected)
        if not prepared:
            raise UserInputError("None of the chosen files could be imported.")

        layout = GridLayout(stitch_layout_config(settings))
        slots = layout.compute([(p.width, p.height) for p in prepared], Bounds.around(*center))
        payloads = self.build_payloads(prepared, slots)
        logger.info(
            "Placing %d sources as %d widgets in %d columns",
            len(prepared), len(payloads), layout.columns,
        )

        scheduler = UploadScheduler(
            self.board.create_image,
            retry=self.settings.retry,
            concurrency=self.settings.concurrency,
            eta=self.settings.eta,
            metadata_namespace=self.settings.metadata_namespace,
            progress=self.progress,
            clock=self.clock,
            sleep=self.sleep,
        )
        report.upload = await scheduler.run(payloads)

        if report.created:
            try:
                await self.board.zoom_to(report.created)
            except Exception as exc:
                logger.warning("Could not zoom to the imported images: %s", exc)
        return report

    async def run(self, sources: Sequence[SourceFile], settings: StitchSettings) -> OperationResult:
        async def operation():
            report = await self.stitch(sources, settings)
            return report.summary(), report

        return await run_guarded(self.board, operation, FAILURE_TEXT)


__all__ = [
    "PreparedSource",
    "Rejection",
    "SourceFile",
    "StitchController",
    "StitchReport",
    "stitch_layout_config",
]
