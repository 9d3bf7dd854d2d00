"""
ToolsPresenter: reads the control panel, starts board operations in the
background and reflects their progress and outcome in the view.
"""
import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Union

from imaging.validation import collect_image_files

from .config import (
    AnchorCorner,
    CellMode,
    ConfigurationError,
    SizeMode,
    SortMode,
    SortSettings,
    StitchSettings,
    ToolSettings,
    validate_sort_settings,
    validate_stitch_settings,
)
from .controllers import OperationResult, SortingController, SourceFile, StitchController
from .scheduler import ProgressUpdate
from .workers import start_worker

NO_FILES_TEXT = "Please choose one or more image files."


class ToolsPresenter:
    def __init__(
        self,
        view,
        board_factory: Callable[[], Any],
        *,
        runner: Callable[..., Any] = start_worker,
        settings: Optional[ToolSettings] = None,
    ):
        self.view = view
        self.board_factory = board_factory
        self.runner = runner
        self.settings = settings or ToolSettings()
        self.busy = False
        self.last_result: Optional[OperationResult] = None
        self.logger = logging.getLogger("board_tools.presenter")

    # Settings -----------------------------------------------------------------
    def read_sort_settings(self) -> SortSettings:
        settings = SortSettings(
            columns=int(self.view.sort_columns_spin.value()),
            horizontal_gap=float(self.view.sort_hgap_spin.value()),
            vertical_gap=float(self.view.sort_vgap_spin.value()),
            size_mode=SizeMode(self.view.size_mode_combo.currentData()),
            anchor_corner=AnchorCorner(self.view.sort_anchor_combo.currentData()),
            sort_mode=SortMode(self.view.sort_mode_combo.currentData()),
            cell_mode=CellMode(self.view.sort_cell_mode_combo.currentData()),
        )
        return validate_sort_settings(settings)

    def read_stitch_settings(self) -> StitchSettings:
        settings = StitchSettings(
            columns=int(self.view.stitch_columns_spin.value()),
            horizontal_gap=float(self.view.stitch_hgap_spin.value()),
            vertical_gap=float(self.view.stitch_vgap_spin.value()),
            anchor_corner=AnchorCorner(self.view.stitch_anchor_combo.currentData()),
            cell_mode=CellMode(self.view.stitch_cell_mode_combo.currentData()),
            skip_missing_tiles=bool(self.view.skip_missing_checkbox.isChecked()),
        )
        return validate_stitch_settings(settings)

    # Operations ---------------------------------------------------------------
    def submit_sorting(self) -> bool:
        if self.busy:
            return False
        try:
            sort_settings = self.read_sort_settings()
        except ConfigurationError as exc:
            self.view.show_status(str(exc), error=True)
            return False

        async def job(emit):
            async with self.board_factory() as board:
                return await SortingController(board, self.settings).run(sort_settings)

        self._start(job, "Sorting…")
        return True

    def submit_stitch(self, paths: Optional[Sequence[Union[str, Path]]] = None) -> bool:
        if self.busy:
            return False
        try:
            stitch_settings = self.read_stitch_settings()
        except ConfigurationError as exc:
            self.view.show_status(str(exc), error=True)
            return False

        files = collect_image_files(self.view.selected_files if paths is None else paths)
        if not files:
            self.view.show_status(NO_FILES_TEXT, error=True)
            return False

        async def job(emit):
            sources = _read_sources(files, self.logger)
            async with self.board_factory() as board:
                controller = StitchController(board, self.settings, progress=emit)
                return await controller.run(sources, stitch_settings)

        self._start(job, f"Importing {len(files)} file(s)…")
        return True

    def _start(self, job, status: str) -> None:
        self.busy = True
        self.last_result = None
        self.view.set_busy(True)
        self.view.set_progress(0, status)
        self.runner(
            job,
            on_result=self.on_result,
            on_progress=self.on_progress,
            on_error=self.on_error,
            on_finished=self.on_finished,
        )

    # Worker callbacks ---------------------------------------------------------
    def on_progress(self, update: ProgressUpdate) -> None:
        self.view.set_progress(update.percent, update.text)

    def on_result(self, result: OperationResult) -> None:
        self.last_result = result
        if result.ok:
            self.view.set_progress(100, result.message)
        self.view.show_status(result.message, error=not result.ok)

    def on_error(self, message: str) -> None:
        self.logger.error("Operation failed: %s", message)
        self.view.show_status(f"Operation failed: {message}", error=True)

    def on_finished(self) -> None:
        self.busy = False
        self.view.set_busy(False)
        if self.last_result is None or not self.last_result.ok:
            self.view.set_progress(0, "")


def _read_sources(files: Sequence[Path], logger: logging.Logger) -> List[SourceFile]:
    sources = []
    for path in files:
        try:
            sources.append(SourceFile.from_path(path))
        except OSError as exc:
            logger.warning("Could not read %s: %s", path, exc)
    return sources


__all__ = ["NO_FILES_TEXT", "ToolsPresenter"]
