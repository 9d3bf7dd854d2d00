"""Control panel with the Sorting and Stitch forms."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

from PySide6.QtCore import Signal
from PySide6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QFileDialog,
    QFormLayout,
    QFrame,
    QLabel,
    QProgressBar,
    QPushButton,
    QSizePolicy,
    QSpinBox,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from .. import config
from ..config import AnchorCorner, CellMode, SizeMode, SortMode

SIZE_MODE_CHOICES: Tuple[Tuple[str, SizeMode], ...] = (
    ("Keep sizes", SizeMode.NONE),
    ("Same width", SizeMode.WIDTH),
    ("Same height", SizeMode.HEIGHT),
)
ANCHOR_CHOICES: Tuple[Tuple[str, AnchorCorner], ...] = (
    ("Top left", AnchorCorner.TOP_LEFT),
    ("Top right", AnchorCorner.TOP_RIGHT),
    ("Bottom left", AnchorCorner.BOTTOM_LEFT),
    ("Bottom right", AnchorCorner.BOTTOM_RIGHT),
)
SORT_MODE_CHOICES: Tuple[Tuple[str, SortMode], ...] = (
    ("By number", SortMode.NUMBER),
    ("By color", SortMode.COLOR),
)
CELL_MODE_CHOICES: Tuple[Tuple[str, CellMode], ...] = (
    ("Pack rows", CellMode.VARIABLE),
    ("Uniform cells", CellMode.UNIFORM),
)
FILE_FILTER = "Images (*.png *.jpg *.jpeg *.gif *.webp *.bmp *.tif *.tiff)"


@dataclass(frozen=True)
class GridDefaults:
    """Initial values of the grid controls on both tabs."""

    columns: int = config.DEFAULT_COLUMNS
    horizontal_gap: int = config.DEFAULT_HORIZONTAL_GAP
    vertical_gap: int = config.DEFAULT_VERTICAL_GAP


def _combo(choices: Sequence[Tuple[str, object]]) -> QComboBox:
    combo = QComboBox()
    for label, value in choices:
        combo.addItem(label, value.value)
    return combo


def _spin(minimum: int, maximum: int, value: int) -> QSpinBox:
    spin = QSpinBox()
    spin.setRange(minimum, maximum)
    spin.setValue(value)
    spin.setFixedWidth(90)
    return spin


class ControlPanel(QFrame):
    """Two tabs of settings plus a shared progress area."""

    sortRequested = Signal()
    stitchRequested = Signal()
    filesChosen = Signal(list)

    def __init__(self, *, grid_defaults: GridDefaults = GridDefaults(), parent=None) -> None:
        super().__init__(parent)
        self._grid_defaults = grid_defaults
        self._selected_files: List[str] = []

        self.setObjectName("controlPanel")
        self.setSizePolicy(QSizePolicy.Expanding, QSizePolicy.Fixed)
        self._build_layout()

    # Public control accessors -------------------------------------------------
    @property
    def sort_columns_spin(self) -> QSpinBox:
        return self._sort_columns_spin

    @property
    def sort_hgap_spin(self) -> QSpinBox:
        return self._sort_hgap_spin

    @property
    def sort_vgap_spin(self) -> QSpinBox:
        return self._sort_vgap_spin

    @property
    def size_mode_combo(self) -> QComboBox:
        return self._size_mode_combo

    @property
    def sort_anchor_combo(self) -> QComboBox:
        return self._sort_anchor_combo

    @property
    def sort_mode_combo(self) -> QComboBox:
        return self._sort_mode_combo

    @property
    def sort_cell_mode_combo(self) -> QComboBox:
        return self._sort_cell_mode_combo

    @property
    def stitch_columns_spin(self) -> QSpinBox:
        return self._stitch_columns_spin

    @property
    def stitch_hgap_spin(self) -> QSpinBox:
        return self._stitch_hgap_spin

    @property
    def stitch_vgap_spin(self) -> QSpinBox:
        return self._stitch_vgap_spin

    @property
    def stitch_anchor_combo(self) -> QComboBox:
        return self._stitch_anchor_combo

    @property
    def stitch_cell_mode_combo(self) -> QComboBox:
        return self._stitch_cell_mode_combo

    @property
    def skip_missing_checkbox(self) -> QCheckBox:
        return self._skip_missing_chk

    @property
    def progress_bar(self) -> QProgressBar:
        return self._progress_bar

    @property
    def selected_files(self) -> List[str]:
        return list(self._selected_files)

    # View API used by the presenter ------------------------------------------
    def set_selected_files(self, paths: Sequence[str]) -> None:
        self._selected_files = [str(p) for p in paths]
        count = len(self._selected_files)
        if count == 0:
            self._files_label.setText("No files selected")
        elif count == 1:
            self._files_label.setText(Path(self._selected_files[0]).name)
        else:
            self._files_label.setText(f"{count} files selected")
        self.filesChosen.emit(self.selected_files)

    def set_progress(self, percent: int, text: str) -> None:
        self._progress_bar.setValue(max(0, min(100, int(percent))))
        self._progress_label.setText(text)

    def set_busy(self, busy: bool) -> None:
        for button in (self._sort_btn, self._stitch_btn, self._choose_btn):
            button.setEnabled(not busy)

    def show_status(self, text: str, error: bool = False) -> None:
        self._status_label.setText(text)
        self._status_label.setProperty("error", "true" if error else "false")
        self._status_label.setStyleSheet("color: #b91c1c;" if error else "")

    def status_text(self) -> str:
        return self._status_label.text()

    def progress_text(self) -> str:
        return self._progress_label.text()

    # Layout builders ---------------------------------------------------------
    def _build_layout(self) -> None:
        layout = QVBoxLayout(self)
        layout.setContentsMargins(4, 4, 4, 4)
        layout.setSpacing(8)

        self._tabs = QTabWidget()
        self._tabs.addTab(self._build_sorting_tab(), "Sorting")
        self._tabs.addTab(self._build_stitch_tab(), "Stitch")
        layout.addWidget(self._tabs)

        self._progress_bar = QProgressBar()
        self._progress_bar.setRange(0, 100)
        self._progress_bar.setValue(0)
        layout.addWidget(self._progress_bar)

        self._progress_label = QLabel("")
        layout.addWidget(self._progress_label)

        self._status_label = QLabel("")
        self._status_label.setWordWrap(True)
        layout.addWidget(self._status_label)

    def _grid_rows(self, form: QFormLayout) -> Tuple[QSpinBox, QSpinBox, QSpinBox]:
        defaults = self._grid_defaults
        columns = _spin(1, config.MAX_COLUMNS, defaults.columns)
        hgap = _spin(0, config.MAX_GAP, defaults.horizontal_gap)
        vgap = _spin(0, config.MAX_GAP, defaults.vertical_gap)
        form.addRow("Images per row:", columns)
        form.addRow("Horizontal gap:", hgap)
        form.addRow("Vertical gap:", vgap)
        return columns, hgap, vgap

    def _build_sorting_tab(self) -> QWidget:
        tab = QWidget()
        form = QFormLayout(tab)
        self._sort_columns_spin, self._sort_hgap_spin, self._sort_vgap_spin = self._grid_rows(form)

        self._size_mode_combo = _combo(SIZE_MODE_CHOICES)
        form.addRow("Size:", self._size_mode_combo)
        self._sort_anchor_combo = _combo(ANCHOR_CHOICES)
        form.addRow("Start corner:", self._sort_anchor_combo)
        self._sort_mode_combo = _combo(SORT_MODE_CHOICES)
        form.addRow("Order:", self._sort_mode_combo)
        self._sort_cell_mode_combo = _combo(CELL_MODE_CHOICES)
        form.addRow("Cells:", self._sort_cell_mode_combo)

        self._sort_btn = QPushButton("Sort and align selection")
        self._sort_btn.clicked.connect(self.sortRequested.emit)
        form.addRow(self._sort_btn)
        return tab

    def _build_stitch_tab(self) -> QWidget:
        tab = QWidget()
        form = QFormLayout(tab)

        self._choose_btn = QPushButton("Choose images…")
        self._choose_btn.clicked.connect(self._choose_files)
        self._files_label = QLabel("No files selected")
        form.addRow(self._choose_btn, self._files_label)

        self._stitch_columns_spin, self._stitch_hgap_spin, self._stitch_vgap_spin = self._grid_rows(form)
        self._stitch_anchor_combo = _combo(ANCHOR_CHOICES)
        form.addRow("Start corner:", self._stitch_anchor_combo)
        self._stitch_cell_mode_combo = _combo(CELL_MODE_CHOICES)
        form.addRow("Cells:", self._stitch_cell_mode_combo)

        self._skip_missing_chk = QCheckBox("Upload remaining tiles if a tile fails")
        self._skip_missing_chk.setChecked(True)
        form.addRow(self._skip_missing_chk)

        self._stitch_btn = QPushButton("Import and stitch")
        self._stitch_btn.clicked.connect(self.stitchRequested.emit)
        form.addRow(self._stitch_btn)
        return tab

    def _choose_files(self) -> None:
        paths, _ = QFileDialog.getOpenFileNames(self, "Choose images", "", FILE_FILTER)
        if paths:
            self.set_selected_files(paths)


__all__ = ["ControlPanel", "GridDefaults"]
