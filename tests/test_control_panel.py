import pytest

QtWidgets = pytest.importorskip("PySide6.QtWidgets")

from board_tools.config import SortSettings, StitchSettings
from board_tools.presenter import ToolsPresenter
from board_tools.widgets.control_panel import ControlPanel, GridDefaults


@pytest.fixture
def app():
    if not QtWidgets.QApplication.instance():
        return QtWidgets.QApplication([])
    return QtWidgets.QApplication.instance()


@pytest.fixture
def panel(app):
    widget = ControlPanel(grid_defaults=GridDefaults(columns=5, horizontal_gap=8, vertical_gap=2))
    yield widget
    widget.close()


def test_defaults_read_back_as_settings(panel):
    presenter = ToolsPresenter(panel, board_factory=None, runner=lambda *a, **k: None)

    assert presenter.read_sort_settings() == SortSettings(columns=5, horizontal_gap=8.0, vertical_gap=2.0)
    assert presenter.read_stitch_settings() == StitchSettings(columns=5, horizontal_gap=8.0, vertical_gap=2.0)


def test_combos_carry_enum_values(panel):
    panel.sort_mode_combo.setCurrentIndex(1)
    panel.size_mode_combo.setCurrentIndex(2)
    panel.stitch_anchor_combo.setCurrentIndex(3)

    assert panel.sort_mode_combo.currentData() == "color"
    assert panel.size_mode_combo.currentData() == "height"
    assert panel.stitch_anchor_combo.currentData() == "bottom-right"


def test_spin_ranges_match_limits(panel):
    assert panel.sort_columns_spin.minimum() == 1
    assert panel.sort_columns_spin.maximum() == 500
    assert panel.stitch_hgap_spin.minimum() == 0
    assert panel.stitch_hgap_spin.maximum() == 10_000


def test_selected_files_label(panel):
    chosen = []
    panel.filesChosen.connect(chosen.append)

    panel.set_selected_files(["/tmp/a.png", "/tmp/b.png", "/tmp/c.png"])
    assert panel._files_label.text() == "3 files selected"
    panel.set_selected_files(["/tmp/a.png"])
    assert panel._files_label.text() == "a.png"
    panel.set_selected_files([])
    assert panel._files_label.text() == "No files selected"
    assert chosen[0] == ["/tmp/a.png", "/tmp/b.png", "/tmp/c.png"]


def test_progress_and_status(panel):
    panel.set_progress(140, "Uploading 3 / 3… ~0s left")
    assert panel.progress_bar.value() == 100
    assert panel.progress_text() == "Uploading 3 / 3… ~0s left"

    panel.show_status("Please choose one or more image files.", error=True)
    assert panel.status_text() == "Please choose one or more image files."


def test_busy_disables_actions_and_buttons_emit(panel):
    requested = []
    panel.sortRequested.connect(lambda: requested.append("sort"))
    panel.stitchRequested.connect(lambda: requested.append("stitch"))

    panel._sort_btn.click()
    panel._stitch_btn.click()
    panel.set_busy(True)

    assert requested == ["sort", "stitch"]
    assert not panel._sort_btn.isEnabled()
    assert not panel._stitch_btn.isEnabled()
    panel.set_busy(False)
    assert panel._sort_btn.isEnabled()
