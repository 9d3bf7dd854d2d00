import asyncio
import logging

from board_tools.config import AnchorCorner, SizeMode, SortMode, SortSettings
from board_tools.controllers.sorting import FAILURE_TEXT, SortingController, align_items
from board_tools.grid_layout import LayoutConfig
from board_tools.host import InMemoryBoard


def _run(board, settings):
    return asyncio.run(SortingController(board).run(settings))


def _persisted_xy(board, item):
    state = board.persisted_state(item.id)
    return state["x"], state["y"]


def test_sorts_by_number_and_aligns_from_bounding_box():
    board = InMemoryBoard()
    third = board.add_item("img3", x=500, y=500)
    first = board.add_item("img1", x=0, y=0)
    second = board.add_item("img2", x=250, y=0)

    result = _run(board, SortSettings(columns=3))

    assert result.ok
    assert result.report.items == [first, second, third]
    # The selection spans (-50, -50)..(550, 550); the grid starts at its top-left.
    assert _persisted_xy(board, first) == (0, 0)
    assert _persisted_xy(board, second) == (100, 0)
    assert _persisted_xy(board, third) == (200, 0)
    assert board.notifications[-1] == ("info", "Done: aligned 3 images.")


def test_bottom_right_anchor_keeps_grid_inside_selection_corner():
    board = InMemoryBoard()
    a = board.add_item("a1", x=0, y=0)
    b = board.add_item("a2", x=300, y=300)

    _run(board, SortSettings(columns=1, anchor_corner=AnchorCorner.BOTTOM_RIGHT))

    # Bounds (-50, -50)..(350, 350); first item sits in the bottom-right cell.
    assert _persisted_xy(board, a) == (300, 300)
    assert _persisted_xy(board, b) == (300, 200)


def test_size_mode_persists_new_sizes_before_positions():
    board = InMemoryBoard()
    wide = board.add_item("p1", width=100, height=50)
    square = board.add_item("p2", x=400, width=200, height=200)

    _run(board, SortSettings(columns=2, size_mode=SizeMode.WIDTH))

    assert board.persisted_state(square.id)["width"] == 100
    assert board.persisted_state(square.id)["height"] == 100
    assert board.persisted_state(wide.id)["height"] == 50


def test_untitled_selection_is_numbered_first():
    board = InMemoryBoard()
    right = board.add_item("", x=300, y=0)
    left = board.add_item("", x=0, y=0)

    _run(board, SortSettings(columns=2))

    assert board.persisted_state(left.id)["title"] == "1"
    assert board.persisted_state(right.id)["title"] == "2"


def test_sorts_by_color_code():
    board = InMemoryBoard()
    red = board.add_item("C80/700 red.png")
    white = board.add_item("C00/000 white.png", x=300)
    black = board.add_item("C00/999 black.png", x=600)

    result = _run(board, SortSettings(columns=3, sort_mode=SortMode.COLOR))

    assert result.report.items == [white, black, red]
    assert board.notifications[0] == ("info", "Sorting by color…")


def test_empty_selection_is_informational():
    board = InMemoryBoard()
    board.add_item("sticky", item_type="sticky_note")

    result = _run(board, SortSettings())

    assert not result.ok
    assert board.notifications == [("info", "Select at least one image on the board.")]


def test_invalid_settings_are_reported_before_changes():
    board = InMemoryBoard()
    item = board.add_item("img1", x=5)

    result = _run(board, SortSettings(columns=0))

    assert not result.ok
    assert board.notifications == [("error", "Images per row must be greater than 0.")]
    assert board.persisted_state(item.id)["x"] == 5


def test_unexpected_failure_is_logged_with_generic_notice(caplog):
    class BrokenBoard(InMemoryBoard):
        async def get_selection(self):
            raise RuntimeError("host disconnected")

    board = BrokenBoard()

    with caplog.at_level(logging.ERROR):
        result = _run(board, SortSettings())

    assert not result.ok
    assert result.message == FAILURE_TEXT
    assert board.notifications == [("error", FAILURE_TEXT)]
    assert "host disconnected" in caplog.text


def test_align_items_without_items():
    assert asyncio.run(align_items([], LayoutConfig(columns=3))) == []
