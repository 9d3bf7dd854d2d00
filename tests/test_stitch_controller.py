import asyncio
import logging
import random

import pytest

from board_tools.color_code import parse_title, strip_code
from board_tools.config import AnchorCorner, CellMode, SizeMode, SliceSettings, StitchSettings, ToolSettings
from board_tools.controllers.stitch import SourceFile, StitchController, stitch_layout_config
from board_tools.grid_layout import LayoutConfig
from board_tools.host import InMemoryBoard
from imaging import encoding

from conftest import image_bytes


async def _no_sleep(_delay):
    return None


def _controller(board, settings=None, **kwargs):
    kwargs.setdefault("rng", random.Random(0))
    return StitchController(board, settings or ToolSettings(), sleep=_no_sleep, **kwargs)


def _by_name(board):
    return {strip_code(item.title): item for item in board.items.values()}


def test_imports_numbered_files_into_grid():
    board = InMemoryBoard()
    names = [f"img_{i}.png" for i in range(1, 11)]
    random.Random(3).shuffle(names)
    sources = [SourceFile(name, image_bytes(200, 150, (i * 20, 90, 160))) for i, name in enumerate(names)]

    result = asyncio.run(_controller(board).run(sources, StitchSettings(columns=4)))

    assert result.ok
    assert result.message == "Imported and stitched 10 images."
    assert len(board.items) == 10
    placed = _by_name(board)
    for index in range(10):
        item = placed[f"img_{index + 1}.png"]
        row, column = divmod(index, 4)
        assert (item.x, item.y) == (100 + 200 * column, 75 + 150 * row)
        assert (item.width, item.height) == (200, 150)
        assert parse_title(item.title) is not None
    assert sorted(board.zoomed) == sorted(board.items)
    assert all((item_id, "board-image-tools") in board.metadata for item_id in board.items)


def test_png_bytes_are_uploaded_unchanged():
    board = InMemoryBoard()
    data = image_bytes(40, 30)

    asyncio.run(_controller(board).run([SourceFile("a.png", data)], StitchSettings()))

    (item,) = board.items.values()
    assert item.data == data


def test_other_formats_are_reencoded_as_jpeg():
    controller = _controller(InMemoryBoard())

    prepared = controller.prepare(SourceFile("scan.bmp", image_bytes(40, 30, fmt="BMP")), 4096)

    assert prepared.content_type == "image/jpeg"
    assert prepared.data[:2] == b"\xff\xd8"
    assert prepared.title.endswith(" scan.bmp")


def test_title_carries_color_code():
    controller = _controller(InMemoryBoard())

    prepared = controller.prepare(SourceFile("white.png", image_bytes(40, 30, "white")), 4096)

    assert prepared.title == "C00/000 white.png"


def _slicing_settings():
    return ToolSettings(
        slicing=SliceSettings(width_threshold=100, height_threshold=100, tile_edge=64, fallback_max_edge=64)
    )


def test_oversized_source_is_placed_as_mosaic():
    board = InMemoryBoard()
    source = SourceFile("wide.png", image_bytes(150, 100))

    result = asyncio.run(_controller(board, _slicing_settings()).run([source], StitchSettings()))

    assert result.ok
    tiles = sorted(board.items.values(), key=lambda item: (item.y, item.x))
    assert len(tiles) == 6
    # The slot is centered at (75, 50); tiles sit edge to edge around it.
    assert [(t.x, t.y, t.width, t.height) for t in tiles[:3]] == [
        (32, 32, 64, 64), (96, 32, 64, 64), (139, 32, 22, 64),
    ]
    assert tiles[-1].title.endswith("wide.png [2,3]")
    meta = board.metadata[(tiles[-1].id, "board-image-tools")]
    assert meta["tile"] == {"column": 2, "row": 1, "columns": 3, "rows": 2}


def test_texture_probe_limits_tile_edge():
    board = InMemoryBoard()
    settings = ToolSettings(slicing=SliceSettings(width_threshold=100, height_threshold=100))

    asyncio.run(
        _controller(board, settings, texture_probe=lambda: 80).run(
            [SourceFile("big.png", image_bytes(160, 80))], StitchSettings()
        )
    )

    assert len(board.items) == 2


def _break_second_tile(monkeypatch):
    real = encoding.encode_under_budget
    calls = []

    def flaky(image, target, hard_cap, settings=None):
        calls.append(1)
        if len(calls) == 2:
            raise OSError("encoder crashed")
        return real(image, target, hard_cap, settings)

    monkeypatch.setattr(encoding, "encode_under_budget", flaky)


def test_missing_tile_is_skipped_when_allowed(monkeypatch):
    _break_second_tile(monkeypatch)
    board = InMemoryBoard()

    result = asyncio.run(
        _controller(board, _slicing_settings()).run(
            [SourceFile("wide.png", image_bytes(150, 100))], StitchSettings(skip_missing_tiles=True)
        )
    )

    assert result.ok
    assert len(board.items) == 5


def test_missing_tile_rejects_source_when_not_allowed(monkeypatch):
    _break_second_tile(monkeypatch)
    board = InMemoryBoard()
    sources = [SourceFile("wide.png", image_bytes(150, 100)), SourceFile("small_2.png", image_bytes(20, 20))]

    result = asyncio.run(
        _controller(board, _slicing_settings()).run(sources, StitchSettings(skip_missing_tiles=False))
    )

    assert result.ok
    assert [strip_code(i.title) for i in board.items.values()] == ["small_2.png"]
    assert result.report.rejected[0].name == "wide.png"
    assert ("error", "Skipped wide.png: 1 tile(s) could not be encoded") in board.notifications
    assert result.message == "Imported and stitched 1 image. Skipped 1 file."


def test_corrupt_file_is_rejected_and_batch_continues(caplog):
    board = InMemoryBoard()
    sources = [SourceFile("bad_1.png", b"not an image"), SourceFile("good_2.png", image_bytes(20, 20))]

    with caplog.at_level(logging.WARNING):
        result = asyncio.run(_controller(board).run(sources, StitchSettings()))

    assert result.ok
    assert len(board.items) == 1
    assert "Rejected bad_1.png" in caplog.text
    assert any(level == "error" and text.startswith("Skipped bad_1.png") for level, text in board.notifications)


def test_memory_guard_rejects_source():
    board = InMemoryBoard()

    result = asyncio.run(
        _controller(board, memory_available=lambda: 1000).run(
            [SourceFile("a.png", image_bytes(100, 100))], StitchSettings()
        )
    )

    assert not result.ok
    assert result.message == "None of the chosen files could be imported."
    assert not board.items


def test_no_files_is_an_error():
    board = InMemoryBoard()

    result = asyncio.run(_controller(board).run([], StitchSettings()))

    assert not result.ok
    assert board.notifications == [("error", "Please choose one or more image files.")]


def test_viewport_failure_places_at_origin():
    class NoViewport(InMemoryBoard):
        async def get_viewport(self):
            raise ConnectionError("viewport unavailable")

    board = NoViewport()

    asyncio.run(_controller(board).run([SourceFile("a.png", image_bytes(40, 20))], StitchSettings()))

    (item,) = board.items.values()
    assert (item.x, item.y) == (20, 10)


def test_progress_reports_analysis_and_upload():
    board = InMemoryBoard()
    updates = []
    sources = [SourceFile(f"p{i}.png", image_bytes(10, 10)) for i in range(3)]

    asyncio.run(_controller(board, progress=updates.append).run(sources, StitchSettings()))

    assert updates[0].text == "Analyzing 1 / 3…"
    assert updates[-1].text.startswith("Uploading 3 / 3")


@pytest.mark.parametrize("columns", [0, 501])
def test_invalid_columns_are_rejected(columns):
    board = InMemoryBoard()

    result = asyncio.run(
        _controller(board).run([SourceFile("a.png", image_bytes(4, 4))], StitchSettings(columns=columns))
    )

    assert not result.ok
    assert board.notifications[0][0] == "error"
    assert not board.items


def test_stitch_layout_keeps_natural_sizes():
    settings = StitchSettings(
        columns=2, horizontal_gap=4, vertical_gap=6,
        anchor_corner=AnchorCorner.BOTTOM_RIGHT, cell_mode=CellMode.UNIFORM,
    )

    config = stitch_layout_config(settings)

    assert config == LayoutConfig(
        columns=2, horizontal_gap=4, vertical_gap=6, size_mode=SizeMode.NONE,
        anchor_corner=AnchorCorner.BOTTOM_RIGHT, cell_mode=CellMode.UNIFORM,
    )


def test_anchor_and_gaps_apply_to_imported_grid():
    board = InMemoryBoard()
    sources = [SourceFile(f"g{i}.png", image_bytes(40, 20)) for i in (1, 2, 3)]

    result = asyncio.run(
        _controller(board).run(
            sources,
            StitchSettings(columns=2, horizontal_gap=10, vertical_gap=5, anchor_corner=AnchorCorner.BOTTOM_RIGHT),
        )
    )

    assert result.ok
    placed = _by_name(board)
    # The grid (90 x 45) ends at the viewport center (0, 0).
    assert (placed["g1.png"].x, placed["g1.png"].y) == (-20, -10)
    assert (placed["g2.png"].x, placed["g2.png"].y) == (-70, -10)
    assert (placed["g3.png"].x, placed["g3.png"].y) == (-20, -35)
    assert all((item.width, item.height) == (40, 20) for item in placed.values())


def test_jpeg_keeps_its_bytes_and_mime_type():
    controller = _controller(InMemoryBoard())
    data = image_bytes(40, 30, fmt="JPEG")

    prepared = controller.prepare(SourceFile("photo.jpg", data), 4096)

    assert prepared.data == data
    assert prepared.content_type == "image/jpeg"


def test_analysis_progress_is_throttled():
    board = InMemoryBoard()
    updates = []
    sources = [SourceFile(f"p{i}.png", image_bytes(10, 10)) for i in range(4)]

    asyncio.run(
        _controller(board, progress=updates.append, clock=lambda: 0.0).run(sources, StitchSettings())
    )

    analyzing = [u.text for u in updates if u.text.startswith("Analyzing")]
    assert analyzing == ["Analyzing 1 / 4…", "Analyzing 4 / 4…"]
    assert updates[-1].text.startswith("Uploading 4 / 4")
