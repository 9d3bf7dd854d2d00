import pytest

from board_tools.config import SliceSettings
from imaging.slicer import (
    ImageTooLargeError,
    check_memory_budget,
    check_source_size,
    needs_slicing,
    plan_mosaic_placement,
    plan_slice,
    resolve_tile_edge,
)


@pytest.mark.parametrize(
    "width, height, edge",
    [(10000, 5000, 4096), (8192, 4096, 4096), (1, 1, 4096), (300, 200, 128), (129, 7, 64)],
)
def test_plan_slice_tiles_source_exactly(width, height, edge):
    plan = plan_slice(width, height, edge)
    tiles = list(plan.tiles())

    assert len(tiles) == plan.tile_count == plan.tiles_x * plan.tiles_y
    assert all(0 < t.width <= edge and 0 < t.height <= edge for t in tiles)
    assert sum(t.width * t.height for t in tiles) == width * height
    covered = set()
    for t in tiles:
        left, top, right, bottom = t.box
        assert right <= width and bottom <= height
        covered.add((left, top))
    assert len(covered) == len(tiles)
    # Rows and columns are contiguous, so the union has no gaps.
    assert plan.col_offsets() == [sum(plan.col_widths[:i]) for i in range(plan.tiles_x)]
    assert plan.row_offsets() == [sum(plan.row_heights[:i]) for i in range(plan.tiles_y)]


def test_plan_slice_puts_remainder_last():
    plan = plan_slice(10000, 5000, 4096)

    assert plan.col_widths == (4096, 4096, 1808)
    assert plan.row_heights == (4096, 904)
    assert [(t.column, t.row) for t in plan.tiles()][:4] == [(0, 0), (1, 0), (2, 0), (0, 1)]


@pytest.mark.parametrize("width, height, edge", [(0, 10, 64), (10, -1, 64), (10, 10, 0)])
def test_plan_slice_rejects_non_positive_input(width, height, edge):
    with pytest.raises(ValueError):
        plan_slice(width, height, edge)


def test_needs_slicing_uses_separate_axis_thresholds():
    settings = SliceSettings()

    assert not needs_slicing(8192, 4096, settings)
    assert needs_slicing(8193, 10, settings)
    assert needs_slicing(10, 4097, settings)


def test_resolve_tile_edge_respects_probe():
    settings = SliceSettings(tile_edge=4096, fallback_max_edge=4096)

    def broken():
        raise RuntimeError("no GL context")

    assert resolve_tile_edge(settings) == 4096
    assert resolve_tile_edge(settings, lambda: 2048) == 2048
    assert resolve_tile_edge(settings, lambda: 16384) == 4096
    assert resolve_tile_edge(settings, lambda: 0) == 4096
    assert resolve_tile_edge(settings, broken) == 4096


def test_check_source_size_rejects_huge_and_empty():
    settings = SliceSettings()

    check_source_size(65_500, 10, settings)
    with pytest.raises(ImageTooLargeError):
        check_source_size(70_000, 10, settings)
    with pytest.raises(ImageTooLargeError):
        check_source_size(0, 10, settings)


def test_check_memory_budget():
    settings = SliceSettings(memory_headroom=0.5)

    check_memory_budget(1000, 1000, settings, available=8_000_000)
    with pytest.raises(ImageTooLargeError):
        check_memory_budget(1000, 1000, settings, available=7_999_999)


def test_check_memory_budget_reads_available_memory():
    check_memory_budget(10, 10, SliceSettings())


def test_mosaic_placement_is_edge_to_edge_around_center():
    plan = plan_slice(300, 200, 128)

    placements = plan_mosaic_placement(plan, (0, 0))

    first, last = placements[0], placements[-1]
    assert (first.x, first.y, first.width, first.height) == (-86, -36, 128, 128)
    assert (last.column, last.row) == (2, 1)
    assert (last.x, last.y, last.width, last.height) == (128, 64, 44, 72)
    left_edges = sorted({p.x - p.width / 2 for p in placements})
    assert left_edges == [-150, -22, 106]


def test_mosaic_placement_scales():
    plan = plan_slice(200, 100, 100)

    placements = plan_mosaic_placement(plan, (10, 10), scale=0.5)

    assert [(p.x, p.y, p.width) for p in placements] == [(-15, 10, 50), (35, 10, 50)]
