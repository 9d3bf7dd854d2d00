import asyncio

import pytest

from board_tools.host import ImagePayload, InMemoryBoard, Viewport


def test_viewport_center():
    assert Viewport(-500, -400, 1000, 800).center == (0, 0)
    assert Viewport(10, 20, 100, 50).center == (60, 45)


def test_selection_and_sync():
    board = InMemoryBoard()
    item = board.add_item("a", x=1, y=2)
    board.add_item("b", selected=False)

    async def scenario():
        selection = await board.get_selection()
        item.x, item.title = 50, "moved"
        await item.sync()
        return selection

    assert asyncio.run(scenario()) == [item]
    assert board.persisted_state(item.id) == {
        "title": "moved", "x": 50, "y": 2, "width": 100.0, "height": 100.0,
    }


def test_unsynced_changes_are_not_persisted():
    board = InMemoryBoard()
    item = board.add_item("a")

    item.title = "local only"

    assert board.persisted_state(item.id)["title"] == "a"


def test_sync_of_removed_item_fails():
    board = InMemoryBoard()
    item = board.add_item("a")
    del board.items[item.id]

    with pytest.raises(LookupError):
        asyncio.run(item.sync())


def test_create_image_runs_hook_and_does_not_select():
    seen = []

    async def hook(payload):
        seen.append(payload.title)

    board = InMemoryBoard(create_hook=hook)
    payload = ImagePayload(b"png", 10, 20, 30, 40, title="new")

    async def scenario():
        created = await board.create_image(payload)
        await created.set_metadata("ns", {"k": 1})
        return created, await board.get_selection()

    created, selection = asyncio.run(scenario())

    assert seen == ["new"]
    assert (created.x, created.y, created.width, created.height) == (10, 20, 30, 40)
    assert created.data == b"png"
    assert selection == []
    assert board.metadata[(created.id, "ns")] == {"k": 1}
    assert board.create_calls == 1


def test_notifications_and_zoom_are_recorded():
    board = InMemoryBoard()
    item = board.add_item("a")

    async def scenario():
        await board.show_info("hello")
        await board.show_error("oops")
        await board.zoom_to([item])

    asyncio.run(scenario())

    assert board.notifications == [("info", "hello"), ("error", "oops")]
    assert board.zoomed == [item.id]


def test_payload_size():
    assert ImagePayload(b"12345", 0, 0, 1, 1).size == 5
