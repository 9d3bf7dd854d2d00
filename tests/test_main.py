import asyncio
import importlib
import logging

import pytest

pytest.importorskip("PySide6.QtWidgets")

from board_tools import main as app_main
from board_tools.host import InMemoryBoard
from board_tools.miro import MiroRestBoard


@pytest.fixture
def clean_logger():
    logger = logging.getLogger(app_main.LOGGER_NAME)
    saved = list(logger.handlers), logger.propagate, logger.level
    logger.handlers.clear()
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = saved[0]
    logger.propagate, logger.level = saved[1], saved[2]


def test_configure_logging_is_idempotent(tmp_path, clean_logger):
    log_path = tmp_path / "logs" / "board_tools.log"

    first = app_main.configure_logging(log_path)
    second = app_main.configure_logging(log_path)

    assert first is second is clean_logger
    assert len(clean_logger.handlers) == 2
    assert not clean_logger.propagate
    clean_logger.info("hello")
    assert "INFO - board_tools - hello" in log_path.read_text(encoding="utf-8")


def test_open_board_without_credentials_is_in_memory(monkeypatch):
    monkeypatch.delenv("MIRO_ACCESS_TOKEN", raising=False)
    monkeypatch.delenv("MIRO_BOARD_ID", raising=False)

    async def scenario():
        async with app_main.open_board() as board:
            return board

    assert isinstance(asyncio.run(scenario()), InMemoryBoard)


def test_open_board_with_credentials_uses_rest(monkeypatch):
    monkeypatch.setenv("MIRO_ACCESS_TOKEN", "token")
    monkeypatch.setenv("MIRO_BOARD_ID", "board")
    monkeypatch.setenv("MIRO_ITEM_IDS", "1, 2,")

    async def scenario():
        async with app_main.open_board() as board:
            return board.board_id, board.item_ids, isinstance(board, MiroRestBoard)

    assert asyncio.run(scenario()) == ("board", {"1", "2"}, True)


def test_root_launcher_delegates_to_package_main():
    launcher = importlib.import_module("main")

    assert launcher.main is app_main.main
