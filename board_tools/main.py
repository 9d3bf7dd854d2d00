# main.py
"""
Entry point and main window for Board Image Tools.
"""
import logging
import os
import sys
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import AsyncIterator, Optional

import aiohttp
from PySide6.QtWidgets import QApplication, QMainWindow, QVBoxLayout, QWidget

from . import config
from .host import Board, InMemoryBoard
from .miro import MiroRestBoard
from .presenter import ToolsPresenter
from .widgets.control_panel import ControlPanel, GridDefaults

LOGGER_NAME = "board_tools"


def configure_logging(log_path: Optional[Path] = None) -> logging.Logger:
    """Configure and return the application logger.

    The handler setup is idempotent to avoid duplicate handlers when the module
    is imported multiple times (e.g., in tests). A rotating file handler limits
    on-disk log growth while mirroring output to stdout.
    """

    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    )

    if log_path is None:
        env_path = os.environ.get("BOARD_TOOLS_LOG")
        log_path = Path(env_path) if env_path else Path.cwd() / config.LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=1_048_576,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    logger.propagate = False

    return logger


def global_exception_handler(exc_type, value, tb):
    logging.getLogger(LOGGER_NAME).error("Uncaught exception", exc_info=(exc_type, value, tb))
    sys.__excepthook__(exc_type, value, tb)


@asynccontextmanager
async def open_board() -> AsyncIterator[Board]:
    """Board for one operation.

    With ``MIRO_ACCESS_TOKEN`` and ``MIRO_BOARD_ID`` set, the Miro REST API is
    used; ``MIRO_ITEM_IDS`` (comma separated) narrows the selection.
    Otherwise a dry-run in-memory board is used.
    """
    token = os.environ.get("MIRO_ACCESS_TOKEN")
    board_id = os.environ.get("MIRO_BOARD_ID")
    if not (token and board_id):
        logging.getLogger(LOGGER_NAME).info("No Miro credentials; using an in-memory board")
        yield InMemoryBoard()
        return
    item_ids = [i.strip() for i in os.environ.get("MIRO_ITEM_IDS", "").split(",") if i.strip()]
    async with aiohttp.ClientSession() as session:
        yield MiroRestBoard(session, board_id, token, item_ids=item_ids or None)


class MainWindow(QMainWindow):
    def __init__(self, board_factory=open_board):
        super().__init__()
        self.setWindowTitle("Board Image Tools")
        self.resize(420, 520)

        central = QWidget()
        self.setCentralWidget(central)
        main_layout = QVBoxLayout(central)
        main_layout.setContentsMargins(8, 6, 8, 6)
        main_layout.setSpacing(8)

        self.control_panel = ControlPanel(grid_defaults=GridDefaults(), parent=self)
        main_layout.addWidget(self.control_panel)

        self.presenter = ToolsPresenter(self.control_panel, board_factory)
        self.control_panel.sortRequested.connect(self.presenter.submit_sorting)
        self.control_panel.stitchRequested.connect(lambda: self.presenter.submit_stitch())


def main() -> int:
    configure_logging()
    sys.excepthook = global_exception_handler
    app = QApplication.instance() or QApplication(sys.argv)
    app.setStyle("Fusion")
    window = MainWindow()
    window.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
