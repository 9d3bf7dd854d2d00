# workers.py
"""
Background execution of board operations.

Board operations are coroutines.  Each one runs on its own event loop inside
a QRunnable so the Qt event loop never waits on the network; results and
progress travel back to the UI thread through Qt signals.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from PySide6.QtCore import QObject, QRunnable, QThreadPool, Signal

from .scheduler import ProgressUpdate

logger = logging.getLogger("board_tools.workers")

ProgressEmit = Callable[[ProgressUpdate], None]
AsyncJob = Callable[[ProgressEmit], Awaitable[Any]]


class WorkerSignals(QObject):
    started = Signal()
    finished = Signal()
    error = Signal(str)
    progress = Signal(object)
    result = Signal(object)


class AsyncWorker(QRunnable):
    """Runs ``job(progress_emit)`` to completion with ``asyncio.run``."""

    def __init__(self, job: AsyncJob):
        super().__init__()
        self.job = job
        self.signals = WorkerSignals()

    def run(self) -> None:
        try:
            self.signals.started.emit()
            result = asyncio.run(self.job(self.signals.progress.emit))
            self.signals.result.emit(result)
        except Exception as e:
            logger.exception("Worker error: %s", e)
            self.signals.error.emit(str(e))
        finally:
            self.signals.finished.emit()


def start_worker(
    job: AsyncJob,
    *,
    on_result: Optional[Callable[[Any], None]] = None,
    on_progress: Optional[Callable[[ProgressUpdate], None]] = None,
    on_error: Optional[Callable[[str], None]] = None,
    on_finished: Optional[Callable[[], None]] = None,
    pool: Optional[QThreadPool] = None,
) -> AsyncWorker:
    """Connect the callbacks and schedule ``job`` on ``pool``."""
    worker = AsyncWorker(job)
    if on_result:
        worker.signals.result.connect(on_result)
    if on_progress:
        worker.signals.progress.connect(on_progress)
    if on_error:
        worker.signals.error.connect(on_error)
    if on_finished:
        worker.signals.finished.connect(on_finished)
    (pool or QThreadPool.globalInstance()).start(worker)
    return worker


__all__ = ["AsyncWorker", "WorkerSignals", "start_worker"]
