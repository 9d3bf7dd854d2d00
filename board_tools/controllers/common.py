"""Shared error handling for board operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Tuple

from ..config import ConfigurationError
from ..host import Board

logger = logging.getLogger("board_tools.controllers")


class UserInputError(Exception):
    """Nothing to work on; reported before anything is changed."""

    def __init__(self, message: str, *, informational: bool = False):
        super().__init__(message)
        self.informational = informational


@dataclass
class OperationResult:
    ok: bool
    message: str
    report: Any = None


def plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


async def notify(board: Board, text: str, *, error: bool = False) -> None:
    """Show a board notification; a failing notification is only logged."""
    try:
        if error:
            await board.show_error(text)
        else:
            await board.show_info(text)
    except Exception as exc:
        logger.warning("Could not show notification %r: %s", text, exc)


async def run_guarded(
    board: Board,
    operation: Callable[[], Awaitable[Tuple[str, Any]]],
    failure_text: str,
) -> OperationResult:
    """Run ``operation`` and turn every outcome into a notification.

    ``operation`` returns ``(success_message, report)``.
    """
    try:
        message, report = await operation()
    except UserInputError as exc:
        await notify(board, str(exc), error=not exc.informational)
        return OperationResult(False, str(exc))
    except ConfigurationError as exc:
        await notify(board, str(exc), error=True)
        return OperationResult(False, str(exc))
    except Exception:
        logger.exception("Board operation failed")
        await notify(board, failure_text, error=True)
        return OperationResult(False, failure_text)
    await notify(board, message)
    return OperationResult(True, message, report)


__all__ = ["OperationResult", "UserInputError", "notify", "plural", "run_guarded"]
