"""Host board API seen by the tools.

The whiteboard platform is treated as a remote object store reached through
asynchronous, fallible calls.  :class:`Board` and :class:`BoardItem` describe
the calls the tools need; :class:`InMemoryBoard` implements them in-process
for tests, demos and dry runs.  The REST adapter lives in
:mod:`board_tools.miro`.
"""

from __future__ import annotations

import copy
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger("board_tools.host")


@dataclass(frozen=True, slots=True)
class Viewport:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


@dataclass(slots=True)
class ImagePayload:
    """Everything needed to create one image widget.

    ``x``/``y`` are the target center, ``width``/``height`` the displayed size.
    """

    data: bytes
    x: float
    y: float
    width: float
    height: float
    title: str = ""
    content_type: str = "image/png"
    metadata: Optional[Dict[str, Any]] = None

    @property
    def size(self) -> int:
        return len(self.data)


class BoardItem(Protocol):
    id: str
    type: str
    title: str
    x: float
    y: float
    width: float
    height: float

    async def sync(self) -> None:
        """Persist local mutations of title, position and size."""

    async def set_metadata(self, namespace: str, data: Dict[str, Any]) -> None:
        """Attach app data to the item."""


class Board(Protocol):
    async def get_selection(self) -> List[BoardItem]: ...

    async def create_image(self, payload: ImagePayload) -> BoardItem: ...

    async def get_viewport(self) -> Viewport: ...

    async def zoom_to(self, items: Sequence[BoardItem]) -> None: ...

    async def show_info(self, text: str) -> None: ...

    async def show_error(self, text: str) -> None: ...


@dataclass(eq=False)
class MemoryItem:
    """Widget held by :class:`InMemoryBoard`."""

    board: "InMemoryBoard" = field(repr=False)
    id: str
    title: str = ""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    type: str = "image"
    data: bytes = field(default=b"", repr=False)

    async def sync(self) -> None:
        await self.board._persist(self)

    async def set_metadata(self, namespace: str, data: Dict[str, Any]) -> None:
        await self.board._store_metadata(self, namespace, data)


CreateHook = Callable[[ImagePayload], Awaitable[None]]


class InMemoryBoard:
    """In-process board.

    ``create_hook`` runs before every create call and may raise to simulate
    remote failures or sleep to simulate latency.
    """

    def __init__(
        self,
        viewport: Optional[Viewport] = None,
        *,
        create_hook: Optional[CreateHook] = None,
    ) -> None:
        self.viewport = viewport or Viewport(-500.0, -400.0, 1000.0, 800.0)
        self.create_hook = create_hook
        self.items: Dict[str, MemoryItem] = {}
        self.selected_ids: List[str] = []
        self.persisted: Dict[str, Dict[str, Any]] = {}
        self.metadata: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.notifications: List[Tuple[str, str]] = []
        self.zoomed: List[str] = []
        self.create_calls = 0
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Test and demo helpers
    # ------------------------------------------------------------------
    def add_item(
        self,
        title: str = "",
        x: float = 0.0,
        y: float = 0.0,
        width: float = 100.0,
        height: float = 100.0,
        *,
        item_type: str = "image",
        selected: bool = True,
    ) -> MemoryItem:
        item = MemoryItem(
            board=self,
            id=str(next(self._ids)),
            title=title,
            x=x,
            y=y,
            width=width,
            height=height,
            type=item_type,
        )
        self.items[item.id] = item
        self.persisted[item.id] = self._state_of(item)
        if selected:
            self.selected_ids.append(item.id)
        return item

    def persisted_state(self, item_id: str) -> Dict[str, Any]:
        return copy.deepcopy(self.persisted[item_id])

    @staticmethod
    def _state_of(item: MemoryItem) -> Dict[str, Any]:
        return {
            "title": item.title,
            "x": item.x,
            "y": item.y,
            "width": item.width,
            "height": item.height,
        }

    async def _persist(self, item: MemoryItem) -> None:
        if item.id not in self.items:
            raise LookupError(f"Item {item.id} no longer exists")
        self.persisted[item.id] = self._state_of(item)

    async def _store_metadata(self, item: MemoryItem, namespace: str, data: Dict[str, Any]) -> None:
        self.metadata[(item.id, namespace)] = copy.deepcopy(data)

    # ------------------------------------------------------------------
    # Board protocol
    # ------------------------------------------------------------------
    async def get_selection(self) -> List[MemoryItem]:
        return [self.items[i] for i in self.selected_ids if i in self.items]

    async def create_image(self, payload: ImagePayload) -> MemoryItem:
        self.create_calls += 1
        if self.create_hook is not None:
            await self.create_hook(payload)
        item = self.add_item(
            payload.title,
            payload.x,
            payload.y,
            payload.width,
            payload.height,
            selected=False,
        )
        item.data = payload.data
        return item

    async def get_viewport(self) -> Viewport:
        return self.viewport

    async def zoom_to(self, items: Sequence[BoardItem]) -> None:
        self.zoomed = [item.id for item in items]

    async def show_info(self, text: str) -> None:
        logger.info("Board notice: %s", text)
        self.notifications.append(("info", text))

    async def show_error(self, text: str) -> None:
        logger.error("Board error notice: %s", text)
        self.notifications.append(("error", text))


__all__ = [
    "Board",
    "BoardItem",
    "ImagePayload",
    "InMemoryBoard",
    "MemoryItem",
    "Viewport",
]
