"""Miro REST v2 adapter for the board protocol.

REST has no notion of the user's selection or viewport, so the selection is
every image on the board (optionally narrowed to known item ids) and the
viewport is a configured point.  App metadata goes into the image's
``altText`` as ``<namespace>:<json>``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import aiohttp

from .host import ImagePayload, Viewport

logger = logging.getLogger("board_tools.miro")

MIRO_API_URL = "https://api.miro.com/v2"
PAGE_LIMIT = 50


class MiroApiError(RuntimeError):
    def __init__(self, status: int, message: str):
        super().__init__(f"HTTP {status}: {message}")
        self.status = status


class MiroImage:
    """Image widget backed by a Miro board item."""

    type = "image"

    def __init__(self, board: "MiroRestBoard", raw: Dict[str, Any]):
        self.board = board
        self.id = str(raw["id"])
        self.title = (raw.get("data") or {}).get("title") or ""
        position = raw.get("position") or {}
        geometry = raw.get("geometry") or {}
        self.x = float(position.get("x", 0.0))
        self.y = float(position.get("y", 0.0))
        self.width = float(geometry.get("width", 0.0))
        # Miro omits the height of some images; assume square rather than
        # underestimate portrait images.
        self.height = float(geometry.get("height") or self.width)

    def __repr__(self) -> str:
        return f"MiroImage(id={self.id!r}, title={self.title!r})"

    async def sync(self) -> None:
        await self.board._update_image(self)

    async def set_metadata(self, namespace: str, data: Dict[str, Any]) -> None:
        alt_text = f"{namespace}:{json.dumps(data, separators=(',', ':'), sort_keys=True)}"
        await self.board._request(
            "patch", self.board._image_path(self.id), json={"data": {"altText": alt_text}}
        )


class MiroRestBoard:
    """Board protocol over the Miro REST API using an aiohttp session."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        board_id: str,
        access_token: str,
        *,
        item_ids: Optional[Iterable[str]] = None,
        view_center: Tuple[float, float] = (0.0, 0.0),
        base_url: str = MIRO_API_URL,
        max_concurrent: int = 10,
        max_rate_limit_retries: int = 3,
        rate_limit_delay: float = 2.0,
    ) -> None:
        self.session = session
        self.board_id = board_id
        self.item_ids = {str(i) for i in item_ids} if item_ids else None
        self.view_center = view_center
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "accept": "application/json",
            "Authorization": f"Bearer {access_token}",
        }
        self.max_rate_limit_retries = max_rate_limit_retries
        self.rate_limit_delay = rate_limit_delay
        self._semaphore = asyncio.Semaphore(max_concurrent)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def _board_path(self) -> str:
        return f"/boards/{self.board_id}"

    def _image_path(self, item_id: str) -> str:
        return f"{self._board_path()}/images/{item_id}"

    def _url(self, path_or_url: str) -> str:
        if path_or_url.startswith(("http://", "https://")):
            return path_or_url
        return f"{self.base_url}{path_or_url}"

    async def _request(
        self,
        method: str,
        path_or_url: str,
        *,
        form: Optional[Callable[[], aiohttp.FormData]] = None,
        **kwargs,
    ) -> Any:
        """Send a request, backing off on 429; other failures raise.

        A multipart body is passed as ``form``, a builder called once per
        attempt.
        """
        url = self._url(path_or_url)
        for attempt in range(self.max_rate_limit_retries + 1):
            if form is not None:
                kwargs["data"] = form()
            async with self._semaphore:
                async with self.session.request(method, url, headers=self.headers, **kwargs) as resp:
                    if resp.status == 429 and attempt < self.max_rate_limit_retries:
                        delay = self.rate_limit_delay * 2 ** attempt + random.random()
                        logger.warning("Rate limited on %s %s, waiting %.1fs", method.upper(), url, delay)
                    elif resp.status in (200, 201):
                        if resp.content_type == "application/json":
                            return await resp.json()
                        return None
                    elif resp.status == 204:
                        return None
                    else:
                        raise MiroApiError(resp.status, await resp.text())
            await asyncio.sleep(delay)
        raise MiroApiError(429, f"rate limit persisted for {url}")

    async def _update_image(self, image: MiroImage) -> None:
        await self._request(
            "patch",
            self._image_path(image.id),
            json={
                "data": {"title": image.title},
                "position": {"x": image.x, "y": image.y, "origin": "center"},
                # Miro keeps the aspect ratio; only one of width/height may be sent.
                "geometry": {"width": image.width},
            },
        )

    # ------------------------------------------------------------------
    # Board protocol
    # ------------------------------------------------------------------
    async def get_selection(self) -> List[MiroImage]:
        url: Optional[str] = f"{self._board_path()}/items?type=image&limit={PAGE_LIMIT}"
        images: List[MiroImage] = []
        while url:
            page = await self._request("get", url) or {}
            for raw in page.get("data", []):
                if raw.get("type", "image") != "image":
                    continue
                if self.item_ids is not None and str(raw.get("id")) not in self.item_ids:
                    continue
                images.append(MiroImage(self, raw))
            url = (page.get("links") or {}).get("next")
        return images

    async def create_image(self, payload: ImagePayload) -> MiroImage:
        body = {
            "title": payload.title,
            "position": {"x": payload.x, "y": payload.y, "origin": "center"},
            "geometry": {"width": payload.width},
        }

        def build_form() -> aiohttp.FormData:
            form = aiohttp.FormData()
            form.add_field("data", json.dumps(body), content_type="application/json")
            form.add_field(
                "resource",
                payload.data,
                filename=payload.title or "image",
                content_type=payload.content_type,
            )
            return form

        raw = await self._request("post", f"{self._board_path()}/images", form=build_form)
        if not raw or "id" not in raw:
            raise MiroApiError(201, f"create returned no item for {payload.title!r}")
        image = MiroImage(self, raw)
        if not image.height:
            image.height = payload.height
        return image

    async def get_viewport(self) -> Viewport:
        x, y = self.view_center
        return Viewport(x, y, 0.0, 0.0)

    async def zoom_to(self, items: Sequence[Any]) -> None:
        logger.info("Created %d images; zoom is not available over REST", len(items))

    async def show_info(self, text: str) -> None:
        logger.info(text)

    async def show_error(self, text: str) -> None:
        logger.error(text)


__all__ = ["MIRO_API_URL", "MiroApiError", "MiroImage", "MiroRestBoard"]
