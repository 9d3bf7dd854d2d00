"""Reusable image primitives.

Decoding and pixel-level helpers shared by color analysis and slicing.
Functions are small and pure so they can be tested on synthetic images.
"""

from __future__ import annotations

import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

ColorValue = int | tuple[int, ...]


class ImageDecodeError(Exception):
    """Raised when bytes cannot be decoded into an image."""


def open_image(data: bytes) -> Image.Image:
    """Open ``data`` lazily; only the header is parsed.

    The returned image exposes ``size`` and ``format`` without decoding the
    pixels, so callers can reject oversized inputs cheaply.
    """
    try:
        return Image.open(io.BytesIO(data))
    except Image.DecompressionBombError as exc:
        raise ImageDecodeError(f"Image is too large to decode safely: {exc}") from exc
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageDecodeError(f"Unsupported or corrupt image data: {exc}") from exc


def decode_image(data: bytes | Image.Image) -> Image.Image:
    """Fully decode ``data`` and apply its EXIF orientation."""
    image = open_image(data) if isinstance(data, (bytes, bytearray)) else data
    try:
        image.load()
        return ImageOps.exif_transpose(image)
    except Image.DecompressionBombError as exc:
        raise ImageDecodeError(f"Image is too large to decode safely: {exc}") from exc
    except (OSError, ValueError, SyntaxError) as exc:
        raise ImageDecodeError(f"Failed to decode image: {exc}") from exc


def flatten_alpha(image: Image.Image, background: ColorValue = (255, 255, 255)) -> Image.Image:
    """Return an RGB copy of ``image`` composited over ``background``."""
    if image.mode == "RGB":
        return image
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        canvas = Image.new("RGB", rgba.size, background)
        canvas.paste(rgba, mask=rgba.getchannel("A"))
        return canvas
    return image.convert("RGB")


def crop_margins(
    image: Image.Image, *, top_ratio: float = 0.0, side_ratio: float = 0.0
) -> Image.Image | None:
    """Cut a top band and equal side bands off ``image``.

    Returns ``None`` when nothing would remain.
    """
    width, height = image.size
    crop_y = int(height * top_ratio)
    crop_x = int(width * side_ratio)
    if height - crop_y <= 0 or width - 2 * crop_x <= 0:
        logging.warning(
            "Crop ratios top=%s side=%s leave no pixels of a %dx%d image",
            top_ratio, side_ratio, width, height,
        )
        return None
    return image.crop((crop_x, crop_y, width - crop_x, height))


def mime_type(image: Image.Image) -> str:
    """MIME type of the format ``image`` was decoded from."""
    return Image.MIME.get(image.format or "", "application/octet-stream")


__all__ = [
    "ImageDecodeError",
    "crop_margins",
    "decode_image",
    "flatten_alpha",
    "mime_type",
    "open_image",
]
