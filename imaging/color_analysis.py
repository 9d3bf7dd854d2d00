"""Brightness and saturation classification of an image.

The image is reduced to a small blurred thumbnail, the top band and the side
bands are discarded, and the remaining pixels give a mean luma and a mean
chroma spread.  Both are mapped to the integer codes written into titles by
:mod:`board_tools.color_code`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from PIL import Image, ImageChops, ImageFilter, ImageStat

from board_tools.config import BRIGHTNESS_CODE_MAX, SATURATION_CODE_MAX, ColorSettings

from .image_operations import crop_margins, flatten_alpha

LUMA_WEIGHTS = (0.2126, 0.7152, 0.0722)


@dataclass(frozen=True, slots=True)
class ColorClass:
    brightness_code: int  # 0 white .. 999 black
    saturation_code: int  # 0 gray .. 99 vivid
    group: int            # 0 achromatic, 1 chromatic


NEUTRAL = ColorClass(brightness_code=500, saturation_code=0, group=0)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def measure(image: Image.Image, settings: ColorSettings) -> tuple[float, float] | None:
    """Return ``(mean_luma, mean_spread)`` in 0..255 or ``None``."""
    size = settings.sample_size
    small = flatten_alpha(image).resize((size, size), Image.Resampling.BILINEAR)
    if settings.blur_radius:
        small = small.filter(ImageFilter.GaussianBlur(settings.blur_radius))
    region = crop_margins(
        small, top_ratio=settings.crop_top_ratio, side_ratio=settings.crop_side_ratio
    )
    if region is None:
        return None

    means = ImageStat.Stat(region).mean
    avg_y = sum(weight * mean for weight, mean in zip(LUMA_WEIGHTS, means))

    red, green, blue = region.split()
    high = ImageChops.lighter(ImageChops.lighter(red, green), blue)
    low = ImageChops.darker(ImageChops.darker(red, green), blue)
    avg_spread = ImageStat.Stat(ImageChops.subtract(high, low)).mean[0]
    return avg_y, avg_spread


def codes_from_means(avg_y: float, avg_spread: float, settings: ColorSettings) -> ColorClass:
    brightness = _round_half_up((1 - avg_y / 255) * BRIGHTNESS_CODE_MAX)
    brightness = max(0, min(BRIGHTNESS_CODE_MAX, brightness))

    boosted = min(1.0, avg_spread / 255 * settings.saturation_boost)
    saturation = max(0, min(SATURATION_CODE_MAX, _round_half_up(boosted * SATURATION_CODE_MAX)))

    group = 0 if saturation <= settings.gray_threshold else 1
    return ColorClass(brightness, saturation, group)


def classify_color(image: Image.Image, settings: ColorSettings | None = None) -> ColorClass:
    """Classify ``image``; unreadable pixels give :data:`NEUTRAL`."""
    settings = settings or ColorSettings()
    try:
        means = measure(image, settings)
    except (OSError, ValueError) as exc:
        logging.warning("Color analysis failed, using neutral code: %s", exc)
        return NEUTRAL
    if means is None:
        return NEUTRAL
    return codes_from_means(*means, settings)


__all__ = ["ColorClass", "NEUTRAL", "classify_color", "codes_from_means", "measure"]
