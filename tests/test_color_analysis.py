import logging

from PIL import Image

from board_tools.config import ColorSettings
from imaging.color_analysis import NEUTRAL, ColorClass, classify_color, codes_from_means, measure


def test_white_and_black_are_gray_extremes():
    white = classify_color(Image.new("RGB", (120, 90), "white"))
    black = classify_color(Image.new("RGB", (120, 90), "black"))

    assert (white.brightness_code, white.saturation_code, white.group) == (0, 0, 0)
    assert (black.brightness_code, black.saturation_code, black.group) == (999, 0, 0)


def test_saturated_red_is_chromatic():
    red = classify_color(Image.new("RGB", (64, 64), (255, 0, 0)))

    assert red.saturation_code == 99
    assert red.group == 1
    assert abs(red.brightness_code - 787) <= 2


def test_transparent_pixels_count_as_white():
    clear = classify_color(Image.new("RGBA", (40, 40), (0, 0, 0, 0)))

    assert clear.brightness_code == 0
    assert clear.saturation_code == 0


def test_top_band_is_ignored():
    image = Image.new("RGB", (100, 100), "white")
    image.paste((255, 0, 0), (0, 0, 100, 10))

    assert classify_color(image).saturation_code <= 5


def test_codes_from_means_rounds_and_clamps():
    settings = ColorSettings()

    assert codes_from_means(255, 0, settings) == ColorClass(0, 0, 0)
    assert codes_from_means(0, 255, settings) == ColorClass(999, 99, 1)
    at_threshold = codes_from_means(127.5, 12.88, settings)
    assert at_threshold.saturation_code == 20
    assert at_threshold.group == 0


def test_measure_returns_none_when_crop_leaves_nothing():
    settings = ColorSettings(crop_top_ratio=1.0)

    assert measure(Image.new("RGB", (10, 10)), settings) is None
    assert classify_color(Image.new("RGB", (10, 10)), settings) == NEUTRAL


def test_unreadable_image_falls_back_to_neutral(caplog):
    class Broken:
        mode = "RGB"

        def resize(self, *args, **kwargs):
            raise OSError("truncated")

    with caplog.at_level(logging.WARNING):
        result = classify_color(Broken())

    assert result == NEUTRAL
    assert "neutral" in caplog.text
