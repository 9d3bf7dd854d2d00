# config.py
"""
Application configuration for Board Image Tools.

Module-level constants hold the defaults.  Components never read them
directly: they receive one of the frozen settings objects below so tests can
vary a single knob without touching shared state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# Grid defaults
DEFAULT_COLUMNS = 4
DEFAULT_HORIZONTAL_GAP = 0
DEFAULT_VERTICAL_GAP = 0
MAX_COLUMNS = 500
MAX_GAP = 10_000

# Color analysis
COLOR_SAMPLE_SIZE = 50           # square the image is downscaled to
COLOR_BLUR_RADIUS = 3
COLOR_CROP_TOP_RATIO = 0.3       # discount sky/header band
COLOR_CROP_SIDE_RATIO = 0.2
SATURATION_BOOST = 4.0
SATURATION_CODE_MAX = 99
BRIGHTNESS_CODE_MAX = 999
GRAY_THRESHOLD = 20              # saturation code at or below which an item is "gray"

# Slicing limits
SLICE_WIDTH_THRESHOLD = 8192
SLICE_HEIGHT_THRESHOLD = 4096
TILE_EDGE = 4096
FALLBACK_MAX_TEXTURE_EDGE = 4096
MAX_SOURCE_EDGE = 65_500         # JPEG cannot address more than 65535 px per axis

# Byte budgets
TILE_TARGET_BYTES = 6 << 20      # 6 MB
TILE_HARD_CAP_BYTES = 30 << 20   # host limit for a single image widget
ENCODE_QUALITIES = (85, 82, 80)
ENCODE_QUALITY_STEP = 5
ENCODE_QUALITY_FLOOR = 40

# Retry settings
UPLOAD_RETRIES = 5
RETRY_BASE_DELAY_SECS = 0.5
RETRY_JITTER_SECS = 0.25

# Adaptive concurrency
INITIAL_CONCURRENCY = 3
MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 8
MIN_BATCH_SIZE = 4
THROUGHPUT_EWMA_ALPHA = 0.25
UNSTABLE_RETRY_RATIO = 0.35
UNSTABLE_LATENCY_SECS = 15.0
STABLE_RETRY_RATIO = 0.08
STABLE_LATENCY_SECS = 9.0
PROBE_BATCHES = 2
COOLDOWN_BATCHES = 3
MIN_PROBE_GAIN = 0.12

# Progress reporting
ETA_MIN_SAMPLES = 6
ETA_UPDATE_INTERVAL_MS = 200
PROGRESS_THROTTLE_SECS = 0.2

# Memory guard: refuse to decode a source whose RGBA bitmap would exceed
# this fraction of the currently available memory.
MEMORY_HEADROOM_RATIO = 0.5

# Metadata namespace written on created widgets
METADATA_NAMESPACE = "board-image-tools"

# Log file
LOG_FILENAME = "board_tools.log"


class ConfigurationError(ValueError):
    """Raised when user supplied settings are out of range."""


class SizeMode(str, Enum):
    NONE = "none"
    WIDTH = "width"
    HEIGHT = "height"


class AnchorCorner(str, Enum):
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"


class CellMode(str, Enum):
    UNIFORM = "uniform"
    VARIABLE = "variable"


class SortMode(str, Enum):
    NUMBER = "number"
    COLOR = "color"


@dataclass(frozen=True)
class ColorSettings:
    sample_size: int = COLOR_SAMPLE_SIZE
    blur_radius: float = COLOR_BLUR_RADIUS
    crop_top_ratio: float = COLOR_CROP_TOP_RATIO
    crop_side_ratio: float = COLOR_CROP_SIDE_RATIO
    saturation_boost: float = SATURATION_BOOST
    gray_threshold: int = GRAY_THRESHOLD


@dataclass(frozen=True)
class SliceSettings:
    width_threshold: int = SLICE_WIDTH_THRESHOLD
    height_threshold: int = SLICE_HEIGHT_THRESHOLD
    tile_edge: int = TILE_EDGE
    fallback_max_edge: int = FALLBACK_MAX_TEXTURE_EDGE
    max_source_edge: int = MAX_SOURCE_EDGE
    target_bytes: int = TILE_TARGET_BYTES
    hard_cap_bytes: int = TILE_HARD_CAP_BYTES
    qualities: tuple[int, ...] = ENCODE_QUALITIES
    quality_step: int = ENCODE_QUALITY_STEP
    quality_floor: int = ENCODE_QUALITY_FLOOR
    memory_headroom: float = MEMORY_HEADROOM_RATIO


@dataclass(frozen=True)
class RetrySettings:
    retries: int = UPLOAD_RETRIES
    base_delay: float = RETRY_BASE_DELAY_SECS
    jitter: float = RETRY_JITTER_SECS


@dataclass(frozen=True)
class ConcurrencySettings:
    initial: int = INITIAL_CONCURRENCY
    minimum: int = MIN_CONCURRENCY
    maximum: int = MAX_CONCURRENCY
    min_batch_size: int = MIN_BATCH_SIZE
    ewma_alpha: float = THROUGHPUT_EWMA_ALPHA
    unstable_retry_ratio: float = UNSTABLE_RETRY_RATIO
    unstable_latency: float = UNSTABLE_LATENCY_SECS
    stable_retry_ratio: float = STABLE_RETRY_RATIO
    stable_latency: float = STABLE_LATENCY_SECS
    probe_batches: int = PROBE_BATCHES
    cooldown_batches: int = COOLDOWN_BATCHES
    min_probe_gain: float = MIN_PROBE_GAIN


@dataclass(frozen=True)
class EtaSettings:
    min_samples: int = ETA_MIN_SAMPLES
    update_interval_ms: float = ETA_UPDATE_INTERVAL_MS
    alpha: float = THROUGHPUT_EWMA_ALPHA
    throttle_secs: float = PROGRESS_THROTTLE_SECS


@dataclass(frozen=True)
class ToolSettings:
    """Bundle of every tunable, handed to the controllers."""

    color: ColorSettings = field(default_factory=ColorSettings)
    slicing: SliceSettings = field(default_factory=SliceSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    concurrency: ConcurrencySettings = field(default_factory=ConcurrencySettings)
    eta: EtaSettings = field(default_factory=EtaSettings)
    metadata_namespace: str = METADATA_NAMESPACE


@dataclass(frozen=True)
class SortSettings:
    """Values of the Sorting form."""

    columns: int = DEFAULT_COLUMNS
    horizontal_gap: float = DEFAULT_HORIZONTAL_GAP
    vertical_gap: float = DEFAULT_VERTICAL_GAP
    size_mode: SizeMode = SizeMode.NONE
    anchor_corner: AnchorCorner = AnchorCorner.TOP_LEFT
    sort_mode: SortMode = SortMode.NUMBER
    cell_mode: CellMode = CellMode.VARIABLE


@dataclass(frozen=True)
class StitchSettings:
    """Values of the Stitch form."""

    columns: int = DEFAULT_COLUMNS
    horizontal_gap: float = DEFAULT_HORIZONTAL_GAP
    vertical_gap: float = DEFAULT_VERTICAL_GAP
    anchor_corner: AnchorCorner = AnchorCorner.TOP_LEFT
    cell_mode: CellMode = CellMode.VARIABLE
    skip_missing_tiles: bool = True


def _validate_grid(columns: int, horizontal_gap: float, vertical_gap: float) -> None:
    if not isinstance(columns, int) or columns < 1:
        raise ConfigurationError("Images per row must be greater than 0.")
    if columns > MAX_COLUMNS:
        raise ConfigurationError(f"Images per row must not exceed {MAX_COLUMNS}.")
    for label, gap in (("Horizontal gap", horizontal_gap), ("Vertical gap", vertical_gap)):
        if gap < 0:
            raise ConfigurationError(f"{label} must not be negative.")
        if gap > MAX_GAP:
            raise ConfigurationError(f"{label} must not exceed {MAX_GAP}.")


def validate_sort_settings(settings: SortSettings) -> SortSettings:
    _validate_grid(settings.columns, settings.horizontal_gap, settings.vertical_gap)
    return settings


def validate_stitch_settings(settings: StitchSettings) -> StitchSettings:
    _validate_grid(settings.columns, settings.horizontal_gap, settings.vertical_gap)
    return settings
