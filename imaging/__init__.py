"""Image primitives for Board Image Tools."""

from . import color_analysis, encoding, image_operations, slicer, validation

__all__ = ["color_analysis", "encoding", "image_operations", "slicer", "validation"]
